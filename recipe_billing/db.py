from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from recipe_billing.core.config import settings


def _ensure_sqlite_dir(database_url: str) -> None:
    url = make_url(database_url)
    if url.get_backend_name() != "sqlite" or url.database in (None, "", ":memory:"):
        return
    Path(url.database).expanduser().resolve().parent.mkdir(parents=True, exist_ok=True)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # cascade deletes on users only fire with the pragma on
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(database_url: str, **overrides) -> Engine:
    is_sqlite = database_url.startswith("sqlite")
    _ensure_sqlite_dir(database_url)
    engine_kwargs = {
        "future": True,
        "connect_args": {"check_same_thread": False} if is_sqlite else {},
        "pool_pre_ping": True,
    }
    if database_url.startswith("postgresql"):
        engine_kwargs["pool_recycle"] = 1800
    engine_kwargs.update(overrides)
    built = create_engine(database_url, **engine_kwargs)
    if is_sqlite:
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
    return built


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
Base = declarative_base()


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def session_scope(factory: sessionmaker = None) -> Iterator[Session]:
    """Session for work outside a request (worker ticks, CLI)."""
    db = (factory or SessionLocal)()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
