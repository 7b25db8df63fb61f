import os

# Settings are read at import time; keep the suite off the real database and worker.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ["RUN_BACKGROUND_JOBS"] = "false"
os.environ.setdefault("ENVIRONMENT", "test")

from typing import Any, Dict, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from recipe_billing.db import Base, build_engine, get_db
from recipe_billing.deps import get_checkout_client
from recipe_billing.main import app
from recipe_billing.services.checkout_client import CheckoutClient
from recipe_billing.services.plans import seed_plans


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, future=True)
    with factory() as db:
        seed_plans(db)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    with session_factory() as session:
        yield session


@pytest.fixture
def checkout_client():
    client = MagicMock(spec=CheckoutClient)
    client.create_pay_session.return_value = {
        "id": "cs_123",
        "orderId": "ord_123",
        "status": "open",
        "url": "https://pay.example.com/cs_123",
    }
    return client


@pytest.fixture
def client(session_factory, checkout_client):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_checkout_client] = lambda: checkout_client
    app.state.rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


def register(client: TestClient, email: str = "jane@example.com", password: str = "secret123", name: str = "Jane") -> Dict[str, Any]:
    resp = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()


def auth_headers(token: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_token(client) -> str:
    return register(client)["token"]


def pay_session(
    status: Optional[str] = "success",
    plan_name: Optional[str] = "Recipe Basic",
    user_id: Any = None,
    **extra: Any,
) -> Dict[str, Any]:
    data: Dict[str, Any] = {"id": "cs_123", "orderId": "ord_123"}
    if status is not None:
        data["status"] = status
    if plan_name is not None:
        data["plan"] = {"name": plan_name}
    if user_id is not None:
        data["metadata"] = {"uuid": str(user_id)}
    data.update(extra)
    return data
