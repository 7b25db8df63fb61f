import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from recipe_billing.core.security import create_access_token, hash_token, token_expiry
from recipe_billing.core.timeutil import utcnow
from recipe_billing.models import User, UserSession


logger = logging.getLogger(__name__)


def issue_session_token(db: Session, user: User) -> str:
    """Sign a JWT for the user and record it as an active session."""
    token = create_access_token(str(user.id))
    db.add(
        UserSession(
            user_id=user.id,
            token_hash=hash_token(token),
            expires_at=token_expiry(),
            is_active=True,
        )
    )
    db.commit()
    return token


def find_active_session(db: Session, user_id: int, token: str, now: Optional[datetime] = None) -> Optional[UserSession]:
    now = now or utcnow()
    return (
        db.query(UserSession)
        .filter(
            UserSession.user_id == user_id,
            UserSession.token_hash == hash_token(token),
            UserSession.is_active.is_(True),
            UserSession.expires_at > now,
        )
        .first()
    )


def touch_session(db: Session, session: UserSession) -> None:
    session.last_used_at = utcnow()
    db.commit()


def invalidate_session(db: Session, token: str) -> bool:
    entry = db.query(UserSession).filter(UserSession.token_hash == hash_token(token)).first()
    if not entry or not entry.is_active:
        return False
    entry.is_active = False
    db.commit()
    return True


def cleanup_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    expired = (
        db.query(UserSession)
        .filter(UserSession.is_active.is_(True), UserSession.expires_at <= now)
        .update({UserSession.is_active: False}, synchronize_session=False)
    )
    db.commit()
    if expired:
        logger.info('Deactivated %s expired sessions', expired)
    return expired
