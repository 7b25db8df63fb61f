import hashlib
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from recipe_billing.core.config import settings


pwd_context = CryptContext(schemes=['bcrypt'], deprecated='auto')


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(password: str, hashed_password: str) -> bool:
    try:
        return pwd_context.verify(password, hashed_password)
    except ValueError:
        return False


def token_expiry(now: Optional[datetime] = None, expires_minutes: Optional[int] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now + timedelta(minutes=expires_minutes or settings.jwt_expire_minutes)


def create_access_token(subject: str, expires_minutes: Optional[int] = None) -> str:
    expire = token_expiry(expires_minutes=expires_minutes)
    # jti keeps tokens issued in the same second unique per session row
    payload = {'sub': subject, 'exp': expire, 'typ': 'access', 'jti': secrets.token_urlsafe(16)}
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token_claims(token: str) -> Optional[dict]:
    try:
        return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
    except JWTError:
        return None


def decode_token(token: str) -> Optional[int]:
    """User id carried by a valid access token, else None."""
    payload = decode_token_claims(token)
    if not payload or payload.get('typ') != 'access':
        return None
    subject = str(payload.get('sub') or '')
    return int(subject) if subject.isdigit() else None


def hash_token(raw_token: str) -> str:
    return hashlib.sha256(raw_token.encode('utf-8')).hexdigest()
