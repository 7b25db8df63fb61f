from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from recipe_billing.core.config import settings
from recipe_billing.core.errors import BillingNotConfiguredError
from recipe_billing.core.security import decode_token
from recipe_billing.db import get_db
from recipe_billing.models import User
from recipe_billing.services.checkout_client import CheckoutClient
from recipe_billing.services.sessions import find_active_session, touch_session


bearer_scheme = HTTPBearer(auto_error=False)


def get_bearer_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)) -> Optional[str]:
    if not credentials or not credentials.credentials:
        return None
    return credentials.credentials


def get_current_user(
    token: Optional[str] = Depends(get_bearer_token),
    db: Session = Depends(get_db),
) -> User:
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Access token required')
    user_id = decode_token(token)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Invalid or expired token')

    session = find_active_session(db, user_id, token)
    if not session:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid or expired session')

    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='User not found')

    touch_session(db, session)
    return user


def get_checkout_client() -> Optional[CheckoutClient]:
    """Checkout provider client, or None while billing settings are missing."""
    try:
        return CheckoutClient.from_settings(settings)
    except BillingNotConfiguredError:
        return None
