import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recipe_billing.core.security import hash_password, verify_password
from recipe_billing.db import get_db
from recipe_billing.deps import get_bearer_token, get_current_user
from recipe_billing.models import User
from recipe_billing.schemas import AuthResponse, LoginRequest, RegisterRequest, UserResponse
from recipe_billing.services.sessions import invalidate_session, issue_session_token


logger = logging.getLogger(__name__)
router = APIRouter(prefix='/api/auth', tags=['auth'])


def _auth_response(user: User, token: str) -> AuthResponse:
    return AuthResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        created_at=user.created_at,
        updated_at=user.updated_at,
        token=token,
    )


@router.post('/register', response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(payload: RegisterRequest, db: Session = Depends(get_db)):
    email = payload.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='User with this email already exists')

    user = User(name=payload.name, email=email, password_hash=hash_password(payload.password))
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='User with this email already exists')
    db.refresh(user)
    logger.info('Registered user %s', user.id)
    return _auth_response(user, issue_session_token(db, user))


@router.post('/login', response_model=AuthResponse)
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    user = db.query(User).filter(User.email == payload.email.lower()).first()
    if not user or not verify_password(payload.password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid email or password')
    return _auth_response(user, issue_session_token(db, user))


@router.post('/logout')
def logout(token: Optional[str] = Depends(get_bearer_token), db: Session = Depends(get_db)):
    if token:
        invalidate_session(db, token)
    return {'message': 'Logged out successfully'}


@router.get('/me', response_model=UserResponse)
def me(user: User = Depends(get_current_user)):
    return user
