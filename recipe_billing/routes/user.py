from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.orm import Session

from recipe_billing.core.timeutil import ensure_utc
from recipe_billing.db import get_db
from recipe_billing.deps import get_current_user
from recipe_billing.models import User
from recipe_billing.schemas import FavoriteCreateRequest, FavoriteResponse, UserResponse
from recipe_billing.services.recipes import add_favorite, list_favorites, remove_favorite
from recipe_billing.services.subscriptions import get_active_subscription, list_billing_history, subscription_plan_slug


router = APIRouter(prefix='/api/user', tags=['user'])


@router.get('/plan')
def current_plan(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    sub = get_active_subscription(db, user.id)
    if not sub:
        return {'plan': 'none', 'startDate': None, 'endDate': None, 'status': 'inactive'}
    return {
        'plan': subscription_plan_slug(sub),
        'startDate': ensure_utc(sub.start_date),
        'endDate': ensure_utc(sub.end_date),
        'status': sub.status,
    }


@router.get('/billing')
def billing_history(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return [
        {
            'id': record.id,
            'date': ensure_utc(record.created_at),
            'amount': float(record.amount),
            'plan': subscription_plan_slug(record.subscription) if record.subscription else 'subscription',
            'status': record.status,
        }
        for record in list_billing_history(db, user.id)
    ]


@router.get('/profile', response_model=UserResponse)
def profile(user: User = Depends(get_current_user)):
    return user


@router.get('/favorites', response_model=list[FavoriteResponse])
def favorites(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    return list_favorites(db, user.id)


@router.post('/favorites', response_model=FavoriteResponse, status_code=status.HTTP_201_CREATED)
def create_favorite(payload: FavoriteCreateRequest, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    favorite = add_favorite(db, user.id, payload.recipe_id, payload.recipe_name, payload.recipe_image)
    if favorite is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail='Recipe already in favorites')
    return favorite


@router.delete('/favorites/{recipe_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_favorite(recipe_id: str, db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    if not remove_favorite(db, user.id, recipe_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Favorite not found')
    return Response(status_code=status.HTTP_204_NO_CONTENT)
