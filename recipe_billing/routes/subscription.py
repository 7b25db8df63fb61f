import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from recipe_billing.core.config import settings
from recipe_billing.core.errors import BillingAPIError
from recipe_billing.core.timeutil import ensure_utc
from recipe_billing.db import get_db
from recipe_billing.deps import get_checkout_client, get_current_user
from recipe_billing.models import User
from recipe_billing.schemas import SubscribeRequest
from recipe_billing.services.checkout import start_checkout
from recipe_billing.services.checkout_client import CheckoutClient
from recipe_billing.services.plans import PLAN_SLUGS, get_plan_by_slug, list_active_plans, plan_payload
from recipe_billing.services.subscriptions import (
    cancel_subscription,
    get_active_subscription,
    subscribe_free,
    subscription_plan_slug,
)


logger = logging.getLogger(__name__)
router = APIRouter(prefix='/api/subscription', tags=['subscription'], dependencies=[Depends(get_current_user)])


@router.get('/plans')
def plans(db: Session = Depends(get_db)):
    return [plan_payload(plan) for plan in list_active_plans(db)]


@router.post('/subscribe')
def subscribe(
    payload: SubscribeRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
    client: Optional[CheckoutClient] = Depends(get_checkout_client),
):
    slug = payload.plan
    if slug not in PLAN_SLUGS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid plan selected')

    plan = get_plan_by_slug(db, slug)
    if not plan:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Plan not found')

    if slug == 'free':
        subscribe_free(db, user.id, plan)
        return {'message': 'Subscription updated successfully', 'plan': plan.slug, 'status': 'active'}

    if client is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='Billing is not configured')
    try:
        _session, redirect_url = start_checkout(db, client, user, plan, settings)
    except BillingAPIError as exc:
        logger.error('Checkout for user=%s plan=%s failed: %s', user.id, slug, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail='Checkout provider unavailable')
    return JSONResponse(status_code=status.HTTP_201_CREATED, content={'redirectUrl': redirect_url})


@router.post('/cancel')
def cancel(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    sub = cancel_subscription(db, user.id)
    if not sub:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No active subscription found')
    return {
        'message': 'Subscription cancelled successfully',
        'plan': 'cancelled',
        'endDate': ensure_utc(sub.end_date),
        'status': 'cancelled',
    }


@router.get('/status')
def subscription_status(db: Session = Depends(get_db), user: User = Depends(get_current_user)):
    sub = get_active_subscription(db, user.id)
    if not sub:
        return {'hasSubscription': False, 'plan': None, 'status': 'none'}
    return {
        'hasSubscription': True,
        'plan': subscription_plan_slug(sub),
        'status': sub.status,
        'startDate': ensure_utc(sub.start_date),
        'endDate': ensure_utc(sub.end_date),
    }
