"""Manual trigger for the checkout reconciliation pass (non-production only)."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from recipe_billing.core.timeutil import utcnow
from recipe_billing.db import get_db
from recipe_billing.deps import get_checkout_client
from recipe_billing.services.checkout import reconcile_open_sessions
from recipe_billing.services.checkout_client import CheckoutClient


logger = logging.getLogger(__name__)
router = APIRouter(prefix='/api/test', tags=['checkout'])


@router.post('/checkout-sessions')
def trigger_checkout_check(
    db: Session = Depends(get_db),
    client: Optional[CheckoutClient] = Depends(get_checkout_client),
):
    if client is None:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail='Billing is not configured')
    logger.info('Manual trigger: checking checkout sessions')
    summary = reconcile_open_sessions(db, client)
    return {
        'message': 'Checkout session check triggered manually',
        'timestamp': utcnow().isoformat(),
        'summary': summary.as_dict(),
    }
