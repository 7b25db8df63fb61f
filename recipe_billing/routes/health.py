import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from recipe_billing.core.config import settings
from recipe_billing.core.timeutil import utcnow
from recipe_billing.db import get_db


logger = logging.getLogger(__name__)
router = APIRouter(prefix='/api', tags=['health'])


@router.get('/health')
def health(db: Session = Depends(get_db)):
    payload = {'status': 'OK', 'timestamp': utcnow().isoformat(), 'db_ok': True}
    try:
        db.execute(text('SELECT 1'))
    except SQLAlchemyError as exc:
        logger.error('Health probe failed: %s', exc)
        payload.update(status='degraded', db_ok=False)
        if settings.debug:
            payload['db_error'] = str(exc)
    payload['db_backend'] = db.get_bind().dialect.name
    return payload
