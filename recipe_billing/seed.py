"""Seed plans and a demo account.

    python -m recipe_billing.seed           # plans + john@example.com / password
    python -m recipe_billing.seed --clear   # wipe all rows first
"""

import argparse
import json
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from recipe_billing.core.log_config import configure_logging
from recipe_billing.core.security import hash_password
from recipe_billing.db import Base, SessionLocal, engine
from recipe_billing.models import (
    BillingRecord,
    CheckoutSession,
    RecipeFavorite,
    SubscriptionPlan,
    User,
    UserSession,
    UserSubscription,
)
from recipe_billing.services.plans import get_plan_by_slug, seed_plans
from recipe_billing.services.subscriptions import activate_subscription, one_year_later, record_payment


logger = logging.getLogger(__name__)

DEMO_EMAIL = 'john@example.com'
DEMO_PASSWORD = 'password'

# children before parents
CLEAR_ORDER = (BillingRecord, CheckoutSession, RecipeFavorite, UserSession, UserSubscription, User, SubscriptionPlan)


def clear_database(db: Session) -> None:
    for model in CLEAR_ORDER:
        db.query(model).delete(synchronize_session=False)
    db.commit()
    logger.info('Database cleared')


def seed_database(db: Session) -> dict:
    plans = seed_plans(db)
    result = {'plans_inserted': len(plans), 'demo_user': None}

    if db.query(User).filter(User.email == DEMO_EMAIL).first():
        return result

    user = User(name='John Doe', email=DEMO_EMAIL, password_hash=hash_password(DEMO_PASSWORD))
    db.add(user)
    db.commit()
    db.refresh(user)
    result['demo_user'] = user.id

    basic = get_plan_by_slug(db, 'basic')
    if basic:
        start = datetime.now(timezone.utc)
        sub = activate_subscription(db, user.id, basic, start_date=start, end_date=one_year_later(start), commit=False)
        record_payment(db, sub, basic, payment_method='seed', paid_at=start)
        db.commit()
    logger.info('Seeded demo user %s', DEMO_EMAIL)
    return result


def main() -> int:
    parser = argparse.ArgumentParser(description='Seed the recipe billing database')
    parser.add_argument('--clear', action='store_true', help='delete all rows before seeding')
    args = parser.parse_args()

    configure_logging()
    Base.metadata.create_all(bind=engine)
    with SessionLocal() as db:
        if args.clear:
            clear_database(db)
        result = seed_database(db)
    print(json.dumps({'status': 'ok', **result}))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
