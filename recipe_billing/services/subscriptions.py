from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from recipe_billing.core.timeutil import utcnow
from recipe_billing.models import BillingRecord, SubscriptionPlan, UserSubscription


FREE_PLAN_DURATION = timedelta(days=365)


def one_year_later(value: datetime) -> datetime:
    try:
        return value.replace(year=value.year + 1)
    except ValueError:
        # Feb 29
        return value + FREE_PLAN_DURATION


def get_active_subscription(db: Session, user_id: int) -> Optional[UserSubscription]:
    return (
        db.query(UserSubscription)
        .filter(UserSubscription.user_id == user_id, UserSubscription.status == 'active')
        .order_by(UserSubscription.start_date.desc())
        .first()
    )


def cancel_active_subscriptions(db: Session, user_id: int, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    active = (
        db.query(UserSubscription)
        .filter(UserSubscription.user_id == user_id, UserSubscription.status == 'active')
        .all()
    )
    for sub in active:
        sub.status = 'cancelled'
        sub.end_date = now
        sub.updated_at = now
    return len(active)


def activate_subscription(
    db: Session,
    user_id: int,
    plan: SubscriptionPlan,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    commit: bool = True,
) -> UserSubscription:
    """Replace whatever the user has with an active subscription to `plan`."""
    now = utcnow()
    start_date = start_date or now
    cancel_active_subscriptions(db, user_id, now=now)
    sub = UserSubscription(
        user_id=user_id,
        plan_id=plan.id,
        status='active',
        start_date=start_date,
        end_date=end_date,
        auto_renew=True,
    )
    db.add(sub)
    if commit:
        db.commit()
        db.refresh(sub)
    else:
        db.flush()
    return sub


def subscribe_free(db: Session, user_id: int, plan: SubscriptionPlan) -> UserSubscription:
    now = utcnow()
    return activate_subscription(db, user_id, plan, start_date=now, end_date=one_year_later(now))


def cancel_subscription(db: Session, user_id: int) -> Optional[UserSubscription]:
    sub = get_active_subscription(db, user_id)
    if not sub:
        return None
    now = utcnow()
    sub.status = 'cancelled'
    sub.end_date = now
    sub.updated_at = now
    db.commit()
    db.refresh(sub)
    return sub


def record_payment(
    db: Session,
    sub: UserSubscription,
    plan: SubscriptionPlan,
    transaction_id: Optional[str] = None,
    payment_method: Optional[str] = 'paylink',
    paid_at: Optional[datetime] = None,
) -> BillingRecord:
    record = BillingRecord(
        user_id=sub.user_id,
        subscription_id=sub.id,
        amount=plan.price,
        currency='USD',
        status='paid',
        payment_method=payment_method,
        transaction_id=transaction_id,
        description=f'{plan.name} plan subscription',
        paid_at=paid_at or utcnow(),
    )
    db.add(record)
    return record


def list_billing_history(db: Session, user_id: int) -> list[BillingRecord]:
    return (
        db.query(BillingRecord)
        .filter(BillingRecord.user_id == user_id)
        .order_by(BillingRecord.created_at.desc(), BillingRecord.id.desc())
        .all()
    )


def subscription_plan_slug(sub: Optional[UserSubscription]) -> str:
    if sub is None or sub.plan is None:
        return 'unknown'
    return sub.plan.slug
