"""Paid plan checkout: start a paylink redirect and reconcile it later.

A checkout session row is written when the provider hands back a redirect URL.
Nothing about the user's subscription changes at that point; the polling loop
(`reconcile_open_sessions`) reads every open session back from the provider
and, once the provider reports the payment, swaps the user onto the paid plan.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from recipe_billing.core.config import Settings, settings as default_settings
from recipe_billing.core.errors import BillingAPIError
from recipe_billing.core.timeutil import parse_iso8601, utcnow
from recipe_billing.models import CheckoutSession, SubscriptionPlan, User
from recipe_billing.services.checkout_client import CheckoutClient
from recipe_billing.services.plans import plan_from_billing_name
from recipe_billing.services.subscriptions import activate_subscription, record_payment


logger = logging.getLogger(__name__)

DEFAULT_PAID_PERIOD = timedelta(days=30)
TERMINAL_FAILURES = ('failure', 'timeout')


@dataclass
class ReconcileSummary:
    checked: int = 0
    activated: int = 0
    failed: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {'checked': self.checked, 'activated': self.activated, 'failed': self.failed, 'errors': list(self.errors)}


def paylink_for_plan(plan_slug: str, cfg: Optional[Settings] = None) -> str:
    cfg = cfg or default_settings
    paylinks = {'basic': cfg.paylink_basic_id, 'pro': cfg.paylink_pro_id}
    if plan_slug not in paylinks:
        raise ValueError(f'No paylink for plan {plan_slug!r}')
    return paylinks[plan_slug]


def start_checkout(
    db: Session,
    client: CheckoutClient,
    user: User,
    plan: SubscriptionPlan,
    cfg: Optional[Settings] = None,
) -> tuple[CheckoutSession, str]:
    """Open a pay session at the provider; returns the local row and the redirect URL."""
    cfg = cfg or default_settings
    data = client.create_pay_session(
        paylink_for_plan(plan.slug, cfg),
        user_id=str(user.id),
        success_url=cfg.checkout_success_url,
    )
    session = CheckoutSession(
        user_id=user.id,
        plan_id=plan.id,
        billing_checkout_id=str(data['id']),
        billing_order_id=str(data['orderId']) if data.get('orderId') is not None else None,
        status='open',
    )
    db.add(session)
    db.commit()
    db.refresh(session)
    logger.info('Checkout %s opened for user=%s plan=%s', session.billing_checkout_id, user.id, plan.slug)
    return session, data['url']


def _resolve_user_id(db: Session, data: Dict[str, Any], session: CheckoutSession) -> Optional[int]:
    metadata = data.get('metadata') or {}
    raw = metadata.get('uuid') if isinstance(metadata, dict) else None
    if raw is not None:
        try:
            candidate = int(raw)
        except (TypeError, ValueError):
            candidate = None
        if candidate is not None and db.get(User, candidate) is not None:
            return candidate
    if session.user_id is not None and db.get(User, session.user_id) is not None:
        return session.user_id
    return None


def _resolve_plan(db: Session, data: Dict[str, Any], session: CheckoutSession) -> Optional[SubscriptionPlan]:
    remote_plan = data.get('plan')
    if isinstance(remote_plan, dict):
        plan = plan_from_billing_name(db, remote_plan.get('name'))
        if plan is not None:
            return plan
    return session.plan


def _is_paid(data: Dict[str, Any]) -> bool:
    status = data.get('status')
    if status:
        return status == 'success'
    return bool(data.get('plan'))


def _claim_open_session(db: Session, session: CheckoutSession, new_status: str) -> bool:
    # only one poller may move a given row out of open
    claimed = (
        db.query(CheckoutSession)
        .filter(CheckoutSession.id == session.id, CheckoutSession.status == 'open')
        .update({CheckoutSession.status: new_status}, synchronize_session=False)
    )
    if claimed != 1:
        db.rollback()
        return False
    return True


def apply_checkout_result(db: Session, session: CheckoutSession, data: Dict[str, Any]) -> str:
    """Fold one provider payload into the local session.

    Returns the outcome: ``activated``, ``failure``/``timeout``, ``open``,
    ``unresolved`` (paid, but the user or plan could not be matched) or
    ``claimed`` (another worker already closed the session).
    """
    remote_status = data.get('status')
    if remote_status in TERMINAL_FAILURES:
        if not _claim_open_session(db, session, remote_status):
            return 'claimed'
        db.commit()
        return remote_status

    if not _is_paid(data):
        return 'open'

    plan = _resolve_plan(db, data, session)
    user_id = _resolve_user_id(db, data, session)
    if plan is None or user_id is None:
        logger.warning(
            'Checkout %s paid but unresolved (plan=%s user=%s)',
            session.billing_checkout_id, plan.slug if plan else None, user_id,
        )
        return 'unresolved'

    if not _claim_open_session(db, session, 'success'):
        logger.info('Checkout %s already closed elsewhere', session.billing_checkout_id)
        return 'claimed'

    start_date = parse_iso8601(data.get('startedAt')) or utcnow()
    end_date = parse_iso8601(data.get('endAt')) or start_date + DEFAULT_PAID_PERIOD
    sub = activate_subscription(db, user_id, plan, start_date=start_date, end_date=end_date, commit=False)
    record_payment(db, sub, plan, transaction_id=session.billing_order_id or session.billing_checkout_id, paid_at=start_date)
    db.commit()
    logger.info('Checkout %s activated plan=%s for user=%s', session.billing_checkout_id, plan.slug, user_id)
    return 'activated'


def reconcile_open_sessions(db: Session, client: CheckoutClient) -> ReconcileSummary:
    summary = ReconcileSummary()
    open_sessions = db.query(CheckoutSession).filter(CheckoutSession.status == 'open').order_by(CheckoutSession.id).all()
    if not open_sessions:
        return summary

    logger.info('Checking %s open checkout sessions', len(open_sessions))
    for session in open_sessions:
        summary.checked += 1
        if not session.billing_checkout_id:
            logger.warning('Checkout session %s has no billing checkout id', session.id)
            summary.errors.append(f'{session.id}: no billing checkout id')
            continue
        try:
            data = client.get_pay_session(session.billing_checkout_id)
        except BillingAPIError as exc:
            logger.error('Checkout session %s (%s) lookup failed: %s', session.id, session.billing_checkout_id, exc)
            summary.errors.append(f'{session.id}: {exc}')
            continue

        try:
            outcome = apply_checkout_result(db, session, data)
        except Exception as exc:
            db.rollback()
            logger.exception('Checkout session %s could not be applied', session.id)
            summary.errors.append(f'{session.id}: {exc}')
            continue

        if outcome == 'activated':
            summary.activated += 1
        elif outcome in TERMINAL_FAILURES:
            summary.failed += 1
    return summary

