from datetime import datetime, timezone
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
import requests
from conftest import auth_headers, pay_session

from recipe_billing.core.errors import BillingAPIError, BillingNotConfiguredError
from recipe_billing.core.config import Settings
from recipe_billing.core.timeutil import ensure_utc
from recipe_billing.models import BillingRecord, CheckoutSession, User, UserSubscription
from recipe_billing.services.checkout import apply_checkout_result, reconcile_open_sessions
from recipe_billing.services.checkout_client import CheckoutClient
from recipe_billing.services.plans import get_plan_by_slug, plan_from_billing_name
from recipe_billing.services.subscriptions import activate_subscription


@pytest.fixture
def buyer(db):
    user = User(name="Buyer", email="buyer@example.com", password_hash="x")
    db.add(user)
    db.commit()
    return user


def open_checkout(db, user, slug="basic", checkout_id="cs_123", order_id="ord_123"):
    session = CheckoutSession(
        user_id=user.id,
        plan_id=get_plan_by_slug(db, slug).id,
        billing_checkout_id=checkout_id,
        billing_order_id=order_id,
        status="open",
    )
    db.add(session)
    db.commit()
    return session


def test_plan_from_billing_name(db):
    assert plan_from_billing_name(db, "Recipe Basic").name == "Basic"
    assert plan_from_billing_name(db, "recipe  pro").name == "Pro"
    assert plan_from_billing_name(db, "Monthly Pro").name == "Pro"
    assert plan_from_billing_name(db, "free").name == "Free"
    assert plan_from_billing_name(db, "Professional") is None
    assert plan_from_billing_name(db, None) is None


def test_paid_checkout_activates_subscription(db, buyer, checkout_client):
    open_checkout(db, buyer)
    checkout_client.get_pay_session.return_value = pay_session(
        plan_name="Recipe Basic",
        user_id=buyer.id,
        startedAt="2026-01-01T00:00:00Z",
        endAt="2026-02-01T00:00:00Z",
    )

    summary = reconcile_open_sessions(db, checkout_client)

    assert (summary.checked, summary.activated, summary.failed) == (1, 1, 0)
    checkout_client.get_pay_session.assert_called_once_with("cs_123")
    sub = db.query(UserSubscription).one()
    assert sub.status == "active"
    assert sub.plan.name == "Basic"
    assert ensure_utc(sub.start_date) == datetime(2026, 1, 1, tzinfo=timezone.utc)
    assert ensure_utc(sub.end_date) == datetime(2026, 2, 1, tzinfo=timezone.utc)
    record = db.query(BillingRecord).one()
    assert record.status == "paid"
    assert record.amount == Decimal("0.15")
    assert record.transaction_id == "ord_123"
    assert record.subscription_id == sub.id
    assert db.query(CheckoutSession).one().status == "success"


def test_paid_checkout_replaces_existing_subscription(db, buyer, checkout_client):
    activate_subscription(db, buyer.id, get_plan_by_slug(db, "free"))
    open_checkout(db, buyer, slug="pro")
    checkout_client.get_pay_session.return_value = pay_session(plan_name="Recipe Pro", user_id=buyer.id)

    reconcile_open_sessions(db, checkout_client)

    subs = {s.plan.name: s.status for s in db.query(UserSubscription).all()}
    assert subs == {"Free": "cancelled", "Pro": "active"}


def test_falls_back_to_local_plan_and_user(db, buyer, checkout_client):
    open_checkout(db, buyer, slug="pro")
    checkout_client.get_pay_session.return_value = pay_session(plan_name="Something Else")

    summary = reconcile_open_sessions(db, checkout_client)

    assert summary.activated == 1
    sub = db.query(UserSubscription).one()
    assert (sub.user_id, sub.plan.name) == (buyer.id, "Pro")


def test_open_checkout_stays_open(db, buyer, checkout_client):
    open_checkout(db, buyer)
    checkout_client.get_pay_session.return_value = pay_session(status="open")

    summary = reconcile_open_sessions(db, checkout_client)

    assert (summary.checked, summary.activated) == (1, 0)
    assert db.query(CheckoutSession).one().status == "open"
    assert db.query(UserSubscription).count() == 0


def test_plan_without_status_counts_as_paid(db, buyer, checkout_client):
    open_checkout(db, buyer)
    checkout_client.get_pay_session.return_value = pay_session(status=None, user_id=buyer.id)

    assert reconcile_open_sessions(db, checkout_client).activated == 1


@pytest.mark.parametrize("remote_status", ["failure", "timeout"])
def test_failed_checkout_is_closed(db, buyer, checkout_client, remote_status):
    open_checkout(db, buyer)
    checkout_client.get_pay_session.return_value = pay_session(status=remote_status)

    summary = reconcile_open_sessions(db, checkout_client)

    assert summary.failed == 1
    assert db.query(CheckoutSession).one().status == remote_status
    assert db.query(UserSubscription).count() == 0


def test_one_failing_lookup_does_not_stop_the_batch(db, buyer, checkout_client):
    open_checkout(db, buyer, checkout_id="cs_bad")
    open_checkout(db, buyer, checkout_id="cs_good", order_id="ord_good")
    db.add(CheckoutSession(status="open"))
    db.commit()

    def lookup(checkout_id):
        if checkout_id == "cs_bad":
            raise BillingAPIError("timed out")
        return pay_session(user_id=buyer.id)

    checkout_client.get_pay_session.side_effect = lookup

    summary = reconcile_open_sessions(db, checkout_client)

    assert summary.checked == 3
    assert summary.activated == 1
    assert len(summary.errors) == 2
    statuses = {s.billing_checkout_id: s.status for s in db.query(CheckoutSession).all()}
    assert statuses == {"cs_bad": "open", "cs_good": "success", None: "open"}


def test_unknown_user_leaves_checkout_open(db, checkout_client):
    db.add(CheckoutSession(billing_checkout_id="cs_123", status="open"))
    db.commit()
    checkout_client.get_pay_session.return_value = pay_session(user_id=9999)

    summary = reconcile_open_sessions(db, checkout_client)

    assert summary.activated == 0
    assert db.query(CheckoutSession).one().status == "open"


def test_no_open_sessions_skips_provider(db, checkout_client):
    summary = reconcile_open_sessions(db, checkout_client)
    assert summary.checked == 0
    checkout_client.get_pay_session.assert_not_called()


def test_manual_trigger_route(client, db, checkout_client):
    buyer = User(name="Buyer", email="buyer@example.com", password_hash="x")
    db.add(buyer)
    db.commit()
    open_checkout(db, buyer)
    checkout_client.get_pay_session.return_value = pay_session(user_id=buyer.id)

    resp = client.post("/api/test/checkout-sessions")

    assert resp.status_code == 200
    body = resp.json()
    assert body["message"] == "Checkout session check triggered manually"
    assert body["summary"]["activated"] == 1


def test_user_sees_plan_after_reconcile(client, db, user_token, checkout_client):
    headers = auth_headers(user_token)
    client.post("/api/subscription/subscribe", json={"plan": "basic"}, headers=headers)
    user_id = db.query(User).one().id
    checkout_client.get_pay_session.return_value = pay_session(user_id=user_id)

    client.post("/api/test/checkout-sessions")

    plan = client.get("/api/user/plan", headers=headers).json()
    assert plan["plan"] == "basic"
    assert plan["status"] == "active"


def _response(status_code, body=None):
    resp = MagicMock(spec=requests.Response)
    resp.status_code = status_code
    resp.text = "" if body is None else str(body)
    if body is None:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = body
    return resp


def test_client_creates_pay_session():
    http = MagicMock()
    http.request.return_value = _response(201, {"data": {"id": "cs_1", "orderId": "o_1", "url": "https://pay/cs_1", "status": "open"}})
    client = CheckoutClient("https://billing.example.com/", "key-1", timeout=3, session=http)

    data = client.create_pay_session("paylink-basic", "42", "https://google.com")

    assert data["id"] == "cs_1"
    method, url = http.request.call_args.args
    kwargs = http.request.call_args.kwargs
    assert (method, url) == ("POST", "https://billing.example.com/api/v1/paysession/create")
    assert kwargs["headers"]["x-api-key"] == "key-1"
    assert kwargs["timeout"] == 3
    assert kwargs["json"] == {
        "paylinkId": "paylink-basic",
        "mode": "paylink",
        "metadata": {"uuid": "42"},
        "successUrl": "https://google.com",
    }


def test_client_raises_on_unexpected_status():
    http = MagicMock()
    http.request.return_value = _response(400, {"error": "bad paylink"})
    client = CheckoutClient("https://billing.example.com", "key-1", session=http)

    with pytest.raises(BillingAPIError) as info:
        client.create_pay_session("paylink-basic", "42", "https://google.com")
    assert info.value.status_code == 400


def test_client_wraps_timeouts():
    http = MagicMock()
    http.request.side_effect = requests.Timeout("slow")
    client = CheckoutClient("https://billing.example.com", "key-1", session=http)

    with pytest.raises(BillingAPIError):
        client.get_pay_session("cs_1")


def test_client_rejects_payload_without_data():
    http = MagicMock()
    http.request.return_value = _response(200, {"ok": True})
    client = CheckoutClient("https://billing.example.com", "key-1", session=http)

    with pytest.raises(BillingAPIError):
        client.get_pay_session("cs_1")


def test_client_requires_configuration():
    with pytest.raises(BillingNotConfiguredError):
        CheckoutClient.from_settings(Settings(billing_api_key="k", billing_base_url="https://b"))
    configured = Settings(
        billing_api_key="k", billing_base_url="https://b", paylink_basic_id="p1", paylink_pro_id="p2"
    )
    assert CheckoutClient.from_settings(configured).base_url == "https://b"


def test_stale_session_cannot_activate_twice(db, session_factory, buyer, checkout_client):
    open_checkout(db, buyer)
    stale = db.query(CheckoutSession).one()
    checkout_client.get_pay_session.return_value = pay_session(user_id=buyer.id)

    with session_factory() as other:
        assert reconcile_open_sessions(other, checkout_client).activated == 1

    assert apply_checkout_result(db, stale, pay_session(user_id=buyer.id)) == "claimed"
    assert db.query(UserSubscription).count() == 1
    assert db.query(BillingRecord).count() == 1


def test_closed_session_ignores_late_failure(db, buyer):
    session = open_checkout(db, buyer)
    db.query(CheckoutSession).update({CheckoutSession.status: "success"})
    db.commit()

    assert apply_checkout_result(db, session, pay_session(status="failure")) == "claimed"
    assert db.query(CheckoutSession).one().status == "success"
