"""
End-to-end tests for the Stripe webhook endpoint.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError

from app.main import app
from app.api.routes import billing_webhook
from app.core.security import compute_signature_header
from app.db.models.audit_log import AuditLog
from app.db.models.subscription import Subscription
from app.db.session import get_db
from app.schemas.subscription import Plan, SubscriptionStatus
from app.services.billing_service import get_subscription_state
from tests.helpers import (
    PRICE_ELITE,
    PRICE_PREMIUM,
    WEBHOOK_SECRET,
    customer_payload,
    invoice_payload,
    subscription_payload,
    to_bytes,
)

WEBHOOK_URL = "/api/webhooks/stripe"


@pytest.fixture
def ack_on_failure():
    return {"value": False}


@pytest.fixture
def client(db, price_table, ack_on_failure):
    """Test client wired to the test database, secret and price table."""
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[billing_webhook.get_webhook_secret] = lambda: WEBHOOK_SECRET
    app.dependency_overrides[billing_webhook.get_price_table] = lambda: price_table
    app.dependency_overrides[billing_webhook.get_ack_on_persistence_failure] = lambda: ack_on_failure["value"]
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def post_event(client, payload, secret=WEBHOOK_SECRET, signature=None):
    body = to_bytes(payload) if isinstance(payload, dict) else payload
    headers = {"Content-Type": "application/json"}
    if signature is None and secret is not None:
        signature = compute_signature_header(body, secret)
    if signature is not None:
        headers["Stripe-Signature"] = signature
    return client.post(WEBHOOK_URL, content=body, headers=headers)


def audit_actions(db):
    return [entry.action for entry in db.query(AuditLog).order_by(AuditLog.id).all()]


# ----------------------------------------------------------------------------
# Scenarios
# ----------------------------------------------------------------------------

def test_subscription_created_applies_premium_plan(client, db, linked_user):
    response = post_event(client, subscription_payload(price=PRICE_PREMIUM))

    assert response.status_code == 200
    assert response.json() == {"received": True, "status": "applied", "event_id": "evt_sub_1"}

    state = get_subscription_state(db, linked_user.id)
    assert state.plan == Plan.PREMIUM
    assert state.status == SubscriptionStatus.ACTIVE
    assert state.entitlements.contact_view_quota == 100
    assert audit_actions(db) == ["subscription_created"]


def test_payment_failed_marks_past_due(client, db, linked_user):
    post_event(client, subscription_payload(price=PRICE_PREMIUM))

    response = post_event(client, invoice_payload(event_type="invoice.payment_failed", event_id="evt_inv_fail"))

    assert response.status_code == 200
    assert response.json()["status"] == "applied"
    state = get_subscription_state(db, linked_user.id)
    assert state.status == SubscriptionStatus.PAST_DUE
    assert state.plan == Plan.PREMIUM
    assert state.entitlements.contact_view_quota == 100

    entry = db.query(AuditLog).order_by(AuditLog.id.desc()).first()
    assert entry.action == "payment_failed"
    assert entry.target_id == "in_1"
    assert entry.event_metadata["previous_status"] == "active"
    assert entry.event_metadata["status"] == "past_due"


def test_payment_succeeded_reactivates_past_due(client, db, linked_user):
    post_event(client, subscription_payload(price=PRICE_PREMIUM))
    post_event(client, invoice_payload(event_type="invoice.payment_failed", event_id="evt_inv_fail"))
    before = get_subscription_state(db, linked_user.id)

    response = post_event(client, invoice_payload(event_id="evt_inv_ok", paid_at=1770000000))

    assert response.status_code == 200
    state = get_subscription_state(db, linked_user.id)
    assert state.status == SubscriptionStatus.ACTIVE
    assert state.plan == Plan.PREMIUM
    assert state.last_payment_at != before.last_payment_at
    assert int(state.last_payment_at.timestamp()) == 1770000000


def test_subscription_deleted_downgrades_to_free(client, db, linked_user):
    post_event(client, subscription_payload(price=PRICE_ELITE))

    response = post_event(
        client,
        subscription_payload(event_type="customer.subscription.deleted", price=PRICE_ELITE, status="canceled", event_id="evt_del"),
    )

    assert response.status_code == 200
    state = get_subscription_state(db, linked_user.id)
    assert state.plan == Plan.FREE
    assert state.status == SubscriptionStatus.INACTIVE
    assert state.entitlements.contact_view_quota == 5
    assert audit_actions(db)[-1] == "subscription_cancelled"


def test_unlinked_customer_is_acknowledged_as_orphan(client, db, linked_user, caplog):
    response = post_event(client, subscription_payload(customer="cus_unknown"))

    assert response.status_code == 200
    assert response.json()["status"] == "orphaned"
    assert db.query(Subscription).count() == 0

    entries = db.query(AuditLog).all()
    assert len(entries) == 1
    assert entries[0].action == "orphaned_event"
    assert entries[0].target_id == "cus_unknown"
    assert "no user linked to customer_id=cus_unknown" in caplog.text


# ----------------------------------------------------------------------------
# Rejections
# ----------------------------------------------------------------------------

def test_missing_signature_is_rejected(client, db, linked_user):
    response = post_event(client, subscription_payload(), secret=None)

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_signature"
    assert db.query(Subscription).count() == 0
    assert db.query(AuditLog).count() == 0


def test_wrong_secret_is_rejected(client, db, linked_user):
    response = post_event(client, subscription_payload(), secret="whsec_other")

    assert response.status_code == 400
    assert response.json()["error"] == "invalid_signature"
    assert db.query(Subscription).count() == 0


def test_tampered_body_is_rejected(client, db, linked_user):
    body = to_bytes(subscription_payload(price=PRICE_PREMIUM))
    signature = compute_signature_header(body, WEBHOOK_SECRET)
    tampered = body.replace(PRICE_PREMIUM.encode(), PRICE_ELITE.encode())

    response = post_event(client, tampered, signature=signature)

    assert response.status_code == 400
    assert db.query(Subscription).count() == 0
    assert db.query(AuditLog).count() == 0


def test_malformed_body_is_rejected(client, db):
    response = post_event(client, b'{"id": "evt_1", "type": ')

    assert response.status_code == 400
    assert response.json()["error"] == "malformed_event"


def test_subscription_without_customer_is_rejected(client, db):
    payload = subscription_payload()
    del payload["data"]["object"]["customer"]

    response = post_event(client, payload)

    assert response.status_code == 400
    assert response.json()["error"] == "malformed_event"


# ----------------------------------------------------------------------------
# Acknowledged without changes
# ----------------------------------------------------------------------------

def test_unrecognized_event_is_ignored(client, db, linked_user):
    payload = {"id": "evt_x", "type": "charge.refunded", "created": 1767225600, "data": {"object": {"id": "ch_1"}}}

    response = post_event(client, payload)

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert db.query(Subscription).count() == 0
    assert db.query(AuditLog).count() == 0


def test_customer_created_is_informational(client, db):
    response = post_event(client, customer_payload())

    assert response.status_code == 200
    assert response.json()["status"] == "ignored"
    assert db.query(Subscription).count() == 0


def test_replayed_event_is_idempotent(client, db, linked_user):
    payload = subscription_payload(price=PRICE_PREMIUM)

    first = post_event(client, payload)
    after_first = get_subscription_state(db, linked_user.id)
    second = post_event(client, payload)
    after_second = get_subscription_state(db, linked_user.id)

    assert first.json()["status"] == "applied"
    assert second.status_code == 200
    assert second.json()["status"] == "unchanged"
    assert after_second == after_first
    assert audit_actions(db) == ["subscription_created"]


def test_payment_without_record_changes_nothing(client, db, linked_user):
    response = post_event(client, invoice_payload())

    assert response.status_code == 200
    assert response.json()["status"] == "unchanged"
    assert db.query(Subscription).count() == 0


# ----------------------------------------------------------------------------
# Failures
# ----------------------------------------------------------------------------

def _break_commit(db, monkeypatch):
    def broken_commit():
        raise OperationalError("UPDATE subscriptions", {}, Exception("database is locked"))
    monkeypatch.setattr(db, "commit", broken_commit)


def test_persistence_failure_returns_500(client, db, linked_user, monkeypatch):
    _break_commit(db, monkeypatch)

    response = post_event(client, subscription_payload())

    assert response.status_code == 500
    assert response.json()["error"] == "webhook_handler_failed"
    monkeypatch.undo()
    assert db.query(Subscription).count() == 0


def test_persistence_failure_acknowledged_when_configured(client, db, linked_user, monkeypatch, ack_on_failure):
    ack_on_failure["value"] = True
    _break_commit(db, monkeypatch)

    response = post_event(client, subscription_payload())

    assert response.status_code == 200
    assert response.json()["status"] == "failed"


def test_audit_failure_does_not_block_transition(client, db, linked_user, monkeypatch):
    def broken_audit_log(**kwargs):
        raise RuntimeError("audit store unavailable")

    monkeypatch.setattr("app.services.audit_service.AuditLog", broken_audit_log)

    response = post_event(client, subscription_payload(price=PRICE_PREMIUM))

    assert response.status_code == 200
    assert response.json()["status"] == "applied"
    assert get_subscription_state(db, linked_user.id).plan == Plan.PREMIUM
    monkeypatch.undo()
    assert db.query(AuditLog).count() == 0


# ----------------------------------------------------------------------------
# Health
# ----------------------------------------------------------------------------

def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["database"] == "connected"
    assert response.json()["webhook_secret"] == "configured"
    assert response.json()["configured_prices"] == 3


def test_health_degraded_without_secret(client):
    app.dependency_overrides[billing_webhook.get_webhook_secret] = lambda: None

    response = client.get("/health")

    assert response.json()["status"] == "degraded"
    assert response.json()["webhook_secret"] == "missing"


# ----------------------------------------------------------------------------
# Response schemas
# ----------------------------------------------------------------------------

def test_openapi_documents_webhook_responses():
    responses = app.openapi()["paths"][WEBHOOK_URL]["post"]["responses"]

    assert responses["200"]["content"]["application/json"]["schema"]["$ref"].endswith("/WebhookAckResponse")
    assert responses["400"]["content"]["application/json"]["schema"]["$ref"].endswith("/WebhookErrorResponse")
    assert responses["500"]["content"]["application/json"]["schema"]["$ref"].endswith("/WebhookErrorResponse")


def test_error_bodies_follow_error_schema(client, db):
    response = post_event(client, b"\xff\xfe{}")

    assert response.status_code == 400
    assert response.json() == {"error": "malformed_event", "detail": "Body is not valid UTF-8"}
