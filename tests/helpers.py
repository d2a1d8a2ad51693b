"""
Stripe event payload builders shared by the test modules.
"""
import json

PRICE_BASIC = "price_basic_test"
PRICE_PREMIUM = "price_premium_test"
PRICE_ELITE = "price_elite_test"

WEBHOOK_SECRET = "whsec_test_secret"

PERIOD_START = 1767225600  # 2026-01-01T00:00:00Z
PERIOD_END = 1769904000    # 2026-02-01T00:00:00Z


def subscription_payload(
    event_type="customer.subscription.created",
    customer="cus_U1",
    price=PRICE_PREMIUM,
    status="active",
    subscription_id="sub_1",
    event_id="evt_sub_1",
    created=PERIOD_START,
    current_period_start=PERIOD_START,
    current_period_end=PERIOD_END,
    cancel_at_period_end=False,
    trial_end=None,
):
    items = []
    if price is not None:
        items.append({"id": "si_1", "price": {"id": price}})
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "livemode": False,
        "data": {
            "object": {
                "id": subscription_id,
                "object": "subscription",
                "customer": customer,
                "status": status,
                "items": {"object": "list", "data": items},
                "current_period_start": current_period_start,
                "current_period_end": current_period_end,
                "cancel_at_period_end": cancel_at_period_end,
                "trial_end": trial_end,
            }
        },
    }


def invoice_payload(
    event_type="invoice.payment_succeeded",
    customer="cus_U1",
    invoice_id="in_1",
    subscription="sub_1",
    event_id="evt_inv_1",
    created=PERIOD_END,
    amount=1999,
    currency="usd",
    attempt_count=1,
    paid_at=PERIOD_END,
):
    return {
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": created,
        "data": {
            "object": {
                "id": invoice_id,
                "object": "invoice",
                "customer": customer,
                "subscription": subscription,
                "amount_paid": amount if event_type == "invoice.payment_succeeded" else 0,
                "amount_due": amount,
                "currency": currency,
                "attempt_count": attempt_count,
                "status_transitions": {"paid_at": paid_at},
            }
        },
    }


def customer_payload(customer="cus_new", email="new@example.com", event_id="evt_cus_1"):
    return {
        "id": event_id,
        "object": "event",
        "type": "customer.created",
        "created": PERIOD_START,
        "data": {"object": {"id": customer, "object": "customer", "email": email}},
    }


def to_bytes(payload) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")
