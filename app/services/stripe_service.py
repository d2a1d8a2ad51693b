"""
Stripe webhook parsing.

Turns verified webhook bytes into one of the typed events in
app.schemas.billing. Anything that doesn't fit a known shape is rejected
here, so handlers never read payload fields optimistically.
"""
import json
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import ValidationError

from app.core.errors import MalformedEvent
from app.core.security import verify_signature
from app.schemas.billing import (
    BillingEvent,
    CustomerEvent,
    EventType,
    InvoiceEvent,
    STRIPE_EVENT_TYPES,
    StripeCustomerObject,
    StripeEventEnvelope,
    StripeInvoiceObject,
    StripeSubscriptionObject,
    SubscriptionEvent,
    UnrecognizedEvent,
)

logger = logging.getLogger(__name__)


def _to_datetime(timestamp: Optional[int]) -> Optional[datetime]:
    if timestamp is None:
        return None
    return datetime.fromtimestamp(timestamp, tz=timezone.utc)


def _subscription_event(envelope: StripeEventEnvelope, event_type: EventType) -> SubscriptionEvent:
    sub = StripeSubscriptionObject.model_validate(envelope.data.object)

    first_item = sub.items.data[0] if sub.items.data else None
    price_id = first_item.price.id if first_item and first_item.price else None

    # Newer API versions report billing periods on the subscription item
    period_start = sub.current_period_start
    period_end = sub.current_period_end
    if first_item:
        period_start = period_start if period_start is not None else first_item.current_period_start
        period_end = period_end if period_end is not None else first_item.current_period_end

    return SubscriptionEvent(
        type=event_type,
        event_id=envelope.id,
        external_type=envelope.type,
        created=_to_datetime(envelope.created),
        customer_id=sub.customer,
        subscription_id=sub.id,
        price_id=price_id,
        external_status=sub.status,
        current_period_start=_to_datetime(period_start),
        current_period_end=_to_datetime(period_end),
        cancel_at_period_end=sub.cancel_at_period_end,
        trial_end=_to_datetime(sub.trial_end),
    )


def _invoice_event(envelope: StripeEventEnvelope, event_type: EventType) -> InvoiceEvent:
    invoice = StripeInvoiceObject.model_validate(envelope.data.object)

    if event_type == EventType.PAYMENT_SUCCEEDED:
        amount = invoice.amount_paid
    else:
        amount = invoice.amount_due

    paid_at = invoice.status_transitions.paid_at if invoice.status_transitions else None

    return InvoiceEvent(
        type=event_type,
        event_id=envelope.id,
        external_type=envelope.type,
        created=_to_datetime(envelope.created),
        customer_id=invoice.customer,
        invoice_id=invoice.id,
        subscription_id=invoice.subscription,
        amount=amount,
        currency=invoice.currency,
        attempt_count=invoice.attempt_count,
        paid_at=_to_datetime(paid_at),
    )


def _customer_event(envelope: StripeEventEnvelope, event_type: EventType) -> CustomerEvent:
    customer = StripeCustomerObject.model_validate(envelope.data.object)
    return CustomerEvent(
        type=event_type,
        event_id=envelope.id,
        external_type=envelope.type,
        created=_to_datetime(envelope.created),
        customer_id=customer.id,
        email=customer.email,
    )


_BUILDERS = {
    EventType.SUBSCRIPTION_CREATED: _subscription_event,
    EventType.SUBSCRIPTION_UPDATED: _subscription_event,
    EventType.SUBSCRIPTION_DELETED: _subscription_event,
    EventType.PAYMENT_SUCCEEDED: _invoice_event,
    EventType.PAYMENT_FAILED: _invoice_event,
    EventType.CUSTOMER_CREATED: _customer_event,
}


def classify_event_type(stripe_type: str) -> EventType:
    """Map a Stripe event name onto the internal event type."""
    return STRIPE_EVENT_TYPES.get(stripe_type, EventType.UNRECOGNIZED)


def parse_event(payload: bytes) -> BillingEvent:
    """
    Parse verified webhook bytes into a typed event.

    Args:
        payload: Raw request body bytes (already signature-checked)

    Returns:
        SubscriptionEvent, InvoiceEvent, CustomerEvent or UnrecognizedEvent

    Raises:
        MalformedEvent: If the body is not JSON, or a known event type has the wrong shape
    """
    try:
        raw = json.loads(payload)
    except (ValueError, TypeError) as e:
        logger.error(f"Invalid webhook payload: {e}")
        raise MalformedEvent(f"Invalid JSON payload: {e}") from e

    if not isinstance(raw, dict):
        raise MalformedEvent("Webhook payload must be a JSON object")

    try:
        envelope = StripeEventEnvelope.model_validate(raw)
    except ValidationError as e:
        logger.error(f"Invalid webhook envelope: {e.error_count()} validation error(s)")
        raise MalformedEvent("Invalid event envelope") from e

    event_type = classify_event_type(envelope.type)

    if event_type == EventType.UNRECOGNIZED:
        return UnrecognizedEvent(
            type=EventType.UNRECOGNIZED,
            event_id=envelope.id,
            external_type=envelope.type,
            created=_to_datetime(envelope.created),
        )

    try:
        event = _BUILDERS[event_type](envelope, event_type)
    except ValidationError as e:
        logger.error(f"Malformed {envelope.type} event id={envelope.id}: {e.error_count()} validation error(s)")
        raise MalformedEvent(f"Malformed {envelope.type} object", event_id=envelope.id) from e

    return event


def verify_webhook(request_body: bytes, signature: Optional[str], secret: Optional[str], tolerance: int = 300) -> BillingEvent:
    """
    Verify and parse a Stripe webhook event.

    Raises:
        SignatureInvalid: If webhook verification fails
        MalformedEvent: If the verified body is not a well-formed event
    """
    verified = verify_signature(request_body, signature, secret, tolerance=tolerance)
    event = parse_event(verified)
    logger.info(f"Verified webhook event: {event.external_type}, id={event.event_id}")
    return event
