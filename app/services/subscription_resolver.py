"""
Subscription state resolution.

Pure functions: (event, current record) -> next record. No database access,
no wall-clock reads. Subscription created/updated/deleted events are
treated as full snapshots of the subscription, so the resolver never
merges deltas and replaying an event yields the same record.
"""
import logging
from typing import Optional

from app.core.plan_limits import PriceTable, entitlements_for, resolve_plan
from app.schemas.billing import (
    BillingEvent,
    EventType,
    InvoiceEvent,
    SubscriptionEvent,
)
from app.schemas.subscription import Plan, SubscriptionState, SubscriptionStatus

logger = logging.getLogger(__name__)

# Stripe subscription status -> internal status
STRIPE_STATUS_MAP = {
    "active": SubscriptionStatus.ACTIVE,
    "trialing": SubscriptionStatus.TRIALING,
    "canceled": SubscriptionStatus.CANCELED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "incomplete_expired": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.INACTIVE,
    "paused": SubscriptionStatus.INACTIVE,
}


def map_stripe_status(stripe_status: Optional[str]) -> SubscriptionStatus:
    """Map a Stripe subscription status onto ours. Unknown values become inactive."""
    status = STRIPE_STATUS_MAP.get(stripe_status or "")
    if status is None:
        logger.warning(f"Unrecognized Stripe subscription status={stripe_status!r}, treating as inactive")
        return SubscriptionStatus.INACTIVE
    return status


def _snapshot(
    user_id: int,
    event: SubscriptionEvent,
    status: SubscriptionStatus,
    plan: Plan,
    current: Optional[SubscriptionState],
    last_payment_at,
) -> SubscriptionState:
    return SubscriptionState(
        user_id=user_id,
        stripe_customer_id=event.customer_id,
        stripe_subscription_id=event.subscription_id,
        stripe_price_id=event.price_id,
        plan=plan,
        status=status,
        current_period_start=event.current_period_start,
        current_period_end=event.current_period_end,
        cancel_at_period_end=event.cancel_at_period_end,
        trial_end=event.trial_end,
        entitlements=entitlements_for(plan),
        last_payment_at=last_payment_at,
        next_billing_at=event.current_period_end,
        updated_at=current.updated_at if current else None,
    )


def resolve_subscription_created(
    user_id: int,
    event: SubscriptionEvent,
    current: Optional[SubscriptionState],
    price_table: PriceTable,
) -> SubscriptionState:
    plan = resolve_plan(event.price_id, price_table)
    status = SubscriptionStatus.ACTIVE if event.external_status == "active" else SubscriptionStatus.TRIALING
    return _snapshot(user_id, event, status, plan, current, last_payment_at=event.created)


def resolve_subscription_updated(
    user_id: int,
    event: SubscriptionEvent,
    current: Optional[SubscriptionState],
    price_table: PriceTable,
) -> SubscriptionState:
    plan = resolve_plan(event.price_id, price_table)
    status = map_stripe_status(event.external_status)
    last_payment_at = current.last_payment_at if current else None
    return _snapshot(user_id, event, status, plan, current, last_payment_at=last_payment_at)


def resolve_subscription_deleted(
    user_id: int,
    event: SubscriptionEvent,
    current: Optional[SubscriptionState],
) -> SubscriptionState:
    """Downgrade to free. The record is kept; only billing fields are cleared."""
    return SubscriptionState(
        user_id=user_id,
        stripe_customer_id=event.customer_id or (current.stripe_customer_id if current else None),
        stripe_subscription_id=None,
        stripe_price_id=None,
        plan=Plan.FREE,
        status=SubscriptionStatus.INACTIVE,
        current_period_start=None,
        current_period_end=None,
        cancel_at_period_end=False,
        trial_end=None,
        entitlements=entitlements_for(Plan.FREE),
        last_payment_at=current.last_payment_at if current else None,
        next_billing_at=None,
        updated_at=current.updated_at if current else None,
    )


def resolve_payment_succeeded(event: InvoiceEvent, current: Optional[SubscriptionState]) -> Optional[SubscriptionState]:
    if current is None:
        return None
    paid_at = event.paid_at or event.created or current.last_payment_at
    return current.model_copy(update={
        "status": SubscriptionStatus.ACTIVE,
        "last_payment_at": paid_at,
    })


def resolve_payment_failed(event: InvoiceEvent, current: Optional[SubscriptionState]) -> Optional[SubscriptionState]:
    if current is None:
        return None
    return current.model_copy(update={"status": SubscriptionStatus.PAST_DUE})


def resolve_next_state(
    user_id: int,
    event: BillingEvent,
    current: Optional[SubscriptionState],
    price_table: PriceTable,
) -> Optional[SubscriptionState]:
    """
    Compute the next subscription record for a user.

    Args:
        user_id: Internal user the event belongs to
        event: Typed billing event
        current: Current record, or None if the user has none yet
        price_table: Price ID -> plan table

    Returns:
        The next record, or None when the event changes nothing
        (customer_created, unrecognized, payment events with no record yet)
    """
    if event.type == EventType.SUBSCRIPTION_CREATED:
        return resolve_subscription_created(user_id, event, current, price_table)
    if event.type == EventType.SUBSCRIPTION_UPDATED:
        return resolve_subscription_updated(user_id, event, current, price_table)
    if event.type == EventType.SUBSCRIPTION_DELETED:
        return resolve_subscription_deleted(user_id, event, current)
    if event.type == EventType.PAYMENT_SUCCEEDED:
        return resolve_payment_succeeded(event, current)
    if event.type == EventType.PAYMENT_FAILED:
        return resolve_payment_failed(event, current)
    return None


def initial_free_state(user_id: int, stripe_customer_id: Optional[str] = None) -> SubscriptionState:
    """Record for a user who has never subscribed: free plan, inactive, fresh counters."""
    return SubscriptionState(
        user_id=user_id,
        stripe_customer_id=stripe_customer_id,
        plan=Plan.FREE,
        status=SubscriptionStatus.INACTIVE,
        entitlements=entitlements_for(Plan.FREE),
    )
