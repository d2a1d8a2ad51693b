"""
Webhook event dispatch.

Routes each typed billing event to its handler and reports what happened
as an EventOutcome. Handlers never raise: every failure is turned into an
outcome here, and the HTTP layer decides the response code from it.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.errors import PersistenceFailure
from app.core.logging_config import sanitize_log_data
from app.core.plan_limits import PriceTable
from app.schemas.billing import (
    BillingEvent,
    CustomerEvent,
    EventType,
    InvoiceEvent,
    SubscriptionEvent,
    UnrecognizedEvent,
)
from app.services.audit_service import AuditAction, SYSTEM_ACTOR, record_audit
from app.services.billing_service import UpsertResult, apply_event
from app.services.customer_service import resolve_user_id

logger = logging.getLogger(__name__)


class OutcomeStatus(str, Enum):
    APPLIED = "applied"        # record written
    UNCHANGED = "unchanged"    # processed, nothing to write (replay or no record yet)
    IGNORED = "ignored"        # unrecognized or informational event
    ORPHANED = "orphaned"      # customer not linked to any user
    FAILED = "failed"          # persistence or unexpected handler failure


class EventOutcome(BaseModel):
    event_id: str
    event_type: EventType
    status: OutcomeStatus
    user_id: Optional[int] = None
    detail: Optional[str] = None

    @property
    def acknowledged(self) -> bool:
        return self.status != OutcomeStatus.FAILED


_AUDIT_ACTIONS = {
    EventType.SUBSCRIPTION_CREATED: AuditAction.SUBSCRIPTION_CREATED,
    EventType.SUBSCRIPTION_UPDATED: AuditAction.SUBSCRIPTION_UPDATED,
    EventType.SUBSCRIPTION_DELETED: AuditAction.SUBSCRIPTION_CANCELLED,
    EventType.PAYMENT_SUCCEEDED: AuditAction.PAYMENT_SUCCEEDED,
    EventType.PAYMENT_FAILED: AuditAction.PAYMENT_FAILED,
}


def _outcome(event: BillingEvent, status: OutcomeStatus, user_id: Optional[int] = None, detail: Optional[str] = None) -> EventOutcome:
    return EventOutcome(
        event_id=event.event_id,
        event_type=event.type,
        status=status,
        user_id=user_id,
        detail=detail,
    )


def _audit_metadata(event: BillingEvent, result: UpsertResult) -> Dict[str, Any]:
    metadata: Dict[str, Any] = {"stripe_event": event.external_type, "event_id": event.event_id}

    if isinstance(event, SubscriptionEvent):
        metadata["price_id"] = event.price_id
        metadata["stripe_status"] = event.external_status
    elif isinstance(event, InvoiceEvent):
        metadata["invoice_id"] = event.invoice_id
        metadata["amount"] = event.amount
        metadata["currency"] = event.currency
        if event.type == EventType.PAYMENT_FAILED:
            metadata["attempt_count"] = event.attempt_count

    if result.previous is not None:
        metadata["previous_plan"] = result.previous.plan.value
        metadata["previous_status"] = result.previous.status.value
    if result.current is not None:
        metadata["plan"] = result.current.plan.value
        metadata["status"] = result.current.status.value

    return metadata


def _audit_target_id(event: BillingEvent) -> str:
    if isinstance(event, InvoiceEvent):
        return event.invoice_id
    if isinstance(event, SubscriptionEvent):
        return event.subscription_id
    return event.event_id


def _record_orphan(db: Session, event: BillingEvent, customer_id: Optional[str]) -> EventOutcome:
    logger.warning(
        f"Orphaned {event.external_type} event id={event.event_id}: "
        f"no user linked to customer_id={customer_id}"
    )
    record_audit(
        db,
        AuditAction.ORPHANED_EVENT,
        actor_id=SYSTEM_ACTOR,
        target_type="customer",
        target_id=customer_id or "unknown",
        metadata={"stripe_event": event.external_type, "event_id": event.event_id},
    )
    return _outcome(event, OutcomeStatus.ORPHANED, detail="User not found for customer")


def handle_state_event(
    db: Session,
    event: BillingEvent,
    price_table: PriceTable,
    max_attempts: int = 3,
) -> EventOutcome:
    """Handle subscription and invoice events: link the customer, resolve, persist, audit."""
    customer_id = event.customer_id

    if isinstance(event, InvoiceEvent) and not customer_id:
        logger.warning(f"{event.external_type} id={event.event_id}: invoice has no customer, ignoring")
        return _outcome(event, OutcomeStatus.IGNORED, detail="Invoice without customer")

    user_id = resolve_user_id(db, customer_id)
    if user_id is None:
        return _record_orphan(db, event, customer_id)

    try:
        result = apply_event(db, user_id, event, price_table, max_attempts=max_attempts)
    except PersistenceFailure as e:
        return _outcome(event, OutcomeStatus.FAILED, user_id=user_id, detail=e.message)

    if not result.changed:
        if result.current is None:
            logger.info(f"{event.external_type} id={event.event_id}: user_id={user_id} has no subscription record, nothing to update")
        else:
            logger.info(f"{event.external_type} id={event.event_id}: user_id={user_id} already up to date")
        return _outcome(event, OutcomeStatus.UNCHANGED, user_id=user_id)

    record_audit(
        db,
        _AUDIT_ACTIONS[event.type],
        actor_id=str(user_id),
        target_type="subscription",
        target_id=_audit_target_id(event),
        metadata=_audit_metadata(event, result),
    )

    logger.info(
        f"{event.external_type} applied: user_id={user_id}, plan={result.current.plan.value}, "
        f"status={result.current.status.value}, event_id={event.event_id}"
    )
    return _outcome(event, OutcomeStatus.APPLIED, user_id=user_id)


def handle_customer_created(db: Session, event: CustomerEvent) -> EventOutcome:
    """Informational only. Logs whether the customer is already linked to a user."""
    user_id = resolve_user_id(db, event.customer_id)
    details = sanitize_log_data({"customer_id": event.customer_id, "email": event.email})
    if user_id is None:
        logger.info(f"Stripe customer created before user link: {details}")
    else:
        logger.info(f"Stripe customer created: user_id={user_id}, {details}")
    return _outcome(event, OutcomeStatus.IGNORED, user_id=user_id, detail="Informational event")


def handle_unrecognized(event: UnrecognizedEvent) -> EventOutcome:
    logger.info(f"Unhandled event type: {event.external_type}, id={event.event_id}")
    return _outcome(event, OutcomeStatus.IGNORED, detail="Unhandled event type")


def dispatch_event(
    db: Session,
    event: BillingEvent,
    price_table: PriceTable,
    max_attempts: int = 3,
) -> EventOutcome:
    """
    Process one verified billing event.

    Args:
        db: Database session
        event: Typed event from parse_event()
        price_table: Price ID -> plan table
        max_attempts: Optimistic-concurrency attempts for the upsert

    Returns:
        EventOutcome describing what happened; never raises for handler errors
    """
    try:
        if isinstance(event, (SubscriptionEvent, InvoiceEvent)):
            return handle_state_event(db, event, price_table, max_attempts=max_attempts)
        if isinstance(event, CustomerEvent):
            return handle_customer_created(db, event)
        return handle_unrecognized(event)
    except Exception as e:
        db.rollback()
        logger.exception(f"Error handling {event.external_type} event id={event.event_id}")
        return _outcome(event, OutcomeStatus.FAILED, detail=f"Handler error: {type(e).__name__}")
