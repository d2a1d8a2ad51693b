"""
Pydantic schemas for Stripe webhook events.

Two layers: the `Stripe*` models describe the wire shape of the objects we
read, and the event variants below are the closed, typed union the rest of
the service works with.
"""
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator


class EventType(str, Enum):
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_DELETED = "subscription_deleted"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    CUSTOMER_CREATED = "customer_created"
    UNRECOGNIZED = "unrecognized"


# Stripe event name -> internal event type
STRIPE_EVENT_TYPES: Dict[str, EventType] = {
    "customer.subscription.created": EventType.SUBSCRIPTION_CREATED,
    "customer.subscription.updated": EventType.SUBSCRIPTION_UPDATED,
    "customer.subscription.deleted": EventType.SUBSCRIPTION_DELETED,
    "invoice.payment_succeeded": EventType.PAYMENT_SUCCEEDED,
    "invoice.payment_failed": EventType.PAYMENT_FAILED,
    "customer.created": EventType.CUSTOMER_CREATED,
}


def _expandable_id(value: Any) -> Any:
    """Stripe sends either an ID string or an expanded object for references."""
    if isinstance(value, dict):
        return value.get("id")
    return value


# ============================================
# Wire shapes
# ============================================

class StripeEventData(BaseModel):
    object: Dict[str, Any]


class StripeEventEnvelope(BaseModel):
    """Top-level Stripe event. Only the fields we rely on are declared."""
    id: str = Field(..., min_length=1)
    type: str = Field(..., min_length=1)
    created: Optional[int] = None
    livemode: bool = False
    data: StripeEventData


class StripePrice(BaseModel):
    id: Optional[str] = None


class StripeSubscriptionItem(BaseModel):
    price: Optional[StripePrice] = None
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None


class StripeSubscriptionItemList(BaseModel):
    data: List[StripeSubscriptionItem] = Field(default_factory=list)


class StripeSubscriptionObject(BaseModel):
    id: str = Field(..., min_length=1)
    customer: str = Field(..., min_length=1)
    status: str
    items: StripeSubscriptionItemList = Field(default_factory=StripeSubscriptionItemList)
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[int] = None

    @field_validator("customer", mode="before")
    @classmethod
    def customer_as_id(cls, value: Any) -> Any:
        return _expandable_id(value)


class StripeInvoiceStatusTransitions(BaseModel):
    paid_at: Optional[int] = None


class StripeInvoiceObject(BaseModel):
    id: str = Field(..., min_length=1)
    customer: Optional[str] = None
    subscription: Optional[str] = None
    amount_paid: Optional[int] = None
    amount_due: Optional[int] = None
    currency: Optional[str] = None
    attempt_count: Optional[int] = None
    status_transitions: Optional[StripeInvoiceStatusTransitions] = None

    @field_validator("customer", "subscription", mode="before")
    @classmethod
    def references_as_ids(cls, value: Any) -> Any:
        return _expandable_id(value)


class StripeCustomerObject(BaseModel):
    id: str = Field(..., min_length=1)
    email: Optional[str] = None


# ============================================
# Typed events
# ============================================

class _BaseEvent(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    external_type: str
    created: Optional[datetime] = None


class SubscriptionEvent(_BaseEvent):
    """customer.subscription.*: a full snapshot of the subscription."""
    type: Literal[
        EventType.SUBSCRIPTION_CREATED,
        EventType.SUBSCRIPTION_UPDATED,
        EventType.SUBSCRIPTION_DELETED,
    ]
    customer_id: str
    subscription_id: str
    price_id: Optional[str] = None
    external_status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None


class InvoiceEvent(_BaseEvent):
    """invoice.payment_succeeded / invoice.payment_failed."""
    type: Literal[EventType.PAYMENT_SUCCEEDED, EventType.PAYMENT_FAILED]
    customer_id: Optional[str] = None
    invoice_id: str
    subscription_id: Optional[str] = None
    amount: Optional[int] = None
    currency: Optional[str] = None
    attempt_count: Optional[int] = None
    paid_at: Optional[datetime] = None


class CustomerEvent(_BaseEvent):
    type: Literal[EventType.CUSTOMER_CREATED]
    customer_id: str
    email: Optional[str] = None


class UnrecognizedEvent(_BaseEvent):
    type: Literal[EventType.UNRECOGNIZED]


BillingEvent = Annotated[
    Union[SubscriptionEvent, InvoiceEvent, CustomerEvent, UnrecognizedEvent],
    Field(discriminator="type"),
]


class WebhookAckResponse(BaseModel):
    """Response body for acknowledged webhooks."""
    received: bool = True
    status: str = Field(..., description="Outcome: applied, unchanged, ignored, orphaned or failed")
    event_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "received": True,
                "status": "applied",
                "event_id": "evt_1PqX..."
            }
        }


class WebhookErrorResponse(BaseModel):
    """Error response for rejected webhooks."""
    error: str = Field(..., description="Error code")
    detail: Optional[str] = Field(None, description="Additional error details")

    class Config:
        json_schema_extra = {
            "example": {
                "error": "invalid_signature",
                "detail": "Invalid signature"
            }
        }
