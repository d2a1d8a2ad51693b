"""
Pydantic schemas for subscription records and entitlement bundles.
"""
from datetime import datetime
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class Plan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    PREMIUM = "premium"
    ELITE = "elite"


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    INACTIVE = "inactive"


class EntitlementBundle(BaseModel):
    """Quotas and feature flags attached to a plan, plus usage counters."""
    model_config = ConfigDict(frozen=True)

    contact_view_quota: int = Field(..., ge=0)
    contact_views_used: int = Field(0, ge=0)
    profile_boosts: int = Field(..., ge=0)
    profile_boosts_used: int = Field(0, ge=0)
    unlimited_chat: bool = False
    featured_placement: bool = False
    advanced_filters: bool = False
    video_call: bool = False
    priority_support: bool = False


class SubscriptionState(BaseModel):
    """
    Full snapshot of a user's subscription record.

    Produced by the state resolver and written as a single row update.
    `updated_at` is stamped by the persistence layer, not by the resolver.
    """
    model_config = ConfigDict(frozen=True)

    user_id: int
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None
    stripe_price_id: Optional[str] = None
    plan: Plan = Plan.FREE
    status: SubscriptionStatus = SubscriptionStatus.INACTIVE
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None
    entitlements: EntitlementBundle
    last_payment_at: Optional[datetime] = None
    next_billing_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def without_timestamps(self) -> dict:
        """Comparable view of the record that ignores the write timestamp."""
        return self.model_dump(exclude={"updated_at"})
