from datetime import timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.sql import func
from app.db.base import Base
from app.schemas.subscription import EntitlementBundle, Plan, SubscriptionState, SubscriptionStatus


def _as_utc(value):
    # SQLite hands back naive datetimes even for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class Subscription(Base):
    """
    One subscription record per user, written as a whole on every transition.

    The entitlement bundle is stored inline. `version` is the optimistic
    concurrency counter: an UPDATE that races with another writer for the
    same user matches zero rows and raises StaleDataError.
    """
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False, index=True)

    stripe_customer_id = Column(String, nullable=True, index=True)
    stripe_subscription_id = Column(String, nullable=True, index=True)
    stripe_price_id = Column(String, nullable=True)

    plan_type = Column(String, default=Plan.FREE.value, nullable=False)  # free | basic | premium | elite
    status = Column(String, default=SubscriptionStatus.INACTIVE.value, nullable=False)

    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    trial_end = Column(DateTime(timezone=True), nullable=True)

    # Entitlements
    contact_view_quota = Column(Integer, default=5, nullable=False)
    contact_views_used = Column(Integer, default=0, nullable=False)
    profile_boosts = Column(Integer, default=0, nullable=False)
    profile_boosts_used = Column(Integer, default=0, nullable=False)
    unlimited_chat = Column(Boolean, default=False, nullable=False)
    featured_placement = Column(Boolean, default=False, nullable=False)
    advanced_filters = Column(Boolean, default=False, nullable=False)
    video_call = Column(Boolean, default=False, nullable=False)
    priority_support = Column(Boolean, default=False, nullable=False)

    last_payment_at = Column(DateTime(timezone=True), nullable=True)
    next_billing_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index('idx_subscription_plan_status', 'plan_type', 'status'),
        Index('idx_subscription_period_end', 'current_period_end'),
    )

    @property
    def entitlements(self) -> EntitlementBundle:
        return EntitlementBundle(
            contact_view_quota=self.contact_view_quota,
            contact_views_used=self.contact_views_used,
            profile_boosts=self.profile_boosts,
            profile_boosts_used=self.profile_boosts_used,
            unlimited_chat=self.unlimited_chat,
            featured_placement=self.featured_placement,
            advanced_filters=self.advanced_filters,
            video_call=self.video_call,
            priority_support=self.priority_support,
        )

    def to_state(self) -> SubscriptionState:
        return SubscriptionState(
            user_id=self.user_id,
            stripe_customer_id=self.stripe_customer_id,
            stripe_subscription_id=self.stripe_subscription_id,
            stripe_price_id=self.stripe_price_id,
            plan=Plan(self.plan_type),
            status=SubscriptionStatus(self.status),
            current_period_start=_as_utc(self.current_period_start),
            current_period_end=_as_utc(self.current_period_end),
            cancel_at_period_end=self.cancel_at_period_end,
            trial_end=_as_utc(self.trial_end),
            entitlements=self.entitlements,
            last_payment_at=_as_utc(self.last_payment_at),
            next_billing_at=_as_utc(self.next_billing_at),
            updated_at=_as_utc(self.updated_at),
        )

    def apply_state(self, state: SubscriptionState) -> None:
        """Copy every field of a resolved snapshot onto the row (no partial updates)."""
        self.stripe_customer_id = state.stripe_customer_id
        self.stripe_subscription_id = state.stripe_subscription_id
        self.stripe_price_id = state.stripe_price_id
        self.plan_type = state.plan.value
        self.status = state.status.value
        self.current_period_start = state.current_period_start
        self.current_period_end = state.current_period_end
        self.cancel_at_period_end = state.cancel_at_period_end
        self.trial_end = state.trial_end

        bundle = state.entitlements
        self.contact_view_quota = bundle.contact_view_quota
        self.contact_views_used = bundle.contact_views_used
        self.profile_boosts = bundle.profile_boosts
        self.profile_boosts_used = bundle.profile_boosts_used
        self.unlimited_chat = bundle.unlimited_chat
        self.featured_placement = bundle.featured_placement
        self.advanced_filters = bundle.advanced_filters
        self.video_call = bundle.video_call
        self.priority_support = bundle.priority_support

        self.last_payment_at = state.last_payment_at
        self.next_billing_at = state.next_billing_at
        self.updated_at = state.updated_at

    def __repr__(self):
        return f"<Subscription(user_id={self.user_id}, plan='{self.plan_type}', status='{self.status}')>"
