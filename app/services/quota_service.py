"""
Entitlement usage service.

Read checks and counter consumption for the per-plan quotas stored on the
subscription record. Counters only ever go up here; they are reset when a
billing event replaces the entitlement bundle. A user who has never
subscribed gets a free-plan record on first use.
"""
import logging
from typing import Optional, Tuple
from sqlalchemy.orm import Session

from app.db.models.subscription import Subscription
from app.db.models.user import User
from app.core.plan_limits import entitlements_for
from app.schemas.subscription import Plan, SubscriptionState
from app.services.billing_service import get_subscription, upsert_subscription
from app.services.subscription_resolver import initial_free_state

logger = logging.getLogger(__name__)


def can_view_contact(state: Optional[SubscriptionState]) -> bool:
    """Whether the user has contact views left this period (no record = untouched free bundle)."""
    bundle = state.entitlements if state else entitlements_for(Plan.FREE)
    return bundle.contact_views_used < bundle.contact_view_quota


def can_send_message(state: Optional[SubscriptionState]) -> bool:
    """Chat is open to every paid plan and to bundles with unlimited chat."""
    if state is None:
        return False
    return state.entitlements.unlimited_chat or state.plan != Plan.FREE


def can_boost_profile(state: Optional[SubscriptionState]) -> bool:
    bundle = state.entitlements if state else entitlements_for(Plan.FREE)
    return bundle.profile_boosts_used < bundle.profile_boosts


def _ensure_record(db: Session, user_id: int) -> bool:
    """
    Create the free-plan record for a user who has none yet.

    Goes through upsert_subscription(), so a record written concurrently
    (by a webhook or another request) is kept as is.

    Returns:
        False if the user does not exist
    """
    if get_subscription(db, user_id) is not None:
        return True

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        db.rollback()
        return False

    customer_id = user.stripe_customer_id
    result = upsert_subscription(
        db,
        user_id,
        lambda current: None if current else initial_free_state(user_id, customer_id),
    )
    if result.changed:
        logger.info(f"Created free subscription record on first use: user_id={user_id}")
    return True


def _consume(db: Session, user_id: int, used_column, quota_column, feature: str) -> Tuple[int, int, bool]:
    """
    Increment a usage counter if it is below its quota, in one UPDATE.

    The version column is bumped as well so an in-flight webhook upsert
    for the same user re-reads instead of overwriting the new count.

    Returns:
        Tuple of (used, quota, allowed)

    Raises:
        PersistenceFailure: If the free-plan record could not be created
    """
    if not _ensure_record(db, user_id):
        free = entitlements_for(Plan.FREE)
        quota = free.profile_boosts if feature == "profile_boost" else free.contact_view_quota
        logger.warning(f"{feature} requested for unknown user_id={user_id}")
        return 0, quota, False

    try:
        updated = db.query(Subscription).filter(
            Subscription.user_id == user_id,
            used_column < quota_column,
        ).update(
            {
                used_column: used_column + 1,
                Subscription.version: Subscription.version + 1,
            },
            synchronize_session=False,
        )
        db.commit()
    except Exception:
        db.rollback()
        logger.error(f"Failed to record {feature} usage for user_id={user_id}", exc_info=True)
        raise

    used, quota = db.query(used_column, quota_column).filter(Subscription.user_id == user_id).one()
    allowed = updated == 1

    if allowed:
        logger.info(f"Recorded {feature}: user_id={user_id}, used={used}/{quota}")
    else:
        logger.warning(f"{feature} quota exhausted: user_id={user_id}, used={used}/{quota}")

    return int(used), int(quota), allowed


def consume_contact_view(db: Session, user_id: int) -> Tuple[int, int, bool]:
    return _consume(db, user_id, Subscription.contact_views_used, Subscription.contact_view_quota, "contact_view")


def consume_profile_boost(db: Session, user_id: int) -> Tuple[int, int, bool]:
    return _consume(db, user_id, Subscription.profile_boosts_used, Subscription.profile_boosts, "profile_boost")
