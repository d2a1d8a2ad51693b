"""
Subscription persistence.

Applies resolved subscription snapshots to the database. Each transition
is a single row write inside one transaction; concurrent writers for the
same user are serialized by the row's version counter and retried.
"""
import logging
from datetime import datetime, timezone
from typing import Callable, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import PersistenceFailure
from app.core.plan_limits import PriceTable
from app.db.models.subscription import Subscription
from app.schemas.billing import BillingEvent
from app.schemas.subscription import SubscriptionState
from app.services.subscription_resolver import resolve_next_state

logger = logging.getLogger(__name__)


class UpsertResult(NamedTuple):
    previous: Optional[SubscriptionState]
    current: Optional[SubscriptionState]
    changed: bool


def get_subscription(db: Session, user_id: int) -> Optional[Subscription]:
    return db.query(Subscription).filter(Subscription.user_id == user_id).first()


def get_subscription_state(db: Session, user_id: int) -> Optional[SubscriptionState]:
    """Get the user's current subscription record, or None if they have none."""
    subscription = get_subscription(db, user_id)
    return subscription.to_state() if subscription else None


def upsert_subscription(
    db: Session,
    user_id: int,
    resolve: Callable[[Optional[SubscriptionState]], Optional[SubscriptionState]],
    max_attempts: int = 3,
) -> UpsertResult:
    """
    Read the user's record, compute the next one and write it atomically.

    `resolve` is re-run against a fresh read after every conflict, so a
    stale snapshot is never written over a newer one.

    Args:
        db: Database session
        user_id: User ID (unique key of the record)
        resolve: Function from current record (or None) to next record (or None for no change)
        max_attempts: Attempts before giving up on concurrent-write conflicts

    Returns:
        UpsertResult(previous, current, changed). `changed` is False when the
        resolver produced no change or the same record (a replayed event).

    Raises:
        PersistenceFailure: If the write fails or keeps conflicting
    """
    last_error: Optional[Exception] = None

    for attempt in range(1, max_attempts + 1):
        try:
            row = get_subscription(db, user_id)
            previous = row.to_state() if row else None

            next_state = resolve(previous)
            if next_state is None:
                db.rollback()
                return UpsertResult(previous, previous, False)

            if previous is not None and next_state.without_timestamps() == previous.without_timestamps():
                db.rollback()
                return UpsertResult(previous, previous, False)

            next_state = next_state.model_copy(update={"updated_at": datetime.now(timezone.utc)})

            if row is None:
                row = Subscription(user_id=user_id)
                db.add(row)
            row.apply_state(next_state)

            db.commit()
            return UpsertResult(previous, next_state, True)

        except (StaleDataError, IntegrityError) as e:
            db.rollback()
            last_error = e
            logger.warning(
                f"Concurrent write on subscription user_id={user_id} "
                f"(attempt {attempt}/{max_attempts}): {type(e).__name__}"
            )
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Subscription write failed: user_id={user_id}: {e}", exc_info=True)
            raise PersistenceFailure(f"Subscription write failed for user_id={user_id}") from e
        except BaseException:
            # Cancellation or an unexpected error mid-transaction: leave nothing half-written
            db.rollback()
            raise

    logger.error(f"Subscription write kept conflicting: user_id={user_id}, attempts={max_attempts}")
    raise PersistenceFailure(f"Concurrent writes for user_id={user_id} did not settle") from last_error


def apply_event(
    db: Session,
    user_id: int,
    event: BillingEvent,
    price_table: PriceTable,
    max_attempts: int = 3,
) -> UpsertResult:
    """Resolve a billing event against the user's record and persist the result."""
    return upsert_subscription(
        db,
        user_id,
        lambda current: resolve_next_state(user_id, event, current, price_table),
        max_attempts=max_attempts,
    )
