"""
Links Stripe customers to internal users.
"""
import logging
from typing import Optional
from sqlalchemy.orm import Session

from app.db.models.user import User
from app.db.models.subscription import Subscription

logger = logging.getLogger(__name__)


def resolve_user_id(db: Session, customer_id: Optional[str]) -> Optional[int]:
    """
    Find the internal user for a Stripe customer ID.

    Looks at the customer link on the user first, then at any subscription
    record already carrying that customer ID.

    Returns:
        User ID, or None when the customer is not linked to anyone (orphaned event)
    """
    if not customer_id:
        return None

    user = db.query(User).filter(User.stripe_customer_id == customer_id).first()
    if user:
        return user.id

    subscription = db.query(Subscription).filter(
        Subscription.stripe_customer_id == customer_id
    ).first()
    if subscription:
        logger.info(f"Customer {customer_id} resolved through subscription record: user_id={subscription.user_id}")
        return subscription.user_id

    return None


def link_customer(db: Session, user_id: int, customer_id: str) -> User:
    """
    Record the Stripe customer ID on a user (done by the checkout flow).

    Raises:
        ValueError: If the user does not exist or the customer is linked to someone else
    """
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise ValueError(f"User not found: user_id={user_id}")

    owner = db.query(User).filter(User.stripe_customer_id == customer_id).first()
    if owner and owner.id != user_id:
        raise ValueError(f"Customer {customer_id} already linked to user_id={owner.id}")

    user.stripe_customer_id = customer_id
    db.commit()
    db.refresh(user)

    logger.info(f"Linked Stripe customer: user_id={user_id}, customer_id={customer_id}")
    return user
