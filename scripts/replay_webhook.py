"""
Re-apply a saved Stripe event through the webhook pipeline.

Signs the JSON file with the configured webhook secret and runs it through
the same verification, parsing and dispatch as the live endpoint. Useful
when an event was dropped and has to be applied by hand.

Run: python -m scripts.replay_webhook path/to/event.json
"""
import argparse
import sys
import os
import logging

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app.core import config
from app.core.errors import BillingWebhookError
from app.core.plan_limits import build_price_table
from app.core.security import compute_signature_header
from app.db.session import SessionLocal
from app.services.stripe_service import verify_webhook
from app.services.webhook_dispatcher import dispatch_event

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def replay(path: str) -> int:
    if not config.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not set")
        return 2

    with open(path, "rb") as f:
        payload = f.read()

    signature = compute_signature_header(payload, config.STRIPE_WEBHOOK_SECRET)
    price_table = build_price_table(
        basic=config.STRIPE_PRICE_BASIC,
        premium=config.STRIPE_PRICE_PREMIUM,
        elite=config.STRIPE_PRICE_ELITE,
    )

    try:
        event = verify_webhook(payload, signature, config.STRIPE_WEBHOOK_SECRET)
    except BillingWebhookError as e:
        logger.error(f"Rejected {path}: {e.code}: {e.message}")
        return 1

    db = SessionLocal()
    try:
        outcome = dispatch_event(db, event, price_table, max_attempts=config.UPSERT_MAX_ATTEMPTS)
    finally:
        db.close()

    logger.info(f"Replayed {event.external_type} id={event.event_id}: {outcome.status.value} {outcome.detail or ''}")
    return 0 if outcome.acknowledged else 1


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Replay a saved Stripe webhook event")
    parser.add_argument("event_file", help="Path to the event JSON as delivered by Stripe")
    args = parser.parse_args()
    sys.exit(replay(args.event_file))
