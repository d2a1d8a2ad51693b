import logging
import stripe
from fastapi import APIRouter, Depends, Header, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Optional

from app.core import config
from app.core.errors import MalformedEvent, SignatureInvalid
from app.core.plan_limits import PriceTable, build_price_table
from app.db.session import get_db
from app.schemas.billing import WebhookAckResponse, WebhookErrorResponse
from app.services.stripe_service import verify_webhook
from app.services.webhook_dispatcher import OutcomeStatus, dispatch_event

logger = logging.getLogger(__name__)

if config.STRIPE_SECRET_KEY:
    stripe.api_key = config.STRIPE_SECRET_KEY

router = APIRouter(prefix="/api/webhooks", tags=["Billing Webhook"])


def get_webhook_secret() -> Optional[str]:
    """Webhook signing secret dependency."""
    return config.STRIPE_WEBHOOK_SECRET


def get_price_table() -> PriceTable:
    """Price ID -> plan table dependency, built from configured price IDs."""
    return build_price_table(
        basic=config.STRIPE_PRICE_BASIC,
        premium=config.STRIPE_PRICE_PREMIUM,
        elite=config.STRIPE_PRICE_ELITE,
    )


def get_ack_on_persistence_failure() -> bool:
    return config.WEBHOOK_ACK_ON_PERSISTENCE_FAILURE


@router.post(
    "/stripe",
    response_model=WebhookAckResponse,
    responses={
        400: {"model": WebhookErrorResponse, "description": "Invalid signature or malformed event"},
        500: {"model": WebhookErrorResponse, "description": "Event could not be saved; Stripe will redeliver"},
    },
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None),
    secret: Optional[str] = Depends(get_webhook_secret),
    price_table: PriceTable = Depends(get_price_table),
    ack_on_failure: bool = Depends(get_ack_on_persistence_failure),
    db: Session = Depends(get_db),
):
    """
    Receive Stripe billing events.

    - 400: missing or invalid signature, or a malformed event body
    - 200: event applied, already applied, ignored or orphaned
    - 500: the subscription could not be saved (Stripe will redeliver)
    """
    payload = await request.body()

    try:
        event = verify_webhook(
            payload,
            stripe_signature,
            secret,
            tolerance=config.STRIPE_WEBHOOK_TOLERANCE_SECONDS,
        )
    except (SignatureInvalid, MalformedEvent) as e:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=WebhookErrorResponse(error=e.code, detail=e.message).model_dump(),
        )

    # Database work is blocking; keep it off the event loop
    outcome = await run_in_threadpool(
        dispatch_event, db, event, price_table, max_attempts=config.UPSERT_MAX_ATTEMPTS
    )

    if outcome.status == OutcomeStatus.FAILED:
        if ack_on_failure:
            logger.error(f"Dropping failed event id={outcome.event_id} ({outcome.detail}); acknowledging by configuration")
        else:
            return JSONResponse(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                content=WebhookErrorResponse(error="webhook_handler_failed", detail=outcome.detail).model_dump(),
            )

    return WebhookAckResponse(status=outcome.status.value, event_id=outcome.event_id)
