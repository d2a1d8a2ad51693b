"""
Health check endpoint for deployment monitoring.
"""
from fastapi import APIRouter, Depends
from datetime import datetime, timezone
from sqlalchemy import text
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.api.routes.billing_webhook import get_price_table, get_webhook_secret

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("")
def health_check(
    db: Session = Depends(get_db),
    secret=Depends(get_webhook_secret),
    price_table=Depends(get_price_table),
):
    """
    Report whether the webhook can do its job.

    "degraded" when the database is unreachable or no signing secret is
    configured (every delivery would be rejected).
    """
    status = "healthy"

    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except Exception as e:
        db_status = f"error: {type(e).__name__}"
        status = "degraded"

    if not secret:
        status = "degraded"

    return {
        "status": status,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "database": db_status,
        "webhook_secret": "configured" if secret else "missing",
        "configured_prices": len(price_table),
        "version": "1.0.0",
    }
