"""
Audit trail for billing transitions.

Audit writes from the webhook are best-effort: record_audit() runs after the
subscription change has been committed and logs an AuditWriteFailure
instead of raising it.
"""
import logging
from enum import Enum
from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from app.core.errors import AuditWriteFailure
from app.db.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class AuditAction(str, Enum):
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_UPDATED = "subscription_updated"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    PAYMENT_SUCCEEDED = "payment_succeeded"
    PAYMENT_FAILED = "payment_failed"
    ORPHANED_EVENT = "orphaned_event"


def write_audit(
    db: Session,
    action: AuditAction,
    actor_id: str,
    target_type: str,
    target_id: str,
    metadata: Optional[Dict[str, Any]] = None,
    actor_type: str = SYSTEM_ACTOR,
) -> AuditLog:
    """
    Append one audit entry in its own transaction.

    Raises:
        AuditWriteFailure: If the entry could not be committed (the session is rolled back)
    """
    try:
        entry = AuditLog(
            actor_id=actor_id,
            actor_type=actor_type,
            action=AuditAction(action).value,
            target_type=target_type,
            target_id=target_id,
            event_metadata=metadata or {},
        )
        db.add(entry)
        db.commit()
        return entry
    except Exception as e:
        db.rollback()
        raise AuditWriteFailure(
            f"Audit write failed: action={action}, target={target_type}:{target_id}: {type(e).__name__}"
        ) from e


def record_audit(
    db: Session,
    action: AuditAction,
    actor_id: str,
    target_type: str,
    target_id: str,
    metadata: Optional[Dict[str, Any]] = None,
    actor_type: str = SYSTEM_ACTOR,
) -> bool:
    """
    Best-effort write_audit() for use after a committed transition.

    Returns:
        True if the entry was written, False if the write failed (already logged)
    """
    try:
        write_audit(db, action, actor_id, target_type, target_id, metadata=metadata, actor_type=actor_type)
    except AuditWriteFailure as e:
        logger.error(e.message, exc_info=True)
        return False
    return True


def list_audit_entries(db: Session, target_type: Optional[str] = None, target_id: Optional[str] = None):
    """Audit entries, newest first, optionally filtered by target."""
    query = db.query(AuditLog)
    if target_type:
        query = query.filter(AuditLog.target_type == target_type)
    if target_id:
        query = query.filter(AuditLog.target_id == target_id)
    return query.order_by(AuditLog.id.desc()).all()
