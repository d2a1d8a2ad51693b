"""
AuditLog model: append-only record of subscription transitions.
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index
from sqlalchemy.sql import func
from app.db.base import Base


class AuditLog(Base):
    """
    One row per applied billing transition (and per orphaned event).

    Rows are inserted and never updated or deleted by this service.
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(String, nullable=False)
    actor_type = Column(String, nullable=False, default="system")  # user | admin | system
    action = Column(String, nullable=False, index=True)
    target_type = Column(String, nullable=False)  # subscription | customer
    target_id = Column(String, nullable=False)
    event_metadata = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('idx_audit_actor_created', 'actor_id', 'created_at'),
        Index('idx_audit_target', 'target_type', 'target_id'),
    )

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', target='{self.target_type}:{self.target_id}')>"
