"""
Audit Log Database Model.

Keeps a trail of every accepted parcel, assignment, payment and review mutation.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from courier.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model for tracking marketplace actions.

    Events logged:
    - PARCEL_BOOKED / PARCEL_CANCELLED / PARCEL_DELIVERED
    - PARCEL_ASSIGNED / ASSIGNMENT_UPDATED
    - PAYMENT_RECORDED
    - REVIEW_SUBMITTED
    """
    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Who performed the action (None for system actions)
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)

    # What action was performed
    action = Column(String(100), nullable=False, index=True)

    # Entity the action applied to
    parcel_id = Column(Integer, index=True, nullable=True)

    # Additional context (JSON for flexibility)
    meta_data = Column(JSON, nullable=True)

    # Timestamp
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, parcel={self.parcel_id})>"
