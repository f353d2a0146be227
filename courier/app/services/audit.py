"""
Audit logging service for tracking marketplace actions.

Called by the endpoints after a core operation has committed. A failed audit
write is logged and never undoes or fails the operation it records.
"""

import logging
from typing import Optional, Dict, Any
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from courier.app.models.audit_log import AuditLog

logger = logging.getLogger("courier.audit")


# Audit event constants
class AuditAction:
    """Standardized audit action constants."""
    # Parcel lifecycle
    PARCEL_BOOKED = "PARCEL_BOOKED"
    PARCEL_UPDATED = "PARCEL_UPDATED"
    PARCEL_CANCELLED = "PARCEL_CANCELLED"
    PARCEL_DELIVERED = "PARCEL_DELIVERED"

    # Assignment
    PARCEL_ASSIGNED = "PARCEL_ASSIGNED"
    ASSIGNMENT_UPDATED = "ASSIGNMENT_UPDATED"

    # Payment
    PAYMENT_RECORDED = "PAYMENT_RECORDED"

    # Reviews
    REVIEW_SUBMITTED = "REVIEW_SUBMITTED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    parcel_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> Optional[AuditLog]:
    """
    Log a marketplace event to the audit log.

    Args:
        db: Database session
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action
        actor_username: Username of actor
        parcel_id: Parcel the action applied to
        metadata: Additional context as JSON

    Returns:
        Created AuditLog instance, or None when the write failed
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        parcel_id=parcel_id,
        meta_data=metadata
    )

    try:
        await _persist(db, audit_log)
    except (SQLAlchemyError, TimeoutError):
        logger.exception("Audit write failed for %s on parcel %s", action, parcel_id)
        try:
            await db.rollback()
        except (SQLAlchemyError, TimeoutError) as exc:
            logger.error("Rollback after failed audit write failed: %s", exc)
        return None

    return audit_log


async def _persist(db: AsyncSession, audit_log: AuditLog) -> None:
    db.add(audit_log)
    await db.commit()
    await db.refresh(audit_log)


async def get_parcel_audit_trail(
    db: AsyncSession,
    parcel_id: int,
    limit: int = 100
) -> list[AuditLog]:
    """
    Retrieve the audit trail of one parcel, oldest first.

    Args:
        db: Database session
        parcel_id: Parcel to get history for
        limit: Maximum number of records

    Returns:
        List of AuditLog instances
    """
    query = select(AuditLog).where(
        AuditLog.parcel_id == parcel_id
    ).order_by(AuditLog.timestamp, AuditLog.id).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())


async def get_actor_audit_history(
    db: AsyncSession,
    actor_id: int,
    limit: int = 50
) -> list[AuditLog]:
    """Get the most recent actions performed by a user."""
    query = select(AuditLog).where(
        AuditLog.actor_id == actor_id
    ).order_by(desc(AuditLog.timestamp), desc(AuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
