"""
Assignment Service (Domain Logic).

Binds a pending parcel to a delivery agent. The assignment insert and the
pending → on_the_way transition share one store transaction, so readers see
either both or neither.

Flow:
1. Validate input (agent id and approximate date are required)
2. Resolve the agent (must be an active delivery agent)
3. Check the parcel is pending
4. Insert the Assignment (unique per parcel)
5. Drive the lifecycle controller with the assignment as context
6. Commit, or roll back everything
"""

import logging
from datetime import date
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import delete, select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.exceptions import (
    AppException,
    ConflictError,
    InputValidationError,
    InvalidStateError,
    PartialFailureError,
    ResourceNotFoundError,
)
from courier.app.db.session import store_errors, unit_of_work
from courier.app.domain.lifecycle.controller import AssignmentContext, ParcelLifecycleController
from courier.app.domain.lifecycle.transitions import ASSIGNED_STATES
from courier.app.models.assignment import Assignment
from courier.app.models.enums import UserRole
from courier.app.models.parcel import Parcel
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.user import User

logger = logging.getLogger("courier.assignment")


def _require_fields(parcel_id: int, agent_id: Optional[int], approximate_delivery_date: Optional[date]) -> None:
    missing = []
    if agent_id is None:
        missing.append("agent_id")
    if approximate_delivery_date is None:
        missing.append("approximate_delivery_date")
    if missing:
        raise InputValidationError(
            f"Missing required fields: {', '.join(missing)}",
            {"parcel_id": parcel_id, "missing": missing}
        )


class AssignmentService:

    @staticmethod
    async def resolve_agent(db: AsyncSession, agent_id: int) -> User:
        """
        Fetch an active delivery agent.

        Raises:
            ResourceNotFoundError: If no active delivery agent has this id
        """
        result = await db.execute(
            select(User).where(
                User.id == agent_id,
                User.role == UserRole.DELIVERY_AGENT,
                User.is_active.is_(True)
            )
        )
        agent = result.scalar_one_or_none()
        if agent is None:
            raise ResourceNotFoundError("Delivery agent", agent_id)
        return agent

    @staticmethod
    async def assign_parcel(
        db: AsyncSession,
        parcel_id: int,
        agent_id: Optional[int],
        approximate_delivery_date: Optional[date],
        metadata: Optional[Dict[str, Any]] = None
    ) -> Tuple[Assignment, Parcel]:
        """
        Assign a pending parcel to a delivery agent.

        Args:
            db: Database session
            parcel_id: Parcel to assign
            agent_id: Delivery agent taking the parcel
            approximate_delivery_date: Date the agent expects to deliver
            metadata: Optional extras; "agent_contact" overrides the agent's email

        Returns:
            (created assignment, parcel now on_the_way)

        Raises:
            InputValidationError: Missing agent id or date
            ResourceNotFoundError: Unknown parcel or agent
            ConflictError: Parcel not pending, or a concurrent assignment won
            PartialFailureError: Rolling back a failed transition also failed
        """
        _require_fields(parcel_id, agent_id, approximate_delivery_date)
        metadata = metadata or {}

        async with store_errors("parcel assignment"):
            try:
                agent = await AssignmentService.resolve_agent(db, agent_id)
                parcel = await ParcelLifecycleController.load_parcel(db, parcel_id)
                if parcel.status != ParcelStatus.PENDING:
                    raise ConflictError(
                        f"Parcel {parcel.id} is '{parcel.status.value}', only pending parcels can be assigned",
                        {"parcel_id": parcel.id, "current_status": parcel.status.value, "requested_status": ParcelStatus.ON_THE_WAY.value}
                    )

                assignment = Assignment(
                    parcel_id=parcel.id,
                    agent_id=agent.id,
                    agent_contact=metadata.get("agent_contact") or agent.email,
                    approximate_delivery_date=approximate_delivery_date,
                )
                db.add(assignment)
                try:
                    await db.flush()
                except IntegrityError as exc:
                    raise ConflictError(
                        f"Parcel {parcel_id} was assigned by a concurrent request",
                        {"parcel_id": parcel_id}
                    ) from exc
            except AppException:
                await db.rollback()
                raise

            context = AssignmentContext(
                assignment_id=assignment.id,
                agent_id=agent.id,
                agent_contact=assignment.agent_contact,
                approximate_delivery_date=approximate_delivery_date,
            )
            try:
                parcel = await ParcelLifecycleController.apply_transition(
                    db, parcel.id, ParcelStatus.ON_THE_WAY, context
                )
                await db.refresh(assignment)
            except AppException:
                await AssignmentService._discard_assignment(db, parcel.id, assignment.id)
                raise

            await db.commit()

        logger.info("Parcel %s assigned to agent %s (assignment %s)", parcel.id, agent.id, assignment.id)
        return assignment, parcel

    @staticmethod
    async def _discard_assignment(db: AsyncSession, parcel_id: int, assignment_id: int) -> None:
        """Roll back an uncommitted assignment after its transition failed."""
        try:
            await db.rollback()
        except SQLAlchemyError as exc:
            logger.critical(
                "Rollback failed for assignment %s of parcel %s, reconciliation required",
                assignment_id, parcel_id
            )
            raise PartialFailureError(
                f"Assignment {assignment_id} for parcel {parcel_id} may be orphaned",
                {"parcel_id": parcel_id, "assignment_id": assignment_id}
            ) from exc

    @staticmethod
    async def update_assignment(
        db: AsyncSession,
        parcel_id: int,
        agent_id: Optional[int],
        approximate_delivery_date: Optional[date],
        metadata: Optional[Dict[str, Any]] = None
    ) -> Parcel:
        """
        Correct the agent or date of a parcel that is on the way.

        The original Assignment stays immutable; the correction is stored on
        the parcel's current-agent fields.

        Raises:
            InputValidationError: Missing agent id or date
            ResourceNotFoundError: Unknown parcel or agent
            InvalidStateError: Parcel is delivered, canceled or not yet assigned
            ConflictError: Parcel status changed during the update
        """
        _require_fields(parcel_id, agent_id, approximate_delivery_date)
        metadata = metadata or {}

        async with unit_of_work(db, "assignment update"):
            agent = await AssignmentService.resolve_agent(db, agent_id)
            parcel = await ParcelLifecycleController.load_parcel(db, parcel_id)
            if parcel.status != ParcelStatus.ON_THE_WAY:
                raise InvalidStateError(
                    f"Parcel {parcel.id} is '{parcel.status.value}', only parcels on the way can be reassigned",
                    {"parcel_id": parcel.id, "current_status": parcel.status.value}
                )

            result = await db.execute(
                update(Parcel)
                .where(Parcel.id == parcel.id, Parcel.status == ParcelStatus.ON_THE_WAY)
                .values(
                    delivery_agent_id=agent.id,
                    delivery_agent_contact=metadata.get("agent_contact") or agent.email,
                    approximate_delivery_date=approximate_delivery_date,
                    updated_at=func.now(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Parcel {parcel.id} changed while updating its assignment",
                    {"parcel_id": parcel.id}
                )

            parcel = await ParcelLifecycleController.load_parcel(db, parcel.id)

        logger.info("Parcel %s reassigned to agent %s", parcel.id, agent.id)
        return parcel

    @staticmethod
    async def get_assignment(db: AsyncSession, parcel_id: int) -> Assignment:
        """
        Raises:
            ResourceNotFoundError: If the parcel has no assignment
        """
        async with store_errors("assignment lookup"):
            result = await db.execute(select(Assignment).where(Assignment.parcel_id == parcel_id))
            assignment = result.scalar_one_or_none()
        if assignment is None:
            raise ResourceNotFoundError("Assignment for parcel", parcel_id)
        return assignment

    @staticmethod
    async def reconcile_orphaned_assignment(db: AsyncSession, parcel_id: int) -> bool:
        """
        Remove an assignment whose parcel never reached an assigned state.

        Callers that received PartialFailureError use this to restore the
        invariant that assignments only exist for parcels on the way or delivered.

        Returns:
            True if an orphaned assignment was deleted
        """
        async with unit_of_work(db, "assignment reconciliation"):
            parcel = await ParcelLifecycleController.load_parcel(db, parcel_id)
            if parcel.status in ASSIGNED_STATES:
                return False

            result = await db.execute(
                delete(Assignment).where(Assignment.parcel_id == parcel.id)
            )
            removed = result.rowcount > 0

        if removed:
            logger.warning("Removed orphaned assignment of %s parcel %s", parcel.status.value, parcel_id)
        return removed
