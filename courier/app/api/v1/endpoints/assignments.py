"""
Parcel Assignment API Endpoints.

Admins assign pending parcels to delivery agents and correct assignments of
parcels that are on the way.
"""

from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.db.session import get_db
from courier.app.models.enums import UserRole
from courier.app.schemas.assignment import AssignmentRequest, AssignmentResponse, AssignParcelResponse
from courier.app.schemas.parcel import ParcelResponse
from courier.app.core.guards import require_role, OwnershipGuard
from courier.app.core.dependencies import get_current_user
from courier.app.domain.assignment.assignment_service import AssignmentService
from courier.app.domain.lifecycle.controller import ParcelLifecycleController
from courier.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/parcels", tags=["Assignments"])
ownership_guard = OwnershipGuard()


@router.post("/{parcel_id}/assignment", response_model=AssignParcelResponse, status_code=status.HTTP_201_CREATED)
async def assign_parcel(
    assignment_data: AssignmentRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Assign a pending parcel to a delivery agent (Admin only).

    Creates the assignment and moves the parcel on the way atomically.
    A parcel that is no longer pending answers 409.
    """
    assignment, parcel = await AssignmentService.assign_parcel(
        db,
        parcel_id,
        assignment_data.agent_id,
        assignment_data.approximate_delivery_date,
        metadata={"agent_contact": assignment_data.agent_contact}
    )

    response = AssignParcelResponse(
        assignment=AssignmentResponse.model_validate(assignment),
        parcel=ParcelResponse.model_validate(parcel)
    )

    await log_event(
        db=db,
        action=AuditAction.PARCEL_ASSIGNED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=parcel.id,
        metadata={
            "assignment_id": assignment.id,
            "agent_id": assignment.agent_id,
            "approximate_delivery_date": assignment.approximate_delivery_date.isoformat()
        }
    )

    return response


@router.patch("/{parcel_id}/assignment", response_model=ParcelResponse)
async def update_assignment(
    assignment_data: AssignmentRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Correct the agent or approximate date of a parcel on the way (Admin only).
    """
    parcel = await AssignmentService.update_assignment(
        db,
        parcel_id,
        assignment_data.agent_id,
        assignment_data.approximate_delivery_date,
        metadata={"agent_contact": assignment_data.agent_contact}
    )

    response = ParcelResponse.model_validate(parcel)

    await log_event(
        db=db,
        action=AuditAction.ASSIGNMENT_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=parcel.id,
        metadata={
            "agent_id": parcel.delivery_agent_id,
            "approximate_delivery_date": parcel.approximate_delivery_date.isoformat()
        }
    )

    return response


@router.get("/{parcel_id}/assignment", response_model=AssignmentResponse)
async def get_assignment(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the original assignment record of a parcel (sender, delivering agent or admin)."""
    parcel = await ParcelLifecycleController.get_parcel(db, parcel_id)
    ownership_guard.enforce_participant(parcel, current_user)
    assignment = await AssignmentService.get_assignment(db, parcel_id)
    return AssignmentResponse.model_validate(assignment)
