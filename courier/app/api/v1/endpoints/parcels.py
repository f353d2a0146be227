"""
Parcel API Endpoints.

Customers book, edit and cancel their parcels, the delivering agent confirms
delivery, and payments are recorded against parcels. Every status write goes
through the lifecycle controller.
"""

from fastapi import APIRouter, Depends, status, Path
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.db.session import get_db
from courier.app.models.enums import UserRole
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.user import User
from courier.app.schemas.parcel import ParcelCreate, ParcelUpdate, ParcelStatusUpdate, ParcelResponse
from courier.app.schemas.payment import PaymentCreate, PaymentResponse, RecordPaymentResponse
from courier.app.core.guards import require_role, OwnershipGuard
from courier.app.core.dependencies import get_current_user, get_current_user_record
from courier.app.domain.lifecycle.controller import ParcelLifecycleController
from courier.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/parcels", tags=["Parcels"])
ownership_guard = OwnershipGuard()

# Audit action per accepted target status
STATUS_AUDIT_ACTIONS = {
    ParcelStatus.CANCELED: AuditAction.PARCEL_CANCELLED,
    ParcelStatus.DELIVERED: AuditAction.PARCEL_DELIVERED,
}


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def book_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(require_role([UserRole.CUSTOMER])),
    sender: User = Depends(get_current_user_record),
    db: AsyncSession = Depends(get_db)
):
    """
    Book a new parcel (Customer only).

    The parcel starts pending and unpaid.
    """
    parcel = await ParcelLifecycleController.book_parcel(db, sender, parcel_data.model_dump())

    response = ParcelResponse.model_validate(parcel)

    await log_event(
        db=db,
        action=AuditAction.PARCEL_BOOKED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=parcel.id,
        metadata={"weight_kg": parcel.weight_kg, "cost": parcel.cost}
    )

    return response


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Get the current snapshot of a parcel (sender, delivering agent or admin)."""
    parcel = await ParcelLifecycleController.get_parcel(db, parcel_id)
    ownership_guard.enforce_participant(parcel, current_user)
    return ParcelResponse.model_validate(parcel)


@router.patch("/{parcel_id}", response_model=ParcelResponse)
async def update_parcel(
    parcel_data: ParcelUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.CUSTOMER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit the details of a pending parcel (sender or admin).

    Only the fields sent are changed. Parcels on the way, delivered or
    canceled can no longer be edited.
    """
    parcel = await ParcelLifecycleController.get_parcel(db, parcel_id)
    ownership_guard.enforce_sender(parcel, current_user)

    changes = parcel_data.model_dump(exclude_unset=True)
    parcel = await ParcelLifecycleController.update_parcel_details(db, parcel_id, changes)

    response = ParcelResponse.model_validate(parcel)

    await log_event(
        db=db,
        action=AuditAction.PARCEL_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=parcel.id,
        metadata={"updated_fields": sorted(changes)}
    )

    return response


@router.patch("/{parcel_id}/status", response_model=ParcelResponse)
async def update_parcel_status(
    update: ParcelStatusUpdate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.CUSTOMER, UserRole.ADMIN, UserRole.DELIVERY_AGENT])),
    db: AsyncSession = Depends(get_db)
):
    """
    Request a delivery status transition.

    - pending → canceled (cancellation by the sender)
    - on_the_way → delivered (confirmation by the delivering agent)

    Admins may do both. Moving a parcel on the way is only possible through
    the assignment endpoint.
    """
    previous = await ParcelLifecycleController.get_parcel(db, parcel_id)
    if update.status == ParcelStatus.DELIVERED:
        ownership_guard.enforce_delivery_agent(previous, current_user)
    else:
        ownership_guard.enforce_sender(previous, current_user)
    previous_status = previous.status

    parcel = await ParcelLifecycleController.request_transition(db, parcel_id, update.status)

    response = ParcelResponse.model_validate(parcel)

    await log_event(
        db=db,
        action=STATUS_AUDIT_ACTIONS[parcel.status],
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=parcel.id,
        metadata={"from": previous_status.value, "to": parcel.status.value}
    )

    return response


@router.post("/{parcel_id}/payment", response_model=RecordPaymentResponse, status_code=status.HTTP_201_CREATED)
async def record_payment(
    payment_data: PaymentCreate,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_role([UserRole.CUSTOMER, UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a completed gateway payment and mark the parcel paid (sender or admin).

    Independent of delivery status; rejected once the parcel is delivered or canceled.
    """
    parcel = await ParcelLifecycleController.get_parcel(db, parcel_id)
    ownership_guard.enforce_sender(parcel, current_user)

    parcel, payment = await ParcelLifecycleController.record_payment(
        db, parcel_id, payment_data.transaction_id, payment_data.amount
    )

    response = RecordPaymentResponse(
        payment=PaymentResponse.model_validate(payment),
        parcel=ParcelResponse.model_validate(parcel)
    )

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_RECORDED,
        actor_id=current_user["user_id"],
        actor_username=current_user["sub"],
        parcel_id=parcel.id,
        metadata={"transaction_id": payment.transaction_id, "amount": payment.amount}
    )

    return response
