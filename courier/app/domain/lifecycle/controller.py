"""
Parcel Lifecycle Controller (Domain Logic).

Validates the current state of a parcel before any status write and applies
the write as a conditional update guarded by the status that was read, so a
concurrent writer can never be silently overwritten.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.exceptions import (
    ConflictError,
    InputValidationError,
    InvalidStateError,
    MissingAssignmentError,
    ResourceNotFoundError,
)
from courier.app.db.session import store_errors, unit_of_work
from courier.app.domain.lifecycle.transitions import (
    TERMINAL_STATES,
    is_terminal,
    requires_assignment,
    validate_transition,
)
from courier.app.models.assignment import Assignment
from courier.app.models.parcel import Parcel
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.payment import Payment
from courier.app.models.user import User

logger = logging.getLogger("courier.lifecycle")


# Shipment details a sender may still correct while the parcel is pending
EDITABLE_FIELDS = frozenset({
    "sender_name", "sender_phone",
    "receiver_name", "receiver_email", "receiver_phone", "delivery_address",
    "parcel_type", "weight_kg", "cost", "requested_delivery_date",
})

REQUIRED_FIELDS = frozenset({
    "sender_name", "receiver_name", "delivery_address", "weight_kg", "cost", "requested_delivery_date",
})


def _validate_details(parcel_id: int, changes: Dict[str, Any]) -> None:
    if not changes:
        raise InputValidationError("No parcel details to update", {"parcel_id": parcel_id})

    unknown = sorted(set(changes) - EDITABLE_FIELDS)
    if unknown:
        raise InputValidationError(
            f"Fields cannot be edited: {', '.join(unknown)}",
            {"parcel_id": parcel_id, "fields": unknown}
        )

    cleared = sorted(field for field in REQUIRED_FIELDS & set(changes) if changes[field] is None)
    if cleared:
        raise InputValidationError(
            f"Fields cannot be empty: {', '.join(cleared)}",
            {"parcel_id": parcel_id, "fields": cleared}
        )

    if "weight_kg" in changes and changes["weight_kg"] <= 0:
        raise InputValidationError("Parcel weight must be greater than zero", {"weight_kg": changes["weight_kg"]})
    if "cost" in changes and changes["cost"] < 0:
        raise InputValidationError("Parcel cost cannot be negative", {"cost": changes["cost"]})


@dataclass(frozen=True)
class AssignmentContext:
    """Assignment data that travels with the pending → on_the_way transition."""
    assignment_id: int
    agent_id: int
    agent_contact: Optional[str]
    approximate_delivery_date: date


class ParcelLifecycleController:

    @staticmethod
    async def load_parcel(db: AsyncSession, parcel_id: int) -> Parcel:
        """
        Read a fresh snapshot of a parcel, bypassing the session identity map.

        Raises:
            ResourceNotFoundError: If the parcel does not exist
        """
        result = await db.execute(
            select(Parcel)
            .where(Parcel.id == parcel_id)
            .execution_options(populate_existing=True)
        )
        parcel = result.scalar_one_or_none()
        if parcel is None:
            raise ResourceNotFoundError("Parcel", parcel_id)
        return parcel

    @staticmethod
    async def get_parcel(db: AsyncSession, parcel_id: int) -> Parcel:
        async with store_errors("parcel lookup"):
            return await ParcelLifecycleController.load_parcel(db, parcel_id)

    @staticmethod
    async def book_parcel(db: AsyncSession, sender: User, details: Dict[str, Any]) -> Parcel:
        """
        Book a new parcel for a sender.

        The parcel starts pending, unpaid and unassigned. Sender name and
        email default to the sender's profile.

        Raises:
            InputValidationError: If weight or cost are out of range
        """
        weight_kg = details.get("weight_kg")
        cost = details.get("cost")
        if weight_kg is None or weight_kg <= 0:
            raise InputValidationError("Parcel weight must be greater than zero", {"weight_kg": weight_kg})
        if cost is None or cost < 0:
            raise InputValidationError("Parcel cost cannot be negative", {"cost": cost})

        parcel = Parcel(
            sender_id=sender.id,
            sender_name=details.get("sender_name") or sender.full_name or sender.username,
            sender_email=details.get("sender_email") or sender.email,
            sender_phone=details.get("sender_phone") or sender.phone,
            receiver_name=details["receiver_name"],
            receiver_email=details.get("receiver_email"),
            receiver_phone=details.get("receiver_phone"),
            delivery_address=details["delivery_address"],
            parcel_type=details.get("parcel_type"),
            weight_kg=weight_kg,
            cost=cost,
            requested_delivery_date=details["requested_delivery_date"],
            status=ParcelStatus.PENDING,
            is_paid=False,
        )

        async with unit_of_work(db, "parcel booking"):
            db.add(parcel)
            await db.flush()
            await db.refresh(parcel)

        logger.info("Parcel %s booked by user %s", parcel.id, sender.id)
        return parcel

    @staticmethod
    async def update_parcel_details(db: AsyncSession, parcel_id: int, changes: Dict[str, Any]) -> Parcel:
        """
        Edit the shipment details of a parcel that is still pending.

        Only the fields in EDITABLE_FIELDS can change; status, payment and
        assignment fields never move through here. The write is guarded by
        the pending status, so a parcel assigned or canceled concurrently is
        left untouched.

        Raises:
            InputValidationError: No changes, unknown fields, or invalid values
            ResourceNotFoundError: Parcel does not exist
            InvalidStateError: Parcel is no longer pending
            ConflictError: Parcel left pending during the update
        """
        _validate_details(parcel_id, changes)

        async with unit_of_work(db, "parcel details update"):
            parcel = await ParcelLifecycleController.load_parcel(db, parcel_id)
            if parcel.status != ParcelStatus.PENDING:
                raise InvalidStateError(
                    f"Parcel {parcel.id} is '{parcel.status.value}', only pending parcels can be edited",
                    {"parcel_id": parcel.id, "current_status": parcel.status.value}
                )

            result = await db.execute(
                update(Parcel)
                .where(Parcel.id == parcel.id, Parcel.status == ParcelStatus.PENDING)
                .values(**changes, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Parcel {parcel.id} changed while editing its details",
                    {"parcel_id": parcel.id, "current_status": parcel.status.value}
                )

            parcel = await ParcelLifecycleController.load_parcel(db, parcel.id)

        logger.info("Parcel %s details updated: %s", parcel.id, ", ".join(sorted(changes)))
        return parcel

    @staticmethod
    async def apply_transition(
        db: AsyncSession,
        parcel_id: int,
        target_status: ParcelStatus,
        context: Optional[AssignmentContext] = None
    ) -> Parcel:
        """
        Validate and write a status transition without committing.

        Used inside a caller's transaction (the assignment flow) and by
        request_transition.

        Raises:
            ResourceNotFoundError: Parcel does not exist
            InvalidTransitionError: Pair not in the transition table
            MissingAssignmentError: on_the_way requested without an assignment of this parcel
            ConflictError: Another writer changed the status after it was read
        """
        try:
            target = ParcelStatus(target_status)
        except ValueError:
            raise InputValidationError(
                f"Unknown parcel status '{target_status}'",
                {"requested_status": str(target_status)}
            )

        parcel = await ParcelLifecycleController.load_parcel(db, parcel_id)
        current = parcel.status

        validate_transition(parcel.id, current, target)

        values: Dict[str, Any] = {"status": target, "updated_at": func.now()}
        if requires_assignment(target):
            if context is None:
                raise MissingAssignmentError(parcel.id)
            await ParcelLifecycleController._verify_assignment(db, parcel.id, context)
            values.update(
                assignment_id=context.assignment_id,
                delivery_agent_id=context.agent_id,
                delivery_agent_contact=context.agent_contact,
                approximate_delivery_date=context.approximate_delivery_date,
            )

        result = await db.execute(
            update(Parcel)
            .where(Parcel.id == parcel.id, Parcel.status == current)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ConflictError(
                f"Parcel {parcel.id} changed while moving from '{current.value}' to '{target.value}'",
                {"parcel_id": parcel.id, "current_status": current.value, "requested_status": target.value}
            )

        logger.info("Parcel %s: %s -> %s", parcel.id, current.value, target.value)
        return await ParcelLifecycleController.load_parcel(db, parcel.id)

    @staticmethod
    async def _verify_assignment(db: AsyncSession, parcel_id: int, context: AssignmentContext) -> None:
        """The context must name a stored assignment of this parcel and agent."""
        result = await db.execute(
            select(Assignment.id).where(
                Assignment.id == context.assignment_id,
                Assignment.parcel_id == parcel_id,
                Assignment.agent_id == context.agent_id
            )
        )
        if result.first() is None:
            raise MissingAssignmentError(parcel_id, context.assignment_id)

    @staticmethod
    async def request_transition(
        db: AsyncSession,
        parcel_id: int,
        target_status: ParcelStatus,
        context: Optional[AssignmentContext] = None
    ) -> Parcel:
        """
        Move a parcel to a new delivery status and commit.

        Returns:
            Updated parcel snapshot
        """
        async with unit_of_work(db, "parcel status transition"):
            parcel = await ParcelLifecycleController.apply_transition(db, parcel_id, target_status, context)
        return parcel

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        parcel_id: int,
        transaction_id: str,
        amount: float
    ) -> Tuple[Parcel, Payment]:
        """
        Mark a parcel as paid and store the gateway payment.

        Payment is orthogonal to delivery status: it never changes status and
        is accepted while the parcel is pending or on the way.

        Raises:
            InputValidationError: Missing transaction id or non-positive amount
            ResourceNotFoundError: Parcel does not exist
            InvalidStateError: Parcel is delivered or canceled
            ConflictError: Parcel already paid, or transaction id already used
        """
        if not transaction_id:
            raise InputValidationError("Transaction id is required", {"parcel_id": parcel_id})
        if amount is None or amount <= 0:
            raise InputValidationError("Payment amount must be greater than zero", {"amount": amount})

        async with unit_of_work(db, "payment recording"):
            parcel = await ParcelLifecycleController.load_parcel(db, parcel_id)
            if is_terminal(parcel.status):
                raise InvalidStateError(
                    f"Parcel {parcel.id} is '{parcel.status.value}' and can no longer be paid",
                    {"parcel_id": parcel.id, "current_status": parcel.status.value}
                )
            if parcel.is_paid:
                raise ConflictError(f"Parcel {parcel.id} is already paid", {"parcel_id": parcel.id})

            payment = Payment(parcel_id=parcel.id, transaction_id=transaction_id, amount=amount)
            db.add(payment)
            try:
                await db.flush()
            except IntegrityError as exc:
                raise ConflictError(
                    f"Transaction {transaction_id} was already recorded",
                    {"parcel_id": parcel.id, "transaction_id": transaction_id}
                ) from exc
            await db.refresh(payment)

            result = await db.execute(
                update(Parcel)
                .where(
                    Parcel.id == parcel.id,
                    Parcel.is_paid.is_(False),
                    Parcel.status.not_in(list(TERMINAL_STATES))
                )
                .values(is_paid=True, updated_at=func.now())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise ConflictError(
                    f"Parcel {parcel.id} changed while recording payment",
                    {"parcel_id": parcel.id}
                )

            parcel = await ParcelLifecycleController.load_parcel(db, parcel.id)

        logger.info("Parcel %s paid with transaction %s", parcel.id, transaction_id)
        return parcel, payment
