"""
Failure Injection Tests.

Validates that store outages surface as StoreUnavailableError and are never
retried, and that failed units of work leave nothing behind.
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import InterfaceError, OperationalError, TimeoutError as PoolTimeoutError

from courier.app.core.exceptions import InputValidationError, StoreUnavailableError
from courier.app.db.session import store_errors, unit_of_work
from courier.app.domain.assignment.assignment_service import AssignmentService
from courier.app.domain.lifecycle.controller import ParcelLifecycleController
from courier.app.domain.rating.rating_aggregator import RatingAggregator
from courier.app.models.parcel import Parcel
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.user import User


def connection_lost():
    return OperationalError("SELECT 1", {}, Exception("server closed the connection unexpectedly"))


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", [
    connection_lost(),
    InterfaceError("SELECT 1", {}, Exception("connection is closed")),
    PoolTimeoutError("QueuePool limit reached"),
    TimeoutError("statement timeout"),
])
async def test_store_errors_translates_failures(failure):
    with pytest.raises(StoreUnavailableError) as exc_info:
        async with store_errors("parcel lookup"):
            raise failure

    assert exc_info.value.status_code == 503
    assert exc_info.value.details == {"operation": "parcel lookup"}
    assert exc_info.value.__cause__ is failure


@pytest.mark.asyncio
async def test_store_errors_passes_domain_errors_through():
    with pytest.raises(InputValidationError):
        async with store_errors("parcel booking"):
            raise InputValidationError("bad weight")


@pytest.mark.asyncio
async def test_unit_of_work_rolls_back_on_error(db_session, make_user):
    user = await make_user("rollback_me")

    with pytest.raises(InputValidationError):
        async with unit_of_work(db_session, "profile update"):
            await db_session.execute(
                User.__table__.update().where(User.id == user.id).values(full_name="Changed")
            )
            raise InputValidationError("abort")

    result = await db_session.execute(select(User.full_name).where(User.id == user.id))
    assert result.scalar_one() is None


@pytest.mark.asyncio
async def test_lookup_during_outage(db_session, parcel, mocker):
    execute = mocker.patch.object(db_session, "execute", side_effect=connection_lost())

    with pytest.raises(StoreUnavailableError) as exc_info:
        await ParcelLifecycleController.get_parcel(db_session, parcel.id)

    assert "parcel lookup" in exc_info.value.message
    assert execute.call_count == 1


@pytest.mark.asyncio
async def test_transition_during_outage_is_not_retried(db_session, parcel, mocker):
    execute = mocker.patch.object(db_session, "execute", side_effect=connection_lost())

    with pytest.raises(StoreUnavailableError):
        await ParcelLifecycleController.request_transition(db_session, parcel.id, ParcelStatus.CANCELED)

    assert execute.call_count == 1


@pytest.mark.asyncio
async def test_assignment_during_outage(db_session, parcel, agent, delivery_date, mocker):
    mocker.patch.object(db_session, "execute", side_effect=connection_lost())

    with pytest.raises(StoreUnavailableError):
        await AssignmentService.assign_parcel(db_session, parcel.id, agent.id, delivery_date)


@pytest.mark.asyncio
async def test_review_during_outage_is_not_retried(db_session, customer, agent, deliver, mocker):
    """CAS retries cover contention only; an outage fails on the first attempt."""
    parcel = await deliver(agent)
    execute = mocker.patch.object(db_session, "execute", side_effect=connection_lost())

    with pytest.raises(StoreUnavailableError):
        await RatingAggregator.submit_review(db_session, parcel.id, agent.id, customer.id, 5)

    assert execute.call_count == 1


@pytest.mark.asyncio
async def test_commit_timeout_surfaces_as_store_unavailable(db_session, customer, delivery_date, mocker):
    mocker.patch.object(db_session, "commit", side_effect=TimeoutError("commit timed out"))

    with pytest.raises(StoreUnavailableError):
        await ParcelLifecycleController.book_parcel(db_session, customer, {
            "receiver_name": "Kiran Receiver",
            "delivery_address": "12 MG Road, Pune",
            "weight_kg": 1.0,
            "cost": 50.0,
            "requested_delivery_date": delivery_date,
        })

    mocker.stopall()
    await db_session.rollback()
    result = await db_session.execute(select(func.count()).select_from(Parcel))
    assert result.scalar_one() == 0
