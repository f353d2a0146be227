"""
Rating Aggregator Tests.

Validates review acceptance rules, the incremental running average, and the
compare-and-swap retry loop under contention.
"""

import pytest
from statistics import mean
from sqlalchemy import func, select

from courier.app.core.exceptions import (
    ConflictError,
    DuplicateReviewError,
    InputValidationError,
    InvalidStateError,
    ParcelNotReviewableError,
    ResourceNotFoundError,
)
from courier.app.domain.assignment.assignment_service import AssignmentService
from courier.app.domain.rating.aggregate_store import SqlRatingAggregateStore
from courier.app.domain.rating.rating_aggregator import RatingAggregator, incremental_mean
from courier.app.models.enums import UserRole
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.review import Review


class FlakyStore(SqlRatingAggregateStore):
    """SQL store whose first compare-and-swap calls report a lost race."""

    def __init__(self, db, misses):
        super().__init__(db)
        self.misses = misses
        self.cas_calls = 0

    async def compare_and_swap(self, agent_id, expected_total, new_total, new_average):
        self.cas_calls += 1
        if self.cas_calls <= self.misses:
            return False
        return await super().compare_and_swap(agent_id, expected_total, new_total, new_average)


async def count_reviews(db, agent_id):
    result = await db.execute(select(func.count()).select_from(Review).where(Review.agent_id == agent_id))
    return result.scalar_one()


def test_incremental_mean():
    assert incremental_mean(0.0, 0, 4) == 4.0
    assert incremental_mean(4.0, 1, 2) == 3.0
    assert incremental_mean(3.0, 2, 5) == pytest.approx(11 / 3)


@pytest.mark.asyncio
async def test_first_and_second_review(db_session, customer, agent, deliver):
    """Rating 4 gives 1 review at 4.0; a following rating 2 gives 2 reviews at 3.0."""
    first = await deliver(agent)
    review = await RatingAggregator.submit_review(
        db_session, first.id, agent.id, customer.id, 4, "On time, friendly"
    )

    assert review.id is not None
    assert review.comment == "On time, friendly"
    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == 1
    assert aggregate.average_rating == pytest.approx(4.0)

    second = await deliver(agent)
    await RatingAggregator.submit_review(db_session, second.id, agent.id, customer.id, 2)

    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == 2
    assert aggregate.average_rating == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_running_average_matches_full_mean(db_session, make_user, agent, deliver):
    """Incremental updates stay equal to the mean over all ratings."""
    ratings = [5, 3, 4, 1, 2, 5, 5, 4, 3, 2, 1, 4, 5, 5, 3]
    parcel = await deliver(agent)

    for index, rating in enumerate(ratings):
        reviewer = await make_user(f"reviewer{index}")
        await RatingAggregator.submit_review(db_session, parcel.id, agent.id, reviewer.id, rating)

    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == len(ratings)
    assert aggregate.average_rating == pytest.approx(mean(ratings))


@pytest.mark.asyncio
async def test_duplicate_review_leaves_aggregate_unchanged(db_session, customer, agent, deliver):
    parcel = await deliver(agent)
    await RatingAggregator.submit_review(db_session, parcel.id, agent.id, customer.id, 5)

    with pytest.raises(DuplicateReviewError) as exc_info:
        await RatingAggregator.submit_review(db_session, parcel.id, agent.id, customer.id, 1)

    assert exc_info.value.details == {"parcel_id": parcel.id, "reviewer_id": customer.id}
    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == 1
    assert aggregate.average_rating == pytest.approx(5.0)
    assert await count_reviews(db_session, agent.id) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [ParcelStatus.PENDING, ParcelStatus.CANCELED])
async def test_review_of_undelivered_parcel(db_session, customer, agent, make_parcel, status):
    parcel = await make_parcel(status=status)

    with pytest.raises(InvalidStateError) as exc_info:
        await RatingAggregator.submit_review(db_session, parcel.id, agent.id, customer.id, 4)

    assert isinstance(exc_info.value, ParcelNotReviewableError)
    assert exc_info.value.details["current_status"] == status.value
    assert exc_info.value.status_code == 404


@pytest.mark.asyncio
async def test_review_of_on_the_way_parcel(db_session, customer, agent, parcel, delivery_date):
    await AssignmentService.assign_parcel(db_session, parcel.id, agent.id, delivery_date)

    with pytest.raises(ParcelNotReviewableError):
        await RatingAggregator.submit_review(db_session, parcel.id, agent.id, customer.id, 4)

    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == 0


@pytest.mark.asyncio
async def test_review_of_missing_parcel(db_session, customer, agent):
    with pytest.raises(ParcelNotReviewableError):
        await RatingAggregator.submit_review(db_session, 4242, agent.id, customer.id, 4)


@pytest.mark.asyncio
async def test_review_for_unknown_agent(db_session, customer, agent, deliver):
    parcel = await deliver(agent)

    with pytest.raises(ResourceNotFoundError):
        await RatingAggregator.submit_review(db_session, parcel.id, 4242, customer.id, 4)


@pytest.mark.asyncio
async def test_review_for_agent_who_did_not_deliver(db_session, customer, agent, second_agent, deliver):
    parcel = await deliver(agent)

    with pytest.raises(InputValidationError) as exc_info:
        await RatingAggregator.submit_review(db_session, parcel.id, second_agent.id, customer.id, 4)

    assert exc_info.value.details["delivery_agent_id"] == agent.id
    assert await count_reviews(db_session, second_agent.id) == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("rating", [0, 6, -1, 3.5, "4", True, None])
async def test_rating_must_be_integer_in_range(db_session, customer, agent, deliver, rating):
    parcel = await deliver(agent)

    with pytest.raises(InputValidationError):
        await RatingAggregator.submit_review(db_session, parcel.id, agent.id, customer.id, rating)

    assert await count_reviews(db_session, agent.id) == 0


@pytest.mark.asyncio
async def test_lost_swap_is_retried(db_session, customer, agent, deliver):
    """A compare-and-swap miss rolls the attempt back and runs it again."""
    parcel = await deliver(agent)
    store = FlakyStore(db_session, misses=2)

    review = await RatingAggregator.submit_review(
        db_session, parcel.id, agent.id, customer.id, 3, store=store
    )

    assert store.cas_calls == 3
    assert review.id is not None
    assert await count_reviews(db_session, agent.id) == 1
    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == 1
    assert aggregate.average_rating == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_contention_exhausts_attempts(db_session, customer, agent, deliver, caplog):
    parcel = await deliver(agent)
    store = FlakyStore(db_session, misses=100)

    with caplog.at_level("WARNING", logger="courier.rating"):
        with pytest.raises(ConflictError) as exc_info:
            await RatingAggregator.submit_review(
                db_session, parcel.id, agent.id, customer.id, 3, store=store, max_attempts=4
            )

    assert store.cas_calls == 4
    assert exc_info.value.details["attempts"] == 4
    assert any(record.levelname == "WARNING" for record in caplog.records)
    assert await count_reviews(db_session, agent.id) == 0
    aggregate = await RatingAggregator.get_aggregate(db_session, agent.id)
    assert aggregate.total_reviews == 0


@pytest.mark.asyncio
async def test_top_agents_order_and_tie_break(db_session, make_user):
    low = await make_user("low", UserRole.DELIVERY_AGENT, total_reviews=3, average_rating=2.0)
    tied_first = await make_user("tied_a", UserRole.DELIVERY_AGENT, total_reviews=2, average_rating=4.5)
    tied_second = await make_user("tied_b", UserRole.DELIVERY_AGENT, total_reviews=4, average_rating=4.5)
    best = await make_user("best", UserRole.DELIVERY_AGENT, total_reviews=1, average_rating=5.0)
    await make_user("not_an_agent", UserRole.CUSTOMER, total_reviews=9, average_rating=5.0)
    await make_user("inactive", UserRole.DELIVERY_AGENT, is_active=False, total_reviews=9, average_rating=5.0)

    top = await RatingAggregator.top_agents(db_session, 3)
    assert [a.id for a in top] == [best.id, tied_first.id, tied_second.id]

    everyone = await RatingAggregator.top_agents(db_session, 10)
    assert [a.id for a in everyone] == [best.id, tied_first.id, tied_second.id, low.id]


@pytest.mark.asyncio
async def test_top_agents_rejects_non_positive_n(db_session):
    with pytest.raises(InputValidationError):
        await RatingAggregator.top_agents(db_session, 0)


@pytest.mark.asyncio
async def test_top_agents_is_capped(db_session, make_user, mocker):
    mocker.patch("courier.app.domain.rating.rating_aggregator.settings.top_agents_max_limit", 2)
    for index in range(4):
        await make_user(f"capped{index}", UserRole.DELIVERY_AGENT)

    top = await RatingAggregator.top_agents(db_session, 50)
    assert len(top) == 2


@pytest.mark.asyncio
async def test_aggregate_of_unknown_agent(db_session, customer):
    with pytest.raises(ResourceNotFoundError):
        await RatingAggregator.get_aggregate(db_session, customer.id)
