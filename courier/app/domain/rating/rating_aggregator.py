"""
Rating Aggregator (Domain Logic).

Turns an accepted review into an update of the agent's running average.
The review insert and the aggregate swap share a transaction; a lost swap
rolls both back and the whole read-compute-write cycle runs again.
"""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.config import settings
from courier.app.core.exceptions import (
    AppException,
    ConflictError,
    DuplicateReviewError,
    InputValidationError,
    ParcelNotReviewableError,
    ResourceNotFoundError,
)
from courier.app.db.session import store_errors
from courier.app.domain.rating.aggregate_store import (
    RatingAggregate,
    RatingAggregateStore,
    SqlRatingAggregateStore,
)
from courier.app.models.enums import UserRole
from courier.app.models.parcel import Parcel
from courier.app.models.parcel_enums import ParcelStatus
from courier.app.models.review import Review
from courier.app.models.user import User

logger = logging.getLogger("courier.rating")

MIN_RATING = 1
MAX_RATING = 5


def incremental_mean(current_average: float, count: int, value: int) -> float:
    """Mean of count values averaging current_average plus one more value."""
    return (current_average * count + value) / (count + 1)


def validate_rating(rating) -> None:
    # bool is an int subclass; True must not count as a 1-star rating
    if isinstance(rating, bool) or not isinstance(rating, int):
        raise InputValidationError("Rating must be an integer", {"rating": rating})
    if not MIN_RATING <= rating <= MAX_RATING:
        raise InputValidationError(
            f"Rating must be between {MIN_RATING} and {MAX_RATING}",
            {"rating": rating}
        )


class RatingAggregator:

    @staticmethod
    async def submit_review(
        db: AsyncSession,
        parcel_id: int,
        agent_id: int,
        reviewer_id: int,
        rating: int,
        text: Optional[str] = None,
        store: Optional[RatingAggregateStore] = None,
        max_attempts: Optional[int] = None
    ) -> Review:
        """
        Record a review and fold its rating into the agent's aggregate.

        Args:
            db: Database session
            parcel_id: Delivered parcel being reviewed
            agent_id: Agent who delivered it
            reviewer_id: User submitting the review
            rating: Integer 1-5
            text: Free-text comment
            store: Aggregate store, defaults to the SQL store on this session
            max_attempts: Compare-and-swap attempts before giving up

        Returns:
            Created Review with its id

        Raises:
            InputValidationError: Bad rating, or agent did not deliver the parcel
            ParcelNotReviewableError: Parcel missing or not delivered
            ResourceNotFoundError: Agent does not exist
            DuplicateReviewError: Reviewer already reviewed this parcel
            ConflictError: Aggregate contention outlasted max_attempts
        """
        validate_rating(rating)
        store = store or SqlRatingAggregateStore(db)
        max_attempts = max_attempts or settings.rating_cas_max_attempts

        async with store_errors("review submission"):
            for attempt in range(1, max_attempts + 1):
                try:
                    review = await RatingAggregator._attempt_submit(
                        db, store, parcel_id, agent_id, reviewer_id, rating, text
                    )
                except AppException:
                    await db.rollback()
                    raise

                if review is not None:
                    await db.commit()
                    logger.info(
                        "Review %s recorded for agent %s (parcel %s, attempt %s)",
                        review.id, agent_id, parcel_id, attempt
                    )
                    return review

                await db.rollback()
                logger.info(
                    "Rating aggregate of agent %s changed concurrently, retrying (%s/%s)",
                    agent_id, attempt, max_attempts
                )

        logger.warning("Gave up updating rating of agent %s after %s attempts", agent_id, max_attempts)
        raise ConflictError(
            f"Rating of agent {agent_id} is under heavy contention, retry the review",
            {"agent_id": agent_id, "parcel_id": parcel_id, "attempts": max_attempts}
        )

    @staticmethod
    async def _attempt_submit(
        db: AsyncSession,
        store: RatingAggregateStore,
        parcel_id: int,
        agent_id: int,
        reviewer_id: int,
        rating: int,
        text: Optional[str]
    ) -> Optional[Review]:
        """One read-compute-write cycle. Returns None when the swap lost a race."""
        result = await db.execute(
            select(Parcel.id, Parcel.status, Parcel.delivery_agent_id).where(Parcel.id == parcel_id)
        )
        parcel = result.one_or_none()
        if parcel is None:
            raise ParcelNotReviewableError(parcel_id)
        if parcel.status != ParcelStatus.DELIVERED:
            raise ParcelNotReviewableError(parcel_id, ParcelStatus(parcel.status).value)

        aggregate = await store.read(agent_id)
        if aggregate is None:
            raise ResourceNotFoundError("Delivery agent", agent_id)

        if parcel.delivery_agent_id != agent_id:
            raise InputValidationError(
                f"Agent {agent_id} did not deliver parcel {parcel_id}",
                {"parcel_id": parcel_id, "agent_id": agent_id, "delivery_agent_id": parcel.delivery_agent_id}
            )

        existing = await db.execute(
            select(Review.id).where(Review.parcel_id == parcel_id, Review.reviewer_id == reviewer_id)
        )
        if existing.first() is not None:
            raise DuplicateReviewError(parcel_id, reviewer_id)

        review = Review(
            parcel_id=parcel_id,
            agent_id=agent_id,
            reviewer_id=reviewer_id,
            rating=rating,
            comment=text,
        )
        db.add(review)
        try:
            await db.flush()
        except IntegrityError as exc:
            # A concurrent submission for the same (parcel, reviewer) committed first
            raise DuplicateReviewError(parcel_id, reviewer_id) from exc

        new_average = incremental_mean(aggregate.average_rating, aggregate.total_reviews, rating)
        swapped = await store.compare_and_swap(
            agent_id,
            expected_total=aggregate.total_reviews,
            new_total=aggregate.total_reviews + 1,
            new_average=new_average
        )
        if not swapped:
            return None

        await db.refresh(review)
        return review

    @staticmethod
    async def get_aggregate(db: AsyncSession, agent_id: int) -> RatingAggregate:
        """
        Raises:
            ResourceNotFoundError: Agent does not exist
        """
        async with store_errors("rating lookup"):
            aggregate = await SqlRatingAggregateStore(db).read(agent_id)
        if aggregate is None:
            raise ResourceNotFoundError("Delivery agent", agent_id)
        return aggregate

    @staticmethod
    async def top_agents(db: AsyncSession, n: int) -> List[User]:
        """
        Highest rated active delivery agents.

        Ordered by average rating descending, ties broken by ascending agent
        id so the ranking never depends on store row order.

        Raises:
            InputValidationError: n is below 1
        """
        if n < 1:
            raise InputValidationError("Number of agents must be at least 1", {"n": n})
        limit = min(n, settings.top_agents_max_limit)

        async with store_errors("top agents ranking"):
            result = await db.execute(
                select(User)
                .where(User.role == UserRole.DELIVERY_AGENT, User.is_active.is_(True))
                .order_by(User.average_rating.desc(), User.id.asc())
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            return list(result.scalars().all())
