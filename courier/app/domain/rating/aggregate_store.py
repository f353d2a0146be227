"""
Agent rating aggregate storage.

The aggregator only talks to this interface: a read of the current
(total_reviews, average_rating) pair and a compare-and-swap that applies a new
pair only if total_reviews still holds the value that was read.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.models.enums import UserRole
from courier.app.models.user import User


@dataclass(frozen=True)
class RatingAggregate:
    agent_id: int
    total_reviews: int
    average_rating: float


class RatingAggregateStore(ABC):
    """Atomic access to an agent's rating aggregate."""

    @abstractmethod
    async def read(self, agent_id: int) -> Optional[RatingAggregate]:
        """Return the current aggregate, or None if the agent does not exist."""

    @abstractmethod
    async def compare_and_swap(
        self,
        agent_id: int,
        expected_total: int,
        new_total: int,
        new_average: float
    ) -> bool:
        """Apply the new aggregate only if total_reviews == expected_total. Returns whether it applied."""


class SqlRatingAggregateStore(RatingAggregateStore):
    """
    Aggregate store backed by the users table.

    The swap is a single conditional UPDATE, so it participates in the
    session's current transaction together with the review insert.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def read(self, agent_id: int) -> Optional[RatingAggregate]:
        # Column select: never served from the session identity map
        result = await self.db.execute(
            select(User.id, User.total_reviews, User.average_rating).where(
                User.id == agent_id,
                User.role == UserRole.DELIVERY_AGENT
            )
        )
        row = result.one_or_none()
        if row is None:
            return None
        return RatingAggregate(
            agent_id=row.id,
            total_reviews=row.total_reviews,
            average_rating=row.average_rating
        )

    async def compare_and_swap(
        self,
        agent_id: int,
        expected_total: int,
        new_total: int,
        new_average: float
    ) -> bool:
        result = await self.db.execute(
            update(User)
            .where(User.id == agent_id, User.total_reviews == expected_total)
            .values(total_reviews=new_total, average_rating=new_average, updated_at=func.now())
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1
