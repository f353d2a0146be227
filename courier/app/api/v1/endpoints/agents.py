"""
Delivery Agent Rating API Endpoints.

Public read side of the rating aggregate.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courier.app.core.config import settings
from courier.app.db.session import get_db
from courier.app.schemas.agent import AgentAggregateResponse, AgentRatingResponse, TopAgentsResponse
from courier.app.domain.rating.rating_aggregator import RatingAggregator

router = APIRouter(prefix="/agents", tags=["Delivery Agents"])


@router.get("/top", response_model=TopAgentsResponse)
async def top_agents(
    limit: Optional[int] = Query(None, description="Number of agents, defaults to the configured top list size"),
    db: AsyncSession = Depends(get_db)
):
    """
    Highest rated delivery agents.

    Sorted by average rating descending; equal ratings are ordered by agent id.
    """
    n = settings.top_agents_default_limit if limit is None else limit
    agents = await RatingAggregator.top_agents(db, n)
    return TopAgentsResponse(
        agents=[AgentRatingResponse.model_validate(agent) for agent in agents],
        limit=min(n, settings.top_agents_max_limit)
    )


@router.get("/{agent_id}/rating", response_model=AgentAggregateResponse)
async def agent_rating(
    agent_id: int = Path(..., description="Delivery agent user ID"),
    db: AsyncSession = Depends(get_db)
):
    """Current rating aggregate of one delivery agent."""
    aggregate = await RatingAggregator.get_aggregate(db, agent_id)
    return AgentAggregateResponse(
        agent_id=aggregate.agent_id,
        total_reviews=aggregate.total_reviews,
        average_rating=aggregate.average_rating
    )
