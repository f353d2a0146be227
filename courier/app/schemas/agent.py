"""
Delivery agent rating schemas.
"""

from pydantic import BaseModel
from typing import List, Optional


class AgentRatingResponse(BaseModel):
    """Delivery agent with its rating aggregate."""
    id: int
    username: str
    full_name: Optional[str]
    email: str
    total_reviews: int
    average_rating: float

    class Config:
        from_attributes = True


class AgentAggregateResponse(BaseModel):
    """Rating aggregate of a single agent."""
    agent_id: int
    total_reviews: int
    average_rating: float


class TopAgentsResponse(BaseModel):
    """Agents ordered by rating (descending), then id (ascending)."""
    agents: List[AgentRatingResponse]
    limit: int
