"""
Review schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional


class ReviewCreate(BaseModel):
    """Schema for reviewing the agent who delivered a parcel."""
    parcel_id: int
    agent_id: int
    rating: int = Field(..., description="Integer rating from 1 to 5")
    text: Optional[str] = Field(None, max_length=2000, description="Free-text comment")


class ReviewResponse(BaseModel):
    """Schema for a created review."""
    id: int
    parcel_id: int
    agent_id: int
    reviewer_id: int
    rating: int
    comment: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True
