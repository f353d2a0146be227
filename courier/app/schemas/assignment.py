"""
Assignment schemas.
"""

from pydantic import BaseModel, Field
from datetime import date, datetime
from typing import Optional
from courier.app.schemas.parcel import ParcelResponse


class AssignmentRequest(BaseModel):
    """
    Schema for assigning a parcel or correcting its assignment.

    Fields are optional here so that missing values reach the service and
    come back as a 400 validation error rather than a schema error.
    """
    agent_id: Optional[int] = Field(None, description="Delivery agent user ID")
    approximate_delivery_date: Optional[date] = Field(None, description="Expected delivery date")
    agent_contact: Optional[str] = Field(None, max_length=255, description="Overrides the agent's email")


class AssignmentResponse(BaseModel):
    """Immutable assignment record."""
    id: int
    parcel_id: int
    agent_id: int
    agent_contact: Optional[str]
    approximate_delivery_date: date
    assigned_at: datetime

    class Config:
        from_attributes = True


class AssignParcelResponse(BaseModel):
    """Response after assignment: the new record and the parcel now on the way."""
    assignment: AssignmentResponse
    parcel: ParcelResponse
