"""
Parcel Pydantic schemas.

Defines request and response models for booking, editing and status transitions.
"""

from pydantic import BaseModel, EmailStr, Field
from datetime import datetime, date
from typing import Optional
from courier.app.models.parcel_enums import ParcelStatus


class ParcelCreate(BaseModel):
    """Schema for booking a new parcel. Sender fields default to the caller's profile."""
    sender_name: Optional[str] = Field(None, max_length=200)
    sender_phone: Optional[str] = Field(None, max_length=50)
    receiver_name: str = Field(..., min_length=1, max_length=200, description="Receiver full name")
    receiver_email: Optional[EmailStr] = None
    receiver_phone: Optional[str] = Field(None, max_length=50)
    delivery_address: str = Field(..., min_length=1, max_length=500, description="Delivery address")
    parcel_type: Optional[str] = Field(None, max_length=100, description="Kind of goods")
    weight_kg: float = Field(..., gt=0, description="Weight in kilograms")
    cost: float = Field(..., ge=0, description="Delivery cost")
    requested_delivery_date: date = Field(..., description="Date the sender wants it delivered")


class ParcelUpdate(BaseModel):
    """Schema for editing a pending parcel. Only the fields sent are changed."""
    sender_name: Optional[str] = Field(None, min_length=1, max_length=200)
    sender_phone: Optional[str] = Field(None, max_length=50)
    receiver_name: Optional[str] = Field(None, min_length=1, max_length=200)
    receiver_email: Optional[EmailStr] = None
    receiver_phone: Optional[str] = Field(None, max_length=50)
    delivery_address: Optional[str] = Field(None, min_length=1, max_length=500)
    parcel_type: Optional[str] = Field(None, max_length=100)
    weight_kg: Optional[float] = Field(None, gt=0)
    cost: Optional[float] = Field(None, ge=0)
    requested_delivery_date: Optional[date] = None


class ParcelStatusUpdate(BaseModel):
    """Schema for requesting a delivery status transition."""
    status: ParcelStatus = Field(..., description="Target status (canceled or delivered)")


class ParcelResponse(BaseModel):
    """Schema for parcel response."""
    id: int
    sender_id: int
    sender_name: str
    sender_email: str
    sender_phone: Optional[str]
    receiver_name: str
    receiver_email: Optional[str]
    receiver_phone: Optional[str]
    delivery_address: str
    parcel_type: Optional[str]
    weight_kg: float
    cost: float
    requested_delivery_date: date
    status: ParcelStatus
    is_paid: bool
    assignment_id: Optional[int]
    delivery_agent_id: Optional[int]
    delivery_agent_contact: Optional[str]
    approximate_delivery_date: Optional[date]
    booked_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
