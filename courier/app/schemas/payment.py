"""
Payment schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from courier.app.schemas.parcel import ParcelResponse


class PaymentCreate(BaseModel):
    """Schema for recording a completed gateway payment."""
    transaction_id: str = Field(..., min_length=1, max_length=255, description="Gateway transaction ID")
    amount: float = Field(..., gt=0, description="Amount paid")


class PaymentResponse(BaseModel):
    """Stored payment."""
    id: int
    parcel_id: int
    transaction_id: str
    amount: float
    recorded_at: datetime

    class Config:
        from_attributes = True


class RecordPaymentResponse(BaseModel):
    """Response after payment: the payment and the parcel now marked paid."""
    payment: PaymentResponse
    parcel: ParcelResponse
