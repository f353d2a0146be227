"""
Payment database model.

Records a gateway payment that marked a parcel as paid.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey
from sqlalchemy.sql import func
from courier.app.db.session import Base


class Payment(Base):
    """Payment model. One per gateway transaction."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    transaction_id = Column(String(255), unique=True, nullable=False, index=True)
    amount = Column(Float, nullable=False)

    recorded_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Payment(id={self.id}, parcel_id={self.parcel_id}, transaction_id='{self.transaction_id}')>"
