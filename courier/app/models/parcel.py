"""
Parcel database model.

Customers book parcels; status only changes through the lifecycle controller.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum, Date, Boolean
from sqlalchemy.sql import func
from courier.app.db.session import Base
from courier.app.models.parcel_enums import ParcelStatus


class Parcel(Base):
    """
    Parcel model for the courier marketplace.

    A parcel is booked by a customer, assigned to a delivery agent, and
    delivered or canceled. Parcels are never deleted; canceled ones stay
    for audit.
    """
    __tablename__ = "parcels"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    # Sender
    sender_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    sender_name = Column(String(200), nullable=False)
    sender_email = Column(String(255), nullable=False, index=True)
    sender_phone = Column(String(50), nullable=True)

    # Receiver
    receiver_name = Column(String(200), nullable=False)
    receiver_email = Column(String(255), nullable=True)
    receiver_phone = Column(String(50), nullable=True)
    delivery_address = Column(String(500), nullable=False)

    # Shipment
    parcel_type = Column(String(100), nullable=True)
    weight_kg = Column(Float, nullable=False)
    cost = Column(Float, nullable=False)
    requested_delivery_date = Column(Date, nullable=False)

    # Delivery status and payment are independent attributes
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)
    is_paid = Column(Boolean, default=False, nullable=False)

    # Set together with the on_the_way transition. assignment_id is a plain
    # column: assignments already reference parcels, a second FK would be cyclic.
    assignment_id = Column(Integer, nullable=True, index=True)
    delivery_agent_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    delivery_agent_contact = Column(String(255), nullable=True)
    approximate_delivery_date = Column(Date, nullable=True)

    # Timestamps
    booked_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<Parcel(id={self.id}, sender_id={self.sender_id}, status='{self.status.value}', paid={self.is_paid})>"
