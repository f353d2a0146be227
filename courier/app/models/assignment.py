"""
Assignment database model.

Binds a parcel to the delivery agent that took it on the way.
"""

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.sql import func
from courier.app.db.session import Base


class Assignment(Base):
    """
    Assignment model.

    Immutable once created. The unique parcel_id enforces at most one
    assignment per parcel, so two racing assignments cannot both insert.
    """
    __tablename__ = "assignments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, unique=True, index=True)
    agent_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    agent_contact = Column(String(255), nullable=True)
    approximate_delivery_date = Column(Date, nullable=False)

    assigned_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return f"<Assignment(id={self.id}, parcel_id={self.parcel_id}, agent_id={self.agent_id})>"
