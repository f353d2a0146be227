"""
Review database model.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, CheckConstraint
from sqlalchemy.sql import func
from courier.app.db.session import Base


class Review(Base):
    """
    Customer review of a delivery agent for one delivered parcel.

    One review per (parcel, reviewer). Reviews are never edited or deleted.
    """
    __tablename__ = "reviews"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    reviewer_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)

    rating = Column(Integer, nullable=False)
    comment = Column(String(2000), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('parcel_id', 'reviewer_id', name='uq_reviews_parcel_reviewer'),
        CheckConstraint("rating >= 1 AND rating <= 5", name="ck_reviews_rating"),
    )

    def __repr__(self):
        return f"<Review(id={self.id}, parcel_id={self.parcel_id}, agent_id={self.agent_id}, rating={self.rating})>"
