"""
User database model.

Customers, admins and delivery agents share this table. Delivery agents
carry their rating aggregate on the same row.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Float, CheckConstraint
from sqlalchemy.sql import func
from courier.app.db.session import Base
from courier.app.models.enums import UserRole


class User(Base):
    """
    User model.

    Credentials live with the identity provider that issues tokens; this
    table only holds the profile the core needs.
    """
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    username = Column(String(100), unique=True, index=True, nullable=False)
    full_name = Column(String(200), nullable=True)
    phone = Column(String(50), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    role = Column(Enum(UserRole), default=UserRole.CUSTOMER, nullable=False, index=True)

    # Agent rating aggregate: average_rating is the mean of every accepted rating.
    # total_reviews doubles as the compare-and-swap token for aggregate updates.
    total_reviews = Column(Integer, default=0, nullable=False)
    average_rating = Column(Float, default=0.0, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("total_reviews >= 0", name="ck_users_total_reviews"),
    )

    def __repr__(self):
        return f"<User(id={self.id}, username='{self.username}', role='{self.role.value}')>"
