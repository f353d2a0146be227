"""
User roles enumeration.

Defines the role types for the courier marketplace.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.

    Roles:
        ADMIN: Assigns parcels to delivery agents
        CUSTOMER: Books parcels, pays for them and reviews deliveries (default role)
        DELIVERY_AGENT: Transports assigned parcels and accumulates a rating
    """
    ADMIN = "ADMIN"
    CUSTOMER = "CUSTOMER"
    DELIVERY_AGENT = "DELIVERY_AGENT"
