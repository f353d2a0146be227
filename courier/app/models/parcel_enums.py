"""
Parcel Status Enumeration.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel delivery status enumeration.

    Status flow:
        pending → on_the_way → delivered
        pending → canceled

    Payment is tracked separately (Parcel.is_paid) and is not a status.
    """
    PENDING = "pending"
    ON_THE_WAY = "on_the_way"
    DELIVERED = "delivered"
    CANCELED = "canceled"
