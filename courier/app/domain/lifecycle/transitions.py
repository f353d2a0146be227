"""
Parcel delivery state machine.

The only place the transition table is defined. Every status write goes
through validate_transition first.
"""

from typing import Dict, FrozenSet

from courier.app.core.exceptions import InvalidTransitionError
from courier.app.models.parcel_enums import ParcelStatus


ALLOWED_TRANSITIONS: Dict[ParcelStatus, FrozenSet[ParcelStatus]] = {
    ParcelStatus.PENDING: frozenset({ParcelStatus.ON_THE_WAY, ParcelStatus.CANCELED}),
    ParcelStatus.ON_THE_WAY: frozenset({ParcelStatus.DELIVERED}),
    ParcelStatus.DELIVERED: frozenset(),
    ParcelStatus.CANCELED: frozenset(),
}

TERMINAL_STATES: FrozenSet[ParcelStatus] = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)

# Statuses in which the parcel must reference an assignment
ASSIGNED_STATES: FrozenSet[ParcelStatus] = frozenset({ParcelStatus.ON_THE_WAY, ParcelStatus.DELIVERED})


def is_terminal(status: ParcelStatus) -> bool:
    return status in TERMINAL_STATES


def requires_assignment(target: ParcelStatus) -> bool:
    """Only the move onto the road needs an assignment to travel with it."""
    return target == ParcelStatus.ON_THE_WAY


def can_transition(current: ParcelStatus, target: ParcelStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[ParcelStatus(current)]


def validate_transition(parcel_id: int, current: ParcelStatus, target: ParcelStatus) -> None:
    """
    Reject any (current, target) pair absent from the transition table.

    Raises:
        InvalidTransitionError: naming both states
    """
    current = ParcelStatus(current)
    target = ParcelStatus(target)
    if not can_transition(current, target):
        raise InvalidTransitionError(parcel_id, current.value, target.value)
