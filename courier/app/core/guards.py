"""
Security guards for role-based and ownership-based access control.

Guards decide who may call an operation; they never change what it does.
"""

from typing import Iterable, Optional
from fastapi import Depends, HTTPException, status
from courier.app.models.enums import UserRole
from courier.app.core.dependencies import get_current_user
from courier.app.models.parcel import Parcel


def require_role(allowed_roles: Iterable[UserRole]):
    """
    Dependency factory for role-based access control.

    Usage:
        @router.post("/parcels/{parcel_id}/assignment")
        async def assign(current_user: dict = Depends(require_role([UserRole.ADMIN]))):
            ...

    Raises:
        HTTPException 403 if the caller's role is unknown or not allowed
    """
    allowed = frozenset(allowed_roles)
    required = ", ".join(sorted(role.value for role in allowed))

    async def role_checker(current_user: dict = Depends(get_current_user)) -> dict:
        try:
            role = UserRole(current_user.get("role"))
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Unknown role"
            )

        if role not in allowed:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. Required role: {required}"
            )
        return current_user

    return role_checker


def verify_ownership(resource_owner_id: Optional[int], current_user: dict) -> bool:
    """
    Verify that the current user owns the resource.

    Admins are always allowed; everyone else must be the owner.
    """
    if current_user.get("role") == UserRole.ADMIN.value:
        return True
    return resource_owner_id is not None and current_user.get("user_id") == resource_owner_id


class OwnershipGuard:
    """
    Ownership checks for parcel endpoints.

    Usage:
        ownership_guard = OwnershipGuard()

        parcel = await ParcelLifecycleController.get_parcel(db, parcel_id)
        ownership_guard.enforce_sender(parcel, current_user)
    """

    def enforce(self, resource_owner_id: Optional[int], current_user: dict, resource_name: str = "resource"):
        """
        Raises:
            HTTPException 403 if the caller neither owns the resource nor is an admin
        """
        if not verify_ownership(resource_owner_id, current_user):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Access denied. You do not have permission to access this {resource_name}."
            )

    def enforce_sender(self, parcel: Parcel, current_user: dict):
        """Only the customer who booked the parcel (or an admin)."""
        self.enforce(parcel.sender_id, current_user, "parcel")

    def enforce_delivery_agent(self, parcel: Parcel, current_user: dict):
        """Only the agent currently delivering the parcel (or an admin)."""
        self.enforce(parcel.delivery_agent_id, current_user, "delivery")

    def enforce_participant(self, parcel: Parcel, current_user: dict):
        """The sender, the delivering agent, or an admin."""
        if verify_ownership(parcel.delivery_agent_id, current_user):
            return
        self.enforce(parcel.sender_id, current_user, "parcel")
