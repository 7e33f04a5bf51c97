"""Permission checks for scheduling operations."""

from enum import Enum

from fieldbook.logging.audit import AuditLogger
from fieldbook.models.reservation import Reservation
from fieldbook.models.user import User, UserRole
from fieldbook.services.errors import PermissionDenied


class Permission(str, Enum):
    """Permission types."""

    MANAGE_SLOTS = "manage_slots"
    MAKE_RESERVATION = "make_reservation"
    CONFIRM_RESERVATION = "confirm_reservation"
    CANCEL_RESERVATION = "cancel_reservation"
    DELETE_RESERVATION = "delete_reservation"
    VIEW_RESERVATIONS = "view_reservations"


class PermissionChecker:
    """Check user permissions for actions."""

    def __init__(
        self,
        admin_user_ids: list[str] | None = None,
        staff_user_ids: list[str] | None = None,
    ):
        """Initialize permission checker with configured staff IDs."""
        self.admin_user_ids = admin_user_ids or []
        self.staff_user_ids = staff_user_ids or []

    def role_for(self, user_id: str) -> UserRole:
        """Role granted to a user ID by configuration."""
        if user_id in self.admin_user_ids:
            return UserRole.ADMIN
        if user_id in self.staff_user_ids:
            return UserRole.EMPLOYEE
        return UserRole.CLIENT

    def user_for(self, user_id: str) -> User:
        """Build the acting user for a configured ID."""
        return User(id=user_id, role=self.role_for(user_id))

    def is_admin(self, user: User) -> bool:
        """Check if user is admin by role or configured ID."""
        return user.is_admin or user.id in self.admin_user_ids

    def is_staff(self, user: User) -> bool:
        """Check if user is an admin or employee."""
        return user.is_staff or self.is_admin(user) or user.id in self.staff_user_ids

    def can_manage_slots(self, user: User) -> bool:
        """Slot definitions are configured by administrators."""
        return self.is_admin(user)

    def can_make_reservation(self, user: User, requester_id: str) -> bool:
        """Users book for themselves; staff may book on behalf of others."""
        return user.id == requester_id or self.is_staff(user)

    def can_confirm(self, user: User) -> bool:
        """Approval is a staff action."""
        return self.is_staff(user)

    def can_cancel(self, user: User, reservation: Reservation) -> bool:
        """Staff reject; requesters cancel their own bookings."""
        return self.is_staff(user) or reservation.requester_id == user.id

    def can_delete_reservation(self, user: User) -> bool:
        """Removing booking records is an admin action."""
        return self.is_admin(user)

    def can_view_reservations(self, user: User, requester_id: str) -> bool:
        """Users see their own bookings; staff see everyone's."""
        return user.id == requester_id or self.is_staff(user)

    def require(
        self,
        allowed: bool,
        user: User,
        permission: Permission,
        resource_type: str,
        resource_id: str,
    ) -> None:
        """Raise PermissionDenied (and audit it) when ``allowed`` is false."""
        if allowed:
            return
        AuditLogger.log_permission_denied(
            actor_id=user.id,
            resource_type=resource_type,
            resource_id=resource_id,
            attempted_action=permission.value,
        )
        raise PermissionDenied(
            f"{user.role.value} {user.id} may not {permission.value.replace('_', ' ')}",
            user_id=user.id,
            permission=permission.value,
        )
