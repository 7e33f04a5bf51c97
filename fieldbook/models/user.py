"""User domain model."""

from enum import Enum

from pydantic import BaseModel, Field


class UserRole(str, Enum):
    """User role enumeration."""

    ADMIN = "admin"
    EMPLOYEE = "employee"
    CLIENT = "client"


class User(BaseModel):
    """The identity acting on the schedule, as resolved by the auth collaborator."""

    id: str = Field(min_length=1)
    role: UserRole = Field(default=UserRole.CLIENT)

    @property
    def is_staff(self) -> bool:
        """Admins and employees can approve or reject bookings."""
        return self.role in (UserRole.ADMIN, UserRole.EMPLOYEE)

    @property
    def is_admin(self) -> bool:
        """Check for the administrator role."""
        return self.role == UserRole.ADMIN
