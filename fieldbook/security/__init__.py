"""Security package - role-based permission checks."""

from .permissions import Permission, PermissionChecker

__all__ = ["Permission", "PermissionChecker"]
