"""Role-based access control (RBAC) for LearnHub.

Roles come from the identity service inside the access token. Hierarchy:
- ADMIN (level 2): training administration, certificates, email configuration
- PARTNER (level 1): referral partners taking trainings
- USER (level 0): registered learner
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles with hierarchical levels."""

    USER = "user"
    PARTNER = "partner"
    ADMIN = "admin"


ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.USER: 0,
    UserRole.PARTNER: 1,
    UserRole.ADMIN: 2,
}


def get_role_level(role: UserRole | str) -> int:
    """Get the permission level for a role.

    Unknown roles get level 0.
    """
    if isinstance(role, str):
        try:
            role = UserRole(role)
        except ValueError:
            return 0
    return ROLE_HIERARCHY.get(role, 0)


def has_permission(user_role: UserRole | str, required_role: UserRole | str) -> bool:
    """Check if user has at least the required permission level.

    Examples:
        >>> has_permission(UserRole.ADMIN, UserRole.PARTNER)
        True
        >>> has_permission("user", "partner")
        False
    """
    return get_role_level(user_role) >= get_role_level(required_role)


def is_admin(role: UserRole | str) -> bool:
    if isinstance(role, str):
        return role == UserRole.ADMIN.value
    return role == UserRole.ADMIN
