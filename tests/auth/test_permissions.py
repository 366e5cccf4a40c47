"""Tests for auth permissions."""

import pytest

from src.auth.permissions import (
    ROLE_HIERARCHY,
    UserRole,
    get_role_level,
    has_permission,
    is_admin,
)


class TestUserRole:
    """Tests for UserRole enum."""

    def test_role_values(self) -> None:
        """Roles should have correct string values."""
        assert UserRole.USER.value == "user"
        assert UserRole.PARTNER.value == "partner"
        assert UserRole.ADMIN.value == "admin"

    def test_role_hierarchy(self) -> None:
        """Roles should have correct hierarchy levels."""
        assert ROLE_HIERARCHY[UserRole.USER] == 0
        assert ROLE_HIERARCHY[UserRole.PARTNER] == 1
        assert ROLE_HIERARCHY[UserRole.ADMIN] == 2

    def test_all_roles_have_levels(self) -> None:
        """All UserRole members should have defined levels."""
        for role in UserRole:
            assert role in ROLE_HIERARCHY


class TestGetRoleLevel:
    """Tests for get_role_level function."""

    @pytest.mark.parametrize(
        "role,expected_level",
        [
            (UserRole.USER, 0),
            (UserRole.PARTNER, 1),
            (UserRole.ADMIN, 2),
            ("user", 0),
            ("partner", 1),
            ("admin", 2),
        ],
    )
    def test_known_roles(self, role: UserRole | str, expected_level: int) -> None:
        assert get_role_level(role) == expected_level

    def test_invalid_role_returns_zero(self) -> None:
        """Invalid roles should return level 0."""
        assert get_role_level("invalid") == 0
        assert get_role_level("superadmin") == 0


class TestHasPermission:
    """Tests for has_permission function."""

    def test_admin_has_all_permissions(self) -> None:
        for role in UserRole:
            assert has_permission(UserRole.ADMIN, role) is True

    def test_partner_permissions(self) -> None:
        assert has_permission(UserRole.PARTNER, UserRole.USER) is True
        assert has_permission(UserRole.PARTNER, UserRole.PARTNER) is True
        assert has_permission(UserRole.PARTNER, UserRole.ADMIN) is False

    def test_user_permissions(self) -> None:
        """User should only have base access."""
        assert has_permission(UserRole.USER, UserRole.USER) is True
        assert has_permission(UserRole.USER, UserRole.PARTNER) is False
        assert has_permission(UserRole.USER, UserRole.ADMIN) is False

    def test_string_roles(self) -> None:
        """Should work with string role values."""
        assert has_permission("admin", "user") is True
        assert has_permission("user", "admin") is False
        assert has_permission("unknown", "partner") is False


class TestIsAdmin:
    @pytest.mark.parametrize(
        "role,expected",
        [
            (UserRole.ADMIN, True),
            ("admin", True),
            (UserRole.PARTNER, False),
            ("user", False),
            ("ADMIN", False),
        ],
    )
    def test_is_admin(self, role: UserRole | str, expected: bool) -> None:
        assert is_admin(role) is expected
