"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Current user extraction from JWT
- Role-based access control
"""

from typing import Annotated
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from src.auth.permissions import UserRole, has_permission
from src.auth.schemas import CurrentUserContext, TokenPayload
from src.auth.security import decode_access_token
from src.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header."""
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


def user_from_token(token: str) -> CurrentUserContext:
    """Build the caller context from a raw token.

    Also used by WebSocket endpoints, which receive the token as a query param.

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    payload = TokenPayload.model_validate(decode_access_token(token))

    # Set user_id in context for logging
    set_user_id(payload.sub)

    return CurrentUserContext(id=UUID(payload.sub), email=payload.email, role=payload.role)


async def get_current_user(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> CurrentUserContext:
    """Get current authenticated user from JWT token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        return user_from_token(token)
    except (JWTError, ValueError) as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


def require_permission(required_role: UserRole):
    """Create dependency requiring at least a permission level.

    Example:
        @router.get("/admin-area")
        async def admin_endpoint(
            user: Annotated[CurrentUserContext, Depends(require_permission(UserRole.ADMIN))]
        ):
            ...
    """

    async def permission_checker(
        user: Annotated[CurrentUserContext, Depends(get_current_user)],
    ) -> CurrentUserContext:
        if not has_permission(user.role, required_role):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Insufficient permission",
            )

        return user

    return permission_checker


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

CurrentUser = Annotated[CurrentUserContext, Depends(get_current_user)]

AdminUser = Annotated[CurrentUserContext, Depends(require_permission(UserRole.ADMIN))]
