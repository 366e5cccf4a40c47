"""Access token verification.

Tokens are issued by the identity service; this API only verifies them:
- JWT signature and expiration
- Token type == "access"
- Audience, when one is configured
"""

from typing import Any

from jose import JWTError, jwt

from src.config.settings import get_settings


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Args:
        token: JWT string

    Returns:
        Decoded payload dictionary

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    options = {"verify_aud": settings.auth_audience is not None}
    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
        audience=settings.auth_audience,
        options=options,
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise JWTError(msg)

    return payload
