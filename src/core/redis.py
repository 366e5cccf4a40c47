# ruff: noqa: PLW0603
"""Redis client for live updates.

Redis carries per-user notification pushes and the training change channel
that drives admin dashboard refreshes. It also holds the short-lived unread
count cache. Everything keeps working without it, minus live updates.
"""

from urllib.parse import urlsplit

import redis.asyncio as redis

from src.config import get_settings
from src.config.settings import Settings
from src.core.logging import get_logger


logger = get_logger(__name__)

TRAINING_CHANGES_CHANNEL = "training:changes"

_redis_client: redis.Redis | None = None


def _safe_url(url: str) -> str:
    """Redis URL without credentials, for logs."""
    parts = urlsplit(url)
    host = parts.hostname or ""
    port = f":{parts.port}" if parts.port else ""
    return f"{parts.scheme}://{host}{port}{parts.path}"


def _pool_options(settings: Settings) -> dict:
    return {
        "max_connections": settings.redis_max_connections,
        "socket_timeout": settings.redis_socket_timeout,
        "socket_connect_timeout": settings.redis_socket_connect_timeout,
        "retry_on_timeout": settings.redis_retry_on_timeout,
        "health_check_interval": settings.redis_health_check_interval,
        "decode_responses": True,
    }


async def init_redis() -> redis.Redis:
    """Create the client and ping it.

    Raises:
        redis.ConnectionError: If the server does not answer; the client is
            left unset so callers run without live updates.
    """
    global _redis_client

    settings = get_settings()
    client = redis.from_url(settings.redis_url, **_pool_options(settings))
    try:
        await client.ping()
    except redis.ConnectionError as e:
        logger.warning(
            "redis_unavailable", url=_safe_url(settings.redis_url), error=str(e)
        )
        await client.aclose()
        raise

    _redis_client = client
    logger.info("redis_connected", url=_safe_url(settings.redis_url))
    return client


async def shutdown_redis() -> None:
    global _redis_client

    if _redis_client is not None:
        await _redis_client.aclose()
        _redis_client = None
        logger.info("redis_disconnected")


def get_redis() -> redis.Redis | None:
    return _redis_client


def notification_channel(user_id: str) -> str:
    """Per-user channel carrying new in-app notifications."""
    return f"notifications:user:{user_id}"


def training_changes_channel() -> str:
    """Channel carrying lesson, progress, assignment and certificate changes."""
    return TRAINING_CHANGES_CHANNEL
