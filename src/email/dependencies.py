"""Dependencies for email routes.

Provides:
- EmailEventService dependency injection
"""

from collections.abc import Callable
from typing import Annotated

from fastapi import Depends, Request

from src.email.events import EmailEventService


# Service getter function (set by main.py)
_email_event_service_getter: Callable[[], EmailEventService] | None = None


def set_email_event_service_getter(
    getter: Callable[[], EmailEventService],
) -> None:
    """Set the email event service getter function."""
    global _email_event_service_getter  # noqa: PLW0603 - Required for DI pattern
    _email_event_service_getter = getter


def get_email_event_service(request: Request) -> EmailEventService:
    """Get EmailEventService instance.

    Tries request.app.state first, then falls back to getter function.
    """
    if hasattr(request.app.state, "email_event_service"):
        return request.app.state.email_event_service

    if _email_event_service_getter is not None:
        return _email_event_service_getter()

    msg = "EmailEventService not configured"
    raise RuntimeError(msg)


EmailEventServiceDep = Annotated[EmailEventService, Depends(get_email_event_service)]
