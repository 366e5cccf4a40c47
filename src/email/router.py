"""Email API endpoints.

Provides endpoints for:
- Checking email service status
- Email event configuration (admin only)
"""

from fastapi import APIRouter, HTTPException, status

from src.auth.dependencies import AdminUser, CurrentUser
from src.config import get_settings
from src.core.logging import get_logger
from src.training.dependencies import handle_training_error
from src.training.exceptions import TrainingError

from .dependencies import EmailEventServiceDep
from .schemas import EmailEventResponse, EmailStatusResponse, UpdateEmailEventRequest


logger = get_logger(__name__)

router = APIRouter(prefix="/v1/email", tags=["email"])

admin_router = APIRouter(
    prefix="/v1/admin/email",
    tags=["admin", "email"],
)


# ==============================================================================
# Public Endpoints
# ==============================================================================


@router.get(
    "/status",
    response_model=EmailStatusResponse,
    summary="Get email service status",
)
async def get_email_status(_: CurrentUser) -> EmailStatusResponse:
    """Whether email service is enabled and configured."""
    settings = get_settings()

    return EmailStatusResponse(
        enabled=settings.email_enabled,
        configured=settings.email_configured,
        sender_address=settings.email_sender_address
        if settings.email_configured
        else None,
    )


# ==============================================================================
# Admin Endpoints
# ==============================================================================


@admin_router.get(
    "/events",
    response_model=list[EmailEventResponse],
    summary="List email event kinds (admin only)",
)
async def list_email_events(
    _: AdminUser,
    events: EmailEventServiceDep,
) -> list[EmailEventResponse]:
    try:
        configured = await events.list_events()
    except TrainingError as e:
        raise handle_training_error(e) from e
    return [EmailEventResponse.model_validate(event) for event in configured]


@admin_router.patch(
    "/events/{event_key}",
    response_model=EmailEventResponse,
    summary="Update an email event kind (admin only)",
)
async def update_email_event(
    event_key: str,
    request: UpdateEmailEventRequest,
    admin: AdminUser,
    events: EmailEventServiceDep,
) -> EmailEventResponse:
    """Toggle an automated email on/off or change its subject."""
    try:
        event = await events.update_event(
            event_key, request.model_dump(exclude_unset=True)
        )
    except TrainingError as e:
        raise handle_training_error(e) from e
    if event is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"code": "not_found", "message": f"Email event '{event_key}' not found"},
        )

    logger.info(
        "admin_email_event_updated",
        event_key=event_key,
        admin_id=admin.id,
    )
    return EmailEventResponse.model_validate(event)
