"""Learner notification inbox.

Training fan-out and certificate issuance write into the inbox; these routes
let the signed-in learner page through it and clear unread items. Live
delivery happens over the websocket router.
"""

from uuid import UUID

from fastapi import APIRouter, HTTPException, Query, status

from src.auth.dependencies import CurrentUser
from src.notifications.dependencies import NotificationServiceDep
from src.notifications.schemas import (
    MarkReadRequest,
    MarkReadResponse,
    NotificationListResponse,
    UnreadCountResponse,
)
from src.notifications.service import NotificationService


router = APIRouter(prefix="/v1/notifications", tags=["notifications"])


async def _read_result(
    service: NotificationService, user_id: UUID, marked: int
) -> MarkReadResponse:
    remaining = await service.get_unread_count(user_id=user_id)
    return MarkReadResponse(marked_count=marked, unread_count=remaining)


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="Inbox page",
)
async def list_inbox(
    current_user: CurrentUser,
    service: NotificationServiceDep,
    limit: int = Query(default=20, ge=1, le=100),
    cursor: str | None = Query(default=None, description="next_cursor of the previous page"),
    unread_only: bool = Query(default=False),
    module_id: UUID | None = Query(
        default=None, description="Only items about this training module"
    ),
) -> NotificationListResponse:
    """Newest first. Filters apply within the fetched page."""
    try:
        return await service.get_notifications(
            user_id=current_user.id,
            limit=limit,
            cursor=cursor,
            unread_only=unread_only,
            module_id=module_id,
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"code": "invalid_cursor", "message": str(e)},
        ) from e


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Badge count")
async def unread_badge(
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> UnreadCountResponse:
    return UnreadCountResponse(count=await service.get_unread_count(current_user.id))


@router.post(
    "/{notification_id}/read",
    response_model=MarkReadResponse,
    summary="Mark one item read",
)
async def read_one(
    notification_id: UUID,
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> MarkReadResponse:
    """Marking an item that is already read, or not in the inbox, marks nothing."""
    marked = await service.mark_as_read(current_user.id, [notification_id])
    return await _read_result(service, current_user.id, marked)


@router.post("/mark-read", response_model=MarkReadResponse, summary="Mark items read")
async def read_selected(
    body: MarkReadRequest,
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> MarkReadResponse:
    marked = await service.mark_as_read(current_user.id, body.notification_ids)
    return await _read_result(service, current_user.id, marked)


@router.post("/mark-all-read", response_model=MarkReadResponse, summary="Clear the inbox")
async def read_all(
    current_user: CurrentUser,
    service: NotificationServiceDep,
) -> MarkReadResponse:
    marked = await service.mark_all_as_read(current_user.id)
    return await _read_result(service, current_user.id, marked)
