"""Pydantic schemas for notifications.

Request and response models for the notification inbox and for the
fan-out dispatch report.
"""

import base64
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.notifications.models import Notification, NotificationType


# ==============================================================================
# Response Schemas
# ==============================================================================


class NotificationResponse(BaseModel):
    """Single notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(description="Notification ID")
    type: NotificationType = Field(description="Notification type")
    title: str = Field(description="Notification title")
    message: str = Field(description="Notification message")
    module_id: UUID | None = Field(None, description="Related training module")
    lesson_id: UUID | None = Field(None, description="Related lesson")
    reference_url: str | None = Field(None, description="Where the client should link")
    is_read: bool = Field(description="Whether notification was read")
    read_at: datetime | None = Field(None, description="When notification was read")
    created_at: datetime = Field(description="When notification was created")

    @classmethod
    def from_notification(cls, notification: Notification) -> "NotificationResponse":
        """Create response from notification entity."""
        return cls(
            id=notification.notification_id,
            type=notification.type,
            title=notification.title,
            message=notification.message,
            module_id=notification.module_id,
            lesson_id=notification.lesson_id,
            reference_url=notification.reference_url,
            is_read=notification.is_read,
            read_at=notification.read_at,
            created_at=notification.created_at,
        )


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    items: list[NotificationResponse] = Field(description="List of notifications")
    unread_count: int = Field(description="Unread notification count")
    has_more: bool = Field(description="Whether more notifications exist")
    next_cursor: str | None = Field(None, description="Cursor for next page")


class UnreadCountResponse(BaseModel):
    count: int = Field(description="Number of unread notifications")


class MarkReadResponse(BaseModel):
    marked_count: int = Field(description="Number of notifications marked as read")
    unread_count: int = Field(description="Remaining unread count")


class DispatchReportResponse(BaseModel):
    """Outcome of a notification fan-out, for caller-visible reporting."""

    model_config = ConfigDict(from_attributes=True)

    in_app_sent: int = Field(description="In-app notifications written")
    emails_sent: int = Field(description="Emails accepted by the mail transport")
    emails_failed: int = Field(description="Emails rejected or errored")


# ==============================================================================
# Request Schemas
# ==============================================================================


class MarkReadRequest(BaseModel):
    notification_ids: list[UUID] = Field(
        min_length=1,
        description="List of notification IDs to mark as read",
    )


# ==============================================================================
# Cursor Encoding/Decoding
# ==============================================================================


def encode_cursor(created_at: datetime, notification_id: UUID) -> str:
    """Encode pagination cursor."""
    cursor_str = f"{created_at.isoformat()}|{notification_id}"
    return base64.urlsafe_b64encode(cursor_str.encode()).decode()


def decode_cursor(cursor: str) -> tuple[datetime, UUID]:
    """Decode pagination cursor.

    Raises:
        ValueError: If the cursor is malformed
    """
    try:
        cursor_str = base64.urlsafe_b64decode(cursor.encode()).decode()
        parts = cursor_str.split("|")
        created_at = datetime.fromisoformat(parts[0])
        notification_id = UUID(parts[1])
        return created_at, notification_id
    except (ValueError, IndexError) as e:
        msg = f"Invalid cursor format: {e}"
        raise ValueError(msg) from e
