"""Database models for in-app notifications.

Cassandra table definitions for:
- Notifications: partitioned by user, newest first
- Unread counters: one counter row per user

Notification types:
- TRAINING_NEW_LESSON: a lesson was added to a module the user has progress in
- TRAINING_ASSIGNED: a module was sent to the user
- CERTIFICATE_ISSUED: a certificate is ready for download
- SYSTEM: free-form announcement
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from src.training.models import ensure_utc_aware


class NotificationType(str, Enum):
    """Types of notifications."""

    TRAINING_NEW_LESSON = "training_new_lesson"
    TRAINING_ASSIGNED = "training_assigned"
    CERTIFICATE_ISSUED = "certificate_issued"
    SYSTEM = "system"


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

NOTIFICATION_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.notifications (
    user_id UUID,
    notification_id UUID,
    type TEXT,
    title TEXT,
    message TEXT,
    module_id UUID,
    lesson_id UUID,
    reference_url TEXT,
    is_read BOOLEAN,
    read_at TIMESTAMP,
    created_at TIMESTAMP,
    PRIMARY KEY ((user_id), created_at, notification_id)
) WITH CLUSTERING ORDER BY (created_at DESC, notification_id ASC)
"""

UNREAD_COUNT_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.notification_unread_counts (
    user_id UUID PRIMARY KEY,
    count COUNTER
)
"""

NOTIFICATIONS_TABLES_CQL = [
    NOTIFICATION_TABLE_CQL,
    UNREAD_COUNT_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class Notification:
    """Notification entity."""

    notification_id: UUID
    user_id: UUID
    type: NotificationType
    title: str
    message: str
    module_id: UUID | None
    lesson_id: UUID | None
    reference_url: str | None
    is_read: bool
    read_at: datetime | None
    created_at: datetime

    @classmethod
    def from_row(cls, row: Any) -> "Notification":
        """Create Notification from Cassandra row."""
        return cls(
            notification_id=row.notification_id,
            user_id=row.user_id,
            type=NotificationType(row.type),
            title=row.title,
            message=row.message,
            module_id=row.module_id,
            lesson_id=row.lesson_id,
            reference_url=row.reference_url,
            is_read=row.is_read or False,
            read_at=ensure_utc_aware(row.read_at),
            created_at=ensure_utc_aware(row.created_at),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-safe dictionary (used for pub/sub payloads)."""
        return {
            "id": str(self.notification_id),
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "module_id": str(self.module_id) if self.module_id else None,
            "lesson_id": str(self.lesson_id) if self.lesson_id else None,
            "reference_url": self.reference_url,
            "is_read": self.is_read,
            "created_at": self.created_at.isoformat(),
        }


# ==============================================================================
# Factory Functions
# ==============================================================================


def create_notification(
    user_id: UUID,
    notification_type: NotificationType,
    title: str,
    message: str,
    module_id: UUID | None = None,
    lesson_id: UUID | None = None,
    reference_url: str | None = None,
) -> Notification:
    """Create a new unread notification."""
    return Notification(
        notification_id=uuid4(),
        user_id=user_id,
        type=notification_type,
        title=title,
        message=message,
        module_id=module_id,
        lesson_id=lesson_id,
        reference_url=reference_url,
        is_read=False,
        read_at=None,
        created_at=datetime.now(UTC),
    )


def create_new_lesson_notification(
    user_id: UUID,
    module_id: UUID,
    module_title: str,
    lesson_id: UUID,
    lesson_title: str,
    certified: bool,
) -> Notification:
    """Notification for a lesson added to a module the user has progress in.

    The message depends on whether the user already holds a certificate.
    """
    if certified:
        message = (
            f'A new lesson "{lesson_title}" was added to "{module_title}". '
            "Your certificate remains valid, but please review the new material."
        )
    else:
        message = (
            f'A new lesson "{lesson_title}" was added to "{module_title}". '
            "Complete all lessons to obtain your certificate."
        )

    return create_notification(
        user_id=user_id,
        notification_type=NotificationType.TRAINING_NEW_LESSON,
        title=f"New lesson in {module_title}",
        message=message,
        module_id=module_id,
        lesson_id=lesson_id,
        reference_url=f"/training/{module_id}/lessons/{lesson_id}",
    )


def create_assignment_notification(
    user_id: UUID, module_id: UUID, module_title: str
) -> Notification:
    return create_notification(
        user_id=user_id,
        notification_type=NotificationType.TRAINING_ASSIGNED,
        title="New training assigned",
        message=f'You have been assigned the training "{module_title}".',
        module_id=module_id,
        reference_url=f"/training/{module_id}",
    )


def create_certificate_notification(
    user_id: UUID, module_id: UUID, module_title: str, certificate_id: UUID
) -> Notification:
    return create_notification(
        user_id=user_id,
        notification_type=NotificationType.CERTIFICATE_ISSUED,
        title="Certificate issued",
        message=f'Your certificate for "{module_title}" is ready to download.',
        module_id=module_id,
        reference_url=f"/certificates/{certificate_id}",
    )
