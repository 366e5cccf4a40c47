"""Email event configuration.

Each automated email belongs to an event kind. An event kind must exist and
be active for its emails to go out; admins toggle them without a deploy.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from src.training.models import ensure_utc_aware


class EmailEventKey(str, Enum):
    """Automated email kinds."""

    TRAINING_NEW_LESSON = "training_new_lesson"
    TRAINING_ASSIGNED = "training_assigned"
    CERTIFICATE_ISSUED = "certificate_issued"


EMAIL_EVENT_TYPES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.email_event_types (
    event_key TEXT,
    name TEXT,
    description TEXT,
    subject TEXT,
    is_active BOOLEAN,
    updated_at TIMESTAMP,
    PRIMARY KEY (event_key)
)
"""

EMAIL_TABLES_CQL = [EMAIL_EVENT_TYPES_TABLE_CQL]


@dataclass
class EmailEventType:
    event_key: str
    name: str
    description: str | None = None
    subject: str | None = None
    is_active: bool = True
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "EmailEventType":
        return cls(
            event_key=row.event_key,
            name=row.name,
            description=row.description,
            subject=row.subject,
            is_active=bool(row.is_active),
            updated_at=ensure_utc_aware(row.updated_at),
        )


# Seeded on startup when missing; existing rows are never overwritten
DEFAULT_EMAIL_EVENTS = [
    EmailEventType(
        event_key=EmailEventKey.TRAINING_NEW_LESSON.value,
        name="New lesson in a training",
        description="Sent to learners with progress in a module when a lesson is added",
        subject="New lesson available",
    ),
    EmailEventType(
        event_key=EmailEventKey.TRAINING_ASSIGNED.value,
        name="Training assigned",
        description="Sent when an administrator sends a training module to a user",
        subject="You have a new training",
    ),
    EmailEventType(
        event_key=EmailEventKey.CERTIFICATE_ISSUED.value,
        name="Certificate issued",
        description="Sent with a download link when a certificate is emailed",
        subject="Your certificate is ready",
    ),
]
