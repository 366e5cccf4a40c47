"""Database models for training modules, assignments and lesson progress.

Cassandra table definitions for:
- Modules and their lessons (plus a lesson -> module lookup)
- Assignments: "user must complete module", partitioned by module and by user
- Lesson progress: one row per (user, lesson), partitioned by user and by module
- Profiles: read-only projection owned by the identity service

Architecture: dual-write pattern. Every lookup table is written in the same
LOGGED batch as its primary table, so both perspectives stay consistent.
"""

from dataclasses import dataclass, field
from datetime import UTC, date, datetime
from typing import Any
from uuid import UUID


# ==============================================================================
# Helper Functions
# ==============================================================================


def ensure_utc_aware(dt: datetime | None) -> datetime | None:
    """Ensure datetime is UTC-aware (Cassandra returns naive datetimes)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt


def utc_now() -> datetime:
    return datetime.now(UTC)


# ==============================================================================
# CQL Table Definitions
# ==============================================================================

MODULES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_modules (
    module_id UUID,
    title TEXT,
    description TEXT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY (module_id)
)
"""

# Lessons of a module; ordering by position happens in the application
# because ties are broken by created_at
LESSONS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_lessons (
    module_id UUID,
    lesson_id UUID,
    title TEXT,
    position INT,
    min_time_seconds INT,
    is_active BOOLEAN,
    created_at TIMESTAMP,
    PRIMARY KEY ((module_id), lesson_id)
)
"""

LESSON_INDEX_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_lesson_index (
    lesson_id UUID,
    module_id UUID,
    PRIMARY KEY (lesson_id)
)
"""

# At most one assignment per (user, module): the primary key is the upsert key
ASSIGNMENTS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_assignments (
    module_id UUID,
    user_id UUID,
    assigned_by UUID,
    assigned_at TIMESTAMP,
    is_completed BOOLEAN,
    completed_at TIMESTAMP,
    notification_sent BOOLEAN,
    due_date DATE,
    PRIMARY KEY ((module_id), user_id)
)
"""

ASSIGNMENTS_BY_USER_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_assignments_by_user (
    user_id UUID,
    module_id UUID,
    assigned_by UUID,
    assigned_at TIMESTAMP,
    is_completed BOOLEAN,
    completed_at TIMESTAMP,
    notification_sent BOOLEAN,
    due_date DATE,
    PRIMARY KEY ((user_id), module_id)
)
"""

# One row per (user, lesson); module_id is a clustering column so a whole
# module can be read or reset for one user
PROGRESS_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_progress (
    user_id UUID,
    module_id UUID,
    lesson_id UUID,
    is_completed BOOLEAN,
    time_spent_seconds INT,
    video_position_seconds INT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((user_id), module_id, lesson_id)
)
"""

PROGRESS_BY_MODULE_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.training_progress_by_module (
    module_id UUID,
    user_id UUID,
    lesson_id UUID,
    is_completed BOOLEAN,
    time_spent_seconds INT,
    video_position_seconds INT,
    started_at TIMESTAMP,
    completed_at TIMESTAMP,
    updated_at TIMESTAMP,
    PRIMARY KEY ((module_id), user_id, lesson_id)
)
"""

PROFILES_TABLE_CQL = """
CREATE TABLE IF NOT EXISTS {keyspace}.profiles (
    user_id UUID,
    email TEXT,
    first_name TEXT,
    last_name TEXT,
    role TEXT,
    PRIMARY KEY (user_id)
)
"""

TRAINING_TABLES_CQL = [
    MODULES_TABLE_CQL,
    LESSONS_TABLE_CQL,
    LESSON_INDEX_TABLE_CQL,
    ASSIGNMENTS_TABLE_CQL,
    ASSIGNMENTS_BY_USER_TABLE_CQL,
    PROGRESS_TABLE_CQL,
    PROGRESS_BY_MODULE_TABLE_CQL,
    PROFILES_TABLE_CQL,
]


# ==============================================================================
# Entity Classes
# ==============================================================================


@dataclass
class TrainingModule:
    """A training course: a named, ordered collection of lessons."""

    module_id: UUID
    title: str
    description: str | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime | None = None

    @classmethod
    def from_row(cls, row: Any) -> "TrainingModule":
        return cls(
            module_id=row.module_id,
            title=row.title,
            description=row.description,
            is_active=row.is_active if row.is_active is not None else True,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
            updated_at=ensure_utc_aware(row.updated_at),
        )


@dataclass
class TrainingLesson:
    """A unit of training content with a minimum engagement time.

    Display order is ``position`` ascending, ties broken by ``created_at``.
    """

    lesson_id: UUID
    module_id: UUID
    title: str
    position: int = 0
    min_time_seconds: int | None = None
    is_active: bool = True
    created_at: datetime = field(default_factory=utc_now)

    @property
    def sort_key(self) -> tuple[int, datetime]:
        return (self.position, self.created_at)

    @classmethod
    def from_row(cls, row: Any) -> "TrainingLesson":
        return cls(
            lesson_id=row.lesson_id,
            module_id=row.module_id,
            title=row.title,
            position=row.position or 0,
            min_time_seconds=row.min_time_seconds,
            is_active=row.is_active if row.is_active is not None else True,
            created_at=ensure_utc_aware(row.created_at) or utc_now(),
        )


@dataclass
class Assignment:
    """The fact that a user must complete a module.

    ``assigned_by`` is None for system assignments. ``notification_sent`` is
    bookkeeping only and says nothing authoritative about delivery.
    """

    user_id: UUID
    module_id: UUID
    assigned_by: UUID | None = None
    assigned_at: datetime = field(default_factory=utc_now)
    is_completed: bool = False
    completed_at: datetime | None = None
    notification_sent: bool = False
    due_date: date | None = None

    @classmethod
    def from_row(cls, row: Any) -> "Assignment":
        due_date = row.due_date
        # cassandra.util.Date
        if due_date is not None and not isinstance(due_date, date):
            due_date = due_date.date()
        return cls(
            user_id=row.user_id,
            module_id=row.module_id,
            assigned_by=row.assigned_by,
            assigned_at=ensure_utc_aware(row.assigned_at) or utc_now(),
            is_completed=bool(row.is_completed),
            completed_at=ensure_utc_aware(row.completed_at),
            notification_sent=bool(row.notification_sent),
            due_date=due_date,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "module_id": self.module_id,
            "assigned_by": self.assigned_by,
            "assigned_at": self.assigned_at,
            "is_completed": self.is_completed,
            "completed_at": self.completed_at,
            "notification_sent": self.notification_sent,
            "due_date": self.due_date,
        }


@dataclass
class LessonProgress:
    """Progress of one user on one lesson.

    ``module_id`` is denormalized from the lesson so progress can be
    partitioned by module as well as by user.
    """

    user_id: UUID
    lesson_id: UUID
    module_id: UUID
    is_completed: bool = False
    time_spent_seconds: int = 0
    video_position_seconds: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime = field(default_factory=utc_now)

    @classmethod
    def from_row(cls, row: Any) -> "LessonProgress":
        return cls(
            user_id=row.user_id,
            lesson_id=row.lesson_id,
            module_id=row.module_id,
            is_completed=bool(row.is_completed),
            time_spent_seconds=row.time_spent_seconds or 0,
            video_position_seconds=row.video_position_seconds or 0,
            started_at=ensure_utc_aware(row.started_at),
            completed_at=ensure_utc_aware(row.completed_at),
            updated_at=ensure_utc_aware(row.updated_at) or utc_now(),
        )

    def __repr__(self) -> str:
        state = "done" if self.is_completed else "open"
        return f"<LessonProgress user={self.user_id} lesson={self.lesson_id} {state}>"


@dataclass
class UserProfile:
    """Learner identity as needed for progress views and emails."""

    user_id: UUID
    email: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    role: str | None = None

    @property
    def display_name(self) -> str:
        name = " ".join(part for part in (self.first_name, self.last_name) if part)
        return name or (self.email or str(self.user_id))

    @classmethod
    def from_row(cls, row: Any) -> "UserProfile":
        return cls(
            user_id=row.user_id,
            email=row.email,
            first_name=row.first_name,
            last_name=row.last_name,
            role=row.role,
        )
