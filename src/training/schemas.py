"""Pydantic schemas for the training engine.

Request and response models for:
- Module and lesson authoring
- Sending training (assignments)
- Progress views built by the aggregator
- Admin approve / reset overrides
"""

from datetime import date, datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from src.notifications.schemas import DispatchReportResponse

from .models import Assignment, TrainingLesson, TrainingModule


# ==============================================================================
# Catalog Schemas
# ==============================================================================


class CreateModuleRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=5000)
    is_active: bool = True


class ModuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    module_id: UUID
    title: str
    description: str | None = None
    is_active: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: TrainingModule) -> "ModuleResponse":
        return cls.model_validate(entity)


class CreateLessonRequest(BaseModel):
    """Request to add a lesson; active lessons trigger learner notifications."""

    title: str = Field(..., min_length=1, max_length=200)
    position: int = Field(default=0, ge=0, description="Display order key")
    min_time_seconds: int | None = Field(
        default=60, ge=0, description="Minimum dwell time for learner completion"
    )
    is_active: bool = True


class LessonResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    lesson_id: UUID
    module_id: UUID
    title: str
    position: int
    min_time_seconds: int | None = None
    is_active: bool
    created_at: datetime

    @classmethod
    def from_entity(cls, entity: TrainingLesson) -> "LessonResponse":
        return cls.model_validate(entity)


class LessonCreatedResponse(BaseModel):
    """Created lesson plus the outcome of the notification fan-out.

    ``dispatch`` is None when the fan-out did not run or failed; the lesson
    is created either way.
    """

    lesson: LessonResponse
    dispatch: DispatchReportResponse | None = None


# ==============================================================================
# Assignment Schemas
# ==============================================================================


class AssignmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    module_id: UUID
    assigned_by: UUID | None = None
    assigned_at: datetime
    is_completed: bool
    completed_at: datetime | None = None
    notification_sent: bool
    due_date: date | None = None

    @classmethod
    def from_entity(cls, entity: Assignment) -> "AssignmentResponse":
        return cls.model_validate(entity)


class AssignUsersRequest(BaseModel):
    """Send a training module to a set of users."""

    user_ids: list[UUID] = Field(..., min_length=1, max_length=1000)
    due_date: date | None = None


class AssignUsersResponse(BaseModel):
    assigned: int = Field(description="New assignments created")
    already_assigned: int = Field(description="Users that were already assigned")
    emails_sent: int = 0
    emails_failed: int = 0


class ResendNotificationsResponse(BaseModel):
    pending: int = Field(description="Open assignments not yet emailed")
    emails_sent: int = 0
    emails_failed: int = 0


# ==============================================================================
# Progress Views
# ==============================================================================


class LessonProgressDetail(BaseModel):
    lesson_id: UUID
    title: str
    position: int
    is_completed: bool = False
    time_spent_seconds: int = 0
    video_position_seconds: int = 0
    completed_at: datetime | None = None


class ModuleProgressView(BaseModel):
    """Derived completion state of one user on one module."""

    user_id: UUID
    module_id: UUID
    total_lessons: int
    completed_lessons: int
    progress_percentage: int = Field(ge=0, le=100)


class UserProgressView(BaseModel):
    """One assignment joined with profile, module and per-lesson detail."""

    user_id: UUID
    email: str | None = None
    display_name: str
    module_id: UUID
    module_title: str
    assignment: AssignmentResponse
    progress: ModuleProgressView
    lessons: list[LessonProgressDetail] = Field(default_factory=list)


class UserModuleStatusResponse(BaseModel):
    """State of a (user, module) pair after an admin override."""

    progress: ModuleProgressView
    assignment: AssignmentResponse | None = None


class ApproveModuleRequest(BaseModel):
    user_id: UUID


class UserLessonRequest(BaseModel):
    user_id: UUID
