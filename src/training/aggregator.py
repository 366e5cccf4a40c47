"""Progress aggregation.

Pure functions that turn assignments, lessons and progress rows into
per-user, per-module completion views. No I/O and no side effects: callers
fetch the complete datasets first (see ``TrainingStore.get_progress``).
"""

from collections.abc import Iterable, Mapping
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from .models import (
    Assignment,
    LessonProgress,
    TrainingLesson,
    TrainingModule,
    UserProfile,
)
from .schemas import (
    AssignmentResponse,
    LessonProgressDetail,
    ModuleProgressView,
    UserProgressView,
)


ProgressIndex = Mapping[tuple[UUID, UUID], LessonProgress]


def index_progress(
    rows: Iterable[LessonProgress],
) -> dict[tuple[UUID, UUID], LessonProgress]:
    """Key progress rows by (user_id, lesson_id)."""
    return {(row.user_id, row.lesson_id): row for row in rows}


def progress_percentage(completed: int, total: int) -> int:
    """Completion percentage rounded half-up; 0 when there is nothing to complete."""
    if total <= 0:
        return 0
    ratio = Decimal(completed) * 100 / Decimal(total)
    return int(ratio.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def active_in_order(lessons: Iterable[TrainingLesson]) -> list[TrainingLesson]:
    """Active lessons by position, ties broken by creation order."""
    return sorted(
        (lesson for lesson in lessons if lesson.is_active),
        key=lambda lesson: lesson.sort_key,
    )


def module_progress_view(
    user_id: UUID,
    module_id: UUID,
    lessons: Iterable[TrainingLesson],
    progress: ProgressIndex,
) -> ModuleProgressView:
    """Compute the completion view of one user on one module.

    Inactive lessons count neither towards the total nor as completed.
    """
    active = active_in_order(lessons)
    completed = 0
    for lesson in active:
        row = progress.get((user_id, lesson.lesson_id))
        if row is not None and row.is_completed:
            completed += 1
    return ModuleProgressView(
        user_id=user_id,
        module_id=module_id,
        total_lessons=len(active),
        completed_lessons=completed,
        progress_percentage=progress_percentage(completed, len(active)),
    )


def lesson_details(
    user_id: UUID,
    lessons: Iterable[TrainingLesson],
    progress: ProgressIndex,
) -> list[LessonProgressDetail]:
    details = []
    for lesson in active_in_order(lessons):
        row = progress.get((user_id, lesson.lesson_id))
        details.append(
            LessonProgressDetail(
                lesson_id=lesson.lesson_id,
                title=lesson.title,
                position=lesson.position,
                is_completed=bool(row and row.is_completed),
                time_spent_seconds=row.time_spent_seconds if row else 0,
                video_position_seconds=row.video_position_seconds if row else 0,
                completed_at=row.completed_at if row else None,
            )
        )
    return details


def aggregate(
    assignments: Iterable[Assignment],
    lessons_by_module: Mapping[UUID, list[TrainingLesson]],
    progress: ProgressIndex,
    profiles: Mapping[UUID, UserProfile],
    modules: Mapping[UUID, TrainingModule],
) -> list[UserProgressView]:
    """Build one progress view per assignment.

    Assignments whose profile or module is missing are skipped: that data is
    not joinable yet, which is not an error.
    """
    views: list[UserProgressView] = []
    for assignment in assignments:
        profile = profiles.get(assignment.user_id)
        module = modules.get(assignment.module_id)
        if profile is None or module is None:
            continue

        lessons = lessons_by_module.get(assignment.module_id, [])
        views.append(
            UserProgressView(
                user_id=assignment.user_id,
                email=profile.email,
                display_name=profile.display_name,
                module_id=module.module_id,
                module_title=module.title,
                assignment=AssignmentResponse.from_entity(assignment),
                progress=module_progress_view(
                    assignment.user_id, assignment.module_id, lessons, progress
                ),
                lessons=lesson_details(assignment.user_id, lessons, progress),
            )
        )
    return views
