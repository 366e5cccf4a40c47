"""Completion state machine and administrator overrides.

States per (user, module):
- not started: no assignment
- assigned: assignment exists, ``is_completed`` false
- completed: ``is_completed`` true and ``completed_at`` set

Completed is left only through ``reset_module``. Lesson-level completion
and module-level completion are tracked independently: finishing every
lesson does not flip the assignment, only ``approve_module`` does.

Multi-row overrides run inside one ``TrainingStore.atomic()`` block, so a
module is never left half-reset or half-approved.
"""

from uuid import UUID

import structlog

from .aggregator import index_progress, module_progress_view
from .exceptions import NoActiveLessonsError, NotFoundError
from .models import Assignment, TrainingLesson, TrainingModule, utc_now
from .realtime import ChangeEntity, TrainingChangePublisher
from .schemas import AssignmentResponse, ModuleProgressView, UserModuleStatusResponse
from .store import TrainingStore


logger = structlog.get_logger(__name__)

DEFAULT_APPROVAL_SECONDS = 300


class CompletionService:
    """Admin overrides over lesson progress and module completion."""

    def __init__(
        self,
        store: TrainingStore,
        publisher: TrainingChangePublisher | None = None,
        default_approval_seconds: int = DEFAULT_APPROVAL_SECONDS,
    ):
        self.store = store
        self.publisher = publisher
        self.default_approval_seconds = default_approval_seconds

    # ==========================================================================
    # Lookups
    # ==========================================================================

    async def _require_module(self, module_id: UUID) -> TrainingModule:
        module = await self.store.get_module(module_id)
        if not module:
            raise NotFoundError("Module not found")
        return module

    async def _require_lesson(self, lesson_id: UUID) -> TrainingLesson:
        lesson = await self.store.get_lesson(lesson_id)
        if not lesson:
            raise NotFoundError("Lesson not found")
        return lesson

    def _approval_seconds(self, lesson: TrainingLesson) -> int:
        return lesson.min_time_seconds or self.default_approval_seconds

    async def _notify(
        self, entity: str, action: str, module_id: UUID, user_id: UUID
    ) -> None:
        if self.publisher:
            await self.publisher.publish(
                entity, action, module_id=module_id, user_id=user_id
            )

    # ==========================================================================
    # Overrides
    # ==========================================================================

    async def approve_lesson(self, user_id: UUID, lesson_id: UUID) -> TrainingLesson:
        """Mark a lesson completed for a user, bypassing the dwell-time gate.

        Safe to repeat: the row is overwritten with the same completion flag
        and time spent.

        Raises:
            NotFoundError: If the lesson does not exist
        """
        lesson = await self._require_lesson(lesson_id)

        async with self.store.atomic() as batch:
            batch.complete_lesson(
                user_id,
                lesson,
                time_spent_seconds=self._approval_seconds(lesson),
                completed_at=utc_now(),
            )

        logger.info(
            "lesson_approved",
            user_id=str(user_id),
            lesson_id=str(lesson_id),
            module_id=str(lesson.module_id),
        )
        await self._notify(ChangeEntity.PROGRESS, "approved", lesson.module_id, user_id)
        return lesson

    async def approve_module(
        self, user_id: UUID, module_id: UUID, approved_by: UUID | None
    ) -> Assignment:
        """Complete every active lesson and the assignment in one batch.

        Creates the assignment when the user was never sent the training,
        recording ``approved_by`` as the assigner.

        Raises:
            NotFoundError: If the module does not exist
            NoActiveLessonsError: If the module has no active lessons
        """
        await self._require_module(module_id)
        lessons = await self.store.get_lessons(module_id, active_only=True)
        if not lessons:
            raise NoActiveLessonsError

        now = utc_now()
        assignment = await self.store.get_assignment(user_id, module_id)
        if assignment is None:
            assignment = Assignment(
                user_id=user_id,
                module_id=module_id,
                assigned_by=approved_by,
                assigned_at=now,
            )
        assignment.is_completed = True
        assignment.completed_at = now

        async with self.store.atomic() as batch:
            for lesson in lessons:
                batch.complete_lesson(
                    user_id,
                    lesson,
                    time_spent_seconds=self._approval_seconds(lesson),
                    completed_at=now,
                )
            batch.upsert_assignment(assignment)

        logger.info(
            "module_approved",
            user_id=str(user_id),
            module_id=str(module_id),
            approved_by=str(approved_by) if approved_by else None,
            lessons=len(lessons),
        )
        await self._notify(ChangeEntity.ASSIGNMENT, "approved", module_id, user_id)
        return assignment

    async def reset_lesson(self, user_id: UUID, lesson_id: UUID) -> TrainingLesson:
        """Delete a user's progress on a lesson; absent progress is a no-op.

        Raises:
            NotFoundError: If the lesson does not exist
        """
        lesson = await self._require_lesson(lesson_id)

        async with self.store.atomic() as batch:
            batch.delete_progress(user_id, lesson.module_id, lesson.lesson_id)

        logger.info(
            "lesson_reset",
            user_id=str(user_id),
            lesson_id=str(lesson_id),
            module_id=str(lesson.module_id),
        )
        await self._notify(ChangeEntity.PROGRESS, "reset", lesson.module_id, user_id)
        return lesson

    async def reset_module(self, user_id: UUID, module_id: UUID) -> Assignment | None:
        """Delete all of a user's progress in a module and un-complete it.

        The assignment itself is kept; the user stays assigned. Inactive
        lessons are reset too.

        Raises:
            NotFoundError: If the module does not exist
        """
        await self._require_module(module_id)
        lessons = await self.store.get_lessons(module_id, active_only=False)
        assignment = await self.store.get_assignment(user_id, module_id)

        async with self.store.atomic() as batch:
            for lesson in lessons:
                batch.delete_progress(user_id, module_id, lesson.lesson_id)
            if assignment is not None:
                assignment.is_completed = False
                assignment.completed_at = None
                batch.upsert_assignment(assignment)

        logger.info(
            "module_reset",
            user_id=str(user_id),
            module_id=str(module_id),
            lessons=len(lessons),
            had_assignment=assignment is not None,
        )
        await self._notify(ChangeEntity.ASSIGNMENT, "reset", module_id, user_id)
        return assignment

    # ==========================================================================
    # Views
    # ==========================================================================

    async def get_module_progress(
        self, user_id: UUID, module_id: UUID
    ) -> ModuleProgressView:
        """Current completion view of one user on one module.

        Raises:
            NotFoundError: If the module does not exist
        """
        await self._require_module(module_id)
        lessons = await self.store.get_lessons(module_id, active_only=True)
        rows = await self.store.get_progress(user_id=user_id, module_id=module_id)
        return module_progress_view(user_id, module_id, lessons, index_progress(rows))

    async def get_user_module_status(
        self, user_id: UUID, module_id: UUID
    ) -> UserModuleStatusResponse:
        """Progress view plus assignment (if any) of one user on one module."""
        progress = await self.get_module_progress(user_id, module_id)
        assignment = await self.store.get_assignment(user_id, module_id)
        return UserModuleStatusResponse(
            progress=progress,
            assignment=AssignmentResponse.from_entity(assignment) if assignment else None,
        )
