"""Training catalog, send-training flow and progress views.

Provides:
- Module and lesson authoring; a new active lesson triggers the
  notification fan-out, best-effort
- assign_users: the "send training" flow (assignments + in-app notice + email)
- resend_pending_notifications: retries assignment emails that never went out
- get_progress_views: aggregated per-assignment progress over complete data
"""

from datetime import date
from uuid import UUID, uuid4

import structlog

from src.email.events import (
    DEFAULT_BATCH_SIZE,
    BatchTally,
    EmailEventService,
    send_in_batches,
)
from src.email.models import EmailEventKey
from src.email.schemas import EmailRecipient, SendEmailResponse
from src.notifications.fanout import DispatchReport, NotificationFanout
from src.notifications.models import create_assignment_notification
from src.notifications.service import NotificationService

from .aggregator import aggregate, index_progress
from .exceptions import NotFoundError
from .models import (
    Assignment,
    LessonProgress,
    TrainingLesson,
    TrainingModule,
    UserProfile,
    utc_now,
)
from .realtime import ChangeEntity, TrainingChangePublisher
from .schemas import (
    AssignUsersResponse,
    CreateLessonRequest,
    CreateModuleRequest,
    ResendNotificationsResponse,
    UserProgressView,
)
from .store import TrainingStore


logger = structlog.get_logger(__name__)

# Assignments written per LOGGED batch
ASSIGNMENT_BATCH_SIZE = 50


class TrainingService:
    """Catalog and assignment operations for administrators."""

    def __init__(
        self,
        store: TrainingStore,
        fanout: NotificationFanout | None = None,
        notification_service: NotificationService | None = None,
        email_events: EmailEventService | None = None,
        publisher: TrainingChangePublisher | None = None,
        email_batch_size: int = DEFAULT_BATCH_SIZE,
        frontend_url: str = "",
    ):
        self.store = store
        self.fanout = fanout
        self.notification_service = notification_service
        self.email_events = email_events
        self.publisher = publisher
        self.email_batch_size = email_batch_size
        self.frontend_url = frontend_url.rstrip("/")

    async def _publish(self, entity: str, action: str, module_id: UUID) -> None:
        if self.publisher:
            await self.publisher.publish(entity, action, module_id=module_id)

    # ==========================================================================
    # Catalog
    # ==========================================================================

    async def get_module(self, module_id: UUID) -> TrainingModule:
        module = await self.store.get_module(module_id)
        if not module:
            raise NotFoundError("Module not found")
        return module

    async def list_modules(self) -> list[TrainingModule]:
        return await self.store.list_modules()

    async def create_module(self, request: CreateModuleRequest) -> TrainingModule:
        module = TrainingModule(
            module_id=uuid4(),
            title=request.title,
            description=request.description,
            is_active=request.is_active,
        )
        await self.store.create_module(module)
        logger.info("training_module_created", module_id=str(module.module_id))
        await self._publish(ChangeEntity.MODULE, "created", module.module_id)
        return module

    async def list_lessons(
        self, module_id: UUID, active_only: bool = False
    ) -> list[TrainingLesson]:
        await self.get_module(module_id)
        return await self.store.get_lessons(module_id, active_only=active_only)

    async def create_lesson(
        self, module_id: UUID, request: CreateLessonRequest
    ) -> tuple[TrainingLesson, DispatchReport | None]:
        """Create a lesson, then notify learners already in the module.

        The lesson is created even when the fan-out fails; the report is then
        None.

        Raises:
            NotFoundError: If the module does not exist
        """
        module = await self.get_module(module_id)
        lesson = TrainingLesson(
            lesson_id=uuid4(),
            module_id=module_id,
            title=request.title,
            position=request.position,
            min_time_seconds=request.min_time_seconds,
            is_active=request.is_active,
        )
        await self.store.create_lesson(lesson)
        logger.info(
            "training_lesson_created",
            module_id=str(module_id),
            lesson_id=str(lesson.lesson_id),
            position=lesson.position,
        )
        await self._publish(ChangeEntity.LESSON, "created", module_id)

        if not lesson.is_active or self.fanout is None:
            return lesson, None

        try:
            report = await self.fanout.notify_new_lesson(module, lesson)
        except Exception as e:
            logger.exception(
                "new_lesson_fanout_failed",
                module_id=str(module_id),
                lesson_id=str(lesson.lesson_id),
                error=str(e),
            )
            return lesson, None
        return lesson, report

    # ==========================================================================
    # Send Training
    # ==========================================================================

    async def assign_users(
        self,
        module_id: UUID,
        user_ids: list[UUID],
        assigned_by: UUID | None,
        due_date: date | None = None,
    ) -> AssignUsersResponse:
        """Assign a module to users who do not have it yet, then notify them.

        Existing assignments are left untouched.

        Raises:
            NotFoundError: If the module does not exist
        """
        module = await self.get_module(module_id)
        existing = {a.user_id for a in await self.store.get_assignments(module_id)}
        wanted = list(dict.fromkeys(user_ids))

        now = utc_now()
        created = [
            Assignment(
                user_id=user_id,
                module_id=module_id,
                assigned_by=assigned_by,
                assigned_at=now,
                due_date=due_date,
            )
            for user_id in wanted
            if user_id not in existing
        ]
        await self._write_assignments(created)

        response = AssignUsersResponse(
            assigned=len(created),
            already_assigned=len(wanted) - len(created),
        )
        logger.info(
            "training_assigned",
            module_id=str(module_id),
            assigned=response.assigned,
            already_assigned=response.already_assigned,
            assigned_by=str(assigned_by) if assigned_by else None,
        )
        if not created:
            return response

        await self._publish(ChangeEntity.ASSIGNMENT, "created", module_id)
        await self._notify_in_app(module, created)
        tally = await self._email_assigned(module, created)
        if tally is not None:
            response.emails_sent = tally.sent
            response.emails_failed = tally.failed
        return response

    async def _write_assignments(self, assignments: list[Assignment]) -> None:
        for start in range(0, len(assignments), ASSIGNMENT_BATCH_SIZE):
            async with self.store.atomic() as batch:
                for assignment in assignments[start : start + ASSIGNMENT_BATCH_SIZE]:
                    batch.upsert_assignment(assignment)

    async def _notify_in_app(
        self, module: TrainingModule, assignments: list[Assignment]
    ) -> None:
        if not self.notification_service:
            return
        try:
            await self.notification_service.create_many(
                [
                    create_assignment_notification(
                        a.user_id, module.module_id, module.title
                    )
                    for a in assignments
                ]
            )
        except Exception as e:
            logger.exception(
                "assignment_notifications_failed",
                module_id=str(module.module_id),
                error=str(e),
            )

    async def _email_assigned(
        self,
        module: TrainingModule,
        assignments: list[Assignment],
    ) -> BatchTally[UserProfile] | None:
        """Email assignees; delivered ones get ``notification_sent``.

        Returns None when email is not configured or the event is disabled.
        """
        if not self.email_events:
            return None

        event = await self.email_events.get_enabled_event(
            EmailEventKey.TRAINING_ASSIGNED.value
        )
        if event is None:
            return None

        profiles = await self.store.get_profiles(a.user_id for a in assignments)
        by_user = {a.user_id: a for a in assignments}
        recipients = [
            profiles[user_id]
            for user_id in by_user
            if user_id in profiles and profiles[user_id].email
        ]
        training_url = f"{self.frontend_url}/training/{module.module_id}"

        async def send(profile: UserProfile) -> SendEmailResponse:
            due_date = by_user[profile.user_id].due_date
            return await self.email_events.send(
                event,
                EmailRecipient(email=profile.email, name=profile.display_name),
                {
                    "user_name": profile.display_name,
                    "module_title": module.title,
                    "training_url": training_url,
                    "due_date": due_date.isoformat() if due_date else None,
                },
            )

        tally = await send_in_batches(recipients, send, batch_size=self.email_batch_size)

        delivered = [by_user[profile.user_id] for profile in tally.delivered]
        for assignment in delivered:
            assignment.notification_sent = True
        try:
            await self._write_assignments(delivered)
        except Exception as e:
            # Bookkeeping only; the emails are already out
            logger.exception(
                "assignment_notification_flag_failed",
                module_id=str(module.module_id),
                count=len(delivered),
                error=str(e),
            )
        return tally

    async def resend_pending_notifications(
        self, module_id: UUID | None = None
    ) -> ResendNotificationsResponse:
        """Email every open assignment whose notice never went out.

        Completed assignments are skipped. Assignments of a deleted module
        are counted as pending but not emailed.
        """
        assignments = await self.store.get_assignments(module_id)
        pending = [
            a for a in assignments if not a.notification_sent and not a.is_completed
        ]
        response = ResendNotificationsResponse(pending=len(pending))

        by_module: dict[UUID, list[Assignment]] = {}
        for assignment in pending:
            by_module.setdefault(assignment.module_id, []).append(assignment)

        for pending_module_id, group in by_module.items():
            module = await self.store.get_module(pending_module_id)
            if module is None:
                logger.warning(
                    "pending_notification_module_missing",
                    module_id=str(pending_module_id),
                    count=len(group),
                )
                continue
            tally = await self._email_assigned(module, group)
            if tally is None:
                break
            response.emails_sent += tally.sent
            response.emails_failed += tally.failed

        logger.info(
            "pending_notifications_resent",
            module_id=str(module_id) if module_id else None,
            pending=response.pending,
            emails_sent=response.emails_sent,
            emails_failed=response.emails_failed,
        )
        return response

    # ==========================================================================
    # Progress Views
    # ==========================================================================

    async def get_progress_views(
        self, module_id: UUID | None = None
    ) -> list[UserProgressView]:
        """Progress of every assignment, optionally limited to one module."""
        assignments = await self.store.get_assignments(module_id)
        if module_id is not None:
            rows = await self.store.get_progress(module_id=module_id)
        else:
            rows = await self.store.get_progress()
        return await self._build_views(assignments, rows)

    async def get_my_training(self, user_id: UUID) -> list[UserProgressView]:
        """Modules assigned to one learner, with their progress on each."""
        assignments = await self.store.get_user_assignments(user_id)
        rows = await self.store.get_progress(user_id=user_id)
        return await self._build_views(assignments, rows)

    async def _build_views(
        self, assignments: list[Assignment], rows: list[LessonProgress]
    ) -> list[UserProgressView]:
        if not assignments:
            return []

        module_ids = list(dict.fromkeys(a.module_id for a in assignments))
        modules: dict[UUID, TrainingModule] = {}
        lessons_by_module: dict[UUID, list[TrainingLesson]] = {}
        for mid in module_ids:
            module = await self.store.get_module(mid)
            if module is None:
                continue
            modules[mid] = module
            lessons_by_module[mid] = await self.store.get_lessons(mid, active_only=True)

        profiles = await self.store.get_profiles(a.user_id for a in assignments)
        return aggregate(
            assignments, lessons_by_module, index_progress(rows), profiles, modules
        )
