"""Notification fan-out for new training content.

When a lesson is added to a module, every learner with completed progress in
that module gets one in-app notification (single bulk write) and, when the
``training_new_lesson`` email event is active, one email. Emails go out in
fixed-size batches; a failed batch never stops the next one.

Fan-out is a side effect of lesson creation: partial failure is reported in
``DispatchReport`` counts, never raised past the in-app stage.
"""

from dataclasses import dataclass
from uuid import UUID

import structlog

from src.certificates.store import CertificateStore
from src.email.events import DEFAULT_BATCH_SIZE, EmailEventService, send_in_batches
from src.email.models import EmailEventKey
from src.email.schemas import EmailRecipient, SendEmailResponse
from src.training.models import TrainingLesson, TrainingModule, UserProfile
from src.training.store import TrainingStore

from .models import create_new_lesson_notification
from .service import NotificationService


logger = structlog.get_logger(__name__)


@dataclass
class DispatchReport:
    """Caller-visible outcome of a fan-out."""

    in_app_sent: int = 0
    emails_sent: int = 0
    emails_failed: int = 0


class NotificationFanout:
    """Dispatch one event to every affected learner."""

    def __init__(
        self,
        training_store: TrainingStore,
        certificate_store: CertificateStore,
        notification_service: NotificationService,
        email_events: EmailEventService | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        frontend_url: str = "",
    ):
        self.training_store = training_store
        self.certificate_store = certificate_store
        self.notification_service = notification_service
        self.email_events = email_events
        self.batch_size = batch_size
        self.frontend_url = frontend_url.rstrip("/")

    async def affected_user_ids(self, module_id: UUID) -> list[UUID]:
        """Distinct users with at least one completed lesson in the module."""
        progress = await self.training_store.get_progress(module_id=module_id)
        return list(dict.fromkeys(p.user_id for p in progress if p.is_completed))

    async def notify_new_lesson(
        self, module: TrainingModule, lesson: TrainingLesson
    ) -> DispatchReport:
        """Notify learners in progress (or further) about a new lesson.

        Raises:
            TransientStoreError: If the target users cannot be read
        """
        report = DispatchReport()

        certified = await self.certificate_store.list_certified_user_ids(module.module_id)
        affected = await self.affected_user_ids(module.module_id)
        if not affected:
            logger.info(
                "new_lesson_fanout_skipped",
                module_id=str(module.module_id),
                lesson_id=str(lesson.lesson_id),
                reason="no_learners_in_progress",
            )
            return report

        notifications = [
            create_new_lesson_notification(
                user_id=user_id,
                module_id=module.module_id,
                module_title=module.title,
                lesson_id=lesson.lesson_id,
                lesson_title=lesson.title,
                certified=user_id in certified,
            )
            for user_id in affected
        ]
        try:
            report.in_app_sent = await self.notification_service.create_many(
                notifications
            )
        except Exception as e:
            logger.exception(
                "new_lesson_notifications_failed",
                module_id=str(module.module_id),
                count=len(notifications),
                error=str(e),
            )

        await self._send_emails(module, lesson, affected, certified, report)

        logger.info(
            "new_lesson_fanout_completed",
            module_id=str(module.module_id),
            lesson_id=str(lesson.lesson_id),
            affected=len(affected),
            certified=len(certified & set(affected)),
            in_app_sent=report.in_app_sent,
            emails_sent=report.emails_sent,
            emails_failed=report.emails_failed,
        )
        return report

    async def _send_emails(
        self,
        module: TrainingModule,
        lesson: TrainingLesson,
        affected: list[UUID],
        certified: set[UUID],
        report: DispatchReport,
    ) -> None:
        if not self.email_events:
            return

        event_key = EmailEventKey.TRAINING_NEW_LESSON.value
        try:
            event = await self.email_events.get_enabled_event(event_key)
            if event is None:
                return
            profiles = await self.training_store.get_profiles(affected)
        except Exception as e:
            logger.exception(
                "new_lesson_emails_unavailable",
                module_id=str(module.module_id),
                error=str(e),
            )
            return

        recipients = [
            profiles[user_id]
            for user_id in affected
            if user_id in profiles and profiles[user_id].email
        ]
        if len(recipients) < len(affected):
            logger.info(
                "new_lesson_email_recipients_missing",
                module_id=str(module.module_id),
                missing=len(affected) - len(recipients),
            )

        lesson_url = (
            f"{self.frontend_url}/training/{module.module_id}/lessons/{lesson.lesson_id}"
        )

        async def send(profile: UserProfile) -> SendEmailResponse:
            return await self.email_events.send(
                event,
                EmailRecipient(email=profile.email, name=profile.display_name),
                {
                    "user_name": profile.display_name,
                    "module_title": module.title,
                    "lesson_title": lesson.title,
                    "certified": profile.user_id in certified,
                    "lesson_url": lesson_url,
                },
            )

        tally = await send_in_batches(recipients, send, batch_size=self.batch_size)
        report.emails_sent = tally.sent
        report.emails_failed = tally.failed
