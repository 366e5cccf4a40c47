"""Tests for the training catalog and send-training flow."""

from datetime import date
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from src.notifications.fanout import DispatchReport, NotificationFanout
from src.notifications.models import NotificationType
from src.training.exceptions import NotFoundError, TransientStoreError
from src.training.models import (
    Assignment,
    LessonProgress,
    TrainingModule,
    UserProfile,
)
from src.training.schemas import CreateLessonRequest, CreateModuleRequest
from src.training.service import TrainingService


@pytest.fixture
def publisher():
    return AsyncMock()


@pytest.fixture
def service(training_store, notification_service, email_events, publisher):
    return TrainingService(
        store=training_store,
        notification_service=notification_service,
        email_events=email_events,
        publisher=publisher,
        email_batch_size=2,
        frontend_url="https://learn.example.com/",
    )


def add_learners(training_store, count, with_email=True):
    users = []
    for i in range(count):
        profile = training_store.add_profile(
            UserProfile(
                user_id=uuid4(),
                email=f"learner{i}@example.com" if with_email else None,
                first_name=f"Learner{i}",
            )
        )
        users.append(profile.user_id)
    return users


class TestCatalog:
    """Tests for module and lesson authoring."""

    @pytest.mark.asyncio
    async def test_create_module(self, service, training_store, publisher):
        module = await service.create_module(
            CreateModuleRequest(title="Pharmacovigilance", description="Basics")
        )

        assert training_store.modules[module.module_id].title == "Pharmacovigilance"
        publisher.publish.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_list_lessons_of_unknown_module(self, service):
        with pytest.raises(NotFoundError):
            await service.list_lessons(uuid4())

    @pytest.mark.asyncio
    async def test_list_lessons_in_order(self, service, module, lessons):
        listed = await service.list_lessons(module.module_id, active_only=True)

        assert [lesson.lesson_id for lesson in listed] == [
            lesson.lesson_id for lesson in lessons
        ]

    @pytest.mark.asyncio
    async def test_create_lesson_runs_fanout(self, service, training_store, module):
        fanout = AsyncMock(spec=NotificationFanout)
        fanout.notify_new_lesson.return_value = DispatchReport(in_app_sent=3)
        service.fanout = fanout

        lesson, report = await service.create_lesson(
            module.module_id, CreateLessonRequest(title="Cold chain", position=4)
        )

        assert lesson.lesson_id in training_store.lessons
        assert report == DispatchReport(in_app_sent=3)
        fanout.notify_new_lesson.assert_awaited_once_with(module, lesson)

    @pytest.mark.asyncio
    async def test_create_lesson_survives_fanout_failure(
        self, service, training_store, module
    ):
        """The lesson exists even when notifying learners fails."""
        fanout = AsyncMock(spec=NotificationFanout)
        fanout.notify_new_lesson.side_effect = TransientStoreError()
        service.fanout = fanout

        lesson, report = await service.create_lesson(
            module.module_id, CreateLessonRequest(title="Cold chain")
        )

        assert report is None
        assert lesson.lesson_id in training_store.lessons

    @pytest.mark.asyncio
    async def test_inactive_lesson_notifies_nobody(self, service, module):
        fanout = AsyncMock(spec=NotificationFanout)
        service.fanout = fanout

        _, report = await service.create_lesson(
            module.module_id, CreateLessonRequest(title="Draft", is_active=False)
        )

        assert report is None
        fanout.notify_new_lesson.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_create_lesson_unknown_module(self, service, training_store):
        with pytest.raises(NotFoundError):
            await service.create_lesson(uuid4(), CreateLessonRequest(title="X"))

        assert training_store.lessons == {}


class TestAssignUsers:
    """Tests for the send-training flow."""

    @pytest.mark.asyncio
    async def test_assigns_new_users_only(self, service, training_store, module):
        existing, *new = add_learners(training_store, 3)
        original = training_store.add_assignment(
            Assignment(
                user_id=existing,
                module_id=module.module_id,
                is_completed=True,
                notification_sent=True,
            )
        )
        admin_id = uuid4()

        response = await service.assign_users(
            module.module_id,
            [existing, *new, new[0]],
            assigned_by=admin_id,
            due_date=date(2026, 12, 1),
        )

        assert response.assigned == 2
        assert response.already_assigned == 1
        # The existing assignment is left alone
        assert training_store.assignments[(existing, module.module_id)] == original
        for user_id in new:
            assignment = training_store.assignments[(user_id, module.module_id)]
            assert assignment.assigned_by == admin_id
            assert assignment.due_date == date(2026, 12, 1)
            assert assignment.is_completed is False

    @pytest.mark.asyncio
    async def test_notifies_and_emails_new_assignees(
        self, service, training_store, notification_service, email_events, module
    ):
        users = add_learners(training_store, 3)

        response = await service.assign_users(
            module.module_id, users, assigned_by=None
        )

        assert response.emails_sent == 3
        assert response.emails_failed == 0
        assert {n.user_id for n in notification_service.created} == set(users)
        assert all(
            n.type == NotificationType.TRAINING_ASSIGNED
            for n in notification_service.created
        )
        key, recipient, payload = email_events.sent[0]
        assert key == "training_assigned"
        assert payload["training_url"] == (
            f"https://learn.example.com/training/{module.module_id}"
        )
        assert payload["module_title"] == module.title
        assert all(
            training_store.assignments[(u, module.module_id)].notification_sent
            for u in users
        )

    @pytest.mark.asyncio
    async def test_failed_emails_leave_flag_unset(
        self, service, training_store, email_events, module
    ):
        users = add_learners(training_store, 3)
        email_events.failing = {"learner1@example.com"}

        response = await service.assign_users(module.module_id, users, assigned_by=None)

        assert response.emails_sent == 2
        assert response.emails_failed == 1
        flags = [
            training_store.assignments[(u, module.module_id)].notification_sent
            for u in users
        ]
        assert flags == [True, False, True]

    @pytest.mark.asyncio
    async def test_disabled_event_sends_nothing(
        self, service, training_store, email_events, module
    ):
        email_events.disabled = {"training_assigned"}
        users = add_learners(training_store, 2)

        response = await service.assign_users(module.module_id, users, assigned_by=None)

        assert response.assigned == 2
        assert response.emails_sent == 0
        assert email_events.sent == []

    @pytest.mark.asyncio
    async def test_users_without_email_are_not_emailed(
        self, service, training_store, email_events, module
    ):
        users = add_learners(training_store, 2, with_email=False)

        response = await service.assign_users(module.module_id, users, assigned_by=None)

        assert response.assigned == 2
        assert response.emails_sent == response.emails_failed == 0

    @pytest.mark.asyncio
    async def test_in_app_failure_does_not_block_emails(
        self, service, training_store, notification_service, module
    ):
        notification_service.fail = True
        users = add_learners(training_store, 2)

        response = await service.assign_users(module.module_id, users, assigned_by=None)

        assert response.emails_sent == 2

    @pytest.mark.asyncio
    async def test_nothing_new(self, service, training_store, email_events, module):
        (user_id,) = add_learners(training_store, 1)
        training_store.add_assignment(Assignment(user_id=user_id, module_id=module.module_id))

        response = await service.assign_users(module.module_id, [user_id], assigned_by=None)

        assert response.assigned == 0
        assert response.already_assigned == 1
        assert email_events.sent == []

    @pytest.mark.asyncio
    async def test_unknown_module(self, service):
        with pytest.raises(NotFoundError):
            await service.assign_users(uuid4(), [uuid4()], assigned_by=None)


class TestResendPendingNotifications:
    """Tests for retrying assignment emails that never went out."""

    @pytest.mark.asyncio
    async def test_failed_email_is_delivered_on_resend(
        self, service, training_store, email_events, module
    ):
        users = add_learners(training_store, 3)
        email_events.failing = {"learner1@example.com"}
        await service.assign_users(module.module_id, users, assigned_by=None)
        email_events.failing = set()
        email_events.sent.clear()

        response = await service.resend_pending_notifications()

        assert response.pending == 1
        assert response.emails_sent == 1
        assert response.emails_failed == 0
        assert [recipient.email for _, recipient, _ in email_events.sent] == [
            "learner1@example.com"
        ]
        assert all(
            training_store.assignments[(u, module.module_id)].notification_sent
            for u in users
        )

    @pytest.mark.asyncio
    async def test_skips_notified_and_completed(
        self, service, training_store, email_events, module
    ):
        notified, completed, pending = add_learners(training_store, 3)
        training_store.add_assignment(
            Assignment(
                user_id=notified, module_id=module.module_id, notification_sent=True
            )
        )
        training_store.add_assignment(
            Assignment(user_id=completed, module_id=module.module_id, is_completed=True)
        )
        training_store.add_assignment(
            Assignment(user_id=pending, module_id=module.module_id)
        )

        response = await service.resend_pending_notifications(module.module_id)

        assert response.pending == 1
        assert response.emails_sent == 1
        assert email_events.sent[0][1].email == "learner2@example.com"
        assert email_events.sent[0][2]["module_title"] == module.title

    @pytest.mark.asyncio
    async def test_module_filter(self, service, training_store, email_events, module):
        other = training_store.add_module(
            TrainingModule(module_id=uuid4(), title="Cold Chain")
        )
        first, second = add_learners(training_store, 2)
        training_store.add_assignment(Assignment(user_id=first, module_id=module.module_id))
        training_store.add_assignment(Assignment(user_id=second, module_id=other.module_id))

        response = await service.resend_pending_notifications(other.module_id)

        assert response.pending == 1
        assert [payload["module_title"] for _, _, payload in email_events.sent] == [
            "Cold Chain"
        ]
        assert not training_store.assignments[(first, module.module_id)].notification_sent

    @pytest.mark.asyncio
    async def test_disabled_event_leaves_flags(
        self, service, training_store, email_events, module
    ):
        (user_id,) = add_learners(training_store, 1)
        training_store.add_assignment(Assignment(user_id=user_id, module_id=module.module_id))
        email_events.disabled = {"training_assigned"}

        response = await service.resend_pending_notifications()

        assert response.pending == 1
        assert response.emails_sent == 0
        assert not training_store.assignments[(user_id, module.module_id)].notification_sent


class TestProgressViews:
    @pytest.mark.asyncio
    async def test_views_over_every_assignment(
        self, service, training_store, module, lessons
    ):
        users = add_learners(training_store, 2)
        for user_id in users:
            training_store.add_assignment(
                Assignment(user_id=user_id, module_id=module.module_id)
            )
        training_store.add_progress(
            LessonProgress(
                user_id=users[0],
                lesson_id=lessons[0].lesson_id,
                module_id=module.module_id,
                is_completed=True,
            )
        )

        views = await service.get_progress_views(module.module_id)

        by_user = {view.user_id: view for view in views}
        assert by_user[users[0]].progress.progress_percentage == 50
        assert by_user[users[1]].progress.progress_percentage == 0
        assert by_user[users[0]].module_title == module.title

    @pytest.mark.asyncio
    async def test_no_assignments(self, service, module):
        assert await service.get_progress_views(module.module_id) == []
