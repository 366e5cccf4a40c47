"""Tests for progress aggregation."""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.training.aggregator import (
    active_in_order,
    aggregate,
    index_progress,
    module_progress_view,
    progress_percentage,
)
from src.training.models import (
    Assignment,
    LessonProgress,
    TrainingLesson,
    TrainingModule,
    UserProfile,
)


def make_lessons(module_id, count, **kwargs):
    base = datetime(2026, 3, 1, tzinfo=UTC)
    return [
        TrainingLesson(
            lesson_id=uuid4(),
            module_id=module_id,
            title=f"Lesson {i}",
            position=i,
            created_at=base + timedelta(minutes=i),
            **kwargs,
        )
        for i in range(count)
    ]


def completed(user_id, lesson):
    return LessonProgress(
        user_id=user_id,
        lesson_id=lesson.lesson_id,
        module_id=lesson.module_id,
        is_completed=True,
        time_spent_seconds=120,
    )


class TestProgressPercentage:
    @pytest.mark.parametrize(
        "done,total,expected",
        [
            (0, 0, 0),
            (0, 4, 0),
            (1, 2, 50),
            (1, 3, 33),
            (2, 3, 67),
            (1, 8, 13),
            (5, 8, 63),
            (4, 4, 100),
        ],
    )
    def test_rounds_half_up(self, done: int, total: int, expected: int) -> None:
        assert progress_percentage(done, total) == expected


class TestActiveInOrder:
    def test_ties_broken_by_creation(self) -> None:
        module_id = uuid4()
        early = datetime(2026, 1, 1, tzinfo=UTC)
        late = early + timedelta(hours=1)
        second = TrainingLesson(uuid4(), module_id, "B", position=1, created_at=late)
        first = TrainingLesson(uuid4(), module_id, "A", position=1, created_at=early)
        zeroth = TrainingLesson(uuid4(), module_id, "Z", position=0, created_at=late)
        hidden = TrainingLesson(
            uuid4(), module_id, "H", position=0, is_active=False, created_at=early
        )

        ordered = active_in_order([second, hidden, first, zeroth])

        assert [lesson.title for lesson in ordered] == ["Z", "A", "B"]


class TestModuleProgressView:
    def test_zero_lessons_is_zero_percent(self) -> None:
        """A module without lessons reports 0%, never a division error."""
        user_id, module_id = uuid4(), uuid4()

        view = module_progress_view(user_id, module_id, [], {})

        assert view.total_lessons == 0
        assert view.completed_lessons == 0
        assert view.progress_percentage == 0

    def test_inactive_lessons_do_not_count(self) -> None:
        user_id, module_id = uuid4(), uuid4()
        active = make_lessons(module_id, 2)
        inactive = make_lessons(module_id, 1, is_active=False)
        rows = [completed(user_id, active[0]), completed(user_id, inactive[0])]

        view = module_progress_view(
            user_id, module_id, active + inactive, index_progress(rows)
        )

        assert view.total_lessons == 2
        assert view.completed_lessons == 1
        assert view.progress_percentage == 50

    def test_incomplete_rows_do_not_count(self) -> None:
        user_id, module_id = uuid4(), uuid4()
        lessons = make_lessons(module_id, 2)
        started = LessonProgress(
            user_id=user_id,
            lesson_id=lessons[0].lesson_id,
            module_id=module_id,
            time_spent_seconds=10,
        )

        view = module_progress_view(
            user_id, module_id, lessons, index_progress([started])
        )

        assert view.completed_lessons == 0

    def test_other_users_progress_is_ignored(self) -> None:
        user_id, other_id, module_id = uuid4(), uuid4(), uuid4()
        lessons = make_lessons(module_id, 2)
        rows = [completed(other_id, lesson) for lesson in lessons]

        view = module_progress_view(user_id, module_id, lessons, index_progress(rows))

        assert view.completed_lessons == 0


class TestAggregate:
    def test_one_view_per_assignment(self) -> None:
        module = TrainingModule(module_id=uuid4(), title="Onboarding")
        lessons = make_lessons(module.module_id, 3)
        alice, bob = uuid4(), uuid4()
        profiles = {
            alice: UserProfile(alice, "alice@example.com", "Alice", "Costa"),
            bob: UserProfile(bob, "bob@example.com"),
        }
        assignments = [
            Assignment(user_id=alice, module_id=module.module_id),
            Assignment(user_id=bob, module_id=module.module_id),
        ]
        rows = [completed(alice, lesson) for lesson in lessons[:2]]

        views = aggregate(
            assignments,
            {module.module_id: lessons},
            index_progress(rows),
            profiles,
            {module.module_id: module},
        )

        by_user = {view.user_id: view for view in views}
        assert by_user[alice].progress.progress_percentage == 67
        assert by_user[alice].display_name == "Alice Costa"
        assert [d.is_completed for d in by_user[alice].lessons] == [True, True, False]
        assert by_user[bob].progress.progress_percentage == 0
        assert by_user[bob].display_name == "bob@example.com"

    def test_zero_lesson_module_for_every_assignee(self) -> None:
        module = TrainingModule(module_id=uuid4(), title="Empty")
        users = [uuid4() for _ in range(3)]

        views = aggregate(
            [Assignment(user_id=u, module_id=module.module_id) for u in users],
            {},
            {},
            {u: UserProfile(u) for u in users},
            {module.module_id: module},
        )

        assert len(views) == 3
        assert all(view.progress.progress_percentage == 0 for view in views)
        assert all(view.progress.total_lessons == 0 for view in views)

    def test_unjoinable_assignments_are_skipped(self) -> None:
        module = TrainingModule(module_id=uuid4(), title="Known")
        known, unknown = uuid4(), uuid4()

        views = aggregate(
            [
                Assignment(user_id=known, module_id=module.module_id),
                Assignment(user_id=unknown, module_id=module.module_id),
                Assignment(user_id=known, module_id=uuid4()),
            ],
            {},
            {},
            {known: UserProfile(known)},
            {module.module_id: module},
        )

        assert [(v.user_id, v.module_id) for v in views] == [
            (known, module.module_id)
        ]
