"""Tests for the Cassandra training store against a mocked session."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock, patch
from uuid import uuid4

import pytest
from cassandra.cluster import NoHostAvailable, Session
from cassandra.query import BatchType

from src.training.exceptions import TransientStoreError
from src.training.models import Assignment, TrainingLesson
from src.training.store import TrainingStore


def progress_row(user_id, module_id, completed=True):
    return SimpleNamespace(
        user_id=user_id,
        module_id=module_id,
        lesson_id=uuid4(),
        is_completed=completed,
        time_spent_seconds=90,
        video_position_seconds=30,
        started_at=None,
        completed_at=None,
        updated_at=None,
    )


def result_page(rows, paging_state=None):
    result = MagicMock()
    result.current_rows = rows
    result.paging_state = paging_state
    return result


@pytest.fixture
def mock_session():
    """Mock Cassandra session with async execute (cassandra-asyncio-driver)."""
    session = Mock(spec=Session)
    session.prepare = Mock(side_effect=lambda query: MagicMock(name="prepared"))
    session.aexecute = AsyncMock(return_value=MagicMock())
    return session


@pytest.fixture
def store(mock_session) -> TrainingStore:
    return TrainingStore(
        session=mock_session,
        keyspace="test_keyspace",
        page_size=2,
        page_fetch_attempts=2,
        page_retry_delay=0,
    )


class TestAtomic:
    """Tests for TrainingStore.atomic()."""

    @pytest.mark.asyncio
    async def test_writes_one_logged_batch(self, store, mock_session) -> None:
        """Every operation in the block goes out in a single LOGGED batch."""
        user_id, module_id = uuid4(), uuid4()
        lesson = TrainingLesson(lesson_id=uuid4(), module_id=module_id, title="Intro")

        with patch("src.training.store.BatchStatement") as batch_cls:
            async with store.atomic() as batch:
                batch.complete_lesson(user_id, lesson, 60, lesson.created_at)
                batch.delete_progress(user_id, module_id, uuid4())
                batch.upsert_assignment(
                    Assignment(user_id=user_id, module_id=module_id)
                )

        batch_cls.assert_called_once_with(batch_type=BatchType.LOGGED)
        statement = batch_cls.return_value
        # Each operation writes both the primary and the lookup table
        assert statement.add.call_count == 6
        mock_session.aexecute.assert_awaited_once()
        assert mock_session.aexecute.await_args.args[0] is statement

    @pytest.mark.asyncio
    async def test_nothing_written_when_block_raises(
        self, store, mock_session
    ) -> None:
        with pytest.raises(RuntimeError):
            async with store.atomic() as batch:
                batch.delete_progress(uuid4(), uuid4(), uuid4())
                raise RuntimeError("abort")

        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_block_is_noop(self, store, mock_session) -> None:
        async with store.atomic():
            pass

        mock_session.aexecute.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_assignment_rows_mirror_each_other(self, store) -> None:
        """Both assignment tables receive the same values, keys swapped."""
        assignment = Assignment(user_id=uuid4(), module_id=uuid4())

        with patch("src.training.store.BatchStatement") as batch_cls:
            async with store.atomic() as batch:
                batch.upsert_assignment(assignment)

        calls = batch_cls.return_value.add.call_args_list
        by_module = calls[0].args[1]
        by_user = calls[1].args[1]
        assert by_module[:2] == (assignment.module_id, assignment.user_id)
        assert by_user[:2] == (assignment.user_id, assignment.module_id)
        assert by_module[2:] == by_user[2:]


class TestErrorWrapping:
    """Driver failures surface as TransientStoreError."""

    @pytest.mark.asyncio
    async def test_no_host_available(self, store, mock_session) -> None:
        mock_session.aexecute.side_effect = NoHostAvailable("Unable to connect", {})

        with pytest.raises(TransientStoreError) as exc_info:
            await store.get_module(uuid4())

        assert exc_info.value.code == "transient_store_failure"

    @pytest.mark.asyncio
    async def test_unrelated_errors_propagate(self, store, mock_session) -> None:
        mock_session.aexecute.side_effect = KeyError("boom")

        with pytest.raises(KeyError):
            await store.get_module(uuid4())


class TestProgressPaging:
    """Progress reads walk every page using the driver paging state."""

    @pytest.mark.asyncio
    async def test_reads_all_pages(self, store, mock_session) -> None:
        user_id, module_id = uuid4(), uuid4()
        rows = [progress_row(user_id, module_id) for _ in range(5)]
        mock_session.aexecute.side_effect = [
            result_page(rows[0:2], "page-2"),
            result_page(rows[2:4], "page-3"),
            result_page(rows[4:5], None),
        ]

        progress = await store.get_progress(module_id=module_id)

        assert len(progress) == 5
        assert mock_session.aexecute.await_count == 3
        paging_states = [
            call.kwargs["paging_state"] for call in mock_session.aexecute.await_args_list
        ]
        assert paging_states == [None, "page-2", "page-3"]

    @pytest.mark.asyncio
    async def test_page_is_retried(self, store, mock_session) -> None:
        user_id, module_id = uuid4(), uuid4()
        mock_session.aexecute.side_effect = [
            NoHostAvailable("Unable to connect", {}),
            result_page([progress_row(user_id, module_id)], None),
        ]

        progress = await store.get_progress(user_id=user_id, module_id=module_id)

        assert len(progress) == 1
        assert progress[0].user_id == user_id

    @pytest.mark.asyncio
    async def test_lesson_filter_resolves_module(self, store, mock_session) -> None:
        user_id, module_id = uuid4(), uuid4()
        wanted = progress_row(user_id, module_id)
        other = progress_row(user_id, module_id)
        index = MagicMock()
        index.one.return_value = SimpleNamespace(module_id=module_id)
        mock_session.aexecute.side_effect = [index, result_page([wanted, other])]

        progress = await store.get_progress(lesson_id=wanted.lesson_id)

        assert [p.lesson_id for p in progress] == [wanted.lesson_id]

    @pytest.mark.asyncio
    async def test_unknown_lesson_has_no_progress(self, store, mock_session) -> None:
        index = MagicMock()
        index.one.return_value = None
        mock_session.aexecute.return_value = index

        assert await store.get_progress(lesson_id=uuid4()) == []


class TestProfiles:
    @pytest.mark.asyncio
    async def test_profiles_are_read_in_chunks(self, store, mock_session) -> None:
        """IN queries stay bounded; duplicate ids are read once."""
        ids = [uuid4() for _ in range(150)]
        mock_session.aexecute.return_value = []

        profiles = await store.get_profiles(ids + ids[:10])

        assert profiles == {}
        assert mock_session.aexecute.await_count == 2
        first_chunk = mock_session.aexecute.await_args_list[0].args[1][0]
        assert len(first_chunk) == 100


class TestPagedReads:
    """Lesson and per-user assignment reads await every page."""

    @pytest.mark.asyncio
    async def test_lessons_span_pages(self, store, mock_session) -> None:
        module_id = uuid4()
        rows = [
            SimpleNamespace(
                lesson_id=uuid4(),
                module_id=module_id,
                title=f"Lesson {position}",
                position=position,
                min_time_seconds=60,
                is_active=True,
                created_at=None,
            )
            for position in (3, 1, 2)
        ]
        mock_session.aexecute.side_effect = [
            result_page(rows[0:2], "page-2"),
            result_page(rows[2:3], None),
        ]

        lessons = await store.get_lessons(module_id)

        assert [lesson.position for lesson in lessons] == [1, 2, 3]
        assert mock_session.aexecute.await_count == 2
        assert mock_session.aexecute.await_args.kwargs["paging_state"] == "page-2"

    @pytest.mark.asyncio
    async def test_user_assignments_span_pages(self, store, mock_session) -> None:
        user_id = uuid4()
        rows = [
            SimpleNamespace(
                user_id=user_id,
                module_id=uuid4(),
                assigned_by=None,
                assigned_at=None,
                is_completed=False,
                completed_at=None,
                notification_sent=False,
                due_date=None,
            )
            for _ in range(3)
        ]
        mock_session.aexecute.side_effect = [
            result_page(rows[0:2], "page-2"),
            result_page(rows[2:3], None),
        ]

        assignments = await store.get_user_assignments(user_id)

        assert [a.module_id for a in assignments] == [r.module_id for r in rows]
        assert mock_session.aexecute.await_count == 2
