# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Cassandra access layer for modules, lessons, assignments and progress.

Provides:
- Prepared statements for every read and write
- ``atomic()``: collects writes and flushes them as one LOGGED batch
- Paginated progress reads through ``fetch_all_pages``
- Driver errors wrapped into ``TransientStoreError``
"""

from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable
from cassandra.query import BatchStatement, BatchType

from .bulk import DEFAULT_PAGE_SIZE, Page, fetch_all_pages
from .exceptions import TransientStoreError
from .models import (
    Assignment,
    LessonProgress,
    TrainingLesson,
    TrainingModule,
    UserProfile,
    utc_now,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

# Max keys per IN query
PROFILE_CHUNK_SIZE = 100


# ==============================================================================
# Write Batch
# ==============================================================================


class TrainingWriteBatch:
    """Ordered list of pending writes, applied together by the store.

    Operations are recorded as ``(kind, payload)`` pairs and translated to
    statements only when the enclosing ``atomic()`` block exits.
    """

    def __init__(self) -> None:
        self.operations: list[tuple[str, Any]] = []

    def __len__(self) -> int:
        return len(self.operations)

    def upsert_assignment(self, assignment: Assignment) -> None:
        self.operations.append(("upsert_assignment", assignment))

    def upsert_progress(self, progress: LessonProgress) -> None:
        self.operations.append(("upsert_progress", progress))

    def complete_lesson(
        self,
        user_id: UUID,
        lesson: TrainingLesson,
        time_spent_seconds: int,
        completed_at: datetime,
    ) -> None:
        """Mark a lesson completed, leaving the resume cursor untouched."""
        self.operations.append(
            (
                "complete_lesson",
                {
                    "user_id": user_id,
                    "module_id": lesson.module_id,
                    "lesson_id": lesson.lesson_id,
                    "time_spent_seconds": time_spent_seconds,
                    "completed_at": completed_at,
                },
            )
        )

    def delete_progress(self, user_id: UUID, module_id: UUID, lesson_id: UUID) -> None:
        self.operations.append(
            (
                "delete_progress",
                {"user_id": user_id, "module_id": module_id, "lesson_id": lesson_id},
            )
        )


# ==============================================================================
# Training Store
# ==============================================================================


class TrainingStore:
    """Data access for the training engine."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        page_fetch_attempts: int = 3,
        page_retry_delay: float = 0.2,
    ):
        self.session = session
        self.keyspace = keyspace
        self.page_size = page_size
        self.page_fetch_attempts = page_fetch_attempts
        self.page_retry_delay = page_retry_delay
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient execution."""
        ks = self.keyspace

        # Modules
        self._get_module = self.session.prepare(
            f"SELECT * FROM {ks}.training_modules WHERE module_id = ?"
        )
        self._list_modules = self.session.prepare(
            f"SELECT * FROM {ks}.training_modules"
        )
        self._insert_module = self.session.prepare(f"""
            INSERT INTO {ks}.training_modules
            (module_id, title, description, is_active, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)

        # Lessons
        self._get_module_lessons = self.session.prepare(
            f"SELECT * FROM {ks}.training_lessons WHERE module_id = ?"
        )
        self._get_lesson = self.session.prepare(
            f"SELECT * FROM {ks}.training_lessons WHERE module_id = ? AND lesson_id = ?"
        )
        self._get_lesson_module = self.session.prepare(
            f"SELECT module_id FROM {ks}.training_lesson_index WHERE lesson_id = ?"
        )
        self._insert_lesson = self.session.prepare(f"""
            INSERT INTO {ks}.training_lessons
            (module_id, lesson_id, title, position, min_time_seconds, is_active,
             created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """)
        self._insert_lesson_index = self.session.prepare(f"""
            INSERT INTO {ks}.training_lesson_index (lesson_id, module_id)
            VALUES (?, ?)
        """)

        # Assignments
        self._get_assignment = self.session.prepare(f"""
            SELECT * FROM {ks}.training_assignments
            WHERE module_id = ? AND user_id = ?
        """)
        self._get_module_assignments = self.session.prepare(
            f"SELECT * FROM {ks}.training_assignments WHERE module_id = ?"
        )
        self._get_all_assignments = self.session.prepare(
            f"SELECT * FROM {ks}.training_assignments"
        )
        self._get_user_assignments = self.session.prepare(
            f"SELECT * FROM {ks}.training_assignments_by_user WHERE user_id = ?"
        )
        self._upsert_assignment = self.session.prepare(f"""
            INSERT INTO {ks}.training_assignments
            (module_id, user_id, assigned_by, assigned_at, is_completed,
             completed_at, notification_sent, due_date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._upsert_assignment_by_user = self.session.prepare(f"""
            INSERT INTO {ks}.training_assignments_by_user
            (user_id, module_id, assigned_by, assigned_at, is_completed,
             completed_at, notification_sent, due_date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """)

        # Progress
        self._get_user_progress = self.session.prepare(
            f"SELECT * FROM {ks}.training_progress WHERE user_id = ?"
        )
        self._get_user_module_progress = self.session.prepare(f"""
            SELECT * FROM {ks}.training_progress
            WHERE user_id = ? AND module_id = ?
        """)
        self._get_module_progress = self.session.prepare(
            f"SELECT * FROM {ks}.training_progress_by_module WHERE module_id = ?"
        )
        self._get_all_progress = self.session.prepare(
            f"SELECT * FROM {ks}.training_progress"
        )
        self._upsert_progress = self.session.prepare(f"""
            INSERT INTO {ks}.training_progress
            (user_id, module_id, lesson_id, is_completed, time_spent_seconds,
             video_position_seconds, started_at, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        self._upsert_progress_by_module = self.session.prepare(f"""
            INSERT INTO {ks}.training_progress_by_module
            (module_id, user_id, lesson_id, is_completed, time_spent_seconds,
             video_position_seconds, started_at, completed_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)
        # Partial writes: video_position_seconds and started_at are kept
        self._complete_progress = self.session.prepare(f"""
            INSERT INTO {ks}.training_progress
            (user_id, module_id, lesson_id, is_completed, time_spent_seconds,
             completed_at, updated_at)
            VALUES (?, ?, ?, true, ?, ?, ?)
        """)
        self._complete_progress_by_module = self.session.prepare(f"""
            INSERT INTO {ks}.training_progress_by_module
            (module_id, user_id, lesson_id, is_completed, time_spent_seconds,
             completed_at, updated_at)
            VALUES (?, ?, ?, true, ?, ?, ?)
        """)
        self._delete_progress = self.session.prepare(f"""
            DELETE FROM {ks}.training_progress
            WHERE user_id = ? AND module_id = ? AND lesson_id = ?
        """)
        self._delete_progress_by_module = self.session.prepare(f"""
            DELETE FROM {ks}.training_progress_by_module
            WHERE module_id = ? AND user_id = ? AND lesson_id = ?
        """)

        # Profiles
        self._get_profile = self.session.prepare(
            f"SELECT * FROM {ks}.profiles WHERE user_id = ?"
        )
        self._get_profiles = self.session.prepare(
            f"SELECT * FROM {ks}.profiles WHERE user_id IN ?"
        )

    # ==========================================================================
    # Execution helpers
    # ==========================================================================

    async def _execute(self, statement: Any, params: Any = None, **kwargs: Any) -> Any:
        """Execute a statement, wrapping driver failures."""
        try:
            return await self.session.aexecute(statement, params, **kwargs)
        except (DriverException, RequestExecutionException, NoHostAvailable) as e:
            logger.warning(
                "training_store_unavailable",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransientStoreError(f"Training store unavailable: {e}") from e

    async def _fetch_all(self, statement: Any, params: tuple = ()) -> list[Any]:
        """Read every row of a query through the bulk pagination helper."""

        async def fetch_page(cursor: Any, page_size: int) -> Page:
            bound = statement.bind(params)
            bound.fetch_size = page_size
            result = await self._execute(bound, paging_state=cursor)
            return Page(rows=list(result.current_rows), next_cursor=result.paging_state)

        return await fetch_all_pages(
            fetch_page,
            page_size=self.page_size,
            max_attempts=self.page_fetch_attempts,
            retry_delay=self.page_retry_delay,
        )

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[TrainingWriteBatch]:
        """Collect writes and apply them as a single LOGGED batch.

        Nothing is written if the block raises.

        Example:
            async with store.atomic() as batch:
                batch.delete_progress(user_id, module_id, lesson_id)
                batch.upsert_assignment(assignment)
        """
        batch = TrainingWriteBatch()
        yield batch
        await self.apply(batch)

    async def apply(self, batch: TrainingWriteBatch) -> None:
        if not batch.operations:
            return

        statement = BatchStatement(batch_type=BatchType.LOGGED)
        for kind, payload in batch.operations:
            for stmt, params in self._statements_for(kind, payload):
                statement.add(stmt, params)

        await self._execute(statement)
        logger.debug("training_batch_applied", operations=len(batch))

    def _statements_for(self, kind: str, payload: Any) -> list[tuple[Any, tuple]]:
        if kind == "upsert_assignment":
            a: Assignment = payload
            tail = (
                a.assigned_by,
                a.assigned_at,
                a.is_completed,
                a.completed_at,
                a.notification_sent,
                a.due_date,
            )
            return [
                (self._upsert_assignment, (a.module_id, a.user_id, *tail)),
                (self._upsert_assignment_by_user, (a.user_id, a.module_id, *tail)),
            ]

        if kind == "upsert_progress":
            p: LessonProgress = payload
            tail = (
                p.is_completed,
                p.time_spent_seconds,
                p.video_position_seconds,
                p.started_at,
                p.completed_at,
                p.updated_at,
            )
            return [
                (self._upsert_progress, (p.user_id, p.module_id, p.lesson_id, *tail)),
                (
                    self._upsert_progress_by_module,
                    (p.module_id, p.user_id, p.lesson_id, *tail),
                ),
            ]

        if kind == "complete_lesson":
            now = utc_now()
            tail = (payload["time_spent_seconds"], payload["completed_at"], now)
            return [
                (
                    self._complete_progress,
                    (
                        payload["user_id"],
                        payload["module_id"],
                        payload["lesson_id"],
                        *tail,
                    ),
                ),
                (
                    self._complete_progress_by_module,
                    (
                        payload["module_id"],
                        payload["user_id"],
                        payload["lesson_id"],
                        *tail,
                    ),
                ),
            ]

        if kind == "delete_progress":
            return [
                (
                    self._delete_progress,
                    (payload["user_id"], payload["module_id"], payload["lesson_id"]),
                ),
                (
                    self._delete_progress_by_module,
                    (payload["module_id"], payload["user_id"], payload["lesson_id"]),
                ),
            ]

        raise ValueError(f"Unknown batch operation: {kind}")

    # ==========================================================================
    # Modules and Lessons
    # ==========================================================================

    async def get_module(self, module_id: UUID) -> TrainingModule | None:
        result = await self._execute(self._get_module, (module_id,))
        row = result.one()
        return TrainingModule.from_row(row) if row else None

    async def list_modules(self) -> list[TrainingModule]:
        rows = await self._fetch_all(self._list_modules)
        modules = [TrainingModule.from_row(row) for row in rows]
        return sorted(modules, key=lambda m: m.created_at)

    async def create_module(self, module: TrainingModule) -> TrainingModule:
        await self._execute(
            self._insert_module,
            (
                module.module_id,
                module.title,
                module.description,
                module.is_active,
                module.created_at,
                module.updated_at,
            ),
        )
        return module

    async def get_lessons(
        self, module_id: UUID, active_only: bool = True
    ) -> list[TrainingLesson]:
        """Get lessons of a module in display order."""
        rows = await self._fetch_all(self._get_module_lessons, (module_id,))
        lessons = [TrainingLesson.from_row(row) for row in rows]
        if active_only:
            lessons = [lesson for lesson in lessons if lesson.is_active]
        return sorted(lessons, key=lambda lesson: lesson.sort_key)

    async def get_lesson(self, lesson_id: UUID) -> TrainingLesson | None:
        result = await self._execute(self._get_lesson_module, (lesson_id,))
        index_row = result.one()
        if not index_row:
            return None

        result = await self._execute(
            self._get_lesson, (index_row.module_id, lesson_id)
        )
        row = result.one()
        return TrainingLesson.from_row(row) if row else None

    async def create_lesson(self, lesson: TrainingLesson) -> TrainingLesson:
        batch = BatchStatement(batch_type=BatchType.LOGGED)
        batch.add(
            self._insert_lesson,
            (
                lesson.module_id,
                lesson.lesson_id,
                lesson.title,
                lesson.position,
                lesson.min_time_seconds,
                lesson.is_active,
                lesson.created_at,
            ),
        )
        batch.add(self._insert_lesson_index, (lesson.lesson_id, lesson.module_id))
        await self._execute(batch)
        return lesson

    # ==========================================================================
    # Assignments
    # ==========================================================================

    async def get_assignments(self, module_id: UUID | None = None) -> list[Assignment]:
        """Get assignments of one module, or of every module."""
        if module_id is None:
            rows = await self._fetch_all(self._get_all_assignments)
        else:
            rows = await self._fetch_all(self._get_module_assignments, (module_id,))
        return [Assignment.from_row(row) for row in rows]

    async def get_assignment(
        self, user_id: UUID, module_id: UUID
    ) -> Assignment | None:
        result = await self._execute(self._get_assignment, (module_id, user_id))
        row = result.one()
        return Assignment.from_row(row) if row else None

    async def get_user_assignments(self, user_id: UUID) -> list[Assignment]:
        rows = await self._fetch_all(self._get_user_assignments, (user_id,))
        return [Assignment.from_row(row) for row in rows]

    async def upsert_assignment(self, assignment: Assignment) -> None:
        async with self.atomic() as batch:
            batch.upsert_assignment(assignment)

    # ==========================================================================
    # Progress
    # ==========================================================================

    async def get_progress(
        self,
        user_id: UUID | None = None,
        lesson_id: UUID | None = None,
        module_id: UUID | None = None,
    ) -> list[LessonProgress]:
        """Get progress rows matching every given filter.

        Always reads the complete dataset page by page, so callers never see
        a truncated result.
        """
        if lesson_id is not None and module_id is None:
            result = await self._execute(self._get_lesson_module, (lesson_id,))
            index_row = result.one()
            if not index_row:
                return []
            module_id = index_row.module_id

        if user_id is not None and module_id is not None:
            rows = await self._fetch_all(
                self._get_user_module_progress, (user_id, module_id)
            )
        elif user_id is not None:
            rows = await self._fetch_all(self._get_user_progress, (user_id,))
        elif module_id is not None:
            rows = await self._fetch_all(self._get_module_progress, (module_id,))
        else:
            rows = await self._fetch_all(self._get_all_progress)

        progress = [LessonProgress.from_row(row) for row in rows]
        if lesson_id is not None:
            progress = [p for p in progress if p.lesson_id == lesson_id]
        return progress

    async def upsert_progress(self, progress: LessonProgress) -> None:
        async with self.atomic() as batch:
            batch.upsert_progress(progress)

    async def delete_progress(
        self, user_id: UUID, module_id: UUID, lesson_ids: Iterable[UUID]
    ) -> None:
        async with self.atomic() as batch:
            for lesson_id in lesson_ids:
                batch.delete_progress(user_id, module_id, lesson_id)

    # ==========================================================================
    # Profiles
    # ==========================================================================

    async def get_profile(self, user_id: UUID) -> UserProfile | None:
        result = await self._execute(self._get_profile, (user_id,))
        row = result.one()
        return UserProfile.from_row(row) if row else None

    async def get_profiles(self, user_ids: Iterable[UUID]) -> dict[UUID, UserProfile]:
        """Get profiles keyed by user id; unknown ids are simply absent."""
        ids = list(dict.fromkeys(user_ids))
        profiles: dict[UUID, UserProfile] = {}
        for start in range(0, len(ids), PROFILE_CHUNK_SIZE):
            chunk = ids[start : start + PROFILE_CHUNK_SIZE]
            result = await self._execute(self._get_profiles, (chunk,))
            for row in result:
                profile = UserProfile.from_row(row)
                profiles[profile.user_id] = profile
        return profiles
