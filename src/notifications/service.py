# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Notification service layer.

Business logic for:
- Bulk creation of notifications (bounded batches, partial failures counted)
- Listing user notifications with cursor pagination
- Marking notifications as read
- Tracking unread counts (counter table + short Redis cache)
"""

import json
from collections import Counter
from datetime import UTC, datetime
from typing import TYPE_CHECKING, TypeVar
from uuid import UUID

import redis.asyncio as redis
import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable
from cassandra.query import BatchStatement, BatchType

from src.core.redis import notification_channel
from src.training.exceptions import TransientStoreError

from .models import Notification
from .schemas import (
    NotificationListResponse,
    NotificationResponse,
    decode_cursor,
    encode_cursor,
)


if TYPE_CHECKING:
    from cassandra.cluster import Session

logger = structlog.get_logger(__name__)

UNREAD_CACHE_TTL_SECONDS = 300
MARK_READ_SCAN_LIMIT = 1000
# Keeps each batch well under the server's batch size failure threshold
NOTIFICATION_BATCH_SIZE = 50

STORE_ERRORS = (DriverException, RequestExecutionException, NoHostAvailable)

T = TypeVar("T")


def _chunks(items: list[T], size: int) -> list[list[T]]:
    return [items[start : start + size] for start in range(0, len(items), size)]


class NotificationService:
    """Service for notification management."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        redis_client: "redis.Redis | None" = None,
    ):
        """Initialize with Cassandra session and optional Redis."""
        self.session = session
        self.keyspace = keyspace
        self.redis = redis_client
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        """Prepare CQL statements for efficient queries."""
        self._insert_notification = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.notifications
            (user_id, notification_id, type, title, message, module_id, lesson_id,
             reference_url, is_read, read_at, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """)

        self._get_notifications = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.notifications
            WHERE user_id = ?
            LIMIT ?
        """)

        self._get_notifications_cursor = self.session.prepare(f"""
            SELECT * FROM {self.keyspace}.notifications
            WHERE user_id = ? AND created_at < ?
            LIMIT ?
        """)

        self._mark_read = self.session.prepare(f"""
            UPDATE {self.keyspace}.notifications
            SET is_read = true, read_at = ?
            WHERE user_id = ? AND created_at = ? AND notification_id = ?
        """)

        self._incr_unread = self.session.prepare(f"""
            UPDATE {self.keyspace}.notification_unread_counts
            SET count = count + ?
            WHERE user_id = ?
        """)

        self._decr_unread = self.session.prepare(f"""
            UPDATE {self.keyspace}.notification_unread_counts
            SET count = count - ?
            WHERE user_id = ?
        """)

        self._get_unread_count = self.session.prepare(f"""
            SELECT count FROM {self.keyspace}.notification_unread_counts
            WHERE user_id = ?
        """)

    # ==========================================================================
    # Notification Creation
    # ==========================================================================

    async def create_many(self, notifications: list[Notification]) -> int:
        """Insert notifications in bounded batches.

        Each chunk of ``NOTIFICATION_BATCH_SIZE`` rows is one UNLOGGED batch.
        Counter columns cannot share a batch with regular writes, so unread
        counters for the written rows are bumped in separate COUNTER batches.
        A failed chunk is logged and skipped; counters, cache and push are
        best-effort once rows are stored.

        Returns:
            Number of notifications written

        Raises:
            TransientStoreError: If no chunk could be written
        """
        if not notifications:
            return 0

        written: list[Notification] = []
        last_error: Exception | None = None
        for chunk in _chunks(notifications, NOTIFICATION_BATCH_SIZE):
            try:
                await self._insert_chunk(chunk)
            except STORE_ERRORS as e:
                logger.warning(
                    "notification_chunk_failed",
                    size=len(chunk),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                last_error = e
                continue
            written.extend(chunk)

        if not written:
            raise TransientStoreError(
                f"Notification store unavailable: {last_error}"
            ) from last_error

        per_user = Counter(n.user_id for n in written)
        await self._bump_unread(per_user)

        for user_id in per_user:
            await self._invalidate_cache(user_id)
        for n in written:
            await self._publish_notification(n)

        logger.info(
            "notifications_created",
            count=len(written),
            failed=len(notifications) - len(written),
            users=len(per_user),
            type=written[0].type.value,
        )
        return len(written)

    async def _insert_chunk(self, chunk: list[Notification]) -> None:
        inserts = BatchStatement(batch_type=BatchType.UNLOGGED)
        for n in chunk:
            inserts.add(
                self._insert_notification,
                (
                    n.user_id,
                    n.notification_id,
                    n.type.value,
                    n.title,
                    n.message,
                    n.module_id,
                    n.lesson_id,
                    n.reference_url,
                    n.is_read,
                    n.read_at,
                    n.created_at,
                ),
            )
        await self.session.aexecute(inserts)

    async def _bump_unread(self, per_user: Counter) -> None:
        """Stale counters only skew the badge until the next mark-read."""
        for chunk in _chunks(list(per_user.items()), NOTIFICATION_BATCH_SIZE):
            counters = BatchStatement(batch_type=BatchType.COUNTER)
            for user_id, count in chunk:
                counters.add(self._incr_unread, (count, user_id))
            try:
                await self.session.aexecute(counters)
            except STORE_ERRORS as e:
                logger.warning(
                    "notification_counter_update_failed",
                    users=len(chunk),
                    error=str(e),
                    error_type=type(e).__name__,
                )

    async def create_notification(self, notification: Notification) -> Notification:
        await self.create_many([notification])
        return notification

    async def _publish_notification(self, notification: Notification) -> None:
        """Publish to Redis for real-time delivery; failures only lose the push."""
        if not self.redis:
            return

        message = {"type": "notification", "data": notification.to_dict()}
        try:
            await self.redis.publish(
                notification_channel(str(notification.user_id)), json.dumps(message)
            )
        except redis.RedisError as e:
            logger.warning(
                "notification_publish_failed",
                notification_id=str(notification.notification_id),
                error=str(e),
            )

    # ==========================================================================
    # Notification Reading
    # ==========================================================================

    async def get_notifications(
        self,
        user_id: UUID,
        limit: int = 20,
        cursor: str | None = None,
        unread_only: bool = False,
        module_id: UUID | None = None,
    ) -> NotificationListResponse:
        """Get notifications for a user, newest first.

        ``unread_only`` and ``module_id`` filter the fetched page, so a filtered
        page may hold fewer than ``limit`` items while ``has_more`` is still set.
        """
        if cursor:
            created_at, _ = decode_cursor(cursor)
            rows = await self.session.aexecute(
                self._get_notifications_cursor,
                [user_id, created_at, limit + 1],
            )
        else:
            rows = await self.session.aexecute(
                self._get_notifications,
                [user_id, limit + 1],
            )

        notifications = [Notification.from_row(row) for row in rows]
        has_more = len(notifications) > limit
        notifications = notifications[:limit]

        next_cursor = None
        if has_more and notifications:
            last = notifications[-1]
            next_cursor = encode_cursor(last.created_at, last.notification_id)

        if unread_only:
            notifications = [n for n in notifications if not n.is_read]
        if module_id is not None:
            notifications = [n for n in notifications if n.module_id == module_id]

        return NotificationListResponse(
            items=[NotificationResponse.from_notification(n) for n in notifications],
            unread_count=await self.get_unread_count(user_id),
            has_more=has_more,
            next_cursor=next_cursor,
        )

    async def get_unread_count(self, user_id: UUID) -> int:
        """Get unread notification count for user."""
        cache_key = f"notifications:unread:{user_id}"
        if self.redis:
            cached = await self.redis.get(cache_key)
            if cached:
                return int(cached)

        result = await self.session.aexecute(self._get_unread_count, [user_id])
        row = result.one()
        count = max(row.count, 0) if row and row.count else 0

        if self.redis:
            await self.redis.setex(cache_key, UNREAD_CACHE_TTL_SECONDS, str(count))

        return count

    # ==========================================================================
    # Mark as Read
    # ==========================================================================

    async def mark_as_read(
        self,
        user_id: UUID,
        notification_ids: list[UUID] | None = None,
    ) -> int:
        """Mark notifications as read; all unread ones when no ids are given.

        Returns count of notifications marked as read.
        """
        now = datetime.now(UTC)
        wanted = set(notification_ids) if notification_ids is not None else None
        marked = 0

        # The clustering key needs created_at, so scan the recent partition
        rows = await self.session.aexecute(
            self._get_notifications,
            [user_id, MARK_READ_SCAN_LIMIT],
        )
        for row in rows:
            if row.is_read:
                continue
            if wanted is not None and row.notification_id not in wanted:
                continue
            await self.session.aexecute(
                self._mark_read,
                [now, user_id, row.created_at, row.notification_id],
            )
            marked += 1

        if marked > 0:
            await self.session.aexecute(self._decr_unread, [marked, user_id])
            await self._invalidate_cache(user_id)

        return marked

    async def mark_all_as_read(self, user_id: UUID) -> int:
        return await self.mark_as_read(user_id)

    # ==========================================================================
    # Cache Management
    # ==========================================================================

    async def _invalidate_cache(self, user_id: UUID) -> None:
        if not self.redis:
            return
        try:
            await self.redis.delete(f"notifications:unread:{user_id}")
        except redis.RedisError as e:
            logger.warning("notification_cache_invalidate_failed", error=str(e))
