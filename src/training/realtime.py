"""Realtime change events for the admin training dashboard.

Provides:
- TrainingChangePublisher: publishes change events to Redis
- RefreshGate: decides whether a change event may trigger a dashboard refresh

The gate is explicit message passing: the admin client declares when it is
editing, refreshes are held back while it is, and a single coalesced refresh
is released when editing ends. Each released refresh carries a monotonically
increasing token so the client can drop stale responses.
"""

import json
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

import redis.asyncio as redis
import structlog

from src.core.redis import training_changes_channel


logger = structlog.get_logger(__name__)


class ChangeEntity:
    """Kinds of rows a change event refers to."""

    PROGRESS = "progress"
    ASSIGNMENT = "assignment"
    CERTIFICATE = "certificate"
    LESSON = "lesson"
    MODULE = "module"


class TrainingChangePublisher:
    """Publish training change events; a missing Redis makes this a no-op."""

    def __init__(self, redis_client: redis.Redis | None):
        self.redis = redis_client

    async def publish(
        self,
        entity: str,
        action: str,
        module_id: UUID | None = None,
        user_id: UUID | None = None,
    ) -> None:
        if not self.redis:
            return

        event: dict[str, Any] = {
            "entity": entity,
            "action": action,
            "module_id": str(module_id) if module_id else None,
            "user_id": str(user_id) if user_id else None,
            "at": datetime.now(UTC).isoformat(),
        }
        try:
            await self.redis.publish(training_changes_channel(), json.dumps(event))
        except redis.RedisError as e:
            # Dashboards fall back to manual refresh
            logger.warning("training_change_publish_failed", error=str(e), **event)


class RefreshGate:
    """Gate between incoming change events and dashboard refreshes."""

    def __init__(self) -> None:
        self._editing = False
        self._pending = False
        self._token = 0

    @property
    def editing(self) -> bool:
        return self._editing

    @property
    def pending(self) -> bool:
        return self._pending

    @property
    def token(self) -> int:
        """Token of the most recently released refresh."""
        return self._token

    def offer(self) -> int | None:
        """Offer a change event.

        Returns:
            The token of the released refresh, or None when the event was
            held back because the client is editing.
        """
        if self._editing:
            self._pending = True
            return None
        return self._release()

    def set_editing(self, editing: bool) -> int | None:
        """Enter or leave editing mode.

        Leaving editing mode releases one refresh if any event arrived
        meanwhile.
        """
        self._editing = editing
        if not editing and self._pending:
            return self._release()
        return None

    def is_current(self, token: int) -> bool:
        return token == self._token

    def _release(self) -> int:
        self._pending = False
        self._token += 1
        return self._token
