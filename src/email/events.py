# ruff: noqa: S608 - All CQL queries use keyspace from config, not user input
"""Event-driven emails.

Provides:
- EmailEventService: event kind configuration + rendering + sending
- send_in_batches: fixed-size batches with bounded concurrency, each batch
  tallied on its own so one failing batch never aborts the rest
"""

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Generic, TypeVar

import structlog
from cassandra import DriverException, RequestExecutionException
from cassandra.cluster import NoHostAvailable

from src.training.bulk import DEFAULT_PAGE_SIZE, Page, fetch_all_pages
from src.training.exceptions import TransientStoreError

from .models import DEFAULT_EMAIL_EVENTS, EmailEventType
from .schemas import EmailRecipient, SendEmailResponse
from .templates import render_event


if TYPE_CHECKING:
    from cassandra.cluster import Session

    from .service import EmailService

logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 5


# ==============================================================================
# Batch Sending
# ==============================================================================


@dataclass
class BatchTally(Generic[T]):
    """Aggregated outcome of a batched send."""

    sent: int = 0
    failed: int = 0
    delivered: list[T] = field(default_factory=list)


async def send_in_batches(
    items: Sequence[T],
    send: Callable[[T], Awaitable[SendEmailResponse]],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> BatchTally[T]:
    """Send to every item, ``batch_size`` at a time.

    A send that raises or reports ``success=False`` counts as failed; the
    remaining sends and batches still run.
    """
    tally: BatchTally[T] = BatchTally()

    for start in range(0, len(items), batch_size):
        batch = items[start : start + batch_size]
        results = await asyncio.gather(
            *(send(item) for item in batch), return_exceptions=True
        )
        for item, result in zip(batch, results, strict=True):
            if isinstance(result, BaseException):
                logger.warning(
                    "batch_email_raised",
                    error=str(result),
                    error_type=type(result).__name__,
                )
                tally.failed += 1
            elif result.success:
                tally.sent += 1
                tally.delivered.append(item)
            else:
                tally.failed += 1

    return tally


# ==============================================================================
# Email Event Service
# ==============================================================================


class EmailEventService:
    """Configuration and delivery of event-driven emails."""

    def __init__(
        self,
        session: "Session",
        keyspace: str,
        email_service: "EmailService | None" = None,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.session = session
        self.keyspace = keyspace
        self.email_service = email_service
        self.page_size = page_size
        self._prepare_statements()

    def _prepare_statements(self) -> None:
        self._get_event = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.email_event_types WHERE event_key = ?"
        )
        self._list_events = self.session.prepare(
            f"SELECT * FROM {self.keyspace}.email_event_types"
        )
        self._upsert_event = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.email_event_types
            (event_key, name, description, subject, is_active, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
        """)
        self._insert_event_if_missing = self.session.prepare(f"""
            INSERT INTO {self.keyspace}.email_event_types
            (event_key, name, description, subject, is_active, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            IF NOT EXISTS
        """)

    async def _execute(self, statement: Any, params: Any = None, **kwargs: Any) -> Any:
        try:
            return await self.session.aexecute(statement, params, **kwargs)
        except (DriverException, RequestExecutionException, NoHostAvailable) as e:
            logger.warning(
                "email_event_store_unavailable",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise TransientStoreError(f"Email event store unavailable: {e}") from e

    async def _fetch_all(self, statement: Any) -> list[Any]:
        async def fetch_page(cursor: Any, page_size: int) -> Page:
            bound = statement.bind(())
            bound.fetch_size = page_size
            result = await self._execute(bound, paging_state=cursor)
            return Page(rows=list(result.current_rows), next_cursor=result.paging_state)

        return await fetch_all_pages(fetch_page, page_size=self.page_size)

    # ==========================================================================
    # Configuration
    # ==========================================================================

    async def ensure_defaults(self) -> None:
        """Create the built-in event kinds that do not exist yet."""
        now = datetime.now(UTC)
        for event in DEFAULT_EMAIL_EVENTS:
            await self._execute(
                self._insert_event_if_missing,
                (
                    event.event_key,
                    event.name,
                    event.description,
                    event.subject,
                    event.is_active,
                    now,
                ),
            )
        logger.info("email_events_seeded", count=len(DEFAULT_EMAIL_EVENTS))

    async def list_events(self) -> list[EmailEventType]:
        rows = await self._fetch_all(self._list_events)
        events = [EmailEventType.from_row(row) for row in rows]
        return sorted(events, key=lambda e: e.event_key)

    async def get_event(self, event_key: str) -> EmailEventType | None:
        result = await self._execute(self._get_event, (event_key,))
        row = result.one()
        return EmailEventType.from_row(row) if row else None

    async def update_event(
        self, event_key: str, changes: dict[str, Any]
    ) -> EmailEventType | None:
        """Apply a partial update; returns None if the event kind is unknown."""
        event = await self.get_event(event_key)
        if event is None:
            return None

        for key, value in changes.items():
            if value is not None and hasattr(event, key):
                setattr(event, key, value)
        event.updated_at = datetime.now(UTC)

        await self._execute(
            self._upsert_event,
            (
                event.event_key,
                event.name,
                event.description,
                event.subject,
                event.is_active,
                event.updated_at,
            ),
        )
        logger.info(
            "email_event_updated",
            event_key=event_key,
            is_active=event.is_active,
        )
        return event

    async def get_enabled_event(self, event_key: str) -> EmailEventType | None:
        """The event kind if emails for it can go out, else None."""
        if self.email_service is None:
            return None
        event = await self.get_event(event_key)
        if event is None or not event.is_active:
            return None
        return event

    # ==========================================================================
    # Delivery
    # ==========================================================================

    async def send(
        self,
        event: EmailEventType,
        recipient: EmailRecipient,
        payload: dict[str, Any],
    ) -> SendEmailResponse:
        """Render and send one email for an already-resolved event kind."""
        if self.email_service is None:
            return SendEmailResponse(success=False, error="Email service disabled")

        body_html, body_text = render_event(event.event_key, payload)
        return await self.email_service.send_simple_email(
            to=recipient.email,
            subject=event.subject or event.name,
            body_html=body_html,
            body_text=body_text,
            to_name=recipient.name,
        )

    async def send_event(
        self,
        event_key: str,
        recipient: EmailRecipient,
        payload: dict[str, Any],
    ) -> SendEmailResponse:
        """Send one email if its event kind is configured and active."""
        event = await self.get_enabled_event(event_key)
        if event is None:
            logger.info("email_event_disabled", event_key=event_key)
            return SendEmailResponse(
                success=False, error=f"Email event '{event_key}' is not enabled"
            )
        return await self.send(event, recipient, payload)
