"""Paginated bulk reads.

A single request against the store may be silently capped, which would
corrupt completion math without raising anything. ``fetch_all_pages`` keeps
requesting fixed-size pages until the data source is exhausted.

Pages are fetched sequentially to bound memory. Page reads are idempotent,
so each page is retried on transient store failures.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

import structlog

from .exceptions import TransientStoreError


logger = structlog.get_logger(__name__)

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 1000


@dataclass
class Page(Generic[T]):
    """One page of rows plus the cursor for the next page (None at the end)."""

    rows: list[T] = field(default_factory=list)
    next_cursor: Any = None


PageFetcher = Callable[[Any, int], Awaitable[Page[T]]]


async def fetch_all_pages(
    fetch_page: PageFetcher,
    page_size: int = DEFAULT_PAGE_SIZE,
    max_attempts: int = 3,
    retry_delay: float = 0.2,
) -> list[T]:
    """Fetch every row by walking pages until the source is exhausted.

    Stops when a page is empty, shorter than ``page_size``, or carries no
    next cursor.

    Args:
        fetch_page: Async callable ``(cursor, page_size) -> Page``. The first
            call receives ``None`` as cursor.
        page_size: Rows requested per page.
        max_attempts: Attempts per page before the error propagates.
        retry_delay: Base delay in seconds, multiplied by the attempt number.

    Returns:
        All rows, in page order.

    Raises:
        TransientStoreError: If a page still fails after ``max_attempts``.
    """
    rows: list[T] = []
    cursor: Any = None
    pages = 0

    while True:
        page = await _fetch_with_retry(
            fetch_page, cursor, page_size, max_attempts, retry_delay
        )
        pages += 1
        rows.extend(page.rows)

        if not page.rows or len(page.rows) < page_size or page.next_cursor is None:
            break
        cursor = page.next_cursor

    logger.debug("bulk_fetch_completed", rows=len(rows), pages=pages)
    return rows


async def _fetch_with_retry(
    fetch_page: PageFetcher,
    cursor: Any,
    page_size: int,
    max_attempts: int,
    retry_delay: float,
) -> Page:
    attempt = 1
    while True:
        try:
            return await fetch_page(cursor, page_size)
        except TransientStoreError as e:
            if attempt >= max_attempts:
                logger.error(
                    "bulk_fetch_page_failed",
                    attempts=attempt,
                    error=e.message,
                )
                raise
            logger.warning(
                "bulk_fetch_page_retry",
                attempt=attempt,
                error=e.message,
            )
            await asyncio.sleep(retry_delay * attempt)
            attempt += 1
