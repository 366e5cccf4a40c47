"""Tests for paginated bulk reads."""

from typing import Any

import pytest

from src.training.bulk import Page, fetch_all_pages
from src.training.exceptions import TransientStoreError


def paged_source(rows: list[int], fail_pages: dict[int, int] | None = None):
    """Offset-cursor page function over ``rows``.

    ``fail_pages`` maps a page number to how many times it fails before
    succeeding.
    """
    fail_pages = dict(fail_pages or {})
    calls: list[tuple[Any, int]] = []

    async def fetch_page(cursor: Any, page_size: int) -> Page[int]:
        calls.append((cursor, page_size))
        offset = cursor or 0
        page_number = offset // page_size
        if fail_pages.get(page_number, 0) > 0:
            fail_pages[page_number] -= 1
            raise TransientStoreError("Training store unavailable: timeout")
        chunk = rows[offset : offset + page_size]
        next_cursor = offset + page_size if offset + page_size < len(rows) else None
        return Page(rows=chunk, next_cursor=next_cursor)

    return fetch_page, calls


class TestFetchAllPages:
    """Tests for fetch_all_pages."""

    @pytest.mark.asyncio
    async def test_reads_every_row_across_pages(self) -> None:
        """2,500 rows with a page size of 1000 come back complete in 3 fetches."""
        rows = list(range(2500))
        fetch_page, calls = paged_source(rows)

        result = await fetch_all_pages(fetch_page, page_size=1000)

        assert result == rows
        assert len(calls) == 3
        assert [cursor for cursor, _ in calls] == [None, 1000, 2000]

    @pytest.mark.asyncio
    async def test_exact_multiple_stops_on_missing_cursor(self) -> None:
        """A full last page without a next cursor ends the walk."""
        rows = list(range(2000))
        fetch_page, calls = paged_source(rows)

        result = await fetch_all_pages(fetch_page, page_size=1000)

        assert len(result) == 2000
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_empty_source(self) -> None:
        fetch_page, calls = paged_source([])

        assert await fetch_all_pages(fetch_page, page_size=1000) == []
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_stops_on_short_page_even_with_cursor(self) -> None:
        """A page shorter than page_size is the last one."""
        calls = []

        async def fetch_page(cursor: Any, page_size: int) -> Page[str]:
            calls.append(cursor)
            return Page(rows=["a", "b"], next_cursor="more")

        result = await fetch_all_pages(fetch_page, page_size=10)

        assert result == ["a", "b"]
        assert calls == [None]

    @pytest.mark.asyncio
    async def test_retries_failed_page(self) -> None:
        """A transient failure on one page is retried without refetching others."""
        rows = list(range(25))
        fetch_page, calls = paged_source(rows, fail_pages={1: 2})

        result = await fetch_all_pages(
            fetch_page, page_size=10, max_attempts=3, retry_delay=0
        )

        assert result == rows
        # page 0 once, page 1 three times, page 2 once
        assert [cursor for cursor, _ in calls] == [None, 10, 10, 10, 20]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self) -> None:
        fetch_page, calls = paged_source(list(range(25)), fail_pages={0: 5})

        with pytest.raises(TransientStoreError):
            await fetch_all_pages(
                fetch_page, page_size=10, max_attempts=3, retry_delay=0
            )

        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_other_errors_are_not_retried(self) -> None:
        calls = []

        async def fetch_page(cursor: Any, page_size: int) -> Page[int]:
            calls.append(cursor)
            raise ValueError("bad query")

        with pytest.raises(ValueError):
            await fetch_all_pages(fetch_page, page_size=10, retry_delay=0)

        assert len(calls) == 1
