"""
Pagination driver for bulk reads.

Providers return a bounded page of results with no explicit "has more"
flag. A full page (``len(batch) == page_size_limit``) means more data may
exist, so the driver asks for the next page; a short or empty page ends the
read.

The driver is an async generator: batches reach the caller as they arrive,
and each page is an independent request. If a later page fails, batches
already yielded stand. The cursor lives only in the generator frame, so a
restarted process always starts again from the first page.

Usage:
    async for batch in paginate(
        fetch_page,
        extract=lambda payload: payload["searchResults"],
        page_size_limit=1000,
        provider="icims",
    ):
        await store(batch)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from typing import Any

from atsbridge.errors import ResponseParseError

logger = logging.getLogger(__name__)

Batch = list[Mapping[str, Any]]
FetchPage = Callable[[Any], Awaitable[Any]]
Extract = Callable[[Any], Batch]
NextCursor = Callable[[Batch, Any], Any]


def last_id(key: str = "id") -> NextCursor:
    """Cursor strategy: resume after the identifier of the last result."""

    def _next(batch: Batch, cursor: Any) -> Any:
        return batch[-1][key]

    return _next


def next_page(first: int = 1) -> NextCursor:
    """Cursor strategy: page numbers, starting after ``first``."""

    def _next(batch: Batch, cursor: Any) -> Any:
        return (cursor if cursor is not None else first) + 1

    return _next


async def paginate(
    fetch_page: FetchPage,
    *,
    extract: Extract,
    page_size_limit: int,
    provider: str,
    next_cursor: NextCursor | None = None,
    operation: str | None = None,
    max_pages: int | None = None,
) -> AsyncIterator[Batch]:
    """
    Drive a paginated read.

    Args:
        fetch_page: Coroutine returning the decoded payload for a cursor
            (``None`` for the first page)
        extract: Pulls the list of results out of a payload
        page_size_limit: Page size that signals more data
        provider: Provider name for errors and logs
        next_cursor: Derives the next cursor from a full page; defaults to
            the last result's ``id``
        operation: Operation name for errors and logs
        max_pages: Optional safety limit on the number of requests

    Yields:
        Non-empty batches of results

    Raises:
        ResponseParseError: If a page cannot be interpreted
    """
    if page_size_limit < 1:
        raise ValueError("page_size_limit must be positive")
    next_cursor = next_cursor or last_id()

    cursor: Any = None
    pages = 0

    while max_pages is None or pages < max_pages:
        payload = await fetch_page(cursor)
        pages += 1

        try:
            batch = list(extract(payload)) if payload else []
        except (KeyError, IndexError, TypeError, ValueError, AttributeError) as e:
            raise ResponseParseError(
                f"Malformed page {pages}: {e!r}",
                provider,
                operation=operation,
            ) from e

        if not batch:
            logger.debug(f"[{provider}] {operation or 'pagination'} finished after {pages} page(s)")
            return

        yield batch

        if len(batch) < page_size_limit:
            logger.debug(f"[{provider}] {operation or 'pagination'} finished after {pages} page(s)")
            return

        try:
            cursor = next_cursor(batch, cursor)
        except (KeyError, IndexError, TypeError) as e:
            raise ResponseParseError(
                f"Cannot derive cursor from page {pages}: {e!r}",
                provider,
                operation=operation,
            ) from e

    logger.warning(f"[{provider}] {operation or 'pagination'} stopped at max_pages={max_pages}")


__all__ = [
    "Batch",
    "FetchPage",
    "last_id",
    "next_page",
    "paginate",
]
