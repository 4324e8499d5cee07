"""Multi-page aggregation.

collect_all requests pages 1, 2, 3, ... through a RetryExecutor and
concatenates them in page order until the collection is exhausted.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, TypeVar, Union

from fetchvault.fetch.deadline import Deadline
from fetchvault.fetch.retry import RetryExecutor, RetryOutcome
from fetchvault.shared.errors import create_validation_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

PageFetcher = Callable[[int], Awaitable[Union[list[T], RetryOutcome[list[T]]]]]


async def collect_all(
    fetch_page: PageFetcher[T],
    *,
    executor: RetryExecutor,
    page_size: int | None = None,
    not_found_as_empty: bool = True,
    max_pages: int | None = None,
    allow_partial: bool = True,
    deadline: Deadline | None = None,
) -> list[T] | None:
    """Fetch every page of a collection and return the items in order.

    Paging stops at the first empty page (a 404 counts as empty when
    ``not_found_as_empty`` is set), at a page that is still unavailable
    after transient retries ran out, or, when page_size is given, at the
    first page shorter than page_size. An unavailable page yields the
    pages collected so far, or None when ``allow_partial`` is False so
    callers that need the whole collection can tell it apart.

    Args:
        fetch_page: Coroutine function returning the items of a 1-based page
        executor: Retry executor shared by the calls of this category
        page_size: Full page length; a shorter page is the last one
        not_found_as_empty: Treat a 404 page as an empty page
        max_pages: Optional upper bound on the number of pages requested
        allow_partial: Return the items collected so far when a page is
            unavailable after retries, instead of None
        deadline: Optional deadline bounding the whole collection

    Returns:
        All items, pages concatenated in order, without deduplication, or
        None if a page was unavailable and allow_partial is False

    Raises:
        ApplicationError: If page_size or max_pages is not positive
        RemoteError: If a page failed with a non-retryable error
    """
    if page_size is not None and page_size <= 0:
        raise create_validation_error(
            f"page_size must be positive, got: {page_size}",
            field="page_size",
            operation="collect_all",
        )
    if max_pages is not None and max_pages <= 0:
        raise create_validation_error(
            f"max_pages must be positive, got: {max_pages}",
            field="max_pages",
            operation="collect_all",
        )

    items: list[T] = []
    page = 1

    while max_pages is None or page <= max_pages:

        async def attempt(page: int = page) -> list[T] | RetryOutcome[list[T]]:
            return await fetch_page(page)

        result = await executor.call(
            attempt,
            not_found_as_empty=not_found_as_empty,
            empty=list,
            deadline=deadline,
            operation=f"fetch_page {page}",
        )

        if result is None:
            if not allow_partial:
                logger.warning("Page %d unavailable after retries, collection incomplete", page)
                return None
            logger.warning("Page %d unavailable after retries, treating it as empty", page)
            break

        items.extend(result)
        if not result:
            break
        if page_size is not None and len(result) < page_size:
            break
        page += 1
    else:
        logger.warning("Stopped paging at the max_pages bound (%d)", max_pages)

    logger.debug("Collected %d items from %d pages", len(items), page)
    return items
