"""Bounded-concurrency retrieval of a thread page range."""

import asyncio
import time
from typing import List, Protocol

import logfire

from thread_summarizer.constants import FETCH_CONCURRENCY, FETCH_WINDOW_DELAY_SECONDS
from thread_summarizer.models.thread_models import (
    MultiPageFetchResult,
    PageData,
    PageDocument,
    ProgressCallback,
    ProgressEvent,
)
from thread_summarizer.services.aggregator import aggregate


class PageSource(Protocol):
    """Anything that can turn a page number into extracted posts."""

    async def fetch_page(self, page_number: int) -> PageDocument: ...


class PageFetcher:
    """
    Fetches a range of thread pages in fixed-size concurrency windows.

    Each window is fully settled before the next one starts, so no more
    than ``window_size`` fetches are ever in flight. A page that fails is
    recorded in ``fetch_errors``; it never fails the run.
    """

    def __init__(
        self,
        source: PageSource,
        window_size: int = FETCH_CONCURRENCY,
        window_delay_seconds: float = FETCH_WINDOW_DELAY_SECONDS,
    ):
        if window_size < 1:
            raise ValueError("window_size must be at least 1")
        self.source = source
        self.window_size = window_size
        self.window_delay_seconds = window_delay_seconds

    async def _fetch_one(self, page_number: int, titles: List[str]) -> PageData:
        document = await self.source.fetch_page(page_number)
        # Appended on completion, so titles follow fetch order, not page order
        titles.append(document.title)
        posts = tuple(sorted(document.posts, key=lambda p: p.number))
        return PageData(page_number=page_number, posts=posts)

    async def fetch_range(
        self,
        from_page: int,
        to_page: int,
        on_progress: ProgressCallback | None = None,
        fallback_title: str = "",
    ) -> MultiPageFetchResult:
        """
        Fetch and extract pages from_page..to_page (inclusive).

        Args:
            from_page: First page, 1-based
            to_page: Last page (inclusive)
            on_progress: Optional sink for "fetching" progress events
            fallback_title: Title used when no fetched page yields one

        Returns:
            MultiPageFetchResult with pages sorted by page number

        Raises:
            ValueError: If the range is empty or starts below page 1
        """
        if from_page < 1:
            raise ValueError(f"from_page must be >= 1, got {from_page}")
        if from_page > to_page:
            raise ValueError(f"from_page ({from_page}) must be <= to_page ({to_page})")

        start_time = time.time()
        page_numbers = list(range(from_page, to_page + 1))
        total = len(page_numbers)

        pages: List[PageData] = []
        fetch_errors: List[int] = []
        titles: List[str] = []
        attempted = 0

        logfire.info(
            "Starting multi-page fetch",
            from_page=from_page,
            to_page=to_page,
            window_size=self.window_size,
        )

        for start in range(0, total, self.window_size):
            window = page_numbers[start : start + self.window_size]
            results = await asyncio.gather(
                *(self._fetch_one(page_number, titles) for page_number in window),
                return_exceptions=True,
            )

            for page_number, result in zip(window, results):
                attempted += 1
                if isinstance(result, BaseException):
                    fetch_errors.append(page_number)
                    logfire.warn(
                        "Failed to fetch page",
                        page_number=page_number,
                        error=str(result),
                        error_type=type(result).__name__,
                    )
                else:
                    pages.append(result)

            if on_progress is not None:
                on_progress(ProgressEvent(phase="fetching", current=attempted, total=total))

            if start + self.window_size < total and self.window_delay_seconds > 0:
                await asyncio.sleep(self.window_delay_seconds)

        if on_progress is not None:
            on_progress(ProgressEvent(phase="fetching", current=total, total=total))

        pages.sort(key=lambda p: p.page_number)
        stats = aggregate(pages)
        thread_title = next((title for title in titles if title), fallback_title)

        elapsed = time.time() - start_time
        logfire.info(
            "Multi-page fetch completed",
            from_page=from_page,
            to_page=to_page,
            pages_fetched=len(pages),
            failed_pages=fetch_errors,
            total_posts=stats.total_posts,
            total_time_ms=elapsed * 1000,
        )

        return MultiPageFetchResult(
            pages=pages,
            total_posts=stats.total_posts,
            total_unique_authors=stats.total_unique_authors,
            thread_title=thread_title,
            fetch_errors=fetch_errors,
        )
