"""In-memory cache of finished summaries.

Lets a caller re-open a summary without paying for another generation.
Entries expire after a TTL so stale threads are summarized again.
"""

import time
from threading import Lock

from thread_summarizer.config import get_settings
from thread_summarizer.constants import SUMMARY_CACHE_TTL_SECONDS
from thread_summarizer.models.summary_models import FinalSummary

CacheKey = tuple[str, int, int]


class SummaryCache:
    """Thread-safe TTL cache keyed by (thread base URL, from page, to page)."""

    def __init__(self, ttl_seconds: float = SUMMARY_CACHE_TTL_SECONDS):
        self._entries: dict[CacheKey, tuple[FinalSummary, float]] = {}
        self._ttl = ttl_seconds
        self._lock = Lock()

    @staticmethod
    def key(thread_url: str, from_page: int, to_page: int) -> CacheKey:
        return (thread_url.rstrip("/"), from_page, to_page)

    def _live_entry(self, key: CacheKey) -> tuple[FinalSummary, float] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if time.monotonic() - entry[1] > self._ttl:
            del self._entries[key]
            return None
        return entry

    def get(self, thread_url: str, from_page: int, to_page: int) -> FinalSummary | None:
        """Cached summary for the range, or None if missing or expired."""
        with self._lock:
            entry = self._live_entry(self.key(thread_url, from_page, to_page))
            return entry[0] if entry else None

    def set(
        self, thread_url: str, from_page: int, to_page: int, summary: FinalSummary
    ) -> None:
        """Store a summary. Failed summaries are never cached."""
        if summary.is_failed:
            return
        with self._lock:
            self._entries[self.key(thread_url, from_page, to_page)] = (
                summary,
                time.monotonic(),
            )

    def age_seconds(self, thread_url: str, from_page: int, to_page: int) -> float | None:
        """How long ago the cached summary was stored, or None."""
        with self._lock:
            entry = self._live_entry(self.key(thread_url, from_page, to_page))
            return time.monotonic() - entry[1] if entry else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


# Global instance
_summary_cache: SummaryCache | None = None


def get_summary_cache() -> SummaryCache:
    """Get the global summary cache instance."""
    global _summary_cache
    if _summary_cache is None:
        _summary_cache = SummaryCache(ttl_seconds=get_settings().summary_cache_ttl_seconds)
    return _summary_cache


def reset_summary_cache() -> None:
    """Reset the global summary cache (primarily for testing)."""
    global _summary_cache
    _summary_cache = None
