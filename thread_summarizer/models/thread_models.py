"""Models for fetched thread content: posts, pages and fetch results."""

from dataclasses import dataclass, field
from typing import Callable, List, Literal

ProgressPhase = Literal["fetching", "summarizing"]


@dataclass(frozen=True)
class Post:
    """One cleaned, size-bounded contribution within a page."""

    number: int
    author: str
    content: str
    timestamp: str | None = None
    char_count: int = 0
    avatar_url: str | None = None
    votes: int | None = None


@dataclass(frozen=True)
class PageData:
    """Posts extracted from one successfully fetched page."""

    page_number: int
    posts: tuple[Post, ...]

    @property
    def post_count(self) -> int:
        return len(self.posts)

    @property
    def unique_authors(self) -> frozenset[str]:
        return frozenset(post.author.lower() for post in self.posts)

    @property
    def char_count(self) -> int:
        """Combined post content size, used to size summarization batches."""
        return sum(post.char_count for post in self.posts)


@dataclass(frozen=True)
class PageDocument:
    """What the page source hands back for one page: its posts and title."""

    page_number: int
    posts: List[Post]
    title: str = ""


@dataclass
class MultiPageFetchResult:
    """Result of fetching a page range: pages, stats and failed page numbers."""

    pages: List[PageData]
    total_posts: int
    total_unique_authors: int
    thread_title: str
    fetch_errors: List[int] = field(default_factory=list)

    @property
    def requested_pages(self) -> int:
        return len(self.pages) + len(self.fetch_errors)


@dataclass(frozen=True)
class ProgressEvent:
    """Progress notification emitted while fetching and summarizing."""

    phase: ProgressPhase
    current: int
    total: int
    batch: int | None = None
    total_batches: int | None = None


ProgressCallback = Callable[[ProgressEvent], None]
