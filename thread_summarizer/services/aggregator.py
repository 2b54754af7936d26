"""Thread-level statistics folded from per-page results."""

from collections import Counter
from dataclasses import dataclass
from typing import Iterable

from thread_summarizer.constants import STATS_TOP_N
from thread_summarizer.models.thread_models import PageData


@dataclass(frozen=True)
class AggregateStats:
    total_posts: int
    total_unique_authors: int


def aggregate(pages: Iterable[PageData]) -> AggregateStats:
    """Sum post counts and count distinct (case-insensitive) authors."""
    total_posts = 0
    authors: set[str] = set()
    for page in pages:
        total_posts += page.post_count
        authors.update(author.lower() for author in page.unique_authors)
    return AggregateStats(total_posts=total_posts, total_unique_authors=len(authors))


def build_stats_block(pages: Iterable[PageData], top_n: int = STATS_TOP_N) -> str:
    """
    Summarize activity and community votes for injection into prompts.

    Lists the most active posters by post count and the most voted posts,
    so the provider can pick participants on objective grounds.
    """
    post_counts: Counter[str] = Counter()
    voted: list[tuple[int, str, int]] = []
    for page in pages:
        for post in page.posts:
            post_counts[post.author] += 1
            if post.votes:
                voted.append((post.number, post.author, post.votes))

    top_posters = ", ".join(
        f"{author} ({count})" for author, count in post_counts.most_common(top_n)
    )
    voted.sort(key=lambda item: item[2], reverse=True)
    top_voted = ", ".join(
        f"#{number} por {author} ({votes} votos)"
        for number, author, votes in voted[:top_n]
    )

    block = f"ESTADISTICAS DEL HILO:\n- Usuarios mas activos (por nº de posts): {top_posters}"
    if top_voted:
        block += f"\n- Posts mas votados por la comunidad: {top_voted}"
    return block


def build_avatar_map(pages: Iterable[PageData]) -> dict[str, str]:
    """First avatar URL seen for each author."""
    avatars: dict[str, str] = {}
    for page in pages:
        for post in page.posts:
            if post.avatar_url and post.author not in avatars:
                avatars[post.author] = post.avatar_url
    return avatars
