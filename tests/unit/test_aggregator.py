"""Tests for thread statistics aggregation."""

from thread_summarizer.models.thread_models import PageData
from thread_summarizer.services.aggregator import (
    aggregate,
    build_avatar_map,
    build_stats_block,
)


def test_aggregate_counts_authors_case_insensitively(make_post):
    pages = [
        PageData(1, (make_post(1, "Ana"), make_post(2, "bob"))),
        PageData(2, (make_post(31, "ana"), make_post(32, "Carla"))),
    ]

    stats = aggregate(pages)

    assert stats.total_posts == 4
    assert stats.total_unique_authors == 3


def test_aggregate_empty():
    stats = aggregate([])

    assert stats.total_posts == 0
    assert stats.total_unique_authors == 0


def test_stats_block_lists_most_active_and_most_voted(make_post):
    pages = [
        PageData(
            1,
            (
                make_post(1, "ana", votes=3),
                make_post(2, "bob"),
                make_post(3, "ana", votes=20),
                make_post(4, "ana"),
            ),
        )
    ]

    block = build_stats_block(pages)

    assert block.startswith("ESTADISTICAS DEL HILO:")
    assert "ana (3), bob (1)" in block
    assert "#3 por ana (20 votos), #1 por ana (3 votos)" in block


def test_stats_block_without_votes_omits_voted_line(make_post):
    block = build_stats_block([PageData(1, (make_post(1, "ana"),))])

    assert "mas votados" not in block


def test_stats_block_respects_top_n(make_post):
    posts = tuple(make_post(i, f"user{i}") for i in range(1, 16))

    block = build_stats_block([PageData(1, posts)], top_n=3)

    assert block.count("(1)") == 3


def test_avatar_map_keeps_first_avatar_per_author(make_post):
    pages = [
        PageData(1, (make_post(1, "ana", avatar_url="https://x/a1.jpg"), make_post(2, "bob"))),
        PageData(2, (make_post(31, "ana", avatar_url="https://x/a2.jpg"),)),
    ]

    assert build_avatar_map(pages) == {"ana": "https://x/a1.jpg"}
