"""Tests for batch -> meta summarization."""

import re

import pytest

from thread_summarizer.exceptions import SummarizationError
from thread_summarizer.models.summary_models import (
    BatchSummary,
    Participant,
    ScaledLimits,
    SummaryOutcome,
)
from thread_summarizer.models.thread_models import MultiPageFetchResult
from thread_summarizer.services.aggregator import aggregate
from thread_summarizer.services.summarizer import (
    BatchLimits,
    SummarizationOrchestrator,
    SummaryConfig,
    batch_limits_for,
    merge_batch_summaries,
    partition_batches,
)

_PAGE_HEADER = re.compile(r"--- PAGINA (\d+) ")


def _fetch_result(pages, fetch_errors=None, title="Hilo de pruebas"):
    stats = aggregate(pages)
    return MultiPageFetchResult(
        pages=pages,
        total_posts=stats.total_posts,
        total_unique_authors=stats.total_unique_authors,
        thread_title=title,
        fetch_errors=fetch_errors or [],
    )


def _pages_in(prompt: str) -> list[int]:
    return [int(n) for n in _PAGE_HEADER.findall(prompt)]


def _handler(batch_json, failing_pages=(), meta_fails=False, meta_topic="Global"):
    """Batch prompts echo their first page as topic; meta prompts return meta_topic."""

    def handle(provider, prompt):
        if "RESUMENES PARCIALES:" in prompt:
            if meta_fails:
                raise RuntimeError("503 Service Unavailable")
            return batch_json(topic=meta_topic)
        pages = _pages_in(prompt)
        if any(p in failing_pages for p in pages):
            raise RuntimeError("provider exploded")
        return batch_json(topic=f"Desde pagina {pages[0]}", key_points=[f"Punto {pages[0]}"])

    return handle


class TestPartitionBatches:
    """Test partition_batches()."""

    def test_respects_page_limit(self, make_page):
        pages = [make_page(n) for n in range(1, 11)]

        batches = partition_batches(pages, max_chars=10**6, max_pages=4)

        assert [[p.page_number for p in b] for b in batches] == [
            [1, 2, 3, 4],
            [5, 6, 7, 8],
            [9, 10],
        ]

    def test_respects_char_budget(self, make_page):
        # 3 posts x 100 chars = 300 chars per page
        pages = [make_page(n, content_chars=100) for n in range(1, 6)]

        batches = partition_batches(pages, max_chars=700, max_pages=8)

        assert [len(b) for b in batches] == [2, 2, 1]

    def test_oversized_page_forms_its_own_batch(self, make_page):
        pages = [
            make_page(1, content_chars=10),
            make_page(2, content_chars=5000),
            make_page(3, content_chars=10),
        ]

        batches = partition_batches(pages, max_chars=1000, max_pages=8)

        assert [[p.page_number for p in b] for b in batches] == [[1], [2], [3]]

    def test_empty_input(self):
        assert partition_batches([], max_chars=100, max_pages=2) == []

    def test_non_positive_limits_raise(self, make_page):
        with pytest.raises(ValueError):
            partition_batches([make_page(1)], max_chars=0, max_pages=2)


class TestBatchLimits:
    """Test batch_limits_for()."""

    def test_gemini(self):
        assert batch_limits_for("gemini", 30) == BatchLimits(8, 40000)

    def test_groq_small_range(self):
        assert batch_limits_for("groq", 10) == BatchLimits(4, 16000)

    def test_groq_large_range(self):
        assert batch_limits_for("groq", 20) == BatchLimits(3, 12000)


class TestMergeBatchSummaries:
    """Test merge_batch_summaries()."""

    def test_round_robin_key_points_and_unique_participants(self):
        first = BatchSummary(
            topic="Primero",
            key_points=["a1", "a2", "a3"],
            participants=[Participant(name="Ana"), Participant(name="bob")],
            status="abierto",
        )
        second = BatchSummary(
            topic="Segundo",
            key_points=["b1"],
            participants=[Participant(name="ana"), Participant(name="carla")],
            status="cerrado",
        )

        merged = merge_batch_summaries(
            [first, second], ScaledLimits(max_key_points=3, max_participants=5)
        )

        assert merged.topic == "Primero"
        assert merged.key_points == ["a1", "b1", "a2"]
        assert [p.name for p in merged.participants] == ["Ana", "bob", "carla"]
        assert merged.status == "cerrado"


class TestSummarizationOrchestrator:
    """Test SummarizationOrchestrator.summarize()."""

    @pytest.mark.asyncio
    async def test_single_batch_needs_no_meta_call(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(_handler(batch_json))
        fetch = _fetch_result([make_page(1), make_page(2), make_page(3)])

        summary = await SummarizationOrchestrator(generator).summarize(fetch, SummaryConfig())

        assert len(generator.prompts) == 1
        assert summary.topic == "Desde pagina 1"
        assert summary.outcome == SummaryOutcome.COMPLETE
        assert summary.total_batches == 1
        assert summary.page_range == "1-3"
        assert summary.total_posts_analyzed == 9

    @pytest.mark.asyncio
    async def test_multiple_batches_then_one_meta_call(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(_handler(batch_json))
        fetch = _fetch_result([make_page(n) for n in range(1, 11)])
        events = []

        summary = await SummarizationOrchestrator(generator).summarize(
            fetch, SummaryConfig(pages_per_batch=4, on_progress=events.append)
        )

        assert len(generator.batch_prompts) == 3
        assert len(generator.meta_prompts) == 1
        assert summary.topic == "Global"
        assert summary.outcome == SummaryOutcome.COMPLETE
        assert [(e.current, e.total, e.batch) for e in events] == [
            (1, 4, 1),
            (2, 4, 2),
            (3, 4, 3),
            (4, 4, None),
        ]
        assert all(e.total_batches == 3 and e.phase == "summarizing" for e in events)

    @pytest.mark.asyncio
    async def test_failed_batch_is_left_out_of_meta_prompt(
        self, make_page, scripted_generator, batch_json
    ):
        generator = scripted_generator(_handler(batch_json, failing_pages={5}))
        fetch = _fetch_result([make_page(n) for n in range(1, 11)])

        summary = await SummarizationOrchestrator(generator).summarize(
            fetch, SummaryConfig(pages_per_batch=4)
        )

        meta = generator.meta_prompts[0]
        assert "--- Paginas 1-4 ---" in meta
        assert "--- Paginas 9-10 ---" in meta
        assert "Paginas 5-8" not in meta
        assert summary.failed_batches == [2]
        assert summary.total_batches == 3
        assert summary.outcome == SummaryOutcome.PARTIAL

    @pytest.mark.asyncio
    async def test_unparseable_batch_counts_as_failure(self, make_page, scripted_generator, batch_json):
        def handle(provider, prompt):
            if "RESUMENES PARCIALES:" in prompt:
                return batch_json(topic="Global")
            if 1 in _pages_in(prompt):
                return "Perdona, no puedo resumir esto."
            return batch_json()

        generator = scripted_generator(handle)
        fetch = _fetch_result([make_page(n) for n in range(1, 9)])

        summary = await SummarizationOrchestrator(generator).summarize(
            fetch, SummaryConfig(pages_per_batch=2)
        )

        assert summary.failed_batches == [1]
        assert summary.outcome == SummaryOutcome.PARTIAL

    @pytest.mark.asyncio
    async def test_single_survivor_is_used_verbatim(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(_handler(batch_json, failing_pages={1, 9}))
        fetch = _fetch_result([make_page(n) for n in range(1, 11)])

        summary = await SummarizationOrchestrator(generator).summarize(
            fetch, SummaryConfig(pages_per_batch=4)
        )

        assert len(generator.prompts) == 3
        assert generator.meta_prompts == []
        assert summary.topic == "Desde pagina 5"
        assert summary.outcome == SummaryOutcome.PARTIAL

    @pytest.mark.asyncio
    async def test_every_batch_failing_raises(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(_handler(batch_json, failing_pages=set(range(1, 11))))
        fetch = _fetch_result([make_page(n) for n in range(1, 11)])

        with pytest.raises(SummarizationError) as exc_info:
            await SummarizationOrchestrator(generator).summarize(
                fetch, SummaryConfig(pages_per_batch=4)
            )

        assert exc_info.value.failed_batches == [1, 2, 3]
        assert "provider exploded" in str(exc_info.value.__cause__)

    @pytest.mark.asyncio
    async def test_meta_failure_merges_locally(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(_handler(batch_json, meta_fails=True))
        fetch = _fetch_result([make_page(n) for n in range(1, 11)])

        summary = await SummarizationOrchestrator(generator).summarize(
            fetch, SummaryConfig(pages_per_batch=4)
        )

        assert summary.outcome == SummaryOutcome.PARTIAL
        assert summary.failed_batches == []
        assert summary.topic == "Desde pagina 1"
        assert summary.key_points == ["Punto 1", "Punto 5", "Punto 9"]

    @pytest.mark.asyncio
    async def test_fetch_errors_make_result_partial(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(_handler(batch_json))
        fetch = _fetch_result([make_page(1), make_page(2), make_page(4)], fetch_errors=[3])

        summary = await SummarizationOrchestrator(generator).summarize(fetch, SummaryConfig())

        assert summary.outcome == SummaryOutcome.PARTIAL
        assert summary.fetch_errors == [3]
        assert summary.pages_analyzed == 3
        assert summary.page_range == "1-4"

    @pytest.mark.asyncio
    async def test_no_pages_raises(self, scripted_generator):
        with pytest.raises(SummarizationError):
            await SummarizationOrchestrator(scripted_generator()).summarize(
                _fetch_result([], fetch_errors=[1, 2]), SummaryConfig()
            )

    @pytest.mark.asyncio
    async def test_output_is_clipped_to_scaled_limits(self, make_page, scripted_generator, batch_json):
        generator = scripted_generator(
            lambda provider, prompt: batch_json(key_points=[f"p{i}" for i in range(20)])
        )
        fetch = _fetch_result([make_page(1), make_page(2)])

        summary = await SummarizationOrchestrator(generator).summarize(fetch, SummaryConfig())

        assert len(summary.key_points) == 5

    @pytest.mark.asyncio
    async def test_orchestrator_batch_limits_override_provider_defaults(
        self, make_page, scripted_generator, batch_json
    ):
        generator = scripted_generator(_handler(batch_json))
        fetch = _fetch_result([make_page(n) for n in range(1, 7)])
        orchestrator = SummarizationOrchestrator(generator, batch_limits=BatchLimits(2, 10**6))

        summary = await orchestrator.summarize(fetch, SummaryConfig(provider="groq"))

        assert summary.total_batches == 3
        assert len(generator.batch_prompts) == 3
