"""Batch -> meta summarization of fetched thread pages.

Pages are partitioned into contiguous batches sized to the provider's
input budget. Each batch is summarized with one call; the surviving batch
summaries are then fused with one more call. A failed batch only reduces
coverage: the run fails only when no batch succeeds.
"""

import time
from dataclasses import dataclass
from typing import List, Sequence

import logfire

from thread_summarizer.config import Provider
from thread_summarizer.constants import (
    DEFAULT_SUMMARY_LANGUAGE,
    GEMINI_MAX_CHARS_PER_BATCH,
    GEMINI_PAGES_PER_BATCH,
    GROQ_LARGE_RANGE_THRESHOLD,
    GROQ_MAX_CHARS_PER_BATCH,
    GROQ_MAX_CHARS_PER_BATCH_LARGE_RANGE,
    GROQ_PAGES_PER_BATCH,
    GROQ_PAGES_PER_BATCH_LARGE_RANGE,
)
from thread_summarizer.exceptions import SummarizationError
from thread_summarizer.models.summary_models import (
    BatchSummary,
    FinalSummary,
    Participant,
    ScaledLimits,
    SummaryOutcome,
)
from thread_summarizer.models.thread_models import (
    MultiPageFetchResult,
    PageData,
    ProgressCallback,
    ProgressEvent,
)
from thread_summarizer.services.aggregator import build_stats_block
from thread_summarizer.services.llm_client import TextGenerator
from thread_summarizer.services.prompt_scaler import (
    build_batch_request,
    build_meta_request,
    page_range_label,
    scaled_limits,
)
from thread_summarizer.services.response_parser import parse_batch_summary


@dataclass(frozen=True)
class BatchLimits:
    """How much content one batch-summary request may carry."""

    pages_per_batch: int
    max_chars_per_batch: int


def batch_limits_for(provider: Provider, requested_pages: int) -> BatchLimits:
    """Default batch limits for a provider and requested range size."""
    if provider == "groq":
        if requested_pages >= GROQ_LARGE_RANGE_THRESHOLD:
            return BatchLimits(
                pages_per_batch=GROQ_PAGES_PER_BATCH_LARGE_RANGE,
                max_chars_per_batch=GROQ_MAX_CHARS_PER_BATCH_LARGE_RANGE,
            )
        return BatchLimits(
            pages_per_batch=GROQ_PAGES_PER_BATCH,
            max_chars_per_batch=GROQ_MAX_CHARS_PER_BATCH,
        )
    return BatchLimits(
        pages_per_batch=GEMINI_PAGES_PER_BATCH,
        max_chars_per_batch=GEMINI_MAX_CHARS_PER_BATCH,
    )


def partition_batches(
    pages: Sequence[PageData], max_chars: int, max_pages: int
) -> List[List[PageData]]:
    """
    Split pages into contiguous batches.

    A batch closes when adding the next page would exceed max_chars of post
    content or max_pages pages. Pages are never split; a page that alone
    exceeds max_chars forms its own batch.
    """
    if max_pages < 1 or max_chars < 1:
        raise ValueError("Batch limits must be positive")

    batches: List[List[PageData]] = []
    current: List[PageData] = []
    current_chars = 0
    for page in pages:
        size = page.char_count
        if current and (len(current) >= max_pages or current_chars + size > max_chars):
            batches.append(current)
            current = []
            current_chars = 0
        current.append(page)
        current_chars += size
    if current:
        batches.append(current)
    return batches


def merge_batch_summaries(
    summaries: Sequence[BatchSummary], limits: ScaledLimits
) -> BatchSummary:
    """
    Fuse batch summaries locally, without a provider call.

    Used when the meta-summary call fails: first topic, key points taken
    round-robin across batches, participants de-duplicated by name, last status.
    """
    key_points: List[str] = []
    longest = max(len(s.key_points) for s in summaries)
    for index in range(longest):
        for summary in summaries:
            if index < len(summary.key_points) and len(key_points) < limits.max_key_points:
                key_points.append(summary.key_points[index])

    participants: List[Participant] = []
    seen: set[str] = set()
    for summary in summaries:
        for participant in summary.participants:
            key = participant.name.strip().lower()
            if key in seen or len(participants) >= limits.max_participants:
                continue
            seen.add(key)
            participants.append(participant)

    return BatchSummary(
        topic=summaries[0].topic,
        key_points=key_points,
        participants=participants,
        status=summaries[-1].status,
    )


@dataclass
class SummaryConfig:
    """Per-run options for the orchestrator."""

    provider: Provider = "gemini"
    language: str = DEFAULT_SUMMARY_LANGUAGE
    max_chars_per_batch: int | None = None
    pages_per_batch: int | None = None
    on_progress: ProgressCallback | None = None
    page_count: int | None = None


class SummarizationOrchestrator:
    """Runs the batch -> meta summarization sequence over a fetch result."""

    def __init__(self, client: TextGenerator, batch_limits: BatchLimits | None = None):
        self.client = client
        self.batch_limits = batch_limits

    def _limits_for(self, config: SummaryConfig, requested: int) -> BatchLimits:
        defaults = self.batch_limits or batch_limits_for(config.provider, requested)
        return BatchLimits(
            pages_per_batch=config.pages_per_batch or defaults.pages_per_batch,
            max_chars_per_batch=config.max_chars_per_batch or defaults.max_chars_per_batch,
        )

    def _emit(self, config: SummaryConfig, event: ProgressEvent) -> None:
        if config.on_progress is not None:
            config.on_progress(event)

    def plan_batches(
        self, fetch_result: MultiPageFetchResult, config: SummaryConfig
    ) -> List[List[PageData]]:
        """Batches this run will summarize, known before any call is made."""
        limits = self._limits_for(config, config.page_count or fetch_result.requested_pages)
        return partition_batches(
            fetch_result.pages,
            max_chars=limits.max_chars_per_batch,
            max_pages=limits.pages_per_batch,
        )

    async def _summarize_batch(
        self,
        batch: List[PageData],
        fetch_result: MultiPageFetchResult,
        config: SummaryConfig,
        stats_block: str,
        max_chars: int,
        limits: ScaledLimits,
    ) -> BatchSummary:
        prompt = build_batch_request(
            provider=config.provider,
            page_count=config.page_count or fetch_result.requested_pages,
            thread_title=fetch_result.thread_title,
            pages=batch,
            stats_block=stats_block,
            max_chars=max_chars,
            language=config.language,
        )
        raw = await self.client.generate(config.provider, prompt)
        return parse_batch_summary(raw, limits)

    async def summarize(
        self, fetch_result: MultiPageFetchResult, config: SummaryConfig
    ) -> FinalSummary:
        """
        Summarize every fetched page into one FinalSummary.

        Args:
            fetch_result: Pages and stats from PageFetcher
            config: Provider choice, language, batch overrides, progress sink

        Returns:
            FinalSummary whose outcome is COMPLETE or PARTIAL

        Raises:
            SummarizationError: If there are no pages or every batch failed
        """
        if not fetch_result.pages:
            raise SummarizationError("No pages with posts to summarize")

        start_time = time.time()
        requested = config.page_count or fetch_result.requested_pages
        limits = scaled_limits(requested)
        max_chars = self._limits_for(config, requested).max_chars_per_batch
        batches = self.plan_batches(fetch_result, config)
        total_batches = len(batches)
        planned_calls = total_batches + (1 if total_batches > 1 else 0)
        stats_block = build_stats_block(fetch_result.pages)

        all_pages = [p.page_number for p in fetch_result.pages] + fetch_result.fetch_errors
        from_page, to_page = min(all_pages), max(all_pages)

        logfire.info(
            "Starting thread summarization",
            provider=config.provider,
            pages=len(fetch_result.pages),
            batches=total_batches,
            planned_calls=planned_calls,
            max_key_points=limits.max_key_points,
            max_participants=limits.max_participants,
        )

        survivors: List[tuple[str, BatchSummary]] = []
        failed_batches: List[int] = []
        last_error: Exception | None = None
        for index, batch in enumerate(batches, start=1):
            self._emit(
                config,
                ProgressEvent(
                    phase="summarizing",
                    current=index,
                    total=planned_calls,
                    batch=index,
                    total_batches=total_batches,
                ),
            )
            try:
                summary = await self._summarize_batch(
                    batch, fetch_result, config, stats_block, max_chars, limits
                )
            except Exception as e:
                failed_batches.append(index)
                last_error = e
                logfire.warn(
                    "Batch summary failed, continuing without it",
                    batch=index,
                    total_batches=total_batches,
                    pages=page_range_label(batch),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                continue
            survivors.append((page_range_label(batch), summary))

        if not survivors:
            logfire.error(
                "Every batch summary failed",
                provider=config.provider,
                total_batches=total_batches,
            )
            raise SummarizationError(
                f"All {total_batches} batch summaries failed",
                failed_batches=failed_batches,
            ) from last_error

        merged_locally = False
        if len(survivors) == 1:
            final = survivors[0][1]
        else:
            self._emit(
                config,
                ProgressEvent(
                    phase="summarizing",
                    current=planned_calls,
                    total=planned_calls,
                    total_batches=total_batches,
                ),
            )
            prompt = build_meta_request(
                provider=config.provider,
                page_count=requested,
                thread_title=fetch_result.thread_title,
                partials=survivors,
                from_page=from_page,
                to_page=to_page,
                stats_block=stats_block,
                language=config.language,
            )
            try:
                raw = await self.client.generate(config.provider, prompt)
                final = parse_batch_summary(raw, limits)
            except Exception as e:
                merged_locally = True
                logfire.warn(
                    "Meta summary failed, merging batch summaries locally",
                    surviving_batches=len(survivors),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                final = merge_batch_summaries([s for _, s in survivors], limits)

        complete = not failed_batches and not fetch_result.fetch_errors and not merged_locally
        elapsed = time.time() - start_time
        logfire.info(
            "Thread summarization completed",
            provider=config.provider,
            batches=total_batches,
            failed_batches=failed_batches,
            meta_merged_locally=merged_locally,
            total_time_ms=elapsed * 1000,
        )

        return FinalSummary(
            topic=final.topic,
            key_points=list(final.key_points),
            participants=[p.model_copy() for p in final.participants],
            status=final.status,
            title=fetch_result.thread_title,
            total_posts_analyzed=fetch_result.total_posts,
            total_unique_authors=fetch_result.total_unique_authors,
            pages_analyzed=len(fetch_result.pages),
            page_range=f"{from_page}-{to_page}",
            fetch_errors=list(fetch_result.fetch_errors),
            failed_batches=failed_batches,
            total_batches=total_batches,
            outcome=SummaryOutcome.COMPLETE if complete else SummaryOutcome.PARTIAL,
        )
