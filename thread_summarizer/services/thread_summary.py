"""Top-level entry point: summarize a page range of a forum thread."""

import time
from typing import Callable, List, Mapping

import logfire

from thread_summarizer.config import Provider, Settings, get_settings
from thread_summarizer.constants import (
    AVATAR_PARTIAL_MATCH_MIN_LENGTH,
    GROQ_MAX_MULTI_PAGES,
    MAX_MULTI_PAGES,
)
from thread_summarizer.exceptions import SummarizationError
from thread_summarizer.models.summary_models import FinalSummary, Participant
from thread_summarizer.models.thread_models import ProgressCallback
from thread_summarizer.services.aggregator import build_avatar_map
from thread_summarizer.services.llm_client import (
    TextGenerator,
    get_text_generation_client,
    is_rate_limit_error,
)
from thread_summarizer.services.page_fetcher import PageFetcher, PageSource
from thread_summarizer.services.page_source import ThreadPageSource
from thread_summarizer.services.summarizer import (
    SummarizationOrchestrator,
    SummaryConfig,
)
from thread_summarizer.services.summary_cache import SummaryCache, get_summary_cache

MSG_RANGE_TOO_SMALL = "Selecciona al menos 2 paginas para un resumen multi-pagina."
MSG_RANGE_INVALID = "Rango de paginas invalido."
MSG_RANGE_TOO_LARGE = "El rango maximo con {provider} es de {limit} paginas."
MSG_NO_PAGES = "No se pudo obtener ninguna pagina con posts del rango seleccionado."
MSG_RATE_LIMIT = (
    "Limite de velocidad excedido. El plan gratuito es limitado para resumenes "
    "largos. Espera un momento o reduce el rango de paginas."
)
MSG_TOO_LARGE = "Contenido demasiado largo para procesar. Intenta reducir el numero de paginas."
MSG_SERVER_ERROR = "Error temporal del servidor. Intentalo de nuevo."
MSG_GENERIC = "Error al generar el resumen multi-pagina."

_TOO_LARGE_MARKERS = ("400", "too large", "context length")
_SERVER_ERROR_MARKERS = ("500", "502", "503")


def max_pages_for(provider: Provider) -> int:
    """Largest page range a single run may cover for a provider."""
    return GROQ_MAX_MULTI_PAGES if provider == "groq" else MAX_MULTI_PAGES


def validate_range(from_page: int, to_page: int, provider: Provider) -> str | None:
    """User-facing reason a page range cannot be summarized, or None if it can."""
    if from_page < 1 or to_page < from_page:
        return MSG_RANGE_INVALID
    if to_page - from_page + 1 < 2:
        return MSG_RANGE_TOO_SMALL
    limit = max_pages_for(provider)
    if to_page - from_page + 1 > limit:
        return MSG_RANGE_TOO_LARGE.format(provider=provider, limit=limit)
    return None


def user_facing_error(error: BaseException) -> str:
    """
    Translate a pipeline or provider error into a message for the reader.

    The error's cause is inspected too, since a SummarizationError wraps
    the last batch failure.
    """
    chain: List[BaseException] = [error]
    if error.__cause__ is not None:
        chain.append(error.__cause__)

    if any(is_rate_limit_error(e) for e in chain):
        return MSG_RATE_LIMIT
    messages = " ".join(str(e).lower() for e in chain)
    status_codes = {getattr(e, "status_code", None) for e in chain}
    if 400 in status_codes or any(m in messages for m in _TOO_LARGE_MARKERS):
        return MSG_TOO_LARGE
    if status_codes & {500, 502, 503} or any(m in messages for m in _SERVER_ERROR_MARKERS):
        return MSG_SERVER_ERROR
    return MSG_GENERIC


def _find_avatar(name: str, avatars: Mapping[str, str]) -> str | None:
    clean = name.strip().lower()
    lowered = {author.lower(): url for author, url in avatars.items()}
    if clean in lowered:
        return lowered[clean]
    if len(clean) < AVATAR_PARTIAL_MATCH_MIN_LENGTH:
        return None
    for author, url in lowered.items():
        if len(author) < AVATAR_PARTIAL_MATCH_MIN_LENGTH:
            continue
        if clean in author or author in clean:
            return url
    return None


def hydrate_participant_avatars(
    participants: List[Participant], avatars: Mapping[str, str]
) -> List[Participant]:
    """
    Attach avatar URLs to participants by author name.

    Exact (case-insensitive) matches win; otherwise a name contained in an
    author name, or the reverse, is accepted when both are long enough to
    make a false match unlikely.
    """
    hydrated = []
    for participant in participants:
        url = participant.avatar_url or _find_avatar(participant.name, avatars)
        if url and url.startswith("//"):
            url = "https:" + url
        hydrated.append(participant.model_copy(update={"avatar_url": url}))
    return hydrated


class ThreadSummaryService:
    """
    Fetches a page range of a thread and summarizes it.

    Never raises for expected failures: invalid ranges, unreachable pages
    and provider errors all come back as a FinalSummary whose outcome is
    FAILED and whose ``error`` is safe to show to a reader.
    """

    def __init__(
        self,
        client: TextGenerator | None = None,
        cache: SummaryCache | None = None,
        settings: Settings | None = None,
        source_factory: Callable[[str], PageSource] = ThreadPageSource,
    ):
        self.client = client or get_text_generation_client()
        self.cache = cache if cache is not None else get_summary_cache()
        self.settings = settings or get_settings()
        self.source_factory = source_factory

    def _model_used(self, provider: Provider) -> str:
        model_name = getattr(self.client, "model_name", None)
        if callable(model_name):
            return model_name(provider)
        return self.settings.model_for(provider)

    async def summarize_range(
        self,
        thread_url: str,
        from_page: int,
        to_page: int,
        provider: Provider | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> FinalSummary:
        """
        Summarize pages ``from_page`` to ``to_page`` (inclusive) of a thread.

        Args:
            thread_url: URL of any page of the thread
            from_page: First page, 1-based
            to_page: Last page, inclusive
            provider: Text-generation provider; defaults to settings
            on_progress: Optional sink for fetch and summarize progress

        Returns:
            FinalSummary with outcome COMPLETE, PARTIAL or FAILED
        """
        provider = provider or self.settings.default_provider
        source = self.source_factory(thread_url)
        title = source.fallback_title() if hasattr(source, "fallback_title") else ""

        range_error = validate_range(from_page, to_page, provider)
        if range_error is not None:
            return FinalSummary.failed(title, from_page, to_page, range_error)

        cache_key = getattr(source, "base_url", thread_url)
        cached = self.cache.get(cache_key, from_page, to_page)
        if cached is not None:
            logfire.info(
                "Serving cached thread summary",
                thread_url=cache_key,
                page_range=cached.page_range,
            )
            return cached

        with logfire.span(
            "summarize thread {thread_url} pages {from_page}-{to_page}",
            thread_url=cache_key,
            from_page=from_page,
            to_page=to_page,
            provider=provider,
        ):
            summary = await self._run(
                source, cache_key, from_page, to_page, provider, on_progress
            )
        return summary

    async def _run(
        self,
        source: PageSource,
        cache_key: str,
        from_page: int,
        to_page: int,
        provider: Provider,
        on_progress: ProgressCallback | None,
    ) -> FinalSummary:
        title = source.fallback_title() if hasattr(source, "fallback_title") else ""
        start_time = time.time()
        fetcher = PageFetcher(
            source,
            window_size=self.settings.fetch_concurrency,
            window_delay_seconds=self.settings.fetch_window_delay_seconds,
        )
        fetch_result = await fetcher.fetch_range(
            from_page, to_page, on_progress=on_progress, fallback_title=title
        )
        if not fetch_result.pages:
            logfire.warn(
                "No pages fetched for summary",
                thread_url=cache_key,
                fetch_errors=fetch_result.fetch_errors,
            )
            failed = FinalSummary.failed(
                fetch_result.thread_title, from_page, to_page, MSG_NO_PAGES
            )
            return failed.model_copy(update={"fetch_errors": fetch_result.fetch_errors})

        orchestrator = SummarizationOrchestrator(self.client)
        config = SummaryConfig(
            provider=provider,
            language=self.settings.summary_language,
            max_chars_per_batch=self.settings.max_chars_per_batch,
            pages_per_batch=self.settings.pages_per_batch,
            on_progress=on_progress,
        )
        try:
            summary = await orchestrator.summarize(fetch_result, config)
        except SummarizationError as e:
            logfire.error(
                "Thread summarization failed",
                thread_url=cache_key,
                provider=provider,
                error=str(e),
                cause=str(e.__cause__) if e.__cause__ else None,
            )
            failed = FinalSummary.failed(
                fetch_result.thread_title, from_page, to_page, user_facing_error(e)
            )
            return failed.model_copy(
                update={
                    "fetch_errors": fetch_result.fetch_errors,
                    "failed_batches": e.failed_batches,
                    "total_batches": len(e.failed_batches),
                }
            )

        summary = summary.model_copy(
            update={
                "participants": hydrate_participant_avatars(
                    summary.participants, build_avatar_map(fetch_result.pages)
                ),
                "page_range": f"{from_page}-{to_page}",
                "generation_ms": (time.time() - start_time) * 1000,
                "model_used": self._model_used(provider),
            }
        )
        self.cache.set(cache_key, from_page, to_page, summary)

        logfire.info(
            "Thread summary ready",
            thread_url=cache_key,
            page_range=summary.page_range,
            outcome=summary.outcome.value,
            generation_ms=summary.generation_ms,
        )
        return summary


# Factory function for dependency injection
def get_thread_summary_service() -> ThreadSummaryService:
    """Get a thread summary service wired to the global client and cache."""
    return ThreadSummaryService()
