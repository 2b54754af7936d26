"""Typer-based command line for summarizing forum threads."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent.parent
from dotenv import load_dotenv

load_dotenv(_project_root / ".env")
load_dotenv(_project_root / ".env.local")

import asyncio
from enum import Enum
from typing import Optional

import typer

from thread_summarizer.config import get_settings
from thread_summarizer.exceptions import PageFetchError
from thread_summarizer.models.summary_models import FinalSummary, SummaryOutcome
from thread_summarizer.models.thread_models import ProgressEvent
from thread_summarizer.services.page_source import ThreadPageSource
from thread_summarizer.services.thread_summary import get_thread_summary_service

app = typer.Typer(help="Summarize page ranges of forum threads.")


class ProviderChoice(str, Enum):
    gemini = "gemini"
    groq = "groq"


def _run_async_with_cleanup(coro):
    """
    Run a coroutine on a fresh event loop and tear the loop down afterwards.

    Pending tasks are cancelled and async generators closed before the loop
    is closed, so interrupted runs do not leave sockets open.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        loop.run_until_complete(loop.shutdown_asyncgens())
        loop.close()
        asyncio.set_event_loop(None)


def _echo_progress(event: ProgressEvent) -> None:
    if event.phase == "fetching":
        message = f"Descargando paginas {event.current}/{event.total}"
    elif event.batch is not None:
        message = f"Resumiendo lote {event.batch}/{event.total_batches}"
    else:
        message = "Fusionando resumenes parciales"
    typer.echo(typer.style(message, dim=True), err=True)


def format_summary(summary: FinalSummary) -> str:
    """Render a finished summary as plain text."""
    lines = [summary.title or "(sin titulo)", f"Paginas {summary.page_range}", ""]
    lines.append(f"Tema: {summary.topic}")
    if summary.key_points:
        lines.append("")
        lines.append("Puntos clave:")
        lines.extend(f"  - {point}" for point in summary.key_points)
    if summary.participants:
        lines.append("")
        lines.append("Participantes:")
        for participant in summary.participants:
            if participant.contribution:
                lines.append(f"  - {participant.name}: {participant.contribution}")
            else:
                lines.append(f"  - {participant.name}")
    if summary.status:
        lines.append("")
        lines.append(f"Estado: {summary.status}")
    lines.append("")
    lines.append(
        f"{summary.total_posts_analyzed} posts de {summary.total_unique_authors} "
        f"autores en {summary.pages_analyzed} paginas"
    )
    return "\n".join(lines)


def format_omissions(summary: FinalSummary) -> list[str]:
    """Warnings describing what a partial summary left out."""
    omissions = []
    if summary.fetch_errors:
        pages = ", ".join(str(p) for p in summary.fetch_errors)
        omissions.append(f"Paginas no disponibles: {pages}")
    if summary.failed_batches:
        omissions.append(
            f"Lotes sin resumir: {len(summary.failed_batches)} de {summary.total_batches}"
        )
    if summary.outcome == SummaryOutcome.PARTIAL and not omissions:
        omissions.append("Los resumenes parciales se fusionaron sin el paso final")
    return omissions


@app.command()
def summarize(
    thread_url: str = typer.Argument(..., help="URL of any page of the thread"),
    from_page: int = typer.Option(1, "--from", "-f", min=1, help="First page"),
    to_page: int = typer.Option(..., "--to", "-t", min=1, help="Last page (inclusive)"),
    provider: Optional[ProviderChoice] = typer.Option(
        None, "--provider", "-p", help="Text-generation provider; defaults to settings"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Hide progress output"),
):
    """Summarize pages FROM..TO of a thread."""
    service = get_thread_summary_service()
    summary = _run_async_with_cleanup(
        service.summarize_range(
            thread_url,
            from_page,
            to_page,
            provider=provider.value if provider is not None else None,
            on_progress=None if quiet else _echo_progress,
        )
    )

    if summary.is_failed:
        typer.echo(typer.style(f"Error: {summary.error}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1)

    typer.echo(format_summary(summary))
    for omission in format_omissions(summary):
        typer.echo(typer.style(f"Aviso: {omission}", fg=typer.colors.YELLOW))


@app.command()
def pages(thread_url: str = typer.Argument(..., help="URL of any page of the thread")):
    """Print how many pages a thread has."""
    source = ThreadPageSource(thread_url)
    try:
        total = _run_async_with_cleanup(source.fetch_total_pages())
    except PageFetchError as e:
        typer.echo(typer.style(f"Error: {e}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1) from e
    typer.echo(str(total))


@app.command()
def config():
    """Show the effective summarizer configuration."""
    settings = get_settings()
    typer.echo(f"Provider: {settings.default_provider}")
    typer.echo(f"Model: {settings.model_for(settings.default_provider)}")
    typer.echo(f"Language: {settings.summary_language}")
    typer.echo(f"Forum: {settings.forum_origin}")
    typer.echo(f"Fetch window: {settings.fetch_concurrency}")


if __name__ == "__main__":
    app()
