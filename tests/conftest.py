"""Shared pytest fixtures and configuration.

Fixture Categories:
1. Infrastructure: mock_settings, mock_logfire, respx_mock, test_client
2. Forum HTML: post_html, page_html
3. Pipeline data: make_post, make_page, batch_json
4. Collaborators: ScriptedGenerator, FakeThreadSource
"""

import asyncio
import json
import os
from contextlib import contextmanager
from unittest.mock import MagicMock, Mock

import pytest
import respx

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from thread_summarizer.config import get_settings  # noqa: E402
from thread_summarizer.exceptions import PageFetchError  # noqa: E402
from thread_summarizer.models.thread_models import (  # noqa: E402
    PageData,
    PageDocument,
    Post,
)
from thread_summarizer.services.summary_cache import reset_summary_cache  # noqa: E402

# Modules that bind get_settings at import time
_SETTINGS_CONSUMERS = (
    "thread_summarizer.config",
    "thread_summarizer.main",
    "thread_summarizer.logging_config",
    "thread_summarizer.api.summaries",
    "thread_summarizer.cli.summarize_cli",
    "thread_summarizer.services.llm_client",
    "thread_summarizer.services.page_source",
    "thread_summarizer.services.summary_cache",
    "thread_summarizer.services.thread_summary",
)

_LOGFIRE_ATTRS = (
    "info",
    "warn",
    "error",
    "span",
    "configure",
    "instrument_fastapi",
    "instrument_pydantic",
    "instrument_pydantic_ai",
)


@pytest.fixture(autouse=True)
def reset_singletons():
    """Clear cached settings and the global summary cache around each test."""
    get_settings.cache_clear()
    reset_summary_cache()
    yield
    get_settings.cache_clear()
    reset_summary_cache()


@pytest.fixture(autouse=True)
def mock_logfire(monkeypatch):
    """
    Replace Logfire's logging calls with mocks.

    Applied to every test so nothing is exported; request the fixture
    explicitly to assert on what was logged.
    """
    import logfire

    @contextmanager
    def mock_span(*args, **kwargs):
        yield MagicMock()

    mock_logfire_module = MagicMock()
    mock_logfire_module.info = Mock()
    mock_logfire_module.warn = Mock()
    mock_logfire_module.error = Mock()
    mock_logfire_module.span = Mock(side_effect=mock_span)
    mock_logfire_module.configure = Mock()
    mock_logfire_module.instrument_fastapi = Mock()
    mock_logfire_module.instrument_pydantic = Mock()
    mock_logfire_module.instrument_pydantic_ai = Mock()

    for attr in _LOGFIRE_ATTRS:
        monkeypatch.setattr(logfire, attr, getattr(mock_logfire_module, attr))
    return mock_logfire_module


@pytest.fixture
def mock_settings(monkeypatch):
    """Settings isolated from .env files, with no pauses between fetch windows."""
    from thread_summarizer.config import Settings

    settings = Settings(
        _env_file=None,
        env="local",
        logfire_token=None,
        sentry_dsn=None,
        default_provider="gemini",
        gemini_model="test:gemini-model",
        groq_model="test:groq-model",
        forum_origin="https://forum.test",
        fetch_window_delay_seconds=0.0,
    )
    for module in _SETTINGS_CONSUMERS:
        monkeypatch.setattr(f"{module}.get_settings", lambda: settings)
    return settings


@pytest.fixture
def respx_mock():
    """Respx mock fixture for HTTP mocking."""
    with respx.mock(assert_all_called=False) as router:
        yield router


@pytest.fixture
def test_client(mock_settings, mock_logfire):
    """FastAPI TestClient for E2E tests."""
    from fastapi.testclient import TestClient

    from thread_summarizer.main import app

    return TestClient(app)


# =============================================================================
# Forum HTML builders
# =============================================================================


@pytest.fixture
def post_html():
    """Build the HTML of one forum post."""

    def _build(
        number: int,
        author: str | None = "usuario",
        body: str = "Un mensaje con suficiente texto para superar el minimo de caracteres.",
        votes: int | None = None,
        avatar: str | None = None,
        timestamp: str | None = "2024-03-01T10:00:00",
    ) -> str:
        author_html = f'<a class="autor" href="/id/{author}">{author}</a>' if author else ""
        avatar_html = f'<div class="post-avatar"><img src="{avatar}"></div>' if avatar else ""
        time_html = f'<time datetime="{timestamp}">hace un rato</time>' if timestamp else ""
        votes_html = f'<div class="btnmola"><span>{votes}</span></div>' if votes is not None else ""
        return f"""
        <div class="post" data-num="{number}" id="post-{number}">
          {avatar_html}
          <div class="post-header">{author_html}{time_html}</div>
          <div class="post-contents"><div class="body">{body}</div></div>
          {votes_html}
        </div>"""

    return _build


@pytest.fixture
def page_html():
    """Build a full thread page from post HTML fragments."""

    def _build(posts: list[str], title: str = "Hilo oficial de pruebas", last_page: int = 1) -> str:
        pagination = "".join(
            f'<a href="/foro/off-topic/hilo-oficial-de-pruebas-123/{n}">{n}</a>'
            for n in range(2, last_page + 1)
        )
        return f"""<html><head><title>{title} - Mediavida</title></head>
        <body>
          <div id="topic"><h1>{title}</h1></div>
          <div class="paginacion">{pagination}</div>
          {"".join(posts)}
        </body></html>"""

    return _build


# =============================================================================
# Pipeline data
# =============================================================================


def _post(number: int, author: str, content: str | None = None, **kwargs) -> Post:
    content = content or f"Opinion numero {number} de {author} sobre el tema del hilo."
    return Post(number=number, author=author, content=content, char_count=len(content), **kwargs)


@pytest.fixture
def make_post():
    return _post


@pytest.fixture
def make_page():
    """Build PageData with posts_per_page posts from rotating authors."""

    def _build(
        page_number: int,
        posts_per_page: int = 3,
        authors: tuple[str, ...] = ("ana", "bob", "carla"),
        content_chars: int | None = None,
    ) -> PageData:
        posts = []
        for i in range(posts_per_page):
            number = (page_number - 1) * 30 + i + 1
            content = "x" * content_chars if content_chars else None
            posts.append(_post(number, authors[i % len(authors)], content))
        return PageData(page_number=page_number, posts=tuple(posts))

    return _build


def _batch_json(topic: str = "Tema", key_points=None, participants=None, status: str = "Activo") -> str:
    return json.dumps(
        {
            "topic": topic,
            "keyPoints": key_points if key_points is not None else ["Punto A", "Punto B"],
            "participants": participants
            if participants is not None
            else [{"name": "ana", "contribution": "Abre el debate"}],
            "status": status,
        },
        ensure_ascii=False,
    )


@pytest.fixture
def batch_json():
    """Serialize a provider-style summary response."""
    return _batch_json


# =============================================================================
# Collaborators
# =============================================================================


class ScriptedGenerator:
    """
    Text generator driven by a handler(provider, prompt) -> str.

    Records every prompt so tests can count calls and inspect what was sent.
    """

    def __init__(self, handler=None, model: str = "fake-model"):
        self.handler = handler or (lambda provider, prompt: _batch_json())
        self.model = model
        self.prompts: list[str] = []

    def model_name(self, provider) -> str:
        return f"{self.model}-{provider}"

    async def generate(self, provider, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.handler(provider, prompt)

    @property
    def batch_prompts(self) -> list[str]:
        return [p for p in self.prompts if "RESUMENES PARCIALES:" not in p]

    @property
    def meta_prompts(self) -> list[str]:
        return [p for p in self.prompts if "RESUMENES PARCIALES:" in p]


class FakeThreadSource:
    """In-memory page source with optional per-page failures and delays."""

    def __init__(
        self,
        documents: dict[int, PageDocument] | None = None,
        failures: set[int] | None = None,
        delays: dict[int, float] | None = None,
        base_url: str = "https://forum.test/foro/off-topic/hilo-de-pruebas-123",
    ):
        self.documents = documents or {}
        self.failures = failures or set()
        self.delays = delays or {}
        self.base_url = base_url
        self.calls: list[int] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def fallback_title(self) -> str:
        return "hilo de pruebas"

    async def fetch_page(self, page_number: int) -> PageDocument:
        self.calls.append(page_number)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if page_number in self.delays:
                await asyncio.sleep(self.delays[page_number])
            if page_number in self.failures:
                raise PageFetchError(page_number, "HTTP 500")
            if page_number in self.documents:
                return self.documents[page_number]
            return PageDocument(
                page_number=page_number,
                posts=[
                    _post((page_number - 1) * 30 + 1, "ana", avatar_url="https://forum.test/a.jpg"),
                    _post((page_number - 1) * 30 + 2, "Bob_Builder"),
                ],
                title="Hilo de pruebas",
            )
        finally:
            self.in_flight -= 1


@pytest.fixture
def scripted_generator():
    return ScriptedGenerator


@pytest.fixture
def fake_source():
    return FakeThreadSource
