"""HTTP page source for forum threads: fetch a page and extract its posts."""

import re
import time
from urllib.parse import parse_qsl, urlencode, urlparse

import httpx
import logfire
from bs4 import BeautifulSoup

from thread_summarizer.config import get_settings
from thread_summarizer.constants import PAGE_QUERY_PARAM
from thread_summarizer.exceptions import PageFetchError
from thread_summarizer.models.thread_models import PageDocument
from thread_summarizer.services.content_extractor import (
    extract_posts,
    extract_thread_title,
)

_THREAD_PATH = re.compile(r"^(/foro/[^/]+/[^/]+)(?:/\d+)?/?$")
_TRAILING_PAGE = re.compile(r"/\d+/?$")
_PAGINATION_LINKS = "#bottompanel .paginacion a, .paginacion a, .pagination a"
_PAGINATION_CURRENT = ".paginacion .activo, .pagination .active, .paginacion em"

_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "es-ES,es;q=0.9",
}


def thread_base_path(path: str) -> str:
    """Thread path without its trailing page number."""
    match = _THREAD_PATH.match(path)
    if match:
        return match.group(1)
    return _TRAILING_PAGE.sub("", path) or "/"


def title_from_path(path: str) -> str:
    """Readable title from a thread slug, e.g. /foro/cine/hilo-oficial-123 -> "hilo oficial"."""
    slug = thread_base_path(path).rstrip("/").rsplit("/", 1)[-1]
    slug = re.sub(r"-\d+$", "", slug)
    return slug.replace("-", " ").strip()


def total_pages(document: BeautifulSoup) -> int:
    """Highest page number shown in a page's pagination, at least 1."""
    max_page = 1
    for link in document.select(_PAGINATION_LINKS):
        match = re.search(r"/(\d+)/?$", link.get("href") or "")
        if match:
            max_page = max(max_page, int(match.group(1)))
    current = document.select_one(_PAGINATION_CURRENT)
    if current is not None and current.get_text().strip().isdigit():
        max_page = max(max_page, int(current.get_text().strip()))
    return max_page


class ThreadPageSource:
    """
    Retrieves pages of one thread over HTTP and extracts their posts.

    Page 1 is the thread's base URL; later pages append "/N", or set the
    ``pagina`` query parameter for filtered (``?u=``) thread views.
    """

    def __init__(
        self,
        thread_url: str,
        origin: str | None = None,
        timeout_seconds: float | None = None,
    ):
        settings = get_settings()
        parsed = urlparse(thread_url)
        if parsed.scheme and parsed.netloc:
            self.origin = f"{parsed.scheme}://{parsed.netloc}"
        else:
            self.origin = (origin or settings.forum_origin).rstrip("/")
        self.base_path = thread_base_path(parsed.path or "/")
        self.query = dict(parse_qsl(parsed.query))
        self.timeout_seconds = timeout_seconds or settings.page_timeout_seconds

    @property
    def base_url(self) -> str:
        return f"{self.origin}{self.base_path}"

    def fallback_title(self) -> str:
        return title_from_path(self.base_path)

    def page_url(self, page_number: int) -> str:
        """Absolute URL of one page of the thread."""
        if "u" in self.query:
            params = dict(self.query)
            if page_number > 1:
                params[PAGE_QUERY_PARAM] = str(page_number)
            else:
                params.pop(PAGE_QUERY_PARAM, None)
            return f"{self.base_url}?{urlencode(params)}"
        if page_number == 1:
            return self.base_url
        return f"{self.base_url}/{page_number}"

    async def fetch_html(self, page_number: int) -> str:
        """
        Fetch the raw HTML of one page.

        Raises:
            PageFetchError: On transport errors, non-2xx status or empty body
        """
        url = self.page_url(page_number)
        start_time = time.time()
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds,
                follow_redirects=True,
                headers=_HEADERS,
            ) as client:
                response = await client.get(url)
                response.raise_for_status()
                html = response.text
        except httpx.HTTPStatusError as e:
            raise PageFetchError(page_number, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise PageFetchError(page_number, str(e) or type(e).__name__) from e

        if not html:
            raise PageFetchError(page_number, "no content")

        elapsed = time.time() - start_time
        logfire.info(
            "Thread page fetched",
            url=url,
            page_number=page_number,
            status_code=response.status_code,
            content_length=len(html),
            response_time_ms=elapsed * 1000,
        )
        return html

    async def fetch_page(self, page_number: int) -> PageDocument:
        """Fetch one page and extract its posts and title."""
        html = await self.fetch_html(page_number)
        soup = BeautifulSoup(html, "html.parser")
        return PageDocument(
            page_number=page_number,
            posts=extract_posts(soup, self.origin),
            title=extract_thread_title(soup),
        )

    async def fetch_total_pages(self) -> int:
        """Number of pages in the thread, read from page 1's pagination."""
        html = await self.fetch_html(1)
        return total_pages(BeautifulSoup(html, "html.parser"))
