"""Post extraction from parsed thread pages.

Turns one BeautifulSoup document into an ordered list of cleaned,
size-bounded Post records. Pure transform: no I/O.
"""

import copy
import re
from typing import List

import logfire
from bs4 import BeautifulSoup, Tag

from thread_summarizer.constants import (
    ANONYMOUS_AUTHOR,
    ELLIPSIS,
    FORUM_AVATAR_PATH,
    FORUM_ORIGIN,
    FORUM_TITLE_SUFFIX,
    MAX_CHARS_PER_POST,
    MIN_CHARS_PER_POST,
    MIN_MEANINGFUL_TEXT_CHARS,
)
from thread_summarizer.models.thread_models import Post

POST_SELECTOR = '.post[data-num], .rep[data-num], div[id^="post-"]'
AUTHOR_SELECTOR = ".post-header .autor, .post-meta .autor, a.autor"
BODY_SELECTOR = ".post-contents .body, .post-body, .cuerpo"
AVATAR_SELECTOR = ".post-avatar img"
TIME_SELECTOR = "time, .date"
VOTES_SELECTOR = ".btnmola span"
THREAD_TITLE_SELECTOR = "#topic h1, .hd h1, h1.title, .thread-header h1"

# Sub-trees that are never part of the author's own words
NOISE_SELECTORS = (
    # Reply metadata and controls
    ".post-meta",
    ".post-meta-reply",
    ".post-controls",
    # Quotes
    "blockquote",
    ".cita",
    ".ref",
    # Spoilers
    ".spoiler",
    ".sp",
    # "Edited by..." notes
    ".edit",
    ".edited",
    "script",
    "style",
    # Embedded media
    "[data-s9e-mediaembed]",
    ".twitter-tweet",
    ".instagram-media",
    ".tiktok-embed",
    ".fb-post",
    ".bluesky-embed",
    "iframe",
    "video",
    "audio",
    "object",
    "embed",
    ".media-container",
    ".iframe-container",
    ".video-container",
    # Images (avoid alt text)
    "img",
    # Signatures
    ".post-signature",
    ".signature",
)

_MEDIA_URL_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE)
    for pattern in (
        r"^https?://(?:www\.)?(?:twitter\.com|x\.com)/\S+$",
        r"^https?://(?:www\.)?instagram\.com/\S+$",
        r"^https?://(?:www\.)?(?:tiktok\.com|vm\.tiktok\.com)/\S+$",
        r"^https?://(?:www\.)?youtube\.com/\S+$",
        r"^https?://(?:www\.)?youtu\.be/\S+$",
        r"^https?://(?:www\.)?twitch\.tv/\S+$",
        r"^https?://(?:www\.)?clips\.twitch\.tv/\S+$",
    )
)

_POST_ID_PATTERN = re.compile(r"^post-(\d+)$")
_WHITESPACE = re.compile(r"\s+")
_URL_TOKEN = re.compile(r"https?://\S+|\bwww\.\S+", re.IGNORECASE)


def is_media_only_url(url: str) -> bool:
    """True if url points at a media host (tweet, video, clip...)."""
    return any(pattern.match(url) for pattern in _MEDIA_URL_PATTERNS)


def _normalize_url_like_token(value: str) -> str:
    value = re.sub(r"^https?://", "", value.strip(), flags=re.IGNORECASE)
    value = re.sub(r"^www\.", "", value, flags=re.IGNORECASE)
    return value.rstrip("/").lower()


def has_meaningful_text(text: str) -> bool:
    """True if text still has real words once URLs are stripped out."""
    if not text:
        return False
    without_urls = _WHITESPACE.sub(" ", _URL_TOKEN.sub(" ", text)).strip()
    return len(without_urls) >= MIN_MEANINGFUL_TEXT_CHARS


def clean_post_content(content_el: Tag) -> str:
    """
    Return the author's own text from a post body.

    Works on a copy: quotes, spoilers, media, images and signatures are
    removed, bare links to media hosts are dropped, and whitespace is
    collapsed. Returns "" for media-only posts.
    """
    clone = copy.copy(content_el)

    for element in clone.select(", ".join(NOISE_SELECTORS)):
        # extract() is safe on elements already detached with an ancestor
        element.extract()

    for anchor in clone.select("a[href]"):
        href = (anchor.get("href") or "").strip()
        if not is_media_only_url(href):
            continue
        text = anchor.get_text().strip()
        is_bare_url = (
            not text
            or _normalize_url_like_token(text) == _normalize_url_like_token(href)
            or re.match(r"^https?://", text, re.IGNORECASE) is not None
        )
        if is_bare_url:
            anchor.extract()

    normalized = _WHITESPACE.sub(" ", clone.get_text()).strip()
    return normalized if has_meaningful_text(normalized) else ""


def truncate_content(content: str) -> str:
    """Hard-cut content above MAX_CHARS_PER_POST and mark it with ELLIPSIS."""
    if len(content) > MAX_CHARS_PER_POST:
        return content[:MAX_CHARS_PER_POST] + ELLIPSIS
    return content


def parse_post_number(post_el: Tag) -> int:
    """Post number from data-num, else from a post-N id; 0 when neither parses."""
    raw = str(post_el.get("data-num") or "").strip() or None
    if raw is None:
        match = _POST_ID_PATTERN.match(post_el.get("id") or "")
        raw = match.group(1) if match else None
    try:
        return max(int(str(raw).strip()), 0) if raw is not None else 0
    except ValueError:
        return 0


def resolve_avatar_url(raw: str | None, origin: str = FORUM_ORIGIN) -> str | None:
    """Make an avatar src absolute against the forum origin."""
    if not raw:
        return None
    raw = raw.strip()
    if raw.startswith("//"):
        return "https:" + raw
    if raw.startswith("/"):
        return origin.rstrip("/") + raw
    if not raw.startswith("http"):
        return origin.rstrip("/") + FORUM_AVATAR_PATH + raw
    return raw


def _parse_votes(post_el: Tag) -> int | None:
    votes_el = post_el.select_one(VOTES_SELECTOR)
    text = votes_el.get_text().strip() if votes_el else ""
    if not text.isdigit():
        return None
    return int(text) or None


def extract_single_post(post_el: Tag, origin: str = FORUM_ORIGIN) -> Post | None:
    """Build a Post from one post node, or None when it has no usable body."""
    number = parse_post_number(post_el)

    author_el = post_el.select_one(AUTHOR_SELECTOR)
    author = (author_el.get_text().strip() if author_el else "") or ANONYMOUS_AUTHOR

    content_el = post_el.select_one(BODY_SELECTOR)
    if content_el is None:
        return None

    content = clean_post_content(content_el)
    if not content:
        return None
    content = truncate_content(content)

    avatar_el = post_el.select_one(AVATAR_SELECTOR)
    raw_avatar = None
    if avatar_el is not None:
        raw_avatar = avatar_el.get("data-src") or avatar_el.get("src")

    time_el = post_el.select_one(TIME_SELECTOR)
    timestamp = None
    if time_el is not None:
        timestamp = time_el.get("datetime") or time_el.get_text().strip() or None

    return Post(
        number=number,
        author=author,
        content=content,
        timestamp=timestamp,
        char_count=len(content),
        avatar_url=resolve_avatar_url(raw_avatar, origin),
        votes=_parse_votes(post_el),
    )


def extract_posts(document: BeautifulSoup | Tag, origin: str = FORUM_ORIGIN) -> List[Post]:
    """
    Extract every post on a page, cleaned and size-bounded.

    Posts shorter than MIN_CHARS_PER_POST are dropped; longer than
    MAX_CHARS_PER_POST are truncated. A malformed post node is skipped
    with a warning and never aborts the rest of the page.

    Returns:
        Posts sorted ascending by number
    """
    posts: List[Post] = []
    for post_el in document.select(POST_SELECTOR):
        try:
            post = extract_single_post(post_el, origin)
        except Exception as e:
            logfire.warn(
                "Skipping malformed post node",
                error=str(e),
                error_type=type(e).__name__,
                element_id=post_el.get("id"),
            )
            continue
        if post is not None and len(post.content) >= MIN_CHARS_PER_POST:
            posts.append(post)

    posts.sort(key=lambda p: p.number)
    return posts


def extract_thread_title(document: BeautifulSoup | Tag) -> str:
    """Thread title from the page heading, then <title>; "" when neither exists."""
    heading = document.select_one(THREAD_TITLE_SELECTOR)
    if heading and heading.get_text().strip():
        return heading.get_text().strip()
    title_el = document.find("title")
    if title_el is None:
        return ""
    title = title_el.get_text().strip()
    if title.endswith(FORUM_TITLE_SUFFIX):
        title = title[: -len(FORUM_TITLE_SUFFIX)]
    return title.strip()


def format_posts_for_prompt(posts: List[Post]) -> str:
    """Render posts as plain lines for a summarization prompt."""
    lines = []
    for post in posts:
        author_label = f"{post.author} (OP)" if post.number == 1 else post.author
        votes_label = f" [👍{post.votes}]" if post.votes else ""
        lines.append(f"#{post.number} {author_label}{votes_label}: {post.content}")
    return "\n\n".join(lines)
