"""Application-wide constants.

This module centralizes all magic numbers and configuration constants
to ensure a single source of truth and easier maintenance.

Constants are organized by category. Values that operators may want to
tune are also exposed through Settings (see config.py).
"""

# =============================================================================
# Forum / Page Source
# =============================================================================

# Origin used to resolve relative avatar and page URLs
FORUM_ORIGIN = "https://www.mediavida.com"

# Directory holding avatar images referenced by bare filename
FORUM_AVATAR_PATH = "/img/users/avatar/"

# Query parameter used for pagination on filtered (?u=) thread views
PAGE_QUERY_PARAM = "pagina"

# Suffix appended by the forum to <title>
FORUM_TITLE_SUFFIX = " - Mediavida"

# =============================================================================
# Post Extraction
# =============================================================================

# Posts whose cleaned content is shorter than this are noise and are dropped
MIN_CHARS_PER_POST = 40

# Posts longer than this are hard-cut and get ELLIPSIS appended
MAX_CHARS_PER_POST = 1000

# Marker appended to truncated post content
ELLIPSIS = "..."

# Author used when a post has no author node
ANONYMOUS_AUTHOR = "Anónimo"

# Text with fewer non-URL characters than this is treated as media-only
MIN_MEANINGFUL_TEXT_CHARS = 3

# =============================================================================
# Page Fetching
# =============================================================================

# Max pages that can be requested in a single multi-page summary
MAX_MULTI_PAGES = 30

# Max pages per request when using the Groq provider (tokens-per-minute limits)
GROQ_MAX_MULTI_PAGES = 20

# Number of page fetches in flight at once
FETCH_CONCURRENCY = 4

# Delay between fetch windows to be polite to the forum (seconds)
FETCH_WINDOW_DELAY_SECONDS = 0.2

# Default timeout for page HTTP requests (seconds)
DEFAULT_HTTP_TIMEOUT_SECONDS = 20.0

# =============================================================================
# Summarization Batching
# =============================================================================

GEMINI_PAGES_PER_BATCH = 8
GEMINI_MAX_CHARS_PER_BATCH = 40000

# Groq free tier has tight TPM limits, so batches are smaller
GROQ_PAGES_PER_BATCH = 4
GROQ_MAX_CHARS_PER_BATCH = 16000

# Ranges of at least this many pages use the large-range Groq limits
GROQ_LARGE_RANGE_THRESHOLD = 20
GROQ_PAGES_PER_BATCH_LARGE_RANGE = 3
GROQ_MAX_CHARS_PER_BATCH_LARGE_RANGE = 12000

# Marker appended when a batch's formatted posts exceed the char budget
BATCH_TRUNCATION_MARKER = "\n[...contenido truncado]"

# Number of entries listed in each section of the thread stats block
STATS_TOP_N = 10

# =============================================================================
# Prompt Scaling
# =============================================================================

# Upper bound on requested output size regardless of page count
MAX_KEY_POINTS_CEILING = 15
MAX_PARTICIPANTS_CEILING = 16

# Default output language for summaries
DEFAULT_SUMMARY_LANGUAGE = "español"

# =============================================================================
# Text Generation
# =============================================================================

# Retries on rate limit errors (attempts = retries + 1)
LLM_RATE_LIMIT_RETRIES = 3

# Base delay for exponential backoff on rate limit errors: 5s, 10s, 20s
LLM_RATE_LIMIT_BASE_DELAY_SECONDS = 5.0

# Default models per provider (pydantic_ai model strings)
DEFAULT_GEMINI_MODEL = "google-gla:gemini-2.5-flash"
DEFAULT_GROQ_MODEL = "groq:moonshotai/kimi-k2-instruct"

# =============================================================================
# Avatar Hydration
# =============================================================================

# Both names must be at least this long for a partial (substring) match
AVATAR_PARTIAL_MATCH_MIN_LENGTH = 4

# =============================================================================
# Cache Configuration
# =============================================================================

# TTL for cached summaries (seconds) - 5 minutes
SUMMARY_CACHE_TTL_SECONDS = 300
