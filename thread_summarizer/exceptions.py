"""Domain exceptions for the summarization pipeline."""


class ThreadSummarizerError(Exception):
    """Base class for pipeline errors."""


class PageFetchError(ThreadSummarizerError):
    """A single thread page could not be retrieved or parsed."""

    def __init__(self, page_number: int, message: str):
        self.page_number = page_number
        super().__init__(f"Failed to fetch page {page_number}: {message}")


class ResponseParseError(ThreadSummarizerError):
    """A provider response did not contain a usable summary object."""


class SummarizationError(ThreadSummarizerError):
    """The run produced no usable evidence (no pages, or every batch failed)."""

    def __init__(self, message: str, failed_batches: list[int] | None = None):
        self.failed_batches = failed_batches or []
        super().__init__(message)
