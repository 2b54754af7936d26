"""Summary models: provider output shape, scaled limits and final result."""

import re
from dataclasses import dataclass
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator

from thread_summarizer.config import Provider

# Echo of the "... (hasta N ...)" line in the output template
_TEMPLATE_PLACEHOLDER = re.compile(r"^\.\.\.\s*\(hasta\b", re.IGNORECASE)


@dataclass(frozen=True)
class ScaledLimits:
    """Output-size limits for one run, derived from its page count."""

    max_key_points: int
    max_participants: int


class Participant(BaseModel):
    """A notable thread participant and what they contributed."""

    name: str = Field(..., min_length=1)
    contribution: str = ""
    avatar_url: str | None = None


class BatchSummary(BaseModel):
    """
    Structured summary of one batch of pages (or of the fused meta step).

    Validates the JSON object returned by the provider; anything that does
    not fit this shape is rejected rather than partially accepted.
    """

    model_config = ConfigDict(populate_by_name=True)

    topic: str = Field(..., min_length=1)
    key_points: list[str] = Field(default_factory=list, alias="keyPoints")
    participants: list[Participant] = Field(default_factory=list)
    status: str = ""

    @field_validator("key_points", mode="before")
    @classmethod
    def _drop_blank_key_points(cls, value):
        if not isinstance(value, list):
            return value
        return [
            item
            for item in value
            if not isinstance(item, str)
            or (item.strip() and not _TEMPLATE_PLACEHOLDER.match(item.strip()))
        ]

    @field_validator("participants", mode="before")
    @classmethod
    def _coerce_participants(cls, value):
        # Providers sometimes return bare names, or echo the "... (hasta N)"
        # placeholder from the output template as a trailing string.
        if not isinstance(value, list):
            return value
        coerced = []
        for item in value:
            if isinstance(item, str):
                name = item.strip()
                if name and not _TEMPLATE_PLACEHOLDER.match(name):
                    coerced.append({"name": name})
            else:
                coerced.append(item)
        return coerced

    def clipped(self, limits: ScaledLimits) -> "BatchSummary":
        """Return a copy whose lists respect the run's scaled limits."""
        return self.model_copy(
            update={
                "key_points": self.key_points[: limits.max_key_points],
                "participants": self.participants[: limits.max_participants],
            }
        )


class SummaryOutcome(str, Enum):
    """Whether a summary covers everything requested."""

    COMPLETE = "complete"
    PARTIAL = "partial"
    FAILED = "failed"


class FinalSummary(BaseModel):
    """Final multi-page summary plus the bookkeeping needed to report omissions."""

    topic: str = ""
    key_points: list[str] = Field(default_factory=list)
    participants: list[Participant] = Field(default_factory=list)
    status: str = ""

    title: str = ""
    total_posts_analyzed: int = 0
    total_unique_authors: int = 0
    pages_analyzed: int = 0
    page_range: str = ""
    fetch_errors: list[int] = Field(default_factory=list)
    failed_batches: list[int] = Field(default_factory=list)
    total_batches: int = 0
    outcome: SummaryOutcome = SummaryOutcome.COMPLETE
    generation_ms: float | None = None
    model_used: str | None = None
    error: str | None = None

    @property
    def is_failed(self) -> bool:
        return self.outcome == SummaryOutcome.FAILED

    @classmethod
    def failed(
        cls, title: str, from_page: int, to_page: int, error: str
    ) -> "FinalSummary":
        """Build a failed result carrying a user-facing error message."""
        return cls(
            title=title,
            page_range=f"{from_page}-{to_page}",
            outcome=SummaryOutcome.FAILED,
            error=error,
        )


class SummaryRequest(BaseModel):
    """Request body for POST /summaries."""

    thread_url: str = Field(..., min_length=1, description="URL of any page of the thread")
    from_page: int = Field(..., ge=1, description="First page (inclusive)")
    to_page: int = Field(..., ge=1, description="Last page (inclusive)")
    provider: Provider | None = Field(
        default=None, description="Text-generation provider; defaults to settings"
    )
