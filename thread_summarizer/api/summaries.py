"""Summary endpoints.

Range problems are rejected up front with 422. Everything else the pipeline
reports inside the returned FinalSummary: a failed outcome maps to 502, since
it means the forum or the provider let us down.
"""

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from thread_summarizer.config import get_settings
from thread_summarizer.models.summary_models import FinalSummary, SummaryRequest
from thread_summarizer.services.thread_summary import (
    ThreadSummaryService,
    get_thread_summary_service,
    validate_range,
)

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("", response_model=FinalSummary)
async def create_summary(
    body: SummaryRequest,
    request: Request,
    service: ThreadSummaryService = Depends(get_thread_summary_service),
):
    """Summarize a page range of a thread."""
    correlation_id = getattr(request.state, "correlation_id", None)
    provider = body.provider or get_settings().default_provider

    range_error = validate_range(body.from_page, body.to_page, provider)
    if range_error is not None:
        logger.info(f"Rejected summary range {body.from_page}-{body.to_page}: {range_error}")
        rejected = FinalSummary.failed("", body.from_page, body.to_page, range_error)
        return JSONResponse(status_code=422, content=rejected.model_dump(mode="json"))

    summary = await service.summarize_range(
        body.thread_url, body.from_page, body.to_page, provider=provider
    )
    if summary.is_failed:
        logger.warning(f"Summary failed (correlation_id={correlation_id}): {summary.error}")
        return JSONResponse(status_code=502, content=summary.model_dump(mode="json"))
    return summary
