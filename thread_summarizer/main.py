"""FastAPI application initialization."""

import os
from contextlib import asynccontextmanager

import logfire
import sentry_sdk
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration

from thread_summarizer.api import health, summaries
from thread_summarizer.config import get_settings
from thread_summarizer.logging_config import setup_logfire
from thread_summarizer.middleware.correlation_id import CorrelationIDMiddleware
from thread_summarizer.services.summary_cache import get_summary_cache

APP_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure observability on startup; drop cached summaries on shutdown."""
    settings = get_settings()

    setup_logfire(app)

    if settings.sentry_dsn:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            environment=settings.env,
            integrations=[FastApiIntegration()],
        )

    logfire.info(
        "Application startup complete",
        default_provider=settings.default_provider,
        model=settings.model_for(settings.default_provider),
        environment=settings.env,
    )

    yield

    get_summary_cache().clear()
    logfire.info("Application shutdown complete")


app = FastAPI(
    title="Forum Thread Summarizer",
    description="Summarizes page ranges of forum threads with batched LLM calls",
    version=APP_VERSION,
    lifespan=lifespan,
)

# Correlation ID middleware (must be first for request tracing)
app.add_middleware(CorrelationIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, tags=["health"])
app.include_router(summaries.router, prefix="/summaries", tags=["summaries"])


@app.get("/")
def root():
    """Root endpoint."""
    settings = get_settings()
    return {
        "message": "Forum Thread Summarizer API",
        "provider": settings.default_provider,
        "model": settings.model_for(settings.default_provider),
        "version": APP_VERSION,
    }


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "thread_summarizer.main:app",
        host="0.0.0.0",
        port=port,
        reload=os.getenv("ENV") == "local",
    )
