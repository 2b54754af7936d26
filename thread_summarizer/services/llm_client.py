"""Text-generation client backed by PydanticAI agents."""

import asyncio
import logging
import time
from typing import Protocol

import logfire
from pydantic_ai import Agent
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from thread_summarizer.config import Provider, get_settings
from thread_summarizer.constants import (
    LLM_RATE_LIMIT_BASE_DELAY_SECONDS,
    LLM_RATE_LIMIT_RETRIES,
)

logger = logging.getLogger(__name__)

_RATE_LIMIT_MARKERS = ("429", "rate limit", "rate_limit", "tpm", "too many requests")


class TextGenerator(Protocol):
    """Turns a prompt into completion text for a given provider."""

    async def generate(self, provider: Provider, prompt: str) -> str: ...


def is_rate_limit_error(error: BaseException) -> bool:
    """True if the error looks like a provider rate limit (HTTP 429 / TPM)."""
    status_code = getattr(error, "status_code", None)
    if status_code == 429:
        return True
    message = str(error).lower()
    return any(marker in message for marker in _RATE_LIMIT_MARKERS)


class TextGenerationClient:
    """
    Generates summaries through PydanticAI, one plain-text agent per provider.

    Rate limit errors are retried with exponential backoff
    (5s, 10s, 20s by default); any other error propagates to the caller.
    """

    def __init__(
        self,
        models: dict[str, str] | None = None,
        max_retries: int = LLM_RATE_LIMIT_RETRIES,
        base_delay_seconds: float = LLM_RATE_LIMIT_BASE_DELAY_SECONDS,
    ):
        """
        Initialize the client.

        Args:
            models: Provider -> pydantic_ai model string. Defaults to settings
            max_retries: Retries after a rate limit error
            base_delay_seconds: First backoff delay; doubles on each retry
        """
        if models is None:
            settings = get_settings()
            models = {
                "gemini": settings.model_for("gemini"),
                "groq": settings.model_for("groq"),
            }
        self.models = models
        self.max_retries = max_retries
        self.base_delay_seconds = base_delay_seconds
        self._agents: dict[str, Agent] = {}

    def model_name(self, provider: Provider) -> str:
        try:
            return self.models[provider]
        except KeyError:
            raise ValueError(f"No model configured for provider '{provider}'") from None

    def _agent_for(self, provider: Provider) -> Agent:
        # Built lazily so a provider's SDK is only needed once it is used
        agent = self._agents.get(provider)
        if agent is None:
            agent = Agent(self.model_name(provider), output_type=str, retries=1)
            self._agents[provider] = agent
            logger.info(f"Text generation agent created for {provider}: {self.model_name(provider)}")
        return agent

    def _log_retry(self, provider: Provider, retry_state: RetryCallState) -> None:
        logfire.warn(
            "Rate limited by provider, retrying",
            provider=provider,
            attempt=retry_state.attempt_number,
            max_attempts=self.max_retries + 1,
            delay_seconds=retry_state.next_action.sleep if retry_state.next_action else None,
        )

    async def generate(self, provider: Provider, prompt: str) -> str:
        """
        Run one prompt against the provider's model.

        Args:
            provider: Provider identifier ("gemini" or "groq")
            prompt: Full prompt text

        Returns:
            Raw completion text
        """
        agent = self._agent_for(provider)
        retrying = AsyncRetrying(
            retry=retry_if_exception(is_rate_limit_error),
            wait=wait_exponential(multiplier=self.base_delay_seconds),
            stop=stop_after_attempt(self.max_retries + 1),
            before_sleep=lambda state: self._log_retry(provider, state),
            sleep=asyncio.sleep,
            reraise=True,
        )
        start_time = time.time()
        try:
            async for attempt in retrying:
                with attempt:
                    start_time = time.time()
                    result = await agent.run(prompt)
        except Exception as e:
            elapsed = time.time() - start_time
            logfire.error(
                "Text generation failed",
                provider=provider,
                model=self.model_name(provider),
                error=str(e),
                error_type=type(e).__name__,
                attempt=retrying.statistics.get("attempt_number", 1),
                response_time_ms=elapsed * 1000,
            )
            raise

        output = result.output
        elapsed = time.time() - start_time
        logfire.info(
            "Text generation completed",
            provider=provider,
            model=self.model_name(provider),
            prompt_length=len(prompt),
            response_length=len(output),
            response_time_ms=elapsed * 1000,
        )
        return output


# Factory function for dependency injection
def get_text_generation_client() -> TextGenerationClient:
    """Get a text generation client configured from settings."""
    return TextGenerationClient()
