"""
Claude API Client

Thin async wrapper around the Anthropic Messages API for the partner
conversations. Transient failures (rate limits, dropped connections) are
retried with exponential backoff; a model that keeps failing hands the
turn to the fallback model once.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from anthropic import AsyncAnthropic, APIConnectionError, APIError, RateLimitError

from app.config import settings

logger = logging.getLogger(__name__)

# Retried in place; other API errors move on to the fallback model
TRANSIENT_ERRORS = (RateLimitError, APIConnectionError)


class ClaudeClientError(Exception):
    """Raised when no reply could be generated."""
    pass


@dataclass
class ClaudeResponse:
    """One generated assistant turn."""
    content: str
    model: str
    input_tokens: int
    output_tokens: int
    stop_reason: str
    latency_ms: float


class ClaudeClient:
    """Async Messages API client with retries and model fallback."""

    _instance: Optional["ClaudeClient"] = None

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        fallback_model: Optional[str] = None,
        max_retries: int = 3,
    ):
        """
        Args:
            api_key: Anthropic API key (defaults to settings)
            model: Primary model (defaults to settings.claude_mediator_model)
            fallback_model: Model tried after the primary one fails
            max_retries: Attempts per model for transient errors

        Raises:
            ClaudeClientError: If no API key is configured
        """
        api_key = api_key or settings.anthropic_api_key
        if not api_key:
            raise ClaudeClientError("ANTHROPIC_API_KEY is not configured")

        self._client = AsyncAnthropic(api_key=api_key)
        self.model = model or settings.claude_mediator_model
        self.fallback_model = fallback_model or settings.claude_fallback_model
        self.max_retries = max_retries

        logger.info(f"ClaudeClient initialized with model={self.model}")

    @classmethod
    def get_instance(cls) -> "ClaudeClient":
        """Get singleton instance."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Drop the singleton (tests and shutdown)."""
        cls._instance = None

    def _models(self, model: Optional[str], use_fallback: bool) -> list[str]:
        primary = model or self.model
        if use_fallback and self.fallback_model and self.fallback_model != primary:
            return [primary, self.fallback_model]
        return [primary]

    async def complete(
        self,
        messages: list[dict],
        system_prompt: Optional[str] = None,
        model: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        use_fallback_on_error: bool = True,
    ) -> ClaudeResponse:
        """
        Generate the next assistant turn of a conversation.

        Args:
            messages: Alternating user/assistant turns, user first
            system_prompt: Partner-specific system prompt
            model: Override of the primary model
            max_tokens: Reply length cap (settings.claude_max_tokens)
            temperature: Sampling temperature (settings.claude_temperature)
            use_fallback_on_error: Try the fallback model on failure

        Returns:
            ClaudeResponse with the reply text

        Raises:
            ClaudeClientError: If every model failed
        """
        params: dict[str, Any] = {
            "messages": messages,
            "max_tokens": max_tokens or settings.claude_max_tokens,
            "temperature": settings.claude_temperature if temperature is None else temperature,
        }
        if system_prompt:
            params["system"] = system_prompt

        last_error: Optional[Exception] = None
        for candidate in self._models(model, use_fallback_on_error):
            start_time = time.time()
            try:
                response = await self._create_with_retry(model=candidate, **params)
            except APIError as e:
                logger.warning(f"Model {candidate} failed: {e}")
                last_error = e
                continue

            return ClaudeResponse(
                content=self._extract_text(response),
                model=candidate,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                stop_reason=response.stop_reason,
                latency_ms=(time.time() - start_time) * 1000,
            )

        raise ClaudeClientError(f"Claude API call failed: {last_error}") from last_error

    @staticmethod
    def _extract_text(response: Any) -> str:
        """Concatenate the text blocks of a response."""
        return "".join(
            block.text
            for block in response.content
            if getattr(block, "type", "text") == "text"
        )

    async def _create_with_retry(self, **params: Any) -> Any:
        """messages.create with exponential backoff on transient errors."""
        for attempt in range(self.max_retries):
            try:
                return await self._client.messages.create(**params)
            except TRANSIENT_ERRORS as e:
                if attempt == self.max_retries - 1:
                    raise
                wait_time = 2 ** attempt
                logger.warning(
                    f"{type(e).__name__} from {params['model']}, "
                    f"retrying in {wait_time}s (attempt {attempt + 1})"
                )
                await asyncio.sleep(wait_time)

    async def close(self) -> None:
        await self._client.close()


async def get_claude_client() -> ClaudeClient:
    """Get Claude client singleton instance."""
    return ClaudeClient.get_instance()


async def close_claude_client() -> None:
    """Close the singleton's HTTP pool, if it was ever created."""
    if ClaudeClient._instance is not None:
        await ClaudeClient._instance.close()
        ClaudeClient.reset_instance()
