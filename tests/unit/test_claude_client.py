"""Tests for the Claude client wrapper."""

import httpx
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

from anthropic import APIConnectionError

from app.infra.claude import ClaudeClient, ClaudeClientError


def _api_response(text: str):
    """Minimal Messages API response."""
    return SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=10, output_tokens=5),
        stop_reason="end_turn",
    )


def _connection_error() -> APIConnectionError:
    return APIConnectionError(
        request=httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    )


class TestClaudeClient:
    """Test retries and model fallback."""

    @pytest.fixture
    def mock_anthropic(self):
        """Patch the Anthropic SDK client."""
        sdk = MagicMock()
        sdk.messages.create = AsyncMock(return_value=_api_response("Hello Alice"))
        sdk.close = AsyncMock()
        with patch("app.infra.claude.AsyncAnthropic", return_value=sdk):
            yield sdk

    @pytest.fixture
    def client(self, mock_anthropic):
        """Client with explicit models and no real key."""
        return ClaudeClient(
            api_key="test-key",
            model="primary-model",
            fallback_model="fallback-model",
            max_retries=2,
        )

    def test_missing_api_key(self):
        """Test a missing key is a client error."""
        with patch("app.infra.claude.settings") as mock_settings:
            mock_settings.anthropic_api_key = ""
            with pytest.raises(ClaudeClientError):
                ClaudeClient()

    @pytest.mark.asyncio
    async def test_complete(self, client, mock_anthropic):
        """Test a successful completion."""
        response = await client.complete(
            messages=[{"role": "user", "content": "hi"}],
            system_prompt="Be kind",
        )

        assert response.content == "Hello Alice"
        assert response.model == "primary-model"
        kwargs = mock_anthropic.messages.create.call_args.kwargs
        assert kwargs["system"] == "Be kind"
        assert kwargs["model"] == "primary-model"

    @pytest.mark.asyncio
    async def test_retry_transient(self, client, mock_anthropic):
        """Test a dropped connection is retried on the same model."""
        mock_anthropic.messages.create.side_effect = [
            _connection_error(),
            _api_response("second try"),
        ]

        with patch("app.infra.claude.asyncio.sleep", AsyncMock()):
            response = await client.complete(messages=[{"role": "user", "content": "hi"}])

        assert response.content == "second try"
        assert response.model == "primary-model"

    @pytest.mark.asyncio
    async def test_fallback_model(self, client, mock_anthropic):
        """Test the fallback model answers when the primary keeps failing."""
        mock_anthropic.messages.create.side_effect = [
            _connection_error(),
            _connection_error(),
            _api_response("from fallback"),
        ]

        with patch("app.infra.claude.asyncio.sleep", AsyncMock()):
            response = await client.complete(messages=[{"role": "user", "content": "hi"}])

        assert response.model == "fallback-model"
        assert response.content == "from fallback"

    @pytest.mark.asyncio
    async def test_all_models_fail(self, client, mock_anthropic):
        """Test exhausting every model raises ClaudeClientError."""
        mock_anthropic.messages.create.side_effect = _connection_error()

        with patch("app.infra.claude.asyncio.sleep", AsyncMock()):
            with pytest.raises(ClaudeClientError):
                await client.complete(messages=[{"role": "user", "content": "hi"}])

        assert mock_anthropic.messages.create.await_count == 4

    @pytest.mark.asyncio
    async def test_no_fallback(self, client, mock_anthropic):
        """Test fallback can be disabled."""
        mock_anthropic.messages.create.side_effect = _connection_error()

        with patch("app.infra.claude.asyncio.sleep", AsyncMock()):
            with pytest.raises(ClaudeClientError):
                await client.complete(
                    messages=[{"role": "user", "content": "hi"}],
                    use_fallback_on_error=False,
                )

        assert mock_anthropic.messages.create.await_count == 2
