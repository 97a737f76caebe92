"""
Unit tests for the LLM client and its configuration.

The OpenAI SDK is replaced by a stub exposing ``chat.completions.create``.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import httpx
import openai
import pytest
from pydantic import ValidationError

from exam_grader.config import BatchPolicy, ClientConfig, RetryPolicy, Settings
from exam_grader.grading import LLMClient, LLMError


def _request() -> httpx.Request:
    return httpx.Request("POST", "https://test.api.local/v1/chat/completions")


def _rate_limit() -> openai.RateLimitError:
    return openai.RateLimitError(
        "Too many requests", response=httpx.Response(429, request=_request()), body=None
    )


def _status_error(status_code: int) -> openai.APIStatusError:
    return openai.APIStatusError(
        f"HTTP {status_code}", response=httpx.Response(status_code, request=_request()), body=None
    )


@pytest.fixture
def config() -> ClientConfig:
    return ClientConfig(api_key="test-key", base_url="https://test.api.local/v1", model="test-model")


@pytest.fixture
def client(config: ClientConfig, openai_stub: SimpleNamespace) -> LLMClient:
    return LLMClient(config, RetryPolicy.immediate(), temperature=0.2, client=openai_stub)


class TestLLMClient:
    """Tests for LLMClient."""

    @pytest.mark.anyio
    async def test_generate(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test a plain prompt with a system message."""
        openai_stub.chat.completions.create.return_value = chat_response("hello")

        text = await client.generate("Say hi", system_prompt="Be brief")

        assert text == "hello"
        kwargs = openai_stub.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0.2
        assert kwargs["messages"] == [
            {"role": "system", "content": "Be brief"},
            {"role": "user", "content": "Say hi"},
        ]
        assert "max_tokens" not in kwargs

    @pytest.mark.anyio
    async def test_generate_with_images(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test images are sent as image_url content parts after the text."""
        openai_stub.chat.completions.create.return_value = chat_response("[]")

        await client.generate("Parse this", images=["data:image/png;base64,AAAA"], temperature=0.0)

        kwargs = openai_stub.chat.completions.create.call_args.kwargs
        assert kwargs["temperature"] == 0.0
        assert kwargs["messages"][-1]["content"] == [
            {"type": "text", "text": "Parse this"},
            {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}},
        ]

    @pytest.mark.anyio
    async def test_retries_rate_limit(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test rate limits are retried until success."""
        openai_stub.chat.completions.create.side_effect = [_rate_limit(), chat_response("ok")]

        assert await client.generate("hi") == "ok"
        assert openai_stub.chat.completions.create.await_count == 2

    @pytest.mark.anyio
    async def test_retries_connection_error(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test connection failures are retried."""
        openai_stub.chat.completions.create.side_effect = [
            openai.APIConnectionError(request=_request()),
            openai.APITimeoutError(request=_request()),
            chat_response("ok"),
        ]

        assert await client.generate("hi") == "ok"
        assert openai_stub.chat.completions.create.await_count == 3

    @pytest.mark.anyio
    async def test_gives_up_after_max_attempts(self, client: LLMClient, openai_stub) -> None:
        """Test exhausting retries raises a retryable LLMError."""
        openai_stub.chat.completions.create.side_effect = [_rate_limit() for _ in range(3)]

        with pytest.raises(LLMError, match="after 3 attempts") as exc_info:
            await client.generate("hi")

        assert exc_info.value.retryable
        assert openai_stub.chat.completions.create.await_count == 3

    @pytest.mark.anyio
    async def test_client_error_not_retried(self, client: LLMClient, openai_stub) -> None:
        """Test 4xx responses fail immediately."""
        openai_stub.chat.completions.create.side_effect = [_status_error(400)]

        with pytest.raises(LLMError, match="API error") as exc_info:
            await client.generate("hi")

        assert not exc_info.value.retryable
        assert openai_stub.chat.completions.create.await_count == 1

    @pytest.mark.anyio
    async def test_server_error_retried(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test 5xx responses are retried."""
        openai_stub.chat.completions.create.side_effect = [_status_error(503), chat_response("ok")]

        assert await client.generate("hi") == "ok"

    @pytest.mark.anyio
    async def test_empty_response(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test an empty completion is an error, not an empty string."""
        openai_stub.chat.completions.create.return_value = chat_response(None)

        with pytest.raises(LLMError, match="Empty response"):
            await client.generate("hi")

    @pytest.mark.anyio
    async def test_backoff_delays(self, config: ClientConfig, openai_stub, chat_response) -> None:
        """Test waits follow the retry policy between attempts."""
        policy = RetryPolicy(max_attempts=3, base_delay=2.0, backoff_multiplier=2.0)
        client = LLMClient(config, policy, client=openai_stub)
        openai_stub.chat.completions.create.side_effect = [
            _rate_limit(),
            _rate_limit(),
            chat_response("ok"),
        ]

        with patch("exam_grader.grading.llm_client.asyncio.sleep", new=AsyncMock()) as sleep:
            assert await client.generate("hi") == "ok"

        assert [c.args[0] for c in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.anyio
    async def test_health_check(self, client: LLMClient, openai_stub, chat_response) -> None:
        """Test health check reports reachability without raising."""
        openai_stub.chat.completions.create.return_value = chat_response("pong")
        assert await client.health_check() is True

        openai_stub.chat.completions.create.side_effect = _status_error(401)
        assert await client.health_check() is False

    @pytest.mark.anyio
    async def test_async_context_closes_client(self, config: ClientConfig) -> None:
        """Test leaving the context closes the underlying SDK client."""
        sdk = SimpleNamespace(close=AsyncMock())

        async with LLMClient(config, client=sdk) as client:
            assert client.model == "test-model"

        sdk.close.assert_awaited_once()


class TestRetryPolicy:
    """Tests for RetryPolicy."""

    def test_exponential_delays(self) -> None:
        policy = RetryPolicy(base_delay=2.0, backoff_multiplier=2.0, max_delay=30.0)

        assert [policy.delay_for(i) for i in range(5)] == [2.0, 4.0, 8.0, 16.0, 30.0]

    def test_immediate(self) -> None:
        policy = RetryPolicy.immediate(max_attempts=5)

        assert policy.max_attempts == 5
        assert policy.delay_for(3) == 0.0


class TestSettings:
    """Tests for Settings."""

    def test_trailing_slash_stripped(self, test_settings: Settings) -> None:
        assert test_settings.llm_base_url == "https://test.api.local/v1"

    def test_client_config_overrides(self, test_settings: Settings) -> None:
        config = test_settings.client_config(api_key="per-request", model="other-model")

        assert config.api_key == "per-request"
        assert config.model == "other-model"
        assert config.base_url == "https://test.api.local/v1"
        assert config.timeout == test_settings.request_timeout

    def test_client_config_defaults(self, test_settings: Settings) -> None:
        config = test_settings.client_config()

        assert config.api_key == "test-api-key-for-testing"
        assert config.model == "test-model"

    def test_batch_policy(self, test_settings: Settings) -> None:
        assert test_settings.batch_policy() == BatchPolicy(batch_size=3, delay=0.0)

    def test_env_prefix(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GRADER_LLM_MODEL", "env-model")
        monkeypatch.setenv("GRADER_BATCH_SIZE", "5")

        settings = Settings(_env_file=None)

        assert settings.llm_model == "env-model"
        assert settings.batch_size == 5

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, log_level="LOUD")

    def test_missing_api_key_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(api_key="")
