"""
LLM client for OpenAI-compatible chat-completions endpoints.

Provides an async wrapper around the OpenAI SDK with retry logic,
exponential backoff and multimodal (image) prompts.
"""

import asyncio
import logging
from typing import Any, Sequence

from openai import APIConnectionError, APIStatusError, AsyncOpenAI, RateLimitError

from exam_grader.config import ClientConfig, RetryPolicy

logger = logging.getLogger(__name__)


class LLMError(Exception):
    """Raised when text generation fails after all retries."""

    def __init__(self, message: str, cause: Exception | None = None, retryable: bool = False):
        self.cause = cause
        self.retryable = retryable
        super().__init__(message)


class LLMClient:
    """
    Client for a hosted text-generation endpoint.

    One client is built per grading run or HTTP request from an explicit
    ``ClientConfig``. Transient failures (rate limits, connection errors,
    timeouts, 5xx) are retried following the ``RetryPolicy``.
    """

    def __init__(
        self,
        config: ClientConfig,
        retry_policy: RetryPolicy | None = None,
        temperature: float = 0.2,
        client: Any = None,
    ):
        """
        Initialize the LLM client.

        Args:
            config: Endpoint, credentials and timeout for this client.
            retry_policy: Backoff policy. Defaults to three attempts.
            temperature: Default sampling temperature.
            client: Pre-built chat client exposing ``chat.completions.create``.
        """
        self._config = config
        self._retry_policy = retry_policy or RetryPolicy()
        self._temperature = temperature
        self._client = client or AsyncOpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=config.max_retries,
        )

    @property
    def model(self) -> str:
        return self._config.model

    async def __aenter__(self) -> "LLMClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        close = getattr(self._client, "close", None)
        if close is not None:
            await close()

    async def generate(
        self,
        prompt: str,
        *,
        system_prompt: str | None = None,
        images: Sequence[str] | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        """
        Generate a response from the model.

        Args:
            prompt: User message with the actual request.
            system_prompt: Optional system message defining the model's role.
            images: Image URLs or base64 data URLs sent alongside the prompt.
            temperature: Override temperature.
            max_tokens: Maximum tokens in response.

        Returns:
            The generated text.

        Raises:
            LLMError: If generation fails after all retries.
        """
        messages: list[dict[str, Any]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})

        if images:
            content: list[dict[str, Any]] = [{"type": "text", "text": prompt}]
            content.extend({"type": "image_url", "image_url": {"url": url}} for url in images)
            messages.append({"role": "user", "content": content})
        else:
            messages.append({"role": "user", "content": prompt})

        temp = temperature if temperature is not None else self._temperature
        return await self._call_with_retry(messages, temp, max_tokens)

    async def _call_with_retry(
        self,
        messages: list[dict[str, Any]],
        temperature: float,
        max_tokens: int | None,
    ) -> str:
        """
        Call the API with exponential backoff retry.

        Raises:
            LLMError: If all attempts fail or the error is not retryable.
        """
        attempts = self._retry_policy.max_attempts
        kwargs: dict[str, Any] = {
            "model": self._config.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens

        for attempt in range(attempts):
            try:
                response = await self._client.chat.completions.create(**kwargs)

                if response.choices and response.choices[0].message.content:
                    return response.choices[0].message.content

                raise LLMError("Empty response from LLM")

            except LLMError:
                raise

            except (RateLimitError, APIConnectionError) as e:
                # APITimeoutError is an APIConnectionError
                reason = "Rate limit exceeded" if isinstance(e, RateLimitError) else "Connection failed"
                await self._backoff_or_raise(attempt, reason, e)

            except APIStatusError as e:
                # Don't retry on client errors (4xx except 429)
                if 400 <= e.status_code < 500:
                    raise LLMError(f"API error: {e.message}", cause=e, retryable=False) from e
                await self._backoff_or_raise(attempt, f"API error {e.status_code}", e)

            except Exception as e:
                raise LLMError(f"Unexpected error: {e}", cause=e, retryable=False) from e

        raise LLMError(f"Failed after {attempts} attempts")

    async def _backoff_or_raise(self, attempt: int, reason: str, error: Exception) -> None:
        attempts = self._retry_policy.max_attempts
        if attempt + 1 >= attempts:
            raise LLMError(
                f"{reason} after {attempts} attempts",
                cause=error,
                retryable=True,
            ) from error

        delay = self._retry_policy.delay_for(attempt)
        logger.warning(
            "%s (attempt %d/%d), retrying in %.1fs", reason, attempt + 1, attempts, delay
        )
        await asyncio.sleep(delay)

    async def health_check(self) -> bool:
        """
        Check if the API is reachable.

        Returns:
            True if API is healthy, False otherwise.
        """
        try:
            response = await self._client.chat.completions.create(
                model=self._config.model,
                messages=[{"role": "user", "content": "ping"}],
                max_tokens=5,
            )
            return bool(response.choices)
        except Exception as e:
            logger.warning("Health check failed: %s", e)
            return False
