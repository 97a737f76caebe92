"""
Configuration management for the Exam Grader.

Uses Pydantic Settings for type-safe configuration loading from environment variables.
All configuration is validated at startup to fail fast on misconfiguration.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ==============================================================================
# Per-request value objects
# ==============================================================================


class ClientConfig(BaseModel):
    """
    Connection settings for one model client.

    Built per grading run or HTTP request; never shared process-wide.
    ``max_retries`` is the transport-level retry count handed to the SDK,
    application-level retries are governed by ``RetryPolicy``.
    """

    model_config = ConfigDict(frozen=True)

    api_key: str = Field(..., min_length=1)
    base_url: str = Field(default="https://api.openai.com/v1")
    model: str = Field(default="gpt-4o", min_length=1)
    timeout: float = Field(default=360.0, gt=0)
    max_retries: int = Field(default=0, ge=0)


class RetryPolicy(BaseModel):
    """Exponential backoff policy for model calls."""

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1)
    base_delay: float = Field(default=2.0, ge=0.0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)
    max_delay: float = Field(default=30.0, ge=0.0)

    def delay_for(self, attempt: int) -> float:
        """Delay in seconds after the given 0-indexed failed attempt."""
        delay = self.base_delay * (self.backoff_multiplier**attempt)
        return min(delay, self.max_delay)

    @classmethod
    def immediate(cls, max_attempts: int = 3) -> "RetryPolicy":
        """A policy that retries without waiting."""
        return cls(max_attempts=max_attempts, base_delay=0.0, max_delay=0.0)


class BatchPolicy(BaseModel):
    """Chunking and throttling for batch grading runs."""

    model_config = ConfigDict(frozen=True)

    batch_size: int = Field(default=3, ge=1)
    delay: float = Field(default=2.0, ge=0.0)
    per_question_fallback: bool = False


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Every variable is prefixed with ``GRADER_`` (e.g. ``GRADER_LLM_API_KEY``).
    """

    model_config = SettingsConfigDict(
        env_prefix="GRADER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Text-generation endpoint
    # ==========================================================================
    llm_api_key: str = Field(
        default="",
        description="API key for the OpenAI-compatible chat-completions endpoint",
    )

    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        description="Base URL of the chat-completions endpoint",
    )

    llm_model: str = Field(
        default="gpt-4o",
        description="Model used for grading and exam parsing",
    )

    llm_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Sampling temperature; kept low to reduce response variance",
    )

    request_timeout: float = Field(
        default=360.0,
        gt=0,
        description="Per-request timeout in seconds",
    )

    # ==========================================================================
    # Retry policy
    # ==========================================================================
    retry_max_attempts: int = Field(default=3, ge=1, le=10)
    retry_base_delay: float = Field(default=2.0, ge=0.0)
    retry_backoff_multiplier: float = Field(default=2.0, ge=1.0)
    retry_max_delay: float = Field(default=30.0, ge=0.0)

    # ==========================================================================
    # Batch grading
    # ==========================================================================
    batch_size: int = Field(
        default=3,
        ge=1,
        description="Number of students graded concurrently per chunk",
    )

    batch_delay: float = Field(
        default=2.0,
        ge=0.0,
        description="Seconds to wait between chunks",
    )

    per_question_fallback: bool = Field(
        default=False,
        description="Re-grade question by question when a whole-exam call fails",
    )

    low_confidence_threshold: float = Field(
        default=60.0,
        ge=0.0,
        le=100.0,
        description="Results below this confidence are flagged for review",
    )

    passing_ratio: float = Field(
        default=0.6,
        gt=0.0,
        le=1.0,
        description="Share of the total score needed to pass an exam",
    )

    # ==========================================================================
    # Exam parsing
    # ==========================================================================
    max_content_length: int = Field(
        default=128_000,
        ge=1000,
        description="Longest exam text sent to the model before compression",
    )

    # ==========================================================================
    # Output
    # ==========================================================================
    output_directory: Path = Field(
        default=Path("./output"),
        description="Directory for the local exam store and reports",
    )

    log_level: str = Field(default="INFO")

    @field_validator("llm_base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        """Ensure base URL doesn't have trailing slash."""
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def client_config(self, api_key: str | None = None, model: str | None = None) -> ClientConfig:
        """Build a per-request client configuration, optionally overriding key and model."""
        return ClientConfig(
            api_key=api_key or self.llm_api_key,
            base_url=self.llm_base_url,
            model=model or self.llm_model,
            timeout=self.request_timeout,
        )

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.retry_max_attempts,
            base_delay=self.retry_base_delay,
            backoff_multiplier=self.retry_backoff_multiplier,
            max_delay=self.retry_max_delay,
        )

    def batch_policy(self) -> BatchPolicy:
        return BatchPolicy(
            batch_size=self.batch_size,
            delay=self.batch_delay,
            per_question_fallback=self.per_question_fallback,
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses LRU cache to ensure settings are only loaded once.
    """
    return Settings()
