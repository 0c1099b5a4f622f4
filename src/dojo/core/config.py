"""Configuration for DOJO using environment variables."""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Environment Variables:
        LLM_API_KEY: API key for the reasoning service (required for live turns)
        LLM_BASE_URL: Base URL for the OpenAI-compatible API
        LLM_MODEL: Model name to use
        DOJO_DB_PATH: Path to SQLite database (default: ./data/dojo.db)
        DOJO_LOG_LEVEL: Logging level (default: INFO)
        DOJO_LOCK_TTL_SECONDS: Age after which a session lock is stale
        DOJO_MAX_TOOL_ROUNDS: Reasoning rounds allowed per turn
        DOJO_MAX_OUTPUT_TOKENS: Output token budget per round
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # LLM Configuration
    llm_api_key: str = Field(
        default="",
        validation_alias="LLM_API_KEY",
        description="API key for the reasoning service",
    )
    llm_base_url: str = Field(
        default="https://api.openai.com/v1",
        validation_alias="LLM_BASE_URL",
        description="Base URL for the LLM API (OpenAI or compatible)",
    )
    llm_model: str = Field(
        default="gpt-4o-mini",
        validation_alias="LLM_MODEL",
        description="Model name to use",
    )

    # Database Configuration
    db_path: Path = Field(
        default=Path("./data/dojo.db"),
        validation_alias="DOJO_DB_PATH",
        description="Path to SQLite database",
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        validation_alias="DOJO_LOG_LEVEL",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )

    # Turn processing
    lock_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        validation_alias="DOJO_LOCK_TTL_SECONDS",
        description="Seconds before a held session lock is considered stale",
    )
    max_tool_rounds: int = Field(
        default=5,
        ge=1,
        validation_alias="DOJO_MAX_TOOL_ROUNDS",
        description="Maximum reasoning rounds per turn",
    )
    max_output_tokens: int = Field(
        default=4096,
        ge=1,
        validation_alias="DOJO_MAX_OUTPUT_TOKENS",
        description="Output token budget per reasoning round",
    )

    @property
    def log_level_int(self) -> int:
        """Get log level as integer for logging module."""
        return getattr(logging, self.log_level.upper(), logging.INFO)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def get_llm_client():
    """Get configured async OpenAI client for the reasoning service.

    Returns:
        AsyncOpenAI client configured for the current provider

    Raises:
        ValueError: If LLM_API_KEY is not set
    """
    from openai import AsyncOpenAI

    settings = get_settings()
    if not settings.llm_api_key:
        raise ValueError(
            "LLM_API_KEY environment variable is required. "
            "Set it to your API key for OpenAI or a compatible provider."
        )

    return AsyncOpenAI(
        api_key=settings.llm_api_key,
        base_url=settings.llm_base_url,
    )
