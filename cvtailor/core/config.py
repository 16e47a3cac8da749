"""Application configuration."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from cvtailor.utils.logging import get_logger

LOGGER = get_logger(__name__)


def find_env_file() -> Optional[Path]:
    """Find .env file in the package directory or the repository root."""
    current_dir = os.path.dirname(os.path.abspath(__file__))

    possible_paths = [
        os.path.join(current_dir, ".env"),
        os.path.join(os.path.dirname(current_dir), ".env"),
        os.path.join(os.path.dirname(os.path.dirname(current_dir)), ".env"),
    ]

    for path_str in possible_paths:
        if os.path.exists(path_str):
            path = Path(path_str)
            LOGGER.info(f"Found .env file at: {path}")
            return path

    LOGGER.debug("No .env file found in expected locations")
    return None


ENV_FILE = find_env_file()


class LLMSettings(BaseSettings):
    """Text-generation provider settings."""

    provider: str = Field(default="openrouter", validation_alias="LLM_PROVIDER")

    gemini_api_key: str = Field(default="", validation_alias="GEMINI_API_KEY")
    gemini_model: str = Field(default="gemini-2.0-flash", validation_alias="GEMINI_MODEL")

    openrouter_api_key: str = Field(default="", validation_alias="OPENROUTER_API_KEY")
    openrouter_api_url: str = Field(default="https://openrouter.ai/api/v1/chat/completions", validation_alias="OPENROUTER_API_URL")
    openrouter_model: str = Field(default="google/gemini-2.0-flash-001", validation_alias="OPENROUTER_MODEL")

    enable_fallback: bool = Field(default=False, validation_alias="ENABLE_LLM_FALLBACK")

    temperature: float = Field(default=0.0, validation_alias="LLM_TEMPERATURE")
    request_timeout_seconds: int = Field(default=90, validation_alias="LLM_REQUEST_TIMEOUT_SECONDS")
    max_retries: int = Field(default=3, validation_alias="LLM_MAX_RETRIES")

    @field_validator("provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        env_prefix="",
    )

    @property
    def api_key(self) -> str:
        """API key of the configured primary provider."""
        if self.provider == "gemini":
            return self.gemini_api_key
        return self.openrouter_api_key

    @property
    def model(self) -> str:
        """Model id of the configured primary provider."""
        if self.provider == "gemini":
            return self.gemini_model
        return self.openrouter_model


class ExtractionSettings(BaseSettings):
    """Stage execution, repair and validation policy."""

    # Additional attempts after the first one
    stage_max_retries: int = Field(default=2, validation_alias="STAGE_MAX_RETRIES")
    stage_timeout_seconds: float = Field(default=120.0, validation_alias="STAGE_TIMEOUT_SECONDS")
    max_source_chars: int = Field(default=60000, validation_alias="MAX_SOURCE_CHARS")

    # Token budgets per stage
    personal_info_tokens: int = Field(default=4096, validation_alias="PERSONAL_INFO_TOKENS")
    work_experience_tokens: int = Field(default=8192, validation_alias="WORK_EXPERIENCE_TOKENS")
    education_skills_tokens: int = Field(default=8192, validation_alias="EDUCATION_SKILLS_TOKENS")
    additional_sections_tokens: int = Field(default=4096, validation_alias="ADDITIONAL_SECTIONS_TOKENS")
    canonical_tokens: int = Field(default=16384, validation_alias="CANONICAL_TOKENS")
    refinement_tokens: int = Field(default=8192, validation_alias="REFINEMENT_TOKENS")
    render_tokens: int = Field(default=32768, validation_alias="RENDER_TOKENS")

    # Regex last-resort extractor, can be disabled per deployment
    enable_partial_fallback: bool = Field(default=True, validation_alias="ENABLE_PARTIAL_FALLBACK")

    # Language-drift policy
    language_allowed_fields: Annotated[List[str], NoDecode] = Field(
        default=["full_name", "name", "location", "institution", "company"],
        validation_alias="LANGUAGE_ALLOWED_FIELDS",
    )
    language_min_violation_length: int = Field(default=10, validation_alias="LANGUAGE_MIN_VIOLATION_LENGTH")

    @field_validator("language_allowed_fields", mode="before")
    @classmethod
    def _split_allowed_fields(cls, value: Any) -> Any:
        """Accept a comma-separated list from the environment."""
        if isinstance(value, str):
            return [part.strip() for part in value.split(",") if part.strip()]
        return value

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
        env_prefix="",
    )


class Settings(BaseSettings):
    """Unified application settings with nested models."""

    app_name: str = Field(default="CV Tailor", validation_alias="APP_NAME")
    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    llm: LLMSettings = Field(default_factory=lambda: LLMSettings())
    extraction: ExtractionSettings = Field(default_factory=lambda: ExtractionSettings())

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE) if ENV_FILE else None,
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """Get the cached application settings instance.

    Returns:
        Settings: Application settings loaded from environment
    """
    return Settings()
