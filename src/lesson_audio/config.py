"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent

SUPPORTED_SAMPLE_RATES = (8000, 16000, 22050, 32000, 44100)
DEFAULT_SAMPLE_RATE = 22050


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Resemble AI streaming synthesis
    resemble_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("RESEMBLE_AI_API_KEY", "resemble_api_key"),
    )
    resemble_stream_endpoint: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://f.cluster.resemble.ai/stream"),
        validation_alias=AliasChoices(
            "RESEMBLE_STREAM_ENDPOINT", "resemble_stream_endpoint"
        ),
    )
    resemble_voice_uuid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("RESEMBLE_VOICE_UUID", "resemble_voice_uuid"),
    )
    resemble_project_uuid: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "RESEMBLE_PROJECT_UUID", "resemble_project_uuid"
        ),
    )
    tts_sample_rate: int = Field(
        default=DEFAULT_SAMPLE_RATE,
        validation_alias=AliasChoices("TTS_SAMPLE_RATE", "tts_sample_rate"),
    )
    tts_precision: Literal["MULAW", "PCM_16", "PCM_32"] = Field(
        default="PCM_16",
        validation_alias=AliasChoices("TTS_PRECISION", "tts_precision"),
    )
    tts_timeout: float = Field(
        default=60.0,
        validation_alias=AliasChoices("TTS_TIMEOUT", "tts_timeout"),
        ge=1,
    )

    # OpenAI-compatible chat completions for plans and lesson scripts
    openai_api_key: Optional[SecretStr] = Field(
        default=None,
        validation_alias=AliasChoices("OPENAI_API_KEY", "openai_api_key"),
    )
    openai_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.openai.com/v1"),
        validation_alias=AliasChoices("OPENAI_BASE_URL", "openai_base_url"),
    )
    openai_model: str = Field(
        default="gpt-4",
        validation_alias=AliasChoices("OPENAI_MODEL", "openai_model"),
    )
    request_timeout: float = Field(
        default=120.0,
        validation_alias=AliasChoices("OPENAI_TIMEOUT", "timeout"),
        ge=1,
    )
    llm_temperature: float = Field(
        default=0.7,
        ge=0,
        le=2,
        validation_alias=AliasChoices("LLM_TEMPERATURE", "llm_temperature"),
    )
    llm_max_tokens: int = Field(
        default=2000,
        ge=1,
        validation_alias=AliasChoices("LLM_MAX_TOKENS", "llm_max_tokens"),
    )

    @field_validator("tts_sample_rate")
    @classmethod
    def _check_sample_rate(cls, value: int) -> int:
        if value not in SUPPORTED_SAMPLE_RATES:
            raise ValueError(
                f"Unsupported sample rate {value}; expected one of {SUPPORTED_SAMPLE_RATES}"
            )
        return value

    @property
    def tts_configured(self) -> bool:
        return bool(
            self.resemble_api_key
            and self.resemble_api_key.get_secret_value()
            and self.resemble_voice_uuid
            and self.resemble_project_uuid
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = [
    "DEFAULT_SAMPLE_RATE",
    "SUPPORTED_SAMPLE_RATES",
    "Settings",
    "get_settings",
]
