"""Application configuration using environment variables."""

from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, AnyHttpUrl, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

# Resolve the project root once so that `.env` is discovered regardless of CWD
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent


class Settings(BaseSettings):
    """Load configuration from environment variables and `.env`."""

    model_config = SettingsConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ElevenLabs synthesis profile (one fixed voice per utterance)
    elevenlabs_api_key: SecretStr | None = Field(
        default=None,
        validation_alias=AliasChoices("ELEVENLABS_API_KEY", "elevenlabs_api_key"),
    )
    elevenlabs_base_url: AnyHttpUrl = Field(
        default_factory=lambda: AnyHttpUrl("https://api.elevenlabs.io/v1/text-to-speech"),
        validation_alias=AliasChoices("ELEVENLABS_BASE_URL", "elevenlabs_base_url"),
    )
    voice_id: str = Field(
        default="6WKnjxyhfi8k86ffrkFz",
        validation_alias=AliasChoices("NARRATION_VOICE_ID", "voice_id"),
    )
    model_id: str = Field(
        default="eleven_multilingual_v2",
        validation_alias=AliasChoices("NARRATION_MODEL_ID", "model_id"),
    )
    stability: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("NARRATION_STABILITY", "stability"),
    )
    similarity_boost: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        validation_alias=AliasChoices("NARRATION_SIMILARITY_BOOST", "similarity_boost"),
    )
    request_timeout: float = Field(
        default=30.0,
        ge=1,
        validation_alias=AliasChoices("NARRATION_TIMEOUT", "request_timeout"),
    )

    # Text preparation
    words_per_minute: int = Field(
        default=200,
        ge=1,
        validation_alias=AliasChoices("NARRATION_WORDS_PER_MINUTE", "words_per_minute"),
    )
    citation_labels: list[str] = Field(
        default_factory=lambda: ["출처", "source"],
        validation_alias=AliasChoices(
            "NARRATION_CITATION_LABELS",
            "citation_labels",
        ),
        description="Labels that introduce a trailing citation URL, e.g. 'source: https://...'.",
    )
    min_paragraph_chars: int = Field(
        default=2,
        ge=1,
        validation_alias=AliasChoices(
            "NARRATION_MIN_PARAGRAPH_CHARS",
            "min_paragraph_chars",
        ),
    )

    # Labels surfaced to the article view
    start_label: str = Field(
        default="Listen to this article",
        validation_alias=AliasChoices("NARRATION_START_LABEL", "start_label"),
    )
    stop_label: str = Field(
        default="Stop listening",
        validation_alias=AliasChoices("NARRATION_STOP_LABEL", "stop_label"),
    )
    reading_time_format: str = Field(
        default="{minutes} min read",
        validation_alias=AliasChoices(
            "NARRATION_READING_TIME_FORMAT",
            "reading_time_format",
        ),
    )

    # Playback layer
    player_backend: Literal["websocket", "local"] = Field(
        default="websocket",
        validation_alias=AliasChoices("NARRATION_PLAYER", "player_backend"),
    )
    player_command: Optional[list[str]] = Field(
        default=None,
        validation_alias=AliasChoices("NARRATION_PLAYER_COMMAND", "player_command"),
        description="Explicit local player argv; the audio file path is appended.",
    )
    audio_temp_dir: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("NARRATION_AUDIO_DIR", "audio_temp_dir"),
    )

    logging_settings_path: Path = Field(
        default_factory=lambda: PROJECT_ROOT / "logging_settings.conf",
        validation_alias=AliasChoices("LOGGING_SETTINGS_PATH", "logging_settings_path"),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached `Settings` instance."""

    return Settings()  # pyright: ignore[reportCallIssue]


__all__ = ["Settings", "get_settings"]
