# voiceover/config.py
"""
Configuration for the VoiceOver bot.

All configuration flows through this module. Values are loaded from environment
variables (optionally via a .env file) and validated with Pydantic. The two
credentials are hard preconditions: if either is missing, construction raises
``pydantic.ValidationError`` and the entry point exits before any network
connection is attempted.
"""

from __future__ import annotations

from pathlib import Path
from typing import Literal, Optional

from pydantic import AliasChoices, Field, ValidationError, model_validator
from pydantic_settings import BaseSettings

# Resolve .env relative to the project root (one level above voiceover/ package),
# so the config works regardless of the user's current working directory.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_ENV_FILE = _PROJECT_ROOT / ".env"

DEFAULT_GEMINI_MODEL: str = "gemini-2.5-pro-preview-05-06"


def _strip_wrapping_quotes(value: str) -> str:
    """Remove one layer of matching quotes that .env editors like to add."""
    token = value.strip()
    if len(token) >= 2 and token[0] == token[-1] and token[0] in ("'", '"'):
        token = token[1:-1].strip()
    return token


class TelegramConfig(BaseSettings):
    """Configuration for the Telegram bot transport."""

    bot_token: str = Field(..., alias="BOT_TOKEN")
    # Maximum concurrent updates PTB will process in parallel.
    concurrent_updates: int = Field(64, alias="TELEGRAM_CONCURRENT_UPDATES")
    drop_pending_updates: bool = Field(False, alias="TELEGRAM_DROP_PENDING_UPDATES")

    model_config = {
        "env_file": _ENV_FILE,
        "extra": "ignore",
        "populate_by_name": True,
        "env_ignore_empty": True,
    }

    @model_validator(mode="after")
    def normalize_limits(self) -> "TelegramConfig":
        self.bot_token = _strip_wrapping_quotes(self.bot_token)
        if not self.bot_token:
            raise ValueError("BOT_TOKEN is empty")
        self.concurrent_updates = max(1, int(self.concurrent_updates))
        return self


class GeminiConfig(BaseSettings):
    """Configuration for the Gemini transcription backend."""

    api_key: str = Field(
        ...,
        validation_alias=AliasChoices("GOOGLE_GENERATIVE_AI_API_KEY", "GEMINI_API_KEY"),
    )
    model: str = Field(DEFAULT_GEMINI_MODEL, alias="GEMINI_MODEL_ID")
    timeout_seconds: float = Field(60.0, alias="VOICEOVER_TRANSCRIPTION_TIMEOUT")

    model_config = {
        "env_file": _ENV_FILE,
        "extra": "ignore",
        "populate_by_name": True,
        "env_ignore_empty": True,
    }

    @model_validator(mode="after")
    def normalize_limits(self) -> "GeminiConfig":
        self.api_key = _strip_wrapping_quotes(self.api_key)
        if not self.api_key:
            raise ValueError("GOOGLE_GENERATIVE_AI_API_KEY is empty")
        self.model = self.model.strip() or DEFAULT_GEMINI_MODEL
        self.timeout_seconds = max(1.0, float(self.timeout_seconds))
        return self


class PipelineConfig(BaseSettings):
    """Retry, typing-indicator and admission settings for the voice pipeline."""

    retry_attempts: int = Field(3, alias="VOICEOVER_RETRY_ATTEMPTS")
    retry_delay: float = Field(1.0, alias="VOICEOVER_RETRY_DELAY")
    typing_interval: float = Field(6.0, alias="VOICEOVER_TYPING_INTERVAL")
    # 0 = unbounded; any positive value caps in-flight download+transcription work.
    max_concurrent: int = Field(0, alias="VOICEOVER_MAX_CONCURRENT_TRANSCRIPTIONS")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "PipelineConfig":
        self.retry_attempts = max(1, int(self.retry_attempts))
        self.retry_delay = max(0.0, float(self.retry_delay))
        self.typing_interval = max(0.5, float(self.typing_interval))
        self.max_concurrent = max(0, int(self.max_concurrent))
        return self


class MediaConfig(BaseSettings):
    """Configuration for ffmpeg-based audio extraction from video notes."""

    ffmpeg_path: str = Field("ffmpeg", alias="VOICEOVER_FFMPEG_PATH")
    sample_rate: int = Field(16000, alias="VOICEOVER_AUDIO_SAMPLE_RATE")
    bitrate: str = Field("32k", alias="VOICEOVER_AUDIO_BITRATE")
    min_output_bytes: int = Field(1024, alias="VOICEOVER_MIN_AUDIO_BYTES")
    max_video_bytes: int = Field(20 * 1024 * 1024, alias="VOICEOVER_MAX_VIDEO_BYTES")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}

    @model_validator(mode="after")
    def normalize_limits(self) -> "MediaConfig":
        self.sample_rate = max(8000, int(self.sample_rate))
        self.min_output_bytes = max(0, int(self.min_output_bytes))
        self.max_video_bytes = max(1, int(self.max_video_bytes))
        return self


class LoggingConfig(BaseSettings):
    """Log level and renderer selection."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        "INFO", alias="VOICEOVER_LOG_LEVEL"
    )
    json_output: bool = Field(False, alias="VOICEOVER_LOG_JSON")

    model_config = {"env_file": _ENV_FILE, "extra": "ignore", "populate_by_name": True}


class VoiceOverConfig:
    """
    Master configuration that composes all settings groups.

    Every component receives its config from here. Pass ``env_file=None`` to
    read the process environment only (tests do this).
    """

    def __init__(self, env_file: Optional[Path] = _ENV_FILE) -> None:
        self.telegram = TelegramConfig(_env_file=env_file)
        self.gemini = GeminiConfig(_env_file=env_file)
        self.pipeline = PipelineConfig(_env_file=env_file)
        self.media = MediaConfig(_env_file=env_file)
        self.logging = LoggingConfig(_env_file=env_file)

    @property
    def secrets(self) -> tuple[str, ...]:
        """Values that must never reach log output."""
        return (self.telegram.bot_token, self.gemini.api_key)

    def __repr__(self) -> str:
        return (
            f"VoiceOverConfig(model={self.gemini.model}, "
            f"timeout={self.gemini.timeout_seconds}s, "
            f"retries={self.pipeline.retry_attempts})"
        )


def missing_settings(error: ValidationError) -> list[str]:
    """Return the env-var names a ``ValidationError`` complains about."""
    names: list[str] = []
    for item in error.errors():
        loc = item.get("loc") or ()
        name = str(loc[0]) if loc else item.get("msg", "unknown")
        if name not in names:
            names.append(name)
    return names
