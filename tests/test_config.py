"""Tests for voiceover.config: env loading, aliases and normalization."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from voiceover.config import (
    DEFAULT_GEMINI_MODEL,
    GeminiConfig,
    MediaConfig,
    PipelineConfig,
    TelegramConfig,
    VoiceOverConfig,
    missing_settings,
)


@pytest.fixture()
def credentials(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("BOT_TOKEN", "123:abc")
    monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")


class TestVoiceOverConfig:
    def test_loads_from_environment(self, credentials):
        config = VoiceOverConfig(env_file=None)

        assert config.telegram.bot_token == "123:abc"
        assert config.gemini.api_key == "g-key"
        assert config.gemini.model == DEFAULT_GEMINI_MODEL
        assert config.gemini.timeout_seconds == 60.0
        assert config.pipeline.retry_attempts == 3
        assert config.pipeline.retry_delay == 1.0
        assert config.pipeline.max_concurrent == 0

    def test_secrets_lists_both_credentials(self, credentials):
        config = VoiceOverConfig(env_file=None)

        assert set(config.secrets) == {"123:abc", "g-key"}

    def test_repr_does_not_leak_credentials(self, credentials):
        text = repr(VoiceOverConfig(env_file=None))

        assert "123:abc" not in text
        assert "g-key" not in text

    def test_missing_bot_token(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")

        with pytest.raises(ValidationError) as exc_info:
            VoiceOverConfig(env_file=None)

        assert "BOT_TOKEN" in missing_settings(exc_info.value)

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setenv("BOT_TOKEN", "123:abc")

        with pytest.raises(ValidationError) as exc_info:
            VoiceOverConfig(env_file=None)

        assert "GOOGLE_GENERATIVE_AI_API_KEY" in missing_settings(exc_info.value)


class TestTelegramConfig:
    def test_strips_wrapping_quotes(self, monkeypatch):
        monkeypatch.setenv("BOT_TOKEN", '"123:abc"')

        assert TelegramConfig(_env_file=None).bot_token == "123:abc"

    def test_blank_token_rejected(self, monkeypatch):
        monkeypatch.setenv("BOT_TOKEN", "''")

        with pytest.raises(ValidationError):
            TelegramConfig(_env_file=None)

    def test_concurrent_updates_clamped(self, monkeypatch):
        monkeypatch.setenv("BOT_TOKEN", "123:abc")
        monkeypatch.setenv("TELEGRAM_CONCURRENT_UPDATES", "0")

        assert TelegramConfig(_env_file=None).concurrent_updates == 1


class TestGeminiConfig:
    def test_legacy_key_name_accepted(self, monkeypatch):
        monkeypatch.setenv("GEMINI_API_KEY", "legacy-key")

        assert GeminiConfig(_env_file=None).api_key == "legacy-key"

    def test_model_override(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")
        monkeypatch.setenv("GEMINI_MODEL_ID", "gemini-2.5-flash")

        assert GeminiConfig(_env_file=None).model == "gemini-2.5-flash"

    def test_empty_model_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")
        monkeypatch.setenv("GEMINI_MODEL_ID", "")

        assert GeminiConfig(_env_file=None).model == DEFAULT_GEMINI_MODEL

    def test_timeout_has_floor(self, monkeypatch):
        monkeypatch.setenv("GOOGLE_GENERATIVE_AI_API_KEY", "g-key")
        monkeypatch.setenv("VOICEOVER_TRANSCRIPTION_TIMEOUT", "0")

        assert GeminiConfig(_env_file=None).timeout_seconds == 1.0


class TestPipelineAndMedia:
    def test_pipeline_values_clamped(self, monkeypatch):
        monkeypatch.setenv("VOICEOVER_RETRY_ATTEMPTS", "0")
        monkeypatch.setenv("VOICEOVER_RETRY_DELAY", "-5")
        monkeypatch.setenv("VOICEOVER_MAX_CONCURRENT_TRANSCRIPTIONS", "-1")

        config = PipelineConfig(_env_file=None)

        assert config.retry_attempts == 1
        assert config.retry_delay == 0.0
        assert config.max_concurrent == 0

    def test_media_defaults(self):
        config = MediaConfig(_env_file=None)

        assert config.ffmpeg_path == "ffmpeg"
        assert config.sample_rate == 16000
        assert config.bitrate == "32k"
        assert config.min_output_bytes == 1024
        assert config.max_video_bytes == 20 * 1024 * 1024
