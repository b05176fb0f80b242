"""
Shared fixtures for the VoiceOver test suite.

Provides settings objects that never read a .env file, a fake chat transport
and stand-ins for the transcription and extraction backends, so individual
test modules can focus on behavior rather than setup.
"""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from voiceover.config import GeminiConfig, MediaConfig, PipelineConfig
from voiceover.types import BotIdentity, TranscriptionResult

BOT_ID = 999


class FakeTransport:
    """Records every call the router makes to the chat platform."""

    def __init__(self, file_bytes: bytes = b"OggS" + b"\x00" * 2048) -> None:
        self.send_message = AsyncMock()
        self.send_chat_action = AsyncMock()
        self.download_file = AsyncMock(return_value=file_bytes)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch):
    """Keep the developer's shell environment out of settings-based tests."""
    for name in (
        "BOT_TOKEN",
        "GOOGLE_GENERATIVE_AI_API_KEY",
        "GEMINI_API_KEY",
        "GEMINI_MODEL_ID",
        "VOICEOVER_TRANSCRIPTION_TIMEOUT",
        "VOICEOVER_RETRY_ATTEMPTS",
        "VOICEOVER_RETRY_DELAY",
        "VOICEOVER_TYPING_INTERVAL",
        "VOICEOVER_MAX_CONCURRENT_TRANSCRIPTIONS",
        "VOICEOVER_MIN_AUDIO_BYTES",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def pipeline_config() -> PipelineConfig:
    return PipelineConfig(_env_file=None, VOICEOVER_RETRY_DELAY=0)


@pytest.fixture()
def media_config() -> MediaConfig:
    return MediaConfig(_env_file=None)


@pytest.fixture()
def gemini_config() -> GeminiConfig:
    return GeminiConfig(_env_file=None, GOOGLE_GENERATIVE_AI_API_KEY="test-key")


@pytest.fixture()
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture()
def identity() -> BotIdentity:
    return BotIdentity(id=BOT_ID, username="voiceover_bot")


@pytest.fixture()
def transcriber() -> AsyncMock:
    mock = AsyncMock()
    mock.transcribe = AsyncMock(
        return_value=TranscriptionResult(transcribed_text="Hello world.", tldr=None)
    )
    return mock


@pytest.fixture()
def extractor() -> AsyncMock:
    mock = AsyncMock()
    mock.extract_audio = AsyncMock()
    return mock
