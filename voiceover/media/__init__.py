"""
Media processing for the voice pipeline.

Audio extraction (ffmpeg) and transcription (Gemini) operate on raw bytes and
know nothing about Telegram, so they live here rather than in the channel
adapter.
"""

from __future__ import annotations

from voiceover.media.audio import GeminiTranscriber
from voiceover.media.video import AudioExtractor

__all__ = ["AudioExtractor", "GeminiTranscriber"]
