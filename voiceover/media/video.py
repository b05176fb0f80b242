"""
Audio extraction from video notes.

Telegram video notes are MP4 containers; the transcription backend wants a
plain audio stream. ``AudioExtractor`` writes the video to a temporary file
(demuxers need seekable input), runs ffmpeg to drop the video stream and
re-encode the first audio stream as mono Opus at a low speech bitrate, and
captures ffmpeg's stdout in memory.

The temporary file is removed on every exit path. Cleanup failures are logged
and never raised.
"""

from __future__ import annotations

import asyncio
import os
import re
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from voiceover.exceptions import (
    AudioExtractionError,
    AudioTooSmallError,
    NoAudioTrackError,
)
from voiceover.types import AudioPayload

if TYPE_CHECKING:
    from voiceover.config import MediaConfig

logger = structlog.get_logger(__name__)

# ffmpeg's wording when "-map 0:a?" selects nothing, across releases.
_NO_AUDIO_RE = re.compile(
    r"does not contain any stream|matches no streams|no audio stream",
    re.IGNORECASE,
)
_OUTPUT_MIME: str = "audio/ogg"
_STDERR_TAIL: int = 500


def build_ffmpeg_command(config: MediaConfig, input_path: str) -> list[str]:
    """Return the argv that turns *input_path* into mono Opus on stdout."""
    return [
        config.ffmpeg_path,
        "-hide_banner",
        "-nostdin",
        "-loglevel", "error",
        # Regenerate missing/non-monotonic presentation timestamps.
        "-fflags", "+genpts",
        "-i", input_path,
        "-vn",
        "-map", "0:a:0?",
        "-ac", "1",
        "-ar", str(config.sample_rate),
        "-af", "aresample=async=1",
        "-c:a", "libopus",
        "-b:a", config.bitrate,
        "-application", "voip",
        "-f", "ogg",
        "pipe:1",
    ]


class AudioExtractor:
    """Extracts a speech-ready audio track from video bytes with ffmpeg."""

    def __init__(self, config: MediaConfig) -> None:
        self._config = config

    async def extract_audio(
        self,
        video_bytes: bytes | bytearray,
        *,
        suffix: str = ".mp4",
    ) -> AudioPayload:
        """Return the audio track of *video_bytes* as an OGG/Opus payload.

        Raises:
            NoAudioTrackError: The container has no audio stream.
            AudioTooSmallError: ffmpeg succeeded but produced under
                ``min_output_bytes`` of output.
            AudioExtractionError: Any other transcoder failure.
        """
        tmp_path = _reserve_temp_path(suffix)
        try:
            await asyncio.to_thread(_write_temp_file, tmp_path, bytes(video_bytes))
            audio_bytes = await self._run_ffmpeg(tmp_path)
        finally:
            _remove_temp_file(tmp_path)

        if len(audio_bytes) < self._config.min_output_bytes:
            logger.warning(
                "media.audio_too_small",
                size=len(audio_bytes),
                minimum=self._config.min_output_bytes,
            )
            raise AudioTooSmallError(len(audio_bytes), self._config.min_output_bytes)

        logger.info(
            "media.audio_extracted",
            video_bytes=len(video_bytes),
            audio_bytes=len(audio_bytes),
        )
        return AudioPayload(data=audio_bytes, mime_type=_OUTPUT_MIME)

    async def _run_ffmpeg(self, input_path: str) -> bytes:
        command = build_ffmpeg_command(self._config, input_path)
        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            logger.error("media.ffmpeg_not_found", path=self._config.ffmpeg_path)
            raise AudioExtractionError(
                f"Transcoder not found: {self._config.ffmpeg_path}", cause=exc
            ) from exc

        stdout, stderr = await proc.communicate()
        stderr_text = (stderr or b"").decode("utf-8", errors="replace")[-_STDERR_TAIL:]

        if proc.returncode != 0:
            if _NO_AUDIO_RE.search(stderr_text):
                logger.warning("media.no_audio_track")
                raise NoAudioTrackError(stderr=stderr_text)
            logger.warning(
                "media.extract_failed",
                returncode=proc.returncode,
                stderr=stderr_text,
            )
            raise AudioExtractionError(
                f"ffmpeg exited with status {proc.returncode}",
                returncode=proc.returncode,
                stderr=stderr_text,
            )
        return stdout or b""


def _reserve_temp_path(suffix: str) -> str:
    fd, path = tempfile.mkstemp(prefix="voiceover-", suffix=suffix)
    os.close(fd)
    return path


def _write_temp_file(path: str, data: bytes) -> None:
    Path(path).write_bytes(data)


def _remove_temp_file(path: str) -> None:
    try:
        Path(path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("media.temp_cleanup_failed", path=path, error=str(exc))
