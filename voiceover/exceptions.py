"""Exception hierarchy for the voice-message pipeline."""

from __future__ import annotations


class VoiceOverError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class DownloadError(VoiceOverError):
    """Raised when a file cannot be fetched from the chat transport."""

    def __init__(self, file_id: str, cause: Exception | None = None):
        self.file_id = file_id
        super().__init__(f"Failed to download file '{file_id}'", cause)


class AudioExtractionError(VoiceOverError):
    """Raised when the transcoder fails to produce audio from a video."""

    def __init__(
        self,
        message: str = "Audio extraction failed",
        cause: Exception | None = None,
        returncode: int | None = None,
        stderr: str = "",
    ):
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(message, cause)


class NoAudioTrackError(AudioExtractionError):
    """Raised when the video container carries no audio stream."""

    def __init__(self, stderr: str = ""):
        super().__init__("Video has no audio track", stderr=stderr)


class AudioTooSmallError(AudioExtractionError):
    """Raised when extraction succeeds but yields too few bytes to be real audio."""

    def __init__(self, size: int, minimum: int):
        self.size = size
        self.minimum = minimum
        super().__init__(
            f"Extraction produced no usable audio ({size} bytes, minimum {minimum})"
        )


class TranscriptionError(VoiceOverError):
    """Raised when the AI backend call fails or returns an invalid result."""


class TranscriptionTimeoutError(TranscriptionError):
    """Raised when the output tool is not invoked before the deadline."""

    def __init__(self, timeout_seconds: float):
        self.timeout_seconds = timeout_seconds
        super().__init__(f"Transcription timed out after {timeout_seconds:g} seconds")


class BotIdentityError(VoiceOverError):
    """Raised when the bot cannot resolve its own account at startup."""
