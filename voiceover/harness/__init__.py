"""Pipeline harness: runtime helpers shared by the download and transcription steps."""

from voiceover.harness.retry import RetryConfig, with_retries

__all__ = ["RetryConfig", "with_retries"]
