"""VoiceOver: a Telegram bot that transcribes voice messages with Gemini."""

__version__ = "1.0.0"
