"""
Chat-facing layer: the Telegram adapter, the message router it feeds, and
the reply/typing helpers the router uses.
"""

from __future__ import annotations

from voiceover.channels.router import MessageRouter
from voiceover.channels.telegram_channel import TelegramChannel
from voiceover.channels.typing_indicator import TypingIndicator

__all__ = ["MessageRouter", "TelegramChannel", "TypingIndicator"]
