"""
Persistent typing indicator.

Telegram clears a "typing…" chat action after roughly five seconds, so a slow
download + transcription needs it re-sent on a timer. ``TypingIndicator`` owns
one background task per event; ``stop()`` cancels it and is safe to call any
number of times, including before ``start()``.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Optional

import structlog

if TYPE_CHECKING:
    from voiceover.channels.router import ChatTransport

logger = structlog.get_logger(__name__)

_DEFAULT_INTERVAL: float = 6.0


class TypingIndicator:
    """Send "typing" now and every *interval* seconds until stopped."""

    def __init__(
        self,
        transport: ChatTransport,
        chat_id: int,
        interval: float = _DEFAULT_INTERVAL,
    ) -> None:
        self._transport = transport
        self._chat_id = chat_id
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.active:
            return
        self._task = asyncio.create_task(self._keep_typing())

    def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None

    async def _keep_typing(self) -> None:
        try:
            while True:
                try:
                    await self._transport.send_chat_action(self._chat_id, "typing")
                except asyncio.CancelledError:
                    raise
                except Exception as exc:
                    # Best-effort: a missed refresh only affects the UI.
                    logger.debug(
                        "typing.send_failed", chat_id=self._chat_id, error=str(exc)
                    )
                await asyncio.sleep(self._interval)
        except asyncio.CancelledError:
            pass
