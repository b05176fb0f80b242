"""
Main: VoiceOver's startup and shutdown sequence.

When you run ``voiceover`` (or ``python -m voiceover.main``), this module:
  1. Configures structured logging
  2. Loads configuration; missing credentials exit with status 1
  3. Connects to Telegram and resolves the bot's own identity (exit 1 on failure)
  4. Builds the message router around that identity and starts polling
  5. Waits for SIGINT/SIGTERM, stops polling and exits 0 (1 if shutdown fails)

All pipeline logic lives in the channels and media packages; this file only
wires things together.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import Iterable, Optional

import structlog
from pydantic import ValidationError

from voiceover.channels.router import MessageRouter
from voiceover.channels.telegram_channel import TelegramChannel
from voiceover.config import (
    _ENV_FILE,
    LoggingConfig,
    VoiceOverConfig,
    missing_settings,
)
from voiceover.exceptions import BotIdentityError
from voiceover.media.audio import GeminiTranscriber
from voiceover.media.video import AudioExtractor

_REDACTED: str = "[REDACTED]"
_secrets: list[str] = []

# Third-party loggers that are noisy at INFO; httpx also logs request URLs,
# which for the Bot API contain the token.
_QUIET_LOGGERS: tuple[str, ...] = ("httpx", "httpcore", "telegram", "google_genai")


def register_secrets(values: Iterable[str]) -> None:
    """Add credential values that must be masked in every log event."""
    for value in values:
        if value and value not in _secrets:
            _secrets.append(value)


def _redact_secrets(logger, method_name, event_dict):
    """Structlog processor that masks registered credentials in string fields."""
    if not _secrets:
        return event_dict
    for key, val in event_dict.items():
        if isinstance(val, str):
            for secret in _secrets:
                if secret in val:
                    val = val.replace(secret, _REDACTED)
            event_dict[key] = val
    return event_dict


def configure_logging(config: Optional[LoggingConfig] = None) -> None:
    """Configure structlog and standard-library logging for the bot process."""
    if config is None:
        config = LoggingConfig()
    level = getattr(logging, config.level, logging.INFO)

    logging.basicConfig(format="%(message)s", level=level, stream=sys.stdout, force=True)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer = (
        structlog.processors.JSONRenderer()
        if config.json_output
        else structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            _redact_secrets,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


logger = structlog.get_logger(__name__)


class VoiceOverSession:
    """One bot process: init → poll → shutdown."""

    def __init__(self, env_file: Optional[Path] = _ENV_FILE) -> None:
        self._env_file = env_file
        self._config: Optional[VoiceOverConfig] = None
        self._channel: Optional[TelegramChannel] = None
        self._router: Optional[MessageRouter] = None
        self._shutdown_event = asyncio.Event()

    async def run(self) -> int:
        """Run until a shutdown signal arrives. Returns the process exit status."""
        # ---- PHASE 1: CONFIGURATION ----
        try:
            config = VoiceOverConfig(env_file=self._env_file)
        except ValidationError as e:
            logger.error("session.config_error", missing=missing_settings(e))
            return 1
        self._config = config
        register_secrets(config.secrets)

        # ---- PHASE 2: TRANSPORT + IDENTITY ----
        channel = TelegramChannel(config.telegram)
        self._channel = channel
        try:
            await channel.initialize()
            identity = await channel.get_me()
        except BotIdentityError as e:
            logger.error("session.bot_identity_error", error=str(e))
            await self._shutdown()
            return 1
        except Exception as e:
            logger.error("session.transport_init_error", error=str(e))
            await self._shutdown()
            return 1

        # ---- PHASE 3: ROUTER ----
        self._router = MessageRouter(
            channel,
            GeminiTranscriber(config.gemini),
            AudioExtractor(config.media),
            identity,
            config.pipeline,
            max_video_bytes=config.media.max_video_bytes,
        )
        channel.attach_router(self._router)
        logger.info(
            "session.bot_initialized",
            username=identity.username,
            bot_id=identity.id,
            model=config.gemini.model,
        )

        loop = asyncio.get_running_loop()
        installed = self._install_signal_handlers(loop)

        # ---- PHASE 4: POLLING ----
        logger.info("session.starting")
        try:
            await channel.start()
            await self._shutdown_event.wait()
        finally:
            # ---- PHASE 5: SHUTDOWN ----
            for sig in installed:
                loop.remove_signal_handler(sig)
            status = await self._shutdown()
        return status

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> list[signal.Signals]:
        installed = []
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._request_shutdown, sig.name)
            except (NotImplementedError, RuntimeError, ValueError):
                logger.warning("session.signal_handler_unsupported", signal=sig.name)
                continue
            installed.append(sig)
        return installed

    def _request_shutdown(self, signal_name: str = "signal") -> None:
        """Request graceful shutdown on SIGINT or SIGTERM."""
        if self._shutdown_event.is_set():
            return
        logger.info("session.shutdown_requested", signal=signal_name)
        self._shutdown_event.set()

    async def _shutdown(self) -> int:
        """Stop polling and release the transport. Returns the exit status."""
        if self._channel is None:
            return 0
        try:
            await self._channel.stop()
        except Exception as e:
            logger.error("session.shutdown_error", error=str(e))
            return 1
        return 0


def main() -> None:
    """Entry point for the voiceover command."""
    configure_logging()
    session = VoiceOverSession()
    try:
        status = asyncio.run(session.run())
    except KeyboardInterrupt:
        status = 0
    sys.exit(status)


if __name__ == "__main__":
    main()
