"""
Message router: one explicit dispatch point for every inbound event.

The Telegram adapter turns updates into typed events and hands each to
``MessageRouter.dispatch``. Media events run the pipeline

    download (retried) → [extract audio] → transcribe (retried) → reply

under a typing indicator that is stopped on every exit path before the final
reply goes out. Any failure inside the pipeline becomes a single fixed reply
threaded to the original message; failure to deliver a reply is logged and
swallowed so one bad chat never takes the router down.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING, Optional, Protocol

import structlog

from voiceover.channels.formatting import format_transcription_reply
from voiceover.channels.typing_indicator import TypingIndicator
from voiceover.exceptions import DownloadError
from voiceover.harness.retry import RetryConfig, with_retries
from voiceover.types import (
    DEFAULT_VOICE_MIME,
    AudioPayload,
    BotIdentity,
    DocumentEvent,
    InboundEvent,
    MembershipChangeEvent,
    Sender,
    TranscriptionResult,
    TransportErrorEvent,
    VideoNoteEvent,
    VoiceEvent,
)

if TYPE_CHECKING:
    from voiceover.config import PipelineConfig

logger = structlog.get_logger(__name__)

VOICE_FAILURE_TEXT: str = "Sorry, I couldn't process your voice message. Please try again."
DOCUMENT_FAILURE_TEXT: str = (
    "Sorry, I couldn't process this audio document. "
    "Please try another file or check if it's a valid audio format."
)
UNSUPPORTED_FORMAT_TEXT: str = (
    "Sorry, the audio format {mime_type} is not supported. "
    "Please try one of: MP3, M4A, OGG, WAV, AAC."
)
GREETING_TEXT: str = (
    "Hello! I am a bot that transcribes voice messages. "
    "Please give me admin rights to track all voice messages in the chat."
)

_DEFAULT_MAX_VIDEO_BYTES: int = 20 * 1024 * 1024


class ChatTransport(Protocol):
    """The slice of the chat platform the router talks to."""

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to_message_id: Optional[int] = None,
        rich_text: bool = False,
    ) -> None: ...

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> None: ...

    async def download_file(self, file_id: str) -> bytes: ...


class Transcriber(Protocol):
    async def transcribe(self, audio: AudioPayload) -> TranscriptionResult: ...


class Extractor(Protocol):
    async def extract_audio(self, video_bytes: bytes) -> AudioPayload: ...


class MessageRouter:
    """Route inbound events through the voice pipeline and reply to the chat."""

    def __init__(
        self,
        transport: ChatTransport,
        transcriber: Transcriber,
        extractor: Extractor,
        identity: BotIdentity,
        pipeline: Optional[PipelineConfig] = None,
        *,
        max_video_bytes: int = _DEFAULT_MAX_VIDEO_BYTES,
    ) -> None:
        self._transport = transport
        self._transcriber = transcriber
        self._extractor = extractor
        self._identity = identity
        self._max_video_bytes = max_video_bytes
        if pipeline is None:
            self._retry = RetryConfig()
            self._typing_interval = 6.0
            max_concurrent = 0
        else:
            self._retry = RetryConfig(pipeline.retry_attempts, pipeline.retry_delay)
            self._typing_interval = pipeline.typing_interval
            max_concurrent = pipeline.max_concurrent
        # Opt-in admission control; None keeps in-flight work unbounded.
        self._slots: Optional[asyncio.Semaphore] = (
            asyncio.Semaphore(max_concurrent) if max_concurrent > 0 else None
        )

    @property
    def identity(self) -> BotIdentity:
        return self._identity

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, event: InboundEvent) -> None:
        """Handle one inbound event. Never raises for per-event failures."""
        if isinstance(event, VoiceEvent):
            await self._on_voice(event)
        elif isinstance(event, VideoNoteEvent):
            await self._on_video_note(event)
        elif isinstance(event, DocumentEvent):
            await self._on_document(event)
        elif isinstance(event, MembershipChangeEvent):
            await self._on_membership_change(event)
        elif isinstance(event, TransportErrorEvent):
            self._on_transport_error(event)
        else:
            logger.warning("router.unknown_event", event_type=type(event).__name__)

    async def _on_voice(self, event: VoiceEvent) -> None:
        if not event.file_id:
            logger.info(
                "router.voice_without_file",
                chat_id=event.chat_id,
                message_id=event.message_id,
            )
            return
        logger.info(
            "router.voice_received",
            chat_id=event.chat_id,
            username=event.sender.display_name,
            user_id=event.sender.id,
        )
        await self._process(
            chat_id=event.chat_id,
            message_id=event.message_id,
            sender=event.sender,
            file_id=event.file_id,
            mime_type=DEFAULT_VOICE_MIME,
            extract=False,
            failure_text=VOICE_FAILURE_TEXT,
        )

    async def _on_video_note(self, event: VideoNoteEvent) -> None:
        if not event.file_id:
            logger.info(
                "router.video_note_without_file",
                chat_id=event.chat_id,
                message_id=event.message_id,
            )
            return
        logger.info(
            "router.video_note_received",
            chat_id=event.chat_id,
            username=event.sender.display_name,
            user_id=event.sender.id,
            file_size=event.file_size,
        )
        if event.file_size > self._max_video_bytes:
            logger.warning(
                "router.video_note_too_large",
                chat_id=event.chat_id,
                file_size=event.file_size,
                limit=self._max_video_bytes,
            )
            await self._reply(event.chat_id, VOICE_FAILURE_TEXT, event.message_id)
            return
        await self._process(
            chat_id=event.chat_id,
            message_id=event.message_id,
            sender=event.sender,
            file_id=event.file_id,
            mime_type=None,
            extract=True,
            failure_text=VOICE_FAILURE_TEXT,
        )

    async def _on_document(self, event: DocumentEvent) -> None:
        if not event.is_audio:
            logger.debug(
                "router.document_ignored",
                chat_id=event.chat_id,
                mime_type=event.mime_type,
            )
            return
        if not event.is_supported_audio:
            logger.info(
                "router.document_unsupported",
                chat_id=event.chat_id,
                mime_type=event.mime_type,
                file_name=event.file_name or "Unknown Filename",
            )
            await self._reply(
                event.chat_id,
                UNSUPPORTED_FORMAT_TEXT.format(mime_type=event.mime_type),
                event.message_id,
            )
            return
        logger.info(
            "router.document_received",
            chat_id=event.chat_id,
            mime_type=event.mime_type,
            file_name=event.file_name or "Unknown Filename",
            username=event.sender.display_name,
        )
        await self._process(
            chat_id=event.chat_id,
            message_id=event.message_id,
            sender=event.sender,
            file_id=event.file_id,
            mime_type=event.mime_type,
            extract=False,
            failure_text=DOCUMENT_FAILURE_TEXT,
        )

    async def _on_membership_change(self, event: MembershipChangeEvent) -> None:
        if event.member_id != self._identity.id:
            return
        if not event.joined:
            logger.info(
                "router.bot_status_changed",
                chat_id=event.chat_id,
                old_status=event.old_status,
                new_status=event.new_status,
            )
            return
        logger.info(
            "router.bot_added",
            chat_id=event.chat_id,
            chat_title=event.chat_title or "Untitled Chat",
            added_by=event.actor.display_name if event.actor else None,
        )
        await self._reply(event.chat_id, GREETING_TEXT)

    @staticmethod
    def _on_transport_error(event: TransportErrorEvent) -> None:
        logger.warning(
            "router.transport_error",
            source=event.source,
            error_type=type(event.error).__name__,
            error=str(event.error),
            update_id=event.update_id,
        )

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _process(
        self,
        *,
        chat_id: int,
        message_id: int,
        sender: Sender,
        file_id: str,
        mime_type: Optional[str],
        extract: bool,
        failure_text: str,
    ) -> None:
        log = logger.bind(
            chat_id=chat_id,
            message_id=message_id,
            username=sender.display_name,
            user_id=sender.id,
        )
        typing = TypingIndicator(self._transport, chat_id, self._typing_interval)
        result: Optional[TranscriptionResult] = None
        async with self._admission():
            typing.start()
            try:
                result = await self._transcribe_file(file_id, mime_type, extract, log)
            except Exception as exc:
                log.error(
                    "router.processing_failed",
                    error_type=type(exc).__name__,
                    error=str(exc),
                )
            finally:
                typing.stop()

        if result is None:
            await self._reply(chat_id, failure_text, message_id)
            return

        reply = format_transcription_reply(result)
        if await self._reply(chat_id, reply.text, message_id, rich_text=reply.rich_text):
            log.info("router.replied", rich_text=reply.rich_text)

    async def _transcribe_file(
        self,
        file_id: str,
        mime_type: Optional[str],
        extract: bool,
        log,
    ) -> TranscriptionResult:
        data = await with_retries(
            lambda: self._download(file_id), config=self._retry, operation="download"
        )
        log.info("router.downloaded", size_kb=round(len(data) / 1024, 2))

        if extract:
            payload = await self._extractor.extract_audio(data)
        else:
            payload = AudioPayload(data=data, mime_type=mime_type or DEFAULT_VOICE_MIME)

        return await with_retries(
            lambda: self._transcriber.transcribe(payload),
            config=self._retry,
            operation="transcribe",
        )

    async def _download(self, file_id: str) -> bytes:
        try:
            return bytes(await self._transport.download_file(file_id))
        except DownloadError:
            raise
        except Exception as exc:
            raise DownloadError(file_id, cause=exc) from exc

    def _admission(self):
        return self._slots if self._slots is not None else contextlib.nullcontext()

    async def _reply(
        self,
        chat_id: int,
        text: str,
        reply_to_message_id: Optional[int] = None,
        *,
        rich_text: bool = False,
    ) -> bool:
        """Send *text*; log and swallow delivery failures. Returns success."""
        try:
            await self._transport.send_message(
                chat_id,
                text,
                reply_to_message_id=reply_to_message_id,
                rich_text=rich_text,
            )
            return True
        except Exception as exc:
            logger.error(
                "router.reply_failed",
                chat_id=chat_id,
                reply_to_message_id=reply_to_message_id,
                error=str(exc),
            )
            return False
