"""
Telegram transport adapter for VoiceOver.

Uses python-telegram-bot v22+ async API with AIORateLimiter.

We use initialize()+start()+updater.start_polling() instead of
app.run_polling() because the latter calls asyncio.run() internally and would
conflict with the event loop started by voiceover/main.py.

The adapter does two jobs:
  * converts PTB updates into the typed events in ``voiceover.types`` and
    hands them to ``MessageRouter.dispatch``;
  * implements the router's ``ChatTransport`` surface (send_message,
    send_chat_action, download_file) on top of the PTB bot.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

import structlog
from telegram import ReplyParameters
from telegram.error import BadRequest
from telegram.ext import (
    AIORateLimiter,
    ApplicationBuilder,
    ChatMemberHandler,
    MessageHandler,
    filters,
)

from voiceover.channels.formatting import (
    TELEGRAM_PARSE_MODE,
    chunks_for_telegram,
    strip_html_tags,
)
from voiceover.exceptions import BotIdentityError
from voiceover.types import (
    BotIdentity,
    DocumentEvent,
    InboundEvent,
    MembershipChangeEvent,
    Sender,
    TransportErrorEvent,
    VideoNoteEvent,
    VoiceEvent,
)

if TYPE_CHECKING:
    from voiceover.channels.router import MessageRouter
    from voiceover.config import TelegramConfig

logger = structlog.get_logger(__name__)

_ALLOWED_UPDATES: list[str] = ["message", "chat_member", "my_chat_member"]


def sender_from_user(user) -> Sender:
    """Build a ``Sender`` from a PTB ``User`` (or ``None`` for channel posts)."""
    if user is None:
        return Sender()
    display_name = user.username or user.first_name or "UnknownUser"
    return Sender(id=user.id, display_name=display_name)


class TelegramChannel:
    """VoiceOver Telegram bot adapter."""

    def __init__(self, config: TelegramConfig) -> None:
        self._config = config
        self._app = None
        self._router: Optional[MessageRouter] = None

    @property
    def channel_name(self) -> str:
        return "telegram"

    @property
    def is_polling(self) -> bool:
        return bool(self._app is not None and self._app.updater and self._app.updater.running)

    def attach_router(self, router: MessageRouter) -> None:
        self._router = router

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Build the PTB application and register handlers (no polling yet)."""
        builder = (
            ApplicationBuilder()
            .token(self._config.bot_token)
            .concurrent_updates(self._config.concurrent_updates)
            .rate_limiter(AIORateLimiter(max_retries=3))
        )
        self._app = builder.build()
        self._register_handlers()
        await self._app.initialize()
        logger.info("telegram_channel.initialized")

    async def get_me(self) -> BotIdentity:
        """Resolve the bot's own account. Raises ``BotIdentityError`` on failure."""
        try:
            me = await self._app.bot.get_me()
        except Exception as exc:
            raise BotIdentityError(f"Failed to get bot info: {exc}", cause=exc) from exc
        if me is None or not me.id:
            raise BotIdentityError("Failed to get bot info: user object or id is missing")
        return BotIdentity(id=me.id, username=me.username or "")

    async def start(self) -> None:
        """Begin polling for updates."""
        await self._app.start()
        await self._app.updater.start_polling(
            drop_pending_updates=self._config.drop_pending_updates,
            allowed_updates=_ALLOWED_UPDATES,
            error_callback=self._on_polling_error,
        )
        logger.info("telegram_channel.started")

    async def stop(self) -> None:
        """Stop polling (if running) and shut down the PTB application."""
        if self._app is None:
            return
        if self.is_polling:
            await self._app.updater.stop()
            logger.info("telegram_channel.polling_stopped")
        if self._app.running:
            await self._app.stop()
        await self._app.shutdown()
        logger.info("telegram_channel.stopped")

    def _register_handlers(self) -> None:
        self._app.add_handler(MessageHandler(filters.VOICE, self._on_voice))
        self._app.add_handler(MessageHandler(filters.VIDEO_NOTE, self._on_video_note))
        self._app.add_handler(MessageHandler(filters.Document.ALL, self._on_document))
        self._app.add_handler(
            ChatMemberHandler(self._on_chat_member, ChatMemberHandler.ANY_CHAT_MEMBER)
        )
        self._app.add_error_handler(self._on_error)

    # ------------------------------------------------------------------
    # ChatTransport surface
    # ------------------------------------------------------------------

    async def send_message(
        self,
        chat_id: int,
        text: str,
        *,
        reply_to_message_id: Optional[int] = None,
        rich_text: bool = False,
    ) -> None:
        """Send *text*, split into Telegram-sized chunks, threaded when possible.

        Rich text goes out as HTML; if Telegram rejects the markup the chunk is
        resent as plain text.
        """
        reply_parameters = None
        if reply_to_message_id is not None:
            reply_parameters = ReplyParameters(
                message_id=reply_to_message_id,
                allow_sending_without_reply=True,
            )
        for chunk in chunks_for_telegram(text, rich_text):
            if not rich_text:
                await self._app.bot.send_message(
                    chat_id=chat_id, text=chunk, reply_parameters=reply_parameters
                )
                continue
            try:
                await self._app.bot.send_message(
                    chat_id=chat_id,
                    text=chunk,
                    parse_mode=TELEGRAM_PARSE_MODE,
                    reply_parameters=reply_parameters,
                )
            except BadRequest as exc:
                logger.warning("telegram_channel.html_rejected", error=str(exc))
                await self._app.bot.send_message(
                    chat_id=chat_id,
                    text=strip_html_tags(chunk),
                    reply_parameters=reply_parameters,
                )

    async def send_chat_action(self, chat_id: int, action: str = "typing") -> None:
        await self._app.bot.send_chat_action(chat_id=chat_id, action=action)

    async def download_file(self, file_id: str) -> bytes:
        tg_file = await self._app.bot.get_file(file_id)
        return bytes(await tg_file.download_as_bytearray())

    # ------------------------------------------------------------------
    # Update → event conversion
    # ------------------------------------------------------------------

    async def _dispatch(self, event: InboundEvent) -> None:
        if self._router is None:
            logger.warning(
                "telegram_channel.router_not_ready", event_type=type(event).__name__
            )
            return
        await self._router.dispatch(event)

    async def _on_voice(self, update, context) -> None:
        message = update.message
        if message is None:
            return
        voice = message.voice
        await self._dispatch(
            VoiceEvent(
                chat_id=message.chat.id,
                message_id=message.message_id,
                sender=sender_from_user(message.from_user),
                file_id=voice.file_id if voice else None,
            )
        )

    async def _on_video_note(self, update, context) -> None:
        message = update.message
        if message is None:
            return
        note = message.video_note
        await self._dispatch(
            VideoNoteEvent(
                chat_id=message.chat.id,
                message_id=message.message_id,
                sender=sender_from_user(message.from_user),
                file_id=note.file_id if note else None,
                file_size=(note.file_size or 0) if note else 0,
            )
        )

    async def _on_document(self, update, context) -> None:
        message = update.message
        if message is None or message.document is None:
            return
        document = message.document
        await self._dispatch(
            DocumentEvent(
                chat_id=message.chat.id,
                message_id=message.message_id,
                sender=sender_from_user(message.from_user),
                file_id=document.file_id,
                mime_type=document.mime_type,
                file_name=document.file_name,
            )
        )

    async def _on_chat_member(self, update, context) -> None:
        member_update = update.chat_member or update.my_chat_member
        if member_update is None:
            return
        await self._dispatch(
            MembershipChangeEvent(
                chat_id=member_update.chat.id,
                member_id=member_update.new_chat_member.user.id,
                old_status=str(member_update.old_chat_member.status),
                new_status=str(member_update.new_chat_member.status),
                chat_title=member_update.chat.title,
                actor=sender_from_user(member_update.from_user),
            )
        )

    def _on_polling_error(self, error) -> None:
        """Updater callback for getUpdates failures; runs outside any handler."""
        self._app.create_task(
            self._dispatch(TransportErrorEvent(source="polling", error=error))
        )

    async def _on_error(self, update, context) -> None:
        """Route handler errors to the router as transport error events."""
        await self._dispatch(
            TransportErrorEvent(
                source="dispatcher",
                error=context.error,
                update_id=getattr(update, "update_id", None) if update else None,
            )
        )
