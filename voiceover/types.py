"""
Core data types shared across VoiceOver subsystems.

Everything here is transient and request-scoped: the Telegram adapter builds an
inbound event per update, the router consumes it once, and nothing is retained
after the reply goes out. ``BotIdentity`` is the one long-lived value; it is
resolved once at startup and handed to the router at construction.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_VOICE_MIME: str = "audio/ogg"

# Declared MIME types accepted for audio documents.
SUPPORTED_AUDIO_MIME_TYPES: frozenset[str] = frozenset({
    "audio/mpeg",   # .mp3
    "audio/mp4",    # .m4a
    "audio/ogg",    # .ogg
    "audio/wav",    # .wav
    "audio/x-m4a",  # .m4a (alternative)
    "audio/aac",    # .aac
})

# Telegram ChatMember.status values on either side of a join.
_OUTSIDE_STATUSES: frozenset[str] = frozenset({"left", "kicked"})
_MEMBER_STATUSES: frozenset[str] = frozenset({"member", "administrator"})


@dataclass(frozen=True)
class BotIdentity:
    """The bot's own Telegram account, used to recognise itself in membership updates."""

    id: int
    username: str = ""


@dataclass(frozen=True)
class Sender:
    id: Optional[int] = None
    display_name: str = "UnknownUser"


@dataclass(frozen=True)
class VoiceEvent:
    """A native voice message recorded in-chat."""

    chat_id: int
    message_id: int
    sender: Sender
    file_id: Optional[str] = None


@dataclass(frozen=True)
class VideoNoteEvent:
    """A round video note; the audio track has to be extracted before transcription."""

    chat_id: int
    message_id: int
    sender: Sender
    file_id: Optional[str] = None
    file_size: int = 0


@dataclass(frozen=True)
class DocumentEvent:
    """A generic file attachment. Only audio MIME types are ever processed."""

    chat_id: int
    message_id: int
    sender: Sender
    file_id: str
    mime_type: Optional[str] = None
    file_name: Optional[str] = None

    @property
    def is_audio(self) -> bool:
        return bool(self.mime_type and self.mime_type.startswith("audio/"))

    @property
    def is_supported_audio(self) -> bool:
        return self.mime_type in SUPPORTED_AUDIO_MIME_TYPES


@dataclass(frozen=True)
class MembershipChangeEvent:
    """A chat-member update; ``member_id`` is the account whose status changed."""

    chat_id: int
    member_id: int
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    chat_title: Optional[str] = None
    actor: Optional[Sender] = None

    @property
    def joined(self) -> bool:
        """True only for an outside status (left, kicked) becoming a member one."""
        return (
            self.old_status in _OUTSIDE_STATUSES
            and self.new_status in _MEMBER_STATUSES
        )


@dataclass(frozen=True)
class TransportErrorEvent:
    """A polling/webhook/dispatcher failure reported by the transport."""

    source: str
    error: BaseException
    update_id: Optional[int] = None


InboundEvent = Union[
    VoiceEvent,
    VideoNoteEvent,
    DocumentEvent,
    MembershipChangeEvent,
    TransportErrorEvent,
]


@dataclass(frozen=True)
class AudioPayload:
    """Raw audio bytes plus the MIME type the backend should decode them as."""

    data: bytes
    mime_type: str = DEFAULT_VOICE_MIME

    @property
    def size_kb(self) -> float:
        return len(self.data) / 1024


class TranscriptionResult(BaseModel):
    """Arguments of the ``outputTranscription`` tool call.

    Field names match the tool's parameter schema so the model's arguments can
    be validated directly.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    transcribed_text: str = Field(alias="transcribedText", min_length=1)
    tldr: Optional[str] = None

    @field_validator("transcribed_text")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("transcribedText is blank")
        return value

    @property
    def summary(self) -> Optional[str]:
        """The TLDR, or ``None`` when it is absent, empty or whitespace."""
        if self.tldr is None or not self.tldr.strip():
            return None
        return self.tldr
