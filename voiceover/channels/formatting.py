"""
Reply formatting and Telegram message splitting.

A transcription reply is either the transcript alone (plain text, sent
verbatim) or, when the backend produced a summary, a two-part HTML message
with the TLDR first. Telegram caps messages at 4096 characters, so long
transcripts are split at paragraph, line, sentence or word boundaries, and
HTML chunks are never cut inside a tag or an entity.
"""

from __future__ import annotations

import html
import re
from dataclasses import dataclass

from voiceover.types import TranscriptionResult

TELEGRAM_MAX_LEN: int = 4096

# Parse mode used for every rich-text reply.
TELEGRAM_PARSE_MODE: str = "HTML"

_HTML_ENTITY_RE = re.compile(r"&(?:#[0-9]+|#x[0-9a-fA-F]+|[a-zA-Z]+);")
_HTML_TAG_RE = re.compile(r"<[^>]+>")

# Break-point preference, best first.
_SPLIT_PATTERNS: tuple[str, ...] = (
    r"\n\n",
    r"\n",
    r"(?<=[.!?])\s+",
    r"\s+",
)


@dataclass(frozen=True)
class FormattedReply:
    text: str
    rich_text: bool = False


def format_transcription_reply(result: TranscriptionResult) -> FormattedReply:
    """Build the outgoing message for a transcription.

    A ``None``, empty or whitespace-only TLDR means "no summary": the
    transcript is returned unchanged as plain text.
    """
    summary = result.summary
    if summary is None:
        return FormattedReply(text=result.transcribed_text, rich_text=False)
    text = (
        f"<b>TLDR:</b>\n{html.escape(summary, quote=False)}\n"
        f"<b>Original text:</b>\n{html.escape(result.transcribed_text, quote=False)}"
    )
    return FormattedReply(text=text, rich_text=True)


def strip_html_tags(text: str) -> str:
    """Remove HTML tags and unescape entities for plain-text fallback delivery."""
    return html.unescape(_HTML_TAG_RE.sub("", text))


def split_message(text: str, max_len: int = TELEGRAM_MAX_LEN) -> list[str]:
    """
    Split *text* into chunks of at most *max_len* characters.

    Whitespace-only input returns an empty list.
    """
    if not text or not text.strip():
        return []
    chunks: list[str] = []
    while len(text) > max_len:
        pos = None
        for pattern in _SPLIT_PATTERNS:
            candidate = _last_match_end(text, max_len, pattern)
            if candidate:
                pos = candidate
                break
        if pos is None:
            pos = max_len
        chunks.append(text[:pos])
        text = text[pos:]
    if text:
        chunks.append(text)
    return chunks


def split_html(html_text: str, max_len: int = TELEGRAM_MAX_LEN) -> list[str]:
    """Split HTML into chunks without breaking inside a tag or an entity."""
    if not html_text or not html_text.strip():
        return []
    chunks: list[str] = []
    while len(html_text) > max_len:
        pos = _find_safe_html_split(html_text, max_len) or max_len
        chunks.append(html_text[:pos])
        html_text = html_text[pos:]
    if html_text:
        chunks.append(html_text)
    return chunks


def chunks_for_telegram(text: str, rich_text: bool) -> list[str]:
    return split_html(text) if rich_text else split_message(text)


def _last_match_end(text: str, max_len: int, pattern: str) -> int | None:
    """End of the last *pattern* match that finishes at or before *max_len*."""
    best: int | None = None
    for m in re.finditer(pattern, text):
        if m.end() > max_len:
            break
        best = m.end()
    return best


def _find_safe_html_split(html_text: str, max_len: int) -> int | None:
    entity_spans = [(m.start(), m.end()) for m in _HTML_ENTITY_RE.finditer(html_text)]

    def _inside_entity(p: int) -> bool:
        return any(start < p < end for start, end in entity_spans)

    def _inside_tag(p: int) -> bool:
        return html_text.rfind("<", 0, p) > html_text.rfind(">", 0, p)

    pos = max_len
    while pos > 0:
        if html_text[pos - 1] in (" ", "\n", "\t"):
            if not _inside_tag(pos) and not _inside_entity(pos):
                return pos
        pos -= 1

    # No whitespace to break on: cut right before the open tag or entity.
    pos = max_len
    if _inside_tag(pos):
        pos = html_text.rfind("<", 0, pos)
    for start, end in entity_spans:
        if start < pos < end:
            pos = start
    return pos or None
