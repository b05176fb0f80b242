"""
Audio transcription via Gemini tool-forced generation.

One request per call: a short instruction plus the raw audio bytes tagged with
their MIME type, sent with a fixed system prompt and a function-calling config
that only allows the ``outputTranscription`` tool. The model invoking that
tool is the sole success signal. A response without the tool call leaves the
result unresolved, so the call ends at the hard deadline like any other stall.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional

import structlog
from google import genai
from google.genai import types as genai_types
from pydantic import ValidationError

from voiceover.exceptions import TranscriptionError, TranscriptionTimeoutError
from voiceover.types import AudioPayload, TranscriptionResult

if TYPE_CHECKING:
    from voiceover.config import GeminiConfig

logger = structlog.get_logger(__name__)

OUTPUT_TOOL_NAME: str = "outputTranscription"

USER_INSTRUCTION: str = (
    "Transcribe the audio and provide the result using the outputTranscription tool."
)

TRANSCRIPTION_SYSTEM_PROMPT: str = """\
You are a highly proficient audio transcription robot. Your primary function is to accurately convert spoken audio from telegram voice messages into written text with correct punctuation, formatting and language preservation.

## Key Instructions
0.  Do not add anything not related to the transcription / tldr to output, keep it as correct as possible.
1.  **Language Preservation**: Transcribe the audio in the exact language spoken. Do not translate.
2.  **Accuracy**: Capture all spoken words precisely.
3.  **Punctuation and Formatting**: Apply standard punctuation (periods, commas, question marks, capitalization, paragraphs for distinct speakers or long pauses if discernible) to ensure the text is clear, well-structured, and easy to read.
4.  **No Extraneous Content**: Your output must *only* be the transcribed text. Do not include any introductory phrases (e.g., "Here is the transcription:"), summaries, disclaimers, or any other text that is not part of the direct transcription.
5.  **Tool Usage**: You MUST use the 'outputTranscription' tool to provide the final transcribed text.
6.  **Filler Words**: Remove all filler words like "um", "uh", "ah", "er", "like" and same on another languages. If the text is really short, just return the text as is.
7.  **Points**: If voice message contains some lists, points, etc. Make proper formatting for them.
  Example:
  "do this, do that, do the other thing"
  should be formatted as:
  "1. Do this
  2. Do that
  3. Do the other thing"
8.  **Numbers**: If voice message contains numbers, make proper formatting for them.
  Example:
  "seven thousand, eight hundred, nine" -> "7000, 800, 9"
9.  **Trailing Characters**: Ensure that no extraneous characters, such as underscores (_) or other non-spoken symbols, are appended to the end of the transcription. The output should end cleanly with the last spoken word or standard punctuation.

## TLDR
If text is longer than 300 characters, provide a tldr summary of the transcription. The summary MUST:
1. Use the same language as the transcription
2. Maintain the same first/third person perspective as the original message
3. Keep the same tone, style and speaking voice
4. Be 20-30 words summarizing the general idea
5. Be a single sentence, not a list of points
6. NOT describe the message in third person (like "the user talks about...") - instead, preserve the original voice"""


def build_output_tool() -> genai_types.Tool:
    """Declare the ``outputTranscription`` tool and its parameter schema."""
    return genai_types.Tool(
        function_declarations=[
            genai_types.FunctionDeclaration(
                name=OUTPUT_TOOL_NAME,
                description=(
                    "Outputs the final transcribed text from the audio, ensuring "
                    "it's well-formatted and in the original language."
                ),
                parameters=genai_types.Schema(
                    type=genai_types.Type.OBJECT,
                    properties={
                        "transcribedText": genai_types.Schema(
                            type=genai_types.Type.STRING,
                            description=(
                                "The complete and accurately transcribed text from the "
                                "audio, in the original language, with proper punctuation."
                            ),
                        ),
                        "tldr": genai_types.Schema(
                            type=genai_types.Type.STRING,
                            nullable=True,
                            description=(
                                "A short summary of the transcription, in the original "
                                "language, with proper punctuation (Optional)."
                            ),
                        ),
                    },
                    required=["transcribedText", "tldr"],
                ),
            )
        ]
    )


def build_request_config() -> genai_types.GenerateContentConfig:
    return genai_types.GenerateContentConfig(
        system_instruction=TRANSCRIPTION_SYSTEM_PROMPT,
        tools=[build_output_tool()],
        tool_config=genai_types.ToolConfig(
            function_calling_config=genai_types.FunctionCallingConfig(
                mode="ANY",
                allowed_function_names=[OUTPUT_TOOL_NAME],
            )
        ),
    )


def build_user_content(audio: AudioPayload) -> genai_types.Content:
    return genai_types.Content(
        role="user",
        parts=[
            genai_types.Part.from_text(text=USER_INSTRUCTION),
            genai_types.Part.from_bytes(data=audio.data, mime_type=audio.mime_type),
        ],
    )


def _find_tool_call(response: Any) -> Optional[dict[str, Any]]:
    """Return the arguments of the first ``outputTranscription`` call, if any."""
    for call in getattr(response, "function_calls", None) or []:
        if call.name == OUTPUT_TOOL_NAME:
            return dict(call.args or {})
    return None


class GeminiTranscriber:
    """Transcribe audio bytes into ``TranscriptionResult`` via Gemini."""

    def __init__(self, config: GeminiConfig, client: Optional[genai.Client] = None) -> None:
        self._config = config
        self._client = client

    @property
    def timeout_seconds(self) -> float:
        return self._config.timeout_seconds

    async def transcribe(self, audio: AudioPayload) -> TranscriptionResult:
        """Transcribe *audio*, failing if the output tool isn't invoked in time.

        Raises:
            TranscriptionTimeoutError: No tool call before the deadline. A late
                backend response is discarded.
            TranscriptionError: The backend call failed or returned arguments
                that don't match the tool schema.
        """
        logger.info(
            "transcriber.started",
            mime_type=audio.mime_type,
            size_kb=round(audio.size_kb, 2),
            model=self._config.model,
        )
        try:
            return await asyncio.wait_for(
                self._request(audio), timeout=self._config.timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            logger.warning(
                "transcriber.timed_out", timeout_seconds=self._config.timeout_seconds
            )
            raise TranscriptionTimeoutError(self._config.timeout_seconds) from exc

    async def _request(self, audio: AudioPayload) -> TranscriptionResult:
        client = self._ensure_client()
        try:
            response = await client.aio.models.generate_content(
                model=self._config.model,
                contents=[build_user_content(audio)],
                config=build_request_config(),
            )
        except Exception as exc:
            logger.warning("transcriber.backend_error", error=str(exc))
            raise TranscriptionError(f"Transcription request failed: {exc}", cause=exc) from exc

        arguments = _find_tool_call(response)
        if arguments is None:
            logger.warning("transcriber.tool_not_invoked")
            # Unresolved until the deadline cancels us.
            await asyncio.get_running_loop().create_future()

        try:
            result = TranscriptionResult.model_validate(arguments)
        except ValidationError as exc:
            logger.warning("transcriber.invalid_tool_arguments", error=str(exc))
            raise TranscriptionError("Output tool returned invalid arguments", cause=exc) from exc

        logger.info(
            "transcriber.tool_executed",
            text_length=len(result.transcribed_text),
            has_tldr=result.summary is not None,
        )
        return result

    def _ensure_client(self) -> genai.Client:
        """Lazily initialize the Gemini client."""
        if self._client is None:
            self._client = genai.Client(api_key=self._config.api_key)
        return self._client
