"""Provider adapter interfaces and request/response records.

Responsibilities:
- Define the two capability shapes every provider family exposes.
- Keep pipelines independent from concrete wire formats.

Key types:
- `TextAdapter`: streaming and single-shot text generation.
- `SpeechAdapter`: streaming and single-shot speech synthesis.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import AsyncIterator, Protocol


@dataclass(frozen=True, slots=True)
class ChatMessage:
    """One chat turn sent to a text provider."""

    role: str
    content: str

    def as_payload(self) -> dict[str, str]:
        """Return the JSON object shared by supported chat wire formats."""

        return {"role": self.role, "content": self.content}


@dataclass(frozen=True, slots=True)
class TextRequest:
    """A text-generation request.

    Attributes:
        messages: Ordered chat messages, optionally starting with a system turn.
        max_tokens: Output token cap for providers that require one.
        temperature: Optional sampling temperature.
    """

    messages: tuple[ChatMessage, ...]
    max_tokens: int = 4096
    temperature: float | None = None

    @classmethod
    def of(cls, messages: list[ChatMessage]) -> TextRequest:
        """Build a request from a message list."""

        return cls(messages=tuple(messages))


@dataclass(frozen=True, slots=True)
class SpeechRequest:
    """A speech-synthesis request.

    Attributes:
        text: Text to speak.
        language: Language tag used for endpoint routing.
        speed: Speech-rate multiplier.
        audio_format: Requested container format (`mp3` or `wav`).
    """

    text: str
    language: str
    speed: float = 1.0
    audio_format: str = "mp3"


@dataclass(frozen=True, slots=True)
class SynthesizedAudio:
    """Audio bytes returned by a speech provider."""

    data: bytes
    audio_format: str


class TextAdapter(Protocol):
    """Text-generation capability of one provider endpoint."""

    provider_id: str

    def stream(self, request: TextRequest) -> AsyncIterator[str]:
        """Yield generated text fragments in order."""

    async def call(self, request: TextRequest) -> str:
        """Return the complete generated text."""


class SpeechAdapter(Protocol):
    """Speech-synthesis capability of one provider endpoint."""

    provider_id: str

    def stream(self, request: SpeechRequest) -> AsyncIterator[bytes]:
        """Yield encoded audio byte chunks in order."""

    async def call(self, request: SpeechRequest) -> SynthesizedAudio:
        """Return the complete synthesized audio."""
