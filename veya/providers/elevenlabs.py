"""ElevenLabs text-to-speech adapter.

ElevenLabs returns MP3 audio; `SpeechRequest.audio_format` is not forwarded
and results always report `mp3`.
"""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

import requests

from ..errors import ErrorKind, VeyaError
from ..retry import RetryExecutor, RetryPolicy, Sleeper
from .base import SpeechRequest, SynthesizedAudio
from .transport import (
    HttpTransport,
    decode_error_body,
    extract_provider_message,
    http_failure,
    iterate_in_thread,
    status_code_of,
    transport_failure,
)


DEFAULT_ELEVENLABS_BASE_URL = "https://api.elevenlabs.io"
DEFAULT_ELEVENLABS_VOICE = "21m00Tcm4TlvDq8ikWAM"
DEFAULT_ELEVENLABS_MODEL = "eleven_multilingual_v2"


def classify_elevenlabs_http_failure(status_code: int, provider_message: str) -> ErrorKind:
    """Classify ElevenLabs HTTP failures.

    A 429 caused by concurrency limits is transient; quota exhaustion is not.
    """

    if status_code in {401, 403}:
        return ErrorKind.INVALID_CREDENTIAL
    if status_code == 429 and "concurrent" in provider_message.lower():
        return ErrorKind.SYNTHESIS_FAILED
    if status_code in {402, 429}:
        return ErrorKind.INSUFFICIENT_QUOTA
    return ErrorKind.SYNTHESIS_FAILED


class ElevenLabsSpeechAdapter:
    """`/v1/text-to-speech/{voice}` adapter."""

    provider_id = "elevenlabs"

    def __init__(
        self,
        *,
        api_key: str | None,
        policy: RetryPolicy,
        model: str = DEFAULT_ELEVENLABS_MODEL,
        voice: str | None = None,
        base_url: str = DEFAULT_ELEVENLABS_BASE_URL,
        timeout_seconds: float = 120.0,
        sleeper: Sleeper | None = None,
    ) -> None:
        """Initialize endpoint settings, voice, and the retry policy for every call."""

        self.model = model
        self.voice = voice or DEFAULT_ELEVENLABS_VOICE
        self.policy = policy
        self._api_key = api_key.strip() if isinstance(api_key, str) else ""
        self._sleeper = sleeper
        self._transport = HttpTransport(
            base_url=base_url,
            headers={"xi-api-key": self._api_key, "Accept": "audio/mpeg"},
            timeout_seconds=timeout_seconds,
        )

    async def call(self, request: SpeechRequest) -> SynthesizedAudio:
        """Return synthesized MP3 bytes for one request."""

        self._require_api_key()
        payload = self._payload(request)
        response = await RetryExecutor(
            self.policy, sleeper=self._sleeper, label="elevenlabs:speech"
        ).execute(lambda: asyncio.to_thread(self._post, payload, False))
        data = bytes(response.content)
        if not data:
            raise VeyaError(ErrorKind.SYNTHESIS_FAILED, "elevenlabs speech response is empty.")
        return SynthesizedAudio(data=data, audio_format="mp3")

    async def stream(self, request: SpeechRequest) -> AsyncIterator[bytes]:
        """Yield MP3 chunks from the streaming endpoint."""

        self._require_api_key()
        payload = self._payload(request)
        response = await RetryExecutor(
            self.policy, sleeper=self._sleeper, label="elevenlabs:speech-stream"
        ).execute(lambda: asyncio.to_thread(self._post, payload, True))
        try:
            chunks = response.iter_content(chunk_size=8192)
            async for chunk in iterate_in_thread(chunks, on_error=self._stream_failure):
                if chunk:
                    yield chunk
        finally:
            response.close()

    def _require_api_key(self) -> None:
        """Require API key presence before issuing requests."""

        if not self._api_key:
            raise VeyaError(ErrorKind.INVALID_CREDENTIAL, "Missing API key for provider `elevenlabs`.")

    def _payload(self, request: SpeechRequest) -> dict[str, Any]:
        """Build the text-to-speech JSON body."""

        return {
            "text": request.text,
            "model_id": self.model,
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.75,
                "speed": request.speed,
            },
        }

    def _post(self, payload: dict[str, Any], stream: bool) -> requests.Response:
        """POST to the voice endpoint and map failures to `VeyaError`."""

        path = f"/v1/text-to-speech/{self.voice}"
        if stream:
            path = f"{path}/stream"
        try:
            return self._transport.post(path, payload, stream=stream)
        except requests.HTTPError as exc:
            status_code = status_code_of(exc)
            provider_message = extract_provider_message(decode_error_body(exc))
            kind = classify_elevenlabs_http_failure(status_code, provider_message)
            raise http_failure(
                kind, "elevenlabs speech request failed", status_code, provider_message
            ) from exc
        except requests.RequestException as exc:
            raise transport_failure(ErrorKind.SYNTHESIS_FAILED, "elevenlabs speech", exc) from exc

    @staticmethod
    def _stream_failure(exc: requests.RequestException) -> VeyaError:
        """Map an interrupted audio stream to a synthesis failure."""

        return transport_failure(ErrorKind.SYNTHESIS_FAILED, "elevenlabs speech", exc)
