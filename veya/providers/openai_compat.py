"""OpenAI-compatible chat and speech adapters.

Responsibilities:
- Translate text requests to `/chat/completions` (OpenAI, Ollama, custom gateways).
- Translate speech requests to `/audio/speech`.
- Classify HTTP and transport failures into `ErrorKind` values.

Key types:
- `OpenAICompatibleTextAdapter`: streaming and single-shot chat completions.
- `OpenAICompatibleSpeechAdapter`: streaming and single-shot speech synthesis.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator

import requests

from ..errors import ErrorKind, VeyaError
from ..retry import RetryExecutor, RetryPolicy, Sleeper
from .base import SpeechRequest, SynthesizedAudio, TextRequest
from .transport import (
    HttpTransport,
    decode_error_body,
    extract_provider_message,
    http_failure,
    iter_sse_data,
    iterate_in_thread,
    status_code_of,
    transport_failure,
)


DEFAULT_OPENAI_BASE_URL = "https://api.openai.com/v1"
DEFAULT_SPEECH_VOICE = "alloy"
_QUOTA_MARKERS = ("insufficient", "quota", "balance")


def classify_chat_http_failure(status_code: int, provider_message: str) -> ErrorKind:
    """Classify chat-completions HTTP failures.

    A 402/429 mentioning quota or balance is terminal; any other 429 is a rate
    limit and is treated as a retryable timeout.
    """

    if status_code in {401, 403}:
        return ErrorKind.INVALID_CREDENTIAL
    if status_code in {402, 429}:
        lowered = provider_message.lower()
        if any(marker in lowered for marker in _QUOTA_MARKERS):
            return ErrorKind.INSUFFICIENT_QUOTA
        return ErrorKind.NETWORK_TIMEOUT
    return ErrorKind.SERVICE_UNAVAILABLE


def classify_chat_transport_failure(exc: requests.RequestException) -> ErrorKind:
    """Classify chat transport failures; timeouts and refused connections may be retried."""

    if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
        return ErrorKind.NETWORK_TIMEOUT
    return ErrorKind.SERVICE_UNAVAILABLE


def classify_speech_http_failure(status_code: int) -> ErrorKind:
    """Classify `/audio/speech` HTTP failures."""

    if status_code in {401, 403}:
        return ErrorKind.INVALID_CREDENTIAL
    if status_code in {402, 429}:
        return ErrorKind.INSUFFICIENT_QUOTA
    return ErrorKind.SYNTHESIS_FAILED


_CHAT_HEADLINES = {
    ErrorKind.INVALID_CREDENTIAL: "authentication failed",
    ErrorKind.INSUFFICIENT_QUOTA: "quota is insufficient for this request",
    ErrorKind.NETWORK_TIMEOUT: "rate limited the request",
}


class OpenAICompatibleTextAdapter:
    """Chat-completions adapter for OpenAI-compatible endpoints."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None,
        policy: RetryPolicy,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        provider_id: str = "openai",
        requires_api_key: bool = True,
        timeout_seconds: float = 60.0,
        sleeper: Sleeper | None = None,
    ) -> None:
        """Initialize endpoint settings and the retry policy for every call."""

        self.provider_id = provider_id
        self.model = model
        self.policy = policy
        self._api_key = api_key.strip() if isinstance(api_key, str) else ""
        self._requires_api_key = requires_api_key
        self._sleeper = sleeper
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        self._transport = HttpTransport(
            base_url=base_url,
            headers=headers,
            timeout_seconds=timeout_seconds,
        )

    async def call(self, request: TextRequest) -> str:
        """Return the first assistant message text of a chat completion."""

        self._require_api_key()
        payload = self._payload(request, stream=False)
        response = await self._executor("chat").execute(
            lambda: asyncio.to_thread(self._post, payload, False)
        )
        return self._extract_message_text(response.content)

    async def stream(self, request: TextRequest) -> AsyncIterator[str]:
        """Yield `choices[0].delta.content` fragments until `[DONE]`.

        Only opening the stream is retried; failures after the first byte are terminal.
        """

        self._require_api_key()
        payload = self._payload(request, stream=True)
        response = await self._executor("chat-stream").execute(
            lambda: asyncio.to_thread(self._post, payload, True)
        )
        try:
            events = iter_sse_data(response.iter_lines(decode_unicode=True))
            async for data in iterate_in_thread(events, on_error=self._stream_failure):
                if data == "[DONE]":
                    return
                fragment = self._parse_delta(data)
                if fragment:
                    yield fragment
        finally:
            response.close()

    def _executor(self, operation: str) -> RetryExecutor:
        """Create a retry executor for one call using the current policy."""

        return RetryExecutor(
            self.policy,
            sleeper=self._sleeper,
            label=f"{self.provider_id}:{operation}",
        )

    def _require_api_key(self) -> None:
        """Require API key presence for hosted endpoints."""

        if self._requires_api_key and not self._api_key:
            raise VeyaError(
                ErrorKind.INVALID_CREDENTIAL,
                f"Missing API key for provider `{self.provider_id}`.",
            )

    def _payload(self, request: TextRequest, *, stream: bool) -> dict[str, Any]:
        """Build the chat-completions JSON body."""

        payload: dict[str, Any] = {
            "model": self.model,
            "messages": [message.as_payload() for message in request.messages],
            "stream": stream,
        }
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        return payload

    def _post(self, payload: dict[str, Any], stream: bool) -> requests.Response:
        """POST to `/chat/completions` and map failures to `VeyaError`."""

        try:
            return self._transport.post("/chat/completions", payload, stream=stream)
        except requests.HTTPError as exc:
            status_code = status_code_of(exc)
            provider_message = extract_provider_message(decode_error_body(exc))
            kind = classify_chat_http_failure(status_code, provider_message)
            headline = _CHAT_HEADLINES.get(kind, "request failed")
            raise http_failure(
                kind, f"{self.provider_id} {headline}", status_code, provider_message
            ) from exc
        except requests.RequestException as exc:
            raise transport_failure(
                classify_chat_transport_failure(exc), self.provider_id, exc
            ) from exc

    def _stream_failure(self, exc: requests.RequestException) -> VeyaError:
        """Map an interrupted stream to a terminal network error."""

        return transport_failure(ErrorKind.NETWORK_TIMEOUT, f"{self.provider_id} stream", exc)

    @staticmethod
    def _parse_delta(data: str) -> str | None:
        """Extract `choices[0].delta.content` from one SSE payload, if present."""

        try:
            payload = json.loads(data)
        except json.JSONDecodeError:
            return None
        if not isinstance(payload, dict):
            return None
        choices = payload.get("choices")
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            return None
        delta = choices[0].get("delta")
        if not isinstance(delta, dict):
            return None
        content = delta.get("content")
        return content if isinstance(content, str) else None

    def _extract_message_text(self, raw_payload: bytes) -> str:
        """Extract the first assistant message text from a chat-completions body."""

        try:
            payload = json.loads(bytes(raw_payload).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise VeyaError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"{self.provider_id} returned an invalid JSON payload.",
            ) from exc

        choices = payload.get("choices") if isinstance(payload, dict) else None
        if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
            raise VeyaError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"{self.provider_id} response is missing a non-empty `choices` list.",
            )
        message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None
        text = content.strip() if isinstance(content, str) else ""
        if not text:
            raise VeyaError(
                ErrorKind.SERVICE_UNAVAILABLE,
                f"{self.provider_id} response message content is empty.",
            )
        return text


class OpenAICompatibleSpeechAdapter:
    """`/audio/speech` adapter for OpenAI-compatible endpoints."""

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None,
        policy: RetryPolicy,
        voice: str | None = None,
        base_url: str = DEFAULT_OPENAI_BASE_URL,
        provider_id: str = "openai",
        requires_api_key: bool = True,
        timeout_seconds: float = 120.0,
        sleeper: Sleeper | None = None,
    ) -> None:
        """Initialize endpoint settings, voice, and the retry policy for every call."""

        self.provider_id = provider_id
        self.model = model
        self.voice = voice or DEFAULT_SPEECH_VOICE
        self.policy = policy
        self._api_key = api_key.strip() if isinstance(api_key, str) else ""
        self._requires_api_key = requires_api_key
        self._sleeper = sleeper
        headers = {"Authorization": f"Bearer {self._api_key}"} if self._api_key else {}
        self._transport = HttpTransport(
            base_url=base_url,
            headers=headers,
            timeout_seconds=timeout_seconds,
        )

    async def call(self, request: SpeechRequest) -> SynthesizedAudio:
        """Return synthesized audio bytes for one request."""

        self._require_api_key()
        payload = self._payload(request)
        response = await RetryExecutor(
            self.policy, sleeper=self._sleeper, label=f"{self.provider_id}:speech"
        ).execute(lambda: asyncio.to_thread(self._post, payload, False))
        data = bytes(response.content)
        if not data:
            raise VeyaError(
                ErrorKind.SYNTHESIS_FAILED,
                f"{self.provider_id} speech response is empty.",
            )
        return SynthesizedAudio(data=data, audio_format=request.audio_format)

    async def stream(self, request: SpeechRequest) -> AsyncIterator[bytes]:
        """Yield encoded audio chunks as they arrive."""

        self._require_api_key()
        payload = self._payload(request)
        response = await RetryExecutor(
            self.policy, sleeper=self._sleeper, label=f"{self.provider_id}:speech-stream"
        ).execute(lambda: asyncio.to_thread(self._post, payload, True))
        try:
            chunks = response.iter_content(chunk_size=8192)
            async for chunk in iterate_in_thread(chunks, on_error=self._stream_failure):
                if chunk:
                    yield chunk
        finally:
            response.close()

    def _require_api_key(self) -> None:
        """Require API key presence for hosted endpoints."""

        if self._requires_api_key and not self._api_key:
            raise VeyaError(
                ErrorKind.INVALID_CREDENTIAL,
                f"Missing API key for provider `{self.provider_id}`.",
            )

    def _payload(self, request: SpeechRequest) -> dict[str, Any]:
        """Build the speech JSON body."""

        return {
            "model": self.model,
            "input": request.text,
            "voice": self.voice,
            "response_format": request.audio_format,
            "speed": request.speed,
        }

    def _post(self, payload: dict[str, Any], stream: bool) -> requests.Response:
        """POST to `/audio/speech` and map failures to `VeyaError`."""

        try:
            return self._transport.post("/audio/speech", payload, stream=stream)
        except requests.HTTPError as exc:
            status_code = status_code_of(exc)
            provider_message = extract_provider_message(decode_error_body(exc))
            kind = classify_speech_http_failure(status_code)
            raise http_failure(
                kind, f"{self.provider_id} speech request failed", status_code, provider_message
            ) from exc
        except requests.RequestException as exc:
            raise transport_failure(
                ErrorKind.SYNTHESIS_FAILED, f"{self.provider_id} speech", exc
            ) from exc

    def _stream_failure(self, exc: requests.RequestException) -> VeyaError:
        """Map an interrupted audio stream to a synthesis failure."""

        return transport_failure(ErrorKind.SYNTHESIS_FAILED, f"{self.provider_id} speech", exc)
