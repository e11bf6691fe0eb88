"""Anthropic messages API text adapter.

Responsibilities:
- Translate text requests to `/messages` with a separate `system` field.
- Parse `content_block_delta` server-sent events into text fragments.
- Classify Anthropic HTTP, transport, and in-stream error events.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator

import requests

from ..errors import ErrorKind, VeyaError
from ..retry import RetryExecutor, RetryPolicy, Sleeper
from .base import TextRequest
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


DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_API_VERSION = "2023-06-01"

_STREAM_ERROR_KINDS = {
    "authentication_error": ErrorKind.INVALID_CREDENTIAL,
    "permission_error": ErrorKind.INVALID_CREDENTIAL,
    "rate_limit_error": ErrorKind.NETWORK_TIMEOUT,
    "overloaded_error": ErrorKind.SERVICE_UNAVAILABLE,
    "api_error": ErrorKind.SERVICE_UNAVAILABLE,
}


def classify_messages_http_failure(status_code: int, provider_message: str) -> ErrorKind:
    """Classify `/messages` HTTP failures.

    Anthropic reports an exhausted credit balance as a 400 or 402; 429 is a
    rate limit and 529 means the API is overloaded.
    """

    lowered = provider_message.lower()
    if status_code in {401, 403}:
        return ErrorKind.INVALID_CREDENTIAL
    if status_code == 402 or (status_code == 400 and "credit balance" in lowered):
        return ErrorKind.INSUFFICIENT_QUOTA
    if status_code == 429:
        if "quota" in lowered or "balance" in lowered:
            return ErrorKind.INSUFFICIENT_QUOTA
        return ErrorKind.NETWORK_TIMEOUT
    return ErrorKind.SERVICE_UNAVAILABLE


class AnthropicTextAdapter:
    """Messages API adapter with streaming and single-shot calls."""

    provider_id = "anthropic"

    def __init__(
        self,
        *,
        model: str,
        api_key: str | None,
        policy: RetryPolicy,
        base_url: str = DEFAULT_ANTHROPIC_BASE_URL,
        timeout_seconds: float = 60.0,
        sleeper: Sleeper | None = None,
    ) -> None:
        """Initialize endpoint settings and the retry policy for every call."""

        self.model = model
        self.policy = policy
        self._api_key = api_key.strip() if isinstance(api_key, str) else ""
        self._sleeper = sleeper
        self._transport = HttpTransport(
            base_url=base_url,
            headers={"x-api-key": self._api_key, "anthropic-version": ANTHROPIC_API_VERSION},
            timeout_seconds=timeout_seconds,
        )

    async def call(self, request: TextRequest) -> str:
        """Return the concatenated text blocks of one message response."""

        self._require_api_key()
        payload = self._payload(request, stream=False)
        response = await RetryExecutor(
            self.policy, sleeper=self._sleeper, label="anthropic:messages"
        ).execute(lambda: asyncio.to_thread(self._post, payload, False))
        return self._extract_text(response.content)

    async def stream(self, request: TextRequest) -> AsyncIterator[str]:
        """Yield `content_block_delta` text until `message_stop`."""

        self._require_api_key()
        payload = self._payload(request, stream=True)
        response = await RetryExecutor(
            self.policy, sleeper=self._sleeper, label="anthropic:messages-stream"
        ).execute(lambda: asyncio.to_thread(self._post, payload, True))
        try:
            events = iter_sse_data(response.iter_lines(decode_unicode=True))
            async for data in iterate_in_thread(events, on_error=self._stream_failure):
                try:
                    event = json.loads(data)
                except json.JSONDecodeError:
                    continue
                if not isinstance(event, dict):
                    continue
                event_type = event.get("type")
                if event_type == "message_stop":
                    return
                if event_type == "error":
                    raise self._stream_error_event(event)
                if event_type == "content_block_delta":
                    delta = event.get("delta")
                    text = delta.get("text") if isinstance(delta, dict) else None
                    if isinstance(text, str) and text:
                        yield text
        finally:
            response.close()

    def _require_api_key(self) -> None:
        """Require API key presence before issuing requests."""

        if not self._api_key:
            raise VeyaError(ErrorKind.INVALID_CREDENTIAL, "Missing API key for provider `anthropic`.")

    def _payload(self, request: TextRequest, *, stream: bool) -> dict[str, Any]:
        """Build the messages JSON body; system turns are lifted into `system`."""

        system_parts = [message.content for message in request.messages if message.role == "system"]
        payload: dict[str, Any] = {
            "model": self.model,
            "max_tokens": request.max_tokens,
            "messages": [
                message.as_payload() for message in request.messages if message.role != "system"
            ],
            "stream": stream,
        }
        if system_parts:
            payload["system"] = "\n\n".join(system_parts)
        if request.temperature is not None:
            payload["temperature"] = request.temperature
        return payload

    def _post(self, payload: dict[str, Any], stream: bool) -> requests.Response:
        """POST to `/messages` and map failures to `VeyaError`."""

        try:
            return self._transport.post("/messages", payload, stream=stream)
        except requests.HTTPError as exc:
            status_code = status_code_of(exc)
            provider_message = extract_provider_message(decode_error_body(exc))
            kind = classify_messages_http_failure(status_code, provider_message)
            raise http_failure(kind, "anthropic request failed", status_code, provider_message) from exc
        except requests.RequestException as exc:
            if isinstance(exc, (requests.Timeout, requests.ConnectionError)):
                kind = ErrorKind.NETWORK_TIMEOUT
            else:
                kind = ErrorKind.SERVICE_UNAVAILABLE
            raise transport_failure(kind, "anthropic", exc) from exc

    @staticmethod
    def _stream_failure(exc: requests.RequestException) -> VeyaError:
        """Map an interrupted stream to a terminal network error."""

        return transport_failure(ErrorKind.NETWORK_TIMEOUT, "anthropic stream", exc)

    @staticmethod
    def _stream_error_event(event: dict[str, Any]) -> VeyaError:
        """Map an in-stream `error` event to a `VeyaError`."""

        error = event.get("error")
        error_type = error.get("type") if isinstance(error, dict) else None
        message = error.get("message") if isinstance(error, dict) else None
        kind = _STREAM_ERROR_KINDS.get(str(error_type), ErrorKind.SERVICE_UNAVAILABLE)
        detail = extract_provider_message(message) if isinstance(message, str) else ""
        return VeyaError(kind, f"anthropic stream error ({error_type}): {detail}".rstrip(": "))

    @staticmethod
    def _extract_text(raw_payload: bytes) -> str:
        """Concatenate `text` content blocks from a messages response body."""

        try:
            payload = json.loads(bytes(raw_payload).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise VeyaError(
                ErrorKind.SERVICE_UNAVAILABLE, "anthropic returned an invalid JSON payload."
            ) from exc

        blocks = payload.get("content") if isinstance(payload, dict) else None
        if not isinstance(blocks, list):
            raise VeyaError(ErrorKind.SERVICE_UNAVAILABLE, "anthropic response is missing `content`.")
        text = "".join(
            block["text"]
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text" and isinstance(block.get("text"), str)
        ).strip()
        if not text:
            raise VeyaError(ErrorKind.SERVICE_UNAVAILABLE, "anthropic response content is empty.")
        return text
