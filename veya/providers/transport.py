"""Shared HTTP plumbing for provider adapters.

Responsibilities:
- Send JSON POST requests with `requests`, optionally as streamed responses.
- Bridge blocking response iteration into async iterators via worker threads.
- Extract short, redacted provider messages for user-facing diagnostics.

Adapters compose an `HttpTransport` and keep their own failure classification.
"""

from __future__ import annotations

import asyncio
import json
import re
from typing import Any, AsyncIterator, Callable, Iterator

import requests

from ..errors import ErrorKind, VeyaError


_MAX_PROVIDER_MESSAGE_CHARS = 180
_END_OF_STREAM = object()


class HttpTransport:
    """Blocking JSON-over-HTTP client bound to one provider base URL."""

    def __init__(
        self,
        *,
        base_url: str,
        headers: dict[str, str],
        timeout_seconds: float = 60.0,
    ) -> None:
        """Initialize endpoint settings; the base URL trailing slash is dropped."""

        self.base_url = base_url.rstrip("/")
        self.headers = {"Content-Type": "application/json", **headers}
        self.timeout_seconds = timeout_seconds

    def post(self, path: str, payload: dict[str, Any], *, stream: bool = False) -> requests.Response:
        """POST a JSON payload and return the response after a status check.

        Raises:
            requests.HTTPError: For non-2xx responses.
            requests.RequestException: For transport failures.
        """

        response = requests.post(
            f"{self.base_url}{path}",
            headers=self.headers,
            json=payload,
            timeout=self.timeout_seconds,
            stream=stream,
        )
        response.raise_for_status()
        return response


async def iterate_in_thread(
    items: Iterator[Any],
    *,
    on_error: Callable[[requests.RequestException], VeyaError],
) -> AsyncIterator[Any]:
    """Pull items from a blocking iterator one at a time in a worker thread.

    Transport failures raised while iterating are converted with `on_error`.
    """

    while True:
        try:
            item = await asyncio.to_thread(next, items, _END_OF_STREAM)
        except requests.RequestException as exc:
            raise on_error(exc) from exc
        if item is _END_OF_STREAM:
            return
        yield item


def iter_sse_data(lines: Iterator[str | bytes]) -> Iterator[str]:
    """Yield `data:` payloads from server-sent event lines."""

    for raw_line in lines:
        if not raw_line:
            continue
        line = raw_line.decode("utf-8", errors="replace") if isinstance(raw_line, bytes) else raw_line
        if not line.startswith("data:"):
            continue
        yield line[len("data:") :].strip()


def decode_error_body(exc: requests.HTTPError) -> str:
    """Decode an HTTP error body into a best-effort UTF-8 payload string."""

    response = exc.response
    if response is None:
        return ""
    content = response.content
    if not content:
        return ""
    return bytes(content).decode("utf-8", errors="replace").strip()


def status_code_of(exc: requests.HTTPError) -> int:
    """Return the HTTP status for an error, or `0` when no response is attached."""

    return exc.response.status_code if exc.response is not None else 0


def redact_sensitive_tokens(text: str) -> str:
    """Redact API-key-like tokens from provider error content."""

    redacted = re.sub(r"\bsk-[A-Za-z0-9_-]{8,}\b", "[redacted-key]", text)
    redacted = re.sub(
        r"(?i)bearer\s+[A-Za-z0-9._-]{12,}",
        "Bearer [redacted-token]",
        redacted,
    )
    return redacted


def short_message(text: str) -> str:
    """Normalize and cap user-facing provider message length."""

    compact = " ".join(text.split())
    if len(compact) <= _MAX_PROVIDER_MESSAGE_CHARS:
        return compact
    return f"{compact[: _MAX_PROVIDER_MESSAGE_CHARS - 1]}..."


def extract_provider_message(body: str) -> str:
    """Extract a concise, redacted provider message from an error body.

    Both `{"error": {"message": ...}}` and `{"detail": {"message": ...}}`
    shapes are recognized; other bodies are used verbatim.
    """

    if not body:
        return ""
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return short_message(redact_sensitive_tokens(body))

    message: str | None = None
    if isinstance(payload, dict):
        for key in ("error", "detail"):
            nested = payload.get(key)
            if isinstance(nested, dict) and isinstance(nested.get("message"), str):
                message = nested["message"]
                break
            if isinstance(nested, str) and nested.strip():
                message = nested
                break
    if message is None:
        message = body
    return short_message(redact_sensitive_tokens(message))


def http_failure(kind: ErrorKind, headline: str, status_code: int, provider_message: str) -> VeyaError:
    """Build a `VeyaError` for an HTTP failure with a uniform detail shape."""

    if provider_message:
        return VeyaError(kind, f"{headline} (HTTP {status_code}): {provider_message}")
    return VeyaError(kind, f"{headline} (HTTP {status_code}).")


def transport_failure(kind: ErrorKind, label: str, exc: requests.RequestException) -> VeyaError:
    """Build a `VeyaError` for a transport failure with a redacted detail."""

    if isinstance(exc, requests.Timeout):
        return VeyaError(kind, f"{label} request timed out.")
    return VeyaError(
        kind,
        f"{label} request transport error: {short_message(redact_sensitive_tokens(str(exc)))}",
    )
