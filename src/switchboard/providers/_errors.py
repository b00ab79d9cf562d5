"""Map transport-level failures into Switchboard errors.

Status codes and Retry-After values are attached as structured metadata so a
caller's retry layer never has to parse messages.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx

from switchboard._http import RETRYABLE_STATUS_CODES
from switchboard.errors import (
    CompletionFailed,
    RateLimitError,
    SwitchboardError,
    TruncatedStream,
    _walk_exception_chain,
)

_BODY_PREVIEW_CHARS = 300


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status"):
            value = getattr(e, attr, None)
            if isinstance(value, int) and 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


_PROTO_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _retry_info_seconds(body: Any) -> float | None:
    """Extract a Google API-style ``RetryInfo`` delay from an error body.

    Gemini error bodies look like::

        {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}
    """
    if not isinstance(body, dict):
        return None
    error: Any = body.get("error")
    if not isinstance(error, dict):
        return None
    details: Any = error.get("details")
    if not isinstance(details, list):
        return None
    for entry in details:
        if not isinstance(entry, dict):
            continue
        at_type = entry.get("@type", "")
        if not isinstance(at_type, str) or "RetryInfo" not in at_type:
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        m = _PROTO_DURATION_RE.match(delay_raw)
        if m:
            return float(m.group(1))
    return None


def extract_retry_after_s(response: httpx.Response) -> float | None:
    """Read a retry delay from ``Retry-After`` or a Google ``RetryInfo`` body."""
    raw = response.headers.get("Retry-After")
    if isinstance(raw, str) and raw.strip():
        try:
            seconds = float(raw)
        except ValueError:
            seconds = None
        if seconds is not None and seconds >= 0:
            return seconds
    try:
        body = response.json()
    except ValueError:
        return None
    return _retry_info_seconds(body)


def _auth_hint(provider: str, status_code: int | None, body: str) -> str | None:
    """Name the credential env var when the failure looks like an auth problem."""
    body_lower = body.lower()
    if status_code in {401, 403} or (
        status_code == 400 and ("api key" in body_lower or "api_key" in body_lower)
    ):
        env_var = "API key"
        if provider == "gemini":
            env_var = "GEMINI_API_KEY"
        elif provider == "hugging_face":
            env_var = "HUGGING_FACE_API_KEY"
        return f"Check credentials/permissions (try setting {env_var} or api_key=...)."
    return None


def status_error(response: httpx.Response, *, provider: str) -> CompletionFailed:
    """Build the error for a non-2xx response whose body has been read."""
    status_code = response.status_code
    try:
        body = response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        body = ""
    preview = " ".join(body.split())[:_BODY_PREVIEW_CHARS]
    retry_after_s = extract_retry_after_s(response)

    err_cls: type[CompletionFailed] = (
        RateLimitError if status_code == 429 else CompletionFailed
    )
    message = f"{provider} request failed (status={status_code})"
    return err_cls(
        f"{message}: {preview}" if preview else message,
        hint=_auth_hint(provider, status_code, body),
        provider=provider,
        phase="transport",
        status_code=status_code,
        retryable=status_code in RETRYABLE_STATUS_CODES or retry_after_s is not None,
        retry_after_s=retry_after_s,
    )


def wrap_transport_error(
    exc: BaseException,
    *,
    provider: str,
    phase: str,
    mid_stream: bool = False,
) -> SwitchboardError:
    """Map an httpx (or already-wrapped) exception into a Switchboard error.

    Once a streamed body has started, any transport failure means the result
    may be incomplete, so it becomes :class:`TruncatedStream`.
    """
    if isinstance(exc, asyncio.CancelledError):
        raise exc

    # Already wrapped; fill in missing context only.
    if isinstance(exc, SwitchboardError):
        if exc.provider is None:
            exc.provider = provider
        if exc.phase is None:
            exc.phase = phase
        return exc

    status_code = extract_status_code(exc)
    cause = str(exc) or type(exc).__name__

    if mid_stream:
        return TruncatedStream(
            f"{provider} stream ended unexpectedly: {cause}",
            hint="The partial result was discarded; the call can be retried.",
            provider=provider,
            phase=phase,
            status_code=status_code,
            retryable=True,
        )

    retryable = isinstance(exc, (httpx.TimeoutException, httpx.TransportError))
    if isinstance(status_code, int) and status_code in RETRYABLE_STATUS_CODES:
        retryable = True

    kind = "timed out" if isinstance(exc, httpx.TimeoutException) else "failed"
    status_note = f" (status={status_code})" if isinstance(status_code, int) else ""
    return CompletionFailed(
        f"{provider} request {kind}{status_note}: {cause}",
        provider=provider,
        phase=phase,
        status_code=status_code,
        retryable=retryable,
    )
