"""Test helpers (small, reusable doubles).

Keep this file tiny and purpose-built: scripted HTTP responses for
``httpx.MockTransport`` and a recording audit sink.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
import json
from typing import Any

import httpx

from switchboard.audit import AuditRecord


class ChunkStream(httpx.AsyncByteStream):
    """Response body delivered as scripted reads, optionally failing mid-way."""

    def __init__(
        self, chunks: list[str | bytes], *, error: Exception | None = None
    ) -> None:
        self.chunks = chunks
        self.error = error
        self.reads = 0
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            self.reads += 1
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk
        if self.error is not None:
            raise self.error

    async def aclose(self) -> None:
        self.closed = True


@dataclass
class Recorder:
    """Route every request to one scripted response and remember the requests."""

    respond: Callable[[httpx.Request], httpx.Response]
    requests: list[httpx.Request] = field(default_factory=list)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request)

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]

    def last_json(self) -> Any:
        return json.loads(self.last.content)


def json_response(body: Any, status_code: int = 200, **kwargs: Any) -> Recorder:
    return Recorder(lambda _req: httpx.Response(status_code, json=body, **kwargs))


def stream_response(
    chunks: list[str | bytes],
    *,
    error: Exception | None = None,
    status_code: int = 200,
) -> tuple[Recorder, ChunkStream]:
    stream = ChunkStream(chunks, error=error)
    return Recorder(lambda _req: httpx.Response(status_code, stream=stream)), stream


def mock_client(
    handler: Callable[[httpx.Request], httpx.Response],
) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@dataclass
class RecordingAuditSink:
    """Audit double that keeps every record."""

    records: list[AuditRecord] = field(default_factory=list)

    def record(self, entry: AuditRecord) -> None:
        self.records.append(entry)


class FailingAuditSink:
    """Audit double that always raises."""

    def record(self, entry: AuditRecord) -> None:
        raise RuntimeError(f"audit store down ({entry.provider_tag})")


def gemini_text_frame(text: str) -> dict[str, Any]:
    return {"candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}]}


def gemini_call_frame(name: str | None, args: dict[str, Any]) -> dict[str, Any]:
    call: dict[str, Any] = {"args": args}
    if name is not None:
        call["name"] = name
    return {
        "candidates": [
            {"content": {"parts": [{"functionCall": call}], "role": "model"}}
        ]
    }


def hf_token_line(text: str, *, special: bool = False, final: str | None = None) -> str:
    frame = {
        "token": {"id": 1, "text": text, "special": special},
        "generated_text": final,
    }
    return f"data: {json.dumps(frame)}\n\n"
