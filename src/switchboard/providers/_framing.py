"""Incremental framing helpers shared by the per-provider chunk decoders.

Network reads do not line up with frame boundaries, so both helpers keep the
unfinished tail of the previous read and only hand out complete units.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from switchboard.errors import MalformedFrame

logger = logging.getLogger(__name__)

_PREVIEW_CHARS = 120


def parse_frame(text: str, *, provider: str) -> Any:
    """Parse one frame that must be well-formed JSON."""
    try:
        return json.loads(text)
    except ValueError as e:
        preview = text if len(text) <= _PREVIEW_CHARS else text[:_PREVIEW_CHARS] + "..."
        raise MalformedFrame(
            f"{provider} sent a frame that is not valid JSON: {preview!r}",
            provider=provider,
            phase="decode",
        ) from e


class LineBuffer:
    """Split a stream of text chunks into complete lines."""

    def __init__(self) -> None:
        self._pending = ""

    def feed(self, chunk: str) -> list[str]:
        """Return the lines completed by *chunk*, without line terminators."""
        data = self._pending + chunk
        lines = data.split("\n")
        self._pending = lines.pop()
        return [line.rstrip("\r") for line in lines]

    def flush(self) -> str | None:
        """Return the final unterminated line, if any, and reset."""
        tail, self._pending = self._pending.rstrip("\r"), ""
        return tail if tail.strip() else None


class JsonArrayScanner:
    """Pull complete top-level objects out of a streamed JSON array.

    Handles elements that arrive one per line, several per read, or split
    across reads. Array brackets, separating commas and whitespace are
    envelope noise. A top-level ``]`` ends the array; anything after it is
    ignored. Unrecognized top-level text is skipped to the end of its line.
    """

    def __init__(self) -> None:
        self._buf = ""
        self._pos = 0
        self._depth = 0
        self._in_string = False
        self._escaped = False
        self._start: int | None = None
        self.terminated = False

    @property
    def has_partial(self) -> bool:
        """Whether an element has started but not yet closed."""
        return self._start is not None

    def feed(self, chunk: str) -> list[str]:
        """Return the raw text of every element completed by *chunk*."""
        if self.terminated:
            return []
        self._buf += chunk
        elements: list[str] = []
        buf = self._buf
        i = self._pos

        while i < len(buf):
            ch = buf[i]
            if self._start is None:
                if ch == "{":
                    self._start = i
                    self._depth = 1
                elif ch == "]":
                    self.terminated = True
                    break
                elif not (ch.isspace() or ch in "[,"):
                    end = buf.find("\n", i)
                    if end == -1:
                        # Wait for the rest of the line before deciding.
                        break
                    logger.debug("Skipping non-JSON stream noise: %r", buf[i:end])
                    i = end
                i += 1
                continue

            if self._in_string:
                if self._escaped:
                    self._escaped = False
                elif ch == "\\":
                    self._escaped = True
                elif ch == '"':
                    self._in_string = False
            elif ch == '"':
                self._in_string = True
            elif ch == "{":
                self._depth += 1
            elif ch == "}":
                self._depth -= 1
                if self._depth == 0:
                    elements.append(buf[self._start : i + 1])
                    self._start = None
            i += 1

        # Drop consumed text so the buffer only holds the open element.
        keep_from = self._start if self._start is not None else i
        self._buf = buf[keep_from:]
        if self._start is not None:
            self._start = 0
        self._pos = i - keep_from
        return elements
