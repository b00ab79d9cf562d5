"""Tool-call accumulation: fold partial fragments into one invocation.

A buffer is created per call, mutated only by that call, and finalized at
most once. Values are kept as plain text in first-seen argument order;
markup or JSON is produced only from the finalized :class:`ToolInvocation`.
"""

from __future__ import annotations

import json
import logging
from typing import Any

from switchboard.errors import InvalidState
from switchboard.markup import FUNCTION_CALLS_OPEN, parse_invocation
from switchboard.types import (
    CompletionFragment,
    TextFragment,
    ToolCallPart,
    ToolInvocation,
)

logger = logging.getLogger(__name__)


def serialize_argument(value: Any) -> str:
    """Serialize one argument value to text.

    Strings are kept verbatim; other JSON values use their JSON spelling so
    ``5`` stays ``"5"`` and ``True`` becomes ``"true"``.
    """
    if isinstance(value, str):
        return value
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"))


class ToolInvocationBuffer:
    """Mutable, per-call accumulation target for one tool invocation."""

    def __init__(self) -> None:
        self.tool_name: str | None = None
        self.tool_id: str | None = None
        # dicts keep insertion order; re-assignment keeps the original slot.
        self._parameters: dict[str, str] = {}
        self._result: ToolInvocation | None = None

    @property
    def finalized(self) -> bool:
        """Whether :meth:`finalize` has already produced a result."""
        return self._result is not None

    @property
    def parameters(self) -> tuple[tuple[str, str], ...]:
        """Ordered snapshot of the accumulated parameters."""
        return tuple(self._parameters.items())

    @property
    def is_empty(self) -> bool:
        """True when no name and no arguments have been folded in."""
        return self.tool_name is None and not self._parameters

    def fold(self, fragment: CompletionFragment) -> ToolInvocationBuffer:
        """Fold one fragment into the buffer in place and return the buffer."""
        if self._result is not None:
            raise InvalidState(
                "Cannot fold into a finalized tool invocation", phase="accumulate"
            )
        if isinstance(fragment, TextFragment):
            raise InvalidState(
                "Text fragments cannot be folded into a tool invocation",
                phase="accumulate",
            )

        if fragment.name and self.tool_name is None:
            # Providers without a separate call id reuse the name.
            self.tool_name = fragment.name
            self.tool_id = fragment.name

        for arg_name, value in fragment.arguments:
            self._parameters[str(arg_name)] = serialize_argument(value)
        return self

    def finalize(self) -> ToolInvocation:
        """Freeze the buffer into a :class:`ToolInvocation`. Allowed once."""
        if self._result is not None:
            raise InvalidState(
                "Tool invocation already finalized", phase="accumulate"
            )
        if self.tool_name is None:
            raise InvalidState(
                "Cannot finalize a tool invocation without a tool name",
                phase="accumulate",
            )
        self._result = ToolInvocation(
            tool_name=self.tool_name,
            tool_id=self.tool_id or self.tool_name,
            parameters=self.parameters,
        )
        return self._result


def fold(
    buffer: ToolInvocationBuffer, fragment: CompletionFragment
) -> ToolInvocationBuffer:
    """Functional spelling of :meth:`ToolInvocationBuffer.fold`."""
    return buffer.fold(fragment)


class ToolMarkupDetector:
    """Detect tool calls that text-only models emit as ``<function_calls>`` markup.

    Text is fed in arrival order. While the leading non-blank text could still
    be the start of ``<function_calls>`` it is held back; once it is, the
    detector switches to tool mode and swallows everything after. Otherwise
    held text is released and the detector becomes a pass-through.
    """

    def __init__(self) -> None:
        self._held = ""
        self._decided = False
        self.tool_mode = False
        self._markup: list[str] = []

    def feed(self, text: str) -> str:
        """Return the portion of *text* that is safe to emit as plain text."""
        if self.tool_mode:
            self._markup.append(text)
            return ""
        if self._decided:
            return text

        self._held += text
        head = self._held.lstrip()
        if not head:
            return ""
        if head.startswith(FUNCTION_CALLS_OPEN):
            self.tool_mode = True
            self._decided = True
            self._markup.append(head)
            self._held = ""
            logger.debug("Detected tool call markup in text stream")
            return ""
        if FUNCTION_CALLS_OPEN.startswith(head):
            return ""

        self._decided = True
        released, self._held = self._held, ""
        return released

    def flush(self) -> str:
        """Release any text still held back at end of stream."""
        if self.tool_mode:
            return ""
        self._decided = True
        released, self._held = self._held, ""
        return released

    def fragments(self) -> list[ToolCallPart]:
        """Parse collected markup into fragments for a :class:`ToolInvocationBuffer`."""
        if not self.tool_mode:
            return []
        name, _tool_id, parameters = parse_invocation("".join(self._markup))
        if name is None:
            return []
        return [ToolCallPart(name=name), ToolCallPart(arguments=parameters)]
