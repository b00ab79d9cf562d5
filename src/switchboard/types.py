"""Normalized fragments and results shared by every provider."""

from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Literal

from switchboard.errors import InvalidState
from switchboard.markup import parse_invocation, render_invocation


@dataclass(frozen=True)
class TextFragment:
    """A piece of plain completion text."""

    text: str


@dataclass(frozen=True)
class ToolCallPart:
    """A piece of a tool call: the name, some arguments, or both.

    ``arguments`` holds raw provider values in the order the provider sent them.
    An empty part (no name, no arguments) is legal and folds to a no-op.
    """

    name: str | None = None
    arguments: tuple[tuple[str, Any], ...] = ()


CompletionFragment = TextFragment | ToolCallPart


@dataclass(frozen=True)
class ToolInvocation:
    """A complete, finalized tool call requested by the model."""

    tool_name: str
    tool_id: str
    #: Ordered ``(argument name, serialized value)`` pairs.
    parameters: tuple[tuple[str, str], ...] = ()

    @property
    def arguments(self) -> dict[str, str]:
        """Return parameters as a dict (insertion ordered)."""
        return dict(self.parameters)

    def to_markup(self) -> str:
        """Render as ``<function_calls>`` tagged text."""
        return render_invocation(self.tool_name, self.tool_id, self.parameters)

    def to_json(self) -> str:
        """Render as a JSON object with ``name``, ``id`` and ``arguments``."""
        return json.dumps(
            {"name": self.tool_name, "id": self.tool_id, "arguments": self.arguments}
        )

    @classmethod
    def from_markup(cls, text: str) -> ToolInvocation:
        """Parse tagged text produced by :meth:`to_markup` (or by a model)."""
        name, tool_id, parameters = parse_invocation(text)
        if not name:
            raise ValueError("No <tool_name> found in tool call markup")
        return cls(tool_name=name, tool_id=tool_id or name, parameters=parameters)


@dataclass(frozen=True)
class CompletionResult:
    """The finalized output of one call: text or a single tool invocation."""

    text: str | None = None
    tool_invocation: ToolInvocation | None = None

    def __post_init__(self) -> None:
        """Enforce that exactly one kind of result is present."""
        if (self.text is None) == (self.tool_invocation is None):
            raise InvalidState(
                "CompletionResult needs exactly one of text or tool_invocation"
            )

    @property
    def kind(self) -> Literal["text", "tool_call"]:
        """``"text"`` or ``"tool_call"``."""
        return "text" if self.text is not None else "tool_call"

    @property
    def is_tool_call(self) -> bool:
        """Whether the model asked for a tool invocation."""
        return self.tool_invocation is not None

    @classmethod
    def from_text(cls, text: str) -> CompletionResult:
        """Wrap a finished text completion."""
        return cls(text=text)

    @classmethod
    def from_invocation(cls, invocation: ToolInvocation) -> CompletionResult:
        """Wrap a finalized tool invocation."""
        return cls(tool_invocation=invocation)


@dataclass(frozen=True)
class PartialText:
    """Streaming update: newly received text plus everything so far."""

    delta: str
    text: str


StreamUpdate = PartialText | CompletionResult
