"""Provider-agnostic prompt: role-tagged messages plus tool declarations."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any, Literal

from pydantic import BaseModel

from switchboard.errors import PromptError

Role = Literal["system", "user", "assistant"]
_ROLES: frozenset[str] = frozenset({"system", "user", "assistant"})

# JSON Schema type names accepted for tool parameters.
_PARAMETER_TYPES: frozenset[str] = frozenset(
    {"string", "integer", "number", "boolean", "array", "object"}
)


@dataclass(frozen=True)
class Message:
    """A single conversational turn."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        """Validate role and content early for clear errors."""
        if self.role not in _ROLES:
            raise PromptError(
                f"Unknown message role: {self.role!r}",
                hint="Use 'system', 'user' or 'assistant'.",
            )
        if not isinstance(self.content, str):
            raise PromptError(
                f"Message content must be a string, got {type(self.content).__name__}",
            )


@dataclass(frozen=True)
class ToolParameter:
    """One named argument a tool accepts."""

    name: str
    type: str = "string"
    description: str = ""
    required: bool = False
    enum: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        """Validate the parameter shape."""
        if not self.name or not self.name.isidentifier():
            raise PromptError(
                f"Invalid tool parameter name: {self.name!r}",
                hint="Parameter names become markup tags; use identifiers.",
            )
        if self.type not in _PARAMETER_TYPES:
            raise PromptError(
                f"Unsupported tool parameter type: {self.type!r}",
                hint=f"Use one of {sorted(_PARAMETER_TYPES)}.",
            )
        object.__setattr__(self, "enum", tuple(self.enum))


@dataclass(frozen=True)
class ToolDeclaration:
    """A capability the model may invoke instead of answering in text."""

    name: str
    description: str = ""
    parameters: tuple[ToolParameter, ...] = ()

    def __post_init__(self) -> None:
        """Validate the declaration shape."""
        if not self.name or not self.name.isidentifier():
            raise PromptError(
                f"Invalid tool name: {self.name!r}",
                hint="Tool names must be identifiers such as 'search'.",
            )
        params = tuple(self.parameters)
        names = [p.name for p in params]
        if len(set(names)) != len(names):
            raise PromptError(f"Duplicate parameter names in tool {self.name!r}")
        object.__setattr__(self, "parameters", params)

    @classmethod
    def from_model(
        cls, name: str, description: str, model: type[BaseModel]
    ) -> ToolDeclaration:
        """Build a declaration from the fields of a Pydantic model."""
        schema = model.model_json_schema()
        required = set(schema.get("required", ()))
        parameters: list[ToolParameter] = []
        for field_name, prop in schema.get("properties", {}).items():
            param_type = prop.get("type", "string")
            if param_type not in _PARAMETER_TYPES:
                param_type = "string"
            parameters.append(
                ToolParameter(
                    name=field_name,
                    type=param_type,
                    description=prop.get("description", ""),
                    required=field_name in required,
                    enum=tuple(str(v) for v in prop.get("enum", ())),
                )
            )
        return cls(name=name, description=description, parameters=tuple(parameters))

    def json_schema(self) -> dict[str, Any]:
        """Return the parameters as a JSON Schema object."""
        properties: dict[str, Any] = {}
        for p in self.parameters:
            prop: dict[str, Any] = {"type": p.type}
            if p.description:
                prop["description"] = p.description
            if p.enum:
                prop["enum"] = list(p.enum)
            properties[p.name] = prop
        schema: dict[str, Any] = {"type": "object", "properties": properties}
        required = [p.name for p in self.parameters if p.required]
        if required:
            schema["required"] = required
        return schema


@dataclass(frozen=True)
class Prompt:
    """Ordered messages plus optional tool declarations. Immutable."""

    messages: tuple[Message, ...]
    tools: tuple[ToolDeclaration, ...] = ()

    def __post_init__(self) -> None:
        """Normalize sequences to tuples and validate."""
        messages = tuple(self.messages)
        tools = tuple(self.tools)
        if not messages:
            raise PromptError(
                "Prompt must contain at least one message",
                hint="Pass Prompt.from_messages([{'role': 'user', 'content': '...'}]).",
            )
        for m in messages:
            if not isinstance(m, Message):
                raise PromptError(f"Expected Message, got {type(m).__name__}")
        validate_tools(tools)
        object.__setattr__(self, "messages", messages)
        object.__setattr__(self, "tools", tools)

    @classmethod
    def from_messages(
        cls,
        messages: Iterable[Message | Mapping[str, Any]],
        *,
        tools: Iterable[ToolDeclaration] = (),
    ) -> Prompt:
        """Build a prompt from Message objects or ``{'role', 'content'}`` dicts."""
        converted: list[Message] = []
        for item in messages:
            if isinstance(item, Message):
                converted.append(item)
            elif isinstance(item, Mapping):
                role = item.get("role")
                content = item.get("content", "")
                converted.append(Message(role=role, content=content))
            else:
                raise PromptError(
                    f"Expected Message or dict, got {type(item).__name__}",
                )
        return cls(messages=tuple(converted), tools=tuple(tools))

    @classmethod
    def user(cls, content: str, *, system: str | None = None) -> Prompt:
        """Shorthand for a single user turn with an optional system message."""
        messages: list[Message] = []
        if system:
            messages.append(Message("system", system))
        messages.append(Message("user", content))
        return cls(messages=tuple(messages))

    def system_text(self) -> str:
        """Return all system messages joined by blank lines."""
        return "\n\n".join(m.content for m in self.messages if m.role == "system")

    def conversation(self) -> tuple[Message, ...]:
        """Return the non-system messages in order."""
        return tuple(m for m in self.messages if m.role != "system")

    def text(self) -> str:
        """Flat rendering used for size estimates."""
        return "\n".join(f"{m.role}: {m.content}" for m in self.messages)


def validate_tools(tools: tuple[ToolDeclaration, ...]) -> None:
    """Reject non-declarations and duplicate tool names."""
    for t in tools:
        if not isinstance(t, ToolDeclaration):
            raise PromptError(f"Expected ToolDeclaration, got {type(t).__name__}")
    names = [t.name for t in tools]
    if len(set(names)) != len(names):
        raise PromptError(
            "Duplicate tool names",
            hint="Each declared tool needs a unique name.",
        )
