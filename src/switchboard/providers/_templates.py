"""Chat templates for text-generation models that take a single prompt string."""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from switchboard.providers._utils import model_allowed

if TYPE_CHECKING:
    from switchboard.prompt import Message

ChatTemplate = Callable[[str, "tuple[Message, ...]"], str]


def orca(system: str, conversation: tuple[Message, ...]) -> str:
    """``### System:`` / ``### User:`` / ``### Assistant:`` sections."""
    sections: list[str] = []
    if system:
        sections.append(f"### System:\n{system}")
    for m in conversation:
        label = "User" if m.role == "user" else "Assistant"
        sections.append(f"### {label}:\n{m.content}")
    sections.append("### Assistant:\n")
    return "\n\n".join(sections)


def llama2(system: str, conversation: tuple[Message, ...]) -> str:
    """Llama 2 chat: ``[INST]`` turns with a ``<<SYS>>`` block in the first one."""
    out = "<s>"
    pending_system = system
    for m in conversation:
        if m.role == "user":
            content = m.content
            if pending_system:
                content = f"<<SYS>>\n{pending_system}\n<</SYS>>\n\n{content}"
                pending_system = ""
            out += f"[INST] {content} [/INST]"
        else:
            out += f" {m.content} </s><s>"
    if pending_system:
        out += f"[INST] <<SYS>>\n{pending_system}\n<</SYS>> [/INST]"
    return out


def mistral(system: str, conversation: tuple[Message, ...]) -> str:
    """Mistral/Mixtral instruct: no system role, so it leads the first turn."""
    out = "<s>"
    pending_system = system
    for m in conversation:
        if m.role == "user":
            content = m.content
            if pending_system:
                content = f"{pending_system}\n\n{content}"
                pending_system = ""
            out += f"[INST] {content} [/INST]"
        else:
            out += f"{m.content}</s>"
    if pending_system:
        out += f"[INST] {pending_system} [/INST]"
    return out


# Ordered (pattern, template) table; first match wins.
TEMPLATES: tuple[tuple[str, ChatTemplate], ...] = (
    ("StableBeluga2", orca),
    ("Upstage-Llama-2-*-instruct-v2", orca),
    ("Llama2-*-chat-hf", llama2),
    ("Llama2-chat-hf", llama2),
    ("mistralai/Mixtral-*-Instruct-*", mistral),
    ("mistralai/Mistral-*-Instruct-*", mistral),
)


def template_for(model: str) -> ChatTemplate:
    """Return the chat template for *model*, defaulting to Orca style."""
    for pattern, template in TEMPLATES:
        if model_allowed(model, (pattern,)):
            return template
    return orca
