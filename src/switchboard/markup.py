"""Tagged-text representation of tool calls and tool declarations.

Tool invocations are rendered as::

    <function_calls>
    <invoke>
    <tool_name>search</tool_name>
    <tool_id>search</tool_id>
    <parameters>
    <query>cats</query>
    </parameters>
    </invoke>
    </function_calls>

The same shape is what text-only models are asked to emit, so parsing is
lenient: missing closing tags and surrounding prose are tolerated. Values
are kept exactly, whitespace included. Argument names that are not valid
tag names are written as ``<parameter name="a.b">...</parameter>``.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING
from xml.sax.saxutils import escape, unescape

if TYPE_CHECKING:
    from switchboard.prompt import ToolDeclaration

FUNCTION_CALLS_OPEN = "<function_calls>"
FUNCTION_CALLS_CLOSE = "</function_calls>"

_TOOL_NAME_RE = re.compile(r"<tool_name>(.*?)</tool_name>", re.DOTALL)
_TOOL_ID_RE = re.compile(r"<tool_id>(.*?)</tool_id>", re.DOTALL)
_PARAMETERS_RE = re.compile(r"<parameters>(.*?)(?:</parameters>|$)", re.DOTALL)
_TAG_NAME_RE = re.compile(r"[A-Za-z_][\w-]*")
_PARAMETER_RE = re.compile(
    r'<parameter name="(?P<attr>[^"]*)">(?P<attr_value>.*?)</parameter>'
    r"|<(?P<tag>[A-Za-z_][\w-]*)>(?P<value>.*?)</(?P=tag)>",
    re.DOTALL,
)
_ATTR_ENTITIES = {'"': "&quot;"}
_ATTR_UNENTITIES = {"&quot;": '"'}


def _render_parameter(name: str, value: str) -> str:
    if _TAG_NAME_RE.fullmatch(name):
        return f"<{name}>{escape(value)}</{name}>"
    attr = escape(name, _ATTR_ENTITIES)
    return f'<parameter name="{attr}">{escape(value)}</parameter>'


def render_invocation(
    tool_name: str, tool_id: str, parameters: tuple[tuple[str, str], ...]
) -> str:
    """Render one invocation as tagged text with escaped values."""
    lines = [
        FUNCTION_CALLS_OPEN,
        "<invoke>",
        f"<tool_name>{escape(tool_name)}</tool_name>",
        f"<tool_id>{escape(tool_id)}</tool_id>",
        "<parameters>",
    ]
    lines.extend(_render_parameter(name, value) for name, value in parameters)
    lines.extend(["</parameters>", "</invoke>", FUNCTION_CALLS_CLOSE])
    return "\n".join(lines)


def parse_invocation(
    text: str,
) -> tuple[str | None, str | None, tuple[tuple[str, str], ...]]:
    """Parse the first invocation in *text* into (name, id, parameters).

    Returns ``(None, None, ())`` when no tool name is present.
    """
    name_match = _TOOL_NAME_RE.search(text)
    if name_match is None:
        return None, None, ()
    name = unescape(name_match.group(1).strip())

    id_match = _TOOL_ID_RE.search(text)
    tool_id = unescape(id_match.group(1).strip()) if id_match else None

    parameters: list[tuple[str, str]] = []
    params_match = _PARAMETERS_RE.search(text, name_match.end())
    if params_match is not None:
        for m in _PARAMETER_RE.finditer(params_match.group(1)):
            if m.group("tag") is not None:
                arg_name, value = m.group("tag"), m.group("value")
            else:
                arg_name = unescape(m.group("attr"), _ATTR_UNENTITIES)
                value = m.group("attr_value")
            parameters.append((arg_name, unescape(value)))
    return name, tool_id, tuple(parameters)


_TOOL_INSTRUCTIONS = """\
In this environment you have access to a set of tools you can use to answer the user's question.
You may call them like this. Only invoke one function at a time and wait for the results before invoking another function:
<function_calls>
<invoke>
<tool_name>$TOOL_NAME</tool_name>
<parameters>
<$PARAMETER_NAME>$PARAMETER_VALUE</$PARAMETER_NAME>
...
</parameters>
</invoke>
</function_calls>

Here are the tools available:"""


def render_tool_instructions(tools: tuple[ToolDeclaration, ...]) -> str:
    """Describe *tools* for models without native function calling."""
    blocks: list[str] = ["<tools>"]
    for tool in tools:
        blocks.append("<tool_description>")
        blocks.append(f"<tool_name>{escape(tool.name)}</tool_name>")
        blocks.append(f"<description>{escape(tool.description)}</description>")
        blocks.append("<parameters>")
        for p in tool.parameters:
            blocks.append("<parameter>")
            blocks.append(f"<name>{p.name}</name>")
            blocks.append(f"<type>{p.type}</type>")
            blocks.append(f"<description>{escape(p.description)}</description>")
            if p.required:
                blocks.append("<required>true</required>")
            if p.enum:
                blocks.append(f"<options>{escape(','.join(p.enum))}</options>")
            blocks.append("</parameter>")
        blocks.append("</parameters>")
        blocks.append("</tool_description>")
    blocks.append("</tools>")
    return _TOOL_INSTRUCTIONS + "\n" + "\n".join(blocks)
