"""Switchboard: one completion interface over Gemini and Hugging Face endpoints.

Public API:
    - complete(): Blocking (or, with ``streaming=True``, streaming) completion
    - stream(): Streaming completion yielding partial text then a final result
    - Endpoint: Reusable provider connection for many calls
    - Prompt / ToolDeclaration: Provider-agnostic input
    - ProviderConfig: Configuration dataclass
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable, Mapping
import logging
from typing import TYPE_CHECKING, Any

from switchboard.audit import AuditRecord, AuditSink, LoggingAuditSink
from switchboard.call import CallPhase
from switchboard.config import ProviderConfig
from switchboard.endpoint import CompletionStream, Endpoint
from switchboard.errors import (
    CompletionFailed,
    ConfigurationError,
    InvalidState,
    MalformedFrame,
    PromptError,
    RateLimitError,
    SwitchboardError,
    TruncatedStream,
    UnsupportedModel,
)
from switchboard.prompt import Message, Prompt, ToolDeclaration, ToolParameter
from switchboard.types import (
    CompletionResult,
    PartialText,
    TextFragment,
    ToolCallPart,
    ToolInvocation,
)

if TYPE_CHECKING:
    import httpx

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("switchboard-llm")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("switchboard").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)


def _as_prompt(prompt: Prompt | str) -> Prompt:
    if isinstance(prompt, str):
        return Prompt.user(prompt)
    return prompt


async def complete(
    prompt: Prompt | str,
    tools: Iterable[ToolDeclaration] | None = None,
    *,
    config: ProviderConfig,
    streaming: bool = False,
    params: Mapping[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
    audit: AuditSink | None = None,
) -> CompletionResult | CompletionStream:
    """Run one completion against the provider named in *config*.

    Args:
        prompt: A Prompt, or a plain string sent as a single user message.
        tools: Tool declarations; defaults to ``prompt.tools``.
        config: Provider, model and credentials.
        streaming: Return a :class:`CompletionStream` instead of a result.
        params: Generation parameters overriding ``config.params``.
        client: Optional shared ``httpx.AsyncClient`` (borrowed, never closed).
        audit: Optional audit collaborator, called once per call.

    Returns:
        The final CompletionResult, or a CompletionStream when streaming.

    Example:
        config = ProviderConfig(provider="gemini", model="gemini-pro")
        result = await complete("Say hello", config=config)
        print(result.text)
    """
    if streaming:
        return stream(
            prompt, tools, config=config, params=params, client=client, audit=audit
        )

    endpoint = Endpoint(config, client=client, audit=audit)
    try:
        return await endpoint.complete(_as_prompt(prompt), tools, params=params)
    finally:
        try:
            await endpoint.aclose()
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            # Cleanup should never mask the primary failure.
            logger.warning("Endpoint cleanup failed: %s", exc)


def stream(
    prompt: Prompt | str,
    tools: Iterable[ToolDeclaration] | None = None,
    *,
    config: ProviderConfig,
    params: Mapping[str, Any] | None = None,
    client: httpx.AsyncClient | None = None,
    audit: AuditSink | None = None,
) -> CompletionStream:
    """Start a streaming completion; the stream owns its HTTP client.

    Example:
        async with stream("Tell me a story", config=config) as updates:
            async for update in updates:
                if isinstance(update, PartialText):
                    print(update.delta, end="")
    """
    endpoint = Endpoint(config, client=client, audit=audit)
    call = endpoint._new_call(_as_prompt(prompt), tools, params, streaming=True)
    return CompletionStream(
        call, endpoint._transport, audit=audit, on_close=endpoint.aclose
    )


__all__ = [
    "AuditRecord",
    "AuditSink",
    "CallPhase",
    "CompletionFailed",
    "CompletionResult",
    "CompletionStream",
    "ConfigurationError",
    "Endpoint",
    "InvalidState",
    "LoggingAuditSink",
    "MalformedFrame",
    "Message",
    "PartialText",
    "Prompt",
    "PromptError",
    "ProviderConfig",
    "RateLimitError",
    "SwitchboardError",
    "TextFragment",
    "ToolCallPart",
    "ToolDeclaration",
    "ToolInvocation",
    "ToolParameter",
    "TruncatedStream",
    "UnsupportedModel",
    "complete",
    "stream",
]
