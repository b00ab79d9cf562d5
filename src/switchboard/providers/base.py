"""Provider protocol: the capability set every dialect implements."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from switchboard.config import ProviderConfig
    from switchboard.prompt import Prompt, ToolDeclaration
    from switchboard.types import CompletionFragment


class ProviderKind(str, Enum):
    """Closed set of supported providers, keyed by ``ProviderConfig.provider``."""

    GEMINI = "gemini"
    HUGGING_FACE = "hugging_face"


@dataclass(frozen=True)
class ProviderCapabilities:
    """Feature flags exposed by providers."""

    #: Tool calls arrive as structured fields in the response.
    native_tool_calls: bool
    #: Tool calls arrive as ``<function_calls>`` markup inside the text.
    markup_tool_calls: bool = False


@dataclass(frozen=True)
class PreparedRequest:
    """An authenticated HTTP request ready for the transport."""

    method: str
    url: str
    headers: Mapping[str, str]
    body: bytes
    provider: str
    #: Query parameters (e.g. the Gemini API key); kept out of ``url`` for logging.
    params: Mapping[str, str] = field(default_factory=dict)

    def __repr__(self) -> str:
        """Return a representation without credentials."""
        return (
            f"PreparedRequest(method={self.method!r}, url={self.url!r}, "
            f"provider={self.provider!r}, body_bytes={len(self.body)})"
        )


@runtime_checkable
class ChunkDecoder(Protocol):
    """Per-call, stateful splitter from raw stream text to parsed frames."""

    @property
    def terminated(self) -> bool:
        """Whether the provider's end-of-stream marker has been seen."""
        ...

    def feed(self, chunk: str) -> list[Any]:
        """Return frames completed by *chunk* (possibly none)."""
        ...

    def close(self) -> list[Any]:
        """Flush remaining frames at end of body; raise if the stream was cut short."""
        ...


@runtime_checkable
class ProviderDialect(Protocol):
    """Adapter, request builder, decoder factory and extractor for one provider."""

    kind: ProviderKind

    @property
    def capabilities(self) -> ProviderCapabilities:
        """Feature flags for this provider."""
        ...

    def can_contact(self, model: str) -> bool:
        """Whether *model* is on this provider's allow-list."""
        ...

    def build_payload(
        self,
        prompt: Prompt,
        tools: tuple[ToolDeclaration, ...],
        config: ProviderConfig,
        params: Mapping[str, Any],
        *,
        streaming: bool,
    ) -> dict[str, Any]:
        """Build the provider-native request body."""
        ...

    def prepare_request(
        self, payload: dict[str, Any], config: ProviderConfig, *, streaming: bool
    ) -> PreparedRequest:
        """Serialize *payload* and attach URL and authentication."""
        ...

    def new_decoder(self) -> ChunkDecoder:
        """Return a fresh chunk decoder for one streamed call."""
        ...

    def extract(self, frame: Any, *, tool_mode: bool) -> CompletionFragment | None:
        """Extract one fragment from a streamed frame."""
        ...

    def extract_full(
        self, body: Any, *, tool_mode: bool
    ) -> CompletionFragment | None:
        """Extract the fragment of a complete (non-streamed) response body."""
        ...
