"""Provider dialects and dispatch on ``ProviderConfig.provider``."""

from __future__ import annotations

from types import MappingProxyType

from switchboard.errors import ConfigurationError
from switchboard.providers.base import (
    ChunkDecoder,
    PreparedRequest,
    ProviderCapabilities,
    ProviderDialect,
    ProviderKind,
)
from switchboard.providers.gemini import GeminiDialect
from switchboard.providers.hugging_face import HuggingFaceDialect

# Immutable capability table, one stateless dialect per provider.
DIALECTS = MappingProxyType(
    {
        ProviderKind.GEMINI: GeminiDialect(),
        ProviderKind.HUGGING_FACE: HuggingFaceDialect(),
    }
)


def get_dialect(provider: str | ProviderKind) -> ProviderDialect:
    """Return the dialect for *provider*."""
    try:
        kind = ProviderKind(provider)
    except ValueError as e:
        raise ConfigurationError(
            f"Unknown provider: {provider!r}",
            hint=f"Supported providers: {', '.join(k.value for k in ProviderKind)}",
        ) from e
    return DIALECTS[kind]


__all__ = [
    "DIALECTS",
    "ChunkDecoder",
    "GeminiDialect",
    "HuggingFaceDialect",
    "PreparedRequest",
    "ProviderCapabilities",
    "ProviderDialect",
    "ProviderKind",
    "get_dialect",
]
