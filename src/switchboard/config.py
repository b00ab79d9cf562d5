"""Configuration: frozen ProviderConfig with explicit provider/model requirements."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
import os
from types import MappingProxyType
from typing import Any, Literal

from dotenv import load_dotenv

from switchboard.errors import ConfigurationError

load_dotenv()

ProviderName = Literal["gemini", "hugging_face"]

_PROVIDERS: tuple[ProviderName, ...] = ("gemini", "hugging_face")

_API_KEY_ENV_VARS: dict[ProviderName, str] = {
    "gemini": "GEMINI_API_KEY",
    "hugging_face": "HUGGING_FACE_API_KEY",
}

_DEFAULT_AUDIT_TAGS: dict[ProviderName, str] = {
    "gemini": "gemini",
    "hugging_face": "hugging_face_text_generation",
}

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"
HUGGING_FACE_URL_ENV_VAR = "HUGGING_FACE_API_URL"
HUGGING_FACE_TOKEN_LIMIT_ENV_VAR = "HUGGING_FACE_TOKEN_LIMIT"
DEFAULT_TOKEN_LIMIT = 4_000


@dataclass(frozen=True)
class ProviderConfig:
    """Immutable description of one completion provider.

    Provider and model are required. Credentials and endpoint URLs are
    auto-resolved from standard environment variables when not passed.

    Example:
        config = ProviderConfig(provider="gemini", model="gemini-pro")
        # API key is resolved from GEMINI_API_KEY
    """

    provider: ProviderName
    model: str
    #: Auto-resolved from ``GEMINI_API_KEY`` or ``HUGGING_FACE_API_KEY`` when *None*.
    api_key: str | None = None
    #: Gemini API root, or the Hugging Face inference URL (``HUGGING_FACE_API_URL``).
    base_url: str | None = None
    #: Default generation parameters; per-call params override them.
    params: Mapping[str, Any] = field(default_factory=dict)
    #: Provider identity reported to the audit collaborator.
    audit_tag: str | None = None
    #: Context window used to budget ``max_new_tokens`` (Hugging Face only).
    token_limit: int | None = None
    timeout_s: float = 60.0

    def __post_init__(self) -> None:
        """Resolve environment defaults and validate."""
        if self.provider not in _PROVIDERS:
            raise ConfigurationError(
                f"Unknown provider: {self.provider!r}",
                hint="Supported providers: 'gemini', 'hugging_face'",
            )
        if not isinstance(self.model, str) or not self.model.strip():
            raise ConfigurationError(
                "model must be a non-empty string",
                hint="Pass model='gemini-pro' or a Hugging Face model name.",
                provider=self.provider,
            )
        if self.timeout_s <= 0:
            raise ConfigurationError(
                f"timeout_s must be > 0, got {self.timeout_s}",
                hint="This bounds connect and read time for each request.",
                provider=self.provider,
            )
        if not isinstance(self.params, Mapping):
            raise ConfigurationError(
                "params must be a mapping of generation parameters",
                hint="Pass params={'temperature': 0.2}.",
                provider=self.provider,
            )
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

        env_var = _API_KEY_ENV_VARS[self.provider]
        if self.api_key is None:
            object.__setattr__(self, "api_key", os.environ.get(env_var) or None)

        if self.audit_tag is None:
            object.__setattr__(self, "audit_tag", _DEFAULT_AUDIT_TAGS[self.provider])

        if self.provider == "gemini":
            self._resolve_gemini(env_var)
        else:
            self._resolve_hugging_face()

    def _resolve_gemini(self, env_var: str) -> None:
        if self.base_url is None:
            object.__setattr__(self, "base_url", GEMINI_BASE_URL)
        if not self.api_key:
            raise ConfigurationError(
                "API key required for gemini",
                hint=f"Set {env_var} environment variable or pass api_key=...",
                provider=self.provider,
            )

    def _resolve_hugging_face(self) -> None:
        if self.base_url is None:
            object.__setattr__(
                self, "base_url", os.environ.get(HUGGING_FACE_URL_ENV_VAR) or None
            )
        if not self.base_url:
            raise ConfigurationError(
                "Inference URL required for hugging_face",
                hint=f"Set {HUGGING_FACE_URL_ENV_VAR} or pass base_url=...",
                provider=self.provider,
            )

        if self.token_limit is None:
            raw = os.environ.get(HUGGING_FACE_TOKEN_LIMIT_ENV_VAR)
            try:
                limit = int(raw) if raw else DEFAULT_TOKEN_LIMIT
            except ValueError as e:
                raise ConfigurationError(
                    f"{HUGGING_FACE_TOKEN_LIMIT_ENV_VAR} must be an integer, got {raw!r}",
                    provider=self.provider,
                ) from e
            object.__setattr__(self, "token_limit", limit)
        if self.token_limit is not None and self.token_limit < 1:
            raise ConfigurationError(
                f"token_limit must be ≥ 1, got {self.token_limit}",
                hint="This is the model's context window in tokens.",
                provider=self.provider,
            )

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"ProviderConfig(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"base_url={self.base_url!r})"
        )

    __repr__ = __str__
