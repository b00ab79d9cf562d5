"""Configuration behavior tests."""

from __future__ import annotations

import pytest

from switchboard.config import (
    DEFAULT_TOKEN_LIMIT,
    GEMINI_BASE_URL,
    ProviderConfig,
)
from switchboard.errors import ConfigurationError
from tests.conftest import GEMINI_MODEL, HUGGING_FACE_MODEL, HUGGING_FACE_URL

pytestmark = pytest.mark.unit


def test_gemini_key_resolves_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")

    config = ProviderConfig(provider="gemini", model=GEMINI_MODEL)

    assert config.api_key == "env-key"
    assert config.base_url == GEMINI_BASE_URL
    assert config.audit_tag == "gemini"


def test_explicit_key_wins_over_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("GEMINI_API_KEY", "env-key")
    config = ProviderConfig(provider="gemini", model=GEMINI_MODEL, api_key="mine")
    assert config.api_key == "mine"


def test_gemini_without_key_fails_with_hint() -> None:
    with pytest.raises(ConfigurationError) as exc:
        ProviderConfig(provider="gemini", model=GEMINI_MODEL)

    assert exc.value.hint is not None
    assert "GEMINI_API_KEY" in exc.value.hint
    assert exc.value.provider == "gemini"


def test_hugging_face_url_and_limit_resolve_from_environment(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("HUGGING_FACE_API_URL", HUGGING_FACE_URL)
    monkeypatch.setenv("HUGGING_FACE_TOKEN_LIMIT", "8192")

    config = ProviderConfig(provider="hugging_face", model=HUGGING_FACE_MODEL)

    assert config.base_url == HUGGING_FACE_URL
    assert config.token_limit == 8192
    assert config.api_key is None
    assert config.audit_tag == "hugging_face_text_generation"


def test_hugging_face_token_limit_defaults() -> None:
    config = ProviderConfig(
        provider="hugging_face", model=HUGGING_FACE_MODEL, base_url=HUGGING_FACE_URL
    )
    assert config.token_limit == DEFAULT_TOKEN_LIMIT


def test_hugging_face_requires_url() -> None:
    with pytest.raises(ConfigurationError) as exc:
        ProviderConfig(provider="hugging_face", model=HUGGING_FACE_MODEL)
    assert "HUGGING_FACE_API_URL" in (exc.value.hint or "")


def test_hugging_face_rejects_non_integer_limit(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    monkeypatch.setenv("HUGGING_FACE_TOKEN_LIMIT", "lots")
    with pytest.raises(ConfigurationError, match="must be an integer"):
        ProviderConfig(
            provider="hugging_face",
            model=HUGGING_FACE_MODEL,
            base_url=HUGGING_FACE_URL,
        )


@pytest.mark.parametrize(
    ("kwargs", "match"),
    [
        ({"provider": "openai", "model": "gpt"}, "Unknown provider"),
        ({"provider": "gemini", "model": "  "}, "non-empty"),
        (
            {"provider": "gemini", "model": GEMINI_MODEL, "timeout_s": 0},
            "timeout_s",
        ),
        (
            {"provider": "gemini", "model": GEMINI_MODEL, "params": ["temperature"]},
            "mapping",
        ),
    ],
)
def test_invalid_configs_are_rejected(kwargs: dict, match: str) -> None:
    kwargs.setdefault("api_key", "k")
    with pytest.raises(ConfigurationError, match=match):
        ProviderConfig(**kwargs)


def test_params_are_frozen_copies() -> None:
    source = {"temperature": 0.1}
    config = ProviderConfig(
        provider="gemini", model=GEMINI_MODEL, api_key="k", params=source
    )
    source["temperature"] = 0.9

    assert config.params["temperature"] == 0.1
    with pytest.raises(TypeError):
        config.params["temperature"] = 1.0  # type: ignore[index]


def test_str_and_repr_redact_the_api_key() -> None:
    config = ProviderConfig(provider="gemini", model=GEMINI_MODEL, api_key="secret")

    assert "secret" not in str(config)
    assert "secret" not in repr(config)
    assert "[REDACTED]" in repr(config)
