from __future__ import annotations

import pytest

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
    _walk_exception_chain,
)

pytestmark = pytest.mark.unit


def test_completion_failed_structured_metadata() -> None:
    err = CompletionFailed(
        "boom",
        hint="do this",
        retryable=True,
        status_code=503,
        retry_after_s=2.0,
        provider="gemini",
        phase="transport",
    )

    assert str(err) == "boom"
    assert err.hint == "do this"
    assert err.retryable is True
    assert err.status_code == 503
    assert err.retry_after_s == 2.0
    assert err.provider == "gemini"
    assert err.phase == "transport"


def test_completion_failed_defaults_to_none() -> None:
    err = CompletionFailed("fail")
    assert err.hint is None
    assert err.retryable is None
    assert err.status_code is None
    assert err.retry_after_s is None
    assert err.provider is None
    assert err.phase is None


@pytest.mark.parametrize(
    "cls", [RateLimitError, TruncatedStream, MalformedFrame]
)
def test_stream_and_rate_errors_are_completion_failures(cls: type) -> None:
    err = cls("x", provider="hugging_face")
    assert isinstance(err, CompletionFailed)
    assert isinstance(err, SwitchboardError)


@pytest.mark.parametrize(
    "cls", [ConfigurationError, PromptError, UnsupportedModel, InvalidState]
)
def test_non_transport_errors_are_not_completion_failures(cls: type) -> None:
    err = cls("x")
    assert isinstance(err, SwitchboardError)
    assert not isinstance(err, CompletionFailed)


def test_walk_exception_chain_visits_cause_and_context_once() -> None:
    root = ValueError("root")
    middle = RuntimeError("middle")
    middle.__cause__ = root
    top = CompletionFailed("top")
    top.__context__ = middle
    # Cycle back to the top must not loop forever.
    root.__context__ = top

    seen = list(_walk_exception_chain(top))
    assert seen == [top, middle, root]
