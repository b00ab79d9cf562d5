"""Exception hierarchy for Switchboard."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class SwitchboardError(Exception):
    """Base exception for all Switchboard errors.

    ``provider`` and ``phase`` say where a call failed so callers can log and
    audit without parsing messages.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        phase: str | None = None,
    ) -> None:
        super().__init__(message)
        self.hint = hint
        self.provider = provider
        self.phase = phase


class ConfigurationError(SwitchboardError):
    """Provider configuration validation or resolution failed."""


class PromptError(SwitchboardError):
    """The prompt or its tool declarations are invalid for the target provider."""


class UnsupportedModel(SwitchboardError):
    """The provider cannot serve the requested model name."""


class InvalidState(SwitchboardError):
    """A call or accumulator was driven outside its legal lifecycle (a bug)."""


class CompletionFailed(SwitchboardError):
    """The upstream completion call failed.

    Carries retry metadata so a layer above the endpoint can apply its own
    backoff policy. The core never retries.
    """

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        provider: str | None = None,
        phase: str | None = None,
        status_code: int | None = None,
        retryable: bool | None = None,
        retry_after_s: float | None = None,
    ) -> None:
        super().__init__(message, hint=hint, provider=provider, phase=phase)
        self.status_code = status_code
        self.retryable = retryable
        self.retry_after_s = retry_after_s


class RateLimitError(CompletionFailed):
    """Rate limit exceeded (HTTP 429)."""


class TruncatedStream(CompletionFailed):
    """A streamed response ended before the provider's end-of-stream marker.

    Whatever was received so far may be incomplete and is never finalized.
    """


class MalformedFrame(CompletionFailed):
    """A frame that should have been well-formed JSON could not be parsed."""


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain, with cycle protection."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)
