"""Per-call state machine: build, extract, accumulate, finalize.

One :class:`CompletionCall` exists per in-flight completion. It owns the
tool-call buffer, the "has seen a tool call" flag and the running text, and
is the only place that decides when accumulation is complete.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
import logging
import time
from typing import TYPE_CHECKING, Any

from switchboard.accumulator import ToolInvocationBuffer, ToolMarkupDetector, fold
from switchboard.audit import AuditRecord
from switchboard.errors import InvalidState, MalformedFrame, SwitchboardError
from switchboard.providers._utils import merge_params
from switchboard.tokens import estimate_tokens
from switchboard.types import CompletionResult, TextFragment, ToolCallPart

if TYPE_CHECKING:
    from switchboard.config import ProviderConfig
    from switchboard.prompt import Prompt, ToolDeclaration
    from switchboard.providers.base import PreparedRequest, ProviderDialect
    from switchboard.types import CompletionFragment

logger = logging.getLogger(__name__)


class CallPhase(str, Enum):
    """Lifecycle of one completion call."""

    IDLE = "idle"
    PAYLOAD_BUILT = "payload_built"
    STREAMING = "streaming"
    BLOCKING = "blocking"
    EXTRACTING = "extracting"
    ACCUMULATING = "accumulating"
    FINALIZED = "finalized"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TERMINAL = frozenset({CallPhase.FINALIZED, CallPhase.FAILED, CallPhase.CANCELLED})
_ABORT = frozenset({CallPhase.FAILED, CallPhase.CANCELLED})

_TRANSITIONS: Mapping[CallPhase, frozenset[CallPhase]] = {
    CallPhase.IDLE: frozenset({CallPhase.PAYLOAD_BUILT}) | _ABORT,
    CallPhase.PAYLOAD_BUILT: frozenset({CallPhase.STREAMING, CallPhase.BLOCKING})
    | _ABORT,
    CallPhase.STREAMING: frozenset(
        {CallPhase.EXTRACTING, CallPhase.ACCUMULATING, CallPhase.FINALIZED}
    )
    | _ABORT,
    CallPhase.BLOCKING: frozenset({CallPhase.EXTRACTING}) | _ABORT,
    CallPhase.EXTRACTING: frozenset(
        {CallPhase.ACCUMULATING, CallPhase.STREAMING, CallPhase.FINALIZED}
    )
    | _ABORT,
    CallPhase.ACCUMULATING: frozenset(
        {CallPhase.ACCUMULATING, CallPhase.STREAMING, CallPhase.FINALIZED}
    )
    | _ABORT,
}


class CompletionCall:
    """State for a single completion, exclusively owned by that call."""

    def __init__(
        self,
        dialect: ProviderDialect,
        config: ProviderConfig,
        prompt: Prompt,
        tools: tuple[ToolDeclaration, ...],
        params: Mapping[str, Any] | None = None,
        *,
        streaming: bool,
    ) -> None:
        self.dialect = dialect
        self.config = config
        self.prompt = prompt
        self.tools = tools
        self.params = merge_params(config.params, params or {})
        self.streaming = streaming

        self.phase = CallPhase.IDLE
        self.has_tool_call = False
        self.buffer = ToolInvocationBuffer()
        self._text: list[str] = []
        self._markup = (
            ToolMarkupDetector()
            if tools and dialect.capabilities.markup_tool_calls
            else None
        )
        self.result: CompletionResult | None = None
        self.error: BaseException | None = None

        self.request_sent = False
        self.request_bytes = 0
        self.response_bytes = 0
        self._started = time.monotonic()

    @property
    def provider(self) -> str:
        """Provider name used in errors and logs."""
        return self.dialect.kind.value

    @property
    def done(self) -> bool:
        """Whether the call reached a terminal phase."""
        return self.phase in _TERMINAL

    @property
    def text(self) -> str:
        """Text emitted so far."""
        return "".join(self._text)

    def advance(self, phase: CallPhase) -> None:
        """Move to *phase*, rejecting transitions the lifecycle does not allow."""
        allowed = _TRANSITIONS.get(self.phase, frozenset())
        if phase not in allowed:
            raise InvalidState(
                f"Illegal call transition {self.phase.value} -> {phase.value}",
                provider=self.provider,
                phase=self.phase.value,
            )
        self.phase = phase

    def prepare(self) -> PreparedRequest:
        """Build the payload and the authenticated request."""
        payload = self.dialect.build_payload(
            self.prompt,
            self.tools,
            self.config,
            self.params,
            streaming=self.streaming,
        )
        request = self.dialect.prepare_request(
            payload, self.config, streaming=self.streaming
        )
        self.request_bytes = len(request.body)
        self.advance(CallPhase.PAYLOAD_BUILT)
        self.advance(CallPhase.STREAMING if self.streaming else CallPhase.BLOCKING)
        self.request_sent = True
        return request

    def absorb_frame(self, frame: Any) -> str:
        """Extract one streamed frame and fold it in; return text to emit."""
        self.advance(CallPhase.EXTRACTING)
        fragment = self.dialect.extract(frame, tool_mode=self.has_tool_call)
        delta = self.absorb(fragment)
        self.advance(CallPhase.STREAMING)
        return delta

    def absorb_body(self, body: Any) -> str:
        """Extract a complete (non-streamed) response body."""
        self.advance(CallPhase.EXTRACTING)
        fragment = self.dialect.extract_full(body, tool_mode=self.has_tool_call)
        return self.absorb(fragment)

    def absorb(self, fragment: CompletionFragment | None) -> str:
        """Route *fragment* to the text or the tool-call buffer."""
        if fragment is None:
            return ""

        if isinstance(fragment, ToolCallPart):
            if not self.has_tool_call:
                logger.debug("%s call switched to tool mode", self.provider)
                self.has_tool_call = True
            self.advance(CallPhase.ACCUMULATING)
            fold(self.buffer, fragment)
            return ""

        if not isinstance(fragment, TextFragment):
            raise InvalidState(
                f"Unknown fragment type {type(fragment).__name__}",
                provider=self.provider,
                phase=self.phase.value,
            )

        text = fragment.text
        if self._markup is not None:
            text = self._markup.feed(text)
            if self._markup.tool_mode and not self.has_tool_call:
                logger.debug("%s call switched to tool mode (markup)", self.provider)
                self.has_tool_call = True
        elif self.has_tool_call:
            return ""

        if text:
            self._text.append(text)
        return text

    def drain(self) -> str:
        """Release text held back while checking for tool-call markup."""
        if self._markup is None:
            return ""
        tail = self._markup.flush()
        if tail:
            self._text.append(tail)
        return tail

    def finish(self) -> CompletionResult:
        """Finalize the call into exactly one kind of result."""
        if self.has_tool_call:
            if self._markup is not None:
                for part in self._markup.fragments():
                    self.advance(CallPhase.ACCUMULATING)
                    fold(self.buffer, part)
            if self.buffer.tool_name is None:
                raise MalformedFrame(
                    f"{self.provider} tool call arrived without a tool name",
                    provider=self.provider,
                    phase="accumulate",
                )
            result = CompletionResult.from_invocation(self.buffer.finalize())
        else:
            result = CompletionResult.from_text(self.text)

        self.advance(CallPhase.FINALIZED)
        self.result = result
        logger.debug("%s call finalized as %s", self.provider, result.kind)
        return result

    def fail(self, exc: BaseException) -> None:
        """Mark the call failed and attribute *exc* to this provider and phase."""
        if isinstance(exc, SwitchboardError):
            if exc.provider is None:
                exc.provider = self.provider
            if exc.phase is None:
                exc.phase = self.phase.value
        self.error = exc
        if not self.done:
            self.phase = CallPhase.FAILED

    def cancel(self) -> None:
        """Abandon the call; the tool-call buffer is discarded, never finalized."""
        if not self.done:
            logger.debug(
                "%s call cancelled in phase %s", self.provider, self.phase.value
            )
            self.phase = CallPhase.CANCELLED
            self.buffer = ToolInvocationBuffer()

    def audit_record(self) -> AuditRecord:
        """Summarize this call for the audit collaborator."""
        response_text = ""
        if self.result is not None:
            response_text = (
                self.result.text
                if self.result.text is not None
                else self.result.tool_invocation.to_markup()  # type: ignore[union-attr]
            )
        else:
            response_text = self.text

        phase = self.phase.value
        if self.phase is CallPhase.FAILED and isinstance(self.error, SwitchboardError):
            phase = self.error.phase or phase

        return AuditRecord(
            provider_tag=self.config.audit_tag or self.provider,
            model=self.config.model,
            streaming=self.streaming,
            request_bytes=self.request_bytes,
            response_bytes=self.response_bytes,
            request_tokens=estimate_tokens(self.prompt.text()),
            response_tokens=estimate_tokens(response_text),
            success=self.phase is CallPhase.FINALIZED,
            duration_s=time.monotonic() - self._started,
            phase=phase,
            error=str(self.error) if self.error is not None else None,
        )
