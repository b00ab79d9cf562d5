"""Endpoint façade: one entry point for blocking and streaming completions."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Iterable, Mapping
import json
import logging
from typing import TYPE_CHECKING, Any

from switchboard.audit import report
from switchboard.call import CallPhase, CompletionCall
from switchboard.errors import InvalidState, MalformedFrame, SwitchboardError
from switchboard.prompt import validate_tools
from switchboard.providers import get_dialect
from switchboard.transport import Transport
from switchboard.types import CompletionResult, PartialText

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    import httpx

    from switchboard.audit import AuditSink
    from switchboard.config import ProviderConfig
    from switchboard.prompt import Prompt, ToolDeclaration
    from switchboard.types import StreamUpdate

logger = logging.getLogger(__name__)


def _decode_body(raw: bytes, *, provider: str) -> Any:
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedFrame(
            f"{provider} returned a body that is not JSON: {e}",
            provider=provider,
            phase="decode",
        ) from e


class CompletionStream:
    """Async iterator of partial text updates, then one :class:`CompletionResult`.

    The HTTP response is opened on first iteration and closed when the
    stream ends, fails, or is closed. A bare ``break`` only stops pulling;
    the connection is released by ``aclose()``/``cancel()``, by leaving an
    ``async with`` (or ``contextlib.aclosing``) block, or, for a stream that
    is simply dropped, when it is garbage collected. Closing early discards
    any partially accumulated tool call.

    Example:
        async with endpoint.stream(prompt) as stream:
            async for update in stream:
                if isinstance(update, PartialText):
                    print(update.delta, end="")
    """

    def __init__(
        self,
        call: CompletionCall,
        transport: Transport,
        *,
        audit: AuditSink | None = None,
        on_close: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._call = call
        self._transport = transport
        self._audit = audit
        self._on_close = on_close
        self._updates = self._run()
        self._reported = False
        self._released = False
        self._closed = False

    @property
    def phase(self) -> CallPhase:
        """Current phase of the underlying call."""
        return self._call.phase

    @property
    def text(self) -> str:
        """Text received so far."""
        return self._call.text

    @property
    def result(self) -> CompletionResult | None:
        """The final result once the stream has finished, else None."""
        return self._call.result

    def __aiter__(self) -> CompletionStream:
        return self

    async def __anext__(self) -> StreamUpdate:
        if self._closed:
            raise StopAsyncIteration
        try:
            return await self._updates.__anext__()
        except BaseException:
            # End of stream, a failure or cancellation: release everything.
            await self.aclose()
            raise

    async def __aenter__(self) -> CompletionStream:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()

    async def collect(self) -> CompletionResult:
        """Consume the remaining updates and return the final result."""
        async for update in self:
            if isinstance(update, CompletionResult):
                return update
        if self._call.result is None:
            raise InvalidState(
                "Stream closed before producing a result",
                provider=self._call.provider,
                phase=self._call.phase.value,
            )
        return self._call.result

    async def aclose(self) -> None:
        """Stop the stream and release the connection. Idempotent."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._updates.aclose()
        finally:
            if not self._call.done:
                self._call.cancel()
            self._report()
            await self._release()

    async def cancel(self) -> None:
        """Cancel the in-flight call; same as :meth:`aclose`."""
        await self.aclose()

    def _report(self) -> None:
        if self._reported or not self._call.request_sent:
            return
        self._reported = True
        report(self._audit, self._call.audit_record())

    async def _release(self) -> None:
        if self._released:
            return
        self._released = True
        if self._on_close is not None:
            await self._on_close()

    async def _run(self) -> AsyncGenerator[StreamUpdate, None]:
        call = self._call
        chunks: AsyncGenerator[str, None] | None = None
        try:
            request = call.prepare()
            decoder = call.dialect.new_decoder()
            chunks = self._transport.stream(request)
            async for chunk in chunks:
                call.response_bytes += len(chunk.encode("utf-8"))
                for frame in decoder.feed(chunk):
                    delta = call.absorb_frame(frame)
                    if delta:
                        yield PartialText(delta=delta, text=call.text)
            for frame in decoder.close():
                delta = call.absorb_frame(frame)
                if delta:
                    yield PartialText(delta=delta, text=call.text)

            tail = call.drain()
            if tail:
                yield PartialText(delta=tail, text=call.text)
            result = call.finish()
        except (asyncio.CancelledError, GeneratorExit):
            call.cancel()
            raise
        except Exception as e:
            call.fail(e)
            logger.debug(
                "%s stream failed in phase %s: %s", call.provider, call.phase.value, e
            )
            raise
        finally:
            # Also reached through the event loop's async-generator finalizer
            # when an abandoned stream is garbage collected.
            try:
                if chunks is not None:
                    await chunks.aclose()
            finally:
                if call.done:
                    self._report()
                await self._release()
        yield result


class Endpoint:
    """A configured provider connection.

    One instance may serve many calls, concurrently; every call gets its own
    :class:`~switchboard.call.CompletionCall` state.

    Example:
        async with Endpoint(config) as endpoint:
            result = await endpoint.complete(Prompt.user("Hello"))
    """

    def __init__(
        self,
        config: ProviderConfig,
        *,
        client: httpx.AsyncClient | None = None,
        audit: AuditSink | None = None,
    ) -> None:
        self.config = config
        self.dialect = get_dialect(config.provider)
        self.audit = audit
        self._transport = Transport(client=client, timeout_s=config.timeout_s)

    def _new_call(
        self,
        prompt: Prompt,
        tools: Iterable[ToolDeclaration] | None,
        params: Mapping[str, Any] | None,
        *,
        streaming: bool,
    ) -> CompletionCall:
        resolved = prompt.tools if tools is None else tuple(tools)
        validate_tools(resolved)
        return CompletionCall(
            self.dialect,
            self.config,
            prompt,
            resolved,
            params,
            streaming=streaming,
        )

    async def complete(
        self,
        prompt: Prompt,
        tools: Iterable[ToolDeclaration] | None = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> CompletionResult:
        """Run one blocking completion and return its final result.

        ``tools`` defaults to ``prompt.tools``; ``params`` overrides
        ``config.params`` key by key.
        """
        call = self._new_call(prompt, tools, params, streaming=False)
        try:
            request = call.prepare()
            raw = await self._transport.send(request)
            call.response_bytes = len(raw)
            body = _decode_body(raw, provider=call.provider)
            call.absorb_body(body)
            call.drain()
            return call.finish()
        except asyncio.CancelledError:
            call.cancel()
            raise
        except SwitchboardError as e:
            call.fail(e)
            logger.debug(
                "%s call failed in phase %s: %s", call.provider, call.phase.value, e
            )
            raise
        except Exception as e:
            call.fail(e)
            raise
        finally:
            if call.request_sent:
                report(self.audit, call.audit_record())

    def stream(
        self,
        prompt: Prompt,
        tools: Iterable[ToolDeclaration] | None = None,
        *,
        params: Mapping[str, Any] | None = None,
    ) -> CompletionStream:
        """Start a streaming completion.

        Nothing is sent until the returned stream is first iterated.
        """
        call = self._new_call(prompt, tools, params, streaming=True)
        return CompletionStream(call, self._transport, audit=self.audit)

    async def aclose(self) -> None:
        """Release the HTTP client if this endpoint created it."""
        await self._transport.aclose()

    async def __aenter__(self) -> Endpoint:
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.aclose()
