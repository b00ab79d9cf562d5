"""HTTP transport: one blocking call or one scoped, streamed response."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from switchboard.errors import SwitchboardError
from switchboard.providers._errors import status_error, wrap_transport_error

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from switchboard.providers.base import PreparedRequest

logger = logging.getLogger(__name__)


class Transport:
    """Perform prepared requests over a shared ``httpx.AsyncClient``.

    A client passed in by the caller is borrowed and never closed here;
    otherwise one is created lazily and closed by :meth:`aclose`.
    """

    def __init__(
        self, *, client: httpx.AsyncClient | None = None, timeout_s: float = 60.0
    ) -> None:
        self._client = client
        self._owns_client = client is None
        self._timeout = httpx.Timeout(timeout_s)

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def send(self, request: PreparedRequest) -> bytes:
        """Perform *request* and return the full response body."""
        client = self._get_client()
        logger.debug(
            "%s %s (%s, blocking)", request.method, request.url, request.provider
        )
        try:
            response = await client.request(
                request.method,
                request.url,
                params=dict(request.params),
                headers=dict(request.headers),
                content=request.body,
                timeout=self._timeout,
            )
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(
                e, provider=request.provider, phase="transport"
            ) from e

        if not response.is_success:
            raise status_error(response, provider=request.provider)
        return response.content

    async def stream(self, request: PreparedRequest) -> AsyncGenerator[str, None]:
        """Yield decoded text chunks of the response body as they arrive.

        The response is held open only while the generator runs: normal end,
        an error, or ``aclose()`` by an early-exiting consumer all release the
        connection.
        """
        client = self._get_client()
        logger.debug(
            "%s %s (%s, streaming)", request.method, request.url, request.provider
        )
        started = False
        try:
            async with client.stream(
                request.method,
                request.url,
                params=dict(request.params),
                headers=dict(request.headers),
                content=request.body,
                timeout=self._timeout,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise status_error(response, provider=request.provider)
                started = True
                async for chunk in response.aiter_text():
                    if chunk:
                        yield chunk
        except asyncio.CancelledError:
            raise
        except SwitchboardError:
            raise
        except httpx.HTTPError as e:
            raise wrap_transport_error(
                e, provider=request.provider, phase="transport", mid_stream=started
            ) from e

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client and self._client is not None:
            client, self._client = self._client, None
            await client.aclose()
