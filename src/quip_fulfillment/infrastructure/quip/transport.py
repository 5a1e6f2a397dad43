"""aiohttp-backed transport for Quip REST and websocket calls."""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Mapping
from contextlib import AsyncExitStack
from dataclasses import dataclass, field
from typing import Protocol
from urllib.parse import unquote, urlparse

import aiohttp

from quip_fulfillment.infrastructure.quip.encoding import FormValue, LocalBlob, RemoteBlob

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QuipHttpResponse:
    """Normalized HTTP response data returned by transport implementations."""

    status_code: int
    body_bytes: bytes
    headers: Mapping[str, str] = field(default_factory=dict)


class QuipHttpTransportPort(Protocol):
    """Transport protocol used by the Quip client."""

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        form: Mapping[str, FormValue] | None,
        timeout_seconds: float,
    ) -> QuipHttpResponse:
        """Execute one HTTP request and return normalized response data."""

    async def connect_websocket(self, *, url: str, origin: str) -> aiohttp.ClientWebSocketResponse:
        """Open a websocket connection declaring the given `Origin`."""

    async def aclose(self) -> None:
        """Release network resources held by the transport."""


class AiohttpQuipTransport:
    """Transport sharing a single aiohttp session across calls.

    Non-2xx statuses are returned as data; connection failures and timeouts
    propagate as aiohttp/OS exceptions.
    """

    def __init__(self, *, session: aiohttp.ClientSession | None = None) -> None:
        self._session = session
        self._owns_session = session is None

    async def request(
        self,
        *,
        method: str,
        url: str,
        headers: dict[str, str],
        form: Mapping[str, FormValue] | None,
        timeout_seconds: float,
    ) -> QuipHttpResponse:
        session = self._get_session()
        timeout = aiohttp.ClientTimeout(total=timeout_seconds) if timeout_seconds else None
        async with AsyncExitStack() as stack:
            data = None
            if form is not None:
                data = await self._build_form_data(
                    form,
                    session=session,
                    stack=stack,
                    timeout=timeout,
                )
            async with session.request(
                method,
                url,
                headers=headers,
                data=data,
                timeout=timeout,
            ) as response:
                payload = await response.read()
                return QuipHttpResponse(
                    status_code=response.status,
                    body_bytes=payload,
                    headers=dict(response.headers),
                )

    async def connect_websocket(self, *, url: str, origin: str) -> aiohttp.ClientWebSocketResponse:
        session = self._get_session()
        return await session.ws_connect(url, origin=origin)

    async def aclose(self) -> None:
        if self._owns_session and self._session is not None:
            await self._session.close()
            self._session = None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession()
            self._owns_session = True
        return self._session

    async def _build_form_data(
        self,
        form: Mapping[str, FormValue],
        *,
        session: aiohttp.ClientSession,
        stack: AsyncExitStack,
        timeout: aiohttp.ClientTimeout | None,
    ) -> aiohttp.FormData:
        form_data = aiohttp.FormData()
        for name, value in form.items():
            if isinstance(value, LocalBlob):
                handle = await asyncio.to_thread(open, value.path, "rb")
                stack.callback(handle.close)
                form_data.add_field(name, handle, filename=os.path.basename(value.path))
            elif isinstance(value, RemoteBlob):
                source = await stack.enter_async_context(session.get(value.url, timeout=timeout))
                source.raise_for_status()
                logger.debug(
                    "quip_blob_stream_opened url=%s content_type=%s",
                    value.url,
                    source.content_type,
                )
                form_data.add_field(
                    name,
                    source.content,
                    filename=_filename_from_url(value.url),
                    content_type=source.content_type,
                )
            else:
                form_data.add_field(name, value)
        return form_data


def _filename_from_url(url: str) -> str:
    name = unquote(os.path.basename(urlparse(url).path))
    return name or "blob"
