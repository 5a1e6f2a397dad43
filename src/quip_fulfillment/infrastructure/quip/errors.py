"""Error types raised by the Quip API adapter.

Transport-level failures (DNS, refused connections, timeouts) are not wrapped:
they propagate as the underlying aiohttp/OS exception.
"""

from __future__ import annotations

from collections.abc import Mapping

import aiohttp


class QuipError(RuntimeError):
    """Base class for errors defined by the Quip adapter."""


class QuipDecodeError(QuipError):
    """Raised when a Quip response body is not valid JSON."""

    def __init__(self, *, path: str, body: str) -> None:
        super().__init__(f"Invalid response for {path}: {body}")
        self.path = path
        self.body = body


class QuipClientError(QuipError):
    """Raised when Quip answers with valid JSON and a non-200 status."""

    def __init__(
        self,
        *,
        path: str,
        status_code: int,
        headers: Mapping[str, str],
        info: object,
    ) -> None:
        super().__init__(f"{path} failed with status {status_code}: {_describe(info)}")
        self.path = path
        self.status_code = status_code
        self.headers = dict(headers)
        self.info = info


class QuipWebsocketError(QuipError):
    """Raised when Quip does not grant a websocket URL."""


def _describe(info: object) -> str:
    if isinstance(info, Mapping):
        for key in ("error_description", "error"):
            value = info.get(key)
            if isinstance(value, str) and value:
                return value
    return str(info)[:200]


# Exceptions a Quip call may raise: adapter errors plus unwrapped transport failures.
QUIP_CALL_ERRORS: tuple[type[BaseException], ...] = (
    QuipError,
    aiohttp.ClientError,
    TimeoutError,
    OSError,
)
