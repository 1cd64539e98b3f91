"""HTTP collaborator interface and its aiohttp-backed implementation."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from functools import cached_property
from typing import TYPE_CHECKING, Any, Protocol

import aiohttp

from loadweave._internal.errors import TransportError
from loadweave._internal.logging import get_logger

if TYPE_CHECKING:
    from loadweave._internal.types import Headers

logger = get_logger("dsl.http")


@dataclass(frozen=True)
class RequestSpec:
    """A fully rendered HTTP request, ready to be sent.

    Attributes:
        method: HTTP method (GET, POST, etc.).
        url: Absolute request URL.
        headers: Request headers.
        body: Raw text body, a JSON-serialisable structure, or None.
    """

    method: str
    url: str
    headers: Headers = field(default_factory=dict)
    body: Any = None


@dataclass(frozen=True)
class Response:
    """An HTTP response as seen by checks and extractors.

    Attributes:
        status: HTTP status code.
        headers: Response headers (names as sent by the server).
        body: Raw response body.
    """

    status: int
    headers: Headers = field(default_factory=dict)
    body: bytes = b""

    @cached_property
    def text(self) -> str:
        """Return the body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        """Return the body parsed as JSON.

        Raises:
            ValueError: If the body is not valid JSON.
        """
        return json.loads(self.text)

    def header(self, name: str) -> str | None:
        """Return a header value using a case-insensitive lookup."""
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None


class Transport(Protocol):
    """The HTTP collaborator the chain interpreter sends calls through.

    Implementations own connection pooling, TLS and socket-level retries, and
    signal any delivery problem by raising :class:`TransportError`.
    """

    async def send_request(self, request: RequestSpec) -> Response:
        """Send *request* and return the complete response."""
        ...


class AiohttpTransport:
    """Transport backed by a shared ``aiohttp.ClientSession``.

    Use as an async context manager; the connection pool lives for the
    duration of the ``async with`` block and is shared by every virtual user.

    Attributes:
        pool_size: Maximum simultaneous connections.
    """

    def __init__(self, timeout: float = 30.0, pool_size: int = 100) -> None:
        """Initialize the transport.

        Args:
            timeout: Total request timeout in seconds.
            pool_size: Maximum simultaneous connections.
        """
        self.pool_size = pool_size
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self) -> AiohttpTransport:
        """Open the underlying aiohttp session."""
        self._session = aiohttp.ClientSession(
            timeout=self._timeout,
            connector=aiohttp.TCPConnector(limit=self.pool_size),
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: object | None,
    ) -> None:
        """Close the underlying aiohttp session."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    async def send_request(self, request: RequestSpec) -> Response:
        """Send a request and read the full body.

        Args:
            request: The rendered request.

        Returns:
            The response with its body fully read.

        Raises:
            RuntimeError: If used outside of an async context manager.
            TransportError: On connection errors, timeouts, and headers or
                bodies that cannot be encoded.
        """
        if self._session is None:
            msg = "AiohttpTransport must be used as an async context manager"
            raise RuntimeError(msg)

        kwargs: dict[str, Any] = {"headers": request.headers}
        if isinstance(request.body, str | bytes):
            kwargs["data"] = request.body
        elif request.body is not None:
            kwargs["json"] = request.body

        try:
            async with self._session.request(request.method, request.url, **kwargs) as resp:
                body = await resp.read()
                return Response(status=resp.status, headers=dict(resp.headers), body=body)
        except (aiohttp.ClientError, TimeoutError, ValueError, TypeError) as exc:
            # ValueError/TypeError: headers or JSON body aiohttp refuses to encode
            msg = f"{type(exc).__name__}: {exc}"
            raise TransportError(msg) from exc
