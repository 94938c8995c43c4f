"""Blocking HTTP client for driving the service under test.

``HTTPClient.send`` encodes the request body from its Content-Type, runs
the request over an aiohttp session and hands back a ``Response`` whose
body can be read any number of times.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from collections.abc import Coroutine
from dataclasses import replace
from types import TracebackType
from typing import Any
from typing import TypeVar

import aiohttp
from multidict import CIMultiDict

from .debugprint import debug
from .encoding import RequestOptions
from .encoding import is_structured
from .encoding import prepare_request
from .errors import ServiceConnectionError

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 10.0

TRANSPORT_ERRORS = (aiohttp.ClientError, asyncio.TimeoutError, OSError)

logger = logging.getLogger("proxytestkit.client")


class Response:
    """An HTTP response with a memoised body.

    ``read_body`` returns a ``(body, error)`` pair. The first call performs
    the read; every later call returns the same pair without touching the
    connection again. The client that produced the response reads it before
    sending its next request, so an unread body never holds a pooled
    connection.
    """

    def __init__(
        self,
        status: int,
        headers: CIMultiDict[str],
        reader: Callable[[], bytes],
        request: RequestOptions | None = None,
        charset: str | None = None,
    ):
        self.status = status
        self.headers = headers
        self.request = request
        self._reader = reader
        self._charset = charset or "utf-8"
        self._body_read = False
        self._cached_body: str | None = None
        self._cached_error: BaseException | None = None

    def read_body(self) -> tuple[str | None, BaseException | None]:
        if not self._body_read:
            self._body_read = True
            try:
                self._cached_body = self._reader().decode(self._charset, errors="replace")
            except TRANSPORT_ERRORS as e:
                logger.debug("reading response body failed: %r", e)
                self._cached_error = e
        return self._cached_body, self._cached_error

    @property
    def body_read(self) -> bool:
        return self._body_read

    def __repr__(self) -> str:
        return f"<Response status={self.status}>"


class HTTPTransport:
    """An aiohttp session bound to one host, run on a private event loop."""

    def __init__(self, host: str, port: int, timeout_seconds: float, https: bool = False):
        self.host = host
        self.port = port
        self.timeout_seconds = timeout_seconds
        self.scheme = "https" if https else "http"
        self._loop = asyncio.new_event_loop()
        self._session: aiohttp.ClientSession | None = None

    def _run(self, coro: Coroutine[Any, Any, T]) -> T:
        return self._loop.run_until_complete(coro)

    async def _connect(self) -> aiohttp.ClientSession:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(self.host, self.port), self.timeout_seconds
        )
        writer.close()
        await writer.wait_closed()
        return aiohttp.ClientSession()

    def connect(self) -> None:
        try:
            self._session = self._run(self._connect())
        except (OSError, asyncio.TimeoutError) as e:
            self.close()
            raise ServiceConnectionError(self.host, self.port, e) from e
        logger.debug("connected to %s:%d", self.host, self.port)

    def _timeout(self, timeout_seconds: float | None) -> aiohttp.ClientTimeout:
        seconds = timeout_seconds if timeout_seconds is not None else self.timeout_seconds
        return aiohttp.ClientTimeout(total=None, connect=seconds, sock_read=seconds)

    async def _request(self, options: RequestOptions) -> aiohttp.ClientResponse:
        if self._session is None:
            raise RuntimeError("transport is not connected")
        url = f"{self.scheme}://{self.host}:{self.port}{options.path}"
        headers = {str(k): str(v) for k, v in options.headers.items()}
        extra: dict[str, Any] = {}
        if self.scheme == "https":
            # test certificates are self-signed
            extra["ssl"] = False
        return await self._session.request(
            options.method,
            url,
            headers=headers,
            data=options.body,
            params=options.query,
            timeout=self._timeout(options.timeout_seconds),
            allow_redirects=False,
            **extra,
        )

    def request(self, options: RequestOptions) -> aiohttp.ClientResponse:
        return self._run(self._request(options))

    def read(self, response: aiohttp.ClientResponse) -> bytes:
        try:
            return self._run(response.read())
        except TRANSPORT_ERRORS:
            response.close()
            raise

    def close(self) -> None:
        if self._loop.is_closed():
            return
        if self._session is not None and not self._session.closed:
            self._run(self._session.close())
        self._loop.close()

    @property
    def closed(self) -> bool:
        return self._loop.is_closed()


class HTTPClient:
    """Test client that encodes request bodies and caches response bodies.

    Besides ``send`` it forwards ``request``, ``set_timeout`` and ``close``
    to the underlying transport. Nothing else is exposed.
    """

    def __init__(self, transport: HTTPTransport):
        self._transport = transport
        self._last_response: Response | None = None

    @property
    def transport(self) -> HTTPTransport:
        return self._transport

    def send(
        self, options: RequestOptions | None = None, **fields: Any
    ) -> tuple[Response | None, BaseException | None]:
        """Encode and send a request.

        ``options`` may be given as a ``RequestOptions`` or as keyword
        fields; keyword fields override the matching attributes of
        ``options``; ``timeout`` is accepted as an alias of
        ``timeout_seconds``. Transport failures are returned as the second
        element rather than raised.
        """
        if "timeout" in fields:
            fields["timeout_seconds"] = fields.pop("timeout")
        if options is None:
            options = RequestOptions(**fields)
        elif fields:
            options = replace(options, **fields)
        prepared = prepare_request(options)
        debug("HTTPClient.send", prepared.method, prepared.path)
        return self._send_prepared(prepared)

    def request(self, options: RequestOptions) -> tuple[Response | None, BaseException | None]:
        """Send ``options`` as-is, without body or query encoding."""
        if is_structured(options.body):
            raise TypeError("request() needs a raw body; use send() to encode structured bodies")
        return self._send_prepared(options)

    def _send_prepared(
        self, options: RequestOptions
    ) -> tuple[Response | None, BaseException | None]:
        if self._last_response is not None:
            # drain the previous body so its connection goes back to the pool
            self._last_response.read_body()
            self._last_response = None
        try:
            raw = self._transport.request(options)
        except TRANSPORT_ERRORS as e:
            logger.debug("%s %s failed: %r", options.method, options.path, e)
            return None, e

        response = Response(
            status=raw.status,
            headers=CIMultiDict(raw.headers),
            reader=lambda: self._transport.read(raw),
            request=options,
            charset=raw.charset,
        )
        self._last_response = response
        return response, None

    def set_timeout(self, timeout_seconds: float) -> None:
        self._transport.timeout_seconds = timeout_seconds

    def close(self) -> None:
        self._transport.close()

    @property
    def closed(self) -> bool:
        return self._transport.closed

    def __enter__(self) -> HTTPClient:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()


def open_client(
    host: str, port: int, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS, https: bool = False
) -> HTTPClient:
    """Connect to ``host:port`` and return a client.

    Raises ``ServiceConnectionError`` straight away if nothing is listening;
    the connection is not retried.
    """
    transport = HTTPTransport(host, port, timeout_seconds, https=https)
    transport.connect()
    return HTTPClient(transport)
