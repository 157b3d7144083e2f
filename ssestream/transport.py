"""HTTP transport for ssestream, built on httpx."""

from typing import AsyncIterator, Dict, Optional, Protocol

import httpx


DEFAULT_CHUNK_SIZE = 1024 * 8


class ByteStream(Protocol):
    """A readable byte stream owned by a connected state."""

    @property
    def url(self) -> str: ...

    @property
    def closed(self) -> bool: ...

    async def read(self) -> bytes: ...

    async def aclose(self) -> None: ...


class ResponseStream:
    """
    Bounded reads over a streaming ``httpx.Response``.

    ``read()`` returns at most ``chunk_size`` bytes, or ``b""`` once the
    server has closed the stream.
    """

    def __init__(self, response: httpx.Response, chunk_size: int = DEFAULT_CHUNK_SIZE) -> None:
        self._response = response
        self._chunk_size = chunk_size
        self._chunks: AsyncIterator[bytes] = response.aiter_bytes()
        self._pending = b""
        self._closed = False

    @property
    def url(self) -> str:
        """The resolved URL, after any redirects."""
        return str(self._response.url)

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self) -> bytes:
        while not self._pending:
            try:
                self._pending = await self._chunks.__anext__()
            except StopAsyncIteration:
                return b""
        data = self._pending[: self._chunk_size]
        self._pending = self._pending[self._chunk_size:]
        return data

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._response.aclose()


class HttpTransport:
    """
    Issues the streaming GET for a connecting state.

    Proxy settings from the environment are ignored and redirects are
    followed. Pass ``client`` to reuse an existing ``httpx.AsyncClient``; it
    is then left open by ``aclose()``.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            trust_env=False,
            follow_redirects=True,
            timeout=httpx.Timeout(None, connect=connect_timeout),
        )

    async def __aenter__(self) -> "HttpTransport":
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def open(self, url: str, headers: Optional[Dict[str, str]] = None) -> httpx.Response:
        """Send the request and return the response with its body unread."""
        request = self._client.build_request("GET", url, headers=headers)
        return await self._client.send(request, stream=True)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
