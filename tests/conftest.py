"""Shared helpers for ssestream tests."""

import asyncio
from typing import AsyncIterator, Callable, List, Sequence, Union

import httpx
import pytest

from ssestream import HttpTransport


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

STREAM_URL = "https://events.example.com/stream"


# ---------------------------------------------------------------------------
# Fake byte stream
# ---------------------------------------------------------------------------

class FakeStream:
    """
    In-memory stand-in for a response stream.

    Each ``read()`` pops the next item: bytes are returned, exceptions are
    raised. Once the items run out, reads return ``b""`` or, with
    ``block=True``, wait forever.
    """

    def __init__(
        self,
        items: Sequence[Union[bytes, BaseException]] = (),
        url: str = STREAM_URL,
        block: bool = False,
    ) -> None:
        self._items = list(items)
        self._url = url
        self._block = block
        self.close_count = 0

    @property
    def url(self) -> str:
        return self._url

    @property
    def closed(self) -> bool:
        return self.close_count > 0

    async def read(self) -> bytes:
        if not self._items:
            if self._block:
                await asyncio.Event().wait()
            return b""
        item = self._items.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item

    async def aclose(self) -> None:
        self.close_count += 1


# ---------------------------------------------------------------------------
# httpx mock helpers
# ---------------------------------------------------------------------------

async def _chunks(chunks: Sequence[bytes], hang: bool) -> AsyncIterator[bytes]:
    for chunk in chunks:
        yield chunk
    if hang:
        await asyncio.Event().wait()


def sse_response(*chunks: Union[str, bytes], status: int = 200, hang: bool = False) -> httpx.Response:
    """A streaming response whose body arrives in the given chunks."""
    data = [c.encode("utf-8") if isinstance(c, str) else c for c in chunks]
    return httpx.Response(
        status,
        headers={"Content-Type": "text/event-stream"},
        content=_chunks(data, hang),
    )


def make_transport(handler: Callable[[httpx.Request], httpx.Response]) -> HttpTransport:
    """HttpTransport backed by ``httpx.MockTransport``."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler), follow_redirects=True)
    return HttpTransport(client=client)


class RecordingHandler:
    """Serves one prepared response per request and records the requests."""

    def __init__(self, *responses: Callable[[], httpx.Response]) -> None:
        self._responses: List[Callable[[], httpx.Response]] = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self._responses:
            return httpx.Response(503)
        return self._responses.pop(0)()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def received():
    """Collects delivered events."""
    return []
