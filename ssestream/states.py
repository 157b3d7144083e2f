"""
Connection states for an SSE client.

Each state is a plain dataclass; ``Connecting`` and ``Connected`` expose an
async ``run`` that performs one unit of work and returns the next state.
``Disconnected`` is inert: the driving loop decides whether to reconnect.

Steps never raise, except ``asyncio.CancelledError`` after the stream has
been released.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Callable, Dict, Optional, Union

from loguru import logger

from .parser import EventParser
from .transport import DEFAULT_CHUNK_SIZE, ByteStream, HttpTransport, ResponseStream
from .types import ReadyState, ServerSentEvent


EventCallback = Callable[[ServerSentEvent], None]


# ============================================================================
# Disconnected
# ============================================================================

@dataclass
class Disconnected:
    url: str
    last_event_id: Optional[str] = None
    retry: Optional[int] = None
    reason: str = ""

    ready_state: ReadyState = field(default="closed", init=False, repr=False)

    def reconnect(self, **options: object) -> "Connecting":
        """A new connecting state resuming from the last seen event id."""
        return Connecting(self.url, last_event_id=self.last_event_id, retry=self.retry, **options)


# ============================================================================
# Connecting
# ============================================================================

@dataclass
class Connecting:
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    last_event_id: Optional[str] = None
    retry: Optional[int] = None
    chunk_size: int = DEFAULT_CHUNK_SIZE
    emit_empty_events: bool = False

    ready_state: ReadyState = field(default="connecting", init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError("url is required")

    def request_headers(self) -> Dict[str, str]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        headers.update(self.headers)
        # An empty id resets it; the header is omitted.
        if self.last_event_id:
            headers["Last-Event-ID"] = self.last_event_id
        return headers

    async def run(self, transport: HttpTransport) -> "ConnectionState":
        try:
            response = await transport.open(self.url, self.request_headers())
        except Exception as e:
            logger.warning("Failed to connect to {}: {}", self.url, e)
            return self._failed(str(e) or type(e).__name__)

        if response.status_code != 200:
            logger.warning("Failed to connect to {}: HTTP {}", self.url, response.status_code)
            await response.aclose()
            return self._failed(f"HTTP {response.status_code}")

        logger.info("Connected to {}", response.url)
        parser = EventParser(
            emit_empty_events=self.emit_empty_events,
            last_event_id=self.last_event_id,
            retry=self.retry,
        )
        return Connected(ResponseStream(response, self.chunk_size), parser)

    def _failed(self, reason: str) -> Disconnected:
        return Disconnected(self.url, self.last_event_id, self.retry, reason)


# ============================================================================
# Connected
# ============================================================================

@dataclass
class Connected:
    stream: ByteStream
    parser: EventParser = field(default_factory=EventParser)

    ready_state: ReadyState = field(default="open", init=False, repr=False)

    @property
    def url(self) -> str:
        return self.stream.url

    @property
    def last_event_id(self) -> Optional[str]:
        return self.parser.last_event_id

    @property
    def retry(self) -> Optional[int]:
        return self.parser.retry

    async def run(self, on_event: EventCallback) -> "ConnectionState":
        try:
            data = await self.stream.read()
        except asyncio.CancelledError:
            await self.stream.aclose()
            raise
        except Exception as e:
            logger.info("Read from {} failed: {}", self.url, e)
            return await self._disconnect(f"read failed: {e}")

        if not data:
            logger.info("No bytes read. End of stream.")
            return await self._disconnect("stream ended")

        logger.trace("Read {} bytes", len(data))
        for event in self.parser.feed_bytes(data):
            try:
                on_event(event)
            except Exception:
                logger.exception("Event callback raised")
        return self

    async def _disconnect(self, reason: str) -> Disconnected:
        self.parser.finish()
        await self.stream.aclose()
        return Disconnected(self.url, self.last_event_id, self.retry, reason)


ConnectionState = Union[Connecting, Connected, Disconnected]
