"""
ssestream: Server-Sent Events client for Python

Keeps a long-lived HTTP connection to a ``text/event-stream`` endpoint,
parses the stream incrementally and reconnects with ``Last-Event-ID``.

Example:
    >>> from ssestream import EventSource
    >>> async with EventSource("https://example.com/stream") as source:
    ...     async for event in source.events():
    ...         print(event.type, event.data)

Logging goes through loguru and is disabled by default; call
``logger.enable("ssestream")`` to see it.
"""

from loguru import logger

from .client import EventEmitter, EventSource
from .parser import EventParser, parse_frame, parse_line
from .reconnect import Reconnector
from .states import Connected, Connecting, ConnectionState, Disconnected
from .transport import ByteStream, HttpTransport, ResponseStream
from .types import (
    DEFAULT_EVENT_TYPE,
    ClientConfig,
    ConnectError,
    ReadyState,
    ServerSentEvent,
    SSEError,
    SSEField,
)

logger.disable("ssestream")

__version__ = "0.1.0"

__all__ = [
    "__version__",
    # Client
    "EventSource",
    "EventEmitter",
    "ClientConfig",
    "Reconnector",
    # States
    "Connecting",
    "Connected",
    "Disconnected",
    "ConnectionState",
    "ReadyState",
    # Parsing
    "EventParser",
    "parse_frame",
    "parse_line",
    "ServerSentEvent",
    "SSEField",
    "DEFAULT_EVENT_TYPE",
    # Transport
    "HttpTransport",
    "ResponseStream",
    "ByteStream",
    # Errors
    "SSEError",
    "ConnectError",
]
