"""
Incremental text/event-stream parser.

Bytes read from the wire are decoded and fed in arbitrary chunks; complete
frames (terminated by a blank line) are turned into ``ServerSentEvent``
objects. Partial frames are buffered until a later chunk completes them, so
splitting a stream at any chunk boundary yields the same events.

Example::

    parser = EventParser()
    for event in parser.feed_bytes(b"event: foo\\ndata: bar\\n\\n"):
        print(event.type, event.data)
"""

import codecs
import re
from typing import Iterable, List, Optional

from loguru import logger

from .types import ServerSentEvent, SSEField


_LINE_BREAK = re.compile(r"\r\n|\r|\n")
_DIGITS = re.compile(r"[0-9]+")

FRAME_DELIMITER = "\n\n"


# ============================================================================
# Frame parsing
# ============================================================================

def parse_line(line: str, event: ServerSentEvent) -> None:
    """Apply one physical line to the event under construction."""
    if line.startswith(":"):
        logger.trace("Comment received: {}", line)
        return

    name, sep, value = line.partition(":")
    if sep and value.startswith(" "):
        value = value[1:]

    field = SSEField.lookup(name)
    if field is SSEField.EVENT:
        event.event_type = value
    elif field is SSEField.DATA:
        event.data += value + "\n"
    elif field is SSEField.ID:
        event.last_event_id = value
    elif field is SSEField.RETRY:
        if _DIGITS.fullmatch(value):
            event.retry = int(value)
        else:
            logger.debug("Ignoring invalid retry value: {!r}", value)
    else:
        logger.warning("Unknown line received: {!r}", line)


def parse_frame(fragments: Iterable[str]) -> ServerSentEvent:
    """
    Build one event from the raw fragments of a single frame.

    Fragments are joined before splitting so a line cut across two reads is
    parsed as one line. ``\\r\\n``, ``\\r`` and ``\\n`` all end a line; empty
    lines are skipped.
    """
    event = ServerSentEvent()
    for line in _LINE_BREAK.split("".join(fragments)):
        if line:
            parse_line(line, event)
    return event


# ============================================================================
# Streaming parser
# ============================================================================

class EventParser:
    """Stateful parser for one connection; never reuse across connections."""

    def __init__(
        self,
        emit_empty_events: bool = False,
        last_event_id: Optional[str] = None,
        retry: Optional[int] = None,
    ) -> None:
        self.emit_empty_events = emit_empty_events
        self.last_event_id = last_event_id
        self.retry = retry
        self._buffer: List[str] = []
        self._pending_cr = False
        self._decoder = codecs.getincrementaldecoder("utf-8-sig")(errors="replace")

    @property
    def buffered(self) -> str:
        """Text received since the last frame boundary."""
        return "".join(self._buffer)

    def feed_bytes(self, data: bytes) -> List[ServerSentEvent]:
        """Decode a chunk of UTF-8 bytes and parse it."""
        return self.feed(self._decoder.decode(data))

    def feed(self, text: str) -> List[ServerSentEvent]:
        """Parse a chunk of text, returning the events it completes."""
        text = self._normalize(text)
        events: List[ServerSentEvent] = []
        start = 0

        # A blank line split across chunks: buffered text ended a line and
        # this chunk starts with another line break.
        if self._buffer and self._buffer[-1].endswith("\n") and text.startswith("\n"):
            self._dispatch(events)
            start = 1

        while True:
            end = text.find(FRAME_DELIMITER, start)
            if end == -1:
                break
            self._buffer.append(text[start:end])
            self._dispatch(events)
            start = end + len(FRAME_DELIMITER)

        rest = text[start:]
        if rest:
            self._buffer.append(rest)
        return events

    def finish(self) -> int:
        """
        Discard a trailing partial frame at end of stream.

        Returns the number of buffered fragments dropped.
        """
        tail = self._decoder.decode(b"", final=True)
        if tail:
            self._buffer.append(tail)
        dropped = len(self._buffer)
        if dropped:
            logger.debug("Discarding incomplete frame: {!r}", self.buffered)
        self._buffer.clear()
        self._pending_cr = False
        return dropped

    # --- Internal ---

    def _normalize(self, text: str) -> str:
        # "\r" at the end of the previous chunk already ended the line.
        if self._pending_cr and text.startswith("\n"):
            text = text[1:]
            self._pending_cr = False
        if text:
            self._pending_cr = text.endswith("\r")
        return text.replace("\r\n", "\n").replace("\r", "\n")

    def _dispatch(self, events: List[ServerSentEvent]) -> None:
        event = parse_frame(self._buffer)
        self._buffer.clear()

        if event.last_event_id is not None:
            self.last_event_id = event.last_event_id
        if event.retry is not None:
            self.retry = event.retry

        if event.is_empty and not self.emit_empty_events:
            logger.trace("Skipping frame without fields")
            return
        logger.debug("Event received: type={} id={}", event.type, event.last_event_id)
        events.append(event)
