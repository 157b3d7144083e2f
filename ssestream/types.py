"""Type definitions for ssestream - events, fields and client configuration."""

from enum import Enum
from typing import Dict, Literal, Optional

from pydantic import BaseModel, Field


# ============================================================================
# Event Types
# ============================================================================

DEFAULT_EVENT_TYPE = "message"


class SSEField(str, Enum):
    """Field names recognized in a text/event-stream frame."""
    EVENT = "event"
    DATA = "data"
    ID = "id"
    RETRY = "retry"

    @classmethod
    def lookup(cls, name: str) -> Optional["SSEField"]:
        """Case-insensitive lookup, ``None`` for unknown names."""
        try:
            return cls(name.lower())
        except ValueError:
            return None


class ServerSentEvent(BaseModel):
    """One decoded event, delivered to the consumer exactly once."""
    event_type: Optional[str] = Field(default=None, alias="event")
    data: str = ""
    last_event_id: Optional[str] = Field(default=None, alias="id")
    retry: Optional[int] = None

    class Config:
        populate_by_name = True

    @property
    def type(self) -> str:
        return self.event_type if self.event_type is not None else DEFAULT_EVENT_TYPE

    @property
    def is_empty(self) -> bool:
        return (
            self.event_type is None
            and not self.data
            and self.last_event_id is None
            and self.retry is None
        )


ReadyState = Literal["connecting", "open", "closed"]


# ============================================================================
# Configuration
# ============================================================================

class ClientConfig(BaseModel):
    """Configuration for an EventSource."""
    headers: Dict[str, str] = Field(default_factory=dict)
    auto_reconnect: bool = True
    max_reconnect_attempts: int = Field(default=0, ge=0)
    reconnect_base_delay: float = Field(default=1.0, ge=0)
    reconnect_max_delay: float = Field(default=30.0, ge=0)
    connect_timeout: float = Field(default=10.0, gt=0)
    chunk_size: int = Field(default=8192, gt=0)
    emit_empty_events: bool = False
    last_event_id: Optional[str] = None


# ============================================================================
# Errors
# ============================================================================

class SSEError(Exception):
    """Base class for errors raised by ssestream."""


class ConnectError(SSEError):
    """Raised by ``EventSource.connect()`` when the server cannot be reached."""

    def __init__(self, url: str, reason: str) -> None:
        super().__init__(f"Failed to connect to {url}: {reason}")
        self.url = url
        self.reason = reason
