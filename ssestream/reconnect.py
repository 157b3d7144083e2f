"""Reconnect delay policy."""

import math
import random
import time
from typing import Optional

from .types import ClientConfig


class Reconnector:
    """
    Exponential backoff with jitter.

    A ``retry`` hint sent by the server (milliseconds) takes precedence over
    the computed backoff.
    """

    def __init__(self, config: ClientConfig) -> None:
        self._base_delay = config.reconnect_base_delay
        self._max_delay = config.reconnect_max_delay
        self._max_attempts = config.max_reconnect_attempts
        self._attempt = 0
        self._connected_at = 0.0

    @property
    def should_reconnect(self) -> bool:
        return self._max_attempts == 0 or self._attempt < self._max_attempts

    @property
    def current_attempt(self) -> int:
        return self._attempt

    def mark_connected(self) -> None:
        self._connected_at = time.monotonic()

    def next_delay(self, retry_hint: Optional[int] = None) -> float:
        # A connection that stayed up for a while starts a fresh backoff.
        if self._connected_at > 0 and time.monotonic() - self._connected_at > 60:
            self._attempt = 0
            self._connected_at = 0.0
        if retry_hint is not None:
            delay = retry_hint / 1000.0
        else:
            jitter = random.random() * self._base_delay * 0.5
            delay = min(self._base_delay * math.pow(2, self._attempt) + jitter, self._max_delay)
        self._attempt += 1
        return delay
