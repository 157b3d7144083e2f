"""
ssestream client: the loop that drives connection states.

Example (iterator)::

    async with EventSource("https://example.com/stream") as source:
        async for event in source.events():
            print(event.type, event.data)

Example (listeners)::

    source = EventSource("https://example.com/stream")

    @source.on("update")
    async def on_update(event):
        print(event.data)

    source.start()
    ...
    await source.close()
"""

import asyncio
import threading
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional

from loguru import logger

from .reconnect import Reconnector
from .states import Connected, Connecting, ConnectionState, Disconnected
from .transport import HttpTransport
from .types import ClientConfig, ConnectError, ReadyState, ServerSentEvent


ANY_EVENT = "*"


# ============================================================================
# Event Emitter
# ============================================================================

class EventEmitter:
    """Thread-safe event emitter keyed by event type."""

    def __init__(self) -> None:
        self._listeners: Dict[str, List[Callable]] = {}
        self._once_wrappers: Dict[int, Callable] = {}
        self._lock = threading.Lock()

    def on(self, event: str, callback: Optional[Callable] = None) -> Any:
        """Register event listener. Can be used as decorator."""
        if callback is None:
            def decorator(fn: Callable) -> Callable:
                self._add_listener(event, fn)
                return fn
            return decorator
        self._add_listener(event, callback)
        return self

    def off(self, event: str, callback: Callable) -> Any:
        """Remove event listener."""
        with self._lock:
            listeners = self._listeners.get(event)
            if listeners:
                actual = self._once_wrappers.pop(id(callback), callback)
                if actual in listeners:
                    listeners.remove(actual)
        return self

    def once(self, event: str, callback: Callable) -> Any:
        """Register one-time event listener."""
        if asyncio.iscoroutinefunction(callback):
            async def wrapper(*args: Any, **kwargs: Any) -> Any:
                self.off(event, callback)
                return await callback(*args, **kwargs)
        else:
            def wrapper(*args: Any, **kwargs: Any) -> Any:
                self.off(event, callback)
                return callback(*args, **kwargs)

        with self._lock:
            self._once_wrappers[id(callback)] = wrapper
        self._add_listener(event, wrapper)
        return self

    def listener_count(self, event: str) -> int:
        with self._lock:
            return len(self._listeners.get(event, []))

    def _add_listener(self, event: str, callback: Callable) -> None:
        with self._lock:
            self._listeners.setdefault(event, []).append(callback)

    async def _emit_async(self, event: str, payload: Any = None) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for cb in listeners:
            try:
                if asyncio.iscoroutinefunction(cb):
                    await cb(payload)
                else:
                    cb(payload)
            except Exception:
                logger.exception("Listener for {!r} raised", event)


# ============================================================================
# EventSource
# ============================================================================

class EventSource(EventEmitter):
    """
    Async SSE client with automatic reconnect.

    Events are dispatched to listeners by ``event.type`` (``"message"`` when
    the server sent no ``event:`` field) and to ``"*"`` listeners. Lifecycle
    notifications: ``"open"`` (no payload), ``"error"`` (the ``Disconnected``
    state) and ``"reconnecting"`` (``{"attempt": int, "delay": float}``).

    Args:
        url: Absolute URL of the event stream
        config: Client configuration (default: ``ClientConfig()``)
        transport: Transport to connect with; one is created (and closed by
            ``close()``) when omitted
    """

    def __init__(
        self,
        url: str,
        config: Optional[ClientConfig] = None,
        transport: Optional[HttpTransport] = None,
    ) -> None:
        super().__init__()
        self._config = config or ClientConfig()
        self._owns_transport = transport is None
        self._transport = transport or HttpTransport(connect_timeout=self._config.connect_timeout)
        self._reconnector = Reconnector(self._config)
        self._state: ConnectionState = self._connecting(url, self._config.last_event_id)
        self._closed = False
        self._task: Optional[asyncio.Task] = None
        self._step_task: Optional[asyncio.Future] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def ready_state(self) -> ReadyState:
        if self._closed:
            return "closed"
        return self._state.ready_state

    @property
    def url(self) -> str:
        return self._state.url

    @property
    def last_event_id(self) -> Optional[str]:
        return self._state.last_event_id

    async def __aenter__(self) -> "EventSource":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def connect(self) -> None:
        """
        Establish the connection once, raising instead of retrying.

        Raises:
            ConnectError: the server could not be reached or did not
                answer with HTTP 200
        """
        if isinstance(self._state, Connected):
            return
        if isinstance(self._state, Disconnected):
            self._state = self._connecting(self._state.url, self._state.last_event_id, self._state.retry)
        state = await self._step(self._discard)
        if isinstance(state, Disconnected):
            raise ConnectError(state.url, state.reason)

    async def events(self) -> AsyncIterator[ServerSentEvent]:
        """
        Yield events as they arrive, reconnecting as configured.

        The iterator ends after ``close()`` or once reconnecting is disabled
        or exhausted.
        """
        pending: List[ServerSentEvent] = []
        try:
            while not self._closed:
                state = self._state
                if isinstance(state, Disconnected):
                    delay = await self._reconnect_delay(state)
                    if delay is None or not await self._guarded(asyncio.sleep(delay)):
                        break
                    self._state = self._connecting(state.url, state.last_event_id, state.retry)
                    continue

                if not await self._guarded(self._step(pending.append)):
                    break
                while pending:
                    yield pending.pop(0)
        finally:
            await self._release()

    async def run(self) -> None:
        """Consume the stream, dispatching each event to its listeners."""
        async for event in self.events():
            await self._emit_async(event.type, event)
            await self._emit_async(ANY_EVENT, event)

    def start(self) -> asyncio.Task:
        """Run the client in a background task."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run())
        return self._task

    async def close(self) -> None:
        """Stop the loop, close the stream and release the transport."""
        self._closed = True
        step = self._step_task
        if step is not None and not step.done():
            # The step owns the stream; let it close it while unwinding.
            step.cancel()
            await asyncio.wait({step})
        task, self._task = self._task, None
        if task and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        await self._release()
        if self._owns_transport:
            await self._transport.aclose()

    # --- Internal ---

    async def _step(self, on_event: Callable[[ServerSentEvent], None]) -> ConnectionState:
        state = self._state
        if isinstance(state, Connecting):
            next_state = await state.run(self._transport)
            if isinstance(next_state, Connected):
                self._reconnector.mark_connected()
                self._state = next_state
                await self._emit_async("open")
        elif isinstance(state, Connected):
            next_state = await state.run(on_event)
        elif isinstance(state, Disconnected):
            next_state = state
        else:
            raise TypeError(f"Unknown connection state: {state!r}")

        self._state = next_state
        if isinstance(next_state, Disconnected) and next_state is not state:
            logger.info("Disconnected from {}: {}", next_state.url, next_state.reason)
            await self._emit_async("error", next_state)
        return next_state

    async def _guarded(self, work: Awaitable[Any]) -> bool:
        """
        Run one unit of loop work as a task that ``close()`` can cancel.

        Returns False when ``close()`` cancelled it. If the consuming task
        itself is cancelled, the work is cancelled and awaited before the
        cancellation propagates.
        """
        step = asyncio.ensure_future(work)
        self._step_task = step
        try:
            await asyncio.wait({step})
        except asyncio.CancelledError:
            step.cancel()
            await asyncio.wait({step})
            raise
        finally:
            self._step_task = None
        if step.cancelled():
            return False
        step.result()
        return not self._closed

    async def _reconnect_delay(self, state: Disconnected) -> Optional[float]:
        if not self._config.auto_reconnect or not self._reconnector.should_reconnect:
            logger.info("Not reconnecting to {}", state.url)
            return None
        delay = self._reconnector.next_delay(state.retry)
        attempt = self._reconnector.current_attempt
        logger.info("Reconnecting to {} in {:.2f}s (attempt {})", state.url, delay, attempt)
        await self._emit_async("reconnecting", {"attempt": attempt, "delay": delay})
        return delay

    def _connecting(
        self, url: str, last_event_id: Optional[str] = None, retry: Optional[int] = None,
    ) -> Connecting:
        return Connecting(
            url,
            headers=dict(self._config.headers),
            last_event_id=last_event_id,
            retry=retry,
            chunk_size=self._config.chunk_size,
            emit_empty_events=self._config.emit_empty_events,
        )

    async def _release(self) -> None:
        state = self._state
        if isinstance(state, Connected):
            if not state.stream.closed:
                await state.stream.aclose()
            self._state = Disconnected(state.url, state.last_event_id, state.retry, "closed")

    @staticmethod
    def _discard(event: ServerSentEvent) -> None:
        pass
