"""
Event Hub

Re-publishes connection and transport events to external subscribers
without exposing the connection internals.

Two ways to consume events:
- Callbacks: hub.on("connected", handler). Handlers run in registration
  order; coroutine handlers are scheduled as tasks. A handler that raises
  is logged and never stops the other handlers or the emitter.
- Queues: hub.subscribe("data") returns an asyncio.Queue receiving the
  event arguments as a tuple. Full queues drop events instead of blocking
  the emitter. Unsubscribing is important to avoid queue leaks.
"""

import asyncio
import inspect
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Set, Union

from core.logging import get_logger
from core.schemas import FeedEvent


EventName = Union[FeedEvent, str]


def _key(event: EventName) -> str:
    return event.value if isinstance(event, FeedEvent) else str(event)


class EventHub:
    """
    Named-event publish/subscribe hub.

    Emission is synchronous: by the time emit() returns, every plain
    callback has run and every queue has been offered the event.
    """

    def __init__(self, max_queue_size: int = 1000) -> None:
        self._listeners: DefaultDict[str, List[Callable[..., Any]]] = defaultdict(list)
        self._queues: DefaultDict[str, Set[asyncio.Queue]] = defaultdict(set)
        self._tasks: Set[asyncio.Task] = set()
        self._max_queue_size = max_queue_size
        self._logger = get_logger(__name__)

    # ============================================
    # Callback Listeners
    # ============================================

    def on(self, event: EventName, handler: Callable[..., Any]) -> None:
        """
        Register a handler for an event.

        Args:
            event: Event name (FeedEvent or plain string)
            handler: Callable or coroutine function receiving the event arguments
        """
        if not callable(handler):
            raise TypeError(f"Handler for '{_key(event)}' must be callable")
        self._listeners[_key(event)].append(handler)

    def off(self, event: EventName, handler: Callable[..., Any]) -> None:
        """Remove a previously registered handler (no-op if not registered)"""
        listeners = self._listeners.get(_key(event), [])
        if handler in listeners:
            listeners.remove(handler)

    def listener_count(self, event: EventName) -> int:
        """Number of callbacks plus queues subscribed to an event"""
        name = _key(event)
        return len(self._listeners.get(name, [])) + len(self._queues.get(name, set()))

    # ============================================
    # Queue Subscribers
    # ============================================

    def subscribe(self, event: EventName) -> asyncio.Queue:
        """
        Subscribe to an event. Returns an asyncio.Queue receiving argument tuples.
        """
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._queues[_key(event)].add(queue)
        self._logger.debug(f"Subscriber added to '{_key(event)}'. total={len(self._queues[_key(event)])}")
        return queue

    def unsubscribe(self, event: EventName, queue: asyncio.Queue) -> None:
        """
        Unsubscribe a queue from an event.
        """
        name = _key(event)
        if queue in self._queues.get(name, set()):
            self._queues[name].remove(queue)
            # Drain to allow GC
            while not queue.empty():
                queue.get_nowait()
        self._logger.debug(f"Subscriber removed from '{name}'. total={len(self._queues[name])}")

    # ============================================
    # Emission
    # ============================================

    def emit(self, event: EventName, *args: Any) -> None:
        """
        Publish an event to all handlers and queues.

        Handlers are snapshotted first, so a handler registering or removing
        listeners does not affect the current emission.
        """
        name = _key(event)

        for handler in list(self._listeners.get(name, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    self._schedule(name, result)
            except Exception:
                self._logger.exception(f"Listener for '{name}' raised")

        for queue in list(self._queues.get(name, set())):
            try:
                queue.put_nowait(args)
            except asyncio.QueueFull:
                self._logger.warning(f"Dropping '{name}' event due to full queue")

    def _schedule(self, name: str, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._tasks.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                self._logger.error(
                    f"Async listener for '{name}' raised: {type(error).__name__}: {error}"
                )

        task.add_done_callback(_done)

    async def drain(self) -> None:
        """Wait for scheduled coroutine handlers to finish"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
