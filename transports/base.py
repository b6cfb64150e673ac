"""
Transport Adapter — Abstract Contract for Streaming Transports

This module defines the narrow interface the connection state machine uses
to talk to a streaming socket. The state machine never touches a socket
library directly; it only:

    - opens a transport:       await transport.open(uri)
    - listens for its signals: transport.on(TransportSignal.OPENED, handler)
    - asks whether it is open: transport.is_ready()
    - closes it:               await transport.close()

Signals:
    OPENED      the connection is established
    ERROR       something went wrong (always followed by CLOSED)
    CLOSED      the connection is gone (signalled at most once per instance)
    DATA_ITEM   an inbound payload arrived
    HEARTBEAT   an inbound keep-alive arrived

A transport instance is single-use: the state machine builds a fresh one
for every connection attempt.

Example:
    class MyTransport(TransportAdapter):
        async def open(self, uri):
            ...
            self.emit_signal(TransportSignal.OPENED)

        async def close(self):
            ...
            self.signal_closed("closed by owner")

        def is_ready(self):
            return self._socket is not None and self._socket.open
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, DefaultDict, List, Optional

from core.logging import get_logger
from core.schemas import TransportSignal


class TransportAdapter(ABC):
    """
    Abstract Base Class for Streaming Transports

    Subclasses implement open(), close() and is_ready(), and report what
    happens on the wire through emit_signal() / signal_closed().

    Attributes:
        uri: Address passed to open() (None until opened)
    """

    name: str = "transport"

    def __init__(self) -> None:
        self.uri: Optional[str] = None
        self._handlers: DefaultDict[TransportSignal, List[Callable[..., Any]]] = defaultdict(list)
        self._closed_signalled = False
        self.logger = get_logger(f"transports.{self.name}")

    # ============================================
    # Signal Registration & Dispatch
    # ============================================

    def on(self, signal: TransportSignal, handler: Callable[..., Any]) -> None:
        """
        Register a handler for a transport signal.

        Handlers are plain callables invoked synchronously, in registration order.
        """
        self._handlers[TransportSignal(signal)].append(handler)

    def remove_all_handlers(self) -> None:
        """Forget every handler; later signals from this instance go nowhere"""
        self._handlers.clear()

    def emit_signal(self, signal: TransportSignal, *args: Any) -> None:
        """
        Deliver a signal to the registered handlers.

        A handler that raises is logged; the transport keeps running.
        """
        for handler in list(self._handlers.get(signal, [])):
            try:
                handler(*args)
            except Exception:
                self.logger.exception(f"Handler for '{signal.value}' signal raised")

    def signal_closed(self, info: Any = None) -> None:
        """Deliver CLOSED exactly once for this instance"""
        if self._closed_signalled:
            return
        self._closed_signalled = True
        self.emit_signal(TransportSignal.CLOSED, info)

    # ============================================
    # Lifecycle (implemented by subclasses)
    # ============================================

    @abstractmethod
    async def open(self, uri: str) -> None:
        """
        Begin opening a streaming connection to uri.

        Returns once the open is under way; the outcome is reported later
        through OPENED, or ERROR followed by CLOSED.
        """
        pass

    @abstractmethod
    async def close(self) -> None:
        """
        Request shutdown. Must eventually produce a CLOSED signal.

        Safe to call more than once, and before open() finished.
        """
        pass

    @abstractmethod
    def is_ready(self) -> bool:
        """True while the underlying socket is open and usable"""
        pass

    def __repr__(self) -> str:
        return f"<{type(self).__name__} uri={self.uri!r} ready={self.is_ready()}>"
