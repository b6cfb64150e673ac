"""
Feed Connection — Resilient Persistent Connection Manager

This module owns the lifecycle of a single logical streaming connection:

    DISCONNECTED ──connect()──> CONNECTING ──opened──> CONNECTED
         ^                          │                      │
         └──── error/closed ────────┘  (retry after delay) │
         └──────────── error/closed (drop) ────────────────┘  -> "disconnected", reconnect

Guarantees:
    - At most one connection attempt is in flight. Concurrent connect()
      calls join the outstanding attempt instead of opening a second socket.
    - "connected" fires once per successful attempt, after the liveness
      monitor has been started.
    - "disconnected" fires once per drop of an established connection, even
      when the transport reports both an error and a close for it. It is
      emitted before the reconnect attempt begins.
    - The liveness monitor runs only while CONNECTED.
    - Transport failures never reach the caller as exceptions: connect()
      simply resolves later. Only configuration mistakes raise (and, when a
      bounded RetryPolicy is configured, ConnectionAttemptsExhausted).

Usage:
    connection = FeedConnection()
    connection.initialize("wss://node.example/ws", liveness_timeout_ms=5000)
    connection.on("connected", lambda: print("up"))
    connection.on("data", handle_payload)

    await connection.connect()
    ...
    await connection.shutdown()
"""

import asyncio
from functools import partial
from typing import Any, Callable, Optional, Set

from core.config import FeedSettings, settings
from core.exceptions import (
    ConfigurationError,
    ConnectionAttemptsExhausted,
    FeedError,
    TransportDropped,
    TransportEstablishError,
)
from core.logging import get_logger, log_connection_event
from core.schemas import ConnectionPhase, ConnectionStatus, FeedEvent, RetryPolicy, TransportSignal
from core.utils.time import current_utc_datetime, ms_to_seconds
from services.event_hub import EventHub, EventName
from services.liveness_monitor import LivenessMonitor
from transports.base import TransportAdapter
from transports.websocket import WebSocketTransport


TransportFactory = Callable[[], TransportAdapter]


class FeedConnection:
    """
    Connection state machine with automatic reconnection.

    The instance is built explicitly and passed to whoever needs it; there
    is no process-wide singleton.

    Attributes:
        retry_policy: How failed attempts are retried (default: forever, every 100ms)
        liveness_check_interval_ms: Interval of the liveness monitor's checks
        poll_interval_ms: Fallback poll interval for wait_until_connected()

    Events (see FeedEvent):
        connected()                      connection established
        disconnected(TransportDropped)   established connection went away
        data(payload)                    inbound data item
        heartbeat(value)                 inbound heartbeat
    """

    def __init__(
        self,
        transport_factory: Optional[TransportFactory] = None,
        hub: Optional[EventHub] = None,
        retry_policy: Optional[RetryPolicy] = None,
        liveness_check_interval_ms: float = 100,
        poll_interval_ms: float = 100
    ):
        self._transport_factory: TransportFactory = transport_factory or WebSocketTransport
        self._hub = hub or EventHub()
        self.retry_policy = retry_policy or RetryPolicy()
        self.liveness_check_interval_ms = liveness_check_interval_ms
        self.poll_interval_ms = poll_interval_ms

        # Configuration (set by initialize)
        self._address: Optional[str] = None
        self._liveness_timeout_ms: Optional[float] = None
        self._monitor: Optional[LivenessMonitor] = None

        # Connection state
        self._phase = ConnectionPhase.DISCONNECTED
        self._transport: Optional[TransportAdapter] = None
        self._attempt: Optional[asyncio.Task] = None
        self._pending: Optional[asyncio.Future] = None
        self._connected_event = asyncio.Event()
        self._background: Set[asyncio.Task] = set()
        self._started = False
        self._shutting_down = False

        # Bookkeeping for status()
        self._attempts = 0
        self._drops = 0
        self._connected_at = None

        self.logger = get_logger(__name__)

    @classmethod
    def from_settings(
        cls,
        config: Optional[FeedSettings] = None,
        transport_factory: Optional[TransportFactory] = None,
        hub: Optional[EventHub] = None
    ) -> "FeedConnection":
        """
        Build and initialize a connection from FeedSettings.

        Args:
            config: Settings to use (defaults to the global settings)
            transport_factory: Override the WebSocket transport
            hub: Share an existing EventHub

        Raises:
            ConfigurationError: If the address or liveness timeout is invalid
        """
        config = config or settings
        if transport_factory is None:
            transport_factory = partial(
                WebSocketTransport,
                heartbeat=config.ws_heartbeat_seconds,
                open_timeout=config.ws_open_timeout_seconds
            )

        connection = cls(
            transport_factory=transport_factory,
            hub=hub,
            retry_policy=config.retry_policy,
            liveness_check_interval_ms=config.liveness_check_interval_ms,
            poll_interval_ms=config.poll_interval_ms
        )
        connection.initialize(config.uri, config.liveness_timeout_ms)
        return connection

    # ============================================
    # Configuration
    # ============================================

    def initialize(self, address: str, liveness_timeout_ms: float) -> None:
        """
        Store the target address and liveness threshold.

        May be called again until the first connect(); after that the
        configuration is fixed.

        Args:
            address: Streaming endpoint URI
            liveness_timeout_ms: Allowed silence on an open connection (ms)

        Raises:
            ConfigurationError: Empty address, non-positive timeout, or already started
        """
        if self._started:
            raise ConfigurationError("Connection already started; address and timeout are fixed")

        if not isinstance(address, str) or not address.strip():
            raise ConfigurationError("Address must be a non-empty string")

        if isinstance(liveness_timeout_ms, bool) or not isinstance(liveness_timeout_ms, (int, float)):
            raise ConfigurationError(f"Liveness timeout must be a number, got {liveness_timeout_ms!r}")

        if liveness_timeout_ms <= 0:
            raise ConfigurationError(f"Liveness timeout must be positive, got {liveness_timeout_ms}")

        self._address = address.strip()
        self._liveness_timeout_ms = liveness_timeout_ms
        self._monitor = LivenessMonitor(
            liveness_timeout_ms,
            on_stale=self._on_stale,
            check_interval_ms=self.liveness_check_interval_ms
        )
        self.logger.debug(f"Initialized for {self._address} (liveness timeout {liveness_timeout_ms}ms)")

    def _require_initialized(self) -> None:
        if self._address is None:
            raise ConfigurationError("initialize() must be called before connecting")

    # ============================================
    # Public Connection API
    # ============================================

    async def connect(self) -> None:
        """
        Bring the connection to CONNECTED.

        Returns immediately when already connected. Otherwise waits for the
        outstanding attempt, starting one if none is in flight. Failed
        opens are retried according to retry_policy.

        Raises:
            ConfigurationError: If initialize() was not called
            ConnectionAttemptsExhausted: Only with a bounded retry policy
            FeedError: If shutdown() interrupted the attempt
        """
        self._require_initialized()
        self._shutting_down = False

        if self._phase is ConnectionPhase.CONNECTED:
            return

        if self._attempt is None or self._attempt.done():
            self._started = True
            self._attempt = asyncio.get_running_loop().create_task(self._run_attempts())

        attempt = self._attempt
        try:
            # Shielded so one cancelled caller does not cancel the attempt for the others
            await asyncio.shield(attempt)
        except asyncio.CancelledError:
            if attempt.cancelled():
                raise FeedError(f"Connection to {self._address} was shut down before it was established")
            raise

    async def reconnect(self) -> None:
        """
        Drop the current connection and connect again.

        When connected, only the transport is closed; the resulting "closed"
        signal goes through the drop path, which reconnects. When not
        connected this is the same as connect().
        """
        self._require_initialized()

        if self._phase is ConnectionPhase.CONNECTED and self._transport is not None:
            self.logger.info(f"Reconnecting to {self._address}")
            await self._transport.close()
            return

        await self.connect()

    def is_connected(self) -> bool:
        """True only if CONNECTED and the transport still reports itself ready"""
        return (
            self._phase is ConnectionPhase.CONNECTED
            and self._transport is not None
            and self._transport.is_ready()
        )

    async def wait_until_connected(self, timeout: Optional[float] = None) -> None:
        """
        Suspend until is_connected() is true.

        Does not start a connection by itself.

        Args:
            timeout: Give up after this many seconds (None = wait forever)

        Raises:
            asyncio.TimeoutError: If timeout elapsed first
        """
        if timeout is None:
            await self._wait_connected()
        else:
            await asyncio.wait_for(self._wait_connected(), timeout)

    async def _wait_connected(self) -> None:
        while not self.is_connected():
            if self._connected_event.is_set():
                # Phase says connected but the transport is not ready yet
                await asyncio.sleep(ms_to_seconds(self.poll_interval_ms))
            else:
                await self._connected_event.wait()

    async def shutdown(self) -> None:
        """
        Stop everything without reconnecting.

        Stops the liveness monitor, cancels the outstanding attempt and any
        scheduled reconnect, marks the connection DISCONNECTED and releases
        the transport. connect() may be called again afterwards.
        """
        self._shutting_down = True
        if self._monitor is not None:
            self._monitor.stop()

        current = asyncio.current_task()
        tasks = [task for task in self._background if task is not current]
        attempt, self._attempt = self._attempt, None
        if attempt is not None and attempt is not current:
            tasks.append(attempt)
        for task in tasks:
            if not task.done():
                task.cancel()

        was_connected = self._phase is ConnectionPhase.CONNECTED
        transport, self._transport = self._transport, None
        self._set_phase(ConnectionPhase.DISCONNECTED)
        self._connected_event.clear()
        self._connected_at = None

        if was_connected:
            log_connection_event(self._address, "disconnected", "shutdown")
            self._hub.emit(FeedEvent.DISCONNECTED, TransportDropped(self._address, "shutdown"))

        if transport is not None:
            transport.remove_all_handlers()
            await self._close_quietly(transport)

        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        self.logger.info(f"Connection to {self._address} shut down")

    async def __aenter__(self) -> "FeedConnection":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.shutdown()

    # ============================================
    # Events
    # ============================================

    def on(self, event: EventName, handler: Callable[..., Any]) -> None:
        """Register a handler for "connected", "disconnected", "data" or "heartbeat" """
        self._hub.on(event, handler)

    def off(self, event: EventName, handler: Callable[..., Any]) -> None:
        self._hub.off(event, handler)

    def subscribe(self, event: EventName) -> asyncio.Queue:
        """Queue-based subscription; see EventHub.subscribe"""
        return self._hub.subscribe(event)

    def unsubscribe(self, event: EventName, queue: asyncio.Queue) -> None:
        self._hub.unsubscribe(event, queue)

    # ============================================
    # Read-only Accessors
    # ============================================

    @property
    def phase(self) -> ConnectionPhase:
        return self._phase

    def get_address(self) -> Optional[str]:
        return self._address

    def get_underlying_transport(self) -> Optional[TransportAdapter]:
        """
        The current transport, for inspection only.

        It is replaced on every attempt; callers must not open or close it.
        """
        return self._transport

    def status(self) -> ConnectionStatus:
        return ConnectionStatus(
            address=self._address,
            phase=self._phase,
            connected=self.is_connected(),
            connected_at=self._connected_at,
            last_activity_age_ms=self._monitor.last_activity_age_ms() if self._monitor else None,
            attempts=self._attempts,
            drops=self._drops,
        )

    # ============================================
    # Attempt Handling
    # ============================================

    async def _run_attempts(self) -> None:
        attempt = 0
        while True:
            attempt += 1
            self._attempts = attempt
            try:
                await self._establish(attempt)
                return
            except TransportEstablishError as e:
                if not self.retry_policy.should_retry(attempt, e.original_error):
                    self.logger.error(f"Giving up on {self._address} after {attempt} attempt(s)")
                    raise ConnectionAttemptsExhausted(
                        f"Could not connect to {self._address} after {attempt} attempt(s)",
                        attempt=attempt,
                        original_error=e.original_error
                    ) from e

                delay = self.retry_policy.delay_ms(attempt)
                self.logger.warning(
                    f"Attempt {attempt} to reach {self._address} failed, retrying in {delay:.0f}ms"
                )
                await asyncio.sleep(ms_to_seconds(delay))

    async def _establish(self, attempt: int) -> None:
        transport = self._transport_factory()
        self._bind(transport)

        self._pending = asyncio.get_running_loop().create_future()
        self._transport = transport
        self._set_phase(ConnectionPhase.CONNECTING)
        self.logger.info(f"Connecting to {self._address} (attempt {attempt})")

        try:
            try:
                await transport.open(self._address)
            except Exception as e:
                self.logger.error(f"Transport failed to start opening {self._address}: {e}")
                self._set_phase(ConnectionPhase.DISCONNECTED)
                self._fail_attempt(e)

            await self._pending

        except TransportEstablishError:
            self._set_phase(ConnectionPhase.DISCONNECTED)
            await self._close_quietly(transport)
            raise

        finally:
            self._pending = None

    def _fail_attempt(self, reason: Any) -> None:
        pending = self._pending
        if pending is None or pending.done():
            return
        error = reason if isinstance(reason, BaseException) else None
        pending.set_exception(TransportEstablishError(
            f"Could not open {self._address}",
            attempt=self._attempts,
            original_error=error
        ))

    async def _close_quietly(self, transport: TransportAdapter) -> None:
        try:
            await transport.close()
        except Exception as e:
            self.logger.warning(f"Error while closing transport for {self._address}: {e}")

    # ============================================
    # Transport Signal Handlers
    # ============================================

    def _bind(self, transport: TransportAdapter) -> None:
        transport.on(TransportSignal.OPENED, partial(self._handle_opened, transport))
        transport.on(TransportSignal.ERROR, partial(self._handle_dropped, transport))
        transport.on(TransportSignal.CLOSED, partial(self._handle_dropped, transport))
        transport.on(TransportSignal.DATA_ITEM, partial(self._handle_inbound, transport, FeedEvent.DATA))
        transport.on(TransportSignal.HEARTBEAT, partial(self._handle_inbound, transport, FeedEvent.HEARTBEAT))

    def _handle_opened(self, transport: TransportAdapter) -> None:
        if transport is not self._transport:
            return
        if self._phase is not ConnectionPhase.CONNECTING:
            # Duplicate "opened" (or one after the attempt already failed)
            self.logger.debug(f"Ignoring 'opened' signal while {self._phase.value}")
            return

        self._set_phase(ConnectionPhase.CONNECTED)
        self._connected_at = current_utc_datetime()
        self._monitor.start()
        self._connected_event.set()

        log_connection_event(self._address, "connected")
        self._hub.emit(FeedEvent.CONNECTED)

        if self._pending is not None and not self._pending.done():
            self._pending.set_result(None)

    def _handle_dropped(self, transport: TransportAdapter, info: Any = None) -> None:
        if transport is not self._transport:
            return
        if self._phase is ConnectionPhase.DISCONNECTED:
            # Second signal for the same drop (error followed by close)
            return

        if self._phase is ConnectionPhase.CONNECTING:
            self._set_phase(ConnectionPhase.DISCONNECTED)
            self._fail_attempt(info)
            return

        self._monitor.stop()
        self._set_phase(ConnectionPhase.DISCONNECTED)
        self._connected_event.clear()
        self._connected_at = None
        self._drops += 1

        log_connection_event(self._address, "disconnected", str(info) if info is not None else None)
        self._hub.emit(FeedEvent.DISCONNECTED, TransportDropped(self._address, info))

        if not self._shutting_down:
            self._spawn(self.reconnect(), "reconnect after drop")

    def _handle_inbound(self, transport: TransportAdapter, event: FeedEvent, payload: Any = None) -> None:
        if transport is not self._transport:
            return
        if self._phase is ConnectionPhase.DISCONNECTED:
            # Late delivery from a transport that already dropped
            return
        self._monitor.record_activity()
        self._hub.emit(event, payload)

    def _on_stale(self) -> None:
        if self._shutting_down:
            return
        log_connection_event(self._address, "stale", f"no activity for over {self._liveness_timeout_ms}ms")
        self._spawn(self.reconnect(), "reconnect after liveness timeout")

    # ============================================
    # Helpers
    # ============================================

    def _set_phase(self, phase: ConnectionPhase) -> None:
        if phase is self._phase:
            return
        self.logger.debug(f"Phase {self._phase.value} -> {phase.value}")
        self._phase = phase

    def _spawn(self, coro, description: str) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._background.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._background.discard(finished)
            if finished.cancelled():
                return
            error = finished.exception()
            if error is not None:
                self.logger.error(f"Background {description} failed: {type(error).__name__}: {error}")

        task.add_done_callback(_done)

    def __repr__(self) -> str:
        return f"<FeedConnection address={self._address!r} phase={self._phase.value}>"
