"""
Test doubles for the connection state machine and the WebSocket transports.

FakeNetwork scripts what happens to each open() call; FakeTransport is the
TransportAdapter it hands out. Signals are delivered with loop.call_soon so
they arrive asynchronously, like a real socket's.

FakeWebSocket and mock_session stand in for aiohttp when testing the
transports themselves.
"""

import asyncio
from typing import Callable, List, Optional
from unittest.mock import AsyncMock, MagicMock

from core.schemas import TransportSignal
from transports.base import TransportAdapter


class FakeTransport(TransportAdapter):
    """In-memory transport driven by FakeNetwork outcomes and test calls"""

    name = "fake"

    def __init__(self, network: "FakeNetwork"):
        super().__init__()
        self.network = network
        self.ready = False
        self.close_calls = 0

    async def open(self, uri: str) -> None:
        self.uri = uri
        self.network.open_calls += 1
        outcome = self.network.next_outcome()

        loop = asyncio.get_running_loop()
        if outcome == "open":
            loop.call_soon(self.simulate_open)
        elif outcome == "fail":
            loop.call_soon(self.simulate_failure, ConnectionRefusedError("connection refused"))
        # "hang": stay silent until the test drives it

    async def close(self) -> None:
        self.close_calls += 1
        self.ready = False
        asyncio.get_running_loop().call_soon(self.signal_closed, "closed by owner")

    def is_ready(self) -> bool:
        return self.ready

    # Test drivers

    def simulate_open(self) -> None:
        self.ready = True
        self.emit_signal(TransportSignal.OPENED)

    def simulate_failure(self, error: Exception) -> None:
        self.ready = False
        self.emit_signal(TransportSignal.ERROR, error)
        self.signal_closed(error)

    def simulate_drop(self, info: str = "connection reset", with_error: bool = True) -> None:
        self.ready = False
        if with_error:
            self.emit_signal(TransportSignal.ERROR, info)
        self.signal_closed(info)

    def push_data(self, payload) -> None:
        self.emit_signal(TransportSignal.DATA_ITEM, payload)

    def push_heartbeat(self, value=None) -> None:
        self.emit_signal(TransportSignal.HEARTBEAT, value)


class FakeNetwork:
    """
    Scripted endpoint.

    Each open() consumes the next outcome ("open", "fail" or "hang");
    once the script runs out every open succeeds.
    """

    def __init__(self, outcomes: Optional[List[str]] = None):
        self.outcomes = list(outcomes or [])
        self.transports: List[FakeTransport] = []
        self.open_calls = 0

    def next_outcome(self) -> str:
        return self.outcomes.pop(0) if self.outcomes else "open"

    def factory(self) -> FakeTransport:
        transport = FakeTransport(self)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeTransport:
        return self.transports[-1]


class EventRecorder:
    """Records connection events in arrival order"""

    def __init__(self, connection, events=("connected", "disconnected", "data", "heartbeat")):
        self.log: List[tuple] = []
        for event in events:
            connection.on(event, self._recorder(event))

    def _recorder(self, event: str) -> Callable:
        def record(*args):
            self.log.append((event, args))
        return record

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.log]

    def count(self, event: str) -> int:
        return self.names.count(event)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Poll predicate until it is true or fail the test after timeout seconds"""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("Condition not met before timeout")
        await asyncio.sleep(0.005)


# ============================================
# aiohttp WebSocket Mocks
# ============================================

class MockWSMessage:
    """Mock aiohttp WebSocket message"""

    def __init__(self, msg_type, data=None):
        self.type = msg_type
        self.data = data


class FakeWebSocket:
    """
    Stand-in for aiohttp.ClientWebSocketResponse.

    Yields the given messages, then either ends (server closed) or, with
    hold_open=True, waits until close() is called.
    """

    def __init__(self, messages=(), hold_open=False):
        self.messages = list(messages)
        self.hold_open = hold_open
        self.closed = False
        self.close_code = None
        self.sent = []
        self._closed_event = asyncio.Event()

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.messages:
            yield message
        if self.hold_open:
            await self._closed_event.wait()
        self.closed = True
        if self.close_code is None:
            self.close_code = 1000

    async def close(self):
        self.closed = True
        self.close_code = 1000
        self._closed_event.set()

    async def send_str(self, data):
        self.sent.append(data)


def mock_session(ws=None, connect_error=None, connect_hangs=False):
    """Mock aiohttp.ClientSession whose ws_connect returns ws"""
    session = MagicMock()
    session.closed = False

    async def close():
        session.closed = True

    session.close = AsyncMock(side_effect=close)

    if connect_hangs:
        async def hang(*args, **kwargs):
            await asyncio.Event().wait()
        session.ws_connect = AsyncMock(side_effect=hang)
    elif connect_error is not None:
        session.ws_connect = AsyncMock(side_effect=connect_error)
    else:
        session.ws_connect = AsyncMock(return_value=ws)

    return session


def record_signals(transport):
    log = []
    for signal in TransportSignal:
        transport.on(signal, lambda *args, s=signal: log.append((s, args)))
    return log
