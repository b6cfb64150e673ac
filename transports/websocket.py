"""
WebSocket Transport (aiohttp)

This module provides the default transport adapter: a single-use aiohttp
WebSocket connection that turns wire events into transport signals.
It handles:
- Opening the socket in a background task (open() returns immediately)
- JSON decoding of TEXT frames (raw text is passed through when not JSON)
- Classifying each inbound payload as a data item or a heartbeat
- Closing both the socket and its ClientSession

Reconnection is NOT done here. When the socket goes away the adapter
signals CLOSED and stops; the connection state machine decides what to do.

Usage:
    transport = WebSocketTransport()
    transport.on(TransportSignal.OPENED, lambda: print("open"))
    transport.on(TransportSignal.DATA_ITEM, print)
    await transport.open("wss://stream.example.com/ws")
"""

import asyncio
import json
from typing import Any, Callable, Optional

import aiohttp

from core.schemas import TransportSignal
from transports.base import TransportAdapter


def classify_everything_as_data(payload: Any) -> TransportSignal:
    """Default classifier: every inbound message is a data item"""
    return TransportSignal.DATA_ITEM


class WebSocketTransport(TransportAdapter):
    """
    Single-use aiohttp WebSocket transport.

    Attributes:
        session: aiohttp ClientSession owned by this transport
        ws: Active WebSocket connection (None until opened)
        heartbeat: Ping interval in seconds passed to aiohttp (None disables pings)
        open_timeout: Handshake timeout in seconds
        classify: Callable mapping a decoded payload to DATA_ITEM or HEARTBEAT

    Message Types:
        - WSMsgType.TEXT: JSON (or raw text) payload, classified
        - WSMsgType.BINARY: Raw bytes, always a data item
        - WSMsgType.CLOSE/CLOSING/CLOSED: Connection closed
        - WSMsgType.ERROR: Error (signals ERROR, then CLOSED)
        - PING/PONG: Handled automatically by aiohttp
    """

    name = "websocket"

    def __init__(
        self,
        heartbeat: Optional[float] = 30.0,
        open_timeout: float = 10.0,
        classify: Optional[Callable[[Any], TransportSignal]] = None
    ):
        super().__init__()
        self.heartbeat = heartbeat
        self.open_timeout = open_timeout
        self.classify = classify or classify_everything_as_data

        self.session: Optional[aiohttp.ClientSession] = None
        self.ws: Optional[aiohttp.ClientWebSocketResponse] = None
        self._reader: Optional[asyncio.Task] = None

    # ============================================
    # Lifecycle
    # ============================================

    async def open(self, uri: str) -> None:
        """
        Start connecting to uri in the background.

        Raises:
            RuntimeError: If this transport was already opened
        """
        if self._reader is not None:
            raise RuntimeError("WebSocketTransport is single-use; build a new one to reconnect")

        self.uri = uri
        self.session = aiohttp.ClientSession()
        self._reader = asyncio.get_running_loop().create_task(self._run())

    async def close(self) -> None:
        """
        Close the WebSocket and session.

        Notes:
            - Safe to call multiple times
            - If the handshake is still in progress it is cancelled
        """
        if self.ws is not None and not self.ws.closed:
            await self.ws.close()
            self.logger.debug(f"WebSocket closed for {self.uri}")
        elif self._reader is not None and not self._reader.done():
            self._reader.cancel()

        if self._reader is not None and self._reader is not asyncio.current_task():
            await asyncio.gather(self._reader, return_exceptions=True)

        await self._close_session()
        self.signal_closed("closed by owner")

    def is_ready(self) -> bool:
        return self.ws is not None and not self.ws.closed

    async def _close_session(self) -> None:
        if self.session is not None and not self.session.closed:
            await self.session.close()
            self.logger.debug(f"Session closed for {self.uri}")

    # ============================================
    # Reader Loop
    # ============================================

    async def _run(self) -> None:
        close_info: Any = None
        try:
            try:
                self.ws = await asyncio.wait_for(
                    self.session.ws_connect(self.uri, heartbeat=self.heartbeat, autoping=True),
                    timeout=self.open_timeout
                )
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self.logger.error(f"Failed to connect to {self.uri}: {e}")
                self.emit_signal(TransportSignal.ERROR, e)
                close_info = e
                return

            self.logger.info(f"✓ Connected to {self.uri}")
            await self.on_open()
            self.emit_signal(TransportSignal.OPENED)

            async for msg in self.ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch(self._decode(msg.data))

                elif msg.type == aiohttp.WSMsgType.BINARY:
                    self.emit_signal(TransportSignal.DATA_ITEM, msg.data)

                elif msg.type in (
                    aiohttp.WSMsgType.CLOSE,
                    aiohttp.WSMsgType.CLOSING,
                    aiohttp.WSMsgType.CLOSED,
                ):
                    self.logger.warning(f"WebSocket closed: {msg.data}")
                    close_info = msg.data
                    break

                elif msg.type == aiohttp.WSMsgType.ERROR:
                    self.logger.error(f"WebSocket error: {msg.data}")
                    self.emit_signal(TransportSignal.ERROR, msg.data)
                    close_info = msg.data
                    break

                else:
                    self.logger.debug(f"Received message type: {msg.type}")

            if close_info is None and self.ws is not None:
                close_info = self.ws.close_code

        except asyncio.CancelledError:
            self.logger.debug(f"Reader cancelled for {self.uri}")
            close_info = "cancelled"

        except Exception as e:
            self.logger.error(f"WebSocket error: {e}")
            self.emit_signal(TransportSignal.ERROR, e)
            close_info = e

        finally:
            if self.ws is not None and not self.ws.closed:
                await self.ws.close()
            await self._close_session()
            self.signal_closed(close_info)

    async def on_open(self) -> None:
        """Hook run after the handshake, before OPENED is signalled"""
        pass

    def _decode(self, data: str) -> Any:
        try:
            return json.loads(data)
        except json.JSONDecodeError:
            self.logger.debug(f"Non-JSON message passed through: {data[:100]}")
            return data

    def _dispatch(self, payload: Any) -> None:
        signal = self.classify(payload)
        if signal is None:
            self.logger.debug(f"Ignoring unclassified message: {str(payload)[:100]}")
            return
        if signal == TransportSignal.HEARTBEAT:
            self.emit_signal(TransportSignal.HEARTBEAT, payload)
        else:
            self.emit_signal(TransportSignal.DATA_ITEM, payload)
