"""
Unit Tests for the JSON-RPC Subscription Transport

These tests verify that JsonRpcSubscriptionTransport:
- Sends one eth_subscribe request per stream after the handshake
- Learns subscription ids from the confirmations
- Routes notifications to DATA_ITEM / HEARTBEAT by subscription id

Run with:
    pytest tests/unit/test_jsonrpc_transport.py -v
"""

import asyncio
import json
from unittest.mock import patch

import pytest
from aiohttp import WSMsgType

from core.schemas import TransportSignal
from transports.jsonrpc import JsonRpcSubscriptionTransport
from tests.unit.fakes import FakeWebSocket, MockWSMessage, mock_session, record_signals


def notification(subscription, result):
    return {
        "jsonrpc": "2.0",
        "method": "eth_subscription",
        "params": {"subscription": subscription, "result": result},
    }


class TestSubscriptionRequests:
    """Tests for building the subscription requests"""

    def test_default_requests(self):
        """Verify pending transactions and new heads are requested by default"""
        transport = JsonRpcSubscriptionTransport()

        requests = transport.build_requests()

        assert requests == [
            {"jsonrpc": "2.0", "id": 1, "method": "eth_subscribe", "params": ["newPendingTransactions"]},
            {"jsonrpc": "2.0", "id": 2, "method": "eth_subscribe", "params": ["newHeads"]},
        ]

    def test_heartbeat_stream_optional(self):
        """Verify an empty heartbeat_params list skips the heartbeat subscription"""
        transport = JsonRpcSubscriptionTransport(
            data_params=["logs", {"address": "0x0"}],
            heartbeat_params=[]
        )

        requests = transport.build_requests()

        assert len(requests) == 1
        assert requests[0]["params"] == ["logs", {"address": "0x0"}]


class TestMessageRouting:
    """Tests for classify_message()"""

    def setup_transport(self):
        transport = JsonRpcSubscriptionTransport()
        transport.build_requests()
        transport.classify_message({"jsonrpc": "2.0", "id": 1, "result": "0xdata"})
        transport.classify_message({"jsonrpc": "2.0", "id": 2, "result": "0xheads"})
        return transport

    def test_confirmations_register_subscriptions(self):
        """Verify confirmations map subscription ids to signals"""
        transport = self.setup_transport()

        assert transport.subscriptions == {
            "0xdata": TransportSignal.DATA_ITEM,
            "0xheads": TransportSignal.HEARTBEAT,
        }

    def test_notifications_routed_by_subscription(self):
        """Verify notifications are classified by their subscription id"""
        transport = self.setup_transport()

        assert transport.classify_message(notification("0xdata", "0xtx")) is TransportSignal.DATA_ITEM
        assert transport.classify_message(notification("0xheads", {"number": "0x10"})) is TransportSignal.HEARTBEAT

    def test_unknown_messages_ignored(self):
        """Verify unrelated or malformed messages are not classified"""
        transport = self.setup_transport()

        assert transport.classify_message(notification("0xother", "0xtx")) is None
        assert transport.classify_message({"jsonrpc": "2.0", "method": "eth_subscription"}) is None
        assert transport.classify_message("not a dict") is None

    def test_failed_subscription_not_registered(self):
        """Verify an error confirmation does not register a subscription"""
        transport = JsonRpcSubscriptionTransport()
        transport.build_requests()

        transport.classify_message({"jsonrpc": "2.0", "id": 1, "error": {"code": -32601}})

        assert transport.subscriptions == {}


class TestSubscriptionStream:
    """End-to-end flow over a mocked WebSocket"""

    @pytest.mark.asyncio
    async def test_stream_delivers_results(self):
        """Verify subscriptions are sent and notification results are signalled"""
        messages = [
            {"jsonrpc": "2.0", "id": 1, "result": "0xdata"},
            {"jsonrpc": "2.0", "id": 2, "result": "0xheads"},
            notification("0xdata", "0xpendingtx"),
            notification("0xheads", {"number": "0x10"}),
        ]
        ws = FakeWebSocket([MockWSMessage(WSMsgType.TEXT, json.dumps(m)) for m in messages])
        transport = JsonRpcSubscriptionTransport()
        signals = record_signals(transport)

        with patch("transports.websocket.aiohttp.ClientSession", return_value=mock_session(ws)):
            await transport.open("wss://node.example/ws")
            await asyncio.wait_for(asyncio.gather(transport._reader, return_exceptions=True), 1)

        assert [json.loads(s)["params"] for s in ws.sent] == [["newPendingTransactions"], ["newHeads"]]
        assert signals == [
            (TransportSignal.OPENED, ()),
            (TransportSignal.DATA_ITEM, ("0xpendingtx",)),
            (TransportSignal.HEARTBEAT, ({"number": "0x10"},)),
            (TransportSignal.CLOSED, (1000,)),
        ]
