"""
JSON-RPC Subscription Transport

WebSocket transport for JSON-RPC pub/sub endpoints (Ethereum-style
"eth_subscribe"). After the handshake it subscribes to two streams:

    - a data stream (default "newPendingTransactions"), delivered as DATA_ITEM
    - a heartbeat stream (default "newHeads"), delivered as HEARTBEAT

Subscription confirmations are matched to their request ids to learn each
subscription id; notifications are then routed by that id.

JSON-RPC Message Format:
    Request:      {"jsonrpc": "2.0", "id": 1, "method": "eth_subscribe",
                   "params": ["newPendingTransactions"]}
    Confirmation: {"jsonrpc": "2.0", "id": 1, "result": "0xcd0c..."}
    Notification: {"jsonrpc": "2.0", "method": "eth_subscription",
                   "params": {"subscription": "0xcd0c...", "result": "0xd6fd..."}}

Usage:
    connection = FeedConnection(transport_factory=JsonRpcSubscriptionTransport)
"""

import json
from typing import Any, Dict, List, Optional

from core.schemas import TransportSignal
from transports.websocket import WebSocketTransport


class JsonRpcSubscriptionTransport(WebSocketTransport):
    """
    WebSocket transport that subscribes to a data and a heartbeat stream.

    Attributes:
        data_params: eth_subscribe params for the data stream
        heartbeat_params: eth_subscribe params for the heartbeat stream (None to skip)
        subscribe_method: Subscription RPC method name
        notification_method: Method name carried by notifications
    """

    name = "jsonrpc"

    def __init__(
        self,
        data_params: Optional[List[Any]] = None,
        heartbeat_params: Optional[List[Any]] = None,
        subscribe_method: str = "eth_subscribe",
        notification_method: str = "eth_subscription",
        heartbeat: Optional[float] = 30.0,
        open_timeout: float = 10.0
    ):
        super().__init__(heartbeat=heartbeat, open_timeout=open_timeout)
        self.classify = self.classify_message
        self.data_params = data_params or ["newPendingTransactions"]
        self.heartbeat_params = heartbeat_params if heartbeat_params is not None else ["newHeads"]
        self.subscribe_method = subscribe_method
        self.notification_method = notification_method

        self._next_id = 1
        # request id -> signal the resulting subscription feeds
        self._pending_requests: Dict[int, TransportSignal] = {}
        # subscription id -> signal
        self._subscriptions: Dict[str, TransportSignal] = {}

    # ============================================
    # Subscription Setup
    # ============================================

    def build_requests(self) -> List[Dict[str, Any]]:
        """
        Build the subscription requests and remember which signal each feeds.

        Returns:
            List of JSON-RPC request payloads (data stream first)
        """
        streams = [(TransportSignal.DATA_ITEM, self.data_params)]
        if self.heartbeat_params:
            streams.append((TransportSignal.HEARTBEAT, self.heartbeat_params))

        requests = []
        for signal, params in streams:
            request_id = self._next_id
            self._next_id += 1
            self._pending_requests[request_id] = signal
            requests.append({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": self.subscribe_method,
                "params": list(params),
            })
        return requests

    async def on_open(self) -> None:
        for request in self.build_requests():
            await self.ws.send_str(json.dumps(request))
            self.logger.info(f"Subscribed to {request['params'][0]} (request id {request['id']})")

    # ============================================
    # Message Routing
    # ============================================

    def classify_message(self, payload: Any) -> Optional[TransportSignal]:
        """
        Route a decoded message to DATA_ITEM / HEARTBEAT, or None to ignore it.

        Subscription confirmations are consumed here and return None.
        """
        if not isinstance(payload, dict):
            return None

        request_id = payload.get("id")
        if request_id in self._pending_requests:
            signal = self._pending_requests.pop(request_id)
            subscription_id = payload.get("result")
            if "error" in payload or subscription_id is None:
                self.logger.error(f"Subscription request {request_id} failed: {payload.get('error')}")
                return None
            self._subscriptions[str(subscription_id)] = signal
            self.logger.debug(f"Subscription {subscription_id} feeds {signal.value}")
            return None

        if payload.get("method") != self.notification_method:
            return None

        params = payload.get("params")
        if not isinstance(params, dict):
            return None
        return self._subscriptions.get(str(params.get("subscription")))

    @property
    def subscriptions(self) -> Dict[str, TransportSignal]:
        return dict(self._subscriptions)

    def _dispatch(self, payload: Any) -> None:
        signal = self.classify(payload)
        if signal is None:
            return
        # Consumers get the notification result, not the JSON-RPC envelope
        self.emit_signal(signal, payload["params"].get("result"))
