"""
Transports Package

This package contains the streaming transport adapters used by the
connection state machine. Each adapter implements TransportAdapter:
- base.py: The abstract adapter contract and signal dispatch
- websocket.py: aiohttp WebSocket adapter (default)
- jsonrpc.py: WebSocket adapter for JSON-RPC pub/sub subscriptions

New transports can be added without touching the state machine.
"""
