"""
Core Package

Contains the transport-agnostic core of the feed connection manager:
- FeedConnection: Connection state machine with automatic reconnection
- Schemas: Phase/signal/event enums, RetryPolicy and ConnectionStatus models
- Exceptions: ConfigurationError and the transport error taxonomy
- Config & Logging: Pydantic settings and the shared application logger
"""
