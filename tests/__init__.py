"""
Test Suite

Contains unit tests for the feed connection manager.

Structure:
- tests/unit/: Tests for individual components (state machine, liveness
  monitor, event hub, transports, configuration)

Uses pytest with pytest-asyncio for testing async functionality.
"""
