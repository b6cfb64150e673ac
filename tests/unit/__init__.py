"""Unit tests for the connection core, its services and transports."""
