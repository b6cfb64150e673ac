"""
Feed Connection Errors

Error taxonomy for the connection manager:

    FeedError
    ├── ConfigurationError          invalid address / timeout (fatal, never retried)
    ├── TransportEstablishError     an attempt failed to open (retried internally)
    │   └── ConnectionAttemptsExhausted   bounded retry policy gave up
    └── TransportDropped            an established connection went away

Only ConfigurationError (and ConnectionAttemptsExhausted, when the caller
opts into a bounded RetryPolicy) ever reaches the caller as an exception.
Drops are reported through the "disconnected" event instead.
"""

from typing import Optional


class FeedError(Exception):
    """Base class for all feed connection errors"""


class ConfigurationError(FeedError, ValueError):
    """Invalid connection configuration (empty address, non-positive timeout, ...)"""


class TransportEstablishError(FeedError):
    """
    A connection attempt failed before the transport signalled "opened".

    Attributes:
        attempt: 1-based attempt number within the current connect cycle
        original_error: Error reported by the transport, if any
    """

    def __init__(
        self,
        message: str,
        attempt: int = 0,
        original_error: Optional[BaseException] = None
    ):
        full_msg = message
        if original_error is not None:
            full_msg += f" | Caused by: {type(original_error).__name__}: {original_error}"

        super().__init__(full_msg)

        self.attempt = attempt
        self.original_error = original_error


class ConnectionAttemptsExhausted(TransportEstablishError):
    """Raised by connect() when a bounded RetryPolicy stops retrying"""


class TransportDropped(FeedError):
    """
    An established connection was closed or errored.

    Never raised; passed as the argument of the "disconnected" event.
    """

    def __init__(self, address: str, reason: Optional[object] = None):
        message = f"Connection to {address} dropped"
        if reason is not None:
            message += f": {reason}"

        super().__init__(message)

        self.address = address
        self.reason = reason
