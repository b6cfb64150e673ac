"""
Connection Data Schemas

This module defines the enums and Pydantic models shared by the connection
state machine, the transports and the event hub.

Models:
    - ConnectionPhase: Lifecycle phase of the single logical connection
    - TransportSignal: Low-level signals delivered by a transport adapter
    - FeedEvent: Public event names re-published to subscribers
    - RetryPolicy: How failed connection attempts are retried
    - ConnectionStatus: Read-only snapshot of the connection for callers
"""

from datetime import datetime
from enum import Enum
from typing import Callable, Optional
from pydantic import BaseModel, ConfigDict, Field


# ============================================
# Enums
# ============================================

class ConnectionPhase(str, Enum):
    """
    Lifecycle phase of the connection.

    Transitions are strictly DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED.
    A failed attempt goes CONNECTING -> DISCONNECTED before the next retry.
    """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class TransportSignal(str, Enum):
    """Signals a transport adapter delivers to its owner"""
    OPENED = "opened"
    ERROR = "error"
    CLOSED = "closed"
    DATA_ITEM = "data_item"
    HEARTBEAT = "heartbeat"


class FeedEvent(str, Enum):
    """Events published to external subscribers"""
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    DATA = "data"
    HEARTBEAT = "heartbeat"


# ============================================
# Retry Policy
# ============================================

class RetryPolicy(BaseModel):
    """
    Retry policy for connection attempts.

    The defaults retry forever every 100ms, which never surfaces a transport
    failure to the caller of connect().

    Attributes:
        interval_ms: Delay before the second attempt
        backoff_factor: Multiplier applied to the delay after each failure (1.0 = fixed)
        max_interval_ms: Upper bound for the delay
        max_attempts: Give up after this many attempts (None = never)
        is_fatal: Optional classifier; returning True for an error stops retrying

    Example:
        >>> policy = RetryPolicy(interval_ms=100, backoff_factor=2.0, max_interval_ms=1000)
        >>> [policy.delay_ms(n) for n in range(1, 6)]
        [100.0, 200.0, 400.0, 800.0, 1000.0]
    """

    model_config = ConfigDict(frozen=True)

    interval_ms: float = Field(default=100.0, gt=0)
    backoff_factor: float = Field(default=1.0, ge=1.0)
    max_interval_ms: float = Field(default=30_000.0, gt=0)
    max_attempts: Optional[int] = Field(default=None, ge=1)
    is_fatal: Optional[Callable[[BaseException], bool]] = None

    def delay_ms(self, attempt: int) -> float:
        """Delay to wait after the given (1-based) failed attempt"""
        delay = self.interval_ms * (self.backoff_factor ** max(attempt - 1, 0))
        return min(delay, self.max_interval_ms)

    def should_retry(self, attempt: int, error: Optional[BaseException] = None) -> bool:
        """Whether another attempt may follow the given failed attempt"""
        if error is not None and self.is_fatal is not None and self.is_fatal(error):
            return False
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return False
        return True


# ============================================
# Connection Status Snapshot
# ============================================

class ConnectionStatus(BaseModel):
    """
    Read-only snapshot of the connection, safe to hand to callers.

    Attributes:
        address: Target URI
        phase: Current lifecycle phase
        connected: Result of is_connected() at snapshot time
        connected_at: UTC time the current connection was established
        last_activity_age_ms: Milliseconds since the last inbound signal (None if none yet)
        attempts: Attempts made in the current (or last) connect cycle
        drops: Number of established connections that dropped
    """

    address: Optional[str] = None
    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    connected: bool = False
    connected_at: Optional[datetime] = None
    last_activity_age_ms: Optional[float] = None
    attempts: int = 0
    drops: int = 0
