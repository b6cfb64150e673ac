"""
Liveness Monitor

Detects a connection that is open but silent and asks for a reconnect.
Some transports never report a half-open socket, so the only evidence of
a dead feed is that nothing arrives any more.

Rules:
    - Only inbound data items and heartbeats advance the activity marker
      (record_activity()).
    - A freshly started monitor has no marker and never fires until the
      first activity is seen (grace period for quiet new connections).
    - Once silence exceeds the threshold, on_stale is called exactly once
      and the periodic check ends. The owner restarts the monitor after
      the next successful connection.
"""

import asyncio
from typing import Callable, Optional

from core.logging import get_logger
from core.utils.time import monotonic_ms, ms_to_seconds


class LivenessMonitor:
    """
    Periodic silence check for one connection.

    Attributes:
        threshold_ms: Maximum allowed silence after the first activity
        check_interval_ms: Time between checks

    Example:
        >>> monitor = LivenessMonitor(5000, on_stale=lambda: print("stale"))
        >>> monitor.start()          # when the connection opens
        >>> monitor.record_activity()  # on every inbound message
        >>> monitor.stop()           # when the connection goes away
    """

    def __init__(
        self,
        threshold_ms: float,
        on_stale: Callable[[], None],
        check_interval_ms: float = 100,
        clock: Callable[[], float] = monotonic_ms
    ):
        self.threshold_ms = threshold_ms
        self.check_interval_ms = check_interval_ms
        self._on_stale = on_stale
        self._clock = clock

        self._last_activity: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

        self.logger = get_logger(__name__)

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def last_activity(self) -> Optional[float]:
        return self._last_activity

    def record_activity(self) -> None:
        self._last_activity = self._clock()

    def last_activity_age_ms(self) -> Optional[float]:
        """Milliseconds since the last activity, None if nothing was recorded"""
        if self._last_activity is None:
            return None
        return self._clock() - self._last_activity

    def start(self) -> None:
        """
        Begin periodic checks.

        Resets the activity marker and replaces any running check loop.
        """
        self.stop()
        self._last_activity = None
        self._task = asyncio.get_running_loop().create_task(self._run())
        self.logger.debug(
            f"Liveness monitor started (threshold={self.threshold_ms}ms, "
            f"interval={self.check_interval_ms}ms)"
        )

    def stop(self) -> None:
        """Cancel periodic checks. Safe to call when not running"""
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
            self.logger.debug("Liveness monitor stopped")

    def check(self) -> bool:
        """
        Run a single staleness check.

        Returns:
            True if the connection is stale (silence exceeded the threshold)
        """
        age = self.last_activity_age_ms()
        if age is None:
            return False
        return age > self.threshold_ms

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(ms_to_seconds(self.check_interval_ms))
            if not self.check():
                continue

            self.logger.warning(
                f"No activity for {self.last_activity_age_ms():.0f}ms "
                f"(threshold {self.threshold_ms}ms), requesting reconnect"
            )
            # Detach before calling out so stop() from the callback is a no-op
            self._task = None
            try:
                self._on_stale()
            except Exception:
                self.logger.exception("Stale-connection callback raised")
            return
