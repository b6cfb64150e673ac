"""
Unit Tests for the Liveness Monitor

These tests verify that LivenessMonitor:
- Never fires before the first activity (grace period)
- Fires exactly once after silence exceeds the threshold
- Stops cleanly and restarts with a fresh grace period

Run with:
    pytest tests/unit/test_liveness_monitor.py -v
"""

import asyncio

import pytest

from services.liveness_monitor import LivenessMonitor


class FakeClock:
    """Manually advanced millisecond clock"""

    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


# ============================================
# Tests for check()
# ============================================

class TestStalenessCheck:
    """Tests for the single-shot check() logic"""

    def test_no_activity_is_never_stale(self):
        """Verify a monitor without recorded activity reports healthy"""
        clock = FakeClock()
        monitor = LivenessMonitor(1000, on_stale=lambda: None, clock=clock)

        clock.now = 1_000_000
        assert monitor.check() is False

    def test_stale_after_threshold(self):
        """Verify silence longer than the threshold is stale"""
        clock = FakeClock()
        monitor = LivenessMonitor(1000, on_stale=lambda: None, clock=clock)
        monitor.record_activity()

        clock.now = 1000
        assert monitor.check() is False  # exactly at the threshold is still fine

        clock.now = 1001
        assert monitor.check() is True

    def test_activity_resets_silence(self):
        """Verify record_activity() moves the marker forward"""
        clock = FakeClock()
        monitor = LivenessMonitor(1000, on_stale=lambda: None, clock=clock)
        monitor.record_activity()

        clock.now = 900
        monitor.record_activity()
        clock.now = 1800

        assert monitor.check() is False
        assert monitor.last_activity_age_ms() == 900

    def test_age_is_none_without_activity(self):
        """Verify last_activity_age_ms() is None before any activity"""
        monitor = LivenessMonitor(1000, on_stale=lambda: None)
        assert monitor.last_activity_age_ms() is None


# ============================================
# Tests for the periodic loop
# ============================================

class TestPeriodicChecks:
    """Tests for start()/stop() and the stale callback"""

    @pytest.mark.asyncio
    async def test_quiet_new_connection_not_reported(self):
        """Verify no callback fires while nothing has been received"""
        fired = []
        monitor = LivenessMonitor(20, on_stale=lambda: fired.append(1), check_interval_ms=5)

        monitor.start()
        await asyncio.sleep(0.1)

        assert fired == []
        assert monitor.is_running
        monitor.stop()

    @pytest.mark.asyncio
    async def test_fires_exactly_once_then_stops(self):
        """Verify the stale callback fires once and the loop ends"""
        fired = []
        monitor = LivenessMonitor(20, on_stale=lambda: fired.append(1), check_interval_ms=5)

        monitor.start()
        monitor.record_activity()
        await asyncio.sleep(0.15)

        assert fired == [1]
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_regular_activity_keeps_connection_alive(self):
        """Verify activity more frequent than the threshold never fires"""
        fired = []
        monitor = LivenessMonitor(50, on_stale=lambda: fired.append(1), check_interval_ms=5)

        monitor.start()
        for _ in range(10):
            monitor.record_activity()
            await asyncio.sleep(0.01)

        assert fired == []
        monitor.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_checks(self):
        """Verify stop() prevents a pending stale callback"""
        fired = []
        monitor = LivenessMonitor(20, on_stale=lambda: fired.append(1), check_interval_ms=5)

        monitor.start()
        monitor.record_activity()
        monitor.stop()
        await asyncio.sleep(0.08)

        assert fired == []
        assert not monitor.is_running

    @pytest.mark.asyncio
    async def test_start_resets_grace_period(self):
        """Verify restarting forgets activity from the previous connection"""
        monitor = LivenessMonitor(20, on_stale=lambda: None, check_interval_ms=5)
        monitor.start()
        monitor.record_activity()

        monitor.start()

        assert monitor.last_activity is None
        monitor.stop()

    @pytest.mark.asyncio
    async def test_failing_callback_is_contained(self):
        """Verify an exception in the callback does not escape the loop task"""
        def broken():
            raise RuntimeError("callback bug")

        monitor = LivenessMonitor(10, on_stale=broken, check_interval_ms=5)
        monitor.start()
        task = monitor._task
        monitor.record_activity()
        await asyncio.sleep(0.08)

        assert task.done()
        assert task.exception() is None
