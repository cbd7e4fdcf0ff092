"""Unit tests for the visibility-aware scheduler."""
import asyncio

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from agentrelay.scheduler import BackgroundAwareInterval, VisibilityMonitor

from conftest import FakeClock


class Counter:
    def __init__(self):
        self.calls = 0

    def __call__(self):
        self.calls += 1


class TestVisibilityMonitor:
    """Tests for VisibilityMonitor."""

    def test_listeners_fire_only_on_change(self):
        """Test that listeners are told only about actual visibility changes."""
        monitor = VisibilityMonitor()
        seen = []
        monitor.subscribe(seen.append)

        monitor.show()
        monitor.hide()
        monitor.hide()
        monitor.show()

        assert seen == [False, True]

    def test_unsubscribe(self):
        """Test that unsubscribing twice is safe."""
        monitor = VisibilityMonitor()
        seen = []
        unsubscribe = monitor.subscribe(seen.append)
        unsubscribe()
        unsubscribe()
        monitor.hide()
        assert seen == []

    def test_failing_listener_is_isolated(self):
        """Test that a failing listener does not block the others."""
        monitor = VisibilityMonitor()
        seen = []

        def explode(visible):
            raise RuntimeError("bug")

        monitor.subscribe(explode)
        monitor.subscribe(seen.append)
        monitor.hide()
        assert seen == [False]
        assert not monitor.is_visible


class TestBackgroundAwareInterval:
    """Tests for BackgroundAwareInterval with a fake clock."""

    def test_start_runs_immediately_and_ticks(self, clock):
        """Test that start runs the callback and then every delay."""
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 2.0, clock=clock)

        interval.start()
        assert counter.calls == 1
        assert interval.is_running

        clock.advance(2.0)
        assert counter.calls == 2
        clock.advance(5.0)
        assert counter.calls == 4

    def test_without_immediate(self, clock):
        """Test that immediate=False waits one delay before the first run."""
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, immediate=False, clock=clock)
        interval.start()
        assert counter.calls == 0
        clock.advance(1.0)
        assert counter.calls == 1

    def test_double_start_keeps_one_timer(self, clock):
        """Test that starting twice keeps a single timer."""
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, clock=clock)
        interval.start()
        interval.start()

        assert len(clock.active) == 1
        assert counter.calls == 1
        clock.advance(1.0)
        assert counter.calls == 2

    def test_stop_is_idempotent(self, clock):
        """Test that stop cancels the timer and can be repeated."""
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, clock=clock)
        interval.start()
        interval.stop()
        interval.stop()

        assert not interval.is_running
        assert clock.active == []
        clock.advance(10.0)
        assert counter.calls == 1

    def test_restart(self, clock):
        """Test that restart runs once more and keeps one timer."""
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, clock=clock)
        interval.start()
        interval.restart()
        assert counter.calls == 2
        assert len(clock.active) == 1

    def test_hidden_pauses_and_visible_resumes(self, clock):
        """Test that hiding pauses the interval and showing resumes it."""
        monitor = VisibilityMonitor()
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, visibility=monitor, clock=clock)
        interval.start()

        monitor.hide()
        assert interval.is_running
        assert not interval.is_armed
        clock.advance(10.0)
        assert counter.calls == 1

        # No explicit start() needed
        monitor.show()
        assert interval.is_armed
        assert counter.calls == 2
        clock.advance(1.0)
        assert counter.calls == 3
        assert len(clock.active) == 1

    def test_start_while_hidden_only_sets_flag(self, clock):
        """Test that starting while hidden waits for visibility."""
        monitor = VisibilityMonitor(visible=False)
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, visibility=monitor, clock=clock)
        interval.start()

        assert interval.is_running
        assert counter.calls == 0
        assert clock.active == []

        monitor.show()
        assert counter.calls == 1
        assert len(clock.active) == 1

    def test_stop_while_hidden(self, clock):
        """Test that an interval stopped while hidden stays stopped."""
        monitor = VisibilityMonitor()
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 1.0, visibility=monitor, clock=clock)
        interval.start()
        monitor.hide()
        interval.stop()
        interval.stop()

        monitor.show()
        assert counter.calls == 1
        assert clock.active == []

    def test_latest_callback_is_used(self, clock):
        """Test that replacing the callback takes effect on the next tick."""
        first, second = Counter(), Counter()
        interval = BackgroundAwareInterval(first, 1.0, clock=clock)
        interval.start()
        interval.callback = second
        clock.advance(1.0)
        assert first.calls == 1
        assert second.calls == 1

    def test_changing_delay_rearms(self, clock):
        """Test that a new delay rearms the timer."""
        counter = Counter()
        interval = BackgroundAwareInterval(counter, 10.0, clock=clock)
        interval.start()
        interval.delay = 1.0

        assert len(clock.active) == 1
        clock.advance(1.0)
        assert counter.calls == 2

    def test_failing_callback_keeps_ticking(self, clock):
        """Test that a raising callback does not stop the interval."""
        calls = []

        def flaky():
            calls.append(clock.now)
            raise RuntimeError("poll failed")

        interval = BackgroundAwareInterval(flaky, 1.0, clock=clock)
        interval.start()
        clock.advance(2.0)
        assert calls == [0.0, 1.0, 2.0]
        assert interval.is_armed

    def test_dispose_cancels_and_detaches(self, clock):
        """Test that dispose cancels the timer and ignores later visibility."""
        monitor = VisibilityMonitor()
        counter = Counter()
        with BackgroundAwareInterval(counter, 1.0, visibility=monitor, clock=clock) as interval:
            interval.start()

        assert clock.active == []
        monitor.hide()
        monitor.show()
        assert counter.calls == 1
        with pytest.raises(RuntimeError):
            interval.start()

    def test_invalid_delay(self, clock):
        """Test that a zero delay is rejected."""
        with pytest.raises(ValueError):
            BackgroundAwareInterval(Counter(), 0, clock=clock)

    @given(st.lists(st.sampled_from(["start", "stop", "restart", "hide", "show", "tick"]), max_size=40))
    @settings(max_examples=200)
    def test_never_more_than_one_timer(self, operations):
        """Property test: no operation sequence arms more than one timer."""
        clock = FakeClock()
        monitor = VisibilityMonitor()
        interval = BackgroundAwareInterval(Counter(), 1.0, visibility=monitor, clock=clock)

        for operation in operations:
            if operation == "hide":
                monitor.hide()
            elif operation == "show":
                monitor.show()
            elif operation == "tick":
                clock.advance(1.0)
            else:
                getattr(interval, operation)()

            assert len(clock.active) <= 1
            assert interval.is_armed == (interval.is_running and monitor.is_visible)


class TestAsyncCallbacks:
    """Coroutine callbacks on a real event loop."""

    @pytest.mark.asyncio
    async def test_slow_callbacks_may_overlap(self, clock):
        """Test that slow coroutine callbacks may overlap while one timer runs."""
        release = asyncio.Event()
        started = []

        async def slow_poll():
            started.append(clock.now)
            await release.wait()

        interval = BackgroundAwareInterval(slow_poll, 1.0, clock=clock)
        interval.start()
        await asyncio.sleep(0)
        clock.advance(1.0)
        await asyncio.sleep(0)

        # One timer, yet two polls in flight: the accepted tradeoff
        assert len(clock.active) == 1
        assert started == [0.0, 1.0]
        assert interval.in_flight == 2

        release.set()
        for _ in range(3):
            await asyncio.sleep(0)
        assert interval.in_flight == 0
        interval.dispose()

    @pytest.mark.asyncio
    async def test_defaults_to_running_loop(self):
        """Test that the running loop is used when no clock is given."""
        ticks = asyncio.Event()
        interval = BackgroundAwareInterval(ticks.set, 0.01, immediate=False)
        interval.start()
        await asyncio.wait_for(ticks.wait(), timeout=1.0)
        interval.dispose()
