"""Tests for DebouncedRescan and PeriodicTask classes."""

import threading

from gallery.periodic import PeriodicTask
from gallery.rescan_scheduler import DebouncedRescan


class FakeTimer:
    """threading.Timer stand-in fired by hand."""

    created = []

    def __init__(self, interval, function):
        self.interval = interval
        self.function = function
        self.cancelled = False
        self.started = False
        self.daemon = False
        FakeTimer.created.append(self)

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.function()


def make_debouncer(rescan, delay=5.0):
    FakeTimer.created = []
    return DebouncedRescan(rescan, delay=delay, timer_factory=FakeTimer)


class TestDebouncedRescan:
    """Tests for DebouncedRescan class."""

    def test_burst_coalesces(self, mocker):
        """Test a burst of triggers runs one rescan after the quiet period."""
        rescan = mocker.MagicMock()
        debouncer = make_debouncer(rescan)

        for i in range(5):
            assert debouncer.trigger(f'change {i}') is True

        assert len(FakeTimer.created) == 5
        assert all(t.cancelled for t in FakeTimer.created[:-1])
        assert FakeTimer.created[-1].interval == 5.0
        assert debouncer.is_pending

        for timer in FakeTimer.created:
            timer.fire()

        rescan.assert_called_once()
        assert debouncer.runs == 1
        assert debouncer.triggers == 5
        assert not debouncer.is_pending

    def test_triggers_dropped_while_scanning(self):
        """Test changes during a rescan are not queued."""
        results = []
        debouncer = make_debouncer(lambda: results.append(debouncer.trigger('during')))

        debouncer.trigger('before')
        FakeTimer.created[-1].fire()

        assert results == [False]
        assert len(FakeTimer.created) == 1
        assert not debouncer.is_scanning

    def test_rescan_error_logged(self, mocker):
        """Test a failing rescan does not break the scheduler."""
        rescan = mocker.MagicMock(side_effect=[RuntimeError('boom'), None])
        debouncer = make_debouncer(rescan)

        debouncer.trigger()
        FakeTimer.created[-1].fire()
        debouncer.trigger()
        FakeTimer.created[-1].fire()

        assert rescan.call_count == 2
        assert not debouncer.is_scanning

    def test_run_now_cancels_pending(self, mocker):
        """Test run_now rescans immediately and drops the timer."""
        rescan = mocker.MagicMock()
        debouncer = make_debouncer(rescan)
        debouncer.trigger()

        assert debouncer.run_now() is True

        assert FakeTimer.created[0].cancelled
        rescan.assert_called_once()

    def test_cancel(self, mocker):
        """Test cancel stops a pending rescan."""
        rescan = mocker.MagicMock()
        debouncer = make_debouncer(rescan)
        debouncer.trigger()

        debouncer.cancel()
        FakeTimer.created[0].fire()

        rescan.assert_not_called()

    def test_late_fire_keeps_newer_timer(self, mocker):
        """Test a superseded timer firing late leaves the newer timer pending."""
        rescan = mocker.MagicMock()
        debouncer = make_debouncer(rescan)
        debouncer.trigger('first')
        debouncer.trigger('second')

        # fires despite having been cancelled
        FakeTimer.created[0].function()

        rescan.assert_not_called()
        assert debouncer.is_pending

        debouncer.cancel()

        assert FakeTimer.created[1].cancelled
        assert not debouncer.is_pending

    def test_real_timer(self):
        """Test the default timer fires after the delay."""
        done = threading.Event()
        debouncer = DebouncedRescan(done.set, delay=0.01)

        debouncer.trigger('file added')

        assert done.wait(2)


class TestPeriodicTask:
    """Tests for PeriodicTask class."""

    def test_tick_logs_failures(self, mocker):
        """Test exceptions from the callable are swallowed and logged."""
        func = mocker.MagicMock(side_effect=OSError('disk'))
        task = PeriodicTask('sweep', 60, func)

        task.tick()
        task.tick()

        assert func.call_count == 2
        assert task.runs == 2

    def test_runs_until_stopped(self):
        """Test the task runs repeatedly in the background."""
        calls = threading.Semaphore(0)
        task = PeriodicTask('fast', 0.01, calls.release)

        task.start()
        try:
            assert calls.acquire(timeout=2)
            assert calls.acquire(timeout=2)
            assert task.is_running
        finally:
            task.stop(timeout=2)

        assert not task.is_running
