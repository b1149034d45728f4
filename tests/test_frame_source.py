"""
Frame Source Tests
==================

Lifecycle plumbing shared by all camera drivers.
"""

import threading

import pytest

from conftest import ScriptedFrameSource


class SlowStopSource(ScriptedFrameSource):
    """Source whose acquisition thread takes until `release` to stop."""

    def __init__(self) -> None:
        super().__init__()
        self.release = threading.Event()
        self.stop_entered = threading.Event()

    def _stop_acquisition(self) -> None:
        self.stop_entered.set()
        self.release.wait(2.0)
        super()._stop_acquisition()


@pytest.fixture
def slow_source():
    source = SlowStopSource()
    assert source.initialize()
    yield source
    source.release.set()
    source.close()


class TestStop:
    """Tests for stop()."""

    def test_stop_without_start_returns(self, slow_source):
        slow_source.stop()
        assert not slow_source.stop_entered.is_set()

    def test_concurrent_stop_waits_for_first(self, slow_source):
        """A second stop() does not return while the first is still joining."""
        assert slow_source.start()
        first = threading.Thread(target=slow_source.stop)
        first.start()
        assert slow_source.stop_entered.wait(2.0)

        second_done = threading.Event()

        def second_stop():
            slow_source.stop()
            second_done.set()

        second = threading.Thread(target=second_stop)
        second.start()

        assert not second_done.wait(0.1)
        assert not slow_source.is_acquiring

        slow_source.release.set()
        assert second_done.wait(2.0)
        first.join(timeout=2.0)
        second.join(timeout=2.0)

    def test_stop_from_fault_listener(self):
        """stop() inside a connection-loss listener returns immediately."""
        source = ScriptedFrameSource()
        stopped_in_listener = threading.Event()

        def on_fault(fault):
            source.stop()
            stopped_in_listener.set()

        source.add_fault_listener(on_fault)
        try:
            assert source.initialize()
            assert source.start()

            source.lose_connection()

            assert stopped_in_listener.is_set()
            assert not source.is_acquiring
        finally:
            source.close()

    def test_restart_after_stop(self):
        source = ScriptedFrameSource()
        try:
            assert source.initialize()
            assert source.start()
            source.stop()
            assert source.start()
            assert source.start_count == 2
        finally:
            source.close()
