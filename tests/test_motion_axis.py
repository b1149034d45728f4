"""
Motion Axis Tests
=================

Shared MotionAxis plumbing exercised through a scripted driver and the
kinematic simulator.
"""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from conftest import ScriptedAxis, wait_until
from focus_hunter.devices.simulated import SimulatedMotionAxis
from focus_hunter.errors import (
    ConcurrentOperationError,
    MotionTimeoutError,
    OperationCancelledError,
)
from focus_hunter.models.fault_codes import FaultReason


@pytest.fixture
def axis():
    a = ScriptedAxis(position=0.0, hold_targets=(8.0,))
    assert a.connect()
    yield a
    a.disconnect()


class TestMoves:
    """Tests for move_absolute()."""

    def test_move_arrives(self, axis):
        assert axis.move_absolute(3.0, 1.0)
        assert axis.get_position().position == 3.0
        assert axis.pending_target is None

    def test_target_clamped_to_limits(self, axis):
        assert axis.move_absolute(15.0, 1.0)
        assert axis.move_absolute(-4.0, 1.0)
        assert axis.targets == [10.0, 0.0]

    def test_not_connected_returns_false(self):
        axis = ScriptedAxis()
        assert axis.move_absolute(1.0, 1.0) is False
        assert axis.commands == []

    def test_rejected_move_returns_false(self):
        axis = ScriptedAxis(reject_moves=True)
        axis.connect()
        try:
            assert axis.move_absolute(1.0, 1.0) is False
            assert axis.metrics()["moves_rejected"] == 1
        finally:
            axis.disconnect()

    def test_speed_must_be_positive(self, axis):
        with pytest.raises(ValueError):
            axis.move_absolute(1.0, 0.0)


class TestConcurrency:
    """Overlapping moves fail fast."""

    def test_move_during_non_waiting_move(self, axis):
        """A move while a non-waiting move is still travelling is rejected."""
        assert axis.move_absolute(8.0, 1.0, wait=False)

        with pytest.raises(ConcurrentOperationError):
            axis.move_absolute(2.0, 1.0)
        assert axis.targets == [8.0]

    def test_move_after_non_waiting_move_arrived(self, axis):
        assert axis.move_absolute(8.0, 1.0, wait=False)
        axis.position = 8.0

        assert axis.move_absolute(2.0, 1.0)
        assert axis.targets == [8.0, 2.0]

    def test_move_during_waiting_move(self, axis):
        """A second caller is rejected while the first waits."""
        with ThreadPoolExecutor(max_workers=1) as executor:
            first = executor.submit(axis.move_absolute, 8.0, 1.0, True, 2.0)
            assert wait_until(lambda: axis.pending_target == 8.0)

            with pytest.raises(ConcurrentOperationError):
                axis.move_absolute(2.0, 1.0)

            axis.position = 8.0
            assert first.result(timeout=2.0) is True


class TestWaiting:
    """Bounded, cancellable waits."""

    def test_timeout(self, axis):
        started = time.monotonic()
        with pytest.raises(MotionTimeoutError):
            axis.move_absolute(8.0, 1.0, timeout_s=0.1)
        assert time.monotonic() - started < 1.0

    def test_cancel_event(self, axis):
        cancel = threading.Event()
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            with pytest.raises(OperationCancelledError):
                axis.move_absolute(8.0, 1.0, timeout_s=5.0, cancel_event=cancel)
        finally:
            timer.cancel()

    def test_wait_without_pending_move(self, axis):
        sample = axis.wait_for_motion(timeout_s=0.1)
        assert sample.is_valid
        assert sample.position == 0.0

    def test_timeout_releases_pending_target(self, axis):
        """After a timed-out wait the next move is accepted."""
        with pytest.raises(MotionTimeoutError):
            axis.move_absolute(8.0, 1.0, timeout_s=0.05)
        assert axis.pending_target is None

        assert axis.move_absolute(2.0, 1.0)
        assert axis.targets == [8.0, 2.0]

    def test_cancel_releases_pending_target(self, axis):
        cancel = threading.Event()
        cancel.set()
        with pytest.raises(OperationCancelledError):
            axis.move_absolute(8.0, 1.0, cancel_event=cancel)

        assert axis.pending_target is None
        assert axis.move_absolute(2.0, 1.0)

    def test_abandon_pending(self, axis):
        """Abandoning a non-waiting move sends no command."""
        assert axis.move_absolute(8.0, 1.0, wait=False)

        assert axis.abandon_pending() == 8.0
        assert axis.abandon_pending() is None
        assert axis.targets == [8.0]
        assert axis.move_absolute(2.0, 1.0)

    def test_derived_timeout(self):
        axis = ScriptedAxis(timeout_factor=2.0, timeout_margin_s=0.5)
        assert axis.derive_timeout(4.0, 2.0) == pytest.approx(4.5)


class TestPosition:
    """get_position() never raises."""

    def test_not_connected_returns_sentinel(self):
        assert not ScriptedAxis().get_position().is_valid

    def test_read_failure_returns_sentinel(self, axis):
        axis.fail_reads = True
        assert not axis.get_position().is_valid
        assert axis.metrics()["read_failures"] == 1
        assert axis.is_connected

    def test_limits_cached(self, axis):
        axis.limits = (5.0, 6.0)
        assert (axis.min_position, axis.max_position) == (0.0, 10.0)


class TestFaults:
    """Connection loss on the error channel."""

    def test_connection_loss_reported_once(self, axis):
        faults = []
        axis.add_fault_listener(faults.append)

        axis.lose_connection()
        axis.lose_connection()

        assert len(faults) == 1
        assert faults[0].kind == FaultReason.AXIS_DISCONNECTED
        assert faults[0].device == "axis"
        assert not axis.is_connected
        assert not axis.get_position().is_valid

    def test_failing_listener_does_not_block_others(self, axis):
        received = []

        def broken(fault):
            raise RuntimeError("boom")

        axis.add_fault_listener(broken)
        axis.add_fault_listener(received.append)
        axis.lose_connection()

        assert len(received) == 1

    def test_reconnect_after_loss(self, axis):
        axis.lose_connection()
        assert axis.connect()
        assert axis.move_absolute(4.0, 1.0)


class TestSimulatedMotionAxis:
    """Kinematic simulator."""

    def test_move_takes_time_and_arrives(self):
        axis = SimulatedMotionAxis(read_latency_s=0.0)
        assert axis.connect()
        try:
            started = time.monotonic()
            assert axis.move_absolute(2.0, 20.0)
            elapsed = time.monotonic() - started

            assert axis.get_position().position == pytest.approx(2.0, abs=0.01)
            assert elapsed >= 0.08
        finally:
            axis.disconnect()

    def test_peek_tracks_motion(self):
        axis = SimulatedMotionAxis(read_latency_s=0.0)
        assert axis.connect()
        try:
            axis.move_absolute(10.0, 10.0, wait=False)
            time.sleep(0.1)
            midway = axis.peek_position()
            assert midway.is_valid
            assert 0.0 < midway.position < 10.0
        finally:
            axis.disconnect()

    def test_limits(self):
        axis = SimulatedMotionAxis(min_position=1.0, max_position=3.0)
        assert (axis.min_position, axis.max_position) == (1.0, 3.0)

    def test_connection_loss(self):
        axis = SimulatedMotionAxis(read_latency_s=0.0)
        faults = []
        axis.add_fault_listener(faults.append)
        axis.connect()

        axis.inject_connection_loss()

        assert faults[0].kind == FaultReason.AXIS_DISCONNECTED
        assert not axis.peek_position().is_valid
        axis.disconnect()
