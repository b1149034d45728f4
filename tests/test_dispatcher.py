"""
Frame Dispatcher Tests
======================

Ordering, flushing and failure isolation of the dispatch thread.
"""

import threading
import time

import pytest

from conftest import make_frame, wait_until
from focus_hunter.stream.dispatcher import FrameDispatcher


@pytest.fixture
def dispatcher():
    d = FrameDispatcher(name="test-dispatch", join_timeout_s=1.0)
    yield d
    d.stop()


class TestOrdering:
    """Frames are delivered once, in submission order."""

    def test_order_preserved_under_slow_listener(self, dispatcher):
        """A slow listener sees every frame in order."""
        received = []

        def slow(frame):
            time.sleep(0.001)
            received.append(frame.frame_id)

        dispatcher.subscribe(slow)
        dispatcher.start()
        for i in range(50):
            dispatcher.submit(make_frame(i))

        assert dispatcher.wait_idle(timeout=5.0)
        assert received == list(range(50))

    def test_frames_submitted_before_start_are_delivered(self, dispatcher):
        """Queued frames wait for the thread instead of being dropped."""
        received = []
        dispatcher.subscribe(lambda f: received.append(f.frame_id))
        for i in range(3):
            dispatcher.submit(make_frame(i))
        assert dispatcher.size == 3

        dispatcher.start()
        assert dispatcher.wait_idle(timeout=2.0)
        assert received == [0, 1, 2]

    def test_all_listeners_receive_each_frame(self, dispatcher):
        """Every subscribed listener is called per frame."""
        first, second = [], []
        dispatcher.subscribe(lambda f: first.append(f.frame_id))
        dispatcher.subscribe(lambda f: second.append(f.frame_id))
        dispatcher.start()
        for i in range(5):
            dispatcher.submit(make_frame(i))

        assert dispatcher.wait_idle(timeout=2.0)
        assert first == second == [0, 1, 2, 3, 4]

    def test_unsubscribed_listener_not_called(self, dispatcher):
        received = []

        def listener(frame):
            received.append(frame.frame_id)

        dispatcher.subscribe(listener)
        dispatcher.unsubscribe(listener)
        dispatcher.start()
        dispatcher.submit(make_frame(0))

        assert dispatcher.wait_idle(timeout=2.0)
        assert received == []


class TestFlush:
    """flush() discards undelivered frames."""

    def test_flush_never_redelivers(self, dispatcher):
        """Flushed frames are not delivered; the frame in hand is."""
        received = []
        in_listener = threading.Event()
        release = threading.Event()

        def blocking(frame):
            received.append(frame.frame_id)
            in_listener.set()
            release.wait(2.0)

        dispatcher.subscribe(blocking)
        dispatcher.start()
        for i in range(10):
            dispatcher.submit(make_frame(i))

        assert in_listener.wait(2.0)
        flushed = dispatcher.flush()
        release.set()

        assert flushed == 9
        assert dispatcher.wait_idle(timeout=2.0)
        assert received == [0]
        assert dispatcher.metrics()["flushed"] == 9

    def test_flush_empty_queue(self, dispatcher):
        assert dispatcher.flush() == 0


class TestFailureIsolation:
    """Listener failures never kill the dispatch thread."""

    def test_listener_exception_counted(self, dispatcher):
        """Exceptions are counted and later listeners still run."""
        received = []

        def broken(frame):
            raise RuntimeError("boom")

        dispatcher.subscribe(broken)
        dispatcher.subscribe(lambda f: received.append(f.frame_id))
        dispatcher.start()
        for i in range(3):
            dispatcher.submit(make_frame(i))

        assert dispatcher.wait_idle(timeout=2.0)
        assert received == [0, 1, 2]
        assert dispatcher.metrics()["listener_errors"] == 3
        assert dispatcher.is_running


class TestLifecycle:
    """Start/stop behaviour."""

    def test_stop_interrupts_idle_wait(self, dispatcher):
        """stop() returns promptly while the thread waits on an empty queue."""
        dispatcher.start()
        assert wait_until(lambda: dispatcher.is_running)

        started = time.monotonic()
        dispatcher.stop(timeout=1.0)

        assert time.monotonic() - started < 1.0
        assert not dispatcher.is_running

    def test_restart_after_stop(self, dispatcher):
        received = []
        dispatcher.subscribe(lambda f: received.append(f.frame_id))
        dispatcher.start()
        dispatcher.stop()
        dispatcher.start()
        dispatcher.submit(make_frame(7))

        assert dispatcher.wait_idle(timeout=2.0)
        assert received == [7]

    def test_metrics(self, dispatcher):
        dispatcher.start()
        dispatcher.submit(make_frame(0))
        dispatcher.submit(make_frame(1))
        assert dispatcher.wait_idle(timeout=2.0)

        metrics = dispatcher.metrics()
        assert metrics["submitted"] == 2
        assert metrics["delivered"] == 2
        assert metrics["size"] == 0
