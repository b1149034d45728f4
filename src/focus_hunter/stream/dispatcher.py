"""
Frame Dispatcher
================

Thread-safe FIFO decoupling frame acquisition from frame consumers.

A FrameSource driver submits frames from its acquisition thread; a single
dedicated dispatch thread delivers them, in submission order, to every
subscribed listener. Consumer work therefore never runs on the
acquisition thread.

Design Rules:
    - Unbounded, never drops (a slow consumer grows the queue)
    - Strict FIFO, one dispatch thread, one frame at a time
    - flush() discards undelivered frames without invoking listeners
    - stop() is prompt: the frame in hand is finished, then the thread exits
    - A failing listener is logged and counted, never kills the thread
    - Exposes minimal metrics for observability
"""

import logging
import threading
from collections import deque
from typing import Callable, Deque, List, Optional

from focus_hunter.models.frame import Frame


logger = logging.getLogger(__name__)


FrameListener = Callable[[Frame], None]


class FrameDispatcher:
    """
    Ordered frame queue with its own delivery thread.

    Attributes:
        name: Thread name, used in logs
        size: Frames waiting for delivery
        is_running: Whether the dispatch thread is alive

    Example:
        dispatcher = FrameDispatcher()
        dispatcher.subscribe(lambda frame: print(frame.frame_id))
        dispatcher.start()

        # Acquisition thread
        dispatcher.submit(frame)

        dispatcher.stop()
    """

    def __init__(
        self,
        name: str = "frame-dispatcher",
        join_timeout_s: float = 2.0,
    ) -> None:
        """
        Initialize the dispatcher. The thread is not started.

        Args:
            name: Name of the dispatch thread
            join_timeout_s: Bound on waiting for the thread in stop()
        """
        self.name = name
        self._join_timeout_s = join_timeout_s

        self._queue: Deque[Frame] = deque()
        self._cond = threading.Condition()
        self._listeners: List[FrameListener] = []
        self._thread: Optional[threading.Thread] = None
        self._stopping = False
        self._delivering = False

        # Metrics
        self._submitted = 0
        self._delivered = 0
        self._flushed = 0
        self._listener_errors = 0

    # =========================================================================
    # Listeners
    # =========================================================================

    def subscribe(self, listener: FrameListener) -> None:
        """Register a listener. Registering the same listener twice is a no-op."""
        with self._cond:
            if listener not in self._listeners:
                self._listeners.append(listener)

    def unsubscribe(self, listener: FrameListener) -> None:
        """Remove a listener if registered."""
        with self._cond:
            if listener in self._listeners:
                self._listeners.remove(listener)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the dispatch thread. No-op if already running."""
        with self._cond:
            if self.is_running:
                return
            self._stopping = False
            self._thread = threading.Thread(
                target=self._run,
                name=self.name,
                daemon=True,
            )
            self._thread.start()
        logger.info(f"FrameDispatcher '{self.name}' started")

    def stop(self, timeout: Optional[float] = None) -> None:
        """
        Stop the dispatch thread.

        Frames still queued stay queued; call flush() to discard them.

        Args:
            timeout: Join bound, defaults to join_timeout_s
        """
        with self._cond:
            thread = self._thread
            if thread is None:
                return
            self._stopping = True
            self._cond.notify_all()

        if thread is not threading.current_thread():
            thread.join(timeout=self._join_timeout_s if timeout is None else timeout)
            if thread.is_alive():
                logger.warning(
                    f"FrameDispatcher '{self.name}' did not stop within timeout"
                )

        with self._cond:
            if self._thread is thread:
                self._thread = None
        logger.info(f"FrameDispatcher '{self.name}' stopped")

    # =========================================================================
    # Queue
    # =========================================================================

    @property
    def size(self) -> int:
        with self._cond:
            return len(self._queue)

    def submit(self, frame: Frame) -> None:
        """
        Enqueue a frame for delivery.

        Never blocks beyond the queue lock and never drops.
        """
        with self._cond:
            self._queue.append(frame)
            self._submitted += 1
            self._cond.notify_all()

    def flush(self) -> int:
        """
        Discard every undelivered frame.

        A frame already handed to listeners is not recalled.

        Returns:
            Number of frames discarded.
        """
        with self._cond:
            flushed = len(self._queue)
            self._queue.clear()
            self._flushed += flushed
            self._cond.notify_all()
        if flushed:
            logger.debug(f"FrameDispatcher '{self.name}' flushed {flushed} frames")
        return flushed

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the queue is empty and no delivery is in progress.

        Args:
            timeout: Maximum seconds to wait. None = wait forever.

        Returns:
            True if idle, False on timeout.
        """
        with self._cond:
            return self._cond.wait_for(
                lambda: not self._queue and not self._delivering,
                timeout=timeout,
            )

    # =========================================================================
    # Dispatch Thread
    # =========================================================================

    def _run(self) -> None:
        while True:
            with self._cond:
                while not self._queue and not self._stopping:
                    self._cond.wait()
                if self._stopping:
                    return
                frame = self._queue.popleft()
                listeners = list(self._listeners)
                self._delivering = True

            try:
                for listener in listeners:
                    try:
                        listener(frame)
                    except Exception as e:
                        with self._cond:
                            self._listener_errors += 1
                        logger.error(
                            f"Frame listener failed on frame {frame.frame_id}: {e}",
                            exc_info=True,
                        )
            finally:
                with self._cond:
                    self._delivering = False
                    self._delivered += 1
                    self._cond.notify_all()

    def metrics(self) -> dict:
        """
        Get dispatcher metrics for observability.

        Returns:
            Dict with size, submitted, delivered, flushed, listener_errors
        """
        with self._cond:
            return {
                "size": len(self._queue),
                "submitted": self._submitted,
                "delivered": self._delivered,
                "flushed": self._flushed,
                "listener_errors": self._listener_errors,
            }
