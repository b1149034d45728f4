"""
Motion Axis
===========

Capability boundary every motor driver implements.

The base class owns the plumbing shared by all drivers:
    - a single command thread executing motion commands in submission order
    - an I/O lock serializing device access between commands and reads
    - target clamping to the axis limits (queried once, cached)
    - fail-fast rejection of overlapping moves
    - bounded, cancellable waiting for a move to complete; a wait that
      times out or is cancelled releases the pending target
    - the device error channel

Design Rules:
    - get_position() never raises; it returns PositionSample.invalid()
      when the axis is disconnected or the read fails
    - every wait has a timeout (explicit or derived from distance/speed)
    - drivers report connection loss by raising DeviceDisconnectedError;
      the base converts it into a fault after the command has completed
"""

import logging
import queue
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Optional, Tuple

from focus_hunter.devices.faults import FaultChannel, FaultListener
from focus_hunter.errors import (
    ConcurrentOperationError,
    DeviceDisconnectedError,
    MotionTimeoutError,
    OperationCancelledError,
)
from focus_hunter.models.fault_codes import FaultReason
from focus_hunter.models.position import PositionSample


logger = logging.getLogger(__name__)


DEFAULT_TOLERANCE_MM = 0.01
MAX_POLL_INTERVAL_S = 0.01


class MotionAxis(ABC):
    """
    Abstract single translation axis with absolute moves and polled position.

    Attributes:
        tolerance_mm: Distance at which a move counts as arrived
        poll_interval_s: Position poll period while waiting (<= 10 ms)
        timeout_factor: Multiplier on distance/speed for derived timeouts
        timeout_margin_s: Constant added to derived timeouts
        command_timeout_s: Bound on a single command round trip
    """

    device_name = "axis"

    def __init__(
        self,
        tolerance_mm: float = DEFAULT_TOLERANCE_MM,
        poll_interval_s: float = 0.005,
        timeout_factor: float = 2.0,
        timeout_margin_s: float = 1.0,
        command_timeout_s: float = 2.0,
    ) -> None:
        """
        Initialize shared axis state. The device is not opened.

        Args:
            tolerance_mm: Arrival tolerance (mm)
            poll_interval_s: Poll period while waiting, capped at 10 ms
            timeout_factor: Multiplier on distance/speed for derived timeouts
            timeout_margin_s: Constant added to derived timeouts
            command_timeout_s: Bound on a single command round trip
        """
        if tolerance_mm <= 0:
            raise ValueError("tolerance_mm must be > 0")

        self.tolerance_mm = tolerance_mm
        self.poll_interval_s = min(poll_interval_s, MAX_POLL_INTERVAL_S)
        self.timeout_factor = timeout_factor
        self.timeout_margin_s = timeout_margin_s
        self.command_timeout_s = command_timeout_s

        self._faults = FaultChannel(self.device_name)
        self._io_lock = threading.Lock()
        self._move_lock = threading.Lock()
        self._state_lock = threading.Lock()

        self._commands: "queue.Queue[Optional[Tuple[Callable[[], Any], Future]]]" = queue.Queue()
        self._command_thread: Optional[threading.Thread] = None
        self._connected = False
        self._limits: Optional[Tuple[float, float]] = None

        # Pending non-waiting move
        self._pending_target: Optional[float] = None
        self._pending_timeout_s: float = 0.0

        # Metrics
        self._commands_issued = 0
        self._moves_rejected = 0
        self._position_reads = 0
        self._read_failures = 0

    # =========================================================================
    # Driver Hooks
    # =========================================================================

    @abstractmethod
    def _open(self) -> bool:
        """Open the device. Return False if it is unavailable."""

    def _close(self) -> None:
        """Release the device. Default does nothing."""

    @abstractmethod
    def _command_move(self, target: float, speed: float) -> bool:
        """Send an absolute move. Return False if the device rejects it."""

    @abstractmethod
    def _read_position(self) -> float:
        """Read the current position (mm) from the device."""

    @abstractmethod
    def _query_limits(self) -> Tuple[float, float]:
        """Read (min, max) travel limits from the device."""

    # =========================================================================
    # Connection
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        return self._connected

    def connect(self) -> bool:
        """
        Open the device and start the command thread.

        Returns:
            True if connected.
        """
        with self._state_lock:
            if self._connected:
                return True
            if not self._open():
                logger.error(f"{type(self).__name__}: device unavailable")
                return False
            if self._limits is None:
                with self._io_lock:
                    self._limits = self._query_limits()
            if self._command_thread is None or not self._command_thread.is_alive():
                self._command_thread = threading.Thread(
                    target=self._command_loop,
                    name=f"{self.device_name}-commands",
                    daemon=True,
                )
                self._command_thread.start()
            self._pending_target = None
            self._connected = True

        logger.info(
            f"{type(self).__name__} connected: "
            f"limits=[{self._limits[0]}, {self._limits[1]}]mm, "
            f"tolerance={self.tolerance_mm}mm"
        )
        return True

    def disconnect(self) -> None:
        """Stop the command thread and release the device."""
        with self._state_lock:
            thread = self._command_thread
            self._command_thread = None
            was_connected = self._connected
            self._connected = False
            self._pending_target = None

        if thread is not None and thread.is_alive():
            self._commands.put(None)
            if thread is not threading.current_thread():
                thread.join(timeout=self.command_timeout_s)

        if was_connected:
            self._close()
            logger.info(f"{type(self).__name__} disconnected")

    def add_fault_listener(self, listener: FaultListener) -> None:
        """Register for device faults (connection lost)."""
        self._faults.add(listener)

    def remove_fault_listener(self, listener: FaultListener) -> None:
        self._faults.remove(listener)

    def _handle_connection_loss(self, message: str) -> None:
        """Mark the axis disconnected and report AXIS_DISCONNECTED once."""
        with self._state_lock:
            if not self._connected:
                return
            self._connected = False
            self._pending_target = None
        logger.error(f"{type(self).__name__} connection lost: {message}")
        self._faults.emit(FaultReason.AXIS_DISCONNECTED, message)

    # =========================================================================
    # Limits
    # =========================================================================

    def _cached_limits(self) -> Tuple[float, float]:
        if self._limits is None:
            with self._io_lock:
                self._limits = self._query_limits()
        return self._limits

    @property
    def min_position(self) -> float:
        return self._cached_limits()[0]

    @property
    def max_position(self) -> float:
        return self._cached_limits()[1]

    def clamp(self, position: float) -> float:
        """Clamp a position to the travel limits."""
        low, high = self._cached_limits()
        return min(max(position, low), high)

    # =========================================================================
    # Position
    # =========================================================================

    def get_position(self) -> PositionSample:
        """
        Read the current position.

        The sample timestamp is the midpoint of the device read.

        Returns:
            PositionSample, or PositionSample.invalid() if disconnected
            or the read failed.
        """
        if not self._connected:
            return PositionSample.invalid()

        try:
            with self._io_lock:
                before = time.monotonic()
                position = self._read_position()
                after = time.monotonic()
        except DeviceDisconnectedError as e:
            self._read_failures += 1
            self._handle_connection_loss(str(e))
            return PositionSample.invalid()
        except Exception as e:
            self._read_failures += 1
            logger.warning(f"{type(self).__name__}: position read failed: {e}")
            return PositionSample.invalid()

        self._position_reads += 1
        return PositionSample(timestamp=(before + after) / 2.0, position=position)

    def is_at(self, target: float, sample: Optional[PositionSample] = None) -> bool:
        """Whether the axis (or the given sample) is within tolerance of target."""
        if sample is None:
            sample = self.get_position()
        return sample.is_valid and abs(sample.position - target) <= self.tolerance_mm

    # =========================================================================
    # Motion
    # =========================================================================

    def move_absolute(
        self,
        position: float,
        speed: float,
        wait: bool = True,
        timeout_s: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> bool:
        """
        Move to an absolute position, clamped to the travel limits.

        Args:
            position: Target position (mm)
            speed: Speed (mm/s), must be > 0
            wait: Block until the target is reached
            timeout_s: Wait bound; derived from distance/speed if None
            cancel_event: Interrupts the wait when set

        Returns:
            True if the command was accepted (and, when waiting, completed).
            False if not connected or the device rejected the command.

        Raises:
            ConcurrentOperationError: Another move is in progress
            MotionTimeoutError: Waited move did not arrive in time
            OperationCancelledError: cancel_event was set while waiting
            DeviceDisconnectedError: Connection lost during the move
        """
        if speed <= 0:
            raise ValueError("speed must be > 0")

        if not self._move_lock.acquire(blocking=False):
            raise ConcurrentOperationError("Another move_absolute call is in progress")

        try:
            if not self._connected:
                logger.warning(f"{type(self).__name__}: move requested while not connected")
                return False

            pending = self._pending_target
            if pending is not None:
                if self.is_at(pending):
                    self._clear_pending(pending)
                else:
                    raise ConcurrentOperationError(
                        f"Previous move to {pending:.4f}mm has not completed"
                    )

            target = self.clamp(position)
            if target != position:
                logger.info(f"Move target {position}mm clamped to {target}mm")

            start = self.get_position()
            if start.is_valid:
                distance = abs(target - start.position)
            else:
                distance = self.max_position - self.min_position

            accepted = self._run_command(lambda: self._command_move(target, speed))
            self._commands_issued += 1
            if not accepted:
                self._moves_rejected += 1
                logger.error(f"{type(self).__name__}: move to {target}mm rejected")
                return False

            with self._state_lock:
                self._pending_target = target
                self._pending_timeout_s = self.derive_timeout(distance, speed)
            logger.debug(f"Move to {target:.4f}mm at {speed}mm/s issued")

            if wait:
                self.wait_for_motion(timeout_s=timeout_s, cancel_event=cancel_event)
            return True
        finally:
            self._move_lock.release()

    def wait_for_motion(
        self,
        timeout_s: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> PositionSample:
        """
        Block until the pending move reaches its target.

        Args:
            timeout_s: Wait bound; the bound derived at command time if None
            cancel_event: Interrupts the wait when set

        Returns:
            The position sample that confirmed arrival. If no move is
            pending, the current position.

        Raises:
            MotionTimeoutError: Target not reached in time (target released)
            OperationCancelledError: cancel_event was set (target released)
            DeviceDisconnectedError: Connection lost while waiting
        """
        target = self._pending_target
        if target is None:
            return self.get_position()

        if timeout_s is None:
            timeout_s = self._pending_timeout_s
        deadline = time.monotonic() + timeout_s

        while True:
            if cancel_event is not None and cancel_event.is_set():
                self._clear_pending(target)
                raise OperationCancelledError(f"Wait for {target:.4f}mm cancelled")

            sample = self.get_position()
            if not sample.is_valid and not self._connected:
                raise DeviceDisconnectedError(
                    f"Axis disconnected while moving to {target:.4f}mm",
                    reason=FaultReason.AXIS_DISCONNECTED,
                )
            if self.is_at(target, sample):
                self._clear_pending(target)
                return sample

            if time.monotonic() >= deadline:
                last = f"{sample.position:.4f}mm" if sample.is_valid else "unknown"
                self._clear_pending(target)
                raise MotionTimeoutError(
                    f"Axis did not reach {target:.4f}mm within {timeout_s:.2f}s "
                    f"(last position {last})"
                )

            if cancel_event is not None:
                cancel_event.wait(self.poll_interval_s)
            else:
                time.sleep(self.poll_interval_s)

    def derive_timeout(self, distance_mm: float, speed_mm_s: float) -> float:
        """Timeout for a move of the given distance at the given speed."""
        return (distance_mm / speed_mm_s) * self.timeout_factor + self.timeout_margin_s

    @property
    def pending_target(self) -> Optional[float]:
        return self._pending_target

    def abandon_pending(self) -> Optional[float]:
        """
        Stop tracking the pending move. No command is sent to the device.

        The next move_absolute() is accepted even if the axis never
        reached the abandoned target.

        Returns:
            The abandoned target, or None if no move was pending.
        """
        with self._state_lock:
            target = self._pending_target
            self._pending_target = None
        if target is not None:
            logger.info(f"{type(self).__name__}: abandoned move to {target:.4f}mm")
        return target

    def _clear_pending(self, target: float) -> None:
        with self._state_lock:
            if self._pending_target == target:
                self._pending_target = None

    # =========================================================================
    # Command Thread
    # =========================================================================

    def _run_command(self, fn: Callable[[], Any]) -> Any:
        """Execute fn on the command thread and return its result."""
        future: Future = Future()
        self._commands.put((fn, future))
        try:
            return future.result(timeout=self.command_timeout_s)
        except FutureTimeoutError:
            future.cancel()
            raise MotionTimeoutError(
                f"Axis command not acknowledged within {self.command_timeout_s}s"
            )

    def _command_loop(self) -> None:
        while True:
            item = self._commands.get()
            if item is None:
                return
            fn, future = item
            if not future.set_running_or_notify_cancel():
                continue
            try:
                with self._io_lock:
                    result = fn()
            except DeviceDisconnectedError as e:
                future.set_exception(e)
                self._handle_connection_loss(str(e))
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(result)

    def metrics(self) -> dict:
        """Get axis metrics for observability."""
        return {
            "connected": self._connected,
            "pending_target": self._pending_target,
            "commands_issued": self._commands_issued,
            "moves_rejected": self._moves_rejected,
            "position_reads": self._position_reads,
            "read_failures": self._read_failures,
            "faults": self._faults.fault_count,
        }
