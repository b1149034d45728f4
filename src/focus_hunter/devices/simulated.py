"""
Simulated Devices
=================

Deterministic stand-ins for a camera and a motorized axis.

SimulatedMotionAxis:
    Constant-speed kinematic model. The position is computed lazily from
    the monotonic clock, so no background thread is needed. Every device
    read is wrapped in a fixed latency, like a serial round trip.

SimulatedFrameSource:
    Renders a seeded random texture blurred with an OpenCV Gaussian whose
    sigma grows with the distance between the axis and the focal plane.
    The axis position is read through a read-only callable given at
    construction and stamped on every frame as its position hint.

Fault Injection:
    - corruption_rate: fraction of frames replaced by an all-zero or a
      truncated buffer (dropped transfer)
    - inject_connection_loss(): on either device, raises the
      corresponding DISCONNECTED fault
"""

import logging
import threading
import time
from typing import Callable, Optional, Tuple

import cv2
import numpy as np

from focus_hunter.config import Settings
from focus_hunter.devices.frame_source import FrameSource
from focus_hunter.devices.motion_axis import MotionAxis
from focus_hunter.errors import DeviceDisconnectedError
from focus_hunter.models.frame import Frame
from focus_hunter.models.position import PositionSample
from focus_hunter.stream.dispatcher import FrameDispatcher


logger = logging.getLogger(__name__)


PositionQuery = Callable[[], PositionSample]


# =============================================================================
# Axis
# =============================================================================

class SimulatedMotionAxis(MotionAxis):
    """
    Kinematic axis simulator.

    A move starts from the position at command time and travels toward
    the target at constant speed.

    Attributes:
        read_latency_s: Delay before and after every position read
    """

    def __init__(
        self,
        min_position: float = 0.0,
        max_position: float = 10.0,
        initial_position: float = 0.0,
        read_latency_s: float = 0.004,
        **kwargs,
    ) -> None:
        """
        Initialize the simulator.

        Args:
            min_position: Lower travel limit (mm)
            max_position: Upper travel limit (mm)
            initial_position: Position at power-up (mm)
            read_latency_s: Delay before and after every position read
            **kwargs: Forwarded to MotionAxis
        """
        super().__init__(**kwargs)
        if min_position >= max_position:
            raise ValueError("min_position must be < max_position")

        self._sim_limits = (min_position, max_position)
        self.read_latency_s = read_latency_s

        self._model_lock = threading.Lock()
        self._origin = min(max(initial_position, min_position), max_position)
        self._target = self._origin
        self._speed = 0.0
        self._move_started_at = time.monotonic()
        self._link_lost = False

        logger.info(
            f"SimulatedMotionAxis initialized: limits=[{min_position}, {max_position}]mm, "
            f"latency={read_latency_s * 1000:.1f}ms"
        )

    # -------------------------------------------------------------------------
    # Kinematics
    # -------------------------------------------------------------------------

    def _position_at(self, now: float) -> float:
        with self._model_lock:
            span = self._target - self._origin
            if span == 0.0 or self._speed <= 0.0:
                return self._target
            travelled = self._speed * (now - self._move_started_at)
            if travelled >= abs(span):
                return self._target
            return self._origin + travelled * (1.0 if span > 0 else -1.0)

    def peek_position(self) -> PositionSample:
        """
        Non-blocking position read for observers.

        Bypasses the I/O lock and read latency. Returns the invalid
        sentinel when disconnected.
        """
        if not self.is_connected:
            return PositionSample.invalid()
        now = time.monotonic()
        return PositionSample(timestamp=now, position=self._position_at(now))

    # -------------------------------------------------------------------------
    # Driver Hooks
    # -------------------------------------------------------------------------

    def _open(self) -> bool:
        self._link_lost = False
        return True

    def _query_limits(self) -> Tuple[float, float]:
        return self._sim_limits

    def _command_move(self, target: float, speed: float) -> bool:
        if self._link_lost:
            raise DeviceDisconnectedError("Simulated axis link lost")
        now = time.monotonic()
        current = self._position_at(now)
        with self._model_lock:
            self._origin = current
            self._target = target
            self._speed = speed
            self._move_started_at = now
        return True

    def _read_position(self) -> float:
        if self._link_lost:
            raise DeviceDisconnectedError("Simulated axis link lost")
        time.sleep(self.read_latency_s)
        position = self._position_at(time.monotonic())
        time.sleep(self.read_latency_s)
        return position

    # -------------------------------------------------------------------------
    # Fault Injection
    # -------------------------------------------------------------------------

    def inject_connection_loss(self) -> None:
        """Drop the link. Reports AXIS_DISCONNECTED on the error channel."""
        self._link_lost = True
        self._handle_connection_loss("Simulated axis link lost")


# =============================================================================
# Camera
# =============================================================================

class SimulatedFrameSource(FrameSource):
    """
    Camera simulator producing focus-dependent frames.

    Attributes:
        width: Frame width in pixels
        height: Frame height in pixels
        frame_rate_hz: Acquisition rate
        focal_plane_mm: Axis position of best focus
        blur_per_mm: Gaussian sigma (pixels) per mm of defocus
        corruption_rate: Fraction of frames delivered corrupt
    """

    EXPOSURE_MIN_US = 10.0
    EXPOSURE_MAX_US = 1000.0

    def __init__(
        self,
        position_query: PositionQuery,
        width: int = 64,
        height: int = 48,
        frame_rate_hz: float = 100.0,
        focal_plane_mm: float = 5.0,
        blur_per_mm: float = 2.0,
        corruption_rate: float = 0.0,
        seed: int = 0,
        exposure_us: float = 100.0,
        dispatcher: Optional[FrameDispatcher] = None,
    ) -> None:
        """
        Initialize the simulator.

        Args:
            position_query: Read-only callable returning the axis position
            width: Frame width in pixels
            height: Frame height in pixels
            frame_rate_hz: Acquisition rate (frames/s)
            focal_plane_mm: Axis position of best focus (mm)
            blur_per_mm: Gaussian sigma (pixels) per mm of defocus
            corruption_rate: Fraction of frames delivered corrupt [0, 1]
            seed: Seed for the texture and corruption draws
            exposure_us: Initial exposure (microseconds)
            dispatcher: Dispatcher to deliver frames through
        """
        super().__init__(
            exposure_min_us=self.EXPOSURE_MIN_US,
            exposure_max_us=self.EXPOSURE_MAX_US,
            dispatcher=dispatcher,
        )
        if frame_rate_hz <= 0:
            raise ValueError("frame_rate_hz must be > 0")
        if not 0.0 <= corruption_rate <= 1.0:
            raise ValueError("corruption_rate must be in [0, 1]")

        self._position_query = position_query
        self.width = width
        self.height = height
        self.frame_rate_hz = frame_rate_hz
        self.focal_plane_mm = focal_plane_mm
        self.blur_per_mm = blur_per_mm
        self.corruption_rate = corruption_rate

        rng = np.random.default_rng(seed)
        self._texture = rng.uniform(16.0, 240.0, size=(height, width)).astype(np.float32)
        self._corruption_rng = np.random.default_rng(seed + 1)

        self._reference_exposure_us = min(
            max(exposure_us, self.EXPOSURE_MIN_US), self.EXPOSURE_MAX_US
        )
        self._exposure_us = self._reference_exposure_us

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_frame_id = 0
        self._corrupted = 0
        self._link_lost = False

        logger.info(
            f"SimulatedFrameSource initialized: {width}x{height} @ {frame_rate_hz}Hz, "
            f"focal_plane={focal_plane_mm}mm, corruption_rate={corruption_rate}"
        )

    # -------------------------------------------------------------------------
    # Rendering
    # -------------------------------------------------------------------------

    def render(self, position: float) -> np.ndarray:
        """
        Render the image seen with the axis at `position`.

        Returns:
            uint8 array of shape (height, width)
        """
        sigma = self.blur_per_mm * abs(position - self.focal_plane_mm)
        if sigma < 0.05:
            image = self._texture
        else:
            # Kernel must fit inside the frame
            largest = min(self.width, self.height)
            largest -= 1 - largest % 2
            ksize = min(2 * int(np.ceil(3.0 * sigma)) + 1, max(largest, 3))
            image = cv2.GaussianBlur(
                self._texture, (ksize, ksize), sigmaX=sigma, borderType=cv2.BORDER_REFLECT
            )
        gain = self._exposure_us / self._reference_exposure_us
        return np.clip(image * gain, 0, 255).astype(np.uint8)

    def _corrupt(self, pixels: np.ndarray) -> np.ndarray:
        self._corrupted += 1
        if self._corruption_rng.random() < 0.5:
            return np.zeros_like(pixels)
        return pixels.reshape(-1)[: pixels.size // 2].copy()

    def _capture(self) -> Frame:
        hint = self._position_query()
        timestamp = time.monotonic()
        position = hint.position if hint.is_valid else self.focal_plane_mm + 100.0
        pixels = self.render(position)

        if self.corruption_rate > 0 and self._corruption_rng.random() < self.corruption_rate:
            pixels = self._corrupt(pixels)

        frame = Frame(
            frame_id=self._next_frame_id,
            timestamp=timestamp,
            width=self.width,
            height=self.height,
            pixels=pixels,
            position_hint=hint if hint.is_valid else None,
        )
        self._next_frame_id += 1
        return frame

    def _acquisition_loop(self) -> None:
        period = 1.0 / self.frame_rate_hz
        next_due = time.monotonic()
        while not self._stop_event.is_set():
            self._publish(self._capture())
            next_due += period
            delay = next_due - time.monotonic()
            if delay > 0:
                self._stop_event.wait(delay)
            else:
                next_due = time.monotonic()

    # -------------------------------------------------------------------------
    # Driver Hooks
    # -------------------------------------------------------------------------

    def _open(self) -> bool:
        self._link_lost = False
        return True

    def _start_acquisition(self) -> bool:
        if self._link_lost:
            return False
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._acquisition_loop,
            name="simulated-camera",
            daemon=True,
        )
        self._thread.start()
        return True

    def _stop_acquisition(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        self._thread = None

    def _apply_exposure(self, exposure_us: float) -> None:
        self._exposure_us = exposure_us

    def _read_exposure(self) -> float:
        return self._exposure_us

    # -------------------------------------------------------------------------
    # Fault Injection
    # -------------------------------------------------------------------------

    def inject_connection_loss(self) -> None:
        """Drop the link. Reports SOURCE_DISCONNECTED on the error channel."""
        self._link_lost = True
        self._stop_acquisition()
        self._handle_connection_loss("Simulated camera link lost")

    def metrics(self) -> dict:
        data = super().metrics()
        data["corrupted"] = self._corrupted
        return data


# =============================================================================
# Factory
# =============================================================================

def create_simulated_rig(settings: Settings) -> Tuple[SimulatedFrameSource, SimulatedMotionAxis]:
    """
    Build a simulated camera and axis from configuration.

    The camera observes the axis through its non-blocking peek_position.

    Args:
        settings: Loaded configuration

    Returns:
        Tuple of (camera, axis)
    """
    axis = SimulatedMotionAxis(
        min_position=settings.axis.min_position,
        max_position=settings.axis.max_position,
        initial_position=settings.axis.initial_position,
        read_latency_s=settings.axis.read_latency_s,
        tolerance_mm=settings.scan.tolerance_mm,
        poll_interval_s=settings.scan.move_poll_interval_s,
        timeout_factor=settings.scan.timeout_factor,
        timeout_margin_s=settings.scan.timeout_margin_s,
        command_timeout_s=settings.axis.command_timeout_s,
    )
    camera = SimulatedFrameSource(
        position_query=axis.peek_position,
        width=settings.camera.width,
        height=settings.camera.height,
        frame_rate_hz=settings.camera.frame_rate_hz,
        focal_plane_mm=settings.camera.focal_plane_mm,
        blur_per_mm=settings.camera.blur_per_mm,
        corruption_rate=settings.camera.corruption_rate,
        seed=settings.camera.seed,
        exposure_us=settings.camera.exposure_us,
        dispatcher=FrameDispatcher(
            name="camera-dispatch",
            join_timeout_s=settings.dispatcher.join_timeout_s,
        ),
    )
    return camera, axis
