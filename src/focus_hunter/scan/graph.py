"""
Scan Orchestrator Graph
=======================

LangGraph state machine for one focus scan.

LangGraph is used for CONTROL FLOW only: every node is deterministic
device orchestration, there are no LLM calls.

Graph Structure:
    START → home → sweep → evaluate → return_to_best → finish → END
                 ↘        ↘          ↘                ↘
                  faulted ──────────────────────────────→ END

    After every node the router checks the session: a FAULTED session
    (error, device fault or cancel) goes straight to `faulted`.

Threads:
    - control thread: caller of run_scan, runs the graph and polls the
      axis for sweep completion
    - dispatch thread: runs the frame handler (validate, correlate, score)
    - device threads: report faults, which cancel the scan

Design Rules:
    - The session lock is never held across position reads, scoring or moves
    - No move command reaches the axis after cancel() returns
    - No frame is recorded after the sweep leaves SWEEPING
    - No automatic retries
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from focus_hunter.config import Settings
from focus_hunter.devices.frame_source import FrameSource
from focus_hunter.devices.motion_axis import MotionAxis
from focus_hunter.errors import (
    CorruptFrameError,
    DeviceDisconnectedError,
    DeviceUnavailableError,
    FocusHunterError,
    MotionTimeoutError,
    MoveFailedError,
    OperationCancelledError,
    SourceStartError,
)
from focus_hunter.models.fault_codes import DeviceFault, FaultReason
from focus_hunter.models.frame import Frame
from focus_hunter.models.input import ScanRequest
from focus_hunter.models.observation import ScoredObservation
from focus_hunter.models.output import ScanFault, ScanOutcome
from focus_hunter.models.state import ScanState
from focus_hunter.scan.correlation import PositionCorrelator
from focus_hunter.scan.session import ScanSession
from focus_hunter.scoring.sharpness import SharpnessScorer
from focus_hunter.stream.validation import validate_frame


logger = logging.getLogger(__name__)


class ScanGraphState(TypedDict):
    """
    State passed through the scan graph.

    Attributes:
        session: The scan's mutable aggregate
        winner: Best observation, set by the evaluate node
    """
    session: ScanSession
    winner: Optional[ScoredObservation]


class ScanOrchestrator:
    """
    LangGraph-based focus scan: home → sweep → evaluate → return.

    Example:
        orchestrator = ScanOrchestrator(source=camera, axis=axis)
        outcome = orchestrator.run_scan(0.0, 10.0, 1.0)
    """

    def __init__(
        self,
        source: FrameSource,
        axis: MotionAxis,
        scorer: Optional[Callable[[Frame], float]] = None,
        correlator: Optional[PositionCorrelator] = None,
        sweep_poll_interval_s: float = 0.01,
        exposure_us: Optional[float] = None,
        log_every_n_frames: int = 50,
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            source: Camera producing frames during the sweep
            axis: Axis being swept
            scorer: Frame → score callable (SharpnessScorer if None)
            correlator: Position correlation policy (unbounded skew if None)
            sweep_poll_interval_s: Axis poll period while sweeping
            exposure_us: Exposure applied before each scan (None = leave as is)
            log_every_n_frames: Progress log period in scored frames
        """
        self.source = source
        self.axis = axis
        self.scorer = scorer or SharpnessScorer()
        self.correlator = correlator or PositionCorrelator()
        self.sweep_poll_interval_s = sweep_poll_interval_s
        self.exposure_us = exposure_us
        self.log_every_n_frames = log_every_n_frames

        self._run_lock = threading.Lock()
        self._command_gate = threading.RLock()
        self._cancel_event = threading.Event()
        self._session: Optional[ScanSession] = None
        self._scans_completed = 0
        self._scans_faulted = 0

        self._graph = self._build_graph()

        logger.info(
            f"ScanOrchestrator initialized: poll={sweep_poll_interval_s}s, "
            f"max_skew={self.correlator.max_skew_s}"
        )

    # =========================================================================
    # Graph
    # =========================================================================

    def _build_graph(self):
        """Build the LangGraph workflow."""
        workflow = StateGraph(ScanGraphState)

        workflow.add_node("home", self._home_node)
        workflow.add_node("sweep", self._sweep_node)
        workflow.add_node("evaluate", self._evaluate_node)
        workflow.add_node("return_to_best", self._return_node)
        workflow.add_node("finish", self._finish_node)
        workflow.add_node("faulted", self._faulted_node)

        workflow.set_entry_point("home")
        workflow.add_conditional_edges(
            "home", self._route, {"next": "sweep", "faulted": "faulted"}
        )
        workflow.add_conditional_edges(
            "sweep", self._route, {"next": "evaluate", "faulted": "faulted"}
        )
        workflow.add_conditional_edges(
            "evaluate", self._route, {"next": "return_to_best", "faulted": "faulted"}
        )
        workflow.add_conditional_edges(
            "return_to_best", self._route, {"next": "finish", "faulted": "faulted"}
        )
        workflow.add_edge("finish", END)
        workflow.add_edge("faulted", END)

        return workflow.compile()

    @staticmethod
    def _route(state: ScanGraphState) -> str:
        if state["session"].state == ScanState.FAULTED:
            return "faulted"
        return "next"

    def _home_node(self, state: ScanGraphState) -> Dict[str, Any]:
        """IDLE → HOMING: prepare devices and drive to the sweep start."""
        session = state["session"]
        if not session.transition(ScanState.HOMING):
            return {}

        try:
            if not self.axis.is_connected and not self.axis.connect():
                raise DeviceUnavailableError("Axis could not be connected")
            if not self.source.is_initialized and not self.source.initialize():
                raise DeviceUnavailableError("Frame source could not be initialized")

            limits = (self.axis.min_position, self.axis.max_position)
            with session.lock:
                session.limits = limits
                requested = session.request
                session.request = requested.clamped(*limits)
            if session.request != requested:
                logger.warning(
                    f"Sweep [{requested.start_mm}, {requested.end_mm}]mm clamped to "
                    f"[{session.request.start_mm}, {session.request.end_mm}]mm"
                )

            if self.exposure_us is not None:
                applied = self.source.set_exposure(self.exposure_us)
                logger.info(f"Exposure set to {applied}us")

            self._move(session.request.start_mm, session.request.speed_mm_s, wait=True)
        except FocusHunterError as e:
            self._fail(session, e)
        return {}

    def _sweep_node(self, state: ScanGraphState) -> Dict[str, Any]:
        """HOMING → SWEEPING → EVALUATED: move to the end while scoring frames."""
        session = state["session"]
        try:
            self._sweep(session)
        except FocusHunterError as e:
            self._fail(session, e)
        finally:
            self.source.stop()
            flushed = self.source.flush()
            if flushed:
                logger.info(f"Discarded {flushed} undelivered frames after sweep")
            if session.state == ScanState.FAULTED:
                self.axis.abandon_pending()
        return {}

    def _sweep(self, session: ScanSession) -> None:
        request = session.request
        stale = self.source.flush()
        if stale:
            logger.debug(f"Flushed {stale} stale frames before sweep")

        self._move(request.end_mm, request.speed_mm_s, wait=False)
        if not session.transition(ScanState.SWEEPING):
            return
        with self._command_gate:
            if self._cancel_event.is_set():
                return
            if not self.source.start():
                raise SourceStartError("Frame source refused to start acquisition")

        timeout_s = self.axis.derive_timeout(request.distance_mm, request.speed_mm_s)
        deadline = time.monotonic() + timeout_s

        while True:
            if self._cancel_event.is_set():
                return
            sample = self.axis.get_position()
            if self.axis.is_at(request.end_mm, sample):
                break
            if not sample.is_valid and not self.axis.is_connected:
                raise DeviceDisconnectedError("Axis disconnected during sweep")
            if time.monotonic() >= deadline:
                raise MotionTimeoutError(
                    f"Sweep did not reach {request.end_mm}mm within {timeout_s:.2f}s"
                )
            self._cancel_event.wait(self.sweep_poll_interval_s)

        # Under the session lock: no frame can be recorded after this point
        with session.lock:
            session.transition(ScanState.EVALUATED)

        logger.info(
            f"Sweep complete: {session.observation_count} observations, "
            f"{session.rejected_frames} rejected, "
            f"{session.uncorrelated_frames} uncorrelated"
        )

    def _evaluate_node(self, state: ScanGraphState) -> Dict[str, Any]:
        """EVALUATED: select the best observation."""
        session = state["session"]
        try:
            winner = session.select_winner()
        except FocusHunterError as e:
            self._fail(session, e)
            return {}

        logger.info(
            f"Best focus: {winner.position:.4f}mm, score={winner.score:.3f} "
            f"(frame {winner.frame_id} of {session.observation_count})"
        )
        return {"winner": winner}

    def _return_node(self, state: ScanGraphState) -> Dict[str, Any]:
        """EVALUATED → RETURNING → DONE: drive back to the winner."""
        session = state["session"]
        winner = state["winner"]
        if winner is None or not session.transition(ScanState.RETURNING):
            return {}

        try:
            self._move(winner.position, session.request.speed_mm_s, wait=True)
            session.transition(ScanState.DONE)
        except FocusHunterError as e:
            self._fail(session, e)
        return {}

    def _finish_node(self, state: ScanGraphState) -> Dict[str, Any]:
        session = state["session"]
        self._scans_completed += 1
        logger.info(
            f"Scan DONE in {session.elapsed_s:.2f}s: "
            f"position={state['winner'].position:.4f}mm"
        )
        return {}

    def _faulted_node(self, state: ScanGraphState) -> Dict[str, Any]:
        session = state["session"]
        self._scans_faulted += 1
        fault = session.fault
        logger.warning(
            f"Scan ended FAULTED after {session.elapsed_s:.2f}s: "
            f"{fault.reason.value if fault else 'unknown'}"
        )
        return {}

    # =========================================================================
    # Helpers
    # =========================================================================

    def _move(self, target: float, speed: float, wait: bool) -> None:
        """
        Issue a move through the command gate.

        The command is issued inside the gate; the wait happens outside it
        so cancel() never blocks on a whole move.
        """
        with self._command_gate:
            if self._cancel_event.is_set():
                raise OperationCancelledError("Scan cancelled before move")
            if not self.axis.move_absolute(target, speed, wait=False):
                raise MoveFailedError(f"Axis rejected move to {target}mm")
        if wait:
            self.axis.wait_for_motion(cancel_event=self._cancel_event)

    def _fail(self, session: ScanSession, error: FocusHunterError) -> None:
        session.fail(error.reason, str(error))

    def _on_frame(self, frame: Frame) -> None:
        """Frame handler, runs on the dispatch thread."""
        session = self._session
        if session is None:
            return
        if not session.is_accepting:
            session.count_late()
            return

        try:
            validate_frame(frame)
        except CorruptFrameError as e:
            session.count_rejected()
            logger.debug(f"Dropped corrupt frame: {e}")
            return

        polled = self.axis.get_position()
        correlation = self.correlator.correlate(frame, polled)
        if correlation is None:
            session.count_uncorrelated()
            return

        score = float(self.scorer(frame))
        observation = session.record(frame, correlation.sample, score, correlation.skew_s)

        if observation is not None and observation.arrival_index % self.log_every_n_frames == 0:
            logger.info(
                f"Sweep [frame {observation.arrival_index}]: "
                f"pos={observation.position:.4f}mm, score={observation.score:.3f}"
            )

    def _on_device_fault(self, fault: DeviceFault) -> None:
        """Device error channel handler: cancel the active scan."""
        self.cancel(fault.kind, fault.message or f"{fault.device} disconnected")

    # =========================================================================
    # Public API
    # =========================================================================

    def run_scan(self, start_mm: float, end_mm: float, speed_mm_s: float) -> ScanOutcome:
        """
        Run one focus scan to completion.

        Args:
            start_mm: Sweep start (clamped to the axis limits)
            end_mm: Sweep end (clamped to the axis limits)
            speed_mm_s: Axis speed, must be > 0

        Returns:
            ScanOutcome in DONE or FAULTED state. A call made while
            another scan is active returns FAULTED with
            CONCURRENT_OPERATION and leaves the active scan untouched.
        """
        request = ScanRequest(start_mm=start_mm, end_mm=end_mm, speed_mm_s=speed_mm_s)

        if not self._run_lock.acquire(blocking=False):
            active = self._session
            logger.warning("run_scan rejected: a scan is already active")
            return ScanOutcome(
                state=ScanState.FAULTED,
                fault=ScanFault(
                    reason=FaultReason.CONCURRENT_OPERATION,
                    message="A scan is already active",
                    state=active.state if active else ScanState.IDLE,
                ),
            )

        try:
            session = ScanSession(request)
            self._cancel_event = threading.Event()
            self._session = session

            logger.info(
                f"Scan started: [{start_mm}, {end_mm}]mm at {speed_mm_s}mm/s"
            )

            self.source.subscribe(self._on_frame)
            self.source.add_fault_listener(self._on_device_fault)
            self.axis.add_fault_listener(self._on_device_fault)
            try:
                final = self._graph.invoke({"session": session, "winner": None})
            finally:
                self.axis.remove_fault_listener(self._on_device_fault)
                self.source.remove_fault_listener(self._on_device_fault)
                self.source.unsubscribe(self._on_frame)
                self.source.stop()

            return self._build_outcome(final["session"])
        finally:
            self._run_lock.release()

    def _build_outcome(self, session: ScanSession) -> ScanOutcome:
        if session.state == ScanState.DONE:
            return ScanOutcome(
                state=ScanState.DONE,
                result=session.to_result(),
                elapsed_s=session.elapsed_s,
            )
        fault = session.fault or ScanFault(
            reason=FaultReason.CANCELLED,
            message="Scan ended without completing",
            state=session.state,
        )
        return ScanOutcome(
            state=ScanState.FAULTED,
            fault=fault,
            elapsed_s=session.elapsed_s,
        )

    def cancel(
        self,
        reason: FaultReason = FaultReason.CANCELLED,
        message: str = "Cancelled by caller",
    ) -> bool:
        """
        Abort the active scan. Safe to call from any thread.

        On return the session is FAULTED, the source is stopped, any
        pending axis move is abandoned and no further move command will
        be issued.

        Returns:
            True if this call faulted the scan.
        """
        self._cancel_event.set()
        session = self._session
        faulted = session.fail(reason, message) if session is not None else False
        self.source.stop()
        with self._command_gate:
            pass
        # A start issued inside the gate before the event was seen
        self.source.stop()
        if session is not None and session.state == ScanState.FAULTED:
            self.axis.abandon_pending()
        return faulted

    @property
    def state(self) -> ScanState:
        """State of the current (or last) scan."""
        session = self._session
        return session.state if session is not None else ScanState.IDLE

    @property
    def session(self) -> Optional[ScanSession]:
        return self._session

    @property
    def winner_frame(self) -> Optional[Frame]:
        """Copy of the winning frame, once DONE."""
        session = self._session
        if session is None or session.state != ScanState.DONE:
            return None
        frame = session.best_frame
        return frame.copy() if frame is not None else None

    def get_metrics(self) -> Dict[str, Any]:
        """Get orchestrator metrics for observability."""
        session = self._session
        return {
            "state": self.state.value,
            "scans_completed": self._scans_completed,
            "scans_faulted": self._scans_faulted,
            "session": session.metrics() if session is not None else None,
            "correlation": self.correlator.metrics(),
            "source": self.source.metrics(),
            "axis": self.axis.metrics(),
        }


def create_orchestrator(
    source: FrameSource,
    axis: MotionAxis,
    settings: Settings,
    scorer: Optional[Callable[[Frame], float]] = None,
) -> ScanOrchestrator:
    """
    Create an orchestrator from configuration.

    Args:
        source: Camera
        axis: Axis
        settings: Loaded configuration
        scorer: Optional replacement sharpness metric

    Returns:
        Configured ScanOrchestrator
    """
    scan = settings.scan
    return ScanOrchestrator(
        source=source,
        axis=axis,
        scorer=scorer,
        correlator=PositionCorrelator(max_skew_s=scan.max_correlation_skew_s),
        sweep_poll_interval_s=scan.sweep_poll_interval_s,
        exposure_us=scan.exposure_us,
        log_every_n_frames=scan.log_every_n_frames,
    )
