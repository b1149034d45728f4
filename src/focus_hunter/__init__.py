"""
Focus Hunter
============

Automated focus hunting for a motorized imaging stage.

The package sweeps a translation axis across a range while a camera streams
frames, scores every frame for sharpness, and drives the axis back to the
position of the sharpest frame.

Components:
    - models: Frame, PositionSample, ScoredObservation, scan outcome types
    - stream: FrameDispatcher (acquisition → consumer decoupling)
    - devices: FrameSource / MotionAxis capability boundaries + simulators
    - scoring: Laplacian-variance sharpness metric
    - scan: ScanSession, PositionCorrelator and the LangGraph ScanOrchestrator

Example:
    from focus_hunter.devices import SimulatedFrameSource, SimulatedMotionAxis
    from focus_hunter.scan import ScanOrchestrator

    axis = SimulatedMotionAxis()
    camera = SimulatedFrameSource(position_query=axis.peek_position)
    orchestrator = ScanOrchestrator(source=camera, axis=axis)

    outcome = orchestrator.run_scan(start_mm=0.0, end_mm=10.0, speed_mm_s=1.0)
    if outcome.succeeded:
        print(outcome.result.winning_position)
"""

__version__ = "0.1.0"
__author__ = "Focus Hunter Project"

__all__ = [
    "__version__",
]
