"""Business services."""

from app.services.position_tracker import PositionTracker
from app.services.scheduler import RecomputeScheduler
from app.services.signal_generator import CycleResult, SignalGenerator

__all__ = [
    "PositionTracker",
    "RecomputeScheduler",
    "CycleResult",
    "SignalGenerator",
]
