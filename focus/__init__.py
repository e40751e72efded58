"""
Focus scoring and intervention control loop.
"""

from .actuator import ActuationResult, Actuator, CallbackActuator, LoggingActuator
from .config import FocusSettings
from .scoring import ScoreResult, score
from .service import FocusService, TickResult
from .signals import ActivityReport, AttentionSignal, Category, SignalStore, TabChange
from .state import FocusState, Intervention, Mode, Phase
from .store import MemoryStore

__all__ = [
    "ActivityReport",
    "ActuationResult",
    "Actuator",
    "AttentionSignal",
    "CallbackActuator",
    "Category",
    "FocusService",
    "FocusSettings",
    "FocusState",
    "Intervention",
    "LoggingActuator",
    "MemoryStore",
    "Mode",
    "Phase",
    "ScoreResult",
    "SignalStore",
    "TabChange",
    "TickResult",
    "score",
]
