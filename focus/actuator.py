from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from .state import Intervention

logger = logging.getLogger(__name__)

KNOWN_ARMS = frozenset(arm.value for arm in Intervention)


@dataclass
class ActuationResult:
    success: bool
    error: Optional[str] = None
    detail: Dict[str, Any] = field(default_factory=dict)


class Actuator(ABC):
    """
    Applies an intervention against the external media surface.
    Must accept every arm name the policy can select.
    """

    @abstractmethod
    def apply(self, arm: str) -> ActuationResult:
        raise NotImplementedError

    def available(self) -> bool:
        return True


class LoggingActuator(Actuator):
    """No-op actuator: logs the request and reports success."""

    def __init__(self) -> None:
        self.applied: list[str] = []

    def apply(self, arm: str) -> ActuationResult:
        if arm not in KNOWN_ARMS:
            logger.warning("Unknown intervention %s", arm)
            return ActuationResult(success=False, error="unknown intervention")
        logger.info("Applying intervention %s", arm)
        self.applied.append(arm)
        return ActuationResult(success=True, detail={"arm": arm})


class CallbackActuator(Actuator):
    def __init__(self, fn: Callable[[str], Any], is_available: Optional[Callable[[], bool]] = None):
        self.fn = fn
        self.is_available = is_available

    def apply(self, arm: str) -> ActuationResult:
        try:
            outcome = self.fn(arm)
        except Exception as exc:
            logger.warning("Intervention %s failed: %s", arm, exc)
            return ActuationResult(success=False, error=str(exc))
        if isinstance(outcome, ActuationResult):
            return outcome
        if isinstance(outcome, dict):
            return ActuationResult(
                success=bool(outcome.get("success", False)),
                error=outcome.get("error"),
                detail={k: v for k, v in outcome.items() if k not in ("success", "error")},
            )
        return ActuationResult(success=bool(outcome))

    def available(self) -> bool:
        if self.is_available is None:
            return True
        try:
            return bool(self.is_available())
        except Exception as exc:
            logger.warning("Availability check failed: %s", exc)
            return False
