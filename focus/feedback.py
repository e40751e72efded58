from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .policy import update_arm
from .state import FocusState, InterventionRecord

logger = logging.getLogger(__name__)

EVALUATION_DELAY_SECONDS = 45.0
REWARD_SPAN = 15.0


@dataclass
class EvaluationResult:
    intervention: str
    delta: int
    reward: float
    arm_updated: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def delta_to_reward(delta: float) -> float:
    """Map a score change to [0, 1]: -15 -> 0, 0 -> 0.5, +15 -> 1."""
    return max(0.0, min(1.0, (delta + REWARD_SPAN) / (2 * REWARD_SPAN)))


def is_due(record: Optional[InterventionRecord], now: float, delay: float = EVALUATION_DELAY_SECONDS) -> bool:
    return record is not None and now - record.applied_at >= delay


def evaluate(
    state: FocusState,
    current_score: int,
    now: float,
    delay: float = EVALUATION_DELAY_SECONDS,
) -> Optional[EvaluationResult]:
    """
    Score the outstanding intervention once its window has elapsed.

    The record is cleared here, so a given intervention is evaluated at most once.
    """
    record = state.last_intervention
    if not is_due(record, now, delay):
        return None

    delta = current_score - record.pre_score
    reward = delta_to_reward(delta)
    updated = update_arm(state.policy, record.type, reward)
    state.last_intervention = None

    logger.info("Intervention %s: delta=%d reward=%.2f", record.type, delta, reward)
    return EvaluationResult(intervention=record.type, delta=delta, reward=reward, arm_updated=updated)
