from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

import numpy as np

from .config import FeatureFlags
from .signals import BAD_CATEGORIES
from .state import DEFAULT_ARM, FocusState, Intervention, InterventionRecord, Mode, Phase, Policy

logger = logging.getLogger(__name__)

COOLDOWNS: Dict[Mode, float] = {Mode.GENTLE: 60.0, Mode.NORMAL: 30.0, Mode.STRICT: 10.0}
THRESHOLDS: Dict[Mode, int] = {Mode.GENTLE: 45, Mode.NORMAL: 60, Mode.STRICT: 75}
TREND_THRESHOLDS: Dict[Mode, float] = {Mode.GENTLE: -15.0, Mode.NORMAL: -10.0, Mode.STRICT: -5.0}

ESCALATION_WINDOW_SECONDS = 60.0
ESCALATION_SCORE = 50
SEVERE_SCORE = 30
RECENT_DISPATCH_SECONDS = 300.0

DESCRIPTIONS: Dict[str, str] = {
    Intervention.BOOST_ENERGY.value: "Boosting music energy",
    Intervention.SWITCH_PLAYLIST.value: "Switching to focus playlist",
    Intervention.PATTERN_BREAK.value: "Pattern break audio cue",
    Intervention.DUCK_VOLUME.value: "Lowering the volume",
    Intervention.WHITE_NOISE.value: "White noise burst",
    Intervention.SMART_RECOMMEND.value: "Playing a recommended focus track",
    Intervention.FOCUS_PROMPT.value: "Asking you to refocus",
    Intervention.NUCLEAR.value: "WAKE UP! (Doomscroll detected)",
}


class PolicyState(str, Enum):
    IDLE = "idle"
    MONITORING = "monitoring"
    COOLING_DOWN = "cooling_down"


@dataclass
class InterventionCheck:
    should: bool
    reason: str

    def __bool__(self) -> bool:
        return self.should


def _last_applied(state: FocusState) -> Optional[InterventionRecord]:
    candidates = [r for r in (state.last_intervention, state.last_dispatch) if r is not None]
    if not candidates:
        return None
    return max(candidates, key=lambda record: record.applied_at)


def _in_cooldown(state: FocusState, now: float) -> bool:
    last = _last_applied(state)
    return last is not None and now - last.applied_at < COOLDOWNS[state.session.mode]


def policy_state(state: FocusState, now: float) -> PolicyState:
    session = state.session
    if not session.active or session.phase != Phase.STUDY:
        return PolicyState.IDLE
    if _in_cooldown(state, now):
        return PolicyState.COOLING_DOWN
    return PolicyState.MONITORING


def should_intervene(state: FocusState, now: float) -> InterventionCheck:
    session = state.session
    if not session.active or session.phase != Phase.STUDY:
        return InterventionCheck(False, "not_studying")

    if _in_cooldown(state, now):
        return InterventionCheck(False, "cooldown")

    metrics = state.metrics
    if metrics.focus_score < THRESHOLDS[session.mode]:
        return InterventionCheck(True, "low_focus")

    if metrics.trend_delta < TREND_THRESHOLDS[session.mode]:
        return InterventionCheck(True, "dropping_focus")

    if session.mode == Mode.STRICT and state.signals.doomscrolling:
        return InterventionCheck(True, "doomscrolling")

    return InterventionCheck(False, "focused")


def select_arm_ucb(policy: Policy, exclude_nuclear: bool = True) -> str:
    """
    UCB1 over the policy arms.

    Ties resolve to the first arm in policy order (np.argmax keeps the first
    maximum), so selection is deterministic for identical statistics.
    """
    names = [name for name in policy.arms if not (exclude_nuclear and name == Intervention.NUCLEAR.value)]
    if not names:
        return DEFAULT_ARM

    total_n = sum(arm.n for arm in policy.arms.values())
    values = np.array([policy.arms[name].value for name in names], dtype=np.float64)
    counts = np.array([max(policy.arms[name].n, 1) for name in names], dtype=np.float64)
    ucb = values + np.sqrt(2.0 * np.log(total_n + 1) / counts)
    return names[int(np.argmax(ucb))]


def select_intervention(
    state: FocusState,
    is_doomscrolling: bool,
    features: Optional[FeatureFlags] = None,
    now: Optional[float] = None,
) -> str:
    """Resolve the arm to dispatch; rules are checked in a fixed priority order."""
    features = features or FeatureFlags()
    session = state.session
    score = state.metrics.focus_score
    last = _last_applied(state)

    if is_doomscrolling and session.mode == Mode.STRICT and features.nuclear_enabled:
        return Intervention.NUCLEAR.value

    escalating = (
        last is not None
        and now is not None
        and now - last.applied_at < ESCALATION_WINDOW_SECONDS
        and last.type not in (Intervention.FOCUS_PROMPT.value, Intervention.NUCLEAR.value)
    )
    if escalating and score < ESCALATION_SCORE:
        return Intervention.FOCUS_PROMPT.value

    if score < SEVERE_SCORE and is_doomscrolling:
        return Intervention.WHITE_NOISE.value

    on_bad_site = is_doomscrolling or state.signals.current_category in BAD_CATEGORIES
    if features.auto_music_switch and score < features.auto_music_threshold and not on_bad_site:
        return Intervention.SMART_RECOMMEND.value

    return select_arm_ucb(state.policy, exclude_nuclear=True)


def update_arm(policy: Policy, arm_name: str, reward: float) -> bool:
    arm = policy.arms.get(arm_name)
    if arm is None:
        logger.debug("No bandit arm for %s, policy unchanged", arm_name)
        return False
    arm.n += 1
    arm.value = arm.value + (reward - arm.value) / arm.n
    return True


def record_dispatch(state: FocusState, arm_name: str, applied_at: float, pre_score: int) -> InterventionRecord:
    record = InterventionRecord(type=arm_name, applied_at=applied_at, pre_score=pre_score)
    state.last_intervention = record
    state.last_dispatch = InterventionRecord(type=arm_name, applied_at=applied_at, pre_score=pre_score)
    cutoff = applied_at - RECENT_DISPATCH_SECONDS
    state.recent_dispatches = [ts for ts in state.recent_dispatches if ts > cutoff] + [applied_at]
    return record


def escalation_level(state: FocusState, now: float) -> str:
    recent = sum(1 for ts in state.recent_dispatches if now - ts < RECENT_DISPATCH_SECONDS)
    if recent >= 4:
        return "high"
    if recent >= 2:
        return "medium"
    return "low"


def describe(arm_name: str) -> str:
    return DESCRIPTIONS.get(arm_name, "Adjusting music")
