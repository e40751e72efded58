from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List

from .signals import BAD_CATEGORIES, SCROLLING_COUNT, Category, SignalStore
from .state import Adjustment, Mode

BASE_SCORE = 100.0

TAB_SWITCH_THRESHOLDS: Dict[Mode, int] = {Mode.GENTLE: 15, Mode.NORMAL: 10, Mode.STRICT: 5}
TAB_SWITCH_MAX = 35.0

# Signed multipliers per site category; positive -> bonus (x20), negative -> penalty (x50).
CATEGORY_WEIGHTS: Dict[Mode, Dict[Category, float]] = {
    Mode.GENTLE: {
        Category.PRODUCTIVE: 0.15,
        Category.SOCIAL_MEDIA: -0.3,
        Category.ENTERTAINMENT: -0.2,
        Category.GAMES: -0.3,
        Category.SHOPPING: -0.15,
        Category.NEWS: -0.1,
        Category.BLOCKED: -0.6,
        Category.NEUTRAL: 0.0,
    },
    Mode.NORMAL: {
        Category.PRODUCTIVE: 0.2,
        Category.SOCIAL_MEDIA: -0.5,
        Category.ENTERTAINMENT: -0.4,
        Category.GAMES: -0.5,
        Category.SHOPPING: -0.3,
        Category.NEWS: -0.2,
        Category.BLOCKED: -0.8,
        Category.NEUTRAL: 0.0,
    },
    Mode.STRICT: {
        Category.PRODUCTIVE: 0.25,
        Category.SOCIAL_MEDIA: -0.8,
        Category.ENTERTAINMENT: -0.7,
        Category.GAMES: -0.8,
        Category.SHOPPING: -0.5,
        Category.NEWS: -0.4,
        Category.BLOCKED: -1.0,
        Category.NEUTRAL: 0.0,
    },
}
CATEGORY_BONUS_SCALE = 20.0
CATEGORY_PENALTY_SCALE = 50.0

IDLE_THRESHOLDS: Dict[Mode, float] = {Mode.GENTLE: 45.0, Mode.NORMAL: 30.0, Mode.STRICT: 20.0}
IDLE_RAMP_SECONDS = 60.0
IDLE_MAX = 20.0

TYPING_BONUS: Dict[Mode, float] = {Mode.GENTLE: 0.1, Mode.NORMAL: 0.15, Mode.STRICT: 0.2}
TYPING_SCALE = 15.0

DOOMSCROLL_FULL_COUNT = 20
DOOMSCROLL_MAX = 25.0

BAD_SITE_GRACE_SECONDS = 30.0
BAD_SITE_FULL_SECONDS = 300.0
BAD_SITE_MAX = 20.0

STRICT_OFF_TASK_PENALTY = 5.0
STRICT_INACTIVE_SECONDS = 10.0
STRICT_INACTIVE_PENALTY = 5.0

ABSENT_GRACE_SECONDS = 10.0
ABSENT_RAMP_SECONDS = 60.0
ABSENT_MAX = 25.0
AWAY_GRACE_SECONDS = 5.0
AWAY_RAMP_SECONDS = 30.0
AWAY_MAX = 15.0
PRESENT_CONFIDENCE = 0.7
PRESENT_BONUS = 5.0


@dataclass
class ScoreResult:
    score: int
    penalties: List[Adjustment] = field(default_factory=list)
    bonuses: List[Adjustment] = field(default_factory=list)


def _clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def _ramp(excess: float, span: float, cap: float) -> float:
    """Linear 0..cap over `span` seconds past a threshold."""
    if excess <= 0:
        return 0.0
    return min(1.0, excess / span) * cap


def score(signals: SignalStore, mode: Mode, now: float, attention_enabled: bool = False) -> ScoreResult:
    """
    Compute the focus score with its itemized penalties and bonuses.

    Each component is bounded on its own before they are combined, and the
    final value is clamped to [0, 100].
    """
    penalties: List[Adjustment] = []
    bonuses: List[Adjustment] = []

    def penalize(kind: str, value: float, cap: float) -> None:
        value = _clamp(value, 0.0, cap)
        if value > 0:
            penalties.append(Adjustment(type=kind, value=round(value, 2)))

    def reward(kind: str, value: float, cap: float) -> None:
        value = _clamp(value, 0.0, cap)
        if value > 0:
            bonuses.append(Adjustment(type=kind, value=round(value, 2)))

    switches = signals.tab_switch_count(now)
    penalize("tab_switches", min(1.0, switches / TAB_SWITCH_THRESHOLDS[mode]) * TAB_SWITCH_MAX, TAB_SWITCH_MAX)

    category = signals.current_category
    weight = CATEGORY_WEIGHTS[mode].get(category, 0.0)
    if weight > 0:
        reward("site_category", weight * CATEGORY_BONUS_SCALE, CATEGORY_BONUS_SCALE)
    elif weight < 0:
        penalize("site_category", -weight * CATEGORY_PENALTY_SCALE, CATEGORY_PENALTY_SCALE)

    idle = signals.idle_seconds(now)
    penalize("idle", _ramp(idle - IDLE_THRESHOLDS[mode], IDLE_RAMP_SECONDS, IDLE_MAX), IDLE_MAX)

    typing = signals.actively_typing
    if typing:
        reward("typing", TYPING_BONUS[mode] * TYPING_SCALE, TYPING_SCALE)

    scrolls = signals.scroll_count
    if category in BAD_CATEGORIES and scrolls > SCROLLING_COUNT:
        penalize("doomscroll", min(1.0, scrolls / DOOMSCROLL_FULL_COUNT) * DOOMSCROLL_MAX, DOOMSCROLL_MAX)

    bad_seconds = signals.bad_site_seconds(now)
    penalize(
        "prolonged_bad_site",
        _ramp(bad_seconds - BAD_SITE_GRACE_SECONDS, BAD_SITE_FULL_SECONDS - BAD_SITE_GRACE_SECONDS, BAD_SITE_MAX),
        BAD_SITE_MAX,
    )

    if mode == Mode.STRICT:
        if category != Category.PRODUCTIVE:
            penalize("strict_off_task", STRICT_OFF_TASK_PENALTY, STRICT_OFF_TASK_PENALTY)
        if idle > STRICT_INACTIVE_SECONDS and not typing:
            penalize("strict_inactive", STRICT_INACTIVE_PENALTY, STRICT_INACTIVE_PENALTY)

    if attention_enabled and signals.attention_present is not None:
        absent = signals.attention_absent_seconds(now)
        penalize("attention_absent", _ramp(absent - ABSENT_GRACE_SECONDS, ABSENT_RAMP_SECONDS, ABSENT_MAX), ABSENT_MAX)
        away = signals.attention_away_seconds(now)
        penalize("attention_away", _ramp(away - AWAY_GRACE_SECONDS, AWAY_RAMP_SECONDS, AWAY_MAX), AWAY_MAX)
        if (
            signals.attention_present
            and not signals.attention_looking_away
            and signals.attention_confidence > PRESENT_CONFIDENCE
        ):
            reward("attention_present", PRESENT_BONUS, PRESENT_BONUS)

    total = BASE_SCORE + sum(b.value for b in bonuses) - sum(p.value for p in penalties)
    return ScoreResult(score=int(round(_clamp(total, 0.0, 100.0))), penalties=penalties, bonuses=bonuses)
