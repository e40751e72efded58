from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .signals import SignalStore


class Mode(str, Enum):
    GENTLE = "gentle"
    NORMAL = "normal"
    STRICT = "strict"


class Phase(str, Enum):
    STUDY = "study"
    BREAK = "break"


class Intervention(str, Enum):
    BOOST_ENERGY = "BOOST_ENERGY"
    SWITCH_PLAYLIST = "SWITCH_PLAYLIST"
    PATTERN_BREAK = "PATTERN_BREAK"
    DUCK_VOLUME = "DUCK_VOLUME"
    WHITE_NOISE = "WHITE_NOISE"
    SMART_RECOMMEND = "SMART_RECOMMEND"
    FOCUS_PROMPT = "FOCUS_PROMPT"
    NUCLEAR = "NUCLEAR"


DEFAULT_ARM = Intervention.BOOST_ENERGY.value

# Bandit priors; dict order is the UCB tie-break order.
ARM_PRIORS: Dict[str, float] = {
    Intervention.BOOST_ENERGY.value: 0.5,
    Intervention.SWITCH_PLAYLIST.value: 0.5,
    Intervention.PATTERN_BREAK.value: 0.5,
    Intervention.NUCLEAR.value: 0.2,
}


def parse_mode(value: Any) -> Mode:
    try:
        return Mode(value)
    except ValueError:
        raise ValueError(f"unknown mode: {value!r}") from None


@dataclass
class Session:
    active: bool = False
    mode: Mode = Mode.NORMAL
    phase: Phase = Phase.STUDY
    started_at: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "mode": self.mode.value,
            "phase": self.phase.value,
            "started_at": self.started_at,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "Session":
        return cls(
            active=bool(payload.get("active", False)),
            mode=Mode(payload.get("mode", Mode.NORMAL.value)),
            phase=Phase(payload.get("phase", Phase.STUDY.value)),
            started_at=payload.get("started_at"),
        )


@dataclass
class Adjustment:
    type: str
    value: float


@dataclass
class Metrics:
    focus_score: int = 100
    focus_trend: float = 100.0
    trend_delta: float = 0.0
    penalties: List[Adjustment] = field(default_factory=list)
    bonuses: List[Adjustment] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: dict) -> "Metrics":
        return cls(
            focus_score=int(payload.get("focus_score", 100)),
            focus_trend=float(payload.get("focus_trend", 100.0)),
            trend_delta=float(payload.get("trend_delta", 0.0)),
            penalties=[Adjustment(**item) for item in payload.get("penalties", [])],
            bonuses=[Adjustment(**item) for item in payload.get("bonuses", [])],
        )


@dataclass
class InterventionRecord:
    type: str
    applied_at: float
    pre_score: int

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, payload: Optional[dict]) -> Optional["InterventionRecord"]:
        if not payload:
            return None
        return cls(
            type=str(payload["type"]),
            applied_at=float(payload["applied_at"]),
            pre_score=int(payload["pre_score"]),
        )


@dataclass
class ArmStats:
    value: float = 0.5
    n: int = 1


@dataclass
class Policy:
    arms: Dict[str, ArmStats] = field(default_factory=dict)

    @classmethod
    def with_priors(cls) -> "Policy":
        return cls(arms={name: ArmStats(value=prior, n=1) for name, prior in ARM_PRIORS.items()})

    def to_dict(self) -> Dict[str, Any]:
        return {"arms": {name: asdict(arm) for name, arm in self.arms.items()}}

    @classmethod
    def from_dict(cls, payload: Optional[dict]) -> "Policy":
        arms = (payload or {}).get("arms")
        if not arms:
            return cls.with_priors()
        return cls(
            arms={
                name: ArmStats(value=float(arm.get("value", 0.5)), n=max(int(arm.get("n", 1)), 1))
                for name, arm in arms.items()
            }
        )


@dataclass
class HistoryEntry:
    timestamp: float
    score: int


@dataclass
class FocusState:
    """Everything the control loop owns, persisted as one blob between ticks."""

    session: Session = field(default_factory=Session)
    signals: SignalStore = field(default_factory=SignalStore)
    metrics: Metrics = field(default_factory=Metrics)
    last_intervention: Optional[InterventionRecord] = None
    last_dispatch: Optional[InterventionRecord] = None
    policy: Policy = field(default_factory=Policy.with_priors)
    history: List[HistoryEntry] = field(default_factory=list)
    recent_dispatches: List[float] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.to_dict(),
            "signals": self.signals.to_dict(),
            "metrics": self.metrics.to_dict(),
            "last_intervention": self.last_intervention.to_dict() if self.last_intervention else None,
            "last_dispatch": self.last_dispatch.to_dict() if self.last_dispatch else None,
            "policy": self.policy.to_dict(),
            "history": [asdict(entry) for entry in self.history],
            "recent_dispatches": list(self.recent_dispatches),
        }

    @classmethod
    def from_dict(cls, payload: Optional[dict]) -> "FocusState":
        if not payload:
            return cls()
        return cls(
            session=Session.from_dict(payload.get("session", {})),
            signals=SignalStore.from_dict(payload.get("signals", {})),
            metrics=Metrics.from_dict(payload.get("metrics", {})),
            last_intervention=InterventionRecord.from_dict(payload.get("last_intervention")),
            last_dispatch=InterventionRecord.from_dict(payload.get("last_dispatch")),
            policy=Policy.from_dict(payload.get("policy")),
            history=[
                HistoryEntry(timestamp=float(item["timestamp"]), score=int(item["score"]))
                for item in payload.get("history", [])
            ],
            recent_dispatches=[float(ts) for ts in payload.get("recent_dispatches", [])],
        )
