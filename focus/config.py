from __future__ import annotations

from dataclasses import dataclass, field
from typing import List


@dataclass
class LoopConfig:
    tick_seconds: float = 10.0
    evaluation_delay_seconds: float = 45.0
    history_max_entries: int = 1000
    actuation_timeout_seconds: float = 5.0


@dataclass
class FeatureFlags:
    nuclear_enabled: bool = False
    auto_music_switch: bool = True
    auto_music_threshold: int = 50
    attention_sensor: bool = False


@dataclass
class SiteLists:
    productive: List[str] = field(default_factory=list)
    blocked: List[str] = field(default_factory=list)


@dataclass
class FocusSettings:
    default_mode: str = "normal"
    loop: LoopConfig = field(default_factory=LoopConfig)
    features: FeatureFlags = field(default_factory=FeatureFlags)
    sites: SiteLists = field(default_factory=SiteLists)

    @classmethod
    def from_dict(cls, payload: dict) -> "FocusSettings":
        loop_data = payload.get("loop", {})
        feature_data = payload.get("features", {})
        site_data = payload.get("sites", {})

        loop = LoopConfig(
            tick_seconds=float(loop_data.get("tick_seconds", 10.0)),
            evaluation_delay_seconds=float(loop_data.get("evaluation_delay_seconds", 45.0)),
            history_max_entries=int(loop_data.get("history_max_entries", 1000)),
            actuation_timeout_seconds=float(loop_data.get("actuation_timeout_seconds", 5.0)),
        )
        features = FeatureFlags(
            nuclear_enabled=bool(feature_data.get("nuclear_enabled", False)),
            auto_music_switch=bool(feature_data.get("auto_music_switch", True)),
            auto_music_threshold=int(feature_data.get("auto_music_threshold", 50)),
            attention_sensor=bool(feature_data.get("attention_sensor", False)),
        )
        sites = SiteLists(
            productive=[str(site) for site in site_data.get("productive") or []],
            blocked=[str(site) for site in site_data.get("blocked") or []],
        )
        return cls(
            default_mode=str(payload.get("default_mode", "normal")),
            loop=loop,
            features=features,
            sites=sites,
        )
