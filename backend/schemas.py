from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class LoopSchema(BaseModel):
    tick_seconds: float = Field(10.0, gt=0)
    evaluation_delay_seconds: float = Field(45.0, ge=0)
    history_max_entries: int = Field(1000, ge=2)
    actuation_timeout_seconds: float = Field(5.0, gt=0)


class FeaturesSchema(BaseModel):
    nuclear_enabled: bool = False
    auto_music_switch: bool = True
    auto_music_threshold: int = Field(50, ge=0, le=100)
    attention_sensor: bool = False


class SitesSchema(BaseModel):
    productive: List[str] = []
    blocked: List[str] = []


class SettingsSchema(BaseModel):
    default_mode: str = "normal"
    loop: LoopSchema = LoopSchema()
    features: FeaturesSchema = FeaturesSchema()
    sites: SitesSchema = SitesSchema()


class SessionStartSchema(BaseModel):
    mode: Optional[str] = None


class ModeSchema(BaseModel):
    mode: str


class PhaseSchema(BaseModel):
    phase: str


class TabEventSchema(BaseModel):
    hostname: Optional[str] = None
    url: Optional[str] = None
    category: Optional[str] = None
    timestamp: Optional[float] = None


class ActivityEventSchema(BaseModel):
    hostname: Optional[str] = None
    category: Optional[str] = None
    timestamp: Optional[float] = None
    seconds_since_pointer: float = 0.0
    seconds_since_key: float = 0.0
    seconds_since_scroll: float = 0.0
    key_count: int = Field(0, ge=0)
    scroll_count: int = Field(0, ge=0)
    idle: bool = False
    typing: Optional[bool] = None
    scrolling: Optional[bool] = None


class AttentionEventSchema(BaseModel):
    present: bool = True
    looking_away: bool = False
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    timestamp: Optional[float] = None
    absent_seconds: Optional[float] = Field(None, ge=0.0)
    looking_away_seconds: Optional[float] = Field(None, ge=0.0)


class AdjustmentSchema(BaseModel):
    type: str
    value: float


class MetricsRowSchema(BaseModel):
    timestamp: float
    focus_score: int
    focus_trend: float
    trend_delta: float
    penalties: List[AdjustmentSchema]
    bonuses: List[AdjustmentSchema]


class HistoryResponse(BaseModel):
    metrics: List[MetricsRowSchema]
    events: List[dict]
