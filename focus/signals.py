from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from urllib.parse import urlparse

WINDOW_SECONDS = 60.0
TYPING_KEY_COUNT = 10
SCROLLING_COUNT = 5
ACTIVITY_KINDS = ("pointer", "key", "scroll")


class Category(str, Enum):
    PRODUCTIVE = "productive"
    SOCIAL_MEDIA = "socialMedia"
    ENTERTAINMENT = "entertainment"
    GAMES = "games"
    SHOPPING = "shopping"
    NEWS = "news"
    BLOCKED = "blocked"
    NEUTRAL = "neutral"


BAD_CATEGORIES = frozenset(
    {Category.SOCIAL_MEDIA, Category.ENTERTAINMENT, Category.GAMES, Category.BLOCKED}
)

SITE_CATEGORIES: Dict[str, Category] = {
    "docs.google.com": Category.PRODUCTIVE,
    "notion.so": Category.PRODUCTIVE,
    "overleaf.com": Category.PRODUCTIVE,
    "github.com": Category.PRODUCTIVE,
    "stackoverflow.com": Category.PRODUCTIVE,
    "twitter.com": Category.SOCIAL_MEDIA,
    "x.com": Category.SOCIAL_MEDIA,
    "instagram.com": Category.SOCIAL_MEDIA,
    "tiktok.com": Category.SOCIAL_MEDIA,
    "facebook.com": Category.SOCIAL_MEDIA,
    "reddit.com": Category.SOCIAL_MEDIA,
    "youtube.com": Category.ENTERTAINMENT,
    "netflix.com": Category.ENTERTAINMENT,
    "twitch.tv": Category.ENTERTAINMENT,
    "store.steampowered.com": Category.GAMES,
    "roblox.com": Category.GAMES,
    "amazon.com": Category.SHOPPING,
    "ebay.com": Category.SHOPPING,
    "cnn.com": Category.NEWS,
    "nytimes.com": Category.NEWS,
    "bbc.com": Category.NEWS,
}


def parse_category(value: Any) -> Category:
    try:
        return Category(value)
    except ValueError:
        return Category.NEUTRAL


def hostname_of(value: Optional[str]) -> str:
    if not value:
        return ""
    text = str(value).strip().lower()
    if "://" in text:
        text = urlparse(text).hostname or ""
    return text.split("/")[0].split(":")[0]


def _matches(hostname: str, site: str) -> bool:
    return hostname == site or hostname.endswith("." + site)


def categorize(
    hostname: Optional[str],
    productive_sites: Iterable[str] = (),
    blocked_sites: Iterable[str] = (),
) -> Category:
    """Map a hostname (or URL) to a category; user lists win over the built-in table."""
    host = hostname_of(hostname)
    if not host:
        return Category.NEUTRAL
    if any(_matches(host, hostname_of(site)) for site in blocked_sites):
        return Category.BLOCKED
    if any(_matches(host, hostname_of(site)) for site in productive_sites):
        return Category.PRODUCTIVE
    for site, category in SITE_CATEGORIES.items():
        if _matches(host, site):
            return category
    return Category.NEUTRAL


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _as_int(value: Any) -> int:
    try:
        return max(int(value), 0)
    except (TypeError, ValueError):
        return 0


@dataclass(frozen=True)
class TabChange:
    hostname: str
    timestamp: float
    category: Optional[Category] = None

    @classmethod
    def from_payload(cls, payload: dict, now: float) -> "TabChange":
        hostname = hostname_of(payload.get("hostname") or payload.get("url"))
        category = payload.get("category")
        return cls(
            hostname=hostname,
            timestamp=_as_float(payload.get("timestamp"), now),
            category=parse_category(category) if category else None,
        )


@dataclass(frozen=True)
class ActivityReport:
    timestamp: float
    hostname: str = ""
    category: Optional[Category] = None
    seconds_since_pointer: float = 0.0
    seconds_since_key: float = 0.0
    seconds_since_scroll: float = 0.0
    key_count: int = 0
    scroll_count: int = 0
    idle: bool = False
    typing: bool = False
    scrolling: bool = False

    @classmethod
    def from_payload(cls, payload: dict, now: float) -> "ActivityReport":
        category = payload.get("category")
        key_count = _as_int(payload.get("key_count"))
        scroll_count = _as_int(payload.get("scroll_count"))
        typing = payload.get("typing")
        scrolling = payload.get("scrolling")
        return cls(
            timestamp=_as_float(payload.get("timestamp"), now),
            hostname=hostname_of(payload.get("hostname")),
            category=parse_category(category) if category else None,
            seconds_since_pointer=max(_as_float(payload.get("seconds_since_pointer"), 0.0), 0.0),
            seconds_since_key=max(_as_float(payload.get("seconds_since_key"), 0.0), 0.0),
            seconds_since_scroll=max(_as_float(payload.get("seconds_since_scroll"), 0.0), 0.0),
            key_count=key_count,
            scroll_count=scroll_count,
            idle=bool(payload.get("idle", False)),
            typing=key_count > TYPING_KEY_COUNT if typing is None else bool(typing),
            scrolling=scroll_count > SCROLLING_COUNT if scrolling is None else bool(scrolling),
        )


@dataclass(frozen=True)
class AttentionSignal:
    present: bool
    looking_away: bool
    confidence: float
    timestamp: float
    absent_seconds: Optional[float] = None
    looking_away_seconds: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: dict, now: float) -> "AttentionSignal":
        absent = payload.get("absent_seconds")
        away = payload.get("looking_away_seconds")
        return cls(
            present=bool(payload.get("present", True)),
            looking_away=bool(payload.get("looking_away", False)),
            confidence=min(max(_as_float(payload.get("confidence"), 0.0), 0.0), 1.0),
            timestamp=_as_float(payload.get("timestamp"), now),
            absent_seconds=None if absent is None else max(_as_float(absent, 0.0), 0.0),
            looking_away_seconds=None if away is None else max(_as_float(away, 0.0), 0.0),
        )


@dataclass
class SignalStore:
    """Rolling behavioral signals; every mutation tolerates repeated identical timestamps."""

    tab_switches: List[float] = field(default_factory=list)
    site_time: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    current_site: Optional[str] = None
    current_category: Category = Category.NEUTRAL
    site_entered_at: Optional[float] = None
    last_activity: Dict[str, float] = field(default_factory=dict)
    activity_counts: Dict[str, int] = field(default_factory=dict)
    activity_marks: Dict[str, List[float]] = field(default_factory=dict)
    idle: bool = False
    typing: bool = False
    doomscrolling: bool = False
    attention_present: Optional[bool] = None
    attention_looking_away: bool = False
    attention_confidence: float = 0.0
    absent_since: Optional[float] = None
    looking_away_since: Optional[float] = None

    # mutations

    def record_tab_switch(self, ts: float) -> None:
        if ts in self.tab_switches:
            return
        self.tab_switches.append(ts)
        self.tab_switches.sort()

    def record_site_enter(self, hostname: str, category: Category, ts: float) -> None:
        if self.current_site == hostname and self.site_entered_at == ts:
            return
        self.record_site_exit(ts)
        self.current_site = hostname
        self.current_category = category
        self.site_entered_at = ts
        self._refresh_derived()

    def record_site_exit(self, ts: float) -> None:
        if self.current_site is None or self.site_entered_at is None:
            return
        elapsed = max(ts - self.site_entered_at, 0.0)
        entry = self.site_time.setdefault(
            self.current_site, {"seconds": 0.0, "category": self.current_category.value}
        )
        entry["seconds"] += elapsed
        entry["category"] = self.current_category.value
        self.current_site = None
        self.current_category = Category.NEUTRAL
        self.site_entered_at = None
        self._refresh_derived()

    def record_activity(self, kind: str, ts: float) -> None:
        if kind not in ACTIVITY_KINDS:
            raise ValueError(f"unknown activity kind: {kind!r}")
        self.last_activity[kind] = max(self.last_activity.get(kind, ts), ts)
        marks = self.activity_marks.setdefault(kind, [])
        if ts in marks:
            return
        marks.append(ts)
        self.activity_counts[kind] = self.activity_counts.get(kind, 0) + 1
        self.idle = False
        if kind == "key":
            self.typing = self.activity_counts[kind] > TYPING_KEY_COUNT
        self._refresh_derived()

    def record_activity_report(self, report: ActivityReport) -> None:
        ts = report.timestamp
        # An idle report carries no fresh activity; its zeroed "since" fields must not count as input.
        if not report.idle:
            for kind, since in (
                ("pointer", report.seconds_since_pointer),
                ("key", report.seconds_since_key),
                ("scroll", report.seconds_since_scroll),
            ):
                seen = ts - since
                self.last_activity[kind] = max(self.last_activity.get(kind, seen), seen)
        self.activity_counts = {"key": report.key_count, "scroll": report.scroll_count}
        self.activity_marks = {}
        self.idle = report.idle
        self.typing = report.typing
        if report.category is not None and report.hostname and report.hostname == self.current_site:
            self.current_category = report.category
        self._refresh_derived()

    def record_attention_signal(
        self,
        present: bool,
        looking_away: bool,
        confidence: float,
        ts: float,
        absent_seconds: Optional[float] = None,
        looking_away_seconds: Optional[float] = None,
    ) -> None:
        self.attention_present = present
        self.attention_looking_away = looking_away
        self.attention_confidence = confidence

        if present:
            self.absent_since = None
        elif absent_seconds is not None:
            self.absent_since = ts - absent_seconds
        elif self.absent_since is None:
            self.absent_since = ts

        if not looking_away:
            self.looking_away_since = None
        elif looking_away_seconds is not None:
            self.looking_away_since = ts - looking_away_seconds
        elif self.looking_away_since is None:
            self.looking_away_since = ts

    def prune(self, now: float) -> None:
        cutoff = now - WINDOW_SECONDS
        self.tab_switches = [ts for ts in self.tab_switches if ts > cutoff]

    def reset_counters(self) -> None:
        self.activity_counts = {}
        self.activity_marks = {}
        self.typing = False
        self._refresh_derived()

    def _refresh_derived(self) -> None:
        self.doomscrolling = (
            self.current_category in BAD_CATEGORIES and self.scroll_count > SCROLLING_COUNT
        )

    # derived views

    @property
    def scroll_count(self) -> int:
        return self.activity_counts.get("scroll", 0)

    @property
    def actively_typing(self) -> bool:
        return self.typing or self.activity_counts.get("key", 0) > TYPING_KEY_COUNT

    def tab_switch_count(self, now: float) -> int:
        cutoff = now - WINDOW_SECONDS
        return sum(1 for ts in self.tab_switches if cutoff < ts <= now)

    def idle_seconds(self, now: float) -> float:
        if not self.last_activity:
            return 0.0
        return max(now - max(self.last_activity.values()), 0.0)

    def bad_site_seconds(self, now: float) -> float:
        total = sum(
            entry["seconds"]
            for entry in self.site_time.values()
            if parse_category(entry.get("category")) in BAD_CATEGORIES
        )
        if self.current_category in BAD_CATEGORIES and self.site_entered_at is not None:
            total += max(now - self.site_entered_at, 0.0)
        return total

    def attention_absent_seconds(self, now: float) -> float:
        if self.absent_since is None:
            return 0.0
        return max(now - self.absent_since, 0.0)

    def attention_away_seconds(self, now: float) -> float:
        if self.looking_away_since is None:
            return 0.0
        return max(now - self.looking_away_since, 0.0)

    # persistence

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tab_switches": list(self.tab_switches),
            "site_time": {host: dict(entry) for host, entry in self.site_time.items()},
            "current_site": self.current_site,
            "current_category": self.current_category.value,
            "site_entered_at": self.site_entered_at,
            "last_activity": dict(self.last_activity),
            "activity_counts": dict(self.activity_counts),
            "activity_marks": {kind: list(marks) for kind, marks in self.activity_marks.items()},
            "idle": self.idle,
            "typing": self.typing,
            "doomscrolling": self.doomscrolling,
            "attention_present": self.attention_present,
            "attention_looking_away": self.attention_looking_away,
            "attention_confidence": self.attention_confidence,
            "absent_since": self.absent_since,
            "looking_away_since": self.looking_away_since,
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "SignalStore":
        return cls(
            tab_switches=sorted(float(ts) for ts in payload.get("tab_switches", [])),
            site_time={
                host: {"seconds": float(entry.get("seconds", 0.0)), "category": str(entry.get("category", "neutral"))}
                for host, entry in payload.get("site_time", {}).items()
            },
            current_site=payload.get("current_site"),
            current_category=parse_category(payload.get("current_category", "neutral")),
            site_entered_at=payload.get("site_entered_at"),
            last_activity={k: float(v) for k, v in payload.get("last_activity", {}).items()},
            activity_counts={k: int(v) for k, v in payload.get("activity_counts", {}).items()},
            activity_marks={k: [float(ts) for ts in v] for k, v in payload.get("activity_marks", {}).items()},
            idle=bool(payload.get("idle", False)),
            typing=bool(payload.get("typing", False)),
            doomscrolling=bool(payload.get("doomscrolling", False)),
            attention_present=payload.get("attention_present"),
            attention_looking_away=bool(payload.get("attention_looking_away", False)),
            attention_confidence=float(payload.get("attention_confidence", 0.0)),
            absent_since=payload.get("absent_since"),
            looking_away_since=payload.get("looking_away_since"),
        )
