from __future__ import annotations

from typing import List

from .state import HistoryEntry

EMA_ALPHA = 0.3
TREND_WINDOW_SECONDS = 30.0
HISTORY_MAX_ENTRIES = 1000


def update_ema(prev_ema: float, new_score: float, alpha: float = EMA_ALPHA) -> float:
    return alpha * new_score + (1 - alpha) * prev_ema


def trend_delta(history: List[HistoryEntry], now: float, window_seconds: float = TREND_WINDOW_SECONDS) -> float:
    """
    Newest minus oldest score among entries inside the trailing window.
    """
    cutoff = now - window_seconds
    recent = [entry for entry in history if cutoff < entry.timestamp <= now]
    if len(recent) < 2:
        return 0.0
    return float(recent[-1].score - recent[0].score)


def append_history(history: List[HistoryEntry], entry: HistoryEntry, max_entries: int = HISTORY_MAX_ENTRIES) -> None:
    history.append(entry)
    overflow = len(history) - max_entries
    if overflow > 0:
        del history[:overflow]
