from __future__ import annotations

import csv
import io
import json
import sqlite3
import threading
from typing import Iterable, List, Optional

from focus.state import FocusState, Metrics

STATE_KEY = "state"


class Database:
    def __init__(self, path: str):
        self.path = path
        self.conn = sqlite3.connect(self.path, check_same_thread=False)
        self.lock = threading.Lock()
        self._init_db()

    def _init_db(self) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS state (
                    key TEXT PRIMARY KEY,
                    blob TEXT
                );
                """
            )
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS metrics (
                    ts REAL,
                    focus_score INTEGER,
                    focus_trend REAL,
                    trend_delta REAL,
                    penalties TEXT,
                    bonuses TEXT
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_metrics_ts ON metrics(ts);")
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS events (
                    ts REAL,
                    type TEXT,
                    details TEXT
                );
                """
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_events_ts ON events(ts);")
            self.conn.commit()

    def load(self) -> FocusState:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute("SELECT blob FROM state WHERE key = ?", (STATE_KEY,))
            row = cur.fetchone()
        if row is None:
            return FocusState()
        return FocusState.from_dict(json.loads(row[0]))

    def save(self, state: FocusState) -> None:
        blob = json.dumps(state.to_dict())
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "INSERT INTO state (key, blob) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET blob = excluded.blob",
                (STATE_KEY, blob),
            )
            self.conn.commit()

    def log_metrics(self, ts: float, metrics: Metrics) -> None:
        payload = metrics.to_dict()
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                INSERT INTO metrics (ts, focus_score, focus_trend, trend_delta, penalties, bonuses)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    ts,
                    metrics.focus_score,
                    metrics.focus_trend,
                    metrics.trend_delta,
                    json.dumps(payload["penalties"]),
                    json.dumps(payload["bonuses"]),
                ),
            )
            self.conn.commit()

    def log_event(self, event_type: str, ts: float, details: Optional[str] = None) -> None:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "INSERT INTO events (ts, type, details) VALUES (?, ?, ?)",
                (ts, event_type, details or ""),
            )
            self.conn.commit()

    def history(self, start_ts: float, end_ts: float) -> List[dict]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                """
                SELECT ts, focus_score, focus_trend, trend_delta, penalties, bonuses
                FROM metrics WHERE ts BETWEEN ? AND ? ORDER BY ts ASC
                """,
                (start_ts, end_ts),
            )
            rows = cur.fetchall()
        return [
            {
                "timestamp": ts,
                "focus_score": score,
                "focus_trend": trend,
                "trend_delta": delta,
                "penalties": json.loads(penalties or "[]"),
                "bonuses": json.loads(bonuses or "[]"),
            }
            for ts, score, trend, delta, penalties, bonuses in rows
        ]

    def events(self, start_ts: float, end_ts: float) -> List[dict]:
        with self.lock:
            cur = self.conn.cursor()
            cur.execute(
                "SELECT ts, type, details FROM events WHERE ts BETWEEN ? AND ? ORDER BY ts ASC",
                (start_ts, end_ts),
            )
            rows = cur.fetchall()
        keys = ["timestamp", "type", "details"]
        return [dict(zip(keys, row)) for row in rows]

    def export_csv(self, start_ts: float, end_ts: float) -> Iterable[bytes]:
        headers = ["timestamp", "focus_score", "focus_trend", "trend_delta", "penalty_total", "bonus_total"]
        yield ",".join(headers).encode() + b"\n"
        for row in self.history(start_ts, end_ts):
            buf = io.StringIO()
            writer = csv.DictWriter(buf, fieldnames=headers)
            writer.writerow(
                {
                    "timestamp": row["timestamp"],
                    "focus_score": row["focus_score"],
                    "focus_trend": row["focus_trend"],
                    "trend_delta": row["trend_delta"],
                    "penalty_total": sum(item["value"] for item in row["penalties"]),
                    "bonus_total": sum(item["value"] for item in row["bonuses"]),
                }
            )
            yield buf.getvalue().encode()

    def close(self) -> None:
        with self.lock:
            self.conn.close()
