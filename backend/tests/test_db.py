import time

from backend.db import Database
from focus.state import Adjustment, FocusState, InterventionRecord, Metrics, Mode


def test_state_blob_round_trip(tmp_path):
    db = Database(str(tmp_path / "test.db"))
    assert db.load() == FocusState()

    state = FocusState()
    state.session.active = True
    state.session.mode = Mode.STRICT
    state.signals.record_tab_switch(12.0)
    state.last_intervention = InterventionRecord(type="PATTERN_BREAK", applied_at=10.0, pre_score=55)
    state.policy.arms["PATTERN_BREAK"].n = 4
    db.save(state)
    db.save(state)

    loaded = Database(str(tmp_path / "test.db")).load()
    assert loaded.session.mode == Mode.STRICT
    assert loaded.signals.tab_switches == [12.0]
    assert loaded.last_intervention == state.last_intervention
    assert loaded.policy.arms["PATTERN_BREAK"].n == 4


def test_metrics_and_events_query(tmp_path):
    db = Database(str(tmp_path / "test.db"))
    ts = time.time()
    metrics = Metrics(
        focus_score=72,
        focus_trend=80.5,
        trend_delta=-6.0,
        penalties=[Adjustment(type="tab_switches", value=28.0)],
        bonuses=[],
    )
    db.log_metrics(ts, metrics)
    db.log_event("INTERVENTION_APPLIED", ts + 1, '{"intervention": "BOOST_ENERGY"}')

    rows = db.history(ts - 1, ts + 2)
    assert len(rows) == 1
    assert rows[0]["focus_score"] == 72
    assert rows[0]["penalties"] == [{"type": "tab_switches", "value": 28.0}]

    events = db.events(ts, ts + 5)
    assert len(events) == 1
    assert events[0]["type"] == "INTERVENTION_APPLIED"

    exported = b"".join(db.export_csv(ts - 1, ts + 2)).decode()
    assert exported.splitlines()[0].startswith("timestamp,focus_score")
    assert ",72," in exported.splitlines()[1]
