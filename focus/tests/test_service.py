import threading
import time

import pytest

from focus.actuator import ActuationResult, CallbackActuator, LoggingActuator
from focus.config import FocusSettings, LoopConfig
from focus.service import FocusService
from focus.signals import ActivityReport, AttentionSignal, Category, TabChange
from focus.state import FocusState
from focus.store import MemoryStore


class FakeClock:
    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_service(clock):
    services = []

    def factory(actuator=None, **loop_overrides):
        loop_cfg = LoopConfig(tick_seconds=3600.0, **loop_overrides)
        service = FocusService(FocusSettings(loop=loop_cfg), store=MemoryStore(), actuator=actuator, clock=clock)
        services.append(service)
        return service

    yield factory
    for service in services:
        service.stop()


def _distract(service):
    service.handle_event(TabChange(hostname="reddit.com", timestamp=1_001.0, category=Category.SOCIAL_MEDIA))
    service.handle_event(ActivityReport(timestamp=1_002.0, hostname="reddit.com", scroll_count=10, scrolling=True))


def test_tick_without_session_does_nothing(make_service):
    service = make_service()
    result = service.tick(now=1_010.0)
    assert result.ran is False
    assert result.reason == "inactive"


def test_events_ignored_without_session(make_service):
    service = make_service()
    assert service.handle_event(TabChange(hostname="reddit.com", timestamp=1.0)) is False
    assert service.store.load().signals.tab_switches == []


def test_tick_publishes_metrics(make_service):
    service = make_service()
    received = []
    service.add_listener(received.append)
    service.start_session("normal")

    result = service.tick(now=1_005.0)
    assert result.ran is True
    assert result.metrics["focus_score"] == 100
    assert result.intervention is None

    assert received[-1]["type"] == "metrics"
    assert received[-1]["focus_score"] == 100
    assert {"focus_trend", "trend_delta", "penalties", "bonuses"} <= set(received[-1])

    state = service.store.load()
    assert len(state.history) == 1
    assert state.metrics.focus_trend == pytest.approx(100.0)


def test_tab_change_categorizes_unlabelled_hosts(make_service):
    service = make_service()
    service.start_session()
    service.handle_event(TabChange(hostname="www.instagram.com", timestamp=1_001.0))
    state = service.store.load()
    assert state.signals.current_category == Category.SOCIAL_MEDIA
    assert state.signals.tab_switches == [1_001.0]


def test_low_focus_dispatches_and_records(make_service):
    actuator = LoggingActuator()
    service = make_service(actuator=actuator)
    interventions = []
    service.add_listener(lambda payload: interventions.append(payload) if payload["type"] == "intervention" else None)
    service.start_session("normal")
    _distract(service)

    result = service.tick(now=1_005.0)
    assert result.reason == "low_focus"
    assert result.intervention == "BOOST_ENERGY"
    assert result.dispatched is True
    assert actuator.applied == ["BOOST_ENERGY"]
    assert interventions[0]["intervention"] == "BOOST_ENERGY"

    state = service.store.load()
    assert state.last_intervention.type == "BOOST_ENERGY"
    assert state.last_intervention.pre_score == result.metrics["focus_score"]
    assert state.last_intervention.applied_at == 1_005.0


def test_outstanding_record_is_evaluated_once(make_service):
    service = make_service()
    service.start_session("normal")
    _distract(service)
    service.tick(now=1_005.0)

    waiting = service.tick(now=1_015.0)
    assert waiting.reason == "awaiting_feedback"
    assert waiting.evaluation is None

    evaluated = service.tick(now=1_050.0)
    assert evaluated.evaluation is not None
    assert evaluated.evaluation.intervention == "BOOST_ENERGY"

    state = service.store.load()
    assert state.policy.arms["BOOST_ENERGY"].n == 2
    assert state.last_intervention is None or state.last_intervention.applied_at == 1_050.0


def test_failed_actuation_creates_no_record(make_service):
    service = make_service(actuator=CallbackActuator(lambda arm: {"success": False, "error": "no player"}))
    service.start_session("normal")
    _distract(service)

    result = service.tick(now=1_005.0)
    assert result.intervention is not None
    assert result.dispatched is False
    assert result.error == "no player"
    assert service.store.load().last_intervention is None


def test_raising_actuator_is_not_fatal(make_service):
    def explode(arm):
        raise RuntimeError("media surface gone")

    service = make_service(actuator=CallbackActuator(explode))
    service.start_session("normal")
    _distract(service)

    result = service.tick(now=1_005.0)
    assert result.dispatched is False
    assert "media surface gone" in result.error


def test_slow_actuation_times_out(make_service):
    def slow(arm):
        time.sleep(0.5)
        return ActuationResult(success=True)

    service = make_service(actuator=CallbackActuator(slow), actuation_timeout_seconds=0.05)
    service.start_session("normal")
    _distract(service)

    result = service.tick(now=1_005.0)
    assert result.error == "timeout"
    assert service.store.load().last_intervention is None


def test_unavailable_actuator_skips_intervention(make_service):
    service = make_service(actuator=CallbackActuator(lambda arm: True, is_available=lambda: False))
    service.start_session("normal")
    _distract(service)

    result = service.tick(now=1_005.0)
    assert result.ran is True
    assert result.reason == "actuator_unavailable"
    assert result.intervention is None


def test_stop_session_clears_record_and_halts_driver(make_service):
    service = make_service()
    service.start_session("normal")
    assert service.running is True
    _distract(service)
    service.tick(now=1_005.0)

    service.stop_session()
    state = service.store.load()
    assert state.session.active is False
    assert state.last_intervention is None
    assert state.signals.tab_switches == []
    assert service.thread is None
    assert service.tick(now=1_010.0).ran is False


def test_record_is_dropped_for_a_replaced_session():
    state = FocusState()
    state.session.active = True
    state.session.started_at = 2_000.0
    assert FocusService._record(state, "BOOST_ENERGY", 2_010.0, 40, started_at=1_000.0) is False
    assert state.last_intervention is None


def test_observer_failures_are_ignored(make_service):
    service = make_service()

    def broken(payload):
        raise ValueError("observer down")

    service.add_listener(broken)
    service.start_session()
    assert service.tick(now=1_005.0).ran is True


def test_attention_signal_feeds_scorer(make_service, clock):
    service = make_service()
    service.settings.features.attention_sensor = True
    service.start_session()
    service.handle_event(AttentionSignal(present=False, looking_away=False, confidence=0.1, timestamp=1_000.0))

    result = service.tick(now=1_040.0)
    kinds = [item["type"] for item in result.metrics["penalties"]]
    assert "attention_absent" in kinds


def test_session_controls(make_service):
    service = make_service()
    service.start_session("gentle")
    assert service.set_mode("strict").mode.value == "strict"
    assert service.set_phase("break").phase.value == "break"
    assert service.snapshot()["policy_state"] == "idle"

    with pytest.raises(ValueError):
        service.set_mode("turbo")
    with pytest.raises(ValueError):
        service.set_phase("nap")


def test_reset_learning_restores_priors(make_service):
    service = make_service()
    service.start_session()
    _distract(service)
    service.tick(now=1_005.0)
    service.tick(now=1_050.0)
    assert service.store.load().policy.arms["BOOST_ENERGY"].n == 2

    policy = service.reset_learning()
    assert policy.arms["BOOST_ENERGY"].n == 1
    assert service.store.load().policy.arms["NUCLEAR"].value == 0.2


def test_driver_ticks_periodically(clock):
    service = FocusService(FocusSettings(loop=LoopConfig(tick_seconds=0.02)), clock=clock)
    ticked = threading.Event()
    service.add_listener(lambda payload: ticked.set())
    try:
        service.start_session()
        assert ticked.wait(2.0)
    finally:
        service.stop()
    assert service.thread is None


def test_start_resumes_persisted_session(clock):
    store = MemoryStore()
    first = FocusService(FocusSettings(loop=LoopConfig(tick_seconds=3600.0)), store=store, clock=clock)
    first.start_session("strict")
    first.stop()

    second = FocusService(FocusSettings(loop=LoopConfig(tick_seconds=3600.0)), store=store, clock=clock)
    try:
        second.start()
        assert second.running is True
    finally:
        second.stop()


def test_timed_out_actuation_is_recorded_when_it_lands(make_service):
    release = threading.Event()

    def late(arm):
        release.wait(2.0)
        return ActuationResult(success=True)

    service = make_service(actuator=CallbackActuator(late), actuation_timeout_seconds=0.05)
    service.start_session("normal")
    _distract(service)

    first = service.tick(now=1_005.0)
    assert first.intervention == "BOOST_ENERGY"
    assert first.error == "timeout"

    busy = service.tick(now=1_010.0)
    assert busy.reason == "actuator_busy"
    assert busy.intervention is None

    release.set()
    service.pending.future.result(timeout=2.0)
    assert service.tick(now=1_015.0).reason == "awaiting_feedback"

    record = service.store.load().last_intervention
    assert record.type == "BOOST_ENERGY"
    assert record.applied_at == 1_005.0
    assert service.pending is None


def test_restart_during_actuation_leaves_one_driver(clock):
    entered = threading.Event()
    release = threading.Event()

    def slow(arm):
        entered.set()
        release.wait(5.0)
        return True

    settings = FocusSettings(loop=LoopConfig(tick_seconds=0.02, actuation_timeout_seconds=10.0))
    service = FocusService(settings, actuator=CallbackActuator(slow), clock=clock)
    try:
        service.start_session("normal")
        _distract(service)
        assert entered.wait(2.0)

        old = service.thread
        service.stop_session()
        service.start_session("normal")
        release.set()

        old.join(2.0)
        assert not old.is_alive()
        assert service.thread is not old
        assert service.thread.is_alive()
    finally:
        release.set()
        service.stop()


def test_concurrent_events_and_ticks_lose_no_updates(clock):
    entered = threading.Event()
    burst_done = threading.Event()
    applied = threading.Event()

    def gated(arm):
        entered.set()
        burst_done.wait(5.0)
        return True

    settings = FocusSettings(loop=LoopConfig(tick_seconds=0.01))
    service = FocusService(settings, actuator=CallbackActuator(gated), clock=clock)
    service.add_listener(lambda payload: applied.set() if payload["type"] == "intervention" else None)

    def burst(worker, offset):
        for i in range(50):
            ts = 1_000.0 + (offset + worker * 50 + i) / 10_000
            service.handle_event(TabChange(hostname="reddit.com", timestamp=ts, category=Category.SOCIAL_MEDIA))

    def run_burst(offset, extra=()):
        threads = [threading.Thread(target=burst, args=(n, offset)) for n in range(4)]
        threads.extend(threading.Thread(target=fn) for fn in extra)
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

    def manual_ticks():
        for _ in range(20):
            service.tick()

    try:
        service.start_session("normal")
        _distract(service)

        # Events arrive while a dispatch is in flight.
        assert entered.wait(2.0)
        run_burst(0)
        burst_done.set()
        assert applied.wait(2.0)

        # Events race the driver and explicit ticks.
        run_burst(200, extra=[manual_ticks])
    finally:
        burst_done.set()
        service.stop()

    state = service.store.load()
    expected = {1_000.0 + k / 10_000 for k in range(400)} | {1_001.0}
    assert expected <= set(state.signals.tab_switches)
    assert state.last_intervention is not None
    assert state.last_intervention.type == "BOOST_ENERGY"
