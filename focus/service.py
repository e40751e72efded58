from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Union

from . import scoring
from .actuator import ActuationResult, Actuator, LoggingActuator
from .config import FocusSettings
from .feedback import EvaluationResult, evaluate
from .policy import (
    InterventionCheck,
    describe,
    escalation_level,
    policy_state,
    record_dispatch,
    select_intervention,
    should_intervene,
)
from .signals import ActivityReport, AttentionSignal, SignalStore, TabChange, categorize
from .state import FocusState, HistoryEntry, Metrics, Phase, Policy, Session, parse_mode
from .store import MemoryStore
from .trend import append_history, trend_delta, update_ema

logger = logging.getLogger(__name__)

SignalEvent = Union[TabChange, ActivityReport, AttentionSignal]


class PendingActuation(NamedTuple):
    """An actuation that outlived its timeout and is still on the worker."""

    future: Future
    arm: str
    applied_at: float
    pre_score: int
    started_at: Optional[float]


@dataclass
class TickResult:
    ran: bool
    reason: str
    metrics: Dict[str, Any] = field(default_factory=dict)
    evaluation: Optional[EvaluationResult] = None
    intervention: Optional[str] = None
    dispatched: bool = False
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ran": self.ran,
            "reason": self.reason,
            "metrics": self.metrics,
            "evaluation": self.evaluation.to_dict() if self.evaluation else None,
            "intervention": self.intervention,
            "dispatched": self.dispatched,
            "error": self.error,
        }


class FocusService:
    def __init__(
        self,
        settings: FocusSettings,
        store=None,
        db=None,
        actuator: Optional[Actuator] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.settings = settings
        self.store = store or MemoryStore()
        self.db = db
        self.actuator = actuator or LoggingActuator()
        self.loop = loop
        self.clock = clock

        self.running = False
        self.thread: Optional[threading.Thread] = None
        # Each driver thread owns its halt event; a restart never revives an old one.
        self.halt = threading.Event()
        self.driver_lock = threading.Lock()
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="actuator")
        self.pending: Optional[PendingActuation] = None

        self.listeners: List[asyncio.Queue] = []
        self.callbacks: List[Callable[[Dict[str, Any]], None]] = []

        # Guards every load-mutate-save of the shared state.
        self.lock = threading.RLock()
        self.tick_lock = threading.Lock()

    # lifecycle

    def start(self) -> None:
        """Resume the tick driver if a session survived a restart."""
        state = self.store.load()
        if state.session.active:
            logger.info("Resuming active %s session", state.session.mode.value)
            self._start_driver()

    def stop(self) -> None:
        self._halt_driver()
        self.executor.shutdown(wait=False)

    def _start_driver(self) -> None:
        with self.driver_lock:
            if self.thread and self.thread.is_alive() and not self.halt.is_set():
                return
            self.halt = threading.Event()
            self.running = True
            self.thread = threading.Thread(target=self._run, args=(self.halt,), name="focus-tick", daemon=True)
            self.thread.start()

    def _halt_driver(self) -> None:
        with self.driver_lock:
            self.running = False
            self.halt.set()
            thread, self.thread = self.thread, None
        if thread and thread is not threading.current_thread():
            thread.join(timeout=2)
            if thread.is_alive():
                logger.debug("Tick driver still finishing a tick; it exits afterwards")

    def _run(self, halt: threading.Event) -> None:
        while not halt.wait(self.settings.loop.tick_seconds):
            try:
                self.tick()
            except Exception:
                logger.exception("Tick failed")

    # observers

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self.listeners.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self.listeners:
            self.listeners.remove(queue)

    def add_listener(self, callback: Callable[[Dict[str, Any]], None]) -> None:
        self.callbacks.append(callback)

    def _broadcast(self, payload: Dict[str, Any]) -> None:
        for callback in list(self.callbacks):
            try:
                callback(payload)
            except Exception:
                logger.debug("Observer callback failed", exc_info=True)

        if self.loop is None or not self.listeners:
            return
        text = json.dumps(payload)
        for queue in list(self.listeners):
            try:
                self.loop.call_soon_threadsafe(self._push_queue, queue, text)
            except RuntimeError:
                logger.debug("Event loop closed, dropping update")
                return

    @staticmethod
    def _push_queue(queue: asyncio.Queue, payload: str) -> None:
        try:
            if queue.qsize() > 2:
                queue.get_nowait()
            queue.put_nowait(payload)
        except (asyncio.QueueFull, asyncio.QueueEmpty):
            return

    # state access

    def _mutate(self, fn: Callable[[FocusState], Any]) -> Any:
        with self.lock:
            state = self.store.load()
            result = fn(state)
            self.store.save(state)
            return result

    def _log_event(self, event_type: str, ts: float, details: Optional[Dict[str, Any]] = None) -> None:
        if self.db:
            self.db.log_event(event_type, ts, json.dumps(details) if details else None)

    def snapshot(self) -> Dict[str, Any]:
        now = self.clock()
        with self.lock:
            state = self.store.load()
        payload = state.to_dict()
        payload["policy_state"] = policy_state(state, now).value
        payload["escalation_level"] = escalation_level(state, now)
        payload["actuator_available"] = self._actuator_available()
        return payload

    def update_settings(self, settings: FocusSettings) -> None:
        self.settings = settings

    # session control

    def start_session(self, mode: Optional[str] = None) -> Session:
        chosen = parse_mode(mode or self.settings.default_mode)
        now = self.clock()

        def apply(state: FocusState) -> Session:
            state.session = Session(active=True, mode=chosen, phase=Phase.STUDY, started_at=now)
            state.signals = SignalStore(last_activity={"pointer": now})
            state.metrics = Metrics()
            state.last_intervention = None
            state.last_dispatch = None
            state.history = []
            state.recent_dispatches = []
            return state.session

        session = self._mutate(apply)
        self._start_driver()
        self._log_event("SESSION_START", now, {"mode": chosen.value})
        logger.info("Session started: %s", chosen.value)
        return session

    def stop_session(self) -> Session:
        now = self.clock()

        def apply(state: FocusState) -> Session:
            state.session = Session(active=False, mode=state.session.mode)
            state.signals = SignalStore()
            state.last_intervention = None
            return state.session

        session = self._mutate(apply)
        self._halt_driver()
        self._log_event("SESSION_STOP", now)
        logger.info("Session stopped")
        return session

    def set_mode(self, mode: str) -> Session:
        chosen = parse_mode(mode)

        def apply(state: FocusState) -> Session:
            state.session.mode = chosen
            return state.session

        session = self._mutate(apply)
        self._log_event("MODE_CHANGE", self.clock(), {"mode": chosen.value})
        logger.info("Mode changed: %s", chosen.value)
        return session

    def set_phase(self, phase: str) -> Session:
        try:
            chosen = Phase(phase)
        except ValueError:
            raise ValueError(f"unknown phase: {phase!r}") from None

        def apply(state: FocusState) -> Session:
            state.session.phase = chosen
            return state.session

        return self._mutate(apply)

    def reset_learning(self) -> Policy:
        def apply(state: FocusState) -> Policy:
            state.policy = Policy.with_priors()
            return state.policy

        policy = self._mutate(apply)
        self._log_event("LEARNING_RESET", self.clock())
        return policy

    # signal events

    def handle_event(self, event: SignalEvent) -> bool:
        """Apply an out-of-band signal event; never advances the policy."""
        sites = self.settings.sites

        def apply(state: FocusState) -> bool:
            if not state.session.active:
                return False
            signals = state.signals
            if isinstance(event, TabChange):
                category = event.category or categorize(event.hostname, sites.productive, sites.blocked)
                signals.record_tab_switch(event.timestamp)
                signals.record_site_enter(event.hostname, category, event.timestamp)
                signals.record_activity("pointer", event.timestamp)
            elif isinstance(event, ActivityReport):
                if event.hostname and event.hostname != signals.current_site:
                    category = event.category or categorize(event.hostname, sites.productive, sites.blocked)
                    signals.record_site_enter(event.hostname, category, event.timestamp)
                signals.record_activity_report(event)
            elif isinstance(event, AttentionSignal):
                signals.record_attention_signal(
                    event.present,
                    event.looking_away,
                    event.confidence,
                    event.timestamp,
                    absent_seconds=event.absent_seconds,
                    looking_away_seconds=event.looking_away_seconds,
                )
            else:
                raise TypeError(f"unsupported signal event: {type(event).__name__}")
            signals.prune(event.timestamp)
            return True

        return self._mutate(apply)

    # control loop

    def _actuator_available(self) -> bool:
        try:
            return self.actuator.available()
        except Exception as exc:
            logger.warning("Actuator availability check failed: %s", exc)
            return False

    def _dispatch(self, arm: str, now: float, pre_score: int, started_at: Optional[float]) -> ActuationResult:
        future = None
        try:
            future = self.executor.submit(self.actuator.apply, arm)
            return future.result(timeout=self.settings.loop.actuation_timeout_seconds)
        except FuturesTimeout:
            self.pending = PendingActuation(future, arm, now, pre_score, started_at)
            return ActuationResult(success=False, error="timeout")
        except Exception as exc:
            return ActuationResult(success=False, error=str(exc))

    def _settle_pending(self) -> bool:
        """
        Resolve an actuation that timed out on an earlier tick.

        A late success is recorded against its original dispatch time, so the
        feedback window still measures from when the arm was applied. Returns
        True while the worker is still busy with it.
        """
        pending = self.pending
        if pending is None:
            return False
        if not pending.future.done():
            return True
        self.pending = None

        try:
            outcome = pending.future.result()
        except Exception as exc:
            logger.warning("Late intervention %s failed: %s", pending.arm, exc)
            return False
        if not outcome.success:
            logger.warning("Late intervention %s failed: %s", pending.arm, outcome.error)
            return False

        recorded = self._mutate(
            lambda current: self._record(
                current, pending.arm, pending.applied_at, pending.pre_score, pending.started_at
            )
        )
        if recorded:
            logger.info("Late intervention %s recorded", pending.arm)
            self._log_event(
                "INTERVENTION_APPLIED",
                pending.applied_at,
                {"intervention": pending.arm, "pre_score": pending.pre_score, "late": True},
            )
        return False

    def tick(self, now: Optional[float] = None) -> TickResult:
        with self.tick_lock:
            return self._tick(self.clock() if now is None else now)

    def _tick(self, now: float) -> TickResult:
        loop_cfg = self.settings.loop
        features = self.settings.features
        available = self._actuator_available()
        busy = self._settle_pending()

        with self.lock:
            state = self.store.load()
            if not state.session.active:
                return TickResult(ran=False, reason="inactive")

            signals = state.signals
            signals.prune(now)
            result = scoring.score(signals, state.session.mode, now, attention_enabled=features.attention_sensor)
            focus_trend = update_ema(state.metrics.focus_trend, result.score)
            append_history(state.history, HistoryEntry(timestamp=now, score=result.score), loop_cfg.history_max_entries)
            state.metrics = Metrics(
                focus_score=result.score,
                focus_trend=focus_trend,
                trend_delta=trend_delta(state.history, now),
                penalties=result.penalties,
                bonuses=result.bonuses,
            )

            evaluation = evaluate(state, result.score, now, loop_cfg.evaluation_delay_seconds)

            if state.last_intervention is not None:
                check = InterventionCheck(False, "awaiting_feedback")
            elif busy:
                check = InterventionCheck(False, "actuator_busy")
            elif not available:
                check = InterventionCheck(False, "actuator_unavailable")
            else:
                check = should_intervene(state, now)

            arm = None
            if check.should:
                arm = select_intervention(state, signals.doomscrolling, features, now)

            signals.reset_counters()
            started_at = state.session.started_at
            metrics = state.metrics
            self.store.save(state)

        if self.db:
            self.db.log_metrics(now, metrics)
        if evaluation:
            self._log_event("INTERVENTION_EVALUATED", now, evaluation.to_dict())

        tick = TickResult(ran=True, reason=check.reason, metrics=metrics.to_dict(), evaluation=evaluation)
        if arm:
            tick.intervention = arm
            logger.info("Intervening: %s (reason: %s)", arm, check.reason)
            outcome = self._dispatch(arm, now, result.score, started_at)
            if outcome.success:
                tick.dispatched = self._mutate(
                    lambda current: self._record(current, arm, now, result.score, started_at)
                )
            else:
                tick.error = outcome.error or "actuation failed"
                logger.warning("Intervention %s failed: %s", arm, tick.error)
                self._log_event("INTERVENTION_FAILED", now, {"intervention": arm, "error": tick.error})

            if tick.dispatched:
                self._log_event("INTERVENTION_APPLIED", now, {"intervention": arm, "pre_score": result.score})
                self._broadcast(
                    {
                        "type": "intervention",
                        "intervention": arm,
                        "description": describe(arm),
                        "focus_score": result.score,
                    }
                )

        self._broadcast({"type": "metrics", "timestamp": now, **tick.metrics})
        return tick

    @staticmethod
    def _record(state: FocusState, arm: str, now: float, pre_score: int, started_at: Optional[float]) -> bool:
        # The session may have been stopped or restarted while the actuator ran.
        session = state.session
        if not session.active or session.started_at != started_at or state.last_intervention is not None:
            return False
        record_dispatch(state, arm, now, pre_score)
        return True
