"""Run orchestration: parse -> detect -> generate as an explicit state machine.

This module is app-agnostic. The parser and generator are collaborators passed
in by the consuming application; analyzers come from an `AnalyzerRegistry`.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Protocol

from pluginkit.analyzer import AnalyzerResult, DetectionReport, coerce_analysis_output
from pluginkit.circuit_breaker import BreakerState, CircuitBreaker, CircuitBreakerBoard
from pluginkit.engine.events import EngineEvent, EventHistory, EventOutcome, utc_now_iso8601
from pluginkit.engine.recorder import DefaultStageRecorder, StageRecorder, validate_recorder
from pluginkit.errors import (
    CancelledError,
    OrchestrationError,
    StageExecutionError,
    StageTimeoutError,
)
from pluginkit.registry import AnalyzerRegistry
from pluginkit.result import Err, Ok, Result

logger = logging.getLogger(__name__)

STAGE_PARSING = "parsing"
STAGE_DETECTING = "detecting"
STAGE_GENERATING = "generating"
STAGES: tuple[str, ...] = (STAGE_PARSING, STAGE_DETECTING, STAGE_GENERATING)


class RunState(str, Enum):
    IDLE = "idle"
    PARSING = "parsing"
    DETECTING = "detecting"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.COMPLETED, RunState.FAILED, RunState.CANCELLED)


_TERMINAL_EXITS = frozenset({RunState.FAILED, RunState.CANCELLED})
_ALLOWED_TRANSITIONS: Mapping[RunState, frozenset[RunState]] = {
    RunState.IDLE: frozenset({RunState.PARSING}) | _TERMINAL_EXITS,
    RunState.PARSING: frozenset({RunState.DETECTING}) | _TERMINAL_EXITS,
    RunState.DETECTING: frozenset({RunState.GENERATING}) | _TERMINAL_EXITS,
    RunState.GENERATING: frozenset({RunState.COMPLETED}) | _TERMINAL_EXITS,
    RunState.COMPLETED: frozenset(),
    RunState.FAILED: frozenset(),
    RunState.CANCELLED: frozenset(),
}
_STAGE_STATES: Mapping[str, RunState] = {
    STAGE_PARSING: RunState.PARSING,
    STAGE_DETECTING: RunState.DETECTING,
    STAGE_GENERATING: RunState.GENERATING,
}


class CancellationToken:
    """Cooperative cancellation flag, observed at stage boundaries."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()


class _RunScope:
    """Closed when its run finishes.

    Stage work abandoned by a timeout may still be running on a worker thread;
    it must hold `lock` and see `closed` unset before touching breakers or the
    event history.
    """

    def __init__(self, run_id: str):
        self.run_id = run_id
        self.lock = threading.Lock()
        self.closed = False

    def close(self) -> None:
        with self.lock:
            self.closed = True


@dataclass(frozen=True)
class StageTimeouts:
    """Per-stage timeouts in seconds; `None` disables the limit."""

    parsing: float | None = 30.0
    detecting: float | None = 120.0
    generating: float | None = 30.0

    def for_stage(self, stage: str) -> float | None:
        return getattr(self, stage)


@dataclass(frozen=True)
class EngineOptions:
    failure_threshold: int = 5
    cooldown_seconds: float = 60.0
    max_workers: int = 4
    history_limit: int = 1000
    history_trim_to: int = 500
    stage_timeouts: StageTimeouts = field(default_factory=StageTimeouts)

    def __post_init__(self) -> None:
        if self.max_workers < 1:
            raise ValueError(f"max_workers must be >= 1 (got {self.max_workers})")


class DocumentParser(Protocol):
    def parse(self, content: str) -> Any:
        ...


class WorkflowBuilder(Protocol):
    def generate(self, document: Any, detections: DetectionReport, options: Mapping[str, Any]) -> Any:
        ...


@dataclass(frozen=True)
class QueueStatus:
    pending: int
    active: bool
    completed: int = 0
    failed: int = 0
    cancelled: int = 0


@dataclass(frozen=True)
class RunReport:
    run_id: str
    state: RunState
    started_at: str
    finished_at: str
    stage_durations: Mapping[str, float]
    detections: DetectionReport | None = None
    workflow: Any = None
    error: OrchestrationError | None = None


class OrchestrationEngine:
    def __init__(
        self,
        registry: AnalyzerRegistry,
        parser: DocumentParser,
        generator: WorkflowBuilder,
        *,
        options: EngineOptions | None = None,
        recorder: StageRecorder | None = None,
        clock: Callable[[], float] = time.monotonic,
        log: logging.Logger | None = None,
    ):
        for label, collaborator, method in (("parser", parser, "parse"), ("generator", generator, "generate")):
            if not callable(getattr(collaborator, method, None)):
                raise TypeError(f"Engine {label} must provide a callable {method}()")

        self._registry = registry
        self._parser = parser
        self._generator = generator
        self._options = options or EngineOptions()
        self._logger = log or logger
        self._recorder = recorder or DefaultStageRecorder(self._logger)
        validate_recorder(self._recorder)

        self._breakers = CircuitBreakerBoard(
            failure_threshold=self._options.failure_threshold,
            cooldown_seconds=self._options.cooldown_seconds,
            clock=clock,
            log=self._logger,
        )
        self._history = EventHistory(
            limit=self._options.history_limit, trim_to=self._options.history_trim_to
        )
        self._pool = ThreadPoolExecutor(
            max_workers=self._options.max_workers, thread_name_prefix="pluginkit-analyzer"
        )

        self._queue = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0
        self._active = False
        self._completed = 0
        self._failed = 0
        self._cancelled = 0
        self._closed = False

        self._state = RunState.IDLE
        self._last_report: RunReport | None = None
        self._listeners: list[Callable[[EngineEvent], None]] = []
        self._listeners_lock = threading.Lock()

    @property
    def options(self) -> EngineOptions:
        return self._options

    @property
    def state(self) -> RunState:
        return self._state

    def run(
        self,
        content: str,
        options: Mapping[str, Any] | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Result[Any, OrchestrationError]:
        """Execute one pipeline run and return `Ok(workflow)` or `Err(OrchestrationError)`.

        Concurrent callers are served FIFO; a run never overlaps another run on
        the same engine. Stage faults never raise out of this method.
        """

        if not isinstance(content, str):
            raise TypeError(f"content must be a string (type={type(content).__name__})")
        if options is not None and not isinstance(options, Mapping):
            raise TypeError(f"options must be a mapping (type={type(options).__name__})")

        token = cancel_token or CancellationToken()
        run_options = MappingProxyType(dict(options or {}))
        scope = _RunScope(uuid.uuid4().hex[:12])
        self._acquire_turn()
        try:
            return self._execute(scope, content, run_options, token)
        finally:
            scope.close()
            self._release_turn()

    def get_event_history(self) -> tuple[EngineEvent, ...]:
        return self._history.snapshot()

    def get_circuit_breaker_status(self) -> Mapping[str, BreakerState]:
        return self._breakers.snapshot()

    def get_queue_status(self) -> QueueStatus:
        with self._queue:
            waiting = self._next_ticket - self._now_serving - (1 if self._active else 0)
            return QueueStatus(
                pending=max(0, waiting),
                active=self._active,
                completed=self._completed,
                failed=self._failed,
                cancelled=self._cancelled,
            )

    def get_last_report(self) -> RunReport:
        report = self._last_report
        if report is None:
            raise RuntimeError("No run has finished yet; get_last_report() requires a prior run()")
        return report

    def reset_circuit_breaker(self, analyzer: str) -> None:
        self._breakers.breaker(analyzer).reset()

    def add_listener(self, listener: Callable[[EngineEvent], None]) -> None:
        if not callable(listener):
            raise TypeError("Engine listener must be callable")
        with self._listeners_lock:
            self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[EngineEvent], None]) -> bool:
        with self._listeners_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)
                return True
        return False

    def shutdown(self, *, wait: bool = True) -> None:
        with self._queue:
            self._closed = True
            self._queue.notify_all()
        self._pool.shutdown(wait=wait)

    def __enter__(self) -> "OrchestrationEngine":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.shutdown()

    def _acquire_turn(self) -> None:
        with self._queue:
            if self._closed:
                raise RuntimeError("OrchestrationEngine has been shut down")
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._queue.wait()
            self._active = True

    def _release_turn(self) -> None:
        with self._queue:
            self._active = False
            self._now_serving += 1
            self._queue.notify_all()

    def _execute(
        self,
        scope: _RunScope,
        content: str,
        options: Mapping[str, Any],
        token: CancellationToken,
    ) -> Result[Any, OrchestrationError]:
        run_id = scope.run_id
        self._state = RunState.IDLE
        started_at = utc_now_iso8601()
        durations: dict[str, float] = {}
        outputs: dict[str, Any] = {}

        stage_fns: dict[str, Callable[[], Any]] = {
            STAGE_PARSING: lambda: self._parser.parse(content),
            STAGE_DETECTING: lambda: self._detect(scope, outputs[STAGE_PARSING]),
            STAGE_GENERATING: lambda: self._generate(
                outputs[STAGE_PARSING], outputs[STAGE_DETECTING], options
            ),
        }

        for stage in STAGES:
            if token.is_cancelled:
                error = CancelledError(
                    f"Run cancelled before stage {stage}", stage=stage, run_id=run_id
                )
                self._transition(RunState.CANCELLED)
                self._emit(run_id, stage, "cancelled", error=error)
                self._logger.info("Run %s cancelled before %s", run_id, stage)
                return self._finish(run_id, started_at, durations, outputs, error=error)

            self._transition(_STAGE_STATES[stage])
            self._emit(run_id, stage, "started")
            self._notify_recorder("on_stage_start", run_id, stage)
            start = time.perf_counter()
            outcome = self._run_stage(run_id, stage, stage_fns[stage])
            durations[stage] = time.perf_counter() - start

            if not outcome.ok:
                error = outcome.unwrap_error()
                self._transition(RunState.FAILED)
                self._notify_recorder("on_stage_error", run_id, stage, error)
                self._emit(
                    run_id,
                    stage,
                    "timeout" if isinstance(error, StageTimeoutError) else "failed",
                    error=error,
                )
                return self._finish(run_id, started_at, durations, outputs, error=error)

            outputs[stage] = outcome.unwrap()
            metrics: dict[str, Any] = {}
            if stage == STAGE_DETECTING:
                report: DetectionReport = outputs[stage]
                metrics = {
                    "succeeded": len(report.succeeded()),
                    "failed": len(report.failed()),
                    "skipped": len(report.skipped()),
                }
            self._notify_recorder("on_stage_end", run_id, stage, duration_seconds=durations[stage], **metrics)
            self._emit(run_id, stage, "completed", detail=metrics)

        self._transition(RunState.COMPLETED)
        return self._finish(run_id, started_at, durations, outputs, error=None)

    def _run_stage(self, run_id: str, stage: str, fn: Callable[[], Any]) -> Result[Any, OrchestrationError]:
        timeout = self._options.stage_timeouts.for_stage(stage)
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"pluginkit-{stage}")
        try:
            future = executor.submit(fn)
            done, _ = wait([future], timeout=timeout, return_when=FIRST_EXCEPTION)
            if not done:
                future.cancel()
                return Err(
                    StageTimeoutError(
                        f"Stage {stage} timed out after {timeout:.1f}s",
                        stage=stage,
                        timeout=float(timeout or 0.0),
                        run_id=run_id,
                    )
                )
            exc = future.exception()
            if exc is not None:
                error = StageExecutionError(
                    f"Stage {stage} failed: {type(exc).__name__}: {exc}", stage=stage, run_id=run_id
                )
                error.__cause__ = exc
                return Err(error)
            return Ok(future.result())
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

    def _detect(self, scope: _RunScope, document: Any) -> DetectionReport:
        # Snapshot under the registry lock so a concurrent mutation is never half-observed.
        with self._registry.mutation():
            entries = self._registry.snapshot()

        results: dict[str, AnalyzerResult] = {}
        dispatched = {}
        for name, analyzer in entries:
            breaker = self._breakers.breaker(name)
            if not breaker.allow_call():
                results[name] = AnalyzerResult(
                    analyzer=name, status="skipped", error="circuit breaker open"
                )
                continue
            future = self._pool.submit(self._call_analyzer, scope, name, analyzer, document, breaker)
            dispatched[future] = name

        wait(list(dispatched))
        for future, name in dispatched.items():
            results[name] = future.result()

        report = DetectionReport(tuple(results[name] for name, _ in entries))
        with scope.lock:
            if scope.closed:
                self._logger.warning("Run %s already finished; dropping its late detection events", scope.run_id)
                return report
            for result in report.skipped():
                self._emit(scope.run_id, STAGE_DETECTING, "analyzer_skipped", detail={"analyzer": result.analyzer})
            for result in report.failed():
                self._emit(
                    scope.run_id,
                    STAGE_DETECTING,
                    "analyzer_failed",
                    detail={"analyzer": result.analyzer, "error": result.error},
                )
        return report

    def _call_analyzer(
        self, scope: _RunScope, name: str, analyzer: Any, document: Any, breaker: CircuitBreaker
    ) -> AnalyzerResult:
        start = time.perf_counter()
        failure: Exception | None = None
        try:
            output = analyzer.analyze(document)
            result = coerce_analysis_output(name, output, duration_seconds=time.perf_counter() - start)
        except Exception as exc:
            failure = exc
            result = AnalyzerResult(
                analyzer=name,
                status="failed",
                error=f"{type(exc).__name__}: {exc}",
                duration_seconds=time.perf_counter() - start,
            )

        with scope.lock:
            if scope.closed:
                breaker.release_probe()
                self._logger.warning(
                    "Analyzer %s returned after run %s finished; outcome not recorded", name, scope.run_id
                )
                return result
            if failure is not None:
                breaker.record_failure(failure)
                self._logger.warning("Analyzer %s failed: %s", name, result.error)
            else:
                breaker.record_success()
        return result

    def _notify_recorder(self, hook: str, *args: Any, **kwargs: Any) -> None:
        try:
            getattr(self._recorder, hook)(*args, **kwargs)
        except Exception:
            self._logger.exception("Stage recorder %s failed", hook)

    def _generate(self, document: Any, detections: DetectionReport, options: Mapping[str, Any]) -> Any:
        workflow = self._generator.generate(document, detections, options)
        if workflow is None:
            raise ValueError("Workflow generator produced no workflow")
        return workflow

    def _transition(self, new_state: RunState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal engine transition: {self._state.value} -> {new_state.value}")
        self._logger.debug("Engine state %s -> %s", self._state.value, new_state.value)
        self._state = new_state

    def _finish(
        self,
        run_id: str,
        started_at: str,
        durations: dict[str, float],
        outputs: dict[str, Any],
        *,
        error: OrchestrationError | None,
    ) -> Result[Any, OrchestrationError]:
        state = self._state
        workflow = outputs.get(STAGE_GENERATING) if state == RunState.COMPLETED else None
        self._last_report = RunReport(
            run_id=run_id,
            state=state,
            started_at=started_at,
            finished_at=utc_now_iso8601(),
            stage_durations=MappingProxyType(dict(durations)),
            detections=outputs.get(STAGE_DETECTING),
            workflow=workflow,
            error=error,
        )
        with self._queue:
            if state == RunState.COMPLETED:
                self._completed += 1
            elif state == RunState.CANCELLED:
                self._cancelled += 1
            else:
                self._failed += 1

        if error is not None:
            return Err(error)
        self._logger.info("Run %s completed", run_id)
        return Ok(workflow)

    def _emit(
        self,
        run_id: str,
        stage: str,
        outcome: EventOutcome,
        *,
        error: OrchestrationError | None = None,
        detail: Mapping[str, Any] | None = None,
    ) -> None:
        event = EngineEvent(
            run_id=run_id,
            stage=stage,
            outcome=outcome,
            error=error.to_dict() if error is not None else None,
            detail=detail or {},
        )
        self._history.append(event)
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                self._logger.exception("Engine event listener failed (stage=%s, outcome=%s)", stage, outcome)
