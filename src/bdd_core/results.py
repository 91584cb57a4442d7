"""
Run results and the result aggregator.

The aggregator receives per-step, per-hook and per-scenario events while the
run is in progress, possibly out of declaration order when scenarios run
concurrently, and freezes them into an immutable ``RunResult`` tree:

    RunResult -> DocumentResult -> FeatureResult -> ScenarioResult -> StepResult

Ordering of the frozen tree always follows declaration order: scenarios are
placed by their position in the parsed documents and steps by their declared
index, regardless of the order events arrived in.

Example usage:
    aggregator = ResultAggregator(documents)
    aggregator.record_step(scenario.id, 0, StepResult(step=..., status=Status.PASSED))
    aggregator.scenario_finished(scenario.id, duration=0.12)
    result = aggregator.freeze()
    print(result.status, result.counts())
"""

import threading
import time
import traceback as traceback_module
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Collection, Dict, List, Optional, Sequence, Set, Tuple

from .errors import StepExecutionError
from .model import Document, Feature, Scenario, Status, Step, worst_status


@dataclass(frozen=True)
class ErrorDetail:
    """Captured exception: type name, message and formatted traceback."""

    type: str
    message: str
    traceback: str = ""

    @classmethod
    def from_exception(cls, exc: BaseException) -> "ErrorDetail":
        # Report what the step function raised, not the wrapper
        if isinstance(exc, StepExecutionError):
            exc = exc.original
        return cls(
            type=type(exc).__name__,
            message=str(exc),
            traceback="".join(traceback_module.format_exception(type(exc), exc, exc.__traceback__)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type, "message": self.message, "traceback": self.traceback}


@dataclass(frozen=True)
class StepResult:
    """
    Outcome of one step.

    Attributes:
        step: The executed step
        status: Step status
        duration: Execution time in seconds
        error: Error detail for failed steps
        location: Location of the matched step definition
        snippet: Suggested step definition for undefined steps
    """

    step: Step
    status: Status
    duration: float = 0.0
    error: Optional[ErrorDetail] = None
    location: Optional[str] = None
    snippet: Optional[str] = None

    @property
    def ambiguous(self) -> bool:
        return self.error is not None and self.error.type == "AmbiguousMatchError"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keyword": self.step.keyword,
            "text": self.step.text,
            "line": self.step.line,
            "status": self.status.value,
            "duration_ms": int(self.duration * 1000),
            "error": self.error.to_dict() if self.error else None,
            "location": self.location,
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class HookResult:
    """Outcome of one hook invocation."""

    name: str
    status: Status
    duration: float = 0.0
    error: Optional[ErrorDetail] = None
    location: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status.value,
            "duration_ms": int(self.duration * 1000),
            "error": self.error.to_dict() if self.error else None,
            "location": self.location,
        }


@dataclass(frozen=True)
class ScenarioResult:
    """Outcome of one scenario; status rolls up steps and hooks."""

    scenario: Scenario
    steps: Tuple[StepResult, ...] = ()
    hooks: Tuple[HookResult, ...] = ()
    duration: float = 0.0

    @property
    def status(self) -> Status:
        return worst_status([s.status for s in self.steps] + [h.status for h in self.hooks])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.scenario.id,
            "name": self.scenario.name,
            "keyword": self.scenario.keyword,
            "line": self.scenario.line,
            "tags": sorted(self.scenario.tags),
            "status": self.status.value,
            "duration_ms": int(self.duration * 1000),
            "steps": [s.to_dict() for s in self.steps],
            "hooks": [h.to_dict() for h in self.hooks],
        }


@dataclass(frozen=True)
class FeatureResult:
    feature: Feature
    scenarios: Tuple[ScenarioResult, ...] = ()

    @property
    def status(self) -> Status:
        return worst_status(s.status for s in self.scenarios)

    @property
    def duration(self) -> float:
        return sum(s.duration for s in self.scenarios)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.feature.name,
            "uri": self.feature.uri,
            "line": self.feature.line,
            "description": self.feature.description,
            "tags": sorted(self.feature.tags),
            "status": self.status.value,
            "scenarios": [s.to_dict() for s in self.scenarios],
        }


@dataclass(frozen=True)
class DocumentResult:
    uri: str
    features: Tuple[FeatureResult, ...] = ()

    @property
    def status(self) -> Status:
        return worst_status(f.status for f in self.features)


@dataclass(frozen=True)
class RunResult:
    """
    Immutable result tree of a whole run.

    Attributes:
        documents: Per-document results in input order
        hooks: before_all/after_all hook results
        duration: Wall-clock run time in seconds
        started_at: ISO 8601 start timestamp (UTC)
        finished_at: ISO 8601 end timestamp (UTC)
        cancelled: True if the run was cancelled before completing
    """

    documents: Tuple[DocumentResult, ...] = ()
    hooks: Tuple[HookResult, ...] = ()
    duration: float = 0.0
    started_at: str = ""
    finished_at: str = ""
    cancelled: bool = False

    @property
    def features(self) -> Tuple[FeatureResult, ...]:
        return tuple(f for d in self.documents for f in d.features)

    @property
    def scenarios(self) -> Tuple[ScenarioResult, ...]:
        return tuple(s for f in self.features for s in f.scenarios)

    @property
    def steps(self) -> Tuple[StepResult, ...]:
        return tuple(step for s in self.scenarios for step in s.steps)

    @property
    def status(self) -> Status:
        return worst_status([s.status for s in self.scenarios] + [h.status for h in self.hooks])

    @property
    def passed(self) -> bool:
        return not self.cancelled and self.status == Status.PASSED

    def counts(self) -> Dict[str, Dict[str, int]]:
        """Scenario and step counts by status, plus totals."""

        def tally(statuses: List[Status]) -> Dict[str, int]:
            counts = {status.value: 0 for status in Status}
            for status in statuses:
                counts[status.value] += 1
            counts["total"] = len(statuses)
            return counts

        return {
            "scenarios": tally([s.status for s in self.scenarios]),
            "steps": tally([s.status for s in self.steps]),
        }

    def problems(self) -> List[str]:
        """
        Human-readable list of everything that kept the run from passing.

        Enumerates failed and ambiguous steps, undefined steps, pending steps
        and failed hooks, in declaration order.
        """
        problems: List[str] = []
        for hook in self.hooks:
            if hook.status == Status.FAILED:
                problems.append(f"Hook {hook.name} failed: {hook.error.message if hook.error else ''}")
        for scenario in self.scenarios:
            where = f"{scenario.scenario.id} {scenario.scenario.name!r}"
            for hook in scenario.hooks:
                if hook.status == Status.FAILED:
                    message = hook.error.message if hook.error else ""
                    problems.append(f"{where}: hook {hook.name} failed: {message}")
            for step in scenario.steps:
                text = f"{step.step.keyword} {step.step.text}"
                if step.ambiguous:
                    problems.append(f"{where}: ambiguous step '{text}'")
                elif step.status == Status.FAILED:
                    message = step.error.message if step.error else ""
                    problems.append(f"{where}: failed step '{text}': {message}")
                elif step.status == Status.UNDEFINED:
                    problems.append(f"{where}: undefined step '{text}'")
                elif step.status == Status.PENDING:
                    problems.append(f"{where}: pending step '{text}'")
        if self.cancelled:
            problems.append("Run was cancelled before all scenarios completed")
        return problems

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "cancelled": self.cancelled,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": int(self.duration * 1000),
            "counts": self.counts(),
            "hooks": [h.to_dict() for h in self.hooks],
            "features": [f.to_dict() for f in self.features],
        }


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ResultAggregator:
    """
    Single writer that accumulates run events into a RunResult.

    All recording methods are serialized by an internal lock, so events may
    be delivered from worker threads as well as from the event loop. Once
    ``freeze()`` has been called the aggregator rejects further events.
    """

    def __init__(self, documents: Sequence[Document], selected: Optional[Collection[str]] = None):
        """
        Args:
            documents: Parsed documents, in run order
            selected: Scenario ids that take part in the run (default: all)
        """
        self._documents = list(documents)
        self._scenarios: Dict[str, Scenario] = {}
        for document in self._documents:
            for _, scenario in document.iter_scenarios():
                if selected is None or scenario.id in selected:
                    if scenario.id in self._scenarios:
                        raise ValueError(f"Duplicate scenario id: {scenario.id}")
                    self._scenarios[scenario.id] = scenario
        self._steps: Dict[str, Dict[int, StepResult]] = {sid: {} for sid in self._scenarios}
        self._hooks: Dict[str, List[HookResult]] = {sid: [] for sid in self._scenarios}
        self._durations: Dict[str, float] = {}
        self._started: Set[str] = set()
        self._run_hooks: List[HookResult] = []
        self._lock = threading.Lock()
        self._result: Optional[RunResult] = None
        self._clock_start = time.monotonic()
        self._started_at = _now_iso()

    @property
    def scenario_ids(self) -> Tuple[str, ...]:
        return tuple(self._scenarios)

    @property
    def frozen(self) -> bool:
        return self._result is not None

    def _check(self, scenario_id: str) -> Scenario:
        if self._result is not None:
            raise RuntimeError("Result aggregator is frozen")
        scenario = self._scenarios.get(scenario_id)
        if scenario is None:
            raise KeyError(f"Unknown scenario id: {scenario_id}")
        return scenario

    def record_step(self, scenario_id: str, index: int, result: StepResult) -> None:
        """Record the outcome of the step at ``index`` of a scenario."""
        with self._lock:
            scenario = self._check(scenario_id)
            if not 0 <= index < len(scenario.steps):
                raise IndexError(f"Step index {index} out of range for {scenario_id}")
            if index in self._steps[scenario_id]:
                raise ValueError(f"Step {index} of {scenario_id} already recorded")
            self._steps[scenario_id][index] = result

    def record_hook(self, scenario_id: str, result: HookResult) -> None:
        with self._lock:
            self._check(scenario_id)
            self._hooks[scenario_id].append(result)

    def record_run_hook(self, result: HookResult) -> None:
        with self._lock:
            if self._result is not None:
                raise RuntimeError("Result aggregator is frozen")
            self._run_hooks.append(result)

    def scenario_started(self, scenario_id: str) -> None:
        """Mark a scenario as running; a scenario starts at most once per run."""
        with self._lock:
            self._check(scenario_id)
            if scenario_id in self._started:
                raise ValueError(f"Scenario {scenario_id} already started")
            self._started.add(scenario_id)

    def scenario_finished(self, scenario_id: str, duration: float) -> None:
        with self._lock:
            self._check(scenario_id)
            self._durations[scenario_id] = duration

    def _build_scenario(self, scenario: Scenario) -> ScenarioResult:
        recorded = self._steps[scenario.id]
        steps = tuple(
            recorded.get(index) or StepResult(step=step, status=Status.SKIPPED)
            for index, step in enumerate(scenario.steps)
        )
        return ScenarioResult(
            scenario=scenario,
            steps=steps,
            hooks=tuple(self._hooks[scenario.id]),
            duration=self._durations.get(scenario.id, 0.0),
        )

    def freeze(self, cancelled: bool = False) -> RunResult:
        """
        Build the immutable RunResult.

        Steps that never reported an outcome are filled in as skipped.
        Calling freeze again returns the same RunResult.
        """
        with self._lock:
            if self._result is not None:
                return self._result
            documents: List[DocumentResult] = []
            for document in self._documents:
                features: List[FeatureResult] = []
                for feature in document.features:
                    scenarios = tuple(
                        self._build_scenario(s) for s in feature.scenarios if s.id in self._scenarios
                    )
                    if scenarios:
                        features.append(FeatureResult(feature=feature, scenarios=scenarios))
                documents.append(DocumentResult(uri=document.uri, features=tuple(features)))
            self._result = RunResult(
                documents=tuple(documents),
                hooks=tuple(self._run_hooks),
                duration=time.monotonic() - self._clock_start,
                started_at=self._started_at,
                finished_at=_now_iso(),
                cancelled=cancelled,
            )
            return self._result
