"""
Scenario executor - runs the steps of one scenario.

For each scenario the executor:

1. Creates a fresh Context (the scenario's private state)
2. Runs matching before_scenario hooks
3. Resolves and runs each step in declaration order
4. Runs after_scenario hooks and context cleanups, always

Outcome rules:
- No matching definition: UNDEFINED, remaining steps SKIPPED
- Several matching definitions: FAILED (AmbiguousMatchError), rest SKIPPED
- PendingStep raised or "pending" returned: PENDING, rest SKIPPED
- Any other exception, SystemExit and test-framework outcomes included:
  FAILED, rest SKIPPED (first failure stops the scenario). Only
  KeyboardInterrupt and task cancellation propagate
- Cancellation requested: the current step finishes, the rest are SKIPPED

Async step functions are awaited on the event loop. Plain functions run in a
worker thread via ``asyncio.to_thread`` so that a blocking step never stalls
other scenarios running concurrently.
"""

import asyncio
import inspect
import logging
import threading
import time
from enum import Enum
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from .constants import SNIPPET_ASYNC_AWAIT
from .context import Context
from .errors import AmbiguousMatchError, PendingStep, StepExecutionError, StepTimeoutError
from .model import Feature, Scenario, Status, Step
from .registry import Hook, HookKind, StepRegistry
from .results import ErrorDetail, HookResult, ScenarioResult, StepResult
from .snippets import generate_snippet

logger = logging.getLogger(__name__)

# Interrupts and task cancellation always propagate; every other
# BaseException (SystemExit, pytest outcomes) stays inside its step
PROPAGATED_EXCEPTIONS = (KeyboardInterrupt, asyncio.CancelledError)

StepListener = Callable[[str, int, StepResult], None]
HookListener = Callable[[str, HookResult], None]


class ScenarioState(str, Enum):
    """
    Lifecycle of one scenario execution.

    NOT_STARTED -> RUNNING -> one terminal state. Terminal states never go
    back to RUNNING; a rerun is a fresh execution with a new ScenarioRun.
    """

    NOT_STARTED = "not_started"
    RUNNING = "running"
    PASSED = "passed"
    FAILED = "failed"
    UNDEFINED = "undefined"
    PENDING = "pending"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self not in (ScenarioState.NOT_STARTED, ScenarioState.RUNNING)


class ScenarioRun:
    """State machine guard for a single scenario execution."""

    def __init__(self, scenario: Scenario):
        self.scenario = scenario
        self.state = ScenarioState.NOT_STARTED

    def start(self) -> None:
        if self.state != ScenarioState.NOT_STARTED:
            raise RuntimeError(f"Scenario {self.scenario.id} cannot start from state {self.state.value}")
        self.state = ScenarioState.RUNNING

    def finish(self, status: Status) -> None:
        if self.state != ScenarioState.RUNNING:
            raise RuntimeError(f"Scenario {self.scenario.id} cannot finish from state {self.state.value}")
        self.state = ScenarioState(status.value)


async def invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """
    Call a step or hook function and wait for its completion.

    Coroutine functions are awaited, plain functions run in a worker thread.
    An awaitable returned by a plain function is awaited as well.
    """
    if inspect.iscoroutinefunction(func):
        result = await func(*args, **kwargs)
    else:
        result = await asyncio.to_thread(func, *args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


async def _captured(awaitable: Awaitable[Any]) -> Tuple[Any, Optional[BaseException]]:
    # An exception such as SystemExit escaping a task is re-raised by the
    # event loop itself, so the step task hands it back as a value
    try:
        return await awaitable, None
    except PROPAGATED_EXCEPTIONS:
        raise
    except BaseException as e:
        return None, e


class ScenarioExecutor:
    """
    Executes scenarios against a (frozen) step registry.

    One executor may run many scenarios concurrently: it keeps no
    per-scenario state of its own.

    Example:
        executor = ScenarioExecutor(registry)
        result = asyncio.run(executor.execute(feature, scenario))
        print(result.status)
    """

    def __init__(
        self,
        registry: StepRegistry,
        cancel_event: Optional[threading.Event] = None,
        step_timeout: Optional[float] = None,
        dry_run: bool = False,
        snippet_interface: str = SNIPPET_ASYNC_AWAIT,
        on_step_complete: Optional[StepListener] = None,
        on_hook_complete: Optional[HookListener] = None,
    ):
        """
        Args:
            registry: Registry used to resolve steps and hooks
            cancel_event: Run-level cancellation signal, checked between steps
            step_timeout: Seconds a single step may take (None = unlimited)
            dry_run: Resolve steps without executing them or any hooks
            snippet_interface: Style of snippets generated for undefined steps
            on_step_complete: Called with (scenario_id, index, StepResult)
            on_hook_complete: Called with (scenario_id, HookResult)
        """
        self.registry = registry
        self.cancel_event = cancel_event
        self.step_timeout = step_timeout
        self.dry_run = dry_run
        self.snippet_interface = snippet_interface
        self.on_step_complete = on_step_complete
        self.on_hook_complete = on_hook_complete

    def _cancelled(self) -> bool:
        return self.cancel_event is not None and self.cancel_event.is_set()

    def _emit_step(self, scenario_id: str, index: int, result: StepResult) -> None:
        if self.on_step_complete:
            self.on_step_complete(scenario_id, index, result)

    def _emit_hook(self, scenario_id: str, result: HookResult) -> None:
        if self.on_hook_complete:
            self.on_hook_complete(scenario_id, result)

    async def run_hook(self, hook: Hook, *args: Any) -> HookResult:
        """Run one hook, capturing any exception as a failed HookResult."""
        start = time.monotonic()
        try:
            await invoke(hook.func, *args)
        except PROPAGATED_EXCEPTIONS:
            raise
        except BaseException as e:
            logger.debug("Hook %s failed: %s", hook.name, e)
            return HookResult(
                name=hook.name,
                status=Status.FAILED,
                duration=time.monotonic() - start,
                error=ErrorDetail.from_exception(e),
                location=hook.location,
            )
        return HookResult(
            name=hook.name,
            status=Status.PASSED,
            duration=time.monotonic() - start,
            location=hook.location,
        )

    async def _call_step(self, step: Step, func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        if self.step_timeout is None:
            return await invoke(func, *args, **kwargs)
        task = asyncio.ensure_future(_captured(invoke(func, *args, **kwargs)))
        done, _ = await asyncio.wait({task}, timeout=self.step_timeout)
        if not done:
            # A step running in a worker thread keeps running to completion
            task.cancel()
            raise StepTimeoutError(step.text, self.step_timeout)
        outcome, error = task.result()
        if error is not None:
            raise error
        return outcome

    async def run_step(self, context: Context, step: Step) -> StepResult:
        """Resolve and execute a single step."""
        start = time.monotonic()

        try:
            match = self.registry.resolve(step.text)
        except AmbiguousMatchError as e:
            return StepResult(step=step, status=Status.FAILED, error=ErrorDetail.from_exception(e))

        if match is None:
            return StepResult(
                step=step,
                status=Status.UNDEFINED,
                snippet=generate_snippet(step, self.snippet_interface),
            )

        location = match.definition.location
        if self.dry_run:
            return StepResult(step=step, status=Status.SKIPPED, location=location)

        context.enter_step(step)
        tags = context.tags
        status = Status.PASSED
        error: Optional[ErrorDetail] = None
        try:
            for hook in self.registry.hooks(HookKind.BEFORE_STEP, tags):
                hook_result = await self.run_hook(hook, context, step)
                if hook_result.status == Status.FAILED:
                    status, error = Status.FAILED, hook_result.error
                    break

            if status == Status.PASSED:
                try:
                    outcome = await self._call_step(
                        step,
                        match.definition.func,
                        context,
                        *match.arguments.args,
                        **match.arguments.kwargs,
                    )
                    if isinstance(outcome, str) and outcome == "pending":
                        status = Status.PENDING
                        error = ErrorDetail(type="PendingStep", message="Step returned 'pending'")
                except PendingStep as e:
                    status = Status.PENDING
                    error = ErrorDetail(type="PendingStep", message=e.reason)
                except StepTimeoutError as e:
                    status = Status.FAILED
                    error = ErrorDetail.from_exception(e)
                except PROPAGATED_EXCEPTIONS:
                    raise
                except BaseException as e:
                    status = Status.FAILED
                    error = ErrorDetail.from_exception(StepExecutionError(step.text, e))

            for hook in self.registry.hooks(HookKind.AFTER_STEP, tags):
                hook_result = await self.run_hook(hook, context, step)
                if hook_result.status == Status.FAILED and status == Status.PASSED:
                    status, error = Status.FAILED, hook_result.error
        finally:
            context.leave_step()

        return StepResult(
            step=step,
            status=status,
            duration=time.monotonic() - start,
            error=error,
            location=location,
        )

    async def _run_cleanups(self, context: Context) -> List[HookResult]:
        results: List[HookResult] = []
        for func, args in context.pop_cleanups():
            start = time.monotonic()
            name = f"cleanup:{getattr(func, '__name__', 'cleanup')}"
            try:
                await invoke(func, *args)
            except PROPAGATED_EXCEPTIONS:
                raise
            except BaseException as e:
                results.append(
                    HookResult(
                        name=name,
                        status=Status.FAILED,
                        duration=time.monotonic() - start,
                        error=ErrorDetail.from_exception(e),
                    )
                )
        return results

    async def execute(self, feature: Feature, scenario: Scenario) -> ScenarioResult:
        """
        Execute one scenario.

        Every step produces exactly one StepResult, reported through
        ``on_step_complete`` in declaration order.

        Returns:
            ScenarioResult for the scenario
        """
        run = ScenarioRun(scenario)
        run.start()
        context = Context(feature, scenario)
        start = time.monotonic()
        steps: List[StepResult] = []
        hooks: List[HookResult] = []
        halted = False

        def record_hook(result: HookResult) -> None:
            hooks.append(result)
            self._emit_hook(scenario.id, result)

        if not self.dry_run:
            for hook in self.registry.hooks(HookKind.BEFORE_SCENARIO, scenario.tags):
                hook_result = await self.run_hook(hook, context)
                record_hook(hook_result)
                if hook_result.status == Status.FAILED:
                    halted = True
                    break

        for index, step in enumerate(scenario.steps):
            if halted or self._cancelled():
                result = StepResult(step=step, status=Status.SKIPPED)
            else:
                result = await self.run_step(context, step)
                if result.status != Status.PASSED and not self.dry_run:
                    halted = True
            steps.append(result)
            self._emit_step(scenario.id, index, result)

        if not self.dry_run:
            for hook in self.registry.hooks(HookKind.AFTER_SCENARIO, scenario.tags):
                record_hook(await self.run_hook(hook, context))
            for cleanup_result in await self._run_cleanups(context):
                record_hook(cleanup_result)

        scenario_result = ScenarioResult(
            scenario=scenario,
            steps=tuple(steps),
            hooks=tuple(hooks),
            duration=time.monotonic() - start,
        )
        run.finish(scenario_result.status)
        logger.debug("Scenario %s finished: %s", scenario.id, scenario_result.status.value)
        return scenario_result
