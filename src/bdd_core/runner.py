"""
BDD runner - orchestrates a whole run.

    parse -> plan (tag filter) -> execute scenarios -> aggregate -> publish

The runner freezes the step registry, runs before_all hooks, schedules the
selected scenarios (one at a time, or up to ``concurrency`` at a time on one
event loop), runs after_all hooks, freezes the aggregated result and hands
it to every attached formatter.

Example usage:
    from bdd_core import StepRegistry, run_suite

    registry = StepRegistry()

    @registry.given('I am on the "{word}" page')
    def on_page(context, page):
        context.page = page

    outcome = run_suite(
        {"features/login.feature": feature_text},
        registry,
        config={"format": ["progress-bar", "html:cucumber-report.html"]},
    )
    sys.exit(outcome.exit_code)
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, TextIO, Tuple, Union

from .config import RunConfig, load_config
from .constants import EXIT_CONFIG_ERROR, EXIT_EXECUTION_FAILED, EXIT_PARSE_ERROR, EXIT_SUCCESS
from .errors import ConfigError, FormatterError, ParseError
from .events import RunStarted, ScenarioFinished, ScenarioStarted, StepFinished
from .executor import ScenarioExecutor
from .model import Document, Feature, Scenario, Status
from .parser import parse
from .registry import HookKind, StepRegistry
from .reporting import ReporterFanout, build_formatter
from .results import HookResult, ResultAggregator, RunResult, StepResult

logger = logging.getLogger(__name__)

Sources = Union[Mapping[str, str], Iterable[Union[Document, Tuple[str, str]]]]
PlannedScenario = Tuple[Feature, Scenario]


def exit_code_for(result: RunResult, dry_run: bool = False) -> int:
    """
    0 if every selected scenario passed, 1 otherwise (including cancellation).

    A dry run skips every matched step, so it only fails on undefined or
    ambiguous steps.
    """
    if dry_run and not result.cancelled:
        return EXIT_EXECUTION_FAILED if result.status in (Status.FAILED, Status.UNDEFINED) else EXIT_SUCCESS
    return EXIT_SUCCESS if result.passed else EXIT_EXECUTION_FAILED


@dataclass
class SuiteOutcome:
    """
    Outcome of run_suite.

    Attributes:
        exit_code: Process exit code (see constants)
        result: Frozen run result (None if the run never started)
        problems: Human-readable reasons the suite did not pass
        formatter_errors: Formatters that failed; they never affect exit_code
    """

    exit_code: int
    result: Optional[RunResult] = None
    problems: List[str] = field(default_factory=list)
    formatter_errors: List[FormatterError] = field(default_factory=list)

    @property
    def passed(self) -> bool:
        return self.exit_code == EXIT_SUCCESS


class BddRunner:
    """
    Runs parsed feature documents against a step registry.

    A runner executes a single run. ``cancel()`` may be called from any
    thread: scenarios not yet started are skipped and running scenarios stop
    after their current step.
    """

    def __init__(
        self,
        registry: StepRegistry,
        config: Union[RunConfig, Mapping[str, Any], None] = None,
        formatters: Optional[Sequence[Any]] = None,
        stream: Optional[TextIO] = None,
    ):
        """
        Args:
            registry: Registry holding every step definition and hook
            config: RunConfig or configuration mapping (defaults apply if None)
            formatters: Formatter objects to attach instead of the configured ones
            stream: Stream for configured formatters without a destination

        Raises:
            ConfigError: If the configuration is invalid
        """
        self.registry = registry
        self.config = load_config(config)
        self.fanout = ReporterFanout()
        if formatters is None:
            for spec in self.config.format:
                self.fanout.attach(build_formatter(spec, self.config.format_options, stream), str(spec))
        else:
            for formatter in formatters:
                self.fanout.attach(formatter)
        self.formatter_errors: List[FormatterError] = []
        self._cancel = threading.Event()
        self._started = False

    # -------------------------------------------------------------------------
    # Preparation
    # -------------------------------------------------------------------------

    @staticmethod
    def parse(sources: Sources) -> List[Document]:
        """
        Parse feature sources into documents.

        Args:
            sources: Mapping of uri -> text, or an iterable of (uri, text)
                pairs and already parsed Documents

        Raises:
            ParseError: For the first malformed document, or a repeated uri
        """
        items = sources.items() if isinstance(sources, Mapping) else sources
        documents: List[Document] = []
        seen = set()
        for item in items:
            document = item if isinstance(item, Document) else parse(item[1], uri=item[0])
            if document.uri in seen:
                raise ParseError("Document uri appears more than once", line=1, uri=document.uri)
            seen.add(document.uri)
            documents.append(document)
        return documents

    def plan(self, documents: Sequence[Document]) -> List[PlannedScenario]:
        """Scenarios selected for execution, in declaration order."""
        expression = self.config.tag_expression
        return [
            (feature, scenario)
            for document in documents
            for feature, scenario in document.iter_scenarios()
            if expression.evaluate(scenario.tags)
        ]

    def plan_summary(self, documents: Sequence[Document]) -> Dict[str, Any]:
        """Execution plan as a dictionary, without running anything."""
        planned = self.plan(documents)
        return {
            "version": "1.0",
            "tags": self.config.tags,
            "concurrency": self.config.concurrency,
            "scenarios": [
                {
                    "id": scenario.id,
                    "feature": feature.name,
                    "name": scenario.name,
                    "tags": sorted(scenario.tags),
                    "steps": len(scenario.steps),
                }
                for feature, scenario in planned
            ],
            "summary": {
                "total": len(planned),
                "steps": sum(len(scenario.steps) for _, scenario in planned),
            },
        }

    # -------------------------------------------------------------------------
    # Execution
    # -------------------------------------------------------------------------

    def cancel(self) -> None:
        """Request cancellation of the run; safe to call from any thread."""
        if not self._cancel.is_set():
            logger.info("Run cancellation requested")
        self._cancel.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    async def _run_hooks(self, executor: ScenarioExecutor, kind: HookKind) -> List[HookResult]:
        results = []
        for hook in self.registry.hooks(kind):
            results.append(await executor.run_hook(hook))
        return results

    async def run_async(self, documents: Sequence[Document]) -> RunResult:
        """
        Execute the selected scenarios and publish the result.

        Returns:
            The frozen RunResult (also delivered to every formatter)
        """
        if self._started:
            raise RuntimeError("A BddRunner executes a single run")
        self._started = True

        config = self.config
        self.registry.freeze()
        planned = self.plan(documents)
        aggregator = ResultAggregator(documents, selected={scenario.id for _, scenario in planned})

        def step_complete(scenario_id: str, index: int, result: StepResult) -> None:
            aggregator.record_step(scenario_id, index, result)
            self.fanout.emit(StepFinished(scenario_id=scenario_id, index=index, result=result))

        executor = ScenarioExecutor(
            self.registry,
            cancel_event=self._cancel,
            step_timeout=config.step_timeout,
            dry_run=config.dry_run,
            snippet_interface=config.snippet_interface,
            on_step_complete=step_complete,
            on_hook_complete=aggregator.record_hook,
        )

        logger.info(
            "Running %d scenario(s) from %d document(s) (concurrency=%d%s)",
            len(planned),
            len(documents),
            config.concurrency,
            ", dry run" if config.dry_run else "",
        )
        self.fanout.emit(
            RunStarted(
                total_scenarios=len(planned),
                total_steps=sum(len(scenario.steps) for _, scenario in planned),
            )
        )

        setup_failed = False
        if not config.dry_run:
            for hook_result in await self._run_hooks(executor, HookKind.BEFORE_ALL):
                aggregator.record_run_hook(hook_result)
                setup_failed = setup_failed or hook_result.status == Status.FAILED
        if setup_failed:
            logger.warning("before_all hook failed; no scenario will run")

        executed: Set[str] = set()

        async def run_one(feature: Feature, scenario: Scenario) -> None:
            if self._cancel.is_set():
                return
            executed.add(scenario.id)
            aggregator.scenario_started(scenario.id)
            self.fanout.emit(ScenarioStarted(feature=feature, scenario=scenario))
            result = await executor.execute(feature, scenario)
            aggregator.scenario_finished(scenario.id, result.duration)
            self.fanout.emit(ScenarioFinished(result=result))
            if config.fail_fast and result.status != Status.PASSED:
                logger.info("Stopping after %s (%s): fail fast", scenario.id, result.status.value)
                self._cancel.set()

        if not setup_failed:
            if config.concurrency == 1:
                for feature, scenario in planned:
                    await run_one(feature, scenario)
            else:
                semaphore = asyncio.Semaphore(config.concurrency)

                async def bounded(feature: Feature, scenario: Scenario) -> None:
                    async with semaphore:
                        await run_one(feature, scenario)

                await asyncio.gather(*(bounded(feature, scenario) for feature, scenario in planned))

        # Scenarios that never started still report every step, as skipped
        for _, scenario in planned:
            if scenario.id not in executed:
                for index, step in enumerate(scenario.steps):
                    step_complete(scenario.id, index, StepResult(step=step, status=Status.SKIPPED))

        if not config.dry_run:
            for hook_result in await self._run_hooks(executor, HookKind.AFTER_ALL):
                aggregator.record_run_hook(hook_result)

        result = aggregator.freeze(cancelled=self._cancel.is_set())
        logger.info("Run finished: %s in %.3fs", result.status.value, result.duration)

        self.formatter_errors = await self.fanout.publish(result)
        return result

    def run(self, documents: Sequence[Document]) -> RunResult:
        """Synchronous wrapper around run_async."""
        return asyncio.run(self.run_async(documents))


def run_suite(
    sources: Sources,
    registry: StepRegistry,
    config: Union[RunConfig, Mapping[str, Any], None] = None,
    formatters: Optional[Sequence[Any]] = None,
    stream: Optional[TextIO] = None,
) -> SuiteOutcome:
    """
    Validate the configuration, parse the sources, run them and report.

    Configuration and parse errors abort before any scenario executes and
    map to their own exit codes; execution problems never raise.

    Returns:
        SuiteOutcome with exit code, result and problem list
    """
    try:
        runner = BddRunner(registry, config=config, formatters=formatters, stream=stream)
    except ConfigError as e:
        logger.error("%s", e)
        return SuiteOutcome(exit_code=EXIT_CONFIG_ERROR, problems=[str(e)])

    try:
        documents = runner.parse(sources)
    except ParseError as e:
        logger.error("%s", e)
        return SuiteOutcome(exit_code=EXIT_PARSE_ERROR, problems=[str(e)])

    result = runner.run(documents)
    return SuiteOutcome(
        exit_code=exit_code_for(result, dry_run=runner.config.dry_run),
        result=result,
        problems=result.problems(),
        formatter_errors=list(runner.formatter_errors),
    )
