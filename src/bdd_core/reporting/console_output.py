"""Console formatters: progress, progress-bar and summary."""

from typing import Any, Dict, List, Optional, TextIO

from ..events import RunEvent, RunStarted, ScenarioFinished, StepFinished
from ..model import Status
from ..results import RunResult
from .base import Output

# Worst first, matching roll-up precedence
STATUS_ORDER = sorted(Status, key=lambda s: s.rank, reverse=True)

PROGRESS_CHARS = {
    Status.PASSED: ".",
    Status.FAILED: "F",
    Status.UNDEFINED: "U",
    Status.PENDING: "P",
    Status.SKIPPED: "-",
}


def _tally(counts: Dict[str, int], noun: str) -> str:
    total = counts.get("total", 0)
    parts = [f"{counts[s.value]} {s.value}" for s in STATUS_ORDER if counts.get(s.value)]
    label = noun if total == 1 else f"{noun}s"
    if not parts:
        return f"{total} {label}"
    return f"{total} {label} ({', '.join(parts)})"


def format_duration(seconds: float) -> str:
    minutes, rest = divmod(seconds, 60)
    return f"{int(minutes)}m{rest:06.3f}s"


def collect_snippets(result: RunResult) -> List[str]:
    """Snippets of undefined steps, deduplicated, in declaration order."""
    seen: List[str] = []
    for step in result.steps:
        if step.status == Status.UNDEFINED and step.snippet and step.snippet not in seen:
            seen.append(step.snippet)
    return seen


def render_summary(result: RunResult) -> str:
    """
    Human-readable end-of-run summary.

    Lists every problem, then scenario and step counts, then the duration,
    then snippets for undefined steps.
    """
    lines: List[str] = []
    problems = result.problems()
    if problems:
        lines.append("Problems:")
        lines.append("")
        for number, problem in enumerate(problems, start=1):
            lines.append(f"{number}) {problem}")
        lines.append("")

    counts = result.counts()
    lines.append(_tally(counts["scenarios"], "scenario"))
    lines.append(_tally(counts["steps"], "step"))
    lines.append(format_duration(result.duration))

    snippets = collect_snippets(result)
    if snippets:
        lines.append("")
        lines.append("You can implement missing steps with the snippets below:")
        for snippet in snippets:
            lines.append("")
            lines.append(snippet)
    return "\n".join(lines) + "\n"


class SummaryFormatter:
    """Prints the end-of-run summary only."""

    def __init__(
        self,
        destination: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        stream: Optional[TextIO] = None,
    ):
        self.output = Output(destination, stream)
        self.options = options or {}

    def render(self, result: RunResult) -> None:
        try:
            self.write_report(result)
            self.output.flush()
        finally:
            self.output.close()

    def write_report(self, result: RunResult) -> None:
        self.output.write(render_summary(result))


class ProgressFormatter(SummaryFormatter):
    """
    One character per finished step, then the summary.

    . passed, F failed, U undefined, P pending, - skipped
    """

    def handle_event(self, event: RunEvent) -> None:
        if isinstance(event, StepFinished):
            self.output.write(PROGRESS_CHARS[event.result.status])
            self.output.flush()

    def write_report(self, result: RunResult) -> None:
        self.output.write("\n\n")
        super().write_report(result)


class ProgressBarFormatter(SummaryFormatter):
    """
    A single progress bar over all steps of the run, then the summary.

    On a terminal the bar is redrawn in place and failing scenarios are
    printed above it as they finish. Elsewhere only the failures and the
    summary are written.

    Options:
        width: Bar width in characters (default: 40)
    """

    def __init__(
        self,
        destination: Optional[str] = None,
        options: Optional[Dict[str, Any]] = None,
        stream: Optional[TextIO] = None,
    ):
        super().__init__(destination, options, stream)
        self.width = int(self.options.get("width", 40))
        self.total = 0
        self.done = 0
        self.failed = 0
        self._drawn = False

    def bar(self) -> str:
        filled = int(self.width * self.done / self.total) if self.total else self.width
        return f"[{'#' * filled}{'.' * (self.width - filled)}] {self.done}/{self.total} steps ({self.failed} failed)"

    def _draw(self) -> None:
        if self.output.is_terminal:
            self.output.write("\r" + self.bar())
            self.output.flush()
            self._drawn = True

    def _clear(self) -> None:
        if self._drawn:
            self.output.write("\r" + " " * len(self.bar()) + "\r")
            self._drawn = False

    def handle_event(self, event: RunEvent) -> None:
        if isinstance(event, RunStarted):
            self.total = event.total_steps
            self._draw()
        elif isinstance(event, StepFinished):
            self.done += 1
            if event.result.status == Status.FAILED:
                self.failed += 1
            self._draw()
        elif isinstance(event, ScenarioFinished):
            status = event.result.status
            if status not in (Status.PASSED, Status.SKIPPED):
                scenario = event.result.scenario
                self._clear()
                self.output.print(f"{status.value.upper()}: {scenario.name} ({scenario.id})")
                self._draw()

    def write_report(self, result: RunResult) -> None:
        if self._drawn:
            self.output.write("\n")
        self.output.write("\n")
        super().write_report(result)
