"""Self-contained HTML report."""

from html import escape
from typing import Any, Dict, List, Optional, TextIO

from ..model import DataTable, DocString, Step
from ..results import FeatureResult, RunResult, ScenarioResult, StepResult
from .base import Output
from .console_output import STATUS_ORDER, format_duration

_STYLE = """
body { font-family: sans-serif; margin: 2em; color: #222; }
h1 { margin-bottom: 0.2em; }
.counts span { margin-right: 1em; }
.feature { border: 1px solid #ccc; border-radius: 4px; margin: 1em 0; padding: 0.5em 1em; }
.scenario { margin: 0.8em 0 0.8em 1em; }
.step { margin-left: 2em; font-family: monospace; }
.tag { color: #666; font-size: 0.9em; margin-right: 0.5em; }
table { border-collapse: collapse; margin: 0.3em 0 0.3em 3em; }
td { border: 1px solid #bbb; padding: 0.1em 0.5em; }
pre { margin: 0.3em 0 0.3em 3em; padding: 0.5em; background: #f6f6f6; overflow-x: auto; }
.passed { color: #1a7f37; }
.failed { color: #cf222e; }
.undefined { color: #bf8700; }
.pending { color: #9a6700; }
.skipped { color: #57606a; }
"""


def _status(status: str) -> str:
    return f'<span class="{status}">{escape(status)}</span>'


def _argument(step: Step) -> List[str]:
    argument = step.argument
    if isinstance(argument, DataTable):
        rows = "".join(
            "<tr>" + "".join(f"<td>{escape(cell)}</td>" for cell in row) + "</tr>" for row in argument.rows
        )
        return [f"<table>{rows}</table>"]
    if isinstance(argument, DocString):
        return [f"<pre>{escape(argument.content)}</pre>"]
    return []


def _step(result: StepResult) -> List[str]:
    step = result.step
    parts = [
        f'<div class="step {result.status.value}">{_status(result.status.value)} '
        f"<b>{escape(step.keyword)}</b> {escape(step.text)}</div>"
    ]
    parts.extend(_argument(step))
    if result.error is not None:
        parts.append(f'<pre class="failed">{escape(result.error.traceback or result.error.message)}</pre>')
    if result.snippet:
        parts.append(f"<pre>{escape(result.snippet)}</pre>")
    return parts


def _scenario(result: ScenarioResult) -> List[str]:
    scenario = result.scenario
    tags = "".join(f'<span class="tag">{escape(t)}</span>' for t in sorted(scenario.tags))
    parts = [
        f'<div class="scenario" id="{escape(scenario.id)}">',
        f"<div>{tags}</div>",
        f"<h3>{_status(result.status.value)} {escape(scenario.keyword)}: {escape(scenario.name)}</h3>",
    ]
    for step in result.steps:
        parts.extend(_step(step))
    for hook in result.hooks:
        if hook.error is not None:
            parts.append(f'<pre class="failed">{escape(hook.name)}: {escape(hook.error.message)}</pre>')
    parts.append("</div>")
    return parts


def _feature(result: FeatureResult) -> List[str]:
    feature = result.feature
    parts = [
        '<section class="feature">',
        f"<h2>{_status(result.status.value)} Feature: {escape(feature.name)}</h2>",
        f"<p><small>{escape(feature.uri)}</small></p>",
    ]
    if feature.description:
        parts.append(f"<p>{escape(feature.description)}</p>")
    for scenario in result.scenarios:
        parts.extend(_scenario(scenario))
    parts.append("</section>")
    return parts


def build_report_html(result: RunResult, title: str = "Cucumber report") -> str:
    """Render a run as a single HTML page with inline styles."""
    counts = result.counts()
    summary = []
    for kind in ("scenarios", "steps"):
        tally = counts[kind]
        cells = " ".join(
            f'<span class="{s.value}">{tally[s.value]} {s.value}</span>' for s in STATUS_ORDER if tally[s.value]
        )
        summary.append(f"<div><b>{tally['total']} {kind}</b> {cells}</div>")

    body: List[str] = []
    for feature in result.features:
        body.extend(_feature(feature))
    problems = "".join(f"<li>{escape(p)}</li>" for p in result.problems())

    return "\n".join(
        [
            "<!DOCTYPE html>",
            '<html lang="en">',
            "<head>",
            '<meta charset="utf-8">',
            f"<title>{escape(title)}</title>",
            f"<style>{_STYLE}</style>",
            "</head>",
            "<body>",
            f"<h1>{escape(title)}</h1>",
            f"<p>Status: {_status(result.status.value)} - started {escape(result.started_at)}, "
            f"took {format_duration(result.duration)}</p>",
            f'<div class="counts">{"".join(summary)}</div>',
            f"<ol>{problems}</ol>" if problems else "",
            *body,
            "</body>",
            "</html>",
            "",
        ]
    )


class HtmlFormatter:
    """
    Writes a self-contained HTML report.

    Options:
        title: Page title (default: 'Cucumber report')
    """

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
            self.output.write(build_report_html(result, title=self.options.get("title", "Cucumber report")))
        finally:
            self.output.close()
