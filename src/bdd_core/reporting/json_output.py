"""Cucumber-style JSON report."""

import json
import re
from typing import Any, Dict, List, Optional, TextIO

from ..model import DataTable, DocString, Feature, Scenario, Step
from ..results import FeatureResult, HookResult, RunResult, ScenarioResult, StepResult
from .base import Output

_NANOS = 1_000_000_000


def _slug(text: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def _tags(tags: frozenset, line: int) -> List[Dict[str, Any]]:
    return [{"name": tag, "line": line} for tag in sorted(tags)]


def _step_argument(step: Step) -> Optional[Dict[str, Any]]:
    argument = step.argument
    if isinstance(argument, DataTable):
        return {"rows": [{"cells": list(row)} for row in argument.rows]}
    if isinstance(argument, DocString):
        return {"doc_string": {"value": argument.content, "content_type": argument.media_type or ""}}
    return None


def _result(status: str, duration: float, error_message: Optional[str]) -> Dict[str, Any]:
    data: Dict[str, Any] = {"status": status, "duration": int(duration * _NANOS)}
    if error_message:
        data["error_message"] = error_message
    return data


def build_step_json(result: StepResult) -> Dict[str, Any]:
    step = result.step
    data: Dict[str, Any] = {
        "keyword": f"{step.keyword} ",
        "name": step.text,
        "line": step.line,
        "result": _result(
            result.status.value,
            result.duration,
            result.error.traceback or result.error.message if result.error else None,
        ),
    }
    if result.location:
        data["match"] = {"location": result.location}
    argument = _step_argument(step)
    if argument is not None:
        data.update(argument)
    return data


def build_hook_json(result: HookResult) -> Dict[str, Any]:
    return {
        "name": result.name,
        "match": {"location": result.location},
        "result": _result(result.status.value, result.duration, result.error.message if result.error else None),
    }


def build_scenario_json(feature: Feature, result: ScenarioResult) -> Dict[str, Any]:
    scenario: Scenario = result.scenario
    before = [h for h in result.hooks if h.name.startswith("before_")]
    after = [h for h in result.hooks if not h.name.startswith("before_")]
    data: Dict[str, Any] = {
        "id": f"{_slug(feature.name)};{_slug(scenario.name)};{scenario.line}",
        "keyword": scenario.keyword,
        "name": scenario.name,
        "description": scenario.description,
        "line": scenario.line,
        "type": "scenario",
        "tags": _tags(scenario.tags, scenario.line),
        "steps": [build_step_json(s) for s in result.steps],
    }
    if before:
        data["before"] = [build_hook_json(h) for h in before]
    if after:
        data["after"] = [build_hook_json(h) for h in after]
    return data


def build_feature_json(result: FeatureResult) -> Dict[str, Any]:
    feature = result.feature
    return {
        "uri": feature.uri,
        "id": _slug(feature.name),
        "keyword": "Feature",
        "name": feature.name,
        "description": feature.description,
        "line": feature.line,
        "tags": _tags(feature.tags, feature.line),
        "elements": [build_scenario_json(feature, s) for s in result.scenarios],
    }


def build_report_json(result: RunResult) -> List[Dict[str, Any]]:
    """Build the Cucumber JSON document (a list of features) for a run."""
    return [build_feature_json(f) for f in result.features]


class JsonFormatter:
    """
    Writes the Cucumber JSON report.

    Options:
        indent: JSON indentation (default: 2)
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
            self.output.write(json.dumps(build_report_json(result), indent=self.options.get("indent", 2)))
            self.output.write("\n")
        finally:
            self.output.close()
