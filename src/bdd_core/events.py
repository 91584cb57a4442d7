"""
Events streamed to incremental formatters while a run is in progress.

Formatters that only care about the final, frozen RunResult never see these.
"""

from dataclasses import dataclass
from typing import Union

from .model import Feature, Scenario
from .results import ScenarioResult, StepResult


@dataclass(frozen=True)
class RunStarted:
    total_scenarios: int
    total_steps: int


@dataclass(frozen=True)
class ScenarioStarted:
    feature: Feature
    scenario: Scenario


@dataclass(frozen=True)
class StepFinished:
    scenario_id: str
    index: int
    result: StepResult


@dataclass(frozen=True)
class ScenarioFinished:
    result: ScenarioResult


RunEvent = Union[RunStarted, ScenarioStarted, StepFinished, ScenarioFinished]
