"""Per-scenario execution context."""

from typing import Any, Callable, List, Optional, Tuple

from .model import DataTable, Feature, Scenario, Step


class Context:
    """
    State shared by the steps of exactly one scenario.

    Step functions receive it as their first argument and may set arbitrary
    attributes on it. A fresh Context is created for every scenario, so
    nothing leaks between scenarios, whether they run sequentially or
    concurrently.

    Attributes:
        feature: Feature the scenario belongs to
        scenario: Scenario being executed
        step: Step currently executing (None between steps)
        table: DataTable of the current step, if any
        text: Doc string content of the current step, if any
    """

    def __init__(self, feature: Feature, scenario: Scenario):
        self.feature = feature
        self.scenario = scenario
        self.step: Optional[Step] = None
        self.table: Optional[DataTable] = None
        self.text: Optional[str] = None
        self._cleanups: List[Tuple[Callable[..., Any], tuple]] = []

    @property
    def tags(self) -> frozenset:
        return self.scenario.tags

    def enter_step(self, step: Step) -> None:
        self.step = step
        self.table = step.table
        self.text = step.doc_string.content if step.doc_string else None

    def leave_step(self) -> None:
        self.step = None
        self.table = None
        self.text = None

    def add_cleanup(self, func: Callable[..., Any], *args: Any) -> None:
        """Register a callable to run after the scenario (LIFO order)."""
        self._cleanups.append((func, args))

    def pop_cleanups(self) -> List[Tuple[Callable[..., Any], tuple]]:
        cleanups = list(reversed(self._cleanups))
        self._cleanups = []
        return cleanups

    def __repr__(self) -> str:
        return f"<Context scenario={self.scenario.name!r}>"
