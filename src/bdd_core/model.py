"""
Document model for parsed feature files.

Everything here is an immutable value object produced by the parser:

    Document -> Feature -> Scenario -> Step (-> DataTable | DocString)

It also defines ``Status``, the outcome vocabulary shared by the executor,
the aggregator and every formatter, together with the worst-case roll-up
used for scenarios, features and whole runs.

Example usage:
    from bdd_core.parser import parse

    document = parse(text, uri="features/login.feature")
    for feature in document.features:
        for scenario in feature.scenarios:
            print(scenario.id, scenario.name, len(scenario.steps))
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union


class Status(str, Enum):
    """
    Outcome of a step, hook, scenario, feature or run.

    Roll-up precedence (worst first):
    FAILED > UNDEFINED > PENDING > SKIPPED > PASSED
    """

    PASSED = "passed"
    SKIPPED = "skipped"
    PENDING = "pending"
    UNDEFINED = "undefined"
    FAILED = "failed"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    Status.PASSED: 0,
    Status.SKIPPED: 1,
    Status.PENDING: 2,
    Status.UNDEFINED: 3,
    Status.FAILED: 4,
}


def worst_status(statuses: Iterable[Status]) -> Status:
    """
    Roll a collection of statuses up to the worst one.

    An empty collection rolls up to PASSED.
    """
    worst = Status.PASSED
    for status in statuses:
        if status.rank > worst.rank:
            worst = status
    return worst


class KeywordType(str, Enum):
    """Semantic type of a step keyword, used for snippets and reports."""

    CONTEXT = "context"  # Given
    ACTION = "action"  # When
    OUTCOME = "outcome"  # Then


@dataclass(frozen=True)
class DataTable:
    """Table argument attached to a step."""

    rows: Tuple[Tuple[str, ...], ...]

    @property
    def headings(self) -> Tuple[str, ...]:
        return self.rows[0] if self.rows else ()

    def as_dicts(self) -> List[Dict[str, str]]:
        """Rows after the first, keyed by the first row."""
        return [dict(zip(self.headings, row)) for row in self.rows[1:]]

    def as_pairs(self) -> Dict[str, str]:
        """Two-column table read as key/value pairs (no heading row)."""
        return {row[0]: row[1] for row in self.rows if len(row) >= 2}

    def to_list(self) -> List[List[str]]:
        return [list(row) for row in self.rows]


@dataclass(frozen=True)
class DocString:
    """Multiline text argument attached to a step."""

    content: str
    media_type: Optional[str] = None


StepArgument = Union[DataTable, DocString]


@dataclass(frozen=True)
class Step:
    """
    One step line of a scenario.

    Attributes:
        keyword: Keyword as written (e.g. 'Given', 'And', '*')
        keyword_type: Effective type; conjunctions inherit the previous step's
        text: Step text after the keyword
        line: 1-based source line
        argument: Optional DataTable or DocString
        background: True if the step was inherited from a Background
    """

    keyword: str
    keyword_type: KeywordType
    text: str
    line: int
    argument: Optional[StepArgument] = None
    background: bool = False

    @property
    def table(self) -> Optional[DataTable]:
        return self.argument if isinstance(self.argument, DataTable) else None

    @property
    def doc_string(self) -> Optional[DocString]:
        return self.argument if isinstance(self.argument, DocString) else None


@dataclass(frozen=True)
class Background:
    name: str
    line: int
    steps: Tuple[Step, ...] = ()


@dataclass(frozen=True)
class Scenario:
    """
    A runnable scenario.

    Outline rows are expanded by the parser, so every Scenario is concrete.
    ``steps`` already contains the feature's background steps first.

    Attributes:
        id: Unique identifier within a run ('<uri>:<line>')
        name: Scenario name (placeholders substituted for outline rows)
        keyword: 'Scenario', 'Example', 'Scenario Outline', ...
        line: Source line of the scenario or of its example row
        steps: Ordered steps
        tags: Effective tags (feature, scenario and examples tags)
        description: Free text below the scenario line
        example: Placeholder values for outline rows
    """

    id: str
    name: str
    keyword: str
    line: int
    steps: Tuple[Step, ...] = ()
    tags: FrozenSet[str] = frozenset()
    description: str = ""
    example: Optional[Tuple[Tuple[str, str], ...]] = None

    @property
    def example_values(self) -> Dict[str, str]:
        return dict(self.example or ())


@dataclass(frozen=True)
class Feature:
    name: str
    line: int
    uri: str
    description: str = ""
    tags: FrozenSet[str] = frozenset()
    background: Optional[Background] = None
    scenarios: Tuple[Scenario, ...] = ()


@dataclass(frozen=True)
class Document:
    """Parsed feature document: ordered features of a single source."""

    uri: str
    features: Tuple[Feature, ...] = field(default_factory=tuple)

    def iter_scenarios(self) -> Iterable[Tuple[Feature, Scenario]]:
        for feature in self.features:
            for scenario in feature.scenarios:
                yield feature, scenario

    def to_dict(self) -> Dict[str, Any]:
        """Plain-data view, mainly for debugging and plan output."""
        return {
            "uri": self.uri,
            "features": [
                {
                    "name": feature.name,
                    "line": feature.line,
                    "tags": sorted(feature.tags),
                    "scenarios": [
                        {
                            "id": scenario.id,
                            "name": scenario.name,
                            "tags": sorted(scenario.tags),
                            "steps": [f"{s.keyword} {s.text}" for s in scenario.steps],
                        }
                        for scenario in feature.scenarios
                    ],
                }
                for feature in self.features
            ],
        }
