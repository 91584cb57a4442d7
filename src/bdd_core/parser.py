"""
Gherkin document parser.

Turns raw feature text into an immutable ``Document``. Parsing is a pure
function of ``(text, uri)``: no I/O, no global state, identical input always
yields an equal Document.

Supported constructs:
- Feature (with free-text description), Background
- Scenario / Example, Scenario Outline / Scenario Template with Examples
- Given / When / Then / And / But / * steps
- Tags on Feature, Scenario, Outline and Examples
- Data tables and doc strings (\"\"\" or ```)
- Comments (#) and blank lines

Example usage:
    from bdd_core.parser import parse

    document = parse(
        '''
        Feature: Login
          Scenario: Valid credentials
            Given a user "alice" exists
            When she logs in
            Then she sees the dashboard
        ''',
        uri="login.feature",
    )
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from .errors import ParseError
from .model import (
    Background,
    DataTable,
    DocString,
    Document,
    Feature,
    KeywordType,
    Scenario,
    Step,
    StepArgument,
)

logger = logging.getLogger(__name__)

FEATURE_KEYWORDS = ("Feature",)
BACKGROUND_KEYWORDS = ("Background",)
SCENARIO_KEYWORDS = ("Scenario", "Example")
OUTLINE_KEYWORDS = ("Scenario Outline", "Scenario Template")
EXAMPLES_KEYWORDS = ("Examples", "Scenarios")

STEP_KEYWORDS: Dict[str, Optional[KeywordType]] = {
    "Given": KeywordType.CONTEXT,
    "When": KeywordType.ACTION,
    "Then": KeywordType.OUTCOME,
    "And": None,
    "But": None,
    "*": None,
}

DOC_STRING_DELIMITERS = ('"""', "```")

_PLACEHOLDER_RE = re.compile(r"<([^<>]+)>")


# =============================================================================
# Mutable builders (internal; frozen into model objects at the end)
# =============================================================================


@dataclass
class _StepBuilder:
    keyword: str
    keyword_type: KeywordType
    text: str
    line: int
    argument: Optional[StepArgument] = None

    def build(self, background: bool = False) -> Step:
        return Step(
            keyword=self.keyword,
            keyword_type=self.keyword_type,
            text=self.text,
            line=self.line,
            argument=self.argument,
            background=background,
        )


@dataclass
class _TableBuilder:
    line: int
    rows: List[Tuple[str, ...]] = field(default_factory=list)
    row_lines: List[int] = field(default_factory=list)


@dataclass
class _ExamplesBuilder:
    line: int
    tags: Tuple[str, ...] = ()
    table: Optional[_TableBuilder] = None


@dataclass
class _ScenarioBuilder:
    keyword: str
    name: str
    line: int
    tags: Tuple[str, ...] = ()
    outline: bool = False
    description: List[str] = field(default_factory=list)
    steps: List[_StepBuilder] = field(default_factory=list)
    examples: List[_ExamplesBuilder] = field(default_factory=list)


@dataclass
class _BackgroundBuilder:
    name: str
    line: int
    description: List[str] = field(default_factory=list)
    steps: List[_StepBuilder] = field(default_factory=list)


@dataclass
class _FeatureBuilder:
    name: str
    line: int
    tags: Tuple[str, ...] = ()
    description: List[str] = field(default_factory=list)
    background: Optional[_BackgroundBuilder] = None
    scenarios: List[_ScenarioBuilder] = field(default_factory=list)


def _match_block_keyword(stripped: str, keywords: Tuple[str, ...]) -> Optional[Tuple[str, str]]:
    """Return (keyword, title) if the line opens one of the given blocks."""
    for keyword in keywords:
        prefix = keyword + ":"
        if stripped.startswith(prefix):
            return keyword, stripped[len(prefix):].strip()
    return None


def _match_step_keyword(stripped: str) -> Optional[Tuple[str, str]]:
    for keyword in STEP_KEYWORDS:
        prefix = keyword + " "
        if stripped.startswith(prefix):
            return keyword, stripped[len(prefix):].strip()
    return None


def _substitute(text: str, values: Dict[str, str]) -> str:
    return _PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), text)


class _Parser:
    """Single-use, line-oriented state machine behind ``parse``."""

    def __init__(self, text: str, uri: str):
        self.uri = uri
        self.lines = text.splitlines()
        self.features: List[_FeatureBuilder] = []
        self.feature: Optional[_FeatureBuilder] = None
        self.container = None  # _ScenarioBuilder | _BackgroundBuilder
        self.examples: Optional[_ExamplesBuilder] = None
        self.pending_tags: List[str] = []
        self.pending_tags_line = 0
        self.last_step: Optional[_StepBuilder] = None
        self.table: Optional[_TableBuilder] = None
        self.previous_type = KeywordType.CONTEXT

    # -------------------------------------------------------------------------
    # Error helpers
    # -------------------------------------------------------------------------

    def _error(self, message: str, line_no: int, column: int = 1) -> ParseError:
        return ParseError(message, line=line_no, column=column, uri=self.uri)

    @staticmethod
    def _column(raw: str) -> int:
        return len(raw) - len(raw.lstrip()) + 1

    # -------------------------------------------------------------------------
    # Main loop
    # -------------------------------------------------------------------------

    def parse(self) -> Document:
        index = 0
        while index < len(self.lines):
            raw = self.lines[index]
            line_no = index + 1
            stripped = raw.strip()

            if not stripped or stripped.startswith("#"):
                index += 1
                continue

            if stripped.startswith(DOC_STRING_DELIMITERS):
                index = self._read_doc_string(index)
                continue

            if stripped.startswith("|"):
                self._read_table_row(raw, stripped, line_no)
                index += 1
                continue

            # Any other construct ends the current table
            self._close_table()

            if stripped.startswith("@"):
                self._read_tags(raw, stripped, line_no)
            else:
                self._read_line(raw, stripped, line_no)
            index += 1

        if self.pending_tags:
            raise self._error(
                "Tags must be followed by Feature, Scenario or Examples",
                self.pending_tags_line,
            )
        self._close_table()
        self._close_feature()
        return Document(uri=self.uri, features=tuple(self._build_feature(f) for f in self.features))

    def _read_line(self, raw: str, stripped: str, line_no: int) -> None:
        column = self._column(raw)

        block = _match_block_keyword(stripped, FEATURE_KEYWORDS)
        if block:
            self._open_feature(block[1], line_no)
            return

        block = _match_block_keyword(stripped, BACKGROUND_KEYWORDS)
        if block:
            self._open_background(block[1], line_no, column)
            return

        block = _match_block_keyword(stripped, OUTLINE_KEYWORDS)
        if block:
            self._open_scenario(block[0], block[1], line_no, column, outline=True)
            return

        block = _match_block_keyword(stripped, SCENARIO_KEYWORDS)
        if block:
            self._open_scenario(block[0], block[1], line_no, column, outline=False)
            return

        block = _match_block_keyword(stripped, EXAMPLES_KEYWORDS)
        if block:
            self._open_examples(line_no, column)
            return

        step = _match_step_keyword(stripped)
        if step:
            self._add_step(step[0], step[1], line_no, column)
            return

        self._add_description(stripped, line_no, column)

    # -------------------------------------------------------------------------
    # Blocks
    # -------------------------------------------------------------------------

    def _take_tags(self) -> Tuple[str, ...]:
        tags = tuple(self.pending_tags)
        self.pending_tags = []
        return tags

    def _reject_tags(self, what: str, line_no: int, column: int) -> None:
        if self.pending_tags:
            raise self._error(f"{what} cannot be tagged", line_no, column)

    def _open_feature(self, name: str, line_no: int) -> None:
        self._close_feature()
        self.feature = _FeatureBuilder(name=name, line=line_no, tags=self._take_tags())
        self.features.append(self.feature)

    def _require_feature(self, what: str, line_no: int, column: int) -> _FeatureBuilder:
        if self.feature is None:
            raise self._error(f"{what} found before 'Feature:'", line_no, column)
        return self.feature

    def _open_background(self, name: str, line_no: int, column: int) -> None:
        feature = self._require_feature("Background", line_no, column)
        self._reject_tags("Background", line_no, column)
        if feature.background is not None:
            raise self._error("Feature already has a Background", line_no, column)
        if feature.scenarios:
            raise self._error("Background must precede all scenarios", line_no, column)
        feature.background = _BackgroundBuilder(name=name, line=line_no)
        self._enter_container(feature.background)

    def _open_scenario(self, keyword: str, name: str, line_no: int, column: int, outline: bool) -> None:
        feature = self._require_feature(keyword, line_no, column)
        self._close_scenario()
        scenario = _ScenarioBuilder(
            keyword=keyword,
            name=name,
            line=line_no,
            tags=self._take_tags(),
            outline=outline,
        )
        feature.scenarios.append(scenario)
        self._enter_container(scenario)

    def _open_examples(self, line_no: int, column: int) -> None:
        scenario = self.container
        if not isinstance(scenario, _ScenarioBuilder) or not scenario.outline:
            raise self._error("Examples are only allowed inside a Scenario Outline", line_no, column)
        self.examples = _ExamplesBuilder(line=line_no, tags=self._take_tags())
        scenario.examples.append(self.examples)
        self.last_step = None

    def _enter_container(self, container) -> None:
        self.container = container
        self.examples = None
        self.last_step = None
        self.previous_type = KeywordType.CONTEXT

    def _add_step(self, keyword: str, text: str, line_no: int, column: int) -> None:
        self._reject_tags("Step", line_no, column)
        if self.container is None:
            raise self._error("Step found outside of a Scenario or Background", line_no, column)
        if self.examples is not None:
            raise self._error("Steps are not allowed inside Examples", line_no, column)
        if not text:
            raise self._error(f"Step keyword '{keyword}' has no text", line_no, column)

        keyword_type = STEP_KEYWORDS[keyword] or self.previous_type
        self.previous_type = keyword_type
        step = _StepBuilder(keyword=keyword, keyword_type=keyword_type, text=text, line=line_no)
        self.container.steps.append(step)
        self.last_step = step

    def _add_description(self, stripped: str, line_no: int, column: int) -> None:
        if self.pending_tags:
            raise self._error(
                "Tags must be followed by Feature, Scenario or Examples", line_no, column
            )
        if self.feature is None:
            raise self._error(f"Expected 'Feature:', got {stripped!r}", line_no, column)
        if self.container is None:
            self.feature.description.append(stripped)
            return
        if self.examples is not None:
            if self.examples.table is None:
                return  # free text describing the examples block
            raise self._error(f"Unexpected text inside Examples: {stripped!r}", line_no, column)
        if not self.container.steps:
            self.container.description.append(stripped)
            return
        raise self._error(
            f"Expected a step keyword (Given/When/Then/And/But/*), got {stripped!r}",
            line_no,
            column,
        )

    def _read_tags(self, raw: str, stripped: str, line_no: int) -> None:
        offset = self._column(raw) - 1
        if not self.pending_tags:
            self.pending_tags_line = line_no
        position = 0
        for token in stripped.split():
            position = stripped.index(token, position)
            if token.startswith("#"):
                break  # trailing comment
            if not token.startswith("@") or len(token) == 1:
                raise self._error(f"Malformed tag {token!r}", line_no, offset + position + 1)
            self.pending_tags.append(token)
            position += len(token)

    # -------------------------------------------------------------------------
    # Tables and doc strings
    # -------------------------------------------------------------------------

    def _split_cells(self, stripped: str, line_no: int, column: int) -> Tuple[str, ...]:
        cells: List[str] = []
        current: List[str] = []
        i = 1
        closed = False
        while i < len(stripped):
            char = stripped[i]
            closed = False
            if char == "\\" and i + 1 < len(stripped):
                nxt = stripped[i + 1]
                if nxt == "|":
                    current.append("|")
                elif nxt == "n":
                    current.append("\n")
                elif nxt == "\\":
                    current.append("\\")
                else:
                    current.append(char + nxt)
                i += 2
                continue
            if char == "|":
                cells.append("".join(current).strip())
                current = []
                closed = True
            else:
                current.append(char)
            i += 1
        if not closed:
            raise self._error("Malformed table: row must end with '|'", line_no, column + len(stripped))
        return tuple(cells)

    def _read_table_row(self, raw: str, stripped: str, line_no: int) -> None:
        column = self._column(raw)
        self._reject_tags("Table", line_no, column)
        if self.table is None:
            owner_ok = (
                (self.examples is not None and self.examples.table is None)
                or (self.examples is None and self.last_step is not None and self.last_step.argument is None)
            )
            if not owner_ok:
                raise self._error("Table must follow a step or an Examples keyword", line_no, column)
            self.table = _TableBuilder(line=line_no)
            if self.examples is not None:
                self.examples.table = self.table

        cells = self._split_cells(stripped, line_no, column)
        if self.table.rows and len(cells) != len(self.table.rows[0]):
            raise self._error(
                f"Malformed table: expected {len(self.table.rows[0])} cells, got {len(cells)}",
                line_no,
                column,
            )
        self.table.rows.append(cells)
        self.table.row_lines.append(line_no)

    def _close_table(self) -> None:
        if self.table is None:
            return
        if self.examples is None and self.last_step is not None:
            self.last_step.argument = DataTable(rows=tuple(self.table.rows))
            self.last_step = None
        self.table = None

    def _read_doc_string(self, start: int) -> int:
        self._close_table()
        raw = self.lines[start]
        stripped = raw.strip()
        line_no = start + 1
        column = self._column(raw)
        delimiter = stripped[:3]
        media_type = stripped[3:].strip() or None

        if self.last_step is None or self.last_step.argument is not None or self.examples is not None:
            raise self._error("Doc string must follow a step", line_no, column)

        escaped = "".join("\\" + char for char in delimiter)
        indent = column - 1
        content: List[str] = []
        index = start + 1
        while index < len(self.lines):
            line = self.lines[index]
            if line.strip() == delimiter:
                self.last_step.argument = DocString(content="\n".join(content), media_type=media_type)
                self.last_step = None
                return index + 1
            # Dedent by the opening delimiter's indentation, never into text
            leading = len(line) - len(line.lstrip(" \t"))
            line = line[min(indent, leading):]
            content.append(line.replace(escaped, delimiter))
            index += 1
        raise self._error(f"Unterminated doc string (opened with {delimiter})", line_no, column)

    # -------------------------------------------------------------------------
    # Finalization
    # -------------------------------------------------------------------------

    def _close_scenario(self) -> None:
        scenario = self.container
        if isinstance(scenario, _ScenarioBuilder) and scenario.outline and not scenario.examples:
            raise self._error(
                f"Scenario Outline {scenario.name!r} has no Examples",
                scenario.line,
            )
        self.container = None
        self.examples = None
        self.last_step = None

    def _close_feature(self) -> None:
        self._close_scenario()
        self.feature = None

    def _build_feature(self, builder: _FeatureBuilder) -> Feature:
        feature_tags = frozenset(builder.tags)
        background = None
        background_steps: Tuple[Step, ...] = ()
        if builder.background is not None:
            background_steps = tuple(s.build(background=True) for s in builder.background.steps)
            background = Background(
                name=builder.background.name,
                line=builder.background.line,
                steps=background_steps,
            )

        scenarios: List[Scenario] = []
        for scenario in builder.scenarios:
            if scenario.outline:
                scenarios.extend(self._expand_outline(scenario, feature_tags, background_steps))
            else:
                scenarios.append(
                    Scenario(
                        id=f"{self.uri}:{scenario.line}",
                        name=scenario.name,
                        keyword=scenario.keyword,
                        line=scenario.line,
                        steps=background_steps + tuple(s.build() for s in scenario.steps),
                        tags=feature_tags | frozenset(scenario.tags),
                        description="\n".join(scenario.description),
                    )
                )

        return Feature(
            name=builder.name,
            line=builder.line,
            uri=self.uri,
            description="\n".join(builder.description),
            tags=feature_tags,
            background=background,
            scenarios=tuple(scenarios),
        )

    def _expand_outline(
        self,
        outline: _ScenarioBuilder,
        feature_tags: frozenset,
        background_steps: Tuple[Step, ...],
    ) -> List[Scenario]:
        expanded: List[Scenario] = []
        for examples in outline.examples:
            if examples.table is None or len(examples.table.rows) < 2:
                continue
            header = examples.table.rows[0]
            for row, row_line in zip(examples.table.rows[1:], examples.table.row_lines[1:]):
                values = dict(zip(header, row))
                steps = tuple(
                    self._substitute_step(step, values).build() for step in outline.steps
                )
                expanded.append(
                    Scenario(
                        id=f"{self.uri}:{row_line}",
                        name=_substitute(outline.name, values),
                        keyword=outline.keyword,
                        line=row_line,
                        steps=background_steps + steps,
                        tags=feature_tags | frozenset(outline.tags) | frozenset(examples.tags),
                        description="\n".join(outline.description),
                        example=tuple(zip(header, row)),
                    )
                )
        return expanded

    @staticmethod
    def _substitute_step(step: _StepBuilder, values: Dict[str, str]) -> _StepBuilder:
        argument = step.argument
        if isinstance(argument, DataTable):
            argument = DataTable(
                rows=tuple(tuple(_substitute(c, values) for c in row) for row in argument.rows)
            )
        elif isinstance(argument, DocString):
            argument = DocString(
                content=_substitute(argument.content, values),
                media_type=argument.media_type,
            )
        return _StepBuilder(
            keyword=step.keyword,
            keyword_type=step.keyword_type,
            text=_substitute(step.text, values),
            line=step.line,
            argument=argument,
        )


def parse(text: str, uri: str = "<string>") -> Document:
    """
    Parse feature text into a Document.

    Args:
        text: Raw feature file content
        uri: Identifier used in scenario ids and error messages

    Returns:
        Parsed, immutable Document

    Raises:
        ParseError: If the text is malformed (line/column attached)
    """
    document = _Parser(text, uri).parse()
    logger.debug(
        "Parsed %s: %d feature(s), %d scenario(s)",
        uri,
        len(document.features),
        sum(len(f.scenarios) for f in document.features),
    )
    return document
