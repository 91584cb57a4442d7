"""
Step text matchers.

A step definition's pattern is compiled into one of three matcher variants,
selected through an explicit ``MatcherKind`` lookup table:

- LiteralMatcher: exact text, no arguments
- RegexMatcher: ``re.fullmatch``; groups become arguments
- ParameterizedMatcher: Cucumber-expression placeholders such as
  ``{int}``, ``{float}``, ``{word}``, ``{string}``, ``{}`` and the named form
  ``{count:int}``

Example usage:
    from bdd_core.matchers import build_matcher

    matcher = build_matcher('I have {int} cukes in my "{word}"')
    arguments = matcher.match('I have 42 cukes in my "belly"')
    # arguments.args == (42, "belly")
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Pattern, Tuple, Type, Union


class MatcherKind(str, Enum):
    LITERAL = "literal"
    REGEX = "regex"
    PARAMETERIZED = "parameterized"


@dataclass(frozen=True)
class StepArguments:
    """Arguments extracted from a step text by a matcher."""

    args: Tuple[Any, ...] = ()
    kwargs: Dict[str, Any] = field(default_factory=dict)


class LiteralMatcher:
    kind = MatcherKind.LITERAL

    def __init__(self, pattern: str):
        self.pattern = pattern

    @property
    def source(self) -> str:
        return self.pattern

    def match(self, text: str) -> Optional[StepArguments]:
        return StepArguments() if text == self.pattern else None

    def __repr__(self) -> str:
        return f"LiteralMatcher({self.pattern!r})"


class RegexMatcher:
    """
    Regular expression matcher.

    The whole step text must match. Unnamed groups are passed positionally,
    named groups as keyword arguments; groups that did not participate in the
    match are passed as None.
    """

    kind = MatcherKind.REGEX

    def __init__(self, pattern: Union[str, Pattern[str]]):
        self.regex = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern)

    @property
    def source(self) -> str:
        return self.regex.pattern

    def match(self, text: str) -> Optional[StepArguments]:
        found = self.regex.fullmatch(text)
        if found is None:
            return None
        named = found.groupdict()
        if named:
            named_indexes = set(self.regex.groupindex.values())
            positional = tuple(
                found.group(i)
                for i in range(1, self.regex.groups + 1)
                if i not in named_indexes
            )
            return StepArguments(args=positional, kwargs=named)
        return StepArguments(args=found.groups())

    def __repr__(self) -> str:
        return f"RegexMatcher({self.regex.pattern!r})"


def _to_string(value: str) -> str:
    # Strip surrounding quotes and unescape the quote character
    quote = value[0]
    return value[1:-1].replace("\\" + quote, quote)


# Parameter type name -> (regex, converter)
PARAMETER_TYPES: Dict[str, Tuple[str, Callable[[str], Any]]] = {
    "int": (r"-?\d+", int),
    "float": (r"-?\d*\.\d+|-?\d+", float),
    "word": (r"[^\s]+", str),
    "string": (r'"(?:[^"\\]|\\.)*"|\'(?:[^\'\\]|\\.)*\'', _to_string),
    "": (r".*", str),
}

_PARAMETER_RE = re.compile(r"\{(?:(?P<name>[A-Za-z_][A-Za-z0-9_]*):)?(?P<type>[A-Za-z_]*)\}")


class ParameterizedMatcher:
    """
    Cucumber-expression style matcher.

    Placeholders are replaced by typed capture groups; matched values are
    converted (``{int}`` -> int, ``{float}`` -> float, ``{string}`` -> unquoted
    str). Anonymous placeholders are passed positionally, named ones as
    keyword arguments. Literal text between placeholders matches verbatim.
    """

    kind = MatcherKind.PARAMETERIZED

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._converters: List[Tuple[Optional[str], Callable[[str], Any]]] = []
        parts: List[str] = []
        position = 0
        for placeholder in _PARAMETER_RE.finditer(pattern):
            type_name = placeholder.group("type")
            if type_name not in PARAMETER_TYPES:
                raise ValueError(f"Unknown parameter type {{{type_name}}} in {pattern!r}")
            regex, converter = PARAMETER_TYPES[type_name]
            parts.append(re.escape(pattern[position:placeholder.start()]))
            parts.append(f"({regex})")
            self._converters.append((placeholder.group("name"), converter))
            position = placeholder.end()
        parts.append(re.escape(pattern[position:]))
        self.regex = re.compile("".join(parts))

    @property
    def source(self) -> str:
        return self.pattern

    def match(self, text: str) -> Optional[StepArguments]:
        found = self.regex.fullmatch(text)
        if found is None:
            return None
        args: List[Any] = []
        kwargs: Dict[str, Any] = {}
        for (name, converter), raw in zip(self._converters, found.groups()):
            value = converter(raw)
            if name:
                kwargs[name] = value
            else:
                args.append(value)
        return StepArguments(args=tuple(args), kwargs=kwargs)

    def __repr__(self) -> str:
        return f"ParameterizedMatcher({self.pattern!r})"


Matcher = Union[LiteralMatcher, RegexMatcher, ParameterizedMatcher]

MATCHERS: Dict[MatcherKind, Type[Any]] = {
    MatcherKind.LITERAL: LiteralMatcher,
    MatcherKind.REGEX: RegexMatcher,
    MatcherKind.PARAMETERIZED: ParameterizedMatcher,
}


def infer_kind(pattern: Union[str, Pattern[str]]) -> MatcherKind:
    """
    Pick a matcher kind for a pattern.

    Compiled regexes and strings anchored with ^...$ are regexes; strings
    with {placeholders} are parameterized; anything else is literal.
    """
    if isinstance(pattern, re.Pattern):
        return MatcherKind.REGEX
    if pattern.startswith("^") and pattern.endswith("$"):
        return MatcherKind.REGEX
    if _PARAMETER_RE.search(pattern):
        return MatcherKind.PARAMETERIZED
    return MatcherKind.LITERAL


def build_matcher(
    pattern: Union[str, Pattern[str]],
    kind: Optional[Union[MatcherKind, str]] = None,
) -> Matcher:
    """
    Compile a pattern into a matcher.

    Args:
        pattern: Step pattern (string or compiled regex)
        kind: Explicit matcher kind; inferred when omitted

    Returns:
        Matcher instance

    Raises:
        ValueError: If the kind is unknown or the pattern does not compile
    """
    if kind is None:
        kind = infer_kind(pattern)
    try:
        matcher_cls = MATCHERS[MatcherKind(kind)]
    except ValueError:
        raise ValueError(f"Unknown matcher kind: {kind!r}") from None
    if not isinstance(pattern, str) and matcher_cls is not RegexMatcher:
        raise ValueError(f"{matcher_cls.__name__} requires a string pattern")
    try:
        return matcher_cls(pattern)
    except re.error as e:
        raise ValueError(f"Invalid step pattern {pattern!r}: {e}") from e
