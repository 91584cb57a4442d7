"""
Step definition snippets for undefined steps.

Turns the text of an undefined step into a ready-to-paste step definition
stub. Quoted strings become ``{string}``, integers ``{int}`` and decimals
``{float}``; the stub raises PendingStep so the step shows up as pending
until it is implemented.

Example:
    >>> print(generate_snippet(step, "async-await"))
    @registry.given('I have {int} cukes in my {string}')
    async def step_impl(context, count, text):
        raise PendingStep()
"""

import re
from typing import List, Tuple

from .constants import SNIPPET_ASYNC_AWAIT, SNIPPET_INTERFACES
from .model import KeywordType, Step

_TOKEN_RE = re.compile(
    r'"(?:[^"\\]|\\.)*"'
    r"|(?<![\w.])-?\d+\.\d+(?![\w.])"
    r"|(?<![\w.])-?\d+(?![\w.])"
)

# Characters with a meaning in a regex; everything else is left readable
_REGEX_SPECIAL_RE = re.compile(r"([.^$*+?{}\[\]\\|()])")

_DECORATORS = {
    KeywordType.CONTEXT: "given",
    KeywordType.ACTION: "when",
    KeywordType.OUTCOME: "then",
}

# Parameter type -> argument name stem
_ARGUMENT_NAMES = {"string": "text", "int": "count", "float": "amount"}


def snippet_pattern(text: str) -> Tuple[str, List[str]]:
    """
    Derive a parameterized pattern from step text.

    Returns:
        (pattern, argument names)
    """
    seen = {"string": 0, "int": 0, "float": 0}
    names: List[str] = []
    parts: List[str] = []
    position = 0
    for token in _TOKEN_RE.finditer(text):
        value = token.group(0)
        if value.startswith('"'):
            type_name = "string"
        elif "." in value:
            type_name = "float"
        else:
            type_name = "int"
        seen[type_name] += 1
        stem = _ARGUMENT_NAMES[type_name]
        names.append(stem if seen[type_name] == 1 else f"{stem}{seen[type_name]}")
        parts.append(text[position:token.start()])
        parts.append("{" + type_name + "}")
        position = token.end()
    parts.append(text[position:])
    return "".join(parts), names


def generate_snippet(step: Step, interface: str = SNIPPET_ASYNC_AWAIT) -> str:
    """
    Build a step definition stub for an undefined step.

    Args:
        step: The undefined step
        interface: 'synchronous' or 'async-await'

    Raises:
        ValueError: If the interface is not supported
    """
    if interface not in SNIPPET_INTERFACES:
        raise ValueError(
            f"Unknown snippet interface {interface!r}. Must be one of: {', '.join(SNIPPET_INTERFACES)}"
        )

    if "{" in step.text or "}" in step.text:
        # Braces would be read as placeholders; fall back to an anchored regex
        pattern, names = "^" + _REGEX_SPECIAL_RE.sub(r"\\\1", step.text) + "$", []
    else:
        pattern, names = snippet_pattern(step.text)

    decorator = _DECORATORS.get(step.keyword_type, "step")
    prefix = "async def" if interface == SNIPPET_ASYNC_AWAIT else "def"
    params = ", ".join(["context"] + names)

    lines = [f"@registry.{decorator}({pattern!r})", f"{prefix} step_impl({params}):"]
    if step.table is not None:
        lines.append("    # context.table holds the step's data table")
    elif step.doc_string is not None:
        lines.append("    # context.text holds the step's doc string")
    lines.append("    raise PendingStep()")
    return "\n".join(lines)
