"""
Tag expressions for selecting scenarios and scoping hooks.

Grammar (lowest to highest precedence):

    expression := term ("or" term)*
    term       := factor ("and" factor)*
    factor     := "not" factor | "(" expression ")" | @tag

Example:
    expr = TagExpression.parse("@smoke and not (@wip or @slow)")
    expr.evaluate({"@smoke", "@api"})  # True
"""

import re
from typing import Callable, Iterable, List, Optional

_TOKEN_RE = re.compile(r"\(|\)|[^\s()]+")

Predicate = Callable[[frozenset], bool]


class TagExpression:
    """Compiled tag expression. An empty expression matches everything."""

    def __init__(self, source: str, predicate: Predicate):
        self.source = source
        self._predicate = predicate

    @classmethod
    def parse(cls, source: Optional[str]) -> "TagExpression":
        """
        Compile a tag expression.

        Raises:
            ValueError: If the expression is malformed
        """
        source = (source or "").strip()
        if not source:
            return cls("", lambda tags: True)
        tokens = _TOKEN_RE.findall(source)
        parser = _ExpressionParser(tokens, source)
        predicate = parser.expression()
        if parser.position != len(tokens):
            raise ValueError(f"Unexpected {tokens[parser.position]!r} in tag expression {source!r}")
        return cls(source, predicate)

    def evaluate(self, tags: Iterable[str]) -> bool:
        return self._predicate(frozenset(tags))

    def __repr__(self) -> str:
        return f"TagExpression({self.source!r})"


class _ExpressionParser:
    def __init__(self, tokens: List[str], source: str):
        self.tokens = tokens
        self.source = source
        self.position = 0

    def _peek(self) -> Optional[str]:
        return self.tokens[self.position] if self.position < len(self.tokens) else None

    def _take(self) -> str:
        token = self._peek()
        if token is None:
            raise ValueError(f"Unexpected end of tag expression {self.source!r}")
        self.position += 1
        return token

    def expression(self) -> Predicate:
        left = self.term()
        while self._peek() == "or":
            self._take()
            right = self.term()
            left = (lambda a, b: lambda tags: a(tags) or b(tags))(left, right)
        return left

    def term(self) -> Predicate:
        left = self.factor()
        while self._peek() == "and":
            self._take()
            right = self.factor()
            left = (lambda a, b: lambda tags: a(tags) and b(tags))(left, right)
        return left

    def factor(self) -> Predicate:
        token = self._take()
        if token == "not":
            inner = self.factor()
            return lambda tags: not inner(tags)
        if token == "(":
            inner = self.expression()
            if self._take() != ")":
                raise ValueError(f"Missing ')' in tag expression {self.source!r}")
            return inner
        if token.startswith("@") and len(token) > 1:
            return lambda tags: token in tags
        raise ValueError(f"Expected a @tag, 'not' or '(' in tag expression {self.source!r}, got {token!r}")
