"""
Step registry - binds step patterns to executable step definitions.

The registry is an explicitly constructed object. Step sources receive it at
start-up and register their definitions; the runner freezes it before the
first scenario executes, after which it is read-only and safe to share
between concurrently running scenarios.

Example usage:
    from bdd_core import StepRegistry

    registry = StepRegistry()

    @registry.given('a user "{word}" exists')
    def user_exists(context, name):
        context.user = name

    @registry.when("{word} logs in")
    async def logs_in(context, name):
        context.session = await login(name)

    @registry.before_scenario(tags="@db")
    def reset_db(context):
        ...
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Union

from .errors import AmbiguousMatchError, DuplicatePatternError, RegistryFrozenError
from .matchers import Matcher, MatcherKind, StepArguments, build_matcher
from .tags import TagExpression

logger = logging.getLogger(__name__)

StepFunction = Callable[..., Any]


def describe_callable(func: Callable[..., Any]) -> str:
    """Human-readable location of a callable ('module.func (file:line)')."""
    name = f"{getattr(func, '__module__', '?')}.{getattr(func, '__qualname__', repr(func))}"
    code = getattr(func, "__code__", None)
    if code is not None:
        return f"{name} ({code.co_filename}:{code.co_firstlineno})"
    return name


@dataclass(frozen=True)
class StepDefinition:
    """
    A step pattern bound to a step function.

    Attributes:
        matcher: Compiled matcher for the pattern
        func: Step function, called as func(context, *args, **kwargs)
        keyword: Keyword used at registration ('given', 'when', 'then', 'step')
        location: Where the step function is defined
    """

    matcher: Matcher
    func: StepFunction
    keyword: str = "step"
    location: str = ""

    @property
    def pattern(self) -> str:
        return self.matcher.source

    @property
    def kind(self) -> MatcherKind:
        return self.matcher.kind

    def describe(self) -> str:
        return f"{self.pattern!r} -> {self.location}"


@dataclass(frozen=True)
class StepMatch:
    """A step definition together with the arguments it extracted."""

    definition: StepDefinition
    arguments: StepArguments = field(default_factory=StepArguments)


class HookKind(str, Enum):
    BEFORE_ALL = "before_all"
    AFTER_ALL = "after_all"
    BEFORE_SCENARIO = "before_scenario"
    AFTER_SCENARIO = "after_scenario"
    BEFORE_STEP = "before_step"
    AFTER_STEP = "after_step"


@dataclass(frozen=True)
class Hook:
    """A hook callable, optionally scoped to scenarios by tag expression."""

    kind: HookKind
    func: Callable[..., Any]
    tags: Optional[TagExpression] = None
    location: str = ""

    @property
    def name(self) -> str:
        return f"{self.kind.value}:{getattr(self.func, '__name__', 'hook')}"

    def applies_to(self, tags: Iterable[str]) -> bool:
        return self.tags is None or self.tags.evaluate(tags)


class StepRegistry:
    """
    Registry of step definitions and hooks for a single run.

    Registration is write-once: an identical pattern cannot be bound twice,
    and nothing can be registered once ``freeze()`` has been called.
    Ambiguity between different patterns that match the same text is only
    detected at match time.
    """

    def __init__(self) -> None:
        self._definitions: List[StepDefinition] = []
        self._by_pattern: Dict[Tuple[MatcherKind, str], StepDefinition] = {}
        self._hooks: Dict[HookKind, List[Hook]] = {kind: [] for kind in HookKind}
        self._frozen = False

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def _check_writable(self) -> None:
        if self._frozen:
            raise RegistryFrozenError("Step registry is frozen; register steps before the run starts")

    def register(
        self,
        pattern: Union[str, Pattern[str]],
        func: StepFunction,
        kind: Optional[Union[MatcherKind, str]] = None,
        keyword: str = "step",
    ) -> StepDefinition:
        """
        Register a step definition.

        Args:
            pattern: Literal text, regex (compiled or ^...$) or parameterized pattern
            func: Step function, sync or async, called with the scenario context first
            kind: Force a matcher kind instead of inferring it
            keyword: Informational keyword; matching ignores keywords

        Returns:
            The new StepDefinition

        Raises:
            DuplicatePatternError: If an identical pattern is already registered
            RegistryFrozenError: If the registry is frozen
            ValueError: If the pattern cannot be compiled
        """
        self._check_writable()
        matcher = build_matcher(pattern, kind)
        key = (matcher.kind, matcher.source)
        existing = self._by_pattern.get(key)
        if existing is not None:
            raise DuplicatePatternError(matcher.source, existing.location)

        definition = StepDefinition(
            matcher=matcher,
            func=func,
            keyword=keyword,
            location=describe_callable(func),
        )
        self._definitions.append(definition)
        self._by_pattern[key] = definition
        logger.debug("Registered %s step %r (%s)", keyword, matcher.source, matcher.kind.value)
        return definition

    def _decorator(self, keyword: str, pattern: Union[str, Pattern[str]], kind: Optional[Union[MatcherKind, str]]):
        def decorate(func: StepFunction) -> StepFunction:
            self.register(pattern, func, kind=kind, keyword=keyword)
            return func

        return decorate

    def given(self, pattern: Union[str, Pattern[str]], kind: Optional[Union[MatcherKind, str]] = None):
        return self._decorator("given", pattern, kind)

    def when(self, pattern: Union[str, Pattern[str]], kind: Optional[Union[MatcherKind, str]] = None):
        return self._decorator("when", pattern, kind)

    def then(self, pattern: Union[str, Pattern[str]], kind: Optional[Union[MatcherKind, str]] = None):
        return self._decorator("then", pattern, kind)

    def step(self, pattern: Union[str, Pattern[str]], kind: Optional[Union[MatcherKind, str]] = None):
        return self._decorator("step", pattern, kind)

    # -------------------------------------------------------------------------
    # Hooks
    # -------------------------------------------------------------------------

    def add_hook(self, kind: HookKind, func: Callable[..., Any], tags: Optional[str] = None) -> Hook:
        """
        Register a hook.

        before_all/after_all hooks take no arguments; scenario hooks receive
        the scenario context; step hooks receive the context and the Step.
        Tag expressions only apply to scenario and step hooks.
        """
        self._check_writable()
        kind = HookKind(kind)
        expression = TagExpression.parse(tags) if tags else None
        if expression is not None and kind in (HookKind.BEFORE_ALL, HookKind.AFTER_ALL):
            raise ValueError(f"{kind.value} hooks cannot be scoped by tags")
        hook = Hook(kind=kind, func=func, tags=expression, location=describe_callable(func))
        self._hooks[kind].append(hook)
        return hook

    def _hook_decorator(self, kind: HookKind, func: Optional[Callable[..., Any]], tags: Optional[str]):
        if func is not None:
            self.add_hook(kind, func, tags=tags)
            return func

        def decorate(inner: Callable[..., Any]) -> Callable[..., Any]:
            self.add_hook(kind, inner, tags=tags)
            return inner

        return decorate

    def before_all(self, func: Optional[Callable[..., Any]] = None):
        return self._hook_decorator(HookKind.BEFORE_ALL, func, None)

    def after_all(self, func: Optional[Callable[..., Any]] = None):
        return self._hook_decorator(HookKind.AFTER_ALL, func, None)

    def before_scenario(self, func: Optional[Callable[..., Any]] = None, *, tags: Optional[str] = None):
        return self._hook_decorator(HookKind.BEFORE_SCENARIO, func, tags)

    def after_scenario(self, func: Optional[Callable[..., Any]] = None, *, tags: Optional[str] = None):
        return self._hook_decorator(HookKind.AFTER_SCENARIO, func, tags)

    def before_step(self, func: Optional[Callable[..., Any]] = None, *, tags: Optional[str] = None):
        return self._hook_decorator(HookKind.BEFORE_STEP, func, tags)

    def after_step(self, func: Optional[Callable[..., Any]] = None, *, tags: Optional[str] = None):
        return self._hook_decorator(HookKind.AFTER_STEP, func, tags)

    def hooks(self, kind: HookKind, tags: Iterable[str] = ()) -> List[Hook]:
        """
        Hooks of a kind that apply to the given tags.

        Before-hooks come back in registration order, after-hooks in reverse.
        """
        tag_set = frozenset(tags)
        selected = [hook for hook in self._hooks[HookKind(kind)] if hook.applies_to(tag_set)]
        if kind in (HookKind.AFTER_ALL, HookKind.AFTER_SCENARIO, HookKind.AFTER_STEP):
            selected.reverse()
        return selected

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def match(self, text: str) -> List[StepMatch]:
        """
        All step definitions matching a step text.

        Returns:
            Zero, one or several candidates, in registration order
        """
        matches: List[StepMatch] = []
        for definition in self._definitions:
            arguments = definition.matcher.match(text)
            if arguments is not None:
                matches.append(StepMatch(definition=definition, arguments=arguments))
        return matches

    def resolve(self, text: str) -> Optional[StepMatch]:
        """
        The single step definition for a step text.

        Returns:
            The match, or None if the step is undefined

        Raises:
            AmbiguousMatchError: If more than one definition matches
        """
        matches = self.match(text)
        if not matches:
            return None
        if len(matches) > 1:
            raise AmbiguousMatchError(text, [m.definition.describe() for m in matches])
        return matches[0]

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def freeze(self) -> None:
        """Make the registry read-only for the duration of a run."""
        if not self._frozen:
            logger.debug(
                "Freezing step registry: %d definition(s), %d hook(s)",
                len(self._definitions),
                sum(len(h) for h in self._hooks.values()),
            )
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def definitions(self) -> Tuple[StepDefinition, ...]:
        return tuple(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)
