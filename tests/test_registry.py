"""Tests for the step registry and tag expressions."""

import re

import pytest

from bdd_core import (
    AmbiguousMatchError,
    DuplicatePatternError,
    HookKind,
    MatcherKind,
    RegistryFrozenError,
    StepRegistry,
    TagExpression,
)


def noop(context, *args, **kwargs):
    pass


class TestRegistration:
    """Tests for registering step definitions."""

    def test_register_returns_definition(self, registry):
        """Test register() infers the kind and records the location."""
        definition = registry.register("I have {int} cukes", noop)
        assert definition.kind == MatcherKind.PARAMETERIZED
        assert definition.pattern == "I have {int} cukes"
        assert "noop" in definition.location
        assert len(registry) == 1

    def test_duplicate_literal_pattern_raises(self, registry):
        """Test the same literal pattern cannot be bound twice."""
        registry.register("the dashboard is shown", noop)
        with pytest.raises(DuplicatePatternError) as exc_info:
            registry.register("the dashboard is shown", lambda context: None)
        assert exc_info.value.pattern == "the dashboard is shown"
        assert "noop" in exc_info.value.existing_location
        assert len(registry) == 1

    def test_same_source_different_kind_is_allowed(self, registry):
        """Test duplicates are keyed by kind and source."""
        registry.register("I have {int} cukes", noop)
        registry.register("I have {int} cukes", noop, kind="literal")
        assert len(registry) == 2

    def test_decorators(self, registry):
        """Test given/when/then/step decorators register and return the function."""

        @registry.given("a user")
        def a_user(context):
            pass

        @registry.when("she logs in")
        def logs_in(context):
            pass

        @registry.then("she is in")
        def is_in(context):
            pass

        @registry.step("anything")
        def anything(context):
            pass

        assert [d.keyword for d in registry.definitions] == ["given", "when", "then", "step"]
        assert callable(a_user)

    def test_frozen_registry_rejects_registration(self, registry):
        """Test nothing can be registered after freeze()."""
        registry.freeze()
        assert registry.frozen
        with pytest.raises(RegistryFrozenError):
            registry.register("late", noop)
        with pytest.raises(RegistryFrozenError):
            registry.add_hook(HookKind.BEFORE_SCENARIO, noop)

    def test_invalid_pattern(self, registry):
        with pytest.raises(ValueError):
            registry.register("^unbalanced ($", noop)


class TestMatching:
    """Tests for match() and resolve()."""

    def test_resolve_single_match(self, registry):
        """Test resolve() returns the definition and its arguments."""
        registry.register('a user "{word}"', noop)
        match = registry.resolve('a user "alice"')
        assert match is not None
        assert match.arguments.args == ("alice",)

    def test_resolve_undefined(self, registry):
        """Test resolve() returns None when nothing matches."""
        registry.register("something else", noop)
        assert registry.resolve("no such step") is None

    def test_keyword_is_ignored(self, registry):
        """Test a 'given' definition matches any step keyword."""
        registry.given("the cart is empty")(noop)
        assert registry.resolve("the cart is empty") is not None

    def test_ambiguous_match(self, registry):
        """Test two patterns matching the same text raise with all candidates."""
        registry.register("I have {int} cukes", noop)
        registry.register(re.compile(r"I have (\d+) cukes"), noop)

        assert len(registry.match("I have 3 cukes")) == 2
        with pytest.raises(AmbiguousMatchError) as exc_info:
            registry.resolve("I have 3 cukes")
        assert len(exc_info.value.candidates) == 2
        assert "I have {int} cukes" in exc_info.value.candidates[0]


class TestHooks:
    """Tests for hook registration and selection."""

    def test_hook_decorators_bare_and_with_tags(self, registry):
        """Test hook decorators work with and without arguments."""

        @registry.before_scenario
        def always(context):
            pass

        @registry.before_scenario(tags="@db")
        def database_only(context):
            pass

        assert [h.func for h in registry.hooks(HookKind.BEFORE_SCENARIO, {"@db"})] == [always, database_only]
        assert [h.func for h in registry.hooks(HookKind.BEFORE_SCENARIO, {"@ui"})] == [always]

    def test_direct_call_keeps_tags(self, registry):
        """Test passing the hook function directly still scopes it by tag."""

        def database_only(context):
            pass

        registry.before_scenario(database_only, tags="@db")

        assert registry.hooks(HookKind.BEFORE_SCENARIO, {"@ui"}) == []
        assert [h.func for h in registry.hooks(HookKind.BEFORE_SCENARIO, {"@db"})] == [database_only]

    def test_after_hooks_run_in_reverse(self, registry):
        """Test after-hooks come back in reverse registration order."""

        @registry.after_scenario
        def first(context):
            pass

        @registry.after_scenario
        def second(context):
            pass

        assert [h.func for h in registry.hooks(HookKind.AFTER_SCENARIO)] == [second, first]

    def test_hook_name(self, registry):
        hook = registry.add_hook(HookKind.BEFORE_ALL, noop)
        assert hook.name == "before_all:noop"

    def test_run_hooks_cannot_be_tagged(self, registry):
        """Test before_all/after_all reject tag expressions."""
        with pytest.raises(ValueError, match="cannot be scoped by tags"):
            registry.add_hook(HookKind.AFTER_ALL, noop, tags="@x")


class TestTagExpression:
    """Tests for tag expression parsing and evaluation."""

    @pytest.mark.parametrize(
        "expression,tags,expected",
        [
            ("@smoke", {"@smoke"}, True),
            ("@smoke", {"@slow"}, False),
            ("not @wip", {"@smoke"}, True),
            ("not @wip", {"@wip"}, False),
            ("@a and @b", {"@a", "@b"}, True),
            ("@a and @b", {"@a"}, False),
            ("@a or @b", {"@b"}, True),
            ("@smoke and not (@wip or @slow)", {"@smoke", "@api"}, True),
            ("@smoke and not (@wip or @slow)", {"@smoke", "@slow"}, False),
            ("@a or @b and @c", {"@a"}, True),
            ("", set(), True),
        ],
    )
    def test_evaluate(self, expression, tags, expected):
        assert TagExpression.parse(expression).evaluate(tags) is expected

    @pytest.mark.parametrize("expression", ["@a and", "(@a or @b", "smoke", "@a @b", "not"])
    def test_malformed(self, expression):
        """Test malformed expressions raise ValueError."""
        with pytest.raises(ValueError):
            TagExpression.parse(expression)
