"""Tests for undefined step snippets."""

import ast

import pytest

from bdd_core import generate_snippet, parse
from bdd_core.matchers import build_matcher
from bdd_core.snippets import snippet_pattern


def step_of(text):
    document = parse(text, uri="snippets.feature")
    return document.features[0].scenarios[0].steps[-1]


class TestSnippetPattern:
    """Tests for pattern derivation from step text."""

    def test_plain_text(self):
        assert snippet_pattern("the dashboard is shown") == ("the dashboard is shown", [])

    def test_parameters_are_inferred(self):
        """Test strings, integers and decimals become parameters."""
        pattern, names = snippet_pattern('I have 3 cukes in my "belly" weighing 1.5 kg')
        assert pattern == "I have {int} cukes in my {string} weighing {float} kg"
        assert names == ["count", "text", "amount"]

    def test_repeated_types_get_numbered_names(self):
        pattern, names = snippet_pattern('"alice" sends 2 messages to "bob" after 10 seconds')
        assert pattern == "{string} sends {int} messages to {string} after {int} seconds"
        assert names == ["text", "count", "text2", "count2"]

    def test_numbers_inside_words_are_kept(self):
        """Test digits that are part of a word are not parameters."""
        pattern, names = snippet_pattern("the user v2 opens page1")
        assert pattern == "the user v2 opens page1"
        assert names == []


class TestGenerateSnippet:
    """Tests for generated step definition stubs."""

    def test_async_snippet(self):
        """Test the default async-await interface."""
        step = step_of('Feature: F\n  Scenario: S\n    When "bob" requests a password reset\n')
        assert generate_snippet(step) == (
            "@registry.when('{string} requests a password reset')\n"
            "async def step_impl(context, text):\n"
            "    raise PendingStep()"
        )

    def test_synchronous_snippet(self):
        step = step_of("Feature: F\n  Scenario: S\n    Given 4 users\n")
        snippet = generate_snippet(step, "synchronous")
        assert snippet.splitlines()[:2] == ["@registry.given('{int} users')", "def step_impl(context, count):"]

    def test_conjunction_uses_previous_keyword(self):
        """Test And/But steps take the decorator of the step they continue."""
        step = step_of("Feature: F\n  Scenario: S\n    Then one thing\n    And another thing\n")
        assert generate_snippet(step).startswith("@registry.then('another thing')")

    def test_leading_star_step_is_a_given(self):
        step = step_of("Feature: F\n  Scenario: S\n    * something happens\n")
        assert generate_snippet(step).startswith("@registry.given('something happens')")

    def test_table_hint(self):
        """Test a data table argument is mentioned in the stub."""
        step = step_of("Feature: F\n  Scenario: S\n    Given the users\n      | name |\n      | bob  |\n")
        assert "context.table" in generate_snippet(step)

    def test_braces_fall_back_to_regex(self):
        step = step_of("Feature: F\n  Scenario: S\n    Given the payload {}\n")
        assert generate_snippet(step).startswith("@registry.given('^the payload \\\\{\\\\}$')")

    def test_fallback_regex_matches_its_step(self):
        """Test the generated regex keeps spaces readable and matches the step text."""
        step = step_of("Feature: F\n  Scenario: S\n    Given the body (json) is {\"a\": 1.5}\n")
        pattern = ast.literal_eval(generate_snippet(step).splitlines()[0][len("@registry.given("):-1])
        assert pattern == r'^the body \(json\) is \{"a": 1\.5\}$'
        assert build_matcher(pattern).match(step.text) is not None

    def test_unknown_interface(self):
        step = step_of("Feature: F\n  Scenario: S\n    Given a step\n")
        with pytest.raises(ValueError, match="Unknown snippet interface"):
            generate_snippet(step, "callback")
