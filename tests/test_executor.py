"""Tests for the scenario executor."""

import asyncio
import sys
import threading
import time

import pytest

from bdd_core import PendingStep, ScenarioExecutor, Status, parse
from bdd_core.executor import ScenarioRun, ScenarioState


def first_scenario(text):
    document = parse(text, uri="test.feature")
    feature = document.features[0]
    return feature, feature.scenarios[0]


def execute(executor, text):
    feature, scenario = first_scenario(text)
    return asyncio.run(executor.execute(feature, scenario))


THREE_STEPS = """
Feature: F
  Scenario: S
    Given step one
    When step two
    Then step three
"""


class TestStepOutcomes:
    """Tests for per-step outcomes and the skip rule."""

    def test_all_steps_pass(self, registry):
        """Test a fully defined scenario passes."""
        for text in ("step one", "step two", "step three"):
            registry.register(text, lambda context: None)

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        assert result.status == Status.PASSED
        assert [s.status for s in result.steps] == [Status.PASSED] * 3
        assert all(s.location for s in result.steps)

    def test_undefined_step_skips_the_rest(self, registry):
        """Test an undefined step is reported with a snippet and later steps are skipped."""
        registry.register("step one", lambda context: None)
        registry.register("step three", lambda context: None)

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        assert [s.status for s in result.steps] == [Status.PASSED, Status.UNDEFINED, Status.SKIPPED]
        assert result.status == Status.UNDEFINED
        assert "@registry.when('step two')" in result.steps[1].snippet

    def test_failure_captures_error_detail(self, registry):
        """Test an exception fails the step with its type, message and traceback."""

        def explode(context):
            raise KeyError("missing")

        registry.register("step one", explode)
        registry.register("step two", lambda context: None)
        registry.register("step three", lambda context: None)

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        failed = result.steps[0]
        assert failed.status == Status.FAILED
        assert failed.error.type == "KeyError"
        assert "missing" in failed.error.message
        assert "explode" in failed.error.traceback
        assert [s.status for s in result.steps[1:]] == [Status.SKIPPED, Status.SKIPPED]

    def test_pending_step(self, registry):
        """Test PendingStep marks the step pending."""

        def not_yet(context):
            raise PendingStep("waiting on the API")

        registry.register("step one", not_yet)
        registry.register("step two", lambda context: None)

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        assert result.steps[0].status == Status.PENDING
        assert result.steps[0].error.message == "waiting on the API"
        assert result.status == Status.PENDING

    def test_returning_pending(self, registry):
        """Test returning the string 'pending' marks the step pending."""
        registry.register("step one", lambda context: "pending")
        result = execute(ScenarioExecutor(registry), THREE_STEPS)
        assert result.steps[0].status == Status.PENDING

    def test_ambiguous_step_fails(self, registry):
        """Test an ambiguous step fails with the candidates."""
        registry.register("step one", lambda context: None)
        registry.register("^step (one)$", lambda context, n: None)

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        assert result.steps[0].status == Status.FAILED
        assert result.steps[0].ambiguous
        assert result.steps[1].status == Status.SKIPPED


class TestStepFunctions:
    """Tests for how step functions are called."""

    def test_arguments_and_context(self, registry):
        """Test extracted arguments reach the step and context is shared within the scenario."""

        @registry.given('a user "{word}" with {int} points')
        def user(context, name, points):
            context.user = (name, points)

        @registry.then("the user is known")
        def known(context):
            assert context.user == ("alice", 10)

        result = execute(
            ScenarioExecutor(registry),
            'Feature: F\n  Scenario: S\n    Given a user "alice" with 10 points\n    Then the user is known\n',
        )
        assert result.status == Status.PASSED

    def test_async_step(self, registry):
        """Test async step functions are awaited."""

        @registry.given("an async step")
        async def async_step(context):
            await asyncio.sleep(0)
            context.ran = True

        @registry.then("it ran")
        def it_ran(context):
            assert context.ran

        result = execute(ScenarioExecutor(registry), "Feature: F\n  Scenario: S\n    Given an async step\n    Then it ran\n")
        assert result.status == Status.PASSED

    def test_table_and_doc_string_on_context(self, registry):
        """Test the step argument is exposed as context.table / context.text."""
        seen = {}

        @registry.given("the users")
        def users(context):
            seen["users"] = context.table.as_dicts()

        @registry.given("a note")
        def note(context):
            seen["note"] = context.text

        execute(
            ScenarioExecutor(registry),
            'Feature: F\n  Scenario: S\n    Given the users\n      | name |\n      | bob  |\n'
            '    And a note\n      """\n      hi\n      """\n',
        )
        assert seen == {"users": [{"name": "bob"}], "note": "hi"}

    def test_step_timeout(self, registry):
        """Test a step exceeding the timeout fails."""

        @registry.given("step one")
        async def slow(context):
            await asyncio.sleep(5)

        result = execute(ScenarioExecutor(registry, step_timeout=0.05), THREE_STEPS)

        assert result.steps[0].status == Status.FAILED
        assert result.steps[0].error.type == "StepTimeoutError"

    def test_dry_run_does_not_call_steps(self, registry):
        """Test a dry run resolves steps without executing them."""
        calls = []
        registry.register("step one", lambda context: calls.append(1))
        registry.register("step three", lambda context: calls.append(3))

        result = execute(ScenarioExecutor(registry, dry_run=True), THREE_STEPS)

        assert calls == []
        assert [s.status for s in result.steps] == [Status.SKIPPED, Status.UNDEFINED, Status.SKIPPED]
        assert result.steps[0].location is not None


class TestBaseExceptionContainment:
    """Tests for step and hook errors that are not Exception subclasses."""

    @pytest.mark.parametrize("step_timeout", [None, 1.0])
    def test_pytest_fail_fails_the_step(self, registry, step_timeout):
        """Test a pytest outcome raised by a step fails only that step."""

        def fails(context):
            pytest.fail("boom")

        registry.register("step one", fails)
        registry.register("step two", lambda context: None)

        result = execute(ScenarioExecutor(registry, step_timeout=step_timeout), THREE_STEPS)

        assert [s.status for s in result.steps] == [Status.FAILED, Status.SKIPPED, Status.SKIPPED]
        assert "boom" in result.steps[0].error.message

    @pytest.mark.parametrize("step_timeout", [None, 1.0])
    def test_sys_exit_in_async_step(self, registry, step_timeout):
        """Test SystemExit from an async step is captured, with or without a timeout."""

        @registry.given("step one")
        async def exits(context):
            sys.exit(3)

        result = execute(ScenarioExecutor(registry, step_timeout=step_timeout), THREE_STEPS)

        assert result.steps[0].status == Status.FAILED
        assert result.steps[0].error.type == "SystemExit"

    def test_hook_and_cleanup_outcomes_are_captured(self, registry):
        """Test hooks and cleanups raising BaseException are recorded as failed."""

        def skip_cleanup():
            pytest.skip("not here")

        @registry.before_scenario
        def register_cleanup(context):
            context.add_cleanup(skip_cleanup)

        @registry.after_scenario
        def exits(context):
            sys.exit(1)

        registry.register("step one", lambda context: None)

        result = execute(ScenarioExecutor(registry), "Feature: F\n  Scenario: S\n    Given step one\n")

        assert result.status == Status.FAILED
        assert [h.status for h in result.hooks] == [Status.PASSED, Status.FAILED, Status.FAILED]
        assert result.hooks[1].error.type == "SystemExit"
        assert result.hooks[2].name == "cleanup:skip_cleanup"

    def test_keyboard_interrupt_propagates(self, registry):
        def interrupt(context):
            raise KeyboardInterrupt

        registry.register("step one", interrupt)
        with pytest.raises(KeyboardInterrupt):
            execute(ScenarioExecutor(registry), THREE_STEPS)


class TestHooksAndCleanups:
    """Tests for scenario and step hooks."""

    def test_hook_order(self, registry):
        """Test before/after hooks wrap the steps and cleanups run last in LIFO order."""
        calls = []

        @registry.before_scenario
        def before(context):
            calls.append("before")
            context.add_cleanup(calls.append, "cleanup-1")
            context.add_cleanup(calls.append, "cleanup-2")

        @registry.before_step
        def before_step(context, step):
            calls.append(f"before_step:{step.text}")

        @registry.after_scenario
        def after(context):
            calls.append("after")

        registry.register("step one", lambda context: calls.append("one"))

        execute(ScenarioExecutor(registry), "Feature: F\n  Scenario: S\n    Given step one\n")

        assert calls == ["before", "before_step:step one", "one", "after", "cleanup-2", "cleanup-1"]

    def test_failing_before_hook_skips_steps(self, registry):
        """Test a failing before_scenario hook skips every step but after hooks still run."""
        calls = []

        @registry.before_scenario
        def broken(context):
            raise RuntimeError("no database")

        @registry.after_scenario
        def after(context):
            calls.append("after")

        registry.register("step one", lambda context: calls.append("one"))

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        assert calls == ["after"]
        assert all(s.status == Status.SKIPPED for s in result.steps)
        assert result.status == Status.FAILED
        assert result.hooks[0].error.message == "no database"

    def test_after_hook_runs_after_failure(self, registry):
        """Test after_scenario hooks run even when a step failed."""
        calls = []

        def boom(context):
            raise AssertionError("boom")

        registry.register("step one", boom)
        registry.after_scenario(lambda context: calls.append("after"))

        result = execute(ScenarioExecutor(registry), THREE_STEPS)

        assert calls == ["after"]
        assert result.status == Status.FAILED

    def test_tagged_hook_only_for_matching_scenarios(self, registry):
        """Test a tag-scoped hook is skipped for scenarios without the tag."""
        calls = []

        @registry.before_scenario(tags="@db")
        def reset(context):
            calls.append(context.scenario.name)

        registry.register("step one", lambda context: None)
        text = "Feature: F\n  @db\n  Scenario: A\n    Given step one\n  Scenario: B\n    Given step one\n"
        document = parse(text)
        feature = document.features[0]
        executor = ScenarioExecutor(registry)
        for scenario in feature.scenarios:
            asyncio.run(executor.execute(feature, scenario))

        assert calls == ["A"]


class TestCancellationAndEvents:
    """Tests for cancellation and step callbacks."""

    def test_cancel_skips_remaining_steps(self, registry):
        """Test steps after a cancellation request are skipped."""
        cancel = threading.Event()

        def cancel_now(context):
            cancel.set()

        registry.register("step one", cancel_now)
        registry.register("step two", lambda context: None)

        result = execute(ScenarioExecutor(registry, cancel_event=cancel), THREE_STEPS)

        assert [s.status for s in result.steps] == [Status.PASSED, Status.SKIPPED, Status.SKIPPED]

    def test_every_step_is_reported_in_order(self, registry):
        """Test on_step_complete fires once per step in declaration order."""
        reported = []
        registry.register("step one", lambda context: None)

        executor = ScenarioExecutor(
            registry,
            on_step_complete=lambda scenario_id, index, result: reported.append((index, result.status)),
        )
        execute(executor, THREE_STEPS)

        assert reported == [(0, Status.PASSED), (1, Status.UNDEFINED), (2, Status.SKIPPED)]

    def test_sync_steps_do_not_block_the_loop(self, registry):
        """Test blocking steps of two scenarios overlap when run concurrently."""

        @registry.given("step one")
        def blocking(context):
            time.sleep(0.2)

        feature, scenario = first_scenario("Feature: F\n  Scenario: S\n    Given step one\n")
        executor = ScenarioExecutor(registry)

        async def both():
            start = time.monotonic()
            await asyncio.gather(executor.execute(feature, scenario), executor.execute(feature, scenario))
            return time.monotonic() - start

        assert asyncio.run(both()) < 0.39


class TestScenarioRun:
    """Tests for the per-scenario state machine."""

    def test_transitions(self, login_document):
        """Test not_started -> running -> terminal."""
        _, scenario = next(iter(login_document.iter_scenarios()))
        run = ScenarioRun(scenario)
        run.start()
        assert run.state == ScenarioState.RUNNING
        run.finish(Status.UNDEFINED)
        assert run.state == ScenarioState.UNDEFINED
        assert run.state.terminal

    def test_terminal_state_cannot_restart(self, login_document):
        _, scenario = next(iter(login_document.iter_scenarios()))
        run = ScenarioRun(scenario)
        run.start()
        run.finish(Status.PASSED)
        with pytest.raises(RuntimeError):
            run.start()
