"""Shared fixtures for bdd-core tests."""

import pytest

from bdd_core import StepRegistry, parse

LOGIN_FEATURE = """\
Feature: Login
  Users sign in to reach their dashboard.

  Scenario: Successful login
    Given a registered user "alice"
    When "alice" logs in with password "secret"
    Then the dashboard is shown

  Scenario: Password reset
    Given a registered user "bob"
    When "bob" requests a password reset
    Then a reset email is sent
"""


def build_login_registry() -> StepRegistry:
    """Registry with every Login step except the password reset request."""
    registry = StepRegistry()

    @registry.given("a registered user {string}")
    def registered_user(context, name):
        context.users = {name: "secret"}

    @registry.when("{string} logs in with password {string}")
    def logs_in(context, name, password):
        context.logged_in = context.users.get(name) == password

    @registry.then("the dashboard is shown")
    def dashboard_shown(context):
        assert context.logged_in

    @registry.then("a reset email is sent")
    def reset_email_sent(context):
        raise AssertionError("must never run")

    return registry


@pytest.fixture
def registry():
    return StepRegistry()


@pytest.fixture
def login_registry():
    return build_login_registry()


@pytest.fixture
def login_document():
    return parse(LOGIN_FEATURE, uri="features/login.feature")
