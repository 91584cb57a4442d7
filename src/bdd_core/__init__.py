"""
bdd-core: behaviour-driven test execution engine.

This package parses Gherkin feature documents, matches every step against a
registry of step definitions, executes scenarios in isolation and fans the
aggregated result out to any number of formatters. It supports:

- Gherkin: Feature, Background, Scenario, Scenario Outline + Examples, tags,
  data tables and doc strings
- Step patterns: literal text, regular expressions and {int}/{string}-style
  parameterized expressions; sync and async step functions
- Hooks around the run, each scenario and each step
- Sequential or bounded concurrent execution, fail fast and cancellation
- Formatters: progress, progress-bar, summary, html and json

Quick Start:
    from bdd_core import StepRegistry, run_suite

    registry = StepRegistry()

    @registry.given('I am on the "{word}" page')
    def on_page(context, page):
        context.page = page

    @registry.when("I log in as {string}")
    async def log_in(context, user):
        context.user = await app.login(user)

    outcome = run_suite(
        {"features/login.feature": open("features/login.feature").read()},
        registry,
        config={
            "format": ["progress-bar", "html:cucumber-report.html"],
            "formatOptions": {"snippetInterface": "async-await"},
        },
    )
    raise SystemExit(outcome.exit_code)

Lower-level use:
    from bdd_core import BddRunner, parse

    runner = BddRunner(registry, config={"concurrency": 4, "tags": "not @wip"})
    result = runner.run([parse(text, uri="login.feature")])
    print(result.status, result.counts())
"""

__version__ = "0.1.0"

# Model and parser exports
from .model import (
    Background,
    DataTable,
    DocString,
    Document,
    Feature,
    KeywordType,
    Scenario,
    Status,
    Step,
    worst_status,
)
from .parser import parse

# Registry exports
from .matchers import MatcherKind, build_matcher
from .registry import HookKind, StepDefinition, StepMatch, StepRegistry
from .context import Context
from .tags import TagExpression

# Execution exports
from .executor import ScenarioExecutor
from .results import (
    ErrorDetail,
    FeatureResult,
    HookResult,
    ResultAggregator,
    RunResult,
    ScenarioResult,
    StepResult,
)
from .runner import BddRunner, SuiteOutcome, exit_code_for, run_suite

# Configuration and reporting exports
from .config import FormatOptions, FormatSpec, RunConfig, load_config
from .reporting import ReporterFanout, build_formatter
from .snippets import generate_snippet

# Error exports
from .errors import (
    AmbiguousMatchError,
    BddError,
    ConfigError,
    DuplicatePatternError,
    FormatterError,
    ParseError,
    PendingStep,
    RegistryError,
    RegistryFrozenError,
    StepExecutionError,
    StepTimeoutError,
)

__all__ = [
    # Version
    "__version__",
    # Model
    "Background",
    "DataTable",
    "DocString",
    "Document",
    "Feature",
    "KeywordType",
    "Scenario",
    "Status",
    "Step",
    "worst_status",
    "parse",
    # Registry
    "StepRegistry",
    "StepDefinition",
    "StepMatch",
    "HookKind",
    "MatcherKind",
    "build_matcher",
    "Context",
    "TagExpression",
    # Execution
    "ScenarioExecutor",
    "ResultAggregator",
    "RunResult",
    "FeatureResult",
    "ScenarioResult",
    "StepResult",
    "HookResult",
    "ErrorDetail",
    "BddRunner",
    "SuiteOutcome",
    "exit_code_for",
    "run_suite",
    # Config and reporting
    "RunConfig",
    "FormatSpec",
    "FormatOptions",
    "load_config",
    "ReporterFanout",
    "build_formatter",
    "generate_snippet",
    # Errors
    "BddError",
    "ParseError",
    "RegistryError",
    "DuplicatePatternError",
    "AmbiguousMatchError",
    "RegistryFrozenError",
    "PendingStep",
    "StepExecutionError",
    "StepTimeoutError",
    "FormatterError",
    "ConfigError",
]
