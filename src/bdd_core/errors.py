"""
Error taxonomy for bdd-core.

Parse and configuration errors abort a run before any scenario executes.
Registry errors surface at registration or match time. Step and formatter
errors are contained: the former end up as error details on a step result,
the latter are logged and returned by the reporter fan-out.
"""

from typing import List, Optional, Sequence


class BddError(Exception):
    """Base class for every error raised by bdd-core."""


class ParseError(BddError):
    """
    Malformed feature document.

    Attributes:
        message: Description of the malformed construct
        line: 1-based line number
        column: 1-based column number
        uri: Document identifier the text came from
    """

    def __init__(self, message: str, line: int, column: int = 1, uri: str = "<string>"):
        self.message = message
        self.line = line
        self.column = column
        self.uri = uri
        super().__init__(f"{uri}:{line}:{column}: {message}")


class RegistryError(BddError):
    """Step registry integrity problem."""


class DuplicatePatternError(RegistryError):
    """An identical step pattern is already registered."""

    def __init__(self, pattern: str, existing_location: str = ""):
        self.pattern = pattern
        self.existing_location = existing_location
        where = f" (already bound at {existing_location})" if existing_location else ""
        super().__init__(f"Duplicate step pattern: {pattern!r}{where}")


class AmbiguousMatchError(RegistryError):
    """More than one step definition matches a step text."""

    def __init__(self, text: str, candidates: Sequence[str]):
        self.text = text
        self.candidates: List[str] = list(candidates)
        listing = "\n".join(f"  - {c}" for c in self.candidates)
        super().__init__(f"Ambiguous step {text!r} matches {len(self.candidates)} definitions:\n{listing}")


class RegistryFrozenError(RegistryError):
    """Registration attempted after the registry was frozen for a run."""


class PendingStep(Exception):
    """
    Raised by a step definition that is not implemented yet.

    The step is reported as pending and the rest of the scenario is skipped.
    """

    def __init__(self, reason: str = "Step is pending"):
        self.reason = reason
        super().__init__(reason)


class StepExecutionError(BddError):
    """
    Failure raised by a step definition.

    Never propagated out of a run; the executor converts it into the error
    detail of the failed step.
    """

    def __init__(self, step_text: str, original: BaseException):
        self.step_text = step_text
        self.original = original
        super().__init__(f"Step {step_text!r} failed: {type(original).__name__}: {original}")


class StepTimeoutError(BddError):
    """A step did not complete within the configured step timeout."""

    def __init__(self, step_text: str, timeout: float):
        self.step_text = step_text
        self.timeout = timeout
        super().__init__(f"Step {step_text!r} timed out after {timeout}s")


class FormatterError(BddError):
    """A formatter failed to consume events or render the run result."""

    def __init__(self, formatter: str, original: BaseException, phase: str = "render"):
        self.formatter = formatter
        self.original = original
        self.phase = phase
        super().__init__(f"Formatter {formatter!r} failed during {phase}: {original}")


class ConfigError(BddError):
    """Invalid run configuration; the run never starts."""

    def __init__(self, message: str, field: Optional[str] = None):
        self.field = field
        super().__init__(message)
