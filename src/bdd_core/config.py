"""
Run configuration.

The engine consumes an already-loaded configuration mapping, using the
Cucumber configuration keys:

    {
        "requireModule": ["godog"],
        "require": ["test/functional/steps/*.go"],
        "format": ["progress-bar", "html:cucumber-report.html"],
        "formatOptions": {"snippetInterface": "async-await"},
        "publishQuiet": True,
    }

plus the engine's own keys: concurrency, tags, stepTimeout, dryRun and
failFast. Snake-case field names are accepted as well. Anything invalid is
reported as a ConfigError before a run starts.
"""

from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .constants import BUILTIN_FORMATS, SNIPPET_ASYNC_AWAIT, SNIPPET_INTERFACES
from .errors import ConfigError
from .tags import TagExpression


def split_format(entry: str) -> Dict[str, Optional[str]]:
    name, sep, destination = entry.partition(":")
    return {"name": name.strip(), "destination": (destination.strip() or None) if sep else None}


class FormatSpec(BaseModel):
    """One formatter entry: identifier plus optional output destination."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Formatter identifier, e.g. 'progress-bar'")
    destination: Optional[str] = Field(None, description="Output file (stdout if not set)")

    @classmethod
    def parse(cls, entry: str) -> "FormatSpec":
        """Parse 'name' or 'name:destination'."""
        return cls(**split_format(entry))

    @field_validator("name")
    @classmethod
    def _known_format(cls, value: str) -> str:
        if value not in BUILTIN_FORMATS:
            raise ValueError(f"unknown formatter {value!r} (expected one of: {', '.join(BUILTIN_FORMATS)})")
        return value

    def __str__(self) -> str:
        return f"{self.name}:{self.destination}" if self.destination else self.name


class FormatOptions(BaseModel):
    """
    Options shared by all formatters, plus one mapping per formatter.

    Example:
        {"snippetInterface": "synchronous", "progress-bar": {"width": 60}}
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    snippet_interface: str = Field(
        SNIPPET_ASYNC_AWAIT,
        alias="snippetInterface",
        description="Style of generated snippets: synchronous or async-await",
    )

    @field_validator("snippet_interface")
    @classmethod
    def _known_interface(cls, value: str) -> str:
        if value not in SNIPPET_INTERFACES:
            raise ValueError(f"unknown snippet interface {value!r} (expected one of: {', '.join(SNIPPET_INTERFACES)})")
        return value

    @model_validator(mode="after")
    def _formatter_sections(self) -> "FormatOptions":
        for key, value in (self.model_extra or {}).items():
            if key not in BUILTIN_FORMATS:
                raise ValueError(f"unknown format option {key!r}")
            if not isinstance(value, dict):
                raise ValueError(f"options for formatter {key!r} must be a mapping")
        return self

    def for_formatter(self, name: str) -> Dict[str, Any]:
        return dict((self.model_extra or {}).get(name, {}))


class RunConfig(BaseModel):
    """Validated configuration of one run."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    require_module: List[str] = Field(
        default_factory=list,
        alias="requireModule",
        description="Modules the step sources depend on (informational)",
    )
    require: List[str] = Field(default_factory=list, description="Step source locations (informational)")
    format: List[FormatSpec] = Field(
        default_factory=lambda: [FormatSpec(name="progress")],
        description="Formatters, 'name' or 'name:destination'",
    )
    format_options: FormatOptions = Field(default_factory=FormatOptions, alias="formatOptions")
    publish_quiet: bool = Field(False, alias="publishQuiet", description="Accepted; nothing is published")
    concurrency: int = Field(1, ge=1, description="Scenarios executed at the same time")
    tags: Optional[str] = Field(None, description="Tag expression selecting scenarios")
    step_timeout: Optional[float] = Field(None, gt=0, alias="stepTimeout", description="Seconds per step")
    dry_run: bool = Field(False, alias="dryRun", description="Match steps without executing them")
    fail_fast: bool = Field(False, alias="failFast", description="Stop after the first non-passing scenario")

    @field_validator("format", mode="before")
    @classmethod
    def _parse_format(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = [value]
        if isinstance(value, (list, tuple)):
            return [split_format(item) if isinstance(item, str) else item for item in value]
        return value

    @field_validator("format")
    @classmethod
    def _single_stdout(cls, value: List[FormatSpec]) -> List[FormatSpec]:
        to_stdout = [str(spec) for spec in value if spec.destination is None]
        if len(to_stdout) > 1:
            raise ValueError(f"only one formatter can write to stdout, got: {', '.join(to_stdout)}")
        destinations = [spec.destination for spec in value if spec.destination]
        if len(destinations) != len(set(destinations)):
            raise ValueError("two formatters cannot write to the same destination")
        return value

    @field_validator("tags")
    @classmethod
    def _valid_tags(cls, value: Optional[str]) -> Optional[str]:
        if value is not None:
            TagExpression.parse(value)
        return value

    @property
    def tag_expression(self) -> TagExpression:
        return TagExpression.parse(self.tags)

    @property
    def snippet_interface(self) -> str:
        return self.format_options.snippet_interface


def _describe(error: ValidationError) -> ConfigError:
    details = error.errors()
    lines = []
    for detail in details:
        location = ".".join(str(part) for part in detail.get("loc", ()))
        lines.append(f"{location or 'config'}: {detail.get('msg', '')}")
    field = ".".join(str(part) for part in details[0].get("loc", ())) if details else None
    return ConfigError("Invalid configuration:\n  " + "\n  ".join(lines), field=field or None)


def load_config(config: Union[RunConfig, Mapping[str, Any], None] = None) -> RunConfig:
    """
    Validate a configuration mapping.

    Args:
        config: Already-loaded mapping, an existing RunConfig, or None for defaults

    Returns:
        RunConfig

    Raises:
        ConfigError: If any key or value is invalid
    """
    if isinstance(config, RunConfig):
        return config
    if config is None:
        config = {}
    if not isinstance(config, Mapping):
        raise ConfigError(f"Configuration must be a mapping, got {type(config).__name__}")
    try:
        return RunConfig.model_validate(dict(config))
    except ValidationError as e:
        raise _describe(e) from e
