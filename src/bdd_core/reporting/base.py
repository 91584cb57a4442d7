"""
Formatter capabilities and output destinations.

A formatter is any object exposing one or both of:

- ``handle_event(event)``: receives live RunEvents while scenarios execute
- ``render(result)``: receives the frozen RunResult once, after the run

The fan-out checks for these capabilities instead of requiring a common
base class, so plain objects and third-party sinks plug in unchanged.
"""

import sys
from pathlib import Path
from typing import Any, Optional, Protocol, TextIO, runtime_checkable

from ..events import RunEvent
from ..results import RunResult


@runtime_checkable
class EventConsumer(Protocol):
    def handle_event(self, event: RunEvent) -> None: ...


@runtime_checkable
class ResultRenderer(Protocol):
    def render(self, result: RunResult) -> Any: ...


def consumes_events(formatter: Any) -> bool:
    return callable(getattr(formatter, "handle_event", None))


def renders_results(formatter: Any) -> bool:
    return callable(getattr(formatter, "render", None))


class Output:
    """
    Text sink for a formatter: a file path, an explicit stream, or stdout.

    A file destination is opened lazily on first write, so a formatter that
    never produces output never creates its file. Parent directories are
    created as needed.
    """

    def __init__(self, destination: Optional[str] = None, stream: Optional[TextIO] = None):
        self.destination = destination
        self._stream = stream
        self._file: Optional[TextIO] = None

    @property
    def stream(self) -> TextIO:
        if self._stream is not None:
            return self._stream
        if self.destination:
            if self._file is None:
                path = Path(self.destination)
                path.parent.mkdir(parents=True, exist_ok=True)
                self._file = open(path, "w", encoding="utf-8")
            return self._file
        return sys.stdout

    @property
    def is_terminal(self) -> bool:
        if self._stream is None and self.destination:
            return False
        isatty = getattr(self.stream, "isatty", None)
        return bool(isatty and isatty())

    def write(self, text: str) -> None:
        self.stream.write(text)

    def print(self, *args: Any) -> None:
        print(*args, file=self.stream)

    def flush(self) -> None:
        flush = getattr(self.stream, "flush", None)
        if flush:
            flush()

    def close(self) -> None:
        """Close the file opened for a path destination; streams are left open."""
        if self._file is not None:
            self._file.close()
            self._file = None
