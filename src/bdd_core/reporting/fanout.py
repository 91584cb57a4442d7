"""
Reporter fan-out - delivers one run to many independent formatters.

Live events go to formatters that can consume them; the frozen RunResult
goes to every formatter that can render it, concurrently. A failing
formatter is isolated: its error is logged and collected, it receives
nothing further, and every other formatter still gets the full result.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Union

from ..errors import FormatterError
from ..events import RunEvent
from ..results import RunResult
from .base import EventConsumer, ResultRenderer, consumes_events, renders_results

logger = logging.getLogger(__name__)

Formatter = Union[EventConsumer, ResultRenderer]


@dataclass
class AttachedFormatter:
    name: str
    formatter: Any
    failed: bool = False


class ReporterFanout:
    """
    Fan-out over attached formatters.

    Example:
        fanout = ReporterFanout()
        fanout.attach(ProgressFormatter(), "progress")
        fanout.attach(HtmlFormatter("report.html"), "html")
        fanout.emit(RunStarted(total_scenarios=3, total_steps=12))
        errors = await fanout.publish(result)
    """

    def __init__(self) -> None:
        self._attached: List[AttachedFormatter] = []
        self._errors: List[FormatterError] = []

    def attach(self, formatter: Formatter, name: Optional[str] = None) -> None:
        """
        Attach a formatter.

        Raises:
            TypeError: If the object can neither consume events nor render results
        """
        if not (consumes_events(formatter) or renders_results(formatter)):
            raise TypeError(f"{formatter!r} exposes neither handle_event nor render")
        self._attached.append(AttachedFormatter(name=name or type(formatter).__name__, formatter=formatter))

    @property
    def formatters(self) -> List[Any]:
        return [a.formatter for a in self._attached]

    @property
    def errors(self) -> List[FormatterError]:
        return list(self._errors)

    def _fail(self, attached: AttachedFormatter, exc: BaseException, phase: str) -> None:
        attached.failed = True
        error = FormatterError(attached.name, exc, phase=phase)
        self._errors.append(error)
        logger.warning("Formatter %s failed during %s: %s", attached.name, phase, exc)

    def emit(self, event: RunEvent) -> None:
        """Deliver a live event to every healthy event-consuming formatter."""
        for attached in self._attached:
            if attached.failed or not consumes_events(attached.formatter):
                continue
            try:
                attached.formatter.handle_event(event)
            except Exception as e:
                self._fail(attached, e, "event")

    async def _render(self, attached: AttachedFormatter, result: RunResult) -> None:
        render = attached.formatter.render
        try:
            if inspect.iscoroutinefunction(render):
                await render(result)
            else:
                await asyncio.to_thread(render, result)
        except Exception as e:
            self._fail(attached, e, "render")

    async def publish(self, result: RunResult) -> List[FormatterError]:
        """
        Deliver the frozen result to every healthy rendering formatter.

        Renders run concurrently; blocking renders run in worker threads.

        Returns:
            Every FormatterError collected during the run, events included
        """
        targets = [a for a in self._attached if not a.failed and renders_results(a.formatter)]
        logger.debug("Publishing run result to %d formatter(s)", len(targets))
        await asyncio.gather(*(self._render(a, result) for a in targets))
        return self.errors
