"""Reporter fan-out and the built-in formatters."""

from typing import Any, Dict, Optional, TextIO

from ..config import FormatOptions, FormatSpec
from ..constants import FORMAT_HTML, FORMAT_JSON, FORMAT_PROGRESS, FORMAT_PROGRESS_BAR, FORMAT_SUMMARY
from ..errors import ConfigError
from .base import EventConsumer, Output, ResultRenderer, consumes_events, renders_results
from .console_output import ProgressBarFormatter, ProgressFormatter, SummaryFormatter, render_summary
from .fanout import ReporterFanout
from .html_output import HtmlFormatter, build_report_html
from .json_output import JsonFormatter, build_report_json

FORMATTERS: Dict[str, Any] = {
    FORMAT_PROGRESS: ProgressFormatter,
    FORMAT_PROGRESS_BAR: ProgressBarFormatter,
    FORMAT_SUMMARY: SummaryFormatter,
    FORMAT_HTML: HtmlFormatter,
    FORMAT_JSON: JsonFormatter,
}


def build_formatter(spec: FormatSpec, options: Optional[FormatOptions] = None, stream: Optional[TextIO] = None):
    """
    Instantiate the built-in formatter named by a format spec.

    Args:
        spec: Parsed format entry ('html:report.html' -> name + destination)
        options: Run-wide format options; the formatter gets its own section
        stream: Stream to write to when the format entry names no destination

    Raises:
        ConfigError: If the formatter identifier is unknown
    """
    formatter_class = FORMATTERS.get(spec.name)
    if formatter_class is None:
        raise ConfigError(f"Unknown formatter: {spec.name!r}", field="format")
    formatter_options = options.for_formatter(spec.name) if options is not None else {}
    stream = None if spec.destination else stream
    return formatter_class(destination=spec.destination, options=formatter_options, stream=stream)


__all__ = [
    "EventConsumer",
    "FORMATTERS",
    "HtmlFormatter",
    "JsonFormatter",
    "Output",
    "ProgressBarFormatter",
    "ProgressFormatter",
    "ReporterFanout",
    "ResultRenderer",
    "SummaryFormatter",
    "build_formatter",
    "build_report_html",
    "build_report_json",
    "consumes_events",
    "render_summary",
    "renders_results",
]
