"""Exit codes and built-in formatter identifiers."""

# Exit codes per contract
EXIT_SUCCESS = 0
EXIT_EXECUTION_FAILED = 1
EXIT_PARSE_ERROR = 2
EXIT_CONFIG_ERROR = 3

FORMAT_PROGRESS = "progress"
FORMAT_PROGRESS_BAR = "progress-bar"
FORMAT_SUMMARY = "summary"
FORMAT_HTML = "html"
FORMAT_JSON = "json"

BUILTIN_FORMATS = (
    FORMAT_PROGRESS,
    FORMAT_PROGRESS_BAR,
    FORMAT_SUMMARY,
    FORMAT_HTML,
    FORMAT_JSON,
)

SNIPPET_SYNCHRONOUS = "synchronous"
SNIPPET_ASYNC_AWAIT = "async-await"
SNIPPET_INTERFACES = (SNIPPET_SYNCHRONOUS, SNIPPET_ASYNC_AWAIT)
