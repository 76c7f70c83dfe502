"""Log output for the vaisu logger tree.

Three renderings of the same records:
- human: [LEVEL] message, level tag coloured on a terminal
- verbose: [LEVEL][HH:MM:SS] logger: message, plus tracebacks
- json: one object per line with level, ts, logger, msg and extra_data fields

Everything is written to stderr so that reports on stdout stay clean.
Structured fields are passed as extra={"extra_data": {...}} and are only
rendered in JSON mode.
"""

import json
import logging
import sys
from datetime import UTC, datetime
from enum import Enum
from typing import Any, TextIO

ROOT_LOGGER = "vaisu"

# Third-party loggers that are noisy at INFO
THIRD_PARTY_LOGGERS = ("LiteLLM", "httpx", "httpcore")

_RESET = "\033[0m"
_LEVEL_COLORS = {
    logging.DEBUG: "\033[90m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}


class LogMode(Enum):
    """How log records are rendered."""

    HUMAN = "human"
    VERBOSE = "verbose"
    JSON = "json"


def _supports_color(stream: TextIO | None) -> bool:
    target = stream if stream is not None else sys.stderr
    isatty = getattr(target, "isatty", None)
    return bool(isatty and isatty())


class HumanFormatter(logging.Formatter):
    """[LEVEL] message"""

    def __init__(self, use_colors: bool = False) -> None:
        super().__init__()
        self.use_colors = use_colors

    def _level(self, record: logging.LogRecord) -> str:
        tag = f"[{record.levelname}]"
        if not self.use_colors:
            return tag
        return f"{_LEVEL_COLORS.get(record.levelno, _RESET)}{tag}{_RESET}"

    def format(self, record: logging.LogRecord) -> str:
        return f"{self._level(record)} {record.getMessage()}"


class VerboseFormatter(HumanFormatter):
    """[LEVEL][HH:MM:SS] logger: message, followed by any traceback."""

    def format(self, record: logging.LogRecord) -> str:
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{self._level(record)}[{clock}] {record.name}: {record.getMessage()}"
        if record.exc_info:
            return f"{line}\n{self.formatException(record.exc_info)}"
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record, for CI and log shippers.

    Keys: level, ts (ISO 8601, UTC), logger, msg, the record's extra_data
    entries and exc when a traceback is attached.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "level": record.levelname,
            "ts": datetime.fromtimestamp(record.created, UTC).isoformat(),
            "logger": record.name,
            "msg": record.getMessage(),
        }

        extra_data = getattr(record, "extra_data", None)
        if isinstance(extra_data, dict):
            entry.update(extra_data)

        if record.exc_info:
            entry["exc"] = self.formatException(record.exc_info)

        return json.dumps(entry, default=str)


def get_logger(name: str = ROOT_LOGGER) -> logging.Logger:
    """Get a logger under the vaisu tree.

    Args:
        name: Logger name; names outside the tree are prefixed with "vaisu."

    Returns:
        Logger instance
    """
    if name != ROOT_LOGGER and not name.startswith(f"{ROOT_LOGGER}."):
        name = f"{ROOT_LOGGER}.{name}"
    return logging.getLogger(name)


def setup_logging(
    mode: LogMode = LogMode.HUMAN,
    level: int = logging.INFO,
    stream: TextIO | None = None,
) -> None:
    """Attach a single handler to the vaisu logger tree.

    Calling it again replaces the previous handler.

    Args:
        mode: Rendering mode
        level: Minimum level for vaisu loggers
        stream: Destination (stderr if None)
    """
    if mode is LogMode.JSON:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter_cls = VerboseFormatter if mode is LogMode.VERBOSE else HumanFormatter
        formatter = formatter_cls(use_colors=_supports_color(stream))

    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER)
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)
    root.propagate = False

    # Provider libraries only surface their warnings unless debugging
    third_party_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(third_party_level)


def configure_from_cli(verbose: bool = False, quiet: bool = False, ci: bool = False) -> None:
    """Map the global CLI flags onto setup_logging.

    --ci selects JSON lines and --verbose the timestamped format. --quiet
    raises the level to WARNING and wins over --verbose, which lowers it to
    DEBUG.
    """
    if ci:
        mode = LogMode.JSON
    elif verbose:
        mode = LogMode.VERBOSE
    else:
        mode = LogMode.HUMAN

    if quiet:
        level = logging.WARNING
    else:
        level = logging.DEBUG if verbose else logging.INFO

    setup_logging(mode=mode, level=level)
