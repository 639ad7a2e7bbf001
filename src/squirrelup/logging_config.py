"""Log output for the squirrelup command.

Upload code attaches context to its records through ``extra=``; both
formats render it, text as a trailing ``[key=value ...]`` block and JSON
as top-level fields.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("uri", "upload_id", "part_number", "attempt")

# aiobotocore and its HTTP stack log every request at DEBUG/INFO.
SDK_LOGGERS = ("aiobotocore", "botocore", "aiohttp")

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def _context(record: logging.LogRecord) -> dict:
    context = {}
    for key in CONTEXT_FIELDS:
        val = getattr(record, key, None)
        if val is not None:
            context[key] = val
    return context


class TextFormatter(logging.Formatter):
    """Human-readable lines with the upload context appended."""

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={val}" for key, val in context.items())
        first, sep, rest = line.partition("\n")
        return f"{first} [{pairs}]{sep}{rest}"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, plus the upload context.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(_context(record))
        return json.dumps(entry, default=str)


def configure_logging(level: str = "INFO", fmt: str = "text") -> None:
    """Send log records to stderr in the given format.

    The SDK loggers stay at WARNING unless ``level`` is DEBUG.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: 'text' or 'json'.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter() if fmt == "json" else TextFormatter())
    root.addHandler(handler)

    sdk_level = logging.DEBUG if numeric_level <= logging.DEBUG else logging.WARNING
    for name in SDK_LOGGERS:
        logging.getLogger(name).setLevel(sdk_level)
