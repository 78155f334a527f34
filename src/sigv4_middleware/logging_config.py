"""Structured logging configuration for the SigV4 middleware.

Log output never carries credentials: ``configure_logging`` accepts the
secret values in use and installs a filter that masks them in every record.
"""

import json
import logging
import sys
from collections.abc import Iterable
from datetime import datetime, timezone

# Extra record attributes copied into JSON log lines when present.
EXTRA_FIELDS = ("method", "path", "service", "region", "signed_headers", "duration_ms")

REDACTED = "***"


class JSONFormatter(logging.Formatter):
    """Formats log records as single-line JSON objects.

    Fields: timestamp, level, logger, message, plus any extras.
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
        for key in EXTRA_FIELDS:
            val = getattr(record, key, None)
            if val is not None:
                entry[key] = val
        return json.dumps(entry, default=str)


class SecretRedactionFilter(logging.Filter):
    """Masks known secret values in log messages.

    The record's message is rendered once, scrubbed, and stored back with
    its arguments cleared so every handler sees the redacted text.
    """

    def __init__(self, secrets: Iterable[str]) -> None:
        super().__init__()
        self.secrets = [s for s in secrets if s]

    def filter(self, record: logging.LogRecord) -> bool:
        if not self.secrets:
            return True
        message = record.getMessage()
        for secret in self.secrets:
            message = message.replace(secret, REDACTED)
        record.msg = message
        record.args = None
        return True


def configure_logging(
    level: str = "INFO", fmt: str = "text", secrets: Iterable[str] = ()
) -> None:
    """Configure root logging with the specified level and format.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        fmt: Format type: 'text' for human-readable, 'json' for structured.
        secrets: Values to mask wherever they appear in a log message.
    """
    numeric_level = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(numeric_level)

    for handler in root.handlers[:]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.addFilter(SecretRedactionFilter(secrets))

    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )

    root.addHandler(handler)
