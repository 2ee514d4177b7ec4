"""Logging setup for trainstate-backup.

Modules log through ``logging.getLogger(__name__)``; the CLI calls
:func:`configure_logging` once. Pass ``extra={"snapshot_id": ...}`` to tag a
line with the snapshot it concerns.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("snapshot_id", "step", "chunk", "attempt")


class StructuredFormatter(logging.Formatter):
    """Formatter that outputs one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """TIMESTAMP - LOGGER - LEVEL - MESSAGE [snapshot_id=X]"""

    def __init__(self):
        super().__init__("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)
        context = [
            f"{name}={getattr(record, name)}"
            for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None
        ]
        if context:
            return f"{base} [{' '.join(context)}]"
        return base


def configure_logging(level: int = logging.INFO, structured: bool = False) -> None:
    """Configure the ``trainstate_backup`` package logger.

    Args:
        level: Logging level
        structured: Emit JSON lines instead of human-readable text
    """
    logger = logging.getLogger("trainstate_backup")
    logger.setLevel(level)

    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(StructuredFormatter() if structured else HumanReadableFormatter())
    logger.addHandler(handler)
