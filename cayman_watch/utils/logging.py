"""Logger factory for pipeline modules.

Call sites attach context with ``extra={...}`` (run_id, document_id, section,
attempt, token counts). ``ContextFormatter`` renders those fields after the
message as ``key=value`` pairs so a run can be followed in plain console logs.
"""

import logging
import os
import sys
from typing import Any, Dict, Optional

DEFAULT_LEVEL_ENV = "LOG_LEVEL"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Attributes every LogRecord carries; anything else came from ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def record_context(record: logging.LogRecord) -> Dict[str, Any]:
    """Fields passed through ``extra`` on one log call, in insertion order."""
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class ContextFormatter(logging.Formatter):
    """Formatter that appends ``extra`` context to the message line."""

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        context = record_context(record)
        if not context:
            return line
        pairs = " ".join(f"{key}={value}" for key, value in context.items())
        return f"{line} | {pairs}"


def resolve_level(level: Optional[str] = None) -> int:
    """Numeric level from an explicit name, ``LOG_LEVEL`` or INFO.

    Unknown names fall back to INFO.
    """
    name = (level or os.getenv(DEFAULT_LEVEL_ENV) or "INFO").upper()
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """Get a configured logger instance.

    Args:
        name: Logger name (typically __name__ of the calling module)
        level: Optional log level override; defaults to ``LOG_LEVEL``

    Returns:
        logging.Logger: Logger writing context-aware lines to stdout
    """
    logger = logging.getLogger(name)
    log_level = resolve_level(level)
    logger.setLevel(log_level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(log_level)
        handler.setFormatter(ContextFormatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)

    return logger
