"""Key=value logging for the tool engine.

Tool invocations, action transitions and job attempts pass their identifiers
through ``extra=`` so a single trace can be followed across the agent loop,
the approval engine and the integration worker.
"""

import logging
import sys
from typing import Any

# Identifiers promoted to top-level fields when present on a record
CONTEXT_KEYS = (
    "trace_id",
    "prompt_run_id",
    "tool",
    "company_id",
    "action_id",
    "session_id",
    "job_id",
)


class StructuredFormatter(logging.Formatter):
    """Render a record as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        fields: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for key in CONTEXT_KEYS:
            value = getattr(record, key, None)
            if value is not None:
                fields[key] = value

        fields.update(getattr(record, "extra_data", None) or {})

        if record.exc_info:
            fields["exc"] = self.formatException(record.exc_info)

        return " ".join(f"{k}={v}" for k, v in fields.items())


def _level_for_env() -> int:
    try:
        from app.core.config import get_settings

        return logging.DEBUG if get_settings().APP_ENV == "dev" else logging.INFO
    except Exception:
        # Settings may be incomplete while scripts bootstrap
        return logging.INFO


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger writing structured lines to stdout.

    Args:
        name: Logger name (typically __name__)
    """
    logger = logging.getLogger(name)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(StructuredFormatter())
        logger.addHandler(handler)
        logger.setLevel(_level_for_env())

    return logger


def log_with_context(logger: logging.Logger, level: int, msg: str, **fields: Any) -> None:
    """
    Log ``msg`` with identifiers and any other fields attached.

    Known identifiers (see CONTEXT_KEYS) become top-level fields; everything
    else is rendered after them.
    """
    extra: dict[str, Any] = {key: fields.pop(key) for key in CONTEXT_KEYS if key in fields}
    extra["extra_data"] = fields
    logger.log(level, msg, extra=extra)
