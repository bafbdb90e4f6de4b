"""
Logging setup and request correlation ids.
"""

import logging
import os
import uuid
from contextvars import ContextVar

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

correlation_id: ContextVar[str | None] = ContextVar("correlation_id", default=None)


class CorrelationIdFilter(logging.Filter):
    """Sets ``record.correlation_id`` from the current request, or "-"."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = correlation_id.get() or "-"
        return True


def configure_logging(level: str | None = None) -> None:
    level = (level or os.environ.get("LOG_LEVEL", "INFO")).upper()
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    if not any(isinstance(f, CorrelationIdFilter) for h in root.handlers for f in h.filters):
        for handler in root.handlers:
            handler.addFilter(CorrelationIdFilter())


def generate_correlation_id() -> str:
    return str(uuid.uuid4())
