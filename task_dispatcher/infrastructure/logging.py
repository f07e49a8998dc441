"""
Logging configuration for the task dispatcher.

Centralized logging setup with:
- Structured JSON output
- Dispatch correlation tracking
- Performance timing helpers
"""

import logging
import sys
import time
from contextvars import ContextVar

import structlog

# Context variable for the firing currently being invoked
dispatch_id: ContextVar[str] = ContextVar("dispatch_id", default="")


def configure_logging(service_name: str, level: int = logging.INFO) -> None:
    """
    Configure structured logging for the dispatcher.

    Args:
        service_name: Name of the service for log context
        level: Minimum stdlib log level
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_service_name(service_name),
            _add_dispatch_id,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
    )


def _add_service_name(service_name: str):
    """Processor to add service name to all logs."""

    def processor(logger, method_name, event_dict):
        event_dict["service"] = service_name
        return event_dict

    return processor


def _add_dispatch_id(logger, method_name, event_dict):
    did = dispatch_id.get()
    if did:
        event_dict["dispatch_id"] = did
    return event_dict


def set_dispatch_id(did: str) -> None:
    """Set dispatch ID for current context."""
    dispatch_id.set(did)


class Timer:
    """
    Context manager for timing operations.

    Usage:
        with Timer() as t:
            await unit.run(request)
        logger.info("Attempt finished", duration_ms=t.duration_ms)
    """

    def __init__(self):
        self._start: float = 0
        self._end: float = 0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *args) -> None:
        self._end = time.perf_counter()

    @property
    def duration_ms(self) -> float:
        """Duration in milliseconds, rounded to 2 decimal places."""
        return round((self._end - self._start) * 1000, 2)
