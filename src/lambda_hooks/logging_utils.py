"""Logging helpers for request correlation."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

LOG_FORMAT = "%(name)s - %(levelname)s - %(request_id)s - %(message)s"

_request_id: ContextVar[str | None] = ContextVar("lambda_hooks_request_id", default=None)


def get_current_request_id() -> str | None:
    """Return the request id of the invocation being dispatched, if any."""
    return _request_id.get()


@contextmanager
def bind_request_id(request_id: str | None) -> Iterator[None]:
    """Bind a request id to the current context.

    Hook tasks created inside the block inherit the binding.
    """
    token = _request_id.set(request_id or None)
    try:
        yield
    finally:
        _request_id.reset(token)


class RequestContextFilter(logging.Filter):
    """Attach the invocation request id to log records when available."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Inject request_id into the log record."""
        record.request_id = get_current_request_id() or "-"
        return True


def install_request_log_filter(loggers: Iterable[logging.Logger] | None = None) -> None:
    """Install request context filters for structured logging.

    Args:
        loggers: Optional iterable of loggers to attach the filter to. Defaults to root logger.
    """
    targets = list(loggers) if loggers is not None else [logging.getLogger()]
    for logger in targets:
        if any(isinstance(flt, RequestContextFilter) for flt in logger.filters):
            continue
        logger.addFilter(RequestContextFilter())


def configure_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Configure the ``lambda_hooks`` logger with a request-aware stream handler."""
    logger = logging.getLogger("lambda_hooks")
    logger.setLevel(level)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestContextFilter())
        logger.addHandler(handler)
    return logger
