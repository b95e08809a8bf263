"""
Logging helpers for the endpoint broker.

Console output goes through ContextAwareLogger, which appends the extra
mapping to the message as pipe-delimited key=value pairs, and
RequestContextFilter, which stamps the active user and request ids.
"""

import logging
import sys
from typing import Optional, Union

from ..config import get_config

_service_logger = None


class ContextAwareLogger:
    """
    Logger wrapper that formats extra attributes in message while preserving them.

    This keeps extras visible in console output even when a host framework
    replaces the handler formatters.
    """

    def __init__(self, logger):
        """Initialize with an existing logger."""
        self.logger = logger

    def _log_with_formatted_extra(self, level, msg, **kwargs):
        """
        Log with extra data formatted into the message.

        Args:
            level: Logging level method to use
            msg: Log message
            **kwargs: Additional arguments including 'extra' and 'exc_info'
        """
        extra = kwargs.pop("extra", {}) or {}

        if extra:
            extra_str = " | ".join([f"{k}={v}" for k, v in extra.items()])
            full_msg = f"{msg} | {extra_str}"
        else:
            full_msg = msg

        # LogRecord reserves some attribute names; keep those out of the record
        record_extra = {k: v for k, v in extra.items() if k not in _RESERVED_ATTRS}

        log_method = getattr(self.logger, level)
        log_method(full_msg, extra=record_extra, **kwargs)

    def set_level(self, level):
        """Set the logging level of the underlying logger."""
        self.logger.setLevel(level)

    def info(self, msg, **kwargs):
        self._log_with_formatted_extra("info", msg, **kwargs)

    def error(self, msg, **kwargs):
        self._log_with_formatted_extra("error", msg, **kwargs)

    def warning(self, msg, **kwargs):
        self._log_with_formatted_extra("warning", msg, **kwargs)

    def debug(self, msg, **kwargs):
        self._log_with_formatted_extra("debug", msg, **kwargs)

    def exception(self, msg, **kwargs):
        self._log_with_formatted_extra("exception", msg, **kwargs)


_RESERVED_ATTRS = frozenset(
    {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "message",
        "asctime",
        "taskName",
    }
)


class RequestContextFilter(logging.Filter):
    """
    Logging filter that adds the active request's user and request ids.
    """

    def filter(self, record):
        """
        Add user_id/request_id to the log record if a request scope is active.

        Args:
            record: LogRecord to modify

        Returns:
            True to include the record in the log output
        """
        # Lazy import to avoid circular dependency
        from ..context.request_context import RequestScope

        user_id = RequestScope.get_current_user_id()
        if user_id:
            record.user_id = user_id

        request_id = RequestScope.get_current_request_id()
        if request_id:
            record.request_id = request_id

        return True


def _resolve_level(log_level: Optional[Union[int, str]]) -> int:
    if log_level is None:
        log_level = get_config().logging.level
    if isinstance(log_level, str):
        return getattr(logging, log_level.upper(), logging.INFO)
    return log_level


def configure_logging(
    service_name: str,
    log_level: Optional[Union[int, str]] = None,
    stream=None,
) -> "ContextAwareLogger":
    """
    Configure console logging for a broker process.

    Args:
        service_name: Name used for the underlying logger ("broker.<name>")
        log_level: Logging level (default: from config.logging.level)
        stream: Output stream (default: sys.stdout)

    Returns:
        The configured logger wrapped with ContextAwareLogger
    """
    global _service_logger

    level = _resolve_level(log_level)

    logger = logging.getLogger(f"broker.{service_name}")
    logger.setLevel(level)

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream or sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter("%(message)s"))
    console_handler.addFilter(RequestContextFilter())
    logger.addHandler(console_handler)

    wrapped_logger = ContextAwareLogger(logger)
    wrapped_logger.info(
        "Service logger configured",
        extra={"service_name": service_name, "level": logging.getLevelName(level)},
    )
    _service_logger = wrapped_logger
    return wrapped_logger


def get_logger(
    log_level: Optional[Union[int, str]] = None,
) -> "ContextAwareLogger":
    """
    Get the service logger.

    Falls back to a wrapped root logger when configure_logging() has not run.
    """
    if _service_logger is not None:
        return _service_logger

    logger = logging.getLogger()
    logger.setLevel(_resolve_level(log_level))
    return ContextAwareLogger(logger)


def reset_logging() -> None:
    """Forget the configured service logger (used by tests)."""
    global _service_logger
    _service_logger = None
