"""Logging setup for processes embedding the optimization engine.

The engine modules only ever call ``logging.getLogger(__name__)``; hosting
processes call configure_logging() once at startup to get JSON output with
request IDs attached.

Example:
    >>> from libs.common.logging import configure_logging
    >>> configure_logging(service_name="markowitz_engine", log_level="INFO")
"""

import logging
import sys

from libs.common.logging.context import get_request_id
from libs.common.logging.formatter import JSONFormatter


class RequestIDFilter(logging.Filter):
    """Attach the current request ID to every record passing the handler."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = get_request_id()
        return True


def configure_logging(
    service_name: str,
    log_level: str = "INFO",
    include_context: bool = True,
) -> logging.Logger:
    """Install a JSON stdout handler on the root logger.

    Existing root handlers are removed so repeated calls do not duplicate
    output.

    Args:
        service_name: Value of the "service" field in every record
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        include_context: Whether to emit the context block

    Returns:
        The configured root logger

    Raises:
        ValueError: If log_level is not a valid level name
    """
    numeric_level = getattr(logging, log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(numeric_level)
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(numeric_level)
    handler.setFormatter(JSONFormatter(service_name=service_name, include_context=include_context))
    handler.addFilter(RequestIDFilter())

    root_logger.addHandler(handler)
    return root_logger

