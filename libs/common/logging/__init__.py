"""Structured logging for the optimization engine.

Usage:
    # At process startup
    from libs.common.logging import configure_logging
    configure_logging(service_name="markowitz_engine", log_level="INFO")

    # Per call
    from libs.common.logging import RequestScope
    with RequestScope():
        engine.optimize(request)
"""

from libs.common.logging.config import (
    RequestIDFilter,
    configure_logging,
)
from libs.common.logging.context import (
    RequestScope,
    clear_request_id,
    generate_request_id,
    get_request_id,
    set_request_id,
)
from libs.common.logging.formatter import JSONFormatter

__all__ = [
    "configure_logging",
    "RequestIDFilter",
    "RequestScope",
    "generate_request_id",
    "get_request_id",
    "set_request_id",
    "clear_request_id",
    "JSONFormatter",
]
