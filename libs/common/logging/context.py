"""Request ID propagation for optimization calls.

Every optimize/visualize call runs under a request ID so that the log lines
emitted by the return aligner, the strategies and the objective selector for
one call can be grouped together. The ID lives in a context variable, which
keeps concurrent calls (threads or tasks) isolated from each other.

Example:
    >>> from libs.common.logging.context import RequestScope, get_request_id
    >>> with RequestScope("req-42"):
    ...     get_request_id()
    'req-42'
"""

import contextvars
import uuid
from types import TracebackType

_request_id_var: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "request_id", default=None
)


def generate_request_id() -> str:
    """Generate a new request ID (UUID v4 string)."""
    return str(uuid.uuid4())


def get_request_id() -> str | None:
    """Return the request ID of the current context, or None if unset."""
    return _request_id_var.get()


def set_request_id(request_id: str) -> None:
    """Set the request ID for the current context.

    Raises:
        ValueError: If request_id is empty
    """
    if not request_id:
        raise ValueError("Request ID cannot be empty")
    _request_id_var.set(request_id)


def clear_request_id() -> None:
    """Remove the request ID from the current context."""
    _request_id_var.set(None)


class RequestScope:
    """Context manager that scopes a request ID to a block of code.

    An already active request ID is reused when no explicit ID is given, so
    nested engine calls (visualization running an optimization) share one ID.
    The previous value is restored on exit.

    Example:
        >>> with RequestScope() as request_id:
        ...     engine.optimize(request)
    """

    def __init__(self, request_id: str | None = None) -> None:
        self.request_id = request_id or get_request_id() or generate_request_id()
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> str:
        self._token = _request_id_var.set(self.request_id)
        return self.request_id

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _request_id_var.reset(self._token)
            self._token = None
