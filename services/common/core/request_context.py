"""
RequestContext management.
Use ContextVar to expose the in-flight invocation's ids to log formatting.
"""

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator, Optional

from .trace import TraceId


# Context variable for Trace ID (full header format).
_trace_id_var: ContextVar[Optional[str]] = ContextVar("trace_id", default=None)
# Context variable for the control plane's request id.
_request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_trace_id() -> Optional[str]:
    """Get the current Trace ID."""
    return _trace_id_var.get()


def get_request_id() -> Optional[str]:
    """Get the current Request ID."""
    return _request_id_var.get()


@contextmanager
def invocation_context(request_id: str, trace_id: Optional[str] = None) -> Iterator[None]:
    """
    Bind request/trace ids for the duration of one invocation.
    Previous values are restored on exit.
    """
    request_token = _request_id_var.set(request_id)
    trace_token = _trace_id_var.set(str(TraceId.parse(trace_id)) if trace_id else None)
    try:
        yield
    finally:
        _trace_id_var.reset(trace_token)
        _request_id_var.reset(request_token)
