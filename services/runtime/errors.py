"""
Custom exception classes and error formatting.

Every failure the runtime can observe ends up either as a log line or as an
ErrorRecord posted to the control plane.
"""

import traceback
from collections.abc import Mapping
from types import TracebackType
from typing import Any, List, Optional, Union

from .models import ErrorRecord

GENERIC_ERROR_TYPE = "RuntimeError"
UNKNOWN_ERROR_TYPE = "UnknownError"

StackLike = Union[TracebackType, traceback.StackSummary, List[traceback.FrameSummary]]


class RuntimeLoopError(Exception):
    """Base exception class for the invocation loop."""

    pass


class TransportError(RuntimeLoopError):
    """Raised when the control plane cannot be reached or answers with a non-2xx status."""

    def __init__(self, operation: str, cause: Exception):
        self.operation = operation
        self.cause = cause
        super().__init__(f"Control plane {operation} failed: {cause}")


class ProtocolViolation(RuntimeLoopError):
    """Raised when the control plane responded, but not in the expected shape."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Protocol violation: {detail}")


class DecodeError(RuntimeLoopError):
    """Raised when an invocation body is not valid JSON."""

    def __init__(self, request_id: str, cause: Exception):
        self.request_id = request_id
        self.cause = cause
        super().__init__(f"Invocation {request_id} payload is not valid JSON: {cause}")


class ResolutionError(RuntimeLoopError):
    """Raised when a handler identifier is not registered."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Handler not found or not registered: {identifier}")


class HandlerFailure(RuntimeLoopError):
    """
    Raised by handler code to fail an invocation with a custom errorType.

    Example:
        raise HandlerFailure("ValidationError", "name is required")
    """

    def __init__(self, error_type: str, message: str):
        self.error_type = error_type
        self.message = message
        super().__init__(message)


class ReportingError(RuntimeLoopError):
    """Raised when a response/error/init report could not be delivered."""

    def __init__(self, operation: str, request_id: Optional[str], cause: Exception):
        self.operation = operation
        self.request_id = request_id
        self.cause = cause
        target = f" for {request_id}" if request_id else ""
        super().__init__(f"Failed to deliver {operation}{target}: {cause}")


class InitError(RuntimeLoopError):
    """Raised when the runtime cannot finish bootstrapping."""

    def __init__(self, detail: str, cause: Optional[Exception] = None):
        self.detail = detail
        self.cause = cause
        suffix = f": {cause}" if cause else ""
        super().__init__(f"{detail}{suffix}")


# ===========================================
# Formatting
# ===========================================


def format_stack(stack: Optional[StackLike]) -> str:
    """
    Render a traceback or frame summaries.
    Returns an empty string when no stack is given.
    """
    if stack is None:
        return ""
    if isinstance(stack, TracebackType):
        return "".join(traceback.format_tb(stack))
    return "".join(traceback.format_list(stack))


def format_error(error: Any, stack: Optional[StackLike] = None) -> ErrorRecord:
    """
    Reduce any failure value to an ErrorRecord. Never raises.

    Priority:
      1. exception / mapping with a type tag and a message
      2. exception / mapping with a type tag only (message is repr of the value)
      3. plain string
      4. anything else
    """
    stack_trace = format_stack(stack)

    try:
        return _format_error(error, stack_trace)
    except Exception:
        # str()/repr() of the value itself failed.
        error_type = type(error).__name__ if isinstance(error, BaseException) else UNKNOWN_ERROR_TYPE
        return ErrorRecord(
            errorType=error_type,
            errorMessage=f"<unprintable {type(error).__name__} object>",
            stackTrace=stack_trace,
        )


def _format_error(error: Any, stack_trace: str) -> ErrorRecord:
    if isinstance(error, HandlerFailure):
        return ErrorRecord(
            errorType=error.error_type, errorMessage=error.message, stackTrace=stack_trace
        )

    if isinstance(error, BaseException):
        message = str(error)
        return ErrorRecord(
            errorType=type(error).__name__,
            errorMessage=message if message else repr(error),
            stackTrace=stack_trace,
        )

    if isinstance(error, Mapping) and error.get("type") is not None:
        message = error.get("message")
        return ErrorRecord(
            errorType=str(error["type"]),
            errorMessage=str(message) if message is not None else repr(error),
            stackTrace=stack_trace,
        )

    if isinstance(error, str):
        return ErrorRecord(
            errorType=GENERIC_ERROR_TYPE, errorMessage=error, stackTrace=stack_trace
        )

    return ErrorRecord(
        errorType=UNKNOWN_ERROR_TYPE, errorMessage=repr(error), stackTrace=stack_trace
    )
