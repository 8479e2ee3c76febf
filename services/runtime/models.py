"""
Invocation models.

Standardizes what flows between the control plane client, the executor and the loop.
"""

from dataclasses import dataclass
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ErrorRecord(BaseModel):
    """
    Wire shape of an invocation/init error.

    The control plane has no optional fields: all three keys are always
    present and always strings.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    errorType: str = Field(..., description="Failure classification")
    errorMessage: str = Field(..., description="Human-readable message")
    stackTrace: str = Field(default="", description="Formatted call stack, empty if none")


class Invocation(BaseModel):
    """
    One unit of work delivered by GET /invocation/next.

    request_id is captured from the headers before the body is decoded,
    so a decode failure is still reportable against it.
    """

    request_id: str
    raw_body: bytes = b""
    decoded_payload: Optional[Any] = None
    trace_id: Optional[str] = None
    deadline_ms: Optional[int] = None
    function_arn: Optional[str] = None

    def remaining_time_ms(self, now_ms: int) -> Optional[int]:
        """Milliseconds left before the control plane's deadline, if one was sent."""
        if self.deadline_ms is None:
            return None
        return max(self.deadline_ms - now_ms, 0)


@dataclass(frozen=True)
class Success:
    value: Any


@dataclass(frozen=True)
class Failure:
    record: ErrorRecord


Outcome = Union[Success, Failure]
