"""Error taxonomy and the structured error payload.

Errors that stop a request (validation, missing salon, misuse) are
raised as exceptions inside the engine and converted into an
ErrorPayload at the operation boundary. Budget rejection is never an
exception - it is a routing outcome.
"""

import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


class ClaxisError(Exception):
    """Base class for all engine errors."""

    error_code = "INTERNAL_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(ClaxisError):
    """Malformed context, budget or settings input."""

    error_code = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        field_errors: list[str] | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)
        self.field_errors = field_errors or []
        if self.field_errors:
            self.details.setdefault("validation_errors", self.field_errors)


class NotFoundError(ClaxisError):
    """Salon or its configuration does not exist."""

    error_code = "SALON_NOT_FOUND"


class DisabledFeatureError(ClaxisError):
    """The salon has the requested capability switched off."""

    error_code = "FEATURE_DISABLED"


class StoreError(ClaxisError):
    """Usage or history read/write failure."""

    error_code = "STORE_ERROR"


class MisuseError(ClaxisError):
    """Unknown operation or request type from the caller."""

    error_code = "UNSUPPORTED_OPERATION"


@dataclass
class ErrorPayload:
    """Error shape that crosses the boundary instead of an exception."""

    error_code: str
    error_message: str
    execution_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    error_details: dict[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "error": True,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "timestamp": datetime.fromtimestamp(self.timestamp, tz=timezone.utc).isoformat(),
            "execution_id": self.execution_id,
        }
        if self.error_details:
            payload["error_details"] = self.error_details
        return payload

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        execution_id: str,
        details: dict[str, Any] | None = None,
    ) -> "ErrorPayload":
        """Build a payload from any exception.

        Engine errors keep their code and details; anything else is
        reported as INTERNAL_ERROR.
        """
        merged = dict(details or {})
        if isinstance(exc, ClaxisError):
            merged.update(exc.details)
            return cls(
                error_code=exc.error_code,
                error_message=exc.message,
                execution_id=execution_id,
                error_details=merged,
            )
        return cls(
            error_code=ClaxisError.error_code,
            error_message=str(exc) or exc.__class__.__name__,
            execution_id=execution_id,
            error_details=merged,
        )
