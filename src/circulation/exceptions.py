"""
Circulation exception hierarchy.

Every error raised by the circulation core derives from ``CirculationError``
and carries a machine-readable ``error_code``, a ``retry_policy`` and a
structured ``context`` so the request layer can map it to a response without
inspecting messages.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class RetryPolicy(Enum):
    """Retry classification for exceptions."""

    NEVER = "never"  # caller must change its input
    IMMEDIATE = "immediate"  # safe to retry with fresh state (lost a race)


class CirculationError(Exception):
    """
    Base exception class for all circulation errors.

    Attributes
    ----------
    message : str
        Human-readable error message
    error_code : str
        Machine-readable error code
    retry_policy : RetryPolicy
        Retry classification for this error type
    context : Dict[str, Any]
        Identifiers of the aggregate involved (request id, copy id, ...)
    timestamp : datetime
        When the error occurred
    """

    default_code = "circulation_error"
    default_retry = RetryPolicy.NEVER

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.retry_policy = retry_policy or self.default_retry
        self.context = dict(context or {})  # Create a copy to avoid mutation
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause

    def to_dict(self) -> Dict[str, Any]:
        """Structured error data for logging and responses."""
        return {
            "message": self.message,
            "error_code": self.error_code,
            "retry_policy": self.retry_policy.value,
            "context": {k: str(v) for k, v in self.context.items()},
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__,
        }

    def is_retryable(self) -> bool:
        return self.retry_policy is RetryPolicy.IMMEDIATE

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message='{self.message}', "
            f"error_code='{self.error_code}', "
            f"retry_policy={self.retry_policy.value}"
            f")"
        )


class NotFoundError(CirculationError):
    default_code = "not_found"

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(
            f"{entity} {entity_id} not found",
            context={"entity": entity, "id": entity_id},
        )


class InvalidStateError(CirculationError):
    """Attempted transition is not legal from the current status."""

    default_code = "invalid_state"

    def __init__(
        self,
        entity: str,
        current: Any,
        target: Any,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        current_value = getattr(current, "value", current)
        target_value = getattr(target, "value", target)
        ctx = {"entity": entity, "current": current_value, "target": target_value}
        ctx.update(context or {})
        super().__init__(
            f"{entity} cannot move from '{current_value}' to '{target_value}'",
            context=ctx,
        )
        self.current = current
        self.target = target


class ConflictError(CirculationError):
    """Lost a concurrency race on a copy; retry with a fresh allocation."""

    default_code = "copy_conflict"
    default_retry = RetryPolicy.IMMEDIATE


class LimitExceededError(CirculationError):
    default_code = "limit_exceeded"


class NoAvailableCopyError(CirculationError):
    default_code = "no_available_copy"


class CardInvalidError(CirculationError):
    default_code = "card_invalid"


class InsufficientDepositError(CardInvalidError):
    default_code = "insufficient_deposit"


class InvalidOperationError(CirculationError):
    default_code = "invalid_operation"


__all__ = [
    "RetryPolicy",
    "CirculationError",
    "NotFoundError",
    "InvalidStateError",
    "ConflictError",
    "LimitExceededError",
    "NoAvailableCopyError",
    "CardInvalidError",
    "InsufficientDepositError",
    "InvalidOperationError",
]
