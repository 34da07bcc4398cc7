"""Domain exception hierarchy for type-safe error handling.

Every error raised by the task engine derives from :class:`DomainError`.
Each class carries a stable machine-readable ``error_code``, the HTTP status
an outer API layer should answer with, and a ``transient`` flag telling
background consumers whether redelivery can succeed.

Example:
    >>> from hearth.foundation.domain.exceptions import NotFoundError
    >>> raise NotFoundError("Task", "01HZY3M7Q2V8W5E4N6T9R1K0XB")
"""

from __future__ import annotations

from typing import Any

__all__ = [
    "AuthorizationError",
    "ConcurrencyConflictError",
    "ConflictError",
    "CorruptStreamError",
    "DomainError",
    "InvalidStateTransitionError",
    "MalformedEventError",
    "NotFoundError",
    "StaleSnapshotError",
    "TransientInfrastructureError",
    "UnknownEventKindError",
    "ValidationError",
    "VersionConflictError",
]


class DomainError(Exception):
    """Base class for all domain errors.

    Provides error code and structured context for debugging. All domain
    exceptions inherit from this class to enable consistent API error
    handling and logging.

    Attributes:
        error_code: Machine-readable error code for client handling.
        http_status: Status code the transport layer maps this error to.
        transient: Whether retrying the same operation later may succeed.
        message: Human-readable error description.
        context: Structured debugging information (aggregate IDs, field names).

    Example:
        >>> raise DomainError("Operation failed", context={"task_id": "01HZY..."})
        DomainError: Operation failed (task_id=01HZY...)
    """

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 500
    transient: bool = False

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        """Initialize domain error with message and optional context.

        Args:
            message: Human-readable error description.
            context: Structured debugging information. Keys should be snake_case.
        """
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        """String representation including context for logging."""
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message

    def __repr__(self) -> str:
        """Detailed representation for debugging."""
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"

    def to_problem_detail(self, correlation_id: str | None = None) -> dict[str, Any]:
        """Render the error as an RFC 7807 problem detail body.

        Args:
            correlation_id: Request correlation identifier echoed to the client.

        Returns:
            Dict with ``type``, ``title``, ``status``, ``detail``,
            ``error_code``, ``correlation_id`` and a JSON-safe ``context``.
        """
        return {
            "type": f"/errors/{self.error_code.lower().replace('_', '-')}",
            "title": self.__class__.__name__,
            "status": self.http_status,
            "detail": self.message,
            "error_code": self.error_code,
            "correlation_id": correlation_id,
            "context": {
                key: value if value is None or isinstance(value, (str, int, float, bool)) else str(value)
                for key, value in self.context.items()
            },
        }


class NotFoundError(DomainError):
    """Raised when a requested resource does not exist.

    Maps to HTTP 404. A tombstoned task is reported as not found to every
    command that needs a live task.

    Example:
        >>> raise NotFoundError("Task", "01HZY3M7Q2V8W5E4N6T9R1K0XB", tenant_id="smith-family")
        NotFoundError: Task not found: 01HZY3M7Q2V8W5E4N6T9R1K0XB
    """

    error_code: str = "RESOURCE_NOT_FOUND"
    http_status: int = 404

    def __init__(self, resource_type: str, resource_id: str, **extra_context: Any) -> None:
        """Initialize not found error.

        Args:
            resource_type: Type of resource (e.g., "Task").
            resource_id: Identifier of missing resource.
            **extra_context: Additional debugging context (e.g., tenant_id).
        """
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type} not found: {resource_id}"
        context = {
            "resource_type": resource_type,
            "resource_id": str(resource_id),
            **extra_context,
        }
        super().__init__(message, context)


class ValidationError(DomainError):
    """Raised when input fails domain validation rules.

    Maps to HTTP 400. Never retried.

    Example:
        >>> raise ValidationError("title", "Title cannot be empty")
        ValidationError: Validation failed for 'title': Title cannot be empty
    """

    error_code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, field: str, reason: str, **extra_context: Any) -> None:
        """Initialize validation error.

        Args:
            field: Field path that failed validation.
            reason: Human-readable validation failure reason.
            **extra_context: Additional debugging context.
        """
        self.field = field
        self.reason = reason
        message = f"Validation failed for '{field}': {reason}"
        context = {
            "field": field,
            "reason": reason,
            **extra_context,
        }
        super().__init__(message, context)


class ConflictError(DomainError):
    """Raised when an operation conflicts with current state.

    Maps to HTTP 409.

    Attributes:
        reason: Description of the conflict.
    """

    error_code: str = "CONFLICT"
    http_status: int = 409

    def __init__(self, reason: str, **context: Any) -> None:
        """Initialize conflict error.

        Args:
            reason: Description of conflict.
            **context: Additional debugging context. For concurrency errors,
                       include expected_version and actual_version.
        """
        self.reason = reason
        message = f"Conflict: {reason}"
        super().__init__(message, context)


class VersionConflictError(ConflictError):
    """Raised by the event store when the stored stream version moved on.

    Internal to the write path: the command processor catches it and
    retries the whole load-validate-append cycle.
    """

    error_code: str = "VERSION_CONFLICT"

    def __init__(
        self,
        expected_version: int,
        actual_version: int | None,
        **context: Any,
    ) -> None:
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            "Stream version changed since it was read",
            expected_version=expected_version,
            actual_version=actual_version,
            **context,
        )


class ConcurrencyConflictError(ConflictError):
    """Raised to callers when optimistic-lock retries are exhausted.

    Distinct from :class:`ValidationError` so clients can decide to retry
    the request with fresh data.
    """

    error_code: str = "CONCURRENCY_CONFLICT"


class InvalidStateTransitionError(ConflictError):
    """Raised when a task lifecycle transition is not allowed.

    Example:
        >>> raise InvalidStateTransitionError(
        ...     "Task is already completed", current_state="completed"
        ... )
    """

    error_code: str = "INVALID_STATE_TRANSITION"

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message, **context)


class AuthorizationError(DomainError):
    """Raised when the acting user is not allowed to act on the tenant.

    Maps to HTTP 403. Never retried.
    """

    error_code: str = "AUTHORIZATION_ERROR"
    http_status: int = 403


class CorruptStreamError(DomainError):
    """Raised when an event stream violates its structural rules.

    Fatal for the aggregate: replay never continues past the offending
    event and the stream needs manual inspection.
    """

    error_code: str = "CORRUPT_STREAM"
    http_status: int = 500


class UnknownEventKindError(CorruptStreamError):
    """Raised when replay meets an event kind it cannot apply under a rejecting policy."""

    error_code: str = "UNKNOWN_EVENT_KIND"


class MalformedEventError(DomainError):
    """Raised when a stored event cannot be decoded into a domain event.

    Permanent: redelivering the same bytes fails the same way.
    """

    error_code: str = "MALFORMED_EVENT"
    http_status: int = 500


class StaleSnapshotError(DomainError):
    """Raised when a snapshot's cutoff no longer lines up with its stream.

    The caller discards the snapshot and replays the full stream.
    """

    error_code: str = "STALE_SNAPSHOT"


class TransientInfrastructureError(DomainError):
    """Raised when storage is temporarily unavailable or throttled.

    Maps to HTTP 503. Retried with backoff by the calling layer.
    """

    error_code: str = "TRANSIENT_INFRASTRUCTURE"
    http_status: int = 503
    transient: bool = True
