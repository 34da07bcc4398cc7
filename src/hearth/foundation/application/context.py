"""Request context management for cross-cutting concerns.

Provides a ContextVar-based mechanism for propagating request-scoped data
(tenant ID, acting user ID, correlation ID) across the call stack without
explicit parameter passing. The transport layer sets the context once per
request; the command processor reads the correlation ID from it when a
command does not carry one explicitly.

Usage:
    from hearth.foundation.application.context import (
        clear_request_context,
        set_request_context,
    )

    token = set_request_context("smith-family", "user-1", "req-123")
    try:
        await processor.handle(command)
    finally:
        clear_request_context(token)
"""

from __future__ import annotations

from contextvars import ContextVar
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from contextvars import Token


@dataclass(frozen=True, slots=True)
class RequestContext:
    """Immutable container for request-scoped context data.

    Attributes:
        tenant_id: The family (tenant) the request acts on.
        user_id: The authenticated user performing the action.
        correlation_id: Unique ID for distributed tracing.
    """

    tenant_id: str
    user_id: str
    correlation_id: str


# None when no request is active
request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)


class NoRequestContextError(RuntimeError):
    """Raised when request context is accessed outside of a request."""

    def __init__(self) -> None:
        super().__init__(
            "No request context available. "
            "Ensure this code is called within a request that set the context."
        )


def get_current_context() -> RequestContext:
    """Get the current request context.

    Raises:
        NoRequestContextError: If called outside of a request context.
    """
    ctx = request_context.get()
    if ctx is None:
        raise NoRequestContextError()
    return ctx


def get_current_tenant_id() -> str:
    """Get the current tenant ID from request context."""
    return get_current_context().tenant_id


def get_current_user_id() -> str:
    """Get the current acting user ID from request context."""
    return get_current_context().user_id


def get_optional_correlation_id() -> str | None:
    """Get the current correlation ID, or None outside a request."""
    ctx = request_context.get()
    return ctx.correlation_id if ctx is not None else None


def set_request_context(
    tenant_id: str,
    user_id: str,
    correlation_id: str,
) -> Token[RequestContext | None]:
    """Set the request context for the current async task.

    Returns:
        Token for resetting the context via :func:`clear_request_context`.
    """
    ctx = RequestContext(
        tenant_id=tenant_id,
        user_id=user_id,
        correlation_id=correlation_id,
    )
    return request_context.set(ctx)


def clear_request_context(token: Token[RequestContext | None]) -> None:
    """Reset the request context using the provided token."""
    request_context.reset(token)
