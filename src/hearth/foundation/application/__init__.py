"""Hearth Foundation Application -- request-scoped application plumbing."""

from hearth.foundation.application.context import (
    NoRequestContextError,
    RequestContext,
    clear_request_context,
    get_current_context,
    get_current_tenant_id,
    get_current_user_id,
    get_optional_correlation_id,
    set_request_context,
)

__all__ = [
    "NoRequestContextError",
    "RequestContext",
    "clear_request_context",
    "get_current_context",
    "get_current_tenant_id",
    "get_current_user_id",
    "get_optional_correlation_id",
    "set_request_context",
]
