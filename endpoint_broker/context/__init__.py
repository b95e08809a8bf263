"""Context management for requests, cancellation and operations."""

from .operation_context import OperationContext, OperationHandler, operation
from .request_context import CancellationToken, RequestContext, RequestScope, request_scope

__all__ = [
    "operation",
    "OperationContext",
    "OperationHandler",
    "CancellationToken",
    "RequestContext",
    "RequestScope",
    "request_scope",
]
