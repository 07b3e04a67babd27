"""Error handling framework for OrderDesk.

This package provides:
- Error code registry with E-XXXX format codes
- Typed domain exceptions raised by the service layer
- Error formatting utilities

Error categories:
- E-1xxx: Inbound message validation errors
- E-3xxx: Collaborator (model / catalog) errors
- E-4xxx: Order and session store errors
- E-9xxx: Unexpected system errors
"""

from src.errors.domain import (
    ConcurrentUpdateError,
    ConflictError,
    DomainError,
    InvalidTransitionError,
    NotFoundError,
)
from src.errors.formatter import (
    OrderDeskError,
    format_error,
)
from src.errors.registry import (
    ERROR_REGISTRY,
    USER_SAFE_MESSAGE,
    ErrorCategory,
    ErrorCode,
    get_error,
    get_errors_by_category,
)

__all__ = [
    # Registry
    "ErrorCode",
    "ErrorCategory",
    "ERROR_REGISTRY",
    "USER_SAFE_MESSAGE",
    "get_error",
    "get_errors_by_category",
    # Domain
    "DomainError",
    "NotFoundError",
    "ConflictError",
    "ConcurrentUpdateError",
    "InvalidTransitionError",
    # Formatter
    "OrderDeskError",
    "format_error",
]
