"""Error code registry with E-XXXX format codes.

This module defines the error code system for OrderDesk, organizing errors
into categories:
- E-1xxx: Inbound message validation errors
- E-3xxx: Collaborator (model / catalog) errors
- E-4xxx: Order and session store errors
- E-9xxx: Unexpected system errors

Each error includes a code, title, message template, and remediation steps.
Collaborator errors are logged only; the engine always recovers from them
through its rule-based fallback.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    VALIDATION = "validation"  # E-1xxx
    COLLABORATOR = "collaborator"  # E-3xxx
    STORE = "store"  # E-4xxx
    SYSTEM = "system"  # E-9xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action the caller should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Validation errors (E-1xxx)
    "E-1001": ErrorCode(
        code="E-1001",
        category=ErrorCategory.VALIDATION,
        title="Missing Required Field",
        message_template="Required field '{field}' is missing or empty.",
        remediation="Supply tenant id, customer key and message text.",
    ),
    "E-1002": ErrorCode(
        code="E-1002",
        category=ErrorCategory.VALIDATION,
        title="Message Too Long",
        message_template="Message has {length} characters; limit is {limit}.",
        remediation="Split the message or raise the configured limit.",
    ),
    # Collaborator errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.COLLABORATOR,
        title="Model Unavailable",
        message_template="Model call for {operation} unavailable: {reason}.",
        remediation="Rule-based fallback was used. Check credentials and quota.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.COLLABORATOR,
        title="Malformed Model Output",
        message_template="Model output for {operation} failed validation: {error}.",
        remediation="Rule-based fallback was used. Inspect the logged payload.",
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.COLLABORATOR,
        title="Model Budget Exhausted",
        message_template="Cost guard rejected the {operation} call.",
        remediation="Raise the budget or wait for the next window.",
    ),
    # Store errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.STORE,
        title="Store Write Failed",
        message_template="Could not persist {entity}: {reason}.",
        remediation="Check database health and redeliver the message.",
        is_retryable=True,
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.STORE,
        title="Concurrent Update",
        message_template="{entity} '{identifier}' was changed by another message.",
        remediation="Redeliver the message; it will be evaluated against fresh state.",
        is_retryable=True,
    ),
    "E-4003": ErrorCode(
        code="E-4003",
        category=ErrorCategory.STORE,
        title="Illegal Stage Transition",
        message_template="Cannot apply '{event}' while stage is '{stage}'.",
        remediation="Inspect conversation state; reset with a start-new command.",
    ),
    "E-4004": ErrorCode(
        code="E-4004",
        category=ErrorCategory.STORE,
        title="Order Not Found",
        message_template="Order '{order_id}' not found for this customer.",
        remediation="Omit the forced order id or pass one owned by the customer.",
    ),
    # System errors (E-9xxx)
    "E-9001": ErrorCode(
        code="E-9001",
        category=ErrorCategory.SYSTEM,
        title="Unexpected Error",
        message_template="Unexpected error while processing message: {reason}.",
        remediation="Check server logs.",
    ),
}

# Shown to end customers for any error result; internal detail never leaks.
USER_SAFE_MESSAGE = (
    "Sorry, something went wrong on our side. "
    "Anything you already ordered is saved; please send your message again."
)


def get_error(code: str) -> ErrorCode | None:
    """Look up error code definition.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all error codes in a category.

    Args:
        category: ErrorCategory to filter by.

    Returns:
        List of ErrorCode objects in that category.
    """
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
