"""Unit tests for src/errors.

Tests verify:
- Error codes are registered with correct categories and titles
- OrderDeskError.from_code fills message templates
- Domain exceptions carry their identifiers
"""

import pytest

from src.errors import (
    USER_SAFE_MESSAGE,
    ConcurrentUpdateError,
    ConflictError,
    InvalidTransitionError,
    NotFoundError,
    OrderDeskError,
    format_error,
)
from src.errors.registry import ErrorCategory, get_error, get_errors_by_category


@pytest.mark.parametrize(
    "code,category,title",
    [
        ("E-1001", ErrorCategory.VALIDATION, "Missing Required Field"),
        ("E-1002", ErrorCategory.VALIDATION, "Message Too Long"),
        ("E-3001", ErrorCategory.COLLABORATOR, "Model Unavailable"),
        ("E-3002", ErrorCategory.COLLABORATOR, "Malformed Model Output"),
        ("E-3003", ErrorCategory.COLLABORATOR, "Model Budget Exhausted"),
        ("E-4001", ErrorCategory.STORE, "Store Write Failed"),
        ("E-4002", ErrorCategory.STORE, "Concurrent Update"),
        ("E-4003", ErrorCategory.STORE, "Illegal Stage Transition"),
        ("E-4004", ErrorCategory.STORE, "Order Not Found"),
        ("E-9001", ErrorCategory.SYSTEM, "Unexpected Error"),
    ],
)
def test_error_codes_registered(code, category, title):
    """All engine error codes must be registered."""
    error = get_error(code)
    assert error is not None, f"{code} not found in registry"
    assert error.category == category
    assert error.title == title


def test_unknown_code():
    assert get_error("E-0000") is None


def test_errors_by_category():
    codes = [e.code for e in get_errors_by_category(ErrorCategory.COLLABORATOR)]
    assert codes == ["E-3001", "E-3002", "E-3003"]


class TestOrderDeskError:
    """Creation from registry codes and formatting."""

    def test_from_code_substitutes_template(self):
        err = OrderDeskError.from_code("E-1001", field="text")

        assert err.code == "E-1001"
        assert err.message == "Required field 'text' is missing or empty."
        assert not err.is_retryable
        assert str(err) == "E-1001: Required field 'text' is missing or empty."

    def test_missing_placeholder_keeps_template(self):
        err = OrderDeskError.from_code("E-4002", entity="Order")
        assert "{identifier}" in err.message

    def test_retryable_flag(self):
        assert OrderDeskError.from_code("E-4002", entity="Order", identifier="o1").is_retryable

    def test_unknown_code(self):
        err = OrderDeskError.from_code("E-0000")
        assert err.message == "Unknown error: E-0000"

    def test_user_message_never_leaks_detail(self):
        err = OrderDeskError.from_code("E-9001", reason="database is locked")
        assert err.user_message == USER_SAFE_MESSAGE
        assert "locked" not in err.user_message

    def test_format_error(self):
        err = OrderDeskError.from_code("E-4004", order_id="o1", details={"tenant": "t1"})

        assert format_error(err) == (
            "E-4004: Order 'o1' not found for this customer.\n"
            "  Context: tenant=t1\n"
            "  Action: Omit the forced order id or pass one owned by the customer."
        )
        assert format_error(err, include_remediation=False).count("\n") == 1


class TestDomainErrors:
    """Typed exceptions raised by services."""

    def test_not_found(self):
        err = NotFoundError("Order", "o1")
        assert str(err) == "Order 'o1' not found"
        assert err.identifier == "o1"

    def test_concurrent_update_is_conflict(self):
        err = ConcurrentUpdateError("Order", "o1")
        assert isinstance(err, ConflictError)
        assert err.resource_type == "Order"

    def test_invalid_transition(self):
        err = InvalidTransitionError("idle", "address_captured")
        assert err.stage == "idle"
        assert err.event == "address_captured"
        assert "address_captured" in str(err)
