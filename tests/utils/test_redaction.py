"""Tests for log redaction helpers."""

from src.utils.redaction import redact_customer_key, redact_text


def test_redact_customer_key():
    assert redact_customer_key("cust-9876543210") == "***3210"
    assert redact_customer_key("abcd") == "***"
    assert redact_customer_key(None) == "<none>"


def test_redact_text_masks_long_digit_runs():
    assert redact_text("call me on +91 98765 43210 please") == "call me on *** please"
    assert redact_text("Flat 12, MG Road, 560001") == "Flat 12, MG Road, ***"
    assert redact_text("2kg onion") == "2kg onion"


def test_redact_text_truncates():
    assert redact_text("x" * 100, limit=10) == "x" * 10 + "..."
    assert redact_text(None) == ""
