"""Redaction helpers for safe logging.

Customer keys are phone-derived, and message bodies can carry addresses
and phone numbers. Neither should land in logs verbatim.
"""

import re

_REDACTED = "***"

# Runs of 6+ digits (phone numbers, postal codes), optionally with separators.
_LONG_DIGITS = re.compile(r"\+?\d[\d\s-]{4,}\d")


def redact_customer_key(customer_key: str | None) -> str:
    """Mask all but the last four characters of a customer key.

    Args:
        customer_key: Opaque customer identity.

    Returns:
        Masked key, e.g. '***3210'. Keys of four characters or fewer are
        fully masked.
    """
    if not customer_key:
        return "<none>"
    key = str(customer_key)
    if len(key) <= 4:
        return _REDACTED
    return f"{_REDACTED}{key[-4:]}"


def redact_text(text: str | None, limit: int = 80) -> str:
    """Truncate message text and mask long digit runs for log lines."""
    if not text:
        return ""
    masked = _LONG_DIGITS.sub(_REDACTED, str(text))
    masked = " ".join(masked.split())
    if len(masked) > limit:
        return masked[:limit] + "..."
    return masked
