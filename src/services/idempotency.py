"""Fingerprints for exactly-once handling of inbound messages."""

import hashlib
from datetime import UTC, datetime

from src.orchestrator.nl_engine.text_shape import normalize_text


def minute_bucket(timestamp: datetime) -> str:
    """UTC minute the message falls in, e.g. '2026-01-05T10:42'."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=UTC)
    return timestamp.astimezone(UTC).strftime("%Y-%m-%dT%H:%M")


def ingest_fingerprint(
    tenant_id: str,
    customer_key: str,
    message_id: str | None,
    text: str,
    timestamp: datetime,
) -> str:
    """Generate a deterministic fingerprint for an inbound message.

    The same message re-delivered within the same minute produces the same
    fingerprint, so the second delivery is a no-op. Whitespace and case
    differences in the text do not change it.

    Args:
        tenant_id: Tenant.
        customer_key: Customer.
        message_id: Channel message id, if the channel provides one.
        text: Raw message text.
        timestamp: Message timestamp.

    Returns:
        64-character hex SHA-256 digest.
    """
    parts = [
        tenant_id,
        customer_key,
        message_id or "",
        normalize_text(text),
        minute_bucket(timestamp),
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()
