"""Keyed pending-state store with expiry.

Holds "what are we waiting on from this customer" records that are not
disambiguation sessions, e.g. a variant choice for an item that was held
back from the order. One record per (tenant, customer, kind); putting a
record replaces the previous one. Expired records are deleted on read.

Methods do NOT call db.commit(); the ingest service owns the transaction.
"""

import json
import logging
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from src.db.models import PendingAction, parse_iso

logger = logging.getLogger(__name__)

DEFAULT_TTL_MINUTES = 30


class PendingKind(str, Enum):
    """Kinds of pending customer actions."""

    VARIANT_CHOICE = "variant_choice"


class PendingActionStore:
    """Persisted pending-action records keyed by tenant, customer and kind."""

    def __init__(self, db: Session, ttl_minutes: int = DEFAULT_TTL_MINUTES) -> None:
        self.db = db
        self.ttl_minutes = ttl_minutes

    def _find(self, tenant_id: str, customer_key: str, kind: str) -> PendingAction | None:
        return self.db.execute(
            select(PendingAction).where(
                PendingAction.tenant_id == tenant_id,
                PendingAction.customer_key == customer_key,
                PendingAction.kind == kind,
            )
        ).scalar_one_or_none()

    def put(
        self,
        tenant_id: str,
        customer_key: str,
        kind: PendingKind,
        payload: dict[str, Any],
        now: datetime | None = None,
    ) -> PendingAction:
        """Store a record, replacing any existing one of the same kind."""
        now = now or datetime.now(UTC)
        expires_at = (now + timedelta(minutes=self.ttl_minutes)).isoformat()
        record = self._find(tenant_id, customer_key, kind.value)
        if record is None:
            record = PendingAction(
                tenant_id=tenant_id,
                customer_key=customer_key,
                kind=kind.value,
            )
            self.db.add(record)
        record.payload_json = json.dumps(payload)
        record.created_at = now.isoformat()
        record.expires_at = expires_at
        self.db.flush()
        return record

    def get(
        self,
        tenant_id: str,
        customer_key: str,
        kind: PendingKind,
        now: datetime | None = None,
    ) -> dict[str, Any] | None:
        """Payload of a live record, or None. Expired records are deleted."""
        record = self._find(tenant_id, customer_key, kind.value)
        if record is None:
            return None
        now = now or datetime.now(UTC)
        expires_at = parse_iso(record.expires_at)
        if expires_at is not None and now > expires_at:
            logger.debug("Pending %s expired at %s", kind.value, record.expires_at)
            self.db.delete(record)
            self.db.flush()
            return None
        return record.payload

    def pop(self, tenant_id: str, customer_key: str, kind: PendingKind) -> None:
        """Delete a record if present."""
        self.db.execute(
            delete(PendingAction).where(
                PendingAction.tenant_id == tenant_id,
                PendingAction.customer_key == customer_key,
                PendingAction.kind == kind.value,
            )
        )

    def clear(self, tenant_id: str, customer_key: str) -> int:
        """Delete every record for the customer. Returns the count."""
        result = self.db.execute(
            delete(PendingAction).where(
                PendingAction.tenant_id == tenant_id,
                PendingAction.customer_key == customer_key,
            )
        )
        return result.rowcount or 0
