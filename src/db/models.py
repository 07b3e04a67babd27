"""SQLAlchemy ORM models for the OrderDesk state database.

This module defines the persisted entities the decision engine reads and
writes: orders, per-customer conversation state, disambiguation sessions,
the keyed pending-action store, the tenant product catalog, and the ingest
event ledger used for idempotency. Uses SQLAlchemy 2.0 style with Mapped
and mapped_column.
"""

import json
from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


def parse_iso(value: str | None) -> datetime | None:
    """Parse a stored ISO8601 timestamp, assuming UTC when naive."""
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


# Enums matching the database schema constraints


class OrderStatus(str, Enum):
    """Status values for customer orders.

    Lifecycle: pending -> confirmed -> packing -> paid -> shipped -> delivered
               any open status -> cancelled / cancelled_by_customer
               any open status -> archived_for_new (explicit "start new")
    """

    pending = "pending"
    confirmed = "confirmed"
    packing = "packing"
    paid = "paid"
    shipped = "shipped"
    delivered = "delivered"
    cancelled = "cancelled"
    cancelled_by_customer = "cancelled_by_customer"
    archived_for_new = "archived_for_new"


TERMINAL_ORDER_STATUSES = frozenset({
    OrderStatus.paid,
    OrderStatus.shipped,
    OrderStatus.delivered,
    OrderStatus.cancelled,
    OrderStatus.cancelled_by_customer,
})

# Terminal statuses plus force-closed orders; nothing in here is ever a
# target for append, modifier, or address capture.
CLOSED_ORDER_STATUSES = TERMINAL_ORDER_STATUSES | {OrderStatus.archived_for_new}


class ConversationStage(str, Enum):
    """Phase of the order lifecycle for one tenant+customer."""

    idle = "idle"
    building_order = "building_order"
    awaiting_clarification = "awaiting_clarification"
    awaiting_address = "awaiting_address"
    post_order = "post_order"


class DisambiguationStatus(str, Enum):
    """Status values for disambiguation sessions."""

    pending = "pending"
    resolved = "resolved"
    expired = "expired"


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Provides common configuration and type annotations for all models.
    """

    pass


class Order(Base):
    """A customer order built up from one or more inbound messages.

    Attributes:
        id: Immutable UUID assigned at creation.
        tenant_id: Owning tenant.
        customer_key: Opaque customer identity (phone-derived).
        status: Current order status (OrderStatus values).
        items_json: Ordered line items serialized as a JSON array.
        link_reason: Append-only audit trail of create/append decisions.
        source_message_id: Inbound message id that created the order.
        delivery_address: Captured delivery address, if any.
        version: Incremented by every write; used for compare-and-swap.
        last_inbound_at: Timestamp of the latest message linked to the order.
    """

    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_key: Mapped[str] = mapped_column(String(64), nullable=False)
    status: Mapped[str] = mapped_column(
        String(30), nullable=False, default=OrderStatus.pending.value
    )
    items_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    link_reason: Mapped[str] = mapped_column(Text, nullable=False, default="")
    source_message_id: Mapped[str | None] = mapped_column(
        String(128), nullable=True
    )
    delivery_address: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    last_inbound_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_orders_customer", "tenant_id", "customer_key"),
        Index("idx_orders_created_at", "created_at"),
        Index("idx_orders_source_message", "tenant_id", "source_message_id"),
    )

    @property
    def item_list(self) -> list[dict[str, Any]]:
        """Parse items JSON string into a list of item dicts."""
        if not self.items_json:
            return []
        return json.loads(self.items_json)

    @property
    def is_closed(self) -> bool:
        """Whether the order can no longer be appended to or modified."""
        return self.status in {s.value for s in CLOSED_ORDER_STATUSES}

    def __repr__(self) -> str:
        return f"<Order(id={self.id!r}, status={self.status!r}, version={self.version})>"


class ConversationState(Base):
    """Per tenant+customer conversation stage.

    Rows are created lazily on the first inbound message. The stage only
    changes through ConversationStateService.transition().
    """

    __tablename__ = "conversation_states"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_key: Mapped[str] = mapped_column(String(64), nullable=False)
    stage: Mapped[str] = mapped_column(
        String(30), nullable=False, default=ConversationStage.idle.value
    )
    active_order_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    last_action: Mapped[str | None] = mapped_column(String(100), nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "customer_key", name="uq_conversation_states_customer"
        ),
    )

    def __repr__(self) -> str:
        return f"<ConversationState(stage={self.stage!r}, active_order_id={self.active_order_id!r})>"


class DisambiguationSession(Base):
    """A pending "which item did you mean?" question.

    At most one session per tenant+customer is pending at a time.
    options and candidate_indexes are parallel JSON arrays.
    """

    __tablename__ = "disambiguation_sessions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_key: Mapped[str] = mapped_column(String(64), nullable=False)
    order_id: Mapped[str | None] = mapped_column(
        String(36), ForeignKey("orders.id", ondelete="SET NULL"), nullable=True
    )
    question: Mapped[str] = mapped_column(Text, nullable=False)
    options_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")
    candidate_indexes_json: Mapped[str] = mapped_column(
        Text, nullable=False, default="[]"
    )
    modifier_json: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=DisambiguationStatus.pending.value
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    expires_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    resolved_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index(
            "idx_disambiguation_customer_status",
            "tenant_id",
            "customer_key",
            "status",
        ),
    )

    @property
    def options(self) -> list[str]:
        return json.loads(self.options_json or "[]")

    @property
    def candidate_indexes(self) -> list[int]:
        return json.loads(self.candidate_indexes_json or "[]")

    @property
    def modifier(self) -> dict[str, Any]:
        return json.loads(self.modifier_json)


class PendingAction(Base):
    """Keyed pending-state record with explicit expiry.

    One record per (tenant, customer, kind). Replaces process-local maps of
    "what are we waiting on for this phone number".
    """

    __tablename__ = "pending_actions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_key: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False)
    payload_json: Mapped[str] = mapped_column(Text, nullable=False, default="{}")
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    expires_at: Mapped[str] = mapped_column(String(50), nullable=False)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "customer_key", "kind", name="uq_pending_actions_key"
        ),
    )

    @property
    def payload(self) -> dict[str, Any]:
        return json.loads(self.payload_json or "{}")


class Product(Base):
    """Catalog product for a tenant.

    A canonical name may appear on several rows that differ only by
    variant (e.g. "Chicken Biryani" full / half).
    """

    __tablename__ = "products"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    canonical: Mapped[str] = mapped_column(String(200), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    variant: Mapped[str | None] = mapped_column(String(100), nullable=True)
    unit: Mapped[str | None] = mapped_column(String(20), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (Index("idx_products_tenant", "tenant_id"),)


class IngestEvent(Base):
    """Ledger of processed inbound messages.

    The unique fingerprint makes re-delivery of the same inbound event a
    no-op. Rows are written in the same transaction as the order change
    they produced.
    """

    __tablename__ = "ingest_events"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    customer_key: Mapped[str] = mapped_column(String(64), nullable=False)
    message_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    result_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    order_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    __table_args__ = (
        Index("idx_ingest_events_customer", "tenant_id", "customer_key"),
    )
