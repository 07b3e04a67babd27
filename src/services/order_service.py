"""Order store with compare-and-swap writes.

Every write goes through _write(), which issues
UPDATE ... WHERE id = :id AND version = :seen and bumps the version. A
zero-row update means another writer got there first and raises
ConcurrentUpdateError; nothing is silently overwritten.

Items are serialized LineItem lists. link_reason is append-only: entries
are joined with " | " and never rewritten.

Methods do NOT call db.commit(); the ingest service owns the transaction.
"""

import json
import logging
from datetime import UTC, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from src.db.models import CLOSED_ORDER_STATUSES, Order, OrderStatus
from src.errors.domain import ConcurrentUpdateError, NotFoundError
from src.orchestrator.models.order import LineItem
from src.utils.redaction import redact_customer_key

logger = logging.getLogger(__name__)

LINK_REASON_SEPARATOR = " | "

_CLOSED = [s.value for s in CLOSED_ORDER_STATUSES]


def serialize_items(items: list[LineItem]) -> str:
    return json.dumps([item.model_dump(exclude_none=True) for item in items])


def load_items(order: Order) -> list[LineItem]:
    """Deserialize an order's items in stored order."""
    return [LineItem.model_validate(raw) for raw in order.item_list]


def merge_link_reason(existing: str | None, reason: str) -> str:
    if not existing:
        return reason
    return f"{existing}{LINK_REASON_SEPARATOR}{reason}"


class OrderService:
    """CRUD on orders for one tenant+customer conversation.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        """Initialize the order service with a database session.

        Args:
            db: SQLAlchemy session for database operations.
        """
        self.db = db

    def create(
        self,
        tenant_id: str,
        customer_key: str,
        items: list[LineItem],
        link_reason: str,
        source_message_id: str | None = None,
        now: datetime | None = None,
    ) -> Order:
        """Create a pending order.

        Args:
            tenant_id: Tenant.
            customer_key: Customer.
            items: Line items in message order.
            link_reason: First audit entry.
            source_message_id: Message that created the order.
            now: Message timestamp.

        Returns:
            The new Order at version 1.
        """
        ts = (now or datetime.now(UTC)).isoformat()
        order = Order(
            tenant_id=tenant_id,
            customer_key=customer_key,
            status=OrderStatus.pending.value,
            items_json=serialize_items(items),
            link_reason=link_reason,
            source_message_id=source_message_id,
            version=1,
            created_at=ts,
            updated_at=ts,
            last_inbound_at=ts,
        )
        self.db.add(order)
        self.db.flush()
        logger.info(
            "Created order %s for %s with %d item(s) (%s)",
            order.id,
            redact_customer_key(customer_key),
            len(items),
            link_reason,
        )
        return order

    def get(self, order_id: str) -> Order | None:
        return self.db.get(Order, order_id)

    def get_for_customer(
        self, tenant_id: str, customer_key: str, order_id: str | None
    ) -> Order | None:
        """Order by id, only if it belongs to the customer."""
        if not order_id:
            return None
        order = self.get(order_id)
        if order is None or order.tenant_id != tenant_id or order.customer_key != customer_key:
            return None
        return order

    def latest(self, tenant_id: str, customer_key: str) -> Order | None:
        """Customer's most recent order in any status."""
        return self.db.execute(
            select(Order)
            .where(Order.tenant_id == tenant_id, Order.customer_key == customer_key)
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def latest_open(self, tenant_id: str, customer_key: str) -> Order | None:
        """Customer's most recent order that is not closed."""
        return self.db.execute(
            select(Order)
            .where(
                Order.tenant_id == tenant_id,
                Order.customer_key == customer_key,
                Order.status.notin_(_CLOSED),
            )
            .order_by(Order.created_at.desc(), Order.id.desc())
            .limit(1)
        ).scalar_one_or_none()

    def find_by_source_message(
        self, tenant_id: str, customer_key: str, message_id: str
    ) -> Order | None:
        return self.db.execute(
            select(Order)
            .where(
                Order.tenant_id == tenant_id,
                Order.customer_key == customer_key,
                Order.source_message_id == message_id,
            )
            .order_by(Order.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _write(self, order: Order, values: dict[str, Any], now: datetime | None = None) -> Order:
        """Compare-and-swap update on the order's version.

        Raises:
            NotFoundError: The order row vanished.
            ConcurrentUpdateError: The version moved since it was read.
        """
        seen_version = order.version
        values = {
            **values,
            "version": seen_version + 1,
            "updated_at": (now or datetime.now(UTC)).isoformat(),
        }
        result = self.db.execute(
            update(Order)
            .where(Order.id == order.id, Order.version == seen_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            if self.db.execute(select(Order.id).where(Order.id == order.id)).first() is None:
                raise NotFoundError("Order", order.id)
            raise ConcurrentUpdateError("Order", order.id)
        self.db.refresh(order)
        return order

    def append_items(
        self,
        order: Order,
        items: list[LineItem],
        link_reason: str,
        now: datetime | None = None,
    ) -> Order:
        """Append items after the existing ones, preserving order."""
        merged = load_items(order) + list(items)
        return self._write(
            order,
            {
                "items_json": serialize_items(merged),
                "link_reason": merge_link_reason(order.link_reason, link_reason),
                "last_inbound_at": (now or datetime.now(UTC)).isoformat(),
            },
            now,
        )

    def replace_items(
        self,
        order: Order,
        items: list[LineItem],
        link_reason: str,
        now: datetime | None = None,
    ) -> Order:
        """Replace the whole item list (modifier result or message edit)."""
        return self._write(
            order,
            {
                "items_json": serialize_items(items),
                "link_reason": merge_link_reason(order.link_reason, link_reason),
                "last_inbound_at": (now or datetime.now(UTC)).isoformat(),
            },
            now,
        )

    def set_status(
        self,
        order: Order,
        status: OrderStatus,
        link_reason: str | None = None,
        now: datetime | None = None,
    ) -> Order:
        values: dict[str, Any] = {"status": status.value}
        if link_reason:
            values["link_reason"] = merge_link_reason(order.link_reason, link_reason)
        order = self._write(order, values, now)
        logger.info("Order %s -> %s", order.id, status.value)
        return order

    def cancel(self, order: Order, now: datetime | None = None) -> Order:
        """Customer cancellation; terminal."""
        return self.set_status(order, OrderStatus.cancelled_by_customer, "cancelled_by_customer", now)

    def archive_for_new(self, order: Order, now: datetime | None = None) -> Order:
        """Force-close an open order on an explicit "start new" command."""
        return self.set_status(order, OrderStatus.archived_for_new, "archived_for_new", now)

    def set_address(self, order: Order, address: str, now: datetime | None = None) -> Order:
        """Store the delivery address and confirm the order."""
        return self._write(
            order,
            {
                "delivery_address": address,
                "status": OrderStatus.confirmed.value,
                "link_reason": merge_link_reason(order.link_reason, "address_captured"),
            },
            now,
        )
