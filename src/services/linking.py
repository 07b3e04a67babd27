"""Append-vs-new decision for an inbound order message.

Pure function of the customer's most recent order, the message text and
the merge window. Rule order matters: a closed order or an explicit
"new order" always wins over anything that looks appendable.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from src.db.models import CLOSED_ORDER_STATUSES, Order, parse_iso
from src.orchestrator.nl_engine.text_shape import (
    EXPLICIT_APPEND,
    EXPLICIT_NEW_ORDER,
    looks_like_fresh_list,
)

DEFAULT_MERGE_WINDOW_MINUTES = 120


class LinkAction(str, Enum):
    """What to do with the parsed items."""

    APPEND = "append"
    NEW = "new"


class LinkReason(str, Enum):
    """Why the linking decision came out the way it did."""

    NO_PREVIOUS = "no_previous"
    NEW_AFTER_SHIPPED_OR_PAID = "new_after_shipped_or_paid"
    NEW_AFTER_WINDOW = "new_after_window"
    EXPLICIT_KEYWORD = "explicit_keyword"
    FRESH_LIST_SHAPE = "fresh_list_shape"
    EXPLICIT_APPEND = "explicit_append"
    DEFAULT_WITHIN_WINDOW = "default_within_window"


@dataclass(frozen=True)
class LinkDecision:
    """Result of decide()."""

    action: LinkAction
    reason: LinkReason


def _last_activity(order: Order) -> datetime | None:
    return parse_iso(order.last_inbound_at) or parse_iso(order.created_at)


def decide(
    last_order: Order | None,
    text: str,
    merge_window_minutes: int = DEFAULT_MERGE_WINDOW_MINUTES,
    now: datetime | None = None,
) -> LinkDecision:
    """Decide whether a message appends to the last order or starts a new one.

    Args:
        last_order: Customer's most recent order, or None.
        text: Raw message text.
        merge_window_minutes: Minutes of inactivity after which a new order
            is started.
        now: Reference time (message timestamp). Defaults to current UTC.

    Returns:
        LinkDecision with action and reason.
    """
    if last_order is None:
        return LinkDecision(LinkAction.NEW, LinkReason.NO_PREVIOUS)

    if last_order.status in {s.value for s in CLOSED_ORDER_STATUSES}:
        return LinkDecision(LinkAction.NEW, LinkReason.NEW_AFTER_SHIPPED_OR_PAID)

    now = now or datetime.now(UTC)
    last_activity = _last_activity(last_order)
    if last_activity is not None and now - last_activity > timedelta(minutes=merge_window_minutes):
        return LinkDecision(LinkAction.NEW, LinkReason.NEW_AFTER_WINDOW)

    body = text or ""
    if EXPLICIT_NEW_ORDER.search(body):
        return LinkDecision(LinkAction.NEW, LinkReason.EXPLICIT_KEYWORD)

    if looks_like_fresh_list(body):
        return LinkDecision(LinkAction.NEW, LinkReason.FRESH_LIST_SHAPE)

    if EXPLICIT_APPEND.search(body):
        return LinkDecision(LinkAction.APPEND, LinkReason.EXPLICIT_APPEND)

    return LinkDecision(LinkAction.APPEND, LinkReason.DEFAULT_WITHIN_WINDOW)
