"""Database module for OrderDesk state management and persistence."""

from src.db.connection import (
    SessionLocal,
    engine,
    get_db_context,
    init_db,
)
from src.db.models import (
    CLOSED_ORDER_STATUSES,
    TERMINAL_ORDER_STATUSES,
    ConversationStage,
    ConversationState,
    DisambiguationSession,
    DisambiguationStatus,
    IngestEvent,
    Order,
    OrderStatus,
    PendingAction,
    Product,
)

__all__ = [
    # Models
    "Order",
    "ConversationState",
    "DisambiguationSession",
    "PendingAction",
    "Product",
    "IngestEvent",
    # Enums
    "OrderStatus",
    "ConversationStage",
    "DisambiguationStatus",
    "TERMINAL_ORDER_STATUSES",
    "CLOSED_ORDER_STATUSES",
    # Connection
    "engine",
    "SessionLocal",
    "get_db_context",
    "init_db",
]
