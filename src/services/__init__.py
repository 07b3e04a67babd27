"""Service layer for OrderDesk.

Provides the decision components (linking, modifier engine, catalog gate,
disambiguation, conversation stage machine), the stores they write through,
and the IngestService entry point that ties them together.
"""

from src.services.catalog_service import ReconcileResult, reconcile
from src.services.conversation_state import ConversationStateService, StageEvent
from src.services.disambiguation_service import DisambiguationService, pick_candidate_index
from src.services.ingest_service import IngestService
from src.services.linking import LinkAction, LinkDecision, LinkReason, decide
from src.services.modifier_engine import apply_modifier, apply_modifier_at
from src.services.order_service import OrderService
from src.services.pending_actions import PendingActionStore, PendingKind

__all__ = [
    "IngestService",
    "decide",
    "LinkAction",
    "LinkDecision",
    "LinkReason",
    "apply_modifier",
    "apply_modifier_at",
    "reconcile",
    "ReconcileResult",
    "DisambiguationService",
    "pick_candidate_index",
    "ConversationStateService",
    "StageEvent",
    "OrderService",
    "PendingActionStore",
    "PendingKind",
]
