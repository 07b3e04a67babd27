"""Pydantic models for the order decision engine.

This module exports models used for intent classification, order parsing,
modifiers, and ingest results.
"""

from src.orchestrator.models.ingest import (
    ClarificationRequest,
    ErrorIngestResult,
    IngestResult,
    InquiryIngestResult,
    ModifierIngestResult,
    NoneIngestResult,
    NoneReason,
    OrderIngestResult,
)
from src.orchestrator.models.intent import (
    ClassificationResult,
    ClassificationSource,
    FallbackReason,
    InquiryKind,
    IntentCategory,
    IntentHints,
)
from src.orchestrator.models.order import (
    ChangeType,
    LineItem,
    MatchType,
    ModifierCandidate,
    ModifierChange,
    ModifierPayload,
    ModifierResult,
    ModifierScope,
    ModifierStatus,
    ModifierTarget,
    ParseResult,
    ParseStrategy,
)

__all__ = [
    # Intent
    "IntentCategory",
    "ClassificationSource",
    "FallbackReason",
    "InquiryKind",
    "IntentHints",
    "ClassificationResult",
    # Order
    "LineItem",
    "MatchType",
    "ParseStrategy",
    "ParseResult",
    "ChangeType",
    "ModifierScope",
    "ModifierTarget",
    "ModifierChange",
    "ModifierPayload",
    "ModifierStatus",
    "ModifierCandidate",
    "ModifierResult",
    # Ingest
    "NoneReason",
    "ClarificationRequest",
    "OrderIngestResult",
    "InquiryIngestResult",
    "ModifierIngestResult",
    "NoneIngestResult",
    "ErrorIngestResult",
    "IngestResult",
]
