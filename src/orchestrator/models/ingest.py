"""Result models returned by the ingest entry point.

IngestResult is a tagged union discriminated on ``kind``. Every inbound
message produces exactly one of these; callers branch on ``kind`` and send
``reply`` (when present) back to the customer.
"""

from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from src.orchestrator.models.intent import InquiryKind
from src.orchestrator.models.order import (
    LineItem,
    ModifierCandidate,
    ModifierStatus,
)


class NoneReason(str, Enum):
    """Why a message produced no order change."""

    DUPLICATE = "duplicate"
    GREETING = "greeting"
    SMALL_TALK = "small_talk"
    NOT_ORDER = "not_order"
    CATALOG_UNMATCHED = "catalog_unmatched"
    NEEDS_CLARIFICATION = "needs_clarification"
    STALE_SESSION = "stale_session"
    NO_ACTIVE_ORDER = "no_active_order"
    ORDER_CLOSED = "order_closed"
    MODIFIER_UNPARSED = "modifier_unparsed"
    STARTED_NEW = "started_new"
    ORDER_CANCELLED = "order_cancelled"


class ClarificationRequest(BaseModel):
    """A variant question for one item."""

    item_index: Optional[int] = None
    item_name: str
    options: list[str]


class OrderIngestResult(BaseModel):
    """An order was created, appended to, edited or finalized."""

    kind: Literal["order"] = "order"
    order_id: str
    items: list[LineItem]
    link_reason: str
    stage: str
    unmatched: list[str] = Field(default_factory=list)
    clarifications: list[ClarificationRequest] = Field(default_factory=list)
    reply: Optional[str] = None


class InquiryIngestResult(BaseModel):
    """A price or availability question."""

    kind: Literal["inquiry"] = "inquiry"
    inquiry_kind: InquiryKind
    canonical: Optional[str] = None
    product_id: Optional[str] = None
    in_catalog: Optional[bool] = None
    reply: Optional[str] = None


class ModifierIngestResult(BaseModel):
    """A change request was evaluated against an order."""

    kind: Literal["modifier"] = "modifier"
    status: ModifierStatus
    order_id: str
    items: list[LineItem]
    summary: str
    candidates: list[ModifierCandidate] = Field(default_factory=list)
    disambiguation_id: Optional[str] = None
    reply: Optional[str] = None


class NoneIngestResult(BaseModel):
    """Nothing to change; the reason says why."""

    kind: Literal["none"] = "none"
    reason: NoneReason
    order_id: Optional[str] = None
    reply: Optional[str] = None


class ErrorIngestResult(BaseModel):
    """Processing failed; reply is always user-safe."""

    kind: Literal["error"] = "error"
    error: str
    retryable: bool = False
    reply: str


IngestResult = Annotated[
    Union[
        OrderIngestResult,
        InquiryIngestResult,
        ModifierIngestResult,
        NoneIngestResult,
        ErrorIngestResult,
    ],
    Field(discriminator="kind"),
]
