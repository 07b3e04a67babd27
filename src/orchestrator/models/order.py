"""Order, line item and modifier models.

LineItem is the unit every component passes around: created by the order
parser, enriched by the catalog gate, mutated by the modifier engine and
persisted as JSON on the Order row.
"""

from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.orchestrator.models.intent import FallbackReason

MatchType = Literal["catalog_exact", "catalog_fuzzy", "text_only"]

Quantity = int | float


class LineItem(BaseModel):
    """One line of an order.

    Attributes:
        name: Item text as the customer wrote it.
        canonical: Resolved or cleaned identity, preferred over name.
        qty: Quantity; None when the customer did not state one.
        unit: Normalized unit (kg, g, l, ml, pc, pack, dozen, plate).
        brand: Brand descriptor.
        variant: Variant descriptor (size, fat level, spice level).
        notes: Free-text notes; appended with "; " by modifiers.
        product_id: Catalog product id once resolved.
        match_type: How the item was resolved against the catalog.
        needs_clarify: Variant is ambiguous; product_id stays unset until
            an explicit resolution event.
        variant_options: Catalog variants offered when needs_clarify is set.
    """

    model_config = ConfigDict(from_attributes=True)

    name: str
    canonical: Optional[str] = None
    qty: Optional[Quantity] = None
    unit: Optional[str] = None
    brand: Optional[str] = None
    variant: Optional[str] = None
    notes: Optional[str] = None
    product_id: Optional[str] = None
    match_type: MatchType = "text_only"
    needs_clarify: bool = False
    variant_options: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        """Lowercased identity used for target matching."""
        return (self.canonical or self.name or "").strip().lower()

    @property
    def label(self) -> str:
        """Human-presentable label: identity plus variant and unit."""
        parts = [self.canonical or self.name, self.variant, self.unit]
        return " ".join(p for p in parts if p)


class ParseStrategy(str, Enum):
    """Which order-parse strategy produced the items."""

    MODEL = "model"
    RULES = "rules"
    LIST_LINES = "list_lines"
    INLINE_QTY = "inline_qty"
    NONE = "none"


class ParseResult(BaseModel):
    """Output of the order parser pipeline."""

    items: list[LineItem] = Field(default_factory=list)
    is_order_like: bool = False
    confidence: Optional[float] = None
    reason: ParseStrategy = ParseStrategy.NONE
    fallback: FallbackReason = FallbackReason.NONE


class ModifierScope(str, Enum):
    """How many items a modifier applies to.

    AMBIGUOUS is terminal: such a payload is never applied, it only seeds a
    disambiguation question.
    """

    ONE = "one"
    ALL = "all"
    AMBIGUOUS = "ambiguous"


class ChangeType(str, Enum):
    """Known modifier change types."""

    QTY = "qty"
    VARIANT = "variant"
    REMOVE = "remove"
    NOTE = "note"


class ModifierTarget(BaseModel):
    """The customer's phrase naming the item(s) to change."""

    type: Literal["item"] = "item"
    text: str = ""
    canonical: Optional[str] = None


class ModifierChange(BaseModel):
    """A single change operation.

    The type tag selects which of the optional fields is meaningful. Unknown
    types are carried through so the engine can report them as a noop.
    """

    type: str
    new_qty: Optional[Quantity] = None
    delta_qty: Optional[Quantity] = None
    new_variant: Optional[str] = None
    note: Optional[str] = None


class ModifierPayload(BaseModel):
    """A structured change request against an order's items."""

    target: ModifierTarget = Field(default_factory=ModifierTarget)
    scope: ModifierScope = ModifierScope.ONE
    change: ModifierChange


class ModifierStatus(str, Enum):
    """Outcome of applying a modifier."""

    APPLIED = "applied"
    NO_MATCH = "no_match"
    AMBIGUOUS = "ambiguous"
    NOOP = "noop"


class ModifierCandidate(BaseModel):
    """One item an ambiguous modifier could apply to."""

    index: int
    label: str
    qty: Optional[Quantity] = None
    modifier: Optional[ModifierPayload] = None


class ModifierResult(BaseModel):
    """Output of the modifier engine."""

    status: ModifierStatus
    items: list[LineItem]
    summary: str
    candidates: list[ModifierCandidate] = Field(default_factory=list)
