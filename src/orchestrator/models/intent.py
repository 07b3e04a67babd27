"""Intent models for inbound customer messages.

The classifier produces exactly one ClassificationResult per message. Its
category is a closed enum decided once at classification time and carried
through the pipeline; downstream code branches on it and never re-derives
intent from free-text reason strings.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class IntentCategory(str, Enum):
    """What an inbound message means for the customer's order."""

    ORDER = "order"
    CHANGE_REQUEST = "change_request"
    INQUIRY = "inquiry"
    ADDRESS = "address"
    CANCEL = "cancel"
    START_NEW = "start_new"
    GREETING = "greeting"
    SMALLTALK = "smalltalk"
    UNKNOWN = "unknown"


class ClassificationSource(str, Enum):
    """Which path produced a classification."""

    MODEL = "model"
    RULES = "rules"


class FallbackReason(str, Enum):
    """Why the model path was not used, or was overruled.

    NONE means the model result was accepted as-is.
    """

    NONE = "none"
    NO_CREDENTIALS = "no_credentials"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    INVALID_OUTPUT = "invalid_output"
    BUDGET = "budget"
    LOW_CONFIDENCE = "low_confidence"


class InquiryKind(str, Enum):
    """Kinds of product questions the engine recognizes."""

    PRICE = "price"
    AVAILABILITY = "availability"


class IntentHints(BaseModel):
    """Structured hints extracted alongside the category.

    Attributes:
        inquiry_kind: Price or availability, for inquiry messages.
        canonical: Product phrase the message is about, if one was found.
        has_list_shape: Message has two or more non-greeting lines.
        has_quantity: Message contains a quantity or quantity+unit pattern.
    """

    model_config = ConfigDict(from_attributes=True)

    inquiry_kind: Optional[InquiryKind] = Field(
        default=None,
        description="Price or availability, for inquiry messages",
    )
    canonical: Optional[str] = Field(
        default=None,
        description="Product phrase the message is about",
    )
    has_list_shape: bool = Field(
        default=False,
        description="Two or more non-greeting lines",
    )
    has_quantity: bool = Field(
        default=False,
        description="Contains a quantity or quantity+unit pattern",
    )


class ClassificationResult(BaseModel):
    """Output of the confidence-gated classifier adapter.

    Attributes:
        category: Final category to act on.
        confidence: Confidence in [0, 1] for the final category.
        hints: Extracted hints.
        source: Model or rules.
        fallback: Why the model result was not used as-is.
        proposed_category: Category the model proposed when it was demoted
            to UNKNOWN for low confidence. Kept for logs only.
    """

    model_config = ConfigDict(from_attributes=True)

    category: IntentCategory
    confidence: float = Field(ge=0.0, le=1.0)
    hints: IntentHints = Field(default_factory=IntentHints)
    source: ClassificationSource = ClassificationSource.RULES
    fallback: FallbackReason = FallbackReason.NONE
    proposed_category: Optional[IntentCategory] = None
