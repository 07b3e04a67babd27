"""Claude-backed classifier, order extractor and modifier extractor.

Each backend forces a single tool call so Claude returns structured input,
then validates that input with pydantic. Results are tagged outcomes:
validation failures become Invalid, transport and budget failures become
Unavailable. Nothing here raises for an expected failure.
"""

import json
import logging
from typing import Any

import anthropic
from anthropic import Anthropic
from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

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
    ModifierPayload,
    ModifierScope,
    ParseResult,
    ParseStrategy,
)
from src.orchestrator.nl_engine.config import (
    DEFAULT_MAX_TOKENS,
    get_api_key,
    get_model,
)
from src.orchestrator.nl_engine.cost_guard import AllowAllCostGuard, CostGuard
from src.orchestrator.nl_engine.outcome import (
    Invalid,
    ModelOutcome,
    Ok,
    Unavailable,
)

logger = logging.getLogger(__name__)

_RAW_LOG_LIMIT = 500

CLASSIFY_TOOL = {
    "name": "classify_message",
    "description": "Classify one inbound customer message for an order-taking assistant",
    "input_schema": {
        "type": "object",
        "properties": {
            "category": {
                "type": "string",
                "enum": [c.value for c in IntentCategory],
                "description": "What the message means for the customer's order",
            },
            "confidence": {
                "type": "number",
                "description": "Confidence between 0 and 1",
            },
            "inquiry_kind": {
                "type": "string",
                "enum": [k.value for k in InquiryKind],
                "nullable": True,
            },
            "canonical": {
                "type": "string",
                "nullable": True,
                "description": "Product the message is about, if any",
            },
        },
        "required": ["category", "confidence"],
    },
}

_ITEM_SCHEMA = {
    "type": "object",
    "properties": {
        "name": {"type": "string", "description": "Item text exactly as written"},
        "canonical": {"type": "string", "nullable": True},
        "qty": {"type": "number", "nullable": True},
        "unit": {"type": "string", "nullable": True},
        "brand": {"type": "string", "nullable": True},
        "variant": {"type": "string", "nullable": True},
        "notes": {"type": "string", "nullable": True},
    },
    "required": ["name"],
}

EXTRACT_TOOL = {
    "name": "extract_order_items",
    "description": "Extract the line items a customer is ordering",
    "input_schema": {
        "type": "object",
        "properties": {
            "items": {"type": "array", "items": _ITEM_SCHEMA},
            "is_order_like": {"type": "boolean"},
            "confidence": {"type": "number"},
        },
        "required": ["items", "is_order_like"],
    },
}

MODIFIER_TOOL = {
    "name": "extract_change_request",
    "description": "Describe a change the customer wants to make to their current order",
    "input_schema": {
        "type": "object",
        "properties": {
            "target_text": {
                "type": "string",
                "description": "The customer's phrase naming the item, empty if unclear",
            },
            "scope": {"type": "string", "enum": [s.value for s in ModifierScope]},
            "change_type": {"type": "string", "enum": [c.value for c in ChangeType]},
            "new_qty": {"type": "number", "nullable": True},
            "delta_qty": {"type": "number", "nullable": True},
            "new_variant": {"type": "string", "nullable": True},
            "note": {"type": "string", "nullable": True},
            "confidence": {"type": "number"},
        },
        "required": ["scope", "change_type", "confidence"],
    },
}

CLASSIFY_SYSTEM_PROMPT = """You classify single WhatsApp messages sent to a shop's order line.

Categories:
- order: the customer lists items to buy ("2kg onion, 1L milk")
- change_request: edits an existing order ("remove coke", "make it 2")
- inquiry: asks about price or availability ("do you have paneer?")
- address: gives a delivery address
- cancel: cancels the whole order
- start_new: asks to start a fresh order without listing items
- greeting: hello / thanks / ok only
- smalltalk: chit-chat unrelated to ordering
- unknown: anything else

Be conservative. If unsure, use a low confidence."""

EXTRACT_SYSTEM_PROMPT = """You extract purchasable line items from a customer message.

Rules:
- Only extract items that literally appear in the message. Never invent items.
- qty is null when the customer did not state a quantity.
- unit is one of kg, g, l, ml, pc, pack, dozen, plate, combo or null.
- If the message is not an order, return no items and is_order_like=false."""

MODIFIER_SYSTEM_PROMPT = """You turn a customer's change request into one structured edit.

Use scope "all" only when the customer clearly means every item.
Use scope "ambiguous" when you cannot tell which item is meant.
Never guess a target that is not in the message."""


class _ModelClassification(BaseModel):
    category: IntentCategory
    confidence: float = Field(ge=0.0, le=1.0)
    inquiry_kind: InquiryKind | None = None
    canonical: str | None = None


class _ModelExtraction(BaseModel):
    items: list[LineItem]
    is_order_like: bool
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class _ModelModifier(BaseModel):
    target_text: str = ""
    scope: ModifierScope
    change_type: str
    new_qty: float | None = None
    delta_qty: float | None = None
    new_variant: str | None = None
    note: str | None = None
    confidence: float = Field(ge=0.0, le=1.0)


def _truncate(payload: Any) -> str:
    try:
        text = json.dumps(payload, default=str)
    except (TypeError, ValueError):
        text = repr(payload)
    return text[:_RAW_LOG_LIMIT]


class ClaudeToolBackend:
    """Shared plumbing: credentials check, cost guard, forced tool call."""

    def __init__(
        self,
        client: Anthropic | None = None,
        model: str | None = None,
        cost_guard: CostGuard | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            client: Anthropic client. Created lazily from ANTHROPIC_API_KEY
                when omitted.
            model: Model override. Defaults to get_model().
            cost_guard: Spend gate. Defaults to allowing every call.
        """
        self._client = client
        self._model = model or get_model()
        self._cost_guard = cost_guard or AllowAllCostGuard()

    @property
    def available(self) -> bool:
        """Whether a call may be attempted without touching the network."""
        return self._client is not None or get_api_key() is not None

    def _get_client(self) -> Anthropic:
        if self._client is None:
            self._client = Anthropic(api_key=get_api_key())
        return self._client

    def _call_tool(
        self,
        operation: str,
        system_prompt: str,
        user_prompt: str,
        tool: dict[str, Any],
    ) -> ModelOutcome[dict[str, Any]]:
        """Force one tool call and return its raw input dict.

        Args:
            operation: Name used for cost accounting and logs.
            system_prompt: System prompt.
            user_prompt: User turn.
            tool: Tool definition whose input is the structured answer.

        Returns:
            Ok(tool input) or Invalid / Unavailable.
        """
        if not self.available:
            return Unavailable(FallbackReason.NO_CREDENTIALS)
        if not self._cost_guard.allow(operation):
            return Unavailable(FallbackReason.BUDGET, f"cost guard rejected {operation}")

        try:
            response = self._get_client().messages.create(
                model=self._model,
                max_tokens=DEFAULT_MAX_TOKENS,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
                tools=[tool],
                tool_choice={"type": "tool", "name": tool["name"]},
            )
        except anthropic.APITimeoutError as e:
            return Unavailable(FallbackReason.TIMEOUT, str(e))
        except anthropic.APIError as e:
            return Unavailable(FallbackReason.UNAVAILABLE, str(e))

        usage = getattr(response, "usage", None)
        if usage is not None:
            self._cost_guard.record(
                self._model,
                getattr(usage, "input_tokens", 0) or 0,
                getattr(usage, "output_tokens", 0) or 0,
            )

        for block in response.content:
            if block.type == "tool_use" and block.name == tool["name"]:
                if not isinstance(block.input, dict):
                    return Invalid(block.input, "tool input is not an object")
                return Ok(dict(block.input))

        raw = [getattr(b, "text", None) or getattr(b, "type", "") for b in response.content]
        return Invalid(raw, f"no {tool['name']} tool_use block in response")


class ClaudeIntentClassifier(ClaudeToolBackend):
    """Classifier service backed by Claude."""

    def classify(self, text: str) -> ModelOutcome[ClassificationResult]:
        outcome = self._call_tool(
            "classify",
            CLASSIFY_SYSTEM_PROMPT,
            f"Classify this message:\n\n{text}",
            CLASSIFY_TOOL,
        )
        if not isinstance(outcome, Ok):
            return outcome
        try:
            parsed = _ModelClassification.model_validate(outcome.value)
        except PydanticValidationError as e:
            logger.warning("Malformed classifier output: %s", _truncate(outcome.value))
            return Invalid(outcome.value, str(e))
        return Ok(
            ClassificationResult(
                category=parsed.category,
                confidence=parsed.confidence,
                hints=IntentHints(
                    inquiry_kind=parsed.inquiry_kind,
                    canonical=parsed.canonical,
                ),
                source=ClassificationSource.MODEL,
            )
        )


class ClaudeOrderExtractor(ClaudeToolBackend):
    """Structured order extractor backed by Claude."""

    def extract(
        self,
        text: str,
        catalog_sample: list[str] | None = None,
    ) -> ModelOutcome[ParseResult]:
        prompt = f"Customer message:\n\n{text}"
        if catalog_sample:
            prompt += "\n\nSome products this shop sells:\n- " + "\n- ".join(catalog_sample[:50])
        outcome = self._call_tool("extract", EXTRACT_SYSTEM_PROMPT, prompt, EXTRACT_TOOL)
        if not isinstance(outcome, Ok):
            return outcome
        try:
            parsed = _ModelExtraction.model_validate(outcome.value)
        except PydanticValidationError as e:
            logger.warning("Malformed extractor output: %s", _truncate(outcome.value))
            return Invalid(outcome.value, str(e))
        return Ok(
            ParseResult(
                items=parsed.items,
                is_order_like=parsed.is_order_like,
                confidence=parsed.confidence,
                reason=ParseStrategy.MODEL,
            )
        )


class ClaudeModifierExtractor(ClaudeToolBackend):
    """Change-request extractor backed by Claude."""

    def extract_modifier(
        self,
        text: str,
        item_labels: list[str],
    ) -> ModelOutcome[tuple[ModifierPayload, float]]:
        prompt = (
            "Current order items:\n- "
            + ("\n- ".join(item_labels) if item_labels else "(none)")
            + f"\n\nCustomer message:\n\n{text}"
        )
        outcome = self._call_tool("modifier", MODIFIER_SYSTEM_PROMPT, prompt, MODIFIER_TOOL)
        if not isinstance(outcome, Ok):
            return outcome
        try:
            parsed = _ModelModifier.model_validate(outcome.value)
            payload = ModifierPayload.model_validate({
                "target": {"text": parsed.target_text, "canonical": parsed.target_text or None},
                "scope": parsed.scope,
                "change": {
                    "type": parsed.change_type,
                    "new_qty": parsed.new_qty,
                    "delta_qty": parsed.delta_qty,
                    "new_variant": parsed.new_variant,
                    "note": parsed.note,
                },
            })
        except PydanticValidationError as e:
            logger.warning("Malformed modifier output: %s", _truncate(outcome.value))
            return Invalid(outcome.value, str(e))
        return Ok((payload, parsed.confidence))
