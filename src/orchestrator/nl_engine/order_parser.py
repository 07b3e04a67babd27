"""Order parser pipeline: raw text -> structured line items.

Strategies, in order:
1. Model extraction (credentials present and cost guard allows), else the
   rule tokenizer.
2. List-shaped text (two or more non-greeting lines) is parsed line by
   line, and that result replaces whatever step 1 produced.
3. Inline quantity scan when nothing so far produced items.
4. Otherwise the message is not an order.

A failing strategy never blocks the message; it degrades to the next one.
"""

import asyncio
import logging
from typing import Protocol

from src.orchestrator.models.intent import FallbackReason
from src.orchestrator.models.order import LineItem, ParseResult, ParseStrategy
from src.orchestrator.nl_engine.outcome import (
    Invalid,
    ModelOutcome,
    Ok,
    Unavailable,
)
from src.orchestrator.nl_engine.rule_extractor import (
    build_line_items_from_list,
    extract_items_by_rules,
    fallback_qty_items,
)
from src.orchestrator.nl_engine.text_shape import (
    ORDER_VERB,
    list_lines,
    normalize_unit,
    tokenize,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


class OrderExtractorBackend(Protocol):
    """External structured order extractor."""

    @property
    def available(self) -> bool:
        ...

    def extract(
        self, text: str, catalog_sample: list[str] | None = None
    ) -> ModelOutcome[ParseResult]:
        ...


def _grounded(items: list[LineItem], text: str) -> list[LineItem]:
    """Drop model items not found in the source text or with a non-positive quantity."""
    source_tokens = set(tokenize(text))
    kept: list[LineItem] = []
    for item in items:
        if not set(tokenize(item.name)) & source_tokens:
            logger.warning("Dropping model item not present in text: %r", item.name)
            continue
        if item.qty is not None and item.qty <= 0:
            logger.warning("Dropping model item with quantity %s: %r", item.qty, item.name)
            continue
        kept.append(
            item.model_copy(
                update={
                    "canonical": (item.canonical or item.name).strip().lower(),
                    "unit": normalize_unit(item.unit),
                }
            )
        )
    return kept


class OrderParserPipeline:
    """Turns a message into line items, model first with rule fallbacks."""

    def __init__(
        self,
        extractor: OrderExtractorBackend | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._extractor = extractor
        self.timeout_seconds = timeout_seconds

    async def _model_parse(
        self, text: str, catalog_hint: list[str] | None
    ) -> tuple[ParseResult | None, FallbackReason]:
        if self._extractor is None or not self._extractor.available:
            return None, FallbackReason.NO_CREDENTIALS
        try:
            outcome = await asyncio.wait_for(
                asyncio.to_thread(self._extractor.extract, text, catalog_hint),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Order extractor timed out after %.1fs", self.timeout_seconds)
            return None, FallbackReason.TIMEOUT

        if isinstance(outcome, Unavailable):
            logger.warning("Order extractor unavailable (%s): %s", outcome.reason.value, outcome.detail)
            return None, outcome.reason
        if isinstance(outcome, Invalid):
            logger.warning("Order extractor output invalid: %s raw=%r", outcome.error, outcome.raw_payload)
            return None, FallbackReason.INVALID_OUTPUT
        if isinstance(outcome, Ok):
            return outcome.value, FallbackReason.NONE
        return None, FallbackReason.INVALID_OUTPUT

    async def parse(self, text: str, catalog_hint: list[str] | None = None) -> ParseResult:
        """Parse a message into line items.

        Args:
            text: Raw customer message.
            catalog_hint: Optional product names for the tenant.

        Returns:
            ParseResult; empty items with reason NONE when not an order.
        """
        model_result, fallback = await self._model_parse(text, catalog_hint)

        items: list[LineItem] = []
        strategy = ParseStrategy.NONE
        is_order_like = False
        confidence: float | None = None

        if model_result is not None:
            items = _grounded(model_result.items, text)
            if items:
                strategy = ParseStrategy.MODEL
                is_order_like = model_result.is_order_like
                confidence = model_result.confidence

        if not items:
            items = extract_items_by_rules(text, catalog_hint)
            if items:
                strategy = ParseStrategy.RULES
                is_order_like = any(i.qty is not None for i in items) or bool(
                    ORDER_VERB.search(text or "")
                )

        lines = list_lines(text)
        if len(lines) >= 2:
            list_items = build_line_items_from_list(str(text or "").splitlines())
            if list_items:
                if strategy == ParseStrategy.MODEL:
                    logger.debug("List shape overrides %d model item(s)", len(items))
                items = list_items
                strategy = ParseStrategy.LIST_LINES
                is_order_like = True
                confidence = None

        if not items:
            items = fallback_qty_items(text)
            if items:
                strategy = ParseStrategy.INLINE_QTY
                is_order_like = True

        if not items:
            return ParseResult(items=[], is_order_like=False, reason=ParseStrategy.NONE, fallback=fallback)

        return ParseResult(
            items=items,
            is_order_like=is_order_like,
            confidence=confidence,
            reason=strategy,
            fallback=fallback,
        )
