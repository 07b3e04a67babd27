"""Change-request extraction: model first, rules as the fallback."""

import asyncio
import logging
from typing import Protocol

from src.orchestrator.models.order import (
    ChangeType,
    LineItem,
    ModifierPayload,
)
from src.orchestrator.nl_engine.config import get_confidence_floor
from src.orchestrator.nl_engine.outcome import Invalid, ModelOutcome, Ok, Unavailable
from src.orchestrator.nl_engine.rule_modifier import parse_modifier_by_rules

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


class ModifierExtractorBackend(Protocol):
    """External change-request extractor."""

    @property
    def available(self) -> bool:
        ...

    def extract_modifier(
        self, text: str, item_labels: list[str]
    ) -> ModelOutcome[tuple[ModifierPayload, float]]:
        ...


def is_actionable(payload: ModifierPayload) -> bool:
    """Sanity check: the change carries the value its type needs."""
    change = payload.change
    if change.type == ChangeType.QTY.value:
        return change.new_qty is not None or change.delta_qty is not None
    if change.type == ChangeType.VARIANT.value:
        return bool(change.new_variant)
    if change.type == ChangeType.NOTE.value:
        return bool(change.note)
    return change.type == ChangeType.REMOVE.value


class ModifierParser:
    """Produces a ModifierPayload for a change-request message."""

    def __init__(
        self,
        extractor: ModifierExtractorBackend | None = None,
        confidence_floor: float | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._extractor = extractor
        self.confidence_floor = (
            confidence_floor if confidence_floor is not None else get_confidence_floor()
        )
        self.timeout_seconds = timeout_seconds

    async def parse(self, text: str, items: list[LineItem]) -> ModifierPayload | None:
        """Extract a change request against the given items.

        Args:
            text: Raw customer message.
            items: Current items of the target order, for model context.

        Returns:
            ModifierPayload, or None when neither path recognizes a change.
        """
        if self._extractor is not None and self._extractor.available:
            try:
                outcome = await asyncio.wait_for(
                    asyncio.to_thread(
                        self._extractor.extract_modifier, text, [i.label for i in items]
                    ),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                outcome = None
                logger.warning("Modifier extractor timed out; using rules")

            if isinstance(outcome, Ok):
                payload, confidence = outcome.value
                if confidence >= self.confidence_floor and is_actionable(payload):
                    return payload
                logger.info(
                    "Discarding model modifier (confidence=%.2f, type=%s)",
                    confidence,
                    payload.change.type,
                )
            elif isinstance(outcome, Invalid):
                logger.warning("Modifier output invalid: %s raw=%r", outcome.error, outcome.raw_payload)
            elif isinstance(outcome, Unavailable):
                logger.warning("Modifier extractor unavailable: %s", outcome.reason.value)

        return parse_modifier_by_rules(text)
