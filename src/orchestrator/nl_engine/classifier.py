"""Confidence-gated classifier adapter.

Wraps an external classifier backend and guarantees a ClassificationResult
for every message:

- no backend or no credentials: rules, without any network attempt
- timeout, API error, budget rejection: rules
- malformed output: rules, raw payload logged
- model confidence below the floor: category demoted to UNKNOWN

Example:
    adapter = ClassifierAdapter(backend=ClaudeIntentClassifier())
    result = await adapter.classify("2kg onion, 1L milk")
"""

import asyncio
import logging
from typing import Protocol

from src.errors import OrderDeskError, format_error
from src.orchestrator.models.intent import (
    ClassificationResult,
    FallbackReason,
    IntentCategory,
)
from src.orchestrator.nl_engine.config import get_confidence_floor
from src.orchestrator.nl_engine.outcome import (
    Invalid,
    ModelOutcome,
    Ok,
    Unavailable,
)
from src.orchestrator.nl_engine.rule_classifier import classify_by_rules
from src.orchestrator.nl_engine.text_shape import has_list_shape, has_quantity

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 8.0


class ClassifierBackend(Protocol):
    """External classifier service."""

    @property
    def available(self) -> bool:
        ...

    def classify(self, text: str) -> ModelOutcome[ClassificationResult]:
        ...


class ClassifierAdapter:
    """Model-first intent classification with a deterministic fallback.

    Attributes:
        confidence_floor: Minimum model confidence that may drive a decision.
        timeout_seconds: Bound on one backend call.
    """

    def __init__(
        self,
        backend: ClassifierBackend | None = None,
        confidence_floor: float | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._backend = backend
        self.confidence_floor = (
            confidence_floor if confidence_floor is not None else get_confidence_floor()
        )
        self.timeout_seconds = timeout_seconds

    async def classify(self, text: str) -> ClassificationResult:
        """Classify a message; never raises for collaborator failures.

        Args:
            text: Raw customer message.

        Returns:
            ClassificationResult from the model or from rules.
        """
        if self._backend is None or not self._backend.available:
            logger.debug("Classifier has no credentials; using rules")
            return classify_by_rules(text, fallback=FallbackReason.NO_CREDENTIALS)

        try:
            outcome = await asyncio.wait_for(
                asyncio.to_thread(self._backend.classify, text),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            outcome = Unavailable(FallbackReason.TIMEOUT, f"> {self.timeout_seconds}s")

        if isinstance(outcome, Unavailable):
            if outcome.reason == FallbackReason.BUDGET:
                err = OrderDeskError.from_code("E-3003", operation="classify")
            else:
                err = OrderDeskError.from_code(
                    "E-3001", operation="classify", reason=outcome.detail or outcome.reason.value
                )
            logger.warning("%s", format_error(err, include_remediation=False))
            return classify_by_rules(text, fallback=outcome.reason)

        if isinstance(outcome, Invalid):
            err = OrderDeskError.from_code("E-3002", operation="classify", error=outcome.error)
            logger.warning(
                "%s raw=%r", format_error(err, include_remediation=False), outcome.raw_payload
            )
            return classify_by_rules(text, fallback=FallbackReason.INVALID_OUTPUT)

        if not isinstance(outcome, Ok):
            return classify_by_rules(text, fallback=FallbackReason.INVALID_OUTPUT)

        result = outcome.value
        result = result.model_copy(
            update={
                "hints": result.hints.model_copy(
                    update={
                        "has_list_shape": has_list_shape(text),
                        "has_quantity": has_quantity(text),
                    }
                )
            }
        )

        if result.confidence < self.confidence_floor:
            logger.info(
                "Model proposed %s at %.2f (< %.2f); treating as unknown",
                result.category.value,
                result.confidence,
                self.confidence_floor,
            )
            return result.model_copy(
                update={
                    "category": IntentCategory.UNKNOWN,
                    "proposed_category": result.category,
                    "fallback": FallbackReason.LOW_CONFIDENCE,
                }
            )
        return result
