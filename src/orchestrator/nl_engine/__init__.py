"""Natural Language Engine for inbound customer messages.

This module provides intent classification, order parsing and change
request extraction. Each capability has a Claude-backed path and a
deterministic rule path; adapters pick between them and always return a
usable result.
"""

from src.orchestrator.nl_engine.classifier import ClassifierAdapter, ClassifierBackend
from src.orchestrator.nl_engine.cost_guard import (
    AllowAllCostGuard,
    CostGuard,
    DailyBudgetCostGuard,
)
from src.orchestrator.nl_engine.model_backends import (
    ClaudeIntentClassifier,
    ClaudeModifierExtractor,
    ClaudeOrderExtractor,
)
from src.orchestrator.nl_engine.modifier_parser import ModifierParser
from src.orchestrator.nl_engine.order_parser import OrderParserPipeline
from src.orchestrator.nl_engine.outcome import (
    Invalid,
    ModelOutcome,
    Ok,
    Unavailable,
)
from src.orchestrator.nl_engine.rule_classifier import (
    classify_by_rules,
    detect_inquiry,
    is_cancel_request,
    is_start_new_command,
    looks_like_address,
)
from src.orchestrator.nl_engine.rule_modifier import parse_modifier_by_rules

__all__ = [
    # Adapters
    "ClassifierAdapter",
    "ClassifierBackend",
    "OrderParserPipeline",
    "ModifierParser",
    # Backends
    "ClaudeIntentClassifier",
    "ClaudeOrderExtractor",
    "ClaudeModifierExtractor",
    # Cost guard
    "CostGuard",
    "AllowAllCostGuard",
    "DailyBudgetCostGuard",
    # Outcomes
    "Ok",
    "Invalid",
    "Unavailable",
    "ModelOutcome",
    # Rules
    "classify_by_rules",
    "detect_inquiry",
    "is_cancel_request",
    "is_start_new_command",
    "looks_like_address",
    "parse_modifier_by_rules",
]
