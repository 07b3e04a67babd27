"""Applies structured change requests to an order's line items.

Target resolution scores every item against the target phrase (exact 3,
substring either way 2, any shared token 1) and keeps the items at the top
score. One match is applied; several are returned as candidates for
disambiguation; none is a no-match. A target phrase made only of pronouns
("make it 2") matches every item.

All functions are pure: they return a new item list and never mutate the
input.
"""

import logging

from src.orchestrator.models.order import (
    ChangeType,
    LineItem,
    ModifierCandidate,
    ModifierChange,
    ModifierPayload,
    ModifierResult,
    ModifierScope,
    ModifierStatus,
)
from src.orchestrator.nl_engine.text_shape import normalize_text, tokenize

logger = logging.getLogger(__name__)

SCORE_EXACT = 3
SCORE_SUBSTRING = 2
SCORE_TOKEN = 1

_FILLER_TOKENS = frozenset({
    "it", "that", "this", "them", "those", "these", "one", "ones", "item",
    "items", "the", "my", "instead", "please", "pls", "same", "thing",
})


def _as_number(value: int | float) -> int | float:
    return int(value) if float(value).is_integer() else value


def is_unspecified_target(text: str | None) -> bool:
    """True when the target phrase names nothing ("", "it", "that one")."""
    return all(t in _FILLER_TOKENS for t in tokenize(text))


def score_item(item_key: str, target: str) -> int:
    """Score how well an item identity matches a target phrase."""
    if not item_key or not target:
        return 0
    if item_key == target:
        return SCORE_EXACT
    if target in item_key or item_key in target:
        return SCORE_SUBSTRING
    if set(tokenize(item_key)) & set(tokenize(target)):
        return SCORE_TOKEN
    return 0


def find_candidate_indices(items: list[LineItem], target_text: str | None) -> list[int]:
    """Indices of the items at the maximum nonzero score, in item order."""
    if is_unspecified_target(target_text):
        return list(range(len(items)))
    target = normalize_text(target_text)
    scores = [score_item(item.key, target) for item in items]
    best = max(scores, default=0)
    if best == 0:
        return []
    return [i for i, s in enumerate(scores) if s == best]


def candidate_label(item: LineItem, index: int) -> str:
    """Human-presentable label for a candidate item."""
    return item.label or f"Item #{index + 1}"


def build_candidates(
    items: list[LineItem],
    indices: list[int],
    modifier: ModifierPayload | None = None,
) -> list[ModifierCandidate]:
    return [
        ModifierCandidate(
            index=i,
            label=candidate_label(items[i], i),
            qty=items[i].qty,
            modifier=modifier,
        )
        for i in indices
    ]


def _apply_qty(items: list[LineItem], indices: list[int], change: ModifierChange) -> ModifierResult:
    if change.new_qty is None and change.delta_qty is None:
        return ModifierResult(
            status=ModifierStatus.NOOP, items=items, summary="qty change without new_qty or delta_qty"
        )

    updated = 0
    removed = 0
    for idx in sorted(indices, reverse=True):
        item = items[idx]
        current = item.qty if item.qty is not None else 1
        if change.new_qty is not None:
            target_qty = change.new_qty
        else:
            target_qty = current + change.delta_qty
        if target_qty <= 0:
            del items[idx]
            removed += 1
            continue
        target_qty = _as_number(target_qty)
        if item.qty != target_qty:
            items[idx] = item.model_copy(update={"qty": target_qty})
            updated += 1

    if not updated and not removed:
        return ModifierResult(status=ModifierStatus.NOOP, items=items, summary="quantity unchanged")

    parts = []
    if updated:
        parts.append(f"updated qty on {updated} item(s)")
    if removed:
        parts.append(f"removed {removed} item(s)")
    return ModifierResult(status=ModifierStatus.APPLIED, items=items, summary="; ".join(parts))


def _apply_variant(items: list[LineItem], indices: list[int], change: ModifierChange) -> ModifierResult:
    if not change.new_variant:
        return ModifierResult(status=ModifierStatus.NOOP, items=items, summary="missing variant value")
    for idx in indices:
        items[idx] = items[idx].model_copy(update={"variant": change.new_variant})
    return ModifierResult(
        status=ModifierStatus.APPLIED,
        items=items,
        summary=f'set variant="{change.new_variant}" on {len(indices)} item(s)',
    )


def _apply_remove(items: list[LineItem], indices: list[int]) -> ModifierResult:
    removed = 0
    for idx in sorted(indices, reverse=True):
        if 0 <= idx < len(items):
            del items[idx]
            removed += 1
    if not removed:
        return ModifierResult(status=ModifierStatus.NOOP, items=items, summary="nothing removed")
    return ModifierResult(
        status=ModifierStatus.APPLIED, items=items, summary=f"removed {removed} item(s)"
    )


def _apply_note(items: list[LineItem], indices: list[int], change: ModifierChange) -> ModifierResult:
    note = (change.note or "").strip()
    if not note:
        return ModifierResult(status=ModifierStatus.NOOP, items=items, summary="missing note text")
    for idx in indices:
        existing = items[idx].notes
        merged = f"{existing}; {note}" if existing else note
        items[idx] = items[idx].model_copy(update={"notes": merged})
    return ModifierResult(
        status=ModifierStatus.APPLIED,
        items=items,
        summary=f"added note to {len(indices)} item(s)",
    )


def _apply_change(items: list[LineItem], indices: list[int], change: ModifierChange) -> ModifierResult:
    if change.type == ChangeType.QTY.value:
        return _apply_qty(items, indices, change)
    if change.type == ChangeType.VARIANT.value:
        return _apply_variant(items, indices, change)
    if change.type == ChangeType.REMOVE.value:
        return _apply_remove(items, indices)
    if change.type == ChangeType.NOTE.value:
        return _apply_note(items, indices, change)
    logger.warning("Unsupported modifier change type: %s", change.type)
    return ModifierResult(
        status=ModifierStatus.NOOP,
        items=items,
        summary=f"unsupported change type: {change.type}",
    )


def apply_modifier(items: list[LineItem], modifier: ModifierPayload) -> ModifierResult:
    """Resolve a modifier's target and apply it.

    Args:
        items: Current order items. Not mutated.
        modifier: Structured change request.

    Returns:
        ModifierResult with status applied, no_match, ambiguous or noop.
    """
    working = [item.model_copy(deep=True) for item in items]

    if modifier.scope == ModifierScope.ALL:
        if not working:
            return ModifierResult(
                status=ModifierStatus.NO_MATCH, items=working, summary="order has no items"
            )
        return _apply_change(working, list(range(len(working))), modifier.change)

    target_text = modifier.target.canonical or modifier.target.text
    indices = find_candidate_indices(working, target_text)

    if not indices:
        return ModifierResult(
            status=ModifierStatus.NO_MATCH,
            items=working,
            summary="no items matched the target phrase",
        )

    if modifier.scope == ModifierScope.AMBIGUOUS or len(indices) > 1:
        return ModifierResult(
            status=ModifierStatus.AMBIGUOUS,
            items=working,
            summary=f"ambiguous target; {len(indices)} candidate items",
            candidates=build_candidates(working, indices, modifier),
        )

    return _apply_change(working, indices, modifier.change)


def apply_modifier_at(
    items: list[LineItem],
    modifier: ModifierPayload,
    index: int,
) -> ModifierResult:
    """Apply a modifier to one known item, bypassing target resolution.

    Used once a disambiguation reply has picked the item.
    """
    working = [item.model_copy(deep=True) for item in items]
    if not 0 <= index < len(working):
        return ModifierResult(
            status=ModifierStatus.NO_MATCH,
            items=working,
            summary=f"item #{index + 1} no longer exists",
        )
    return _apply_change(working, [index], modifier.change)
