"""Deterministic line-item extraction.

Three entry points, used by the order parser pipeline in this order of
trust:

- extract_items_by_rules: chunked tokenizer used when no model is available.
- build_line_items_from_list: per-line parse for list-shaped messages.
- fallback_qty_items: last-resort single-line quantity scan.

None of them invents items: every item name is a substring of the input.
"""

from src.orchestrator.models.order import LineItem
from src.orchestrator.nl_engine.rule_classifier import is_question_line
from src.orchestrator.nl_engine.text_shape import (
    clean_line,
    is_greeting_or_ack,
    is_polite_noise_line,
    parse_inline_qty_unit,
    split_chunks,
    tokenize,
)


def _item(name: str, qty: int | float | None, unit: str | None) -> LineItem:
    canonical = name.strip().lower()
    return LineItem(name=name.strip(), canonical=canonical, qty=qty, unit=unit)


def _matches_catalog_hint(name: str, catalog_hint: list[str]) -> bool:
    """All tokens of some catalog name appear in the chunk, with little else."""
    name_tokens = tokenize(name)
    if not name_tokens:
        return False
    for hint in catalog_hint:
        hint_tokens = tokenize(hint)
        if not hint_tokens:
            continue
        if set(hint_tokens) <= set(name_tokens) and len(name_tokens) <= len(hint_tokens) + 2:
            return True
    return False


def extract_items_by_rules(
    text: str,
    catalog_hint: list[str] | None = None,
) -> list[LineItem]:
    """Tokenize a message into items without a model.

    A chunk becomes an item only when it carries a quantity, or when it
    names a product from the catalog hint (quantity left unset).

    Args:
        text: Raw customer message.
        catalog_hint: Optional catalog names for the tenant.

    Returns:
        Items in message order.
    """
    items: list[LineItem] = []
    for chunk in split_chunks(text):
        cleaned = clean_line(chunk)
        if not cleaned or is_polite_noise_line(cleaned) or is_greeting_or_ack(cleaned):
            continue
        name, qty, unit = parse_inline_qty_unit(cleaned)
        if not name.strip():
            continue
        if qty is not None:
            if qty > 0:
                items.append(_item(name, qty, unit))
        elif catalog_hint and _matches_catalog_hint(name, catalog_hint):
            items.append(_item(name, None, None))
    return items


def build_line_items_from_list(lines: list[str]) -> list[LineItem]:
    """One item per list line; quantity defaults to 1.

    Question lines without a quantity ("do you deliver on sunday?") and
    lines with a zero or negative quantity are skipped.
    """
    items: list[LineItem] = []
    for raw in lines:
        line = clean_line(raw)
        if not line or is_polite_noise_line(line):
            continue
        name, qty, unit = parse_inline_qty_unit(line)
        if not name.strip():
            continue
        if qty is None and is_question_line(raw):
            continue
        if qty is not None and qty <= 0:
            continue
        items.append(_item(name, qty if qty is not None else 1, unit))
    return items


def fallback_qty_items(text: str) -> list[LineItem]:
    """Inline quantity scan for single-line orders ("1kg onion and 0.5kg chicken").

    Only segments with a numeric quantity qualify, so questions such as
    "do you have onion" never become items.
    """
    items: list[LineItem] = []
    for seg in split_chunks(text):
        name, qty, unit = parse_inline_qty_unit(clean_line(seg))
        if not name.strip() or qty is None or qty <= 0:
            continue
        items.append(_item(name, qty, unit))
    return items
