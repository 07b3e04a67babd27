"""Rule-based extraction of change requests ("remove coke", "make it 2").

Produces a ModifierPayload for phrasings the engine handles without a
model, or None when the text is not recognizably a change request. Target
resolution is left to the modifier engine; this module only lifts the
target phrase, scope and change out of the text.
"""

import re

from src.orchestrator.models.order import (
    ChangeType,
    ModifierChange,
    ModifierPayload,
    ModifierScope,
    ModifierTarget,
)
from src.orchestrator.nl_engine.text_shape import NUMBER_WORDS, to_number

_NUM = rf"(?:\d+(?:\.\d+)?|{'|'.join(NUMBER_WORDS)})"

_ALL_TARGET = re.compile(
    r"^(it all|them all|all of them|all items|all|everything|every item|everything else)$"
)

VARIANT_WORDS = (
    "extra spicy", "less spicy", "medium spicy", "spicy", "mild", "large",
    "medium", "small", "regular", "half", "full", "boneless", "with bone",
    "full fat", "low fat", "skim", "toned", "cold", "hot",
)
_VARIANT_RE = "|".join(re.escape(v) for v in VARIANT_WORDS)

_REMOVE = re.compile(
    r"^(?:please\s+|pls\s+)?(?:remove|delete|drop|skip|cancel|no need of|don'?t send)\s+"
    r"(?:the\s+)?(?P<target>.+)$"
)
_NOTE = re.compile(
    r"^(?:please\s+|pls\s+)?(?:add\s+)?(?P<note>(?:no|less|extra|without|more)\s+[a-z ]+?)\s+"
    r"(?:in|on|for|with|to)\s+(?:the\s+|my\s+)?(?P<target>.+)$"
)
_MAKE_QTY = re.compile(
    rf"^(?:please\s+|pls\s+)?(?:make|change|update)\s+(?P<target>.+?)\s+(?:to\s+|as\s+|into\s+)?"
    rf"(?P<qty>{_NUM})(?:\s+(?:instead|only|please|pls))*$"
)
_QTY_INSTEAD = re.compile(
    rf"^(?:no[, ]+)?(?:make\s+it\s+)?(?P<qty>{_NUM})\s+(?P<target>.*?)\s*instead$"
)
_MORE = re.compile(
    rf"^(?:please\s+|pls\s+)?(?:add\s+)?(?P<qty>{_NUM}|an?)\s+more\s+(?P<target>.+)$"
)
_LESS = re.compile(
    rf"^(?:please\s+|pls\s+)?(?P<qty>{_NUM}|an?)\s+less\s+(?P<target>.+)$"
)
_REDUCE = re.compile(
    rf"^(?:please\s+|pls\s+)?(?:reduce|decrease)\s+(?P<target>.+?)\s+by\s+(?P<qty>{_NUM})$"
)
_INCREASE = re.compile(
    rf"^(?:please\s+|pls\s+)?(?:increase)\s+(?P<target>.+?)\s+by\s+(?P<qty>{_NUM})$"
)
_MAKE_VARIANT = re.compile(
    rf"^(?:please\s+|pls\s+)?(?:make|change)\s+(?P<target>.+?)\s+(?:to\s+|into\s+)?"
    rf"(?P<variant>{_VARIANT_RE})(?:\s+(?:instead|please|pls))*$"
)
_CHANGE_TO = re.compile(
    r"^(?:please\s+|pls\s+)?change\s+(?P<target>.+?)\s+to\s+(?P<value>.+)$"
)


def _qty_value(raw: str) -> int | float:
    raw = raw.strip().lower()
    if raw in ("a", "an"):
        return 1
    if raw in NUMBER_WORDS:
        return NUMBER_WORDS[raw]
    return to_number(raw)


def _clean_target(raw: str) -> str:
    target = raw.strip().strip("?!.,")
    target = re.sub(r"^(the|my|that|this)\s+", "", target)
    return target.strip()


def _payload(target: str, change: ModifierChange) -> ModifierPayload:
    target = _clean_target(target)
    if _ALL_TARGET.match(target):
        return ModifierPayload(
            target=ModifierTarget(text=target),
            scope=ModifierScope.ALL,
            change=change,
        )
    return ModifierPayload(
        target=ModifierTarget(text=target, canonical=target or None),
        scope=ModifierScope.ONE,
        change=change,
    )


def parse_modifier_by_rules(text: str | None) -> ModifierPayload | None:
    """Extract a change request from text, or None if it is not one.

    Args:
        text: Raw customer message.

    Returns:
        ModifierPayload with scope ONE or ALL, or None.
    """
    t = " ".join(str(text or "").lower().split()).strip("?!. ")
    if not t:
        return None

    m = _MAKE_VARIANT.match(t)
    if m:
        return _payload(
            m.group("target"),
            ModifierChange(type=ChangeType.VARIANT.value, new_variant=m.group("variant")),
        )

    m = _MAKE_QTY.match(t) or _QTY_INSTEAD.match(t)
    if m:
        return _payload(
            m.group("target"),
            ModifierChange(type=ChangeType.QTY.value, new_qty=_qty_value(m.group("qty"))),
        )

    m = _MORE.match(t) or _INCREASE.match(t)
    if m:
        return _payload(
            m.group("target"),
            ModifierChange(type=ChangeType.QTY.value, delta_qty=_qty_value(m.group("qty"))),
        )

    m = _LESS.match(t) or _REDUCE.match(t)
    if m:
        return _payload(
            m.group("target"),
            ModifierChange(type=ChangeType.QTY.value, delta_qty=-_qty_value(m.group("qty"))),
        )

    m = _NOTE.match(t)
    if m:
        return _payload(
            m.group("target"),
            ModifierChange(type=ChangeType.NOTE.value, note=m.group("note").strip()),
        )

    m = _CHANGE_TO.match(t)
    if m:
        return _payload(
            m.group("target"),
            ModifierChange(type=ChangeType.VARIANT.value, new_variant=m.group("value").strip()),
        )

    m = _REMOVE.match(t)
    if m and not re.fullmatch(r"(my |the |this )?order", m.group("target")):
        return _payload(m.group("target"), ModifierChange(type=ChangeType.REMOVE.value))

    return None
