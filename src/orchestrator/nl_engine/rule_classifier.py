"""Deterministic intent classifier.

Always available, never raises, and returns the same ClassificationResult
shape as the model path. The classifier adapter falls back to this whenever
the model is missing, unavailable, over budget, or returns junk.
"""

import re

from src.orchestrator.models.intent import (
    ClassificationResult,
    ClassificationSource,
    FallbackReason,
    InquiryKind,
    IntentCategory,
    IntentHints,
)
from src.orchestrator.nl_engine.rule_modifier import parse_modifier_by_rules
from src.orchestrator.nl_engine.text_shape import (
    ORDER_VERB,
    clean_line,
    has_list_shape,
    has_quantity,
    is_greeting_or_ack,
    is_polite_noise_line,
    normalize_text,
)

_START_NEW = re.compile(
    r"^(?:please\s+)?(?:start\s+(?:a\s+)?new(?:\s+order)?|new\s+order|fresh\s+order|"
    r"start\s+over|start\s+again|reset(?:\s+order)?|🆕)$"
)
_CANCEL = re.compile(
    r"^(?:please\s+|pls\s+|plz\s+)?(?:cancel|cancel\s+(?:it|my\s+order|the\s+order|this\s+order|order)|"
    r"i\s+(?:do\s+not|don'?t)\s+want\s+(?:the\s+|this\s+|my\s+)?order(?:\s+anymore)?|"
    r"no\s+need(?:\s+of\s+(?:the\s+)?order)?|stop\s+(?:the\s+|my\s+)?order)"
    r"(?:\s+please|\s+pls)?$"
)
_SMALLTALK = re.compile(
    r"\b(how are you|how r u|who are you|what'?s up|wassup|lol|haha|hehe|"
    r"are you (?:a )?bot|nice|awesome)\b|😂|🤣"
)
_ADDRESS = re.compile(
    r"\b(flat|house|h\.?no|apartment|apt|building|bldg|floor|street|st|road|rd|"
    r"lane|nagar|colony|sector|block|villa|tower|near|opp(?:osite)?|landmark|"
    r"pincode|pin code|zip)\b|\b\d{5,6}\b"
)

_PRICE_HINT = re.compile(r"\b(price|prices|how much|rate|rates|cost|mrp)\b")
_PRICE_SUBJECT = (
    re.compile(
        r"(?:price|how much|rate|cost|mrp)\s*(?:is|are|does|do|for|of)?\s*"
        r"(?:the\s+|a\s+|an\s+|one\s+|your\s+)?([a-z][a-z0-9 ]*?)\s*(?:cost|costs)?\s*\??$"
    ),
    re.compile(r"([a-z][a-z0-9 ]*?)\s*(?:price|rate|cost)\b"),
)
_AVAIL_HINT = re.compile(r"\b(have|available|availability|in stock|stock)\b")
_AVAIL_SUBJECT = (
    re.compile(
        r"(?:do you have|do u have|have you got|you have|have|stock|available)\s*"
        r"(?:any\s+|the\s+|some\s+)?([a-z][a-z0-9 ]*?)\s*(?:today|now|available|in stock)?\s*\??$"
    ),
    re.compile(r"(?:is|are)?\s*([a-z][a-z0-9 ]*?)\s*(?:available|in stock)\b"),
)
_INQUIRY_STOPWORDS = frozenset({
    "is", "are", "the", "a", "an", "of", "for", "what", "whats", "what's",
    "your", "you", "do", "does", "it", "this", "that", "there", "any",
})


def is_start_new_command(text: str | None) -> bool:
    """Bare "new order" / "start over" command with no items attached."""
    return bool(_START_NEW.match(normalize_text(text).strip("!.? ")))


def is_cancel_request(text: str | None) -> bool:
    """Whole-order cancellation ("cancel", "cancel my order")."""
    return bool(_CANCEL.match(normalize_text(text).strip("!.? ")))


def looks_like_address(text: str | None) -> bool:
    """Address-shaped text: street/flat keywords or a postal code."""
    return bool(_ADDRESS.search(normalize_text(text)))


def _clean_subject(raw: str) -> str | None:
    words = [w for w in raw.split() if w not in _INQUIRY_STOPWORDS]
    subject = " ".join(words).strip()
    return subject or None


def detect_inquiry(text: str | None) -> tuple[InquiryKind, str | None] | None:
    """Detect a price or availability question.

    Returns:
        (kind, canonical subject) or None when the text is not an inquiry.
    """
    low = normalize_text(text)
    if not low:
        return None

    if _PRICE_HINT.search(low):
        for pattern in _PRICE_SUBJECT:
            m = pattern.search(low)
            if m:
                return InquiryKind.PRICE, _clean_subject(m.group(1))
        return InquiryKind.PRICE, None

    if _AVAIL_HINT.search(low) and ("?" in low or low.startswith(("do ", "is ", "are ", "any "))
                                   or "available" in low or "stock" in low):
        for pattern in _AVAIL_SUBJECT:
            m = pattern.search(low)
            if m:
                return InquiryKind.AVAILABILITY, _clean_subject(m.group(1))
        return InquiryKind.AVAILABILITY, None

    return None


def is_question_line(line: str) -> bool:
    """A raw message line that asks something rather than naming an item."""
    s = line.strip()
    return s.endswith("?") or detect_inquiry(s) is not None


def first_inquiry(text: str | None) -> tuple[InquiryKind, str | None] | None:
    """detect_inquiry line by line; the first question found wins."""
    for line in str(text or "").splitlines():
        found = detect_inquiry(line)
        if found is not None:
            return found
    return None


def _only_questions(text: str | None) -> bool:
    lines = [l for l in str(text or "").splitlines() if clean_line(l)]
    asked = [l for l in lines if not is_polite_noise_line(clean_line(l))]
    return bool(asked) and all(is_question_line(l) and not has_quantity(l) for l in asked)


def classify_by_rules(
    text: str | None,
    fallback: FallbackReason = FallbackReason.NONE,
) -> ClassificationResult:
    """Classify a message with deterministic heuristics.

    Args:
        text: Raw customer message.
        fallback: Why the rule path is being used; recorded on the result.

    Returns:
        ClassificationResult with source=rules.
    """
    list_shape = has_list_shape(text)
    quantity = has_quantity(text)
    hints = IntentHints(has_list_shape=list_shape, has_quantity=quantity)

    def result(category: IntentCategory, confidence: float) -> ClassificationResult:
        return ClassificationResult(
            category=category,
            confidence=confidence,
            hints=hints,
            source=ClassificationSource.RULES,
            fallback=fallback,
        )

    if not normalize_text(text):
        return result(IntentCategory.UNKNOWN, 0.0)

    if is_start_new_command(text):
        return result(IntentCategory.START_NEW, 0.9)

    if is_cancel_request(text):
        return result(IntentCategory.CANCEL, 0.85)

    if not list_shape and is_greeting_or_ack(text):
        return result(IntentCategory.GREETING, 0.9)

    if not list_shape and parse_modifier_by_rules(text) is not None:
        return result(IntentCategory.CHANGE_REQUEST, 0.75)

    if not list_shape:
        inquiry = detect_inquiry(text)
        if inquiry is not None:
            kind, canonical = inquiry
            hints.inquiry_kind = kind
            hints.canonical = canonical
            return result(IntentCategory.INQUIRY, 0.7)

    if list_shape and _only_questions(text):
        inquiry = first_inquiry(text)
        if inquiry is None:
            return result(IntentCategory.UNKNOWN, 0.3)
        hints.inquiry_kind, hints.canonical = inquiry
        return result(IntentCategory.INQUIRY, 0.6)

    if not list_shape and looks_like_address(text) and not ORDER_VERB.search(normalize_text(text)):
        return result(IntentCategory.ADDRESS, 0.5)

    if list_shape or quantity or ORDER_VERB.search(normalize_text(text)):
        return result(IntentCategory.ORDER, 0.7)

    if _SMALLTALK.search(normalize_text(text)):
        return result(IntentCategory.SMALLTALK, 0.6)

    return result(IntentCategory.UNKNOWN, 0.3)
