"""Deterministic text-shape helpers shared by the rule-based paths.

Everything here is pure string work: greeting/ack detection, list-line
splitting, inline quantity/unit extraction and the keyword signals the
linking decision reads. No I/O, no model calls.
"""

import re

# Units as customers type them -> normalized unit.
UNIT_ALIASES: dict[str, str] = {
    "kg": "kg",
    "kgs": "kg",
    "kilo": "kg",
    "kilos": "kg",
    "g": "g",
    "gm": "g",
    "gms": "g",
    "gram": "g",
    "grams": "g",
    "l": "l",
    "lt": "l",
    "ltr": "l",
    "ltrs": "l",
    "liter": "l",
    "liters": "l",
    "litre": "l",
    "litres": "l",
    "ml": "ml",
    "pack": "pack",
    "packs": "pack",
    "packet": "pack",
    "packets": "pack",
    "pkt": "pack",
    "pc": "pc",
    "pcs": "pc",
    "piece": "pc",
    "pieces": "pc",
    "dozen": "dozen",
    "plate": "plate",
    "plates": "plate",
    "combo": "combo",
    "combos": "combo",
}

NUMBER_WORDS: dict[str, int] = {
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "eleven": 11,
    "twelve": 12,
}

# Longest first so alternation prefers "litre" over "l".
_UNIT_RE = "|".join(sorted(UNIT_ALIASES, key=len, reverse=True))
_NUMBER_WORD_RE = "|".join(NUMBER_WORDS)

_LEAD_QTY = re.compile(
    rf"^(\d+(?:\.\d+)?)\s*({_UNIT_RE})?\b\s*(.+)$", re.IGNORECASE
)
_LEAD_WORD_QTY = re.compile(
    rf"^({_NUMBER_WORD_RE})\s+(?:({_UNIT_RE})\b\s*)?(.+)$", re.IGNORECASE
)
_TAIL_QTY_UNIT = re.compile(
    rf"\b(\d+(?:\.\d+)?)\s*({_UNIT_RE})\b$", re.IGNORECASE
)
_TAIL_TIMES = re.compile(r"\s*[x×]\s*(\d+)$", re.IGNORECASE)
_TAIL_NUMBER = re.compile(r"\b(\d+)\s*$")
_QTY_UNIT_ANYWHERE = re.compile(
    rf"\b\d+(?:\.\d+)?\s*(?:{_UNIT_RE})\b", re.IGNORECASE
)
_ANY_NUMBER = re.compile(r"\b\d+\b")

_POLITE_NOISE = re.compile(
    r"^(hi|hello|hey|hlo|ok|okay|k|thanks|thank you|thanx|thx|sorry)$"
)
_GREETING_TIME = re.compile(r"^(gm|gn|good (morning|evening|night|afternoon))$")

GREETING_WORDS = frozenset({
    "hi", "hii", "hiii", "hello", "hey", "hlo", "ok", "okay", "k", "kk",
    "thanks", "thank", "you", "u", "thanx", "thx", "ty", "sorry", "gm", "gn",
    "good", "morning", "evening", "night", "afternoon", "there", "sir",
    "madam", "bro", "dear", "ji", "great", "cool", "fine", "sure", "noted",
    "alright", "welcome", "yes", "yeah", "yep", "no", "nope", "so", "much",
    "very",
})

_PREAMBLE_PATTERNS = (
    re.compile(r"^(hi|hello|hey)[,!\s]*", re.IGNORECASE),
    re.compile(r"^can (you|u)\s+(please\s+)?(send|deliver|bring)\s*", re.IGNORECASE),
    re.compile(
        r"^(i\s+want|i\s+need|i\s+would\s+like|i'd\s+like|please\s+send|"
        r"pls\s+send|kindly\s+send|send\s+me|get\s+me)\s*",
        re.IGNORECASE,
    ),
    re.compile(
        r"^(and|also|sorry|one more thing|that's it|thats it)[:,]?\s*",
        re.IGNORECASE,
    ),
)
_ADD_TAIL = re.compile(r"\b(?:can\s+you\s+)?add\s+(.*)$", re.IGNORECASE)
_BULLET = re.compile(r"^[•\-–—()*\s]+")
_NUMBERED = re.compile(r"^\d+[.)]\s+")

EXPLICIT_NEW_ORDER = re.compile(
    r"\b(new order|fresh order|separate bill|separate order)\b|🆕", re.IGNORECASE
)
EXPLICIT_APPEND = re.compile(r"\b(add|also|same order|update|include)\b", re.IGNORECASE)
ORDER_VERB = re.compile(
    r"\b(want|need|send|order|deliver|bring|get me|add|give me|book)\b",
    re.IGNORECASE,
)

_TOKEN_SPLIT = re.compile(r"[^a-z0-9]+")


def normalize_text(text: str | None) -> str:
    """Lowercase and collapse whitespace."""
    return " ".join(str(text or "").lower().split())


def tokenize(text: str | None) -> list[str]:
    """Split into lowercase alphanumeric tokens."""
    return [t for t in _TOKEN_SPLIT.split(str(text or "").lower()) if t]


def to_number(raw: str) -> int | float:
    """Parse a numeric string, keeping integers as int."""
    value = float(raw)
    return int(value) if value.is_integer() else value


def normalize_unit(raw: str | None) -> str | None:
    """Map a unit spelling to its normalized form."""
    if not raw:
        return None
    return UNIT_ALIASES.get(raw.strip().lower(), raw.strip().lower())


def is_polite_noise_line(line: str) -> bool:
    """True for lines that are only a greeting, thanks or ack."""
    t = line.strip().lower().strip("!.,? ")
    if not t:
        return True
    return bool(_POLITE_NOISE.match(t) or _GREETING_TIME.match(t))


def is_greeting_or_ack(text: str | None) -> bool:
    """True when the whole message is a greeting/thanks/ack and nothing else."""
    raw = str(text or "").strip()
    if not raw:
        return False
    if any(ch.isdigit() for ch in raw):
        return False
    words = re.findall(r"[a-z']+", raw.lower())
    if not words:
        # Emoji or punctuation only, e.g. a thumbs-up.
        return True
    return all(w.strip("'") in GREETING_WORDS for w in words)


def strip_non_item_preamble(line: str) -> str:
    """Remove conversational lead-ins ("hi", "can you send", "i want")."""
    s = line.strip()
    m_add = _ADD_TAIL.search(s)
    if m_add and m_add.group(1):
        return m_add.group(1).strip()
    for pattern in _PREAMBLE_PATTERNS:
        s = pattern.sub("", s)
    return s.strip()


def clean_line(line: str) -> str:
    """Normalize one line: preamble, bullets, numbering, trailing punctuation."""
    s = " ".join(line.split())
    s = strip_non_item_preamble(s)
    s = _BULLET.sub("", s)
    s = _NUMBERED.sub("", s)
    return s.strip().rstrip("?!.;:,").strip()


def split_and_clean_lines(text: str | None) -> list[str]:
    """Split on newlines and clean each line, dropping empties."""
    lines = (clean_line(l) for l in re.split(r"\r?\n", str(text or "")))
    return [l for l in lines if l]


def list_lines(text: str | None) -> list[str]:
    """Cleaned lines that are not greeting/ack noise."""
    return [l for l in split_and_clean_lines(text) if not is_polite_noise_line(l)]


def has_list_shape(text: str | None) -> bool:
    """Two or more non-greeting lines."""
    return len(list_lines(text)) >= 2


def has_quantity(text: str | None) -> bool:
    """Contains a number+unit, or a chunk with a leading/trailing quantity."""
    raw = str(text or "")
    if _QTY_UNIT_ANYWHERE.search(raw):
        return True
    for chunk in split_chunks(raw):
        _, qty, _ = parse_inline_qty_unit(chunk)
        if qty is not None:
            return True
    return False


def looks_like_fresh_list(text: str | None) -> bool:
    """Multi-line message carrying quantities: a self-contained new order."""
    lines = [l for l in re.split(r"\r?\n", str(text or "")) if l.strip()]
    if len(lines) < 2:
        return False
    raw = str(text or "")
    return bool(_QTY_UNIT_ANYWHERE.search(raw) or _ANY_NUMBER.search(raw))


def split_chunks(text: str | None) -> list[str]:
    """Split a message into item-sized chunks on newlines, commas and "and"."""
    segments = re.split(r"[\n,;]|\s\+\s|\s&\s", str(text or ""))
    chunks: list[str] = []
    for seg in segments:
        for part in re.split(r"\band\b", seg, flags=re.IGNORECASE):
            part = part.strip()
            if part:
                chunks.append(part)
    return chunks


def parse_inline_qty_unit(text: str) -> tuple[str, int | float | None, str | None]:
    """Extract (name, qty, unit) from one line.

    Tries, in order: leading "2kg rice" / "1L milk", leading number word
    "two coke", trailing "apples 600 gms", trailing "coke x2", trailing bare
    number "idly batter 3". Returns qty None when no quantity is present.
    """
    s = text.strip()

    lead = _LEAD_QTY.match(s)
    if lead:
        name = lead.group(3).strip()
        if name:
            return name, to_number(lead.group(1)), normalize_unit(lead.group(2))

    lead_word = _LEAD_WORD_QTY.match(s)
    if lead_word:
        name = lead_word.group(3).strip()
        if name:
            qty = NUMBER_WORDS[lead_word.group(1).lower()]
            return name, qty, normalize_unit(lead_word.group(2))

    tail_unit = _TAIL_QTY_UNIT.search(s)
    if tail_unit:
        name = s[: tail_unit.start()].strip()
        if name:
            return name, to_number(tail_unit.group(1)), normalize_unit(tail_unit.group(2))

    tail_times = _TAIL_TIMES.search(s)
    if tail_times:
        name = s[: tail_times.start()].strip()
        if name:
            return name, int(tail_times.group(1)), None

    tail_num = _TAIL_NUMBER.search(s)
    if tail_num:
        name = s[: tail_num.start()].strip()
        if name:
            return name, int(tail_num.group(1)), None

    return s, None, None
