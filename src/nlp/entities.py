"""
Rule-based field extraction: name and village from free text.
Returns (value, confidence); (None, 0.0) when nothing usable is found.
An explicit phrase ("my name is ...") scores higher than a bare reply.
"""

import re

EXPLICIT_CONFIDENCE = 0.9
BARE_CONFIDENCE = 0.8
SINGLE_TOKEN_CONFIDENCE = 0.6

WORD = r"[A-Za-z\u0900-\u097F][A-Za-z\u0900-\u097F.'\-]*"
WORD_PATTERN = re.compile(rf"^{WORD}$")

NAME_PATTERNS = [
    re.compile(r"(?:my\s+name\s+is|my\s+name's|i'm|i\s+am|this\s+is|call\s+me)\s+(.+)$", re.I),
    re.compile(r"\bname\s*[:\-]\s*(.+)$", re.I),
    re.compile(r"माझे\s+नाव\s+(.+?)(?:\s+आहे)?\s*[.!]*$"),
    re.compile(r"मी\s+(.+?)\s+आहे\s*[.!]*$"),
]

VILLAGE_PATTERNS = [
    re.compile(r"\b(?:my\s+village\s+is|village\s+is|i\s+live\s+in|i\s+stay\s+in|i\s+am\s+from|i'm\s+from|from)\s+(.+)$", re.I),
    re.compile(r"\b(?:village|gaon|gav)\s*[:\-]\s*(.+)$", re.I),
    re.compile(r"माझे\s+गाव\s+(.+?)(?:\s+आहे)?\s*[.!]*$"),
    re.compile(r"मी\s+(.+?)\s+(?:येथे|इथे)\s+राहतो"),
]

# Trailing qualifiers that are not part of the place name
VILLAGE_SUFFIX = re.compile(r"\s+(?:village|gaon|gav|गाव|गावात)\s*$", re.I)

MAX_NAME_TOKENS = 4
MAX_VILLAGE_TOKENS = 3


def _clean(value: str) -> str:
    value = re.sub(r"\s+", " ", value or "").strip()
    return value.strip(" .,!;:\"'")


def _words(value: str) -> list[str]:
    return [w for w in value.split(" ") if w]


def _is_wordlike(tokens: list[str], max_tokens: int) -> bool:
    return 0 < len(tokens) <= max_tokens and all(WORD_PATTERN.match(t) for t in tokens)


def _match_first(text: str, patterns: list[re.Pattern]) -> str | None:
    for pat in patterns:
        m = pat.search(text)
        if m:
            return _clean(m.group(1))
    return None


def extract_name(text: str) -> tuple[str | None, float]:
    """Full name from a reply like 'Ramesh Patil' or 'my name is Ramesh Patil'."""
    text = _clean(text)
    if not text:
        return None, 0.0
    # "I am from Saswad" describes a place, not a name
    if _match_first(text, VILLAGE_PATTERNS):
        return None, 0.0
    explicit = _match_first(text, NAME_PATTERNS)
    if explicit:
        tokens = _words(explicit)
        if _is_wordlike(tokens, MAX_NAME_TOKENS):
            return " ".join(tokens), EXPLICIT_CONFIDENCE
    tokens = _words(text)
    if not _is_wordlike(tokens, MAX_NAME_TOKENS):
        return None, 0.0
    if len(tokens) == 1:
        return tokens[0], SINGLE_TOKEN_CONFIDENCE
    return " ".join(tokens), BARE_CONFIDENCE


def extract_village(text: str) -> tuple[str | None, float]:
    """Village name from 'Saswad', 'I live in Saswad', 'Saswad, Purandar' or 'माझे गाव सासवड'."""
    text = _clean(text)
    if not text:
        return None, 0.0
    explicit = _match_first(text, VILLAGE_PATTERNS)
    candidate = explicit if explicit else text
    # "Saswad, Purandar taluka" → "Saswad"
    candidate = _clean(candidate.split(",")[0])
    candidate = _clean(VILLAGE_SUFFIX.sub("", candidate))
    tokens = _words(candidate)
    if not _is_wordlike(tokens, MAX_VILLAGE_TOKENS):
        return None, 0.0
    return " ".join(tokens), EXPLICIT_CONFIDENCE if explicit else BARE_CONFIDENCE
