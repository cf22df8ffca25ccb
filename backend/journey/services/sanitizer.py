# input sanitizer: neutralizes prompt-injection phrasings before text reaches the llm
# also hosts the text cleaning and anonymization helpers shared by request models
# and context synthesis

import re

from journey.config import settings

FILTERED_MARKER = "[filtered]"

# applied in order, each match replaced by the marker (keeps message shape, drops the directive)
INJECTION_PATTERNS = [
    re.compile(r"\[\s*/?\s*(?:system|assistant|developer|user)\s*\]", re.IGNORECASE),
    re.compile(r"<\|[^|>]*\|>", re.IGNORECASE),
    re.compile(
        r"ignore\s+(?:all\s+|any\s+|the\s+|your\s+)*(?:previous|prior|above|earlier|all)\s+"
        r"(?:instructions|prompts|rules)",
        re.IGNORECASE,
    ),
    re.compile(
        r"disregard\s+(?:all\s+|any\s+|the\s+|your\s+)*(?:previous\s+|prior\s+)?"
        r"(?:programming|instructions|rules)",
        re.IGNORECASE,
    ),
    re.compile(r"override\s+(?:your|all|the)\s+(?:instructions|programming|rules)", re.IGNORECASE),
    re.compile(r"you\s+are\s+now\b", re.IGNORECASE),
    re.compile(r"\{\{.*?\}\}", re.DOTALL),
]

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
WHITESPACE = re.compile(r"\s+")

# personally identifying substrings masked before free text is shared with the llm
PII_PATTERNS = [
    (re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+"), "[email]"),
    (re.compile(r"(?:https?://|www\.)\S+", re.IGNORECASE), "[link]"),
    (re.compile(r"(?<!\w)\+?\d[\d\s().-]{7,}\d"), "[phone]"),
    (re.compile(r"\b\d{6,}\b"), "[number]"),
    (re.compile(r"(?<!\w)@\w{2,}"), "[handle]"),
]


def sanitize(raw: str, max_length: int | None = None) -> str:
    """neutralize injection phrasings, then truncate, then trim.

    substitution runs before truncation so the length budget is measured on the
    sanitized text and a long benign prefix cannot hide an injected suffix.
    never raises; an empty result is the caller's EMPTY_MESSAGE case.
    """
    if not raw:
        return ""
    limit = settings.CHAT_MESSAGE_MAX_LENGTH if max_length is None else max_length

    text = CONTROL_CHARS.sub("", str(raw))
    for pattern in INJECTION_PATTERNS:
        text = pattern.sub(FILTERED_MARKER, text)

    return text[:limit].strip()


def contains_injection(text: str) -> bool:
    """true if any known injection phrasing appears in the text"""
    return any(pattern.search(text) for pattern in INJECTION_PATTERNS)


def clean_text(text: str) -> str:
    """strip control characters and collapse whitespace"""
    text = CONTROL_CHARS.sub("", text)
    return WHITESPACE.sub(" ", text).strip()


def anonymize_text(text: str) -> str:
    """mask emails, links, phone numbers, long digit runs and @handles"""
    if not text:
        return ""
    for pattern, mask in PII_PATTERNS:
        text = pattern.sub(mask, text)
    return text
