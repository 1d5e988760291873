"""
Text sanitizing helpers for generated email copy.

Removes leaked subject headers, sign-offs, separators and placeholder names
from email bodies, and normalizes subject lines.
"""

import re
from typing import List


_SUBJECT_LINE = re.compile(r'^Subject:\s*', re.IGNORECASE)
_BR_TAG = re.compile(r'<br\s*/?>', re.IGNORECASE)

_SEPARATOR_PATTERNS = [
    re.compile(r'^[-_*]{3,}$'),
    re.compile(r'^(\*\s*){3,}$'),
    re.compile(r'^—{3,}$'),
    re.compile(r'^(—\s*){3,}$'),
]

_SIGNOFF = re.compile(
    r'^(best|all the best|best regards|warm regards|kind regards|regards|warmly|'
    r'many thanks|thanks|thanks again|thank you|with gratitude|sincerely|'
    r'yours truly|cheers|respectfully),?$'
)

_PLACEHOLDER_PATTERNS = [
    re.compile(r'^\[\s*(your name|sender name|name)\s*\]$'),
    re.compile(r'^\{\s*(your name|sender name|name)\s*\}$'),
    re.compile(r'^(your name|sender name|name)$'),
]

# Sign-offs are only searched for near the end of the body.
SIGNOFF_WINDOW = 8

_GATEWAY_TAG = re.compile(r'^\[[^\]]*\]\s*')
_BULLET = re.compile(r'^[-*•\s]+')
_NUMBERING = re.compile(r'^\d+[\).\-]\s*')
_WRAPPING_QUOTES = re.compile('^[\'"“”]+|[\'"“”]+$')
_REPLY_PREFIX = re.compile(r'^((re|fw|fwd)\s*[:\-]\s*)+', re.IGNORECASE)
_WHITESPACE = re.compile(r'\s+')


def is_blank(value) -> bool:
    """Return True when value is None or only whitespace."""
    return not str(value or '').strip()


def normalize_newlines(text: str) -> str:
    return str(text or '').replace('\r\n', '\n')


def strip_leading_subject(text: str) -> str:
    """
    Remove leading ``Subject:`` lines the model repeated inside a body.

    Args:
        text: Raw email body

    Returns:
        Body without leading subject lines or the blank lines after them
    """
    raw = normalize_newlines(text).strip()
    if not raw:
        return ''

    lines = raw.split('\n')
    i = 0
    while i < len(lines) and _SUBJECT_LINE.match(lines[i].strip()):
        i += 1
    while i < len(lines) and lines[i].strip() == '':
        i += 1
    return '\n'.join(lines[i:]).strip()


def _is_separator_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    return any(pattern.match(stripped) for pattern in _SEPARATOR_PATTERNS)


def _is_signoff_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    return bool(_SIGNOFF.match(stripped.lower()))


def _is_placeholder_line(line: str) -> bool:
    stripped = line.strip()
    if not stripped:
        return False
    lower = stripped.lower()
    return any(pattern.match(lower) for pattern in _PLACEHOLDER_PATTERNS)


def _pop_trailing_blanks(lines: List[str]) -> None:
    while lines and lines[-1].strip() == '':
        lines.pop()


def strip_trailing_signature_or_separator(text: str) -> str:
    """
    Remove trailing separators, sign-offs and placeholder name lines.

    A sign-off found within the last few lines truncates the body at that
    line, so any name written under it goes too.

    Args:
        text: Email body

    Returns:
        Body ending at the last line of real content
    """
    raw = normalize_newlines(text).strip()
    if not raw:
        return ''

    lines = raw.split('\n')
    _pop_trailing_blanks(lines)

    while lines and _is_separator_line(lines[-1]):
        lines.pop()
        _pop_trailing_blanks(lines)

    for i in range(max(0, len(lines) - SIGNOFF_WINDOW), len(lines)):
        if _is_signoff_line(lines[i]):
            lines = lines[:i]
            break

    while lines and _is_placeholder_line(lines[-1]):
        lines.pop()
        _pop_trailing_blanks(lines)

    _pop_trailing_blanks(lines)
    return '\n'.join(lines).strip()


def clean_email_body(text: str) -> str:
    """
    Turn ``<br>`` tags into newlines and apply both body cleaning passes.

    The passes repeat until the body stops changing, so cleaning an already
    clean body returns it unchanged.

    Args:
        text: Raw email body from the model

    Returns:
        Cleaned body
    """
    cleaned = _BR_TAG.sub('\n', normalize_newlines(text))
    while True:
        stripped = strip_trailing_signature_or_separator(strip_leading_subject(cleaned))
        if stripped == cleaned:
            return stripped
        cleaned = stripped


def _normalize_subject_once(text: str) -> str:
    s = _WHITESPACE.sub(' ', text).strip()
    while _GATEWAY_TAG.match(s):
        s = _GATEWAY_TAG.sub('', s, count=1).strip()
    s = _BULLET.sub('', s).strip()
    s = _NUMBERING.sub('', s).strip()
    s = _WRAPPING_QUOTES.sub('', s).strip()
    s = _SUBJECT_LINE.sub('', s).strip()
    s = _REPLY_PREFIX.sub('', s).strip()
    return _WHITESPACE.sub(' ', s).strip()


def normalize_subject_line(text: str) -> str:
    """
    Normalize a subject line for persistence.

    Collapses whitespace and strips gateway tags like ``[EXTERNAL]``,
    bullets and numbering, wrapping quotes, a ``Subject:`` prefix and
    reply/forward prefixes. Runs until the value stops changing, so
    normalizing an already clean subject is a no-op.

    Args:
        text: Raw subject

    Returns:
        Normalized subject, or an empty string
    """
    s = str(text or '').strip()
    if not s:
        return ''

    while True:
        normalized = _normalize_subject_once(s)
        if normalized == s:
            return normalized
        s = normalized
