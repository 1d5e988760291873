"""
Structural enforcement for generated emails: paragraph counts, follow-up
paragraph targets and the soft length decay across a sequence.
"""

import re
from typing import List, Optional, Tuple

from .sanitizer import normalize_newlines


INITIAL_PARAGRAPHS = 3

_BR_TAG = re.compile(r'<br\s*/?>', re.IGNORECASE)
_PARAGRAPH_BREAK = re.compile(r'\n\s*\n+')
_INNER_BREAK = re.compile(r'\s*\n\s*')
_WHITESPACE = re.compile(r'\s+')
_SENTENCE_END = re.compile(r'[.!?]\s+')
_CLAUSE_SPLIT = re.compile(r'^(.{25,140}?[:;])\s+(.{20,})$')

# Split points must leave at least this many characters on each side.
_MIN_SPLIT_SIDE = 20
_SPLIT_TARGET_RATIO = 0.55


def count_words(text: str) -> int:
    s = str(text or '').strip()
    if not s:
        return 0
    return len(s.split())


def split_into_paragraphs(body: str) -> List[str]:
    """
    Split a body on blank lines, flowing each paragraph onto one line.

    Args:
        body: Email body text

    Returns:
        Non-empty paragraphs with internal line breaks collapsed to spaces
    """
    normalized = _BR_TAG.sub('\n', normalize_newlines(body)).strip()
    if not normalized:
        return []

    paragraphs = []
    for part in _PARAGRAPH_BREAK.split(normalized):
        flowed = _WHITESPACE.sub(' ', _INNER_BREAK.sub(' ', part)).strip()
        if flowed:
            paragraphs.append(flowed)
    return paragraphs


def try_split_paragraph(paragraph: str) -> Optional[Tuple[str, str]]:
    """
    Split one paragraph in two at a natural boundary.

    Prefers the sentence end closest to 55% of the paragraph length, then
    a colon or semicolon boundary.

    Returns:
        Tuple of the two halves, or None when no natural split exists
    """
    s = str(paragraph or '').strip()
    if not s:
        return None

    boundaries = []
    for match in _SENTENCE_END.finditer(s):
        idx = match.start() + 1
        if _MIN_SPLIT_SIDE < idx < len(s) - _MIN_SPLIT_SIDE:
            boundaries.append(idx)

    if boundaries:
        target = int(len(s) * _SPLIT_TARGET_RATIO)
        best = boundaries[0]
        for boundary in boundaries:
            if abs(boundary - target) < abs(best - target):
                best = boundary
        head, tail = s[:best].strip(), s[best:].strip()
        if head and tail:
            return head, tail

    match = _CLAUSE_SPLIT.match(s)
    if match:
        head, tail = match.group(1).strip(), match.group(2).strip()
        if head and tail:
            return head, tail

    return None


def _merge_overflow(parts: List[str], target: int) -> List[str]:
    if len(parts) <= target:
        return parts
    if target == 1:
        return [' '.join(parts)]
    return parts[:target - 1] + [' '.join(parts[target - 1:])]


def enforce_body_paragraph_count(body: str, target_count: int) -> str:
    """
    Force a body to ``target_count`` paragraphs.

    Extra paragraphs are merged into the last one; too few are split at
    sentence or clause boundaries while possible. Splitting is best-effort,
    so the result can still have fewer paragraphs than requested.

    Args:
        body: Email body without greeting
        target_count: Desired paragraph count; 0 or less leaves the body as is

    Returns:
        Paragraphs joined by blank lines
    """
    try:
        target = int(target_count)
    except (TypeError, ValueError):
        target = 0
    if target <= 0:
        return normalize_newlines(body).strip()

    parts = split_into_paragraphs(body)
    if not parts:
        return ''

    parts = _merge_overflow(parts, target)

    while len(parts) < target:
        for i, part in enumerate(parts):
            split = try_split_paragraph(part)
            if split:
                parts[i:i + 1] = list(split)
                break
        else:
            break

    return '\n\n'.join(_merge_overflow(parts, target)).strip()


def enforce_email_paragraphs(email_text: str, target_body_paragraphs: int) -> str:
    """Keep the greeting line verbatim and enforce the paragraph count below it."""
    raw = normalize_newlines(email_text).strip()
    if not raw:
        return ''

    lines = raw.split('\n')
    greeting = lines[0].rstrip()
    rest = lines[1:]
    while rest and rest[0].strip() == '':
        rest.pop(0)

    body = enforce_body_paragraph_count('\n'.join(rest).strip(), target_body_paragraphs)
    if not greeting:
        return body
    if not body:
        return greeting
    return f"{greeting}\n\n{body}".strip()


def follow_up_target_paragraphs(follow_up_index: int, desired_follow_ups: int) -> int:
    """
    Body paragraph target for a 1-based follow-up position.

    Up to two follow-ups all get 2 paragraphs. With 3 or more the last one
    gets 1 and the rest 2.
    """
    if follow_up_index <= 0:
        return 2
    if desired_follow_ups <= 0:
        return 0
    if desired_follow_ups >= 3 and follow_up_index == desired_follow_ups:
        return 1
    return 2


def apply_length_decay(initial_body: str, follow_up_body: str) -> str:
    """
    Trim trailing body paragraphs from a follow-up that is not shorter than
    the initial email.

    The greeting line is kept and is not a body paragraph; at least one body
    paragraph always remains.
    """
    initial_words = count_words(initial_body)
    words = count_words(follow_up_body)
    if initial_words <= 0 or words <= 0 or words < initial_words:
        return follow_up_body

    lines = normalize_newlines(follow_up_body).strip().split('\n')
    greeting = lines[0].rstrip()
    parts = [p.strip() for p in _PARAGRAPH_BREAK.split('\n'.join(lines[1:]).strip()) if p.strip()]
    if not parts:
        return follow_up_body

    while len(parts) > 1 and count_words(greeting) + count_words(' '.join(parts)) >= initial_words:
        parts.pop()
    return f"{greeting}\n\n" + '\n\n'.join(parts)
