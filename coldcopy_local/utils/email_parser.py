"""
Email block parsing for raw completion text.

Splits model output into ordered email blocks (initial first, then
follow-ups) using an ordered chain of strategies: explicit ``Subject:``
headers first, repeated ``Hi <name>,`` greetings second.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from .sanitizer import is_blank, normalize_newlines, normalize_subject_line


@dataclass(frozen=True)
class EmailKind:
    """Position of an email in a sequence: the initial email or follow-up N."""

    INITIAL = 'initial'
    FOLLOW_UP = 'follow_up'

    kind: str
    index: int = 0

    @classmethod
    def initial(cls) -> 'EmailKind':
        return cls(cls.INITIAL, 0)

    @classmethod
    def follow_up(cls, index: int) -> 'EmailKind':
        if index < 1:
            raise ValueError(f"Follow-up index must be >= 1, got {index}")
        return cls(cls.FOLLOW_UP, index)

    @classmethod
    def for_position(cls, position: int) -> 'EmailKind':
        """Kind for a 0-based position in a sequence."""
        return cls.initial() if position == 0 else cls.follow_up(position)

    @property
    def is_initial(self) -> bool:
        return self.kind == self.INITIAL

    @property
    def label(self) -> str:
        return 'Initial' if self.is_initial else f'Follow-up {self.index}'


@dataclass
class EmailBlock:
    """One generated email: its kind, subject and body."""

    kind: EmailKind
    subject: str = ''
    email: str = ''

    @property
    def type(self) -> str:
        return self.kind.label

    @property
    def is_incomplete(self) -> bool:
        return is_blank(self.subject) or is_blank(self.email)

    def to_dict(self) -> Dict[str, str]:
        return {'type': self.type, 'subject': self.subject, 'email': self.email}


_TYPED_HEADER = re.compile(r'^Type:\s*(.+?)\s*\|\s*Subject:\s*(.*)$', re.IGNORECASE)
_SUBJECT_HEADER = re.compile(r'^Subject:\s*(.*)$', re.IGNORECASE)
_TYPE_ONLY = re.compile(r'^Type:\s*', re.IGNORECASE)
_PIPE_SUBJECT = re.compile(r'\|\s*Subject:\s*', re.IGNORECASE)
_GREETING = re.compile(r'^Hi(\s+[^,\n]{1,40})?,\s*$', re.IGNORECASE)


def parse_header_line(line: str) -> Optional[Dict[str, str]]:
    """
    Recognize ``Type: <label> | Subject: <text>`` or ``Subject: <text>``.

    Returns:
        Dict with ``type`` and ``subject`` keys, or None for non-header lines
    """
    s = str(line or '').strip()
    if not s:
        return None

    match = _TYPED_HEADER.match(s)
    if match:
        return {'type': match.group(1).strip(), 'subject': (match.group(2) or '').strip()}

    match = _SUBJECT_HEADER.match(s)
    if match:
        return {'type': '', 'subject': (match.group(1) or '').strip()}

    return None


class HeaderStrategy:
    """Each header line starts a block; the following lines are its body."""

    name = 'headers'

    def split(self, text: str) -> List[Dict[str, str]]:
        raw = normalize_newlines(text).strip()
        if not raw:
            return []

        blocks: List[Dict[str, str]] = []
        current: Optional[Dict[str, Any]] = None

        def push_current() -> None:
            if current is None:
                return
            subject = normalize_subject_line(current['subject'])
            body = '\n'.join(current['body_lines']).strip()
            if subject or body:
                blocks.append({'type': current['type'].strip(), 'subject': subject, 'email': body})

        for line in raw.split('\n'):
            trimmed = line.strip()
            header = parse_header_line(trimmed)
            if header:
                push_current()
                current = {'type': header['type'], 'subject': header['subject'], 'body_lines': []}
                continue

            # Older output put a standalone "Type: ..." line under the subject.
            if (current is not None and is_blank(current['type'])
                    and _TYPE_ONLY.match(trimmed) and not _PIPE_SUBJECT.search(trimmed)):
                current['type'] = _TYPE_ONLY.sub('', trimmed).strip()
                continue

            if current is None:
                current = {'type': '', 'subject': '', 'body_lines': []}
            current['body_lines'].append(line)

        push_current()
        return blocks

    def parse(self, text: str, expected_follow_ups: int = 0) -> List[EmailBlock]:
        return [
            EmailBlock(EmailKind.for_position(i), block['subject'], block['email'])
            for i, block in enumerate(self.split(text))
        ]

    def accepts(self, blocks: Sequence[EmailBlock], expected_follow_ups: int) -> bool:
        if len(blocks) >= 2:
            return True
        return len(blocks) == 1 and expected_follow_ups <= 0


def split_by_greeting(text: str, max_emails: int = 0) -> List[str]:
    """
    Split text into segments that each start at a greeting line.

    At least two greetings are required. When there are more segments than
    ``max_emails`` the extra ones are merged into the last kept segment.

    Args:
        text: Raw completion text
        max_emails: Maximum number of segments (0 or less keeps all)

    Returns:
        List of segment strings, empty when fewer than two greetings exist
    """
    raw = normalize_newlines(text).strip()
    if not raw:
        return []

    lines = raw.split('\n')
    starts = [i for i, line in enumerate(lines) if line.strip() and _GREETING.match(line.strip())]
    if len(starts) < 2:
        return []

    segments = []
    for n, start in enumerate(starts):
        end = starts[n + 1] if n + 1 < len(starts) else len(lines)
        segment = '\n'.join(lines[start:end]).strip()
        if segment:
            segments.append(segment)

    if max_emails <= 0 or len(segments) <= max_emails:
        return segments

    head = segments[:max_emails - 1]
    tail = '\n\n'.join(segments[max_emails - 1:]).strip()
    return [s for s in head + [tail] if s]


class GreetingStrategy:
    """Fallback for output without headers: split on repeated greetings."""

    name = 'greetings'

    def parse(self, text: str, expected_follow_ups: int = 0) -> List[EmailBlock]:
        max_emails = 1 + max(0, expected_follow_ups)
        return [
            EmailBlock(EmailKind.for_position(i), '', segment)
            for i, segment in enumerate(split_by_greeting(text, max_emails))
        ]

    def accepts(self, blocks: Sequence[EmailBlock], expected_follow_ups: int) -> bool:
        return len(blocks) >= 2


DEFAULT_STRATEGIES = (HeaderStrategy(), GreetingStrategy())


def parse_emails(text: str, expected_follow_ups: int = 0, strategies=DEFAULT_STRATEGIES) -> List[EmailBlock]:
    """
    Parse completion text into email blocks.

    Strategies are tried in order and the first accepted result wins. When
    none is accepted the primary strategy's result is returned, which may be
    empty; callers then treat the whole text as one initial body.

    Args:
        text: Raw completion text
        expected_follow_ups: Number of follow-ups the prompt asked for
        strategies: Ordered strategy objects

    Returns:
        Ordered list of EmailBlock, initial first
    """
    expected = max(0, int(expected_follow_ups or 0))
    primary: Optional[List[EmailBlock]] = None

    for strategy in strategies:
        blocks = strategy.parse(text, expected)
        if primary is None:
            primary = blocks
        if strategy.accepts(blocks, expected):
            return blocks

    return primary or []


def format_emails(emails: Sequence[EmailBlock]) -> str:
    """Render blocks as ``Type: <label> | Subject: <subject>`` sections."""
    rendered = []
    for email in emails:
        header = f"Type: {email.type} | Subject: {email.subject.strip()}".rstrip()
        section = f"{header}\n\n{email.email.strip()}".strip()
        if section:
            rendered.append(section)
    return '\n\n'.join(rendered)


def format_emails_for_context(emails: Sequence[EmailBlock]) -> str:
    """Render a previous-email transcript for continuity prompts."""
    sections = []
    for position, email in enumerate(emails):
        label = EmailKind.for_position(position).label
        subject = email.subject.strip() or '(missing)'
        sections.append(f"{label} subject: {subject}\n{label} body:\n{email.email.strip()}")
    return '\n\n'.join(sections)
