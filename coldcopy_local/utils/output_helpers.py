"""
Output helpers for ColdCopy flows.

Flattens generated rows into the export CSV and renders CLI output.
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from .file_ingest import read_csv_table


CONTEXT_UNAVAILABLE_SUBJECT = "Context unavailable"
INITIAL_PARAGRAPH_COLUMNS = 4

_BR_TAG = re.compile(r'<br\s*/?>', re.IGNORECASE)


def to_lf(text: Any) -> str:
    """Turn ``<br>`` tags into newlines and every line ending into LF."""
    value = _BR_TAG.sub('\n', str(text or ''))
    return value.replace('\r\n', '\n').replace('\r', '\n')


def split_paragraphs(text: Any, max_parts: int = 5) -> List[str]:
    """
    Split on blank lines into flowed paragraphs, merging anything past
    ``max_parts`` into the last one.
    """
    normalized = to_lf(text).strip()
    if not normalized:
        return []
    parts = [
        re.sub(r'\s+', ' ', re.sub(r'\s*\n\s*', ' ', part)).strip()
        for part in re.split(r'\n\s*\n+', normalized)
    ]
    parts = [part for part in parts if part]
    if len(parts) <= max_parts:
        return parts
    return parts[:max_parts - 1] + [' '.join(parts[max_parts - 1:])]


def follow_up_paragraph_columns(index: int, follow_up_count: int) -> int:
    """Paragraph columns for the 1-based follow-up ``index``."""
    if index in (1, 2):
        return 3
    if index == 3:
        return 3 if follow_up_count >= 4 else 2
    return 2


def export_columns(original_headers: Sequence[str], follow_up_count: int) -> List[str]:
    """Original headers followed by the generated columns, without duplicates."""
    extra = ['first_copy_subject', 'first_copy']
    extra.extend(f'first_copy_p{p}' for p in range(1, INITIAL_PARAGRAPH_COLUMNS + 1))
    for i in range(1, follow_up_count + 1):
        extra.extend([f'followup_{i}_subject', f'followup_{i}_email_body'])
        extra.extend(f'followup_{i}_email_body_p{p}'
                     for p in range(1, follow_up_paragraph_columns(i, follow_up_count) + 1))

    fields: List[str] = []
    for name in list(original_headers) + extra:
        if name not in fields:
            fields.append(name)
    return fields


def _first_copy(output: Optional[Dict[str, Any]]) -> str:
    if not output:
        return ''
    status = str(output.get('status') or '').strip().lower()
    error = str(output.get('error') or '').strip()
    body = str(output.get('email_body') or '').strip()
    if (status == 'failed' or not body) and error:
        return error
    return to_lf(body)


def build_export_row(
    source_row: Dict[str, Any],
    output: Optional[Dict[str, Any]],
    follow_up_count: int
) -> Dict[str, Any]:
    """
    Flatten one stored prospect into export cells next to its source row.

    Args:
        source_row: Row from the stored upload
        output: Prospect record for the same row index, or None
        follow_up_count: Job follow-up count

    Returns:
        Export row dictionary
    """
    row = dict(source_row)
    output = output or {}

    subject = output.get('subject') or ''
    if not subject and str(output.get('status') or '').strip().lower() == 'failed':
        subject = CONTEXT_UNAVAILABLE_SUBJECT
    row['first_copy_subject'] = subject

    first_copy = _first_copy(output)
    row['first_copy'] = first_copy
    parts = split_paragraphs(first_copy, INITIAL_PARAGRAPH_COLUMNS)
    for p in range(1, INITIAL_PARAGRAPH_COLUMNS + 1):
        row[f'first_copy_p{p}'] = parts[p - 1] if p <= len(parts) else ''

    follow_ups = output.get('followups') or []
    for i in range(1, follow_up_count + 1):
        follow_up = follow_ups[i - 1] if i <= len(follow_ups) and isinstance(follow_ups[i - 1], dict) else {}
        body = str(follow_up.get('email') or '').strip()
        row[f'followup_{i}_subject'] = str(follow_up.get('subject') or '').strip()
        row[f'followup_{i}_email_body'] = to_lf(body)
        max_parts = follow_up_paragraph_columns(i, follow_up_count)
        fu_parts = split_paragraphs(body, max_parts)
        for p in range(1, max_parts + 1):
            row[f'followup_{i}_email_body_p{p}'] = fu_parts[p - 1] if p <= len(fu_parts) else ''

    return row


def write_export_csv(
    stored_path: str,
    outputs: Sequence[Dict[str, Any]],
    follow_up_count: int,
    output_path: str
) -> Dict[str, Any]:
    """
    Write the export CSV for a job.

    Source rows are matched to outputs by row index, so every source row
    appears even when it has no stored output.

    Args:
        stored_path: Stored CSV of the upload
        outputs: Prospect records with ``row_index``
        follow_up_count: Job follow-up count
        output_path: Destination file

    Returns:
        Dictionary with ``path``, ``rows`` and ``columns``
    """
    headers, source_rows = read_csv_table(stored_path)
    by_index = {output.get('row_index'): output for output in outputs}

    fields = export_columns(headers, follow_up_count)
    rows = [build_export_row(row, by_index.get(idx), follow_up_count) for idx, row in enumerate(source_rows)]

    destination = Path(output_path)
    destination.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(rows, columns=fields).fillna('')
    df.to_csv(destination, index=False, lineterminator='\r\n', encoding='utf-8')

    return {'path': str(destination), 'rows': len(rows), 'columns': fields}


def _sanitize_for_json(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(key): _sanitize_for_json(val) for key, val in value.items()}
    if isinstance(value, (list, tuple)):
        return [_sanitize_for_json(item) for item in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def render_json(data: Any) -> str:
    return json.dumps(_sanitize_for_json(data), indent=2, ensure_ascii=False)


def render_text(data: Any, indent: int = 0) -> str:
    """Render nested dicts and lists as an indented key/value listing."""
    pad = '  ' * indent
    lines: List[str] = []
    if isinstance(data, dict):
        for key, value in data.items():
            if isinstance(value, (dict, list)) and value:
                lines.append(f"{pad}{key}:")
                lines.append(render_text(value, indent + 1))
            else:
                lines.append(f"{pad}{key}: {'' if value is None else value}")
    elif isinstance(data, list):
        for item in data:
            if isinstance(item, (dict, list)):
                lines.append(f"{pad}-")
                lines.append(render_text(item, indent + 1))
            else:
                lines.append(f"{pad}- {item}")
    else:
        lines.append(f"{pad}{data}")
    return '\n'.join(lines)
