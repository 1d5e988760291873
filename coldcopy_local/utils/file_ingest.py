"""
Upload ingestion for ColdCopy Local
Reads CSV/XLSX prospect files, maps columns and validates rows
"""

import logging
import os
import re
import shutil
import time
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from .validators import InputValidator


SUPPORTED_EXTENSIONS = ('.csv', '.xlsx')
MAX_ROW_ERRORS = 5

COLUMN_CANDIDATES: Dict[str, Tuple[str, ...]] = {
    'firstName': ('first name', 'firstname', 'first'),
    'lastName': ('last name', 'lastname', 'last'),
    'company': ('company', 'company name', 'organization', 'business'),
    'website': (
        'website / activity url',
        'website or activity url',
        'website',
        'website url',
        'url',
        'site',
        'domain',
    ),
    'activityContext': ('activity context', 'context', 'activity', 'notes', 'personalization context'),
    'email': ('email', 'email address'),
    'ourServices': ('our services', 'services', 'service focus', 'service_focus'),
}

COLUMN_LABELS = {
    'firstName': 'First Name',
    'lastName': 'Last Name',
    'company': 'Company',
    'websiteOrActivityContext': 'Website / Activity URL or Activity Context',
}

# Column map key -> prospect column.
PROSPECT_FIELDS = {
    'firstName': 'first_name',
    'lastName': 'last_name',
    'email': 'email',
    'company': 'company',
    'website': 'website',
    'activityContext': 'activity_context',
    'ourServices': 'our_services',
}

logger = logging.getLogger("coldcopy.file_ingest")


class UploadValidationError(ValueError):
    """Raised when an upload cannot be used to start a job."""


def _blank(value: Any) -> bool:
    return not str(value if value is not None else '').strip()


def normalize_header(header: Any) -> str:
    return re.sub(r'\s+', ' ', str(header or '').strip().lower())


def find_column(headers: Sequence[str], candidates: Sequence[str]) -> Optional[str]:
    """
    Find the header for a field: exact normalized match first, then a loose
    contains match in either direction.
    """
    normalized = [(header, normalize_header(header)) for header in headers]

    for candidate in candidates:
        wanted = normalize_header(candidate)
        for raw, norm in normalized:
            if norm == wanted:
                return raw

    for candidate in candidates:
        wanted = normalize_header(candidate)
        for raw, norm in normalized:
            if norm and (wanted in norm or norm in wanted):
                return raw

    return None


def derive_column_map(headers: Sequence[str]) -> Dict[str, Optional[str]]:
    """Map each field to a header; a header claimed by an earlier field is not reused."""
    column_map: Dict[str, Optional[str]] = {}
    claimed: List[str] = []
    for field, candidates in COLUMN_CANDIDATES.items():
        column = find_column([header for header in headers if header not in claimed], candidates)
        column_map[field] = column
        if column:
            claimed.append(column)
    return column_map


def validate_required_columns(column_map: Dict[str, Optional[str]]) -> List[str]:
    """
    Missing required column keys. ``websiteOrActivityContext`` stands for
    the rule that at least one of those columns must exist.
    """
    missing = [key for key in ('firstName', 'lastName', 'company') if not column_map.get(key)]
    if not column_map.get('website') and not column_map.get('activityContext'):
        missing.append('websiteOrActivityContext')
    return missing


def missing_columns_message(missing: Sequence[str]) -> str:
    labels = ', '.join(COLUMN_LABELS.get(key, key) for key in missing)
    return (
        f"Missing required columns: {labels}. Required: First Name, Last Name, Company, "
        f"and at least one of Website / Activity URL or Activity Context."
    )


def validate_rows(rows: Sequence[Dict[str, Any]], column_map: Dict[str, Optional[str]]) -> List[Dict[str, Any]]:
    """
    Check required values per row.

    Args:
        rows: Data rows keyed by header
        column_map: Result of derive_column_map

    Returns:
        Up to MAX_ROW_ERRORS error dicts with ``row_number`` (header counted,
        1-based), ``missing_required`` and ``missing_context``
    """
    errors = []
    website_col = column_map.get('website')
    activity_col = column_map.get('activityContext')

    def value(row: Dict[str, Any], key: str) -> str:
        column = column_map.get(key)
        return row.get(column, '') if column else ''

    for i, row in enumerate(rows):
        missing_required = [
            label for key, label in (('firstName', 'First Name'), ('lastName', 'Last Name'), ('company', 'Company'))
            if _blank(value(row, key))
        ]

        has_context = True
        if website_col and activity_col:
            has_context = not _blank(value(row, 'website')) or not _blank(value(row, 'activityContext'))
        elif website_col:
            has_context = not _blank(value(row, 'website'))
        elif activity_col:
            has_context = not _blank(value(row, 'activityContext'))

        if missing_required or not has_context:
            errors.append({
                'row_number': i + 2,
                'missing_required': missing_required,
                'missing_context': not has_context,
            })
            if len(errors) >= MAX_ROW_ERRORS:
                break

    return errors


def row_error_message(error: Dict[str, Any]) -> str:
    details = []
    if error.get('missing_required'):
        details.append(f"missing required values: {', '.join(error['missing_required'])}")
    if error.get('missing_context'):
        details.append('must include either Website / Activity URL OR Activity Context')
    return f"Row validation failed at row {error['row_number']}: {'; '.join(details)}."


def safe_file_name_part(name: Any) -> str:
    return re.sub(r'[^a-zA-Z0-9._-]+', '_', str(name or ''))[:120]


def read_csv_table(path: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """
    Read a CSV file as strings, blanks preserved.

    Returns:
        (headers, rows keyed by header)
    """
    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, encoding='utf-8-sig')
    except pd.errors.EmptyDataError:
        return [], []

    headers = [str(column) for column in df.columns]
    df.columns = headers
    return headers, df.to_dict(orient='records')


def read_excel_table(path: str) -> Tuple[List[str], List[Dict[str, str]]]:
    """Read the first sheet of an .xlsx workbook, dropping unnamed columns and blank rows."""
    df = pd.read_excel(path, sheet_name=0, dtype=str, engine='openpyxl')
    df = df.fillna('')

    keep = [column for column in df.columns
            if str(column).strip() and not str(column).startswith('Unnamed:')]
    df = df[keep]
    df.columns = [str(column).strip() for column in keep]
    df = df.apply(lambda column: column.map(lambda cell: str(cell).strip()))
    if len(df.columns):
        df = df[(df != '').any(axis=1)]

    headers = list(df.columns)
    return headers, df.to_dict(orient='records')


def store_upload(source_path: str, uploads_dir: str) -> Dict[str, Any]:
    """
    Copy an upload into ``uploads_dir`` and validate it.

    Excel workbooks are converted to CSV on the way in so stored uploads are
    always CSV. The stored file is removed again when validation fails.

    Args:
        source_path: Path of the CSV or XLSX file to ingest
        uploads_dir: Directory for stored uploads

    Returns:
        Dictionary with ``original_filename``, ``stored_path``, ``headers``,
        ``column_map``, ``total_rows`` and ``preview``

    Raises:
        UploadValidationError: For unsupported files, missing columns or invalid rows
        FileNotFoundError: If ``source_path`` does not exist
    """
    source = Path(source_path)
    if not source.is_file():
        raise FileNotFoundError(f"Upload not found: {source_path}")

    ext = source.suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        raise UploadValidationError("Only CSV or Excel uploads are supported (.csv, .xlsx)")

    target_dir = Path(uploads_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    stored_path = target_dir / f"upload_{int(time.time() * 1000)}_{uuid.uuid4().hex[:16]}.csv"

    try:
        if ext == '.csv':
            shutil.copyfile(source, stored_path)
        else:
            headers, rows = read_excel_table(str(source))
            pd.DataFrame(rows, columns=headers).to_csv(stored_path, index=False)
            logger.debug(f"Converted {source.name} to CSV at {stored_path}")

        headers, rows = read_csv_table(str(stored_path))
        if not headers:
            raise UploadValidationError("File appears to have no header row")

        column_map = derive_column_map(headers)
        missing = validate_required_columns(column_map)
        if missing:
            raise UploadValidationError(missing_columns_message(missing))

        row_errors = validate_rows(rows, column_map)
        if row_errors:
            raise UploadValidationError(row_error_message(row_errors[0]))

    except Exception:
        if stored_path.exists():
            os.remove(stored_path)
        raise

    logger.info(f"Stored upload {source.name} as {stored_path.name} ({len(rows)} rows)")
    return {
        'original_filename': safe_file_name_part(source.name),
        'stored_path': str(stored_path),
        'headers': headers,
        'column_map': column_map,
        'total_rows': len(rows),
        'preview': rows[:20],
    }


def build_prospect_rows(
    rows: Sequence[Dict[str, Any]],
    column_map: Dict[str, Optional[str]],
    validator: Optional[InputValidator] = None
) -> List[Dict[str, Any]]:
    """
    Turn stored CSV rows into prospect inputs for ``insert_job_rows``.

    Websites are normalized with their path kept; the full source row is
    carried as ``original_row`` for export.
    """
    validator = validator or InputValidator()
    prospects = []
    for row in rows:
        prospect: Dict[str, Any] = {}
        for key, field in PROSPECT_FIELDS.items():
            column = column_map.get(key)
            prospect[field] = str(row.get(column, '') if column else '')
        prospect['website'] = validator.normalize_website_url(prospect['website'])
        prospect['original_row'] = dict(row)
        prospects.append(prospect)
    return prospects
