"""
tracker/export.py -- CSV and JSON export of submissions.

CSV output follows RFC 4180: a header row of the selected field names, CRLF
line endings, and fields quoted only when they contain a delimiter, quote or
line break (quotes doubled). csv.writer's defaults already produce exactly
that, so no hand-rolled quoting lives here.

Formula injection (CWE-1236): spreadsheet applications evaluate cells that
start with =, +, - or @. Text cells with one of those prefixes are prefixed
with a tab so they are treated as text. Numeric cells are never touched.
"""

import csv
import io
from dataclasses import asdict
from typing import Any, Optional

from tracker.models import Submission

EXPORT_FIELDS: tuple[str, ...] = (
    "id",
    "date",
    "job_link",
    "status",
    "price",
    "notes",
    "created_at",
    "updated_at",
)
DEFAULT_EXPORT_FIELDS: tuple[str, ...] = EXPORT_FIELDS[1:]

_FORMULA_PREFIXES = ("=", "+", "-", "@")


def parse_fields(raw: Optional[str]) -> list[str]:
    """Split a comma-separated field list and validate it.

    Returns DEFAULT_EXPORT_FIELDS for an empty value. Raises ValueError naming
    any unknown field.
    """
    if not raw or not raw.strip():
        return list(DEFAULT_EXPORT_FIELDS)
    fields = [f.strip() for f in raw.split(",") if f.strip()]
    unknown = [f for f in fields if f not in EXPORT_FIELDS]
    if unknown:
        raise ValueError(f"Unknown export fields: {', '.join(unknown)}")
    return fields


def _sanitize_csv_cell(value: Any) -> Any:
    if isinstance(value, str) and value.startswith(_FORMULA_PREFIXES):
        return "\t" + value
    return value


def _cell(submission: Submission, field: str) -> Any:
    value = getattr(submission, field)
    if value is None:
        return ""
    return _sanitize_csv_cell(value)


def to_csv(submissions: list[Submission], fields: list[str]) -> str:
    """Render submissions as CSV with one column per entry in fields."""
    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\r\n")
    writer.writerow(fields)
    for s in submissions:
        writer.writerow([_cell(s, f) for f in fields])
    return buf.getvalue()


def to_json_rows(submissions: list[Submission], fields: Optional[list[str]] = None) -> list[dict]:
    """Return submissions as dicts, restricted to fields when given."""
    rows = [asdict(s) for s in submissions]
    if fields is None:
        return rows
    return [{f: row[f] for f in fields} for row in rows]
