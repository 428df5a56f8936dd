"""Column schema derivation from row batches."""

import re

from dataflow_engine.models.dataset import Column, ColumnType, Row
from dataflow_engine.services.coercion import is_number, parse_datetime, parse_number

DEFAULT_SAMPLE_LIMIT = 200

_BOOLEAN_TEXT = frozenset({"true", "false", "yes", "no"})
_DATE_PATTERNS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}"),
    re.compile(r"^\d{2}/\d{2}/\d{4}"),
    re.compile(r"^\d{2}-\d{2}-\d{4}"),
)


def union_field_names(rows: list[Row], sample_limit: int = DEFAULT_SAMPLE_LIMIT) -> list[str]:
    """Field names over the first `sample_limit` rows, in first-seen order."""
    names: dict[str, None] = {}
    for row in rows[:sample_limit]:
        for name in row:
            names.setdefault(name, None)
    return list(names)


def merge_columns(
    existing: list[Column],
    rows: list[Row],
    sample_limit: int = DEFAULT_SAMPLE_LIMIT,
) -> list[Column]:
    """Append unseen field names as TEXT columns. Existing columns are never dropped."""
    known = {column.name for column in existing}
    merged = list(existing)
    for name in union_field_names(rows, sample_limit):
        if name not in known:
            merged.append(Column(name=name, type=ColumnType.TEXT))
            known.add(name)
    return merged


def detect_column_type(values: list[object]) -> ColumnType:
    """Detect a column type from non-null sample values.

    Priority is boolean, then date, then number, then text. Every value must
    fit a type for it to be chosen.
    """
    present = [v for v in values if v is not None and v != ""]
    if not present:
        return ColumnType.TEXT
    if all(isinstance(v, bool) or (isinstance(v, str) and v.strip().lower() in _BOOLEAN_TEXT) for v in present):
        return ColumnType.BOOLEAN
    if all(_looks_like_date(v) for v in present):
        return ColumnType.DATE
    if all(parse_number(v) is not None for v in present):
        return ColumnType.NUMBER
    return ColumnType.TEXT


def detect_columns(rows: list[Row], sample_limit: int = DEFAULT_SAMPLE_LIMIT) -> list[Column]:
    """Per-column type detection for connectors that report no schema."""
    sample = rows[:sample_limit]
    return [
        Column(name=name, type=detect_column_type([row.get(name) for row in sample]))
        for name in union_field_names(sample, sample_limit)
    ]


def _looks_like_date(value: object) -> bool:
    # Numbers are never dates here, even though they parse as epoch milliseconds
    if is_number(value) or isinstance(value, bool):
        return False
    text = str(value).strip()
    return any(p.match(text) for p in _DATE_PATTERNS) and parse_datetime(text) is not None
