"""Scalar coercion helpers shared by the row operators.

All helpers are total: they never raise on odd input and fall back to 0 for
numeric gaps and "" for text gaps.
"""

import math
from datetime import datetime, timezone
from functools import cmp_to_key

from dataflow_engine.models.dataset import Row, Scalar

_DATE_FORMATS = ("%m/%d/%Y", "%d-%m-%Y", "%Y/%m/%d")


def is_number(value: object) -> bool:
    """True for int/float values (booleans excluded)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_number(value: object) -> int | float | None:
    """Parse a scalar as a number, or None when it is not numeric."""
    if value is None:
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return None if isinstance(value, float) and math.isnan(value) else value
    if isinstance(value, str):
        text = value.strip()
        if not text or "_" in text:
            return None
        try:
            return int(text)
        except ValueError:
            pass
        try:
            number = float(text)
        except ValueError:
            return None
        return None if math.isnan(number) else number
    return None


def to_number(value: object) -> int | float:
    """Numeric coercion with 0 for anything non-numeric."""
    number = parse_number(value)
    return 0 if number is None else number


def to_text(value: object) -> str:
    """Text form of a scalar: "" for None, lowercase booleans, integral floats without ".0"."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def is_empty(value: object) -> bool:
    return value is None or value == ""


def parse_datetime(value: object) -> datetime | None:
    """Parse a date-like scalar into an aware UTC datetime.

    Accepts ISO-8601 strings (a trailing "Z" included), MM/DD/YYYY and
    DD-MM-YYYY strings, and numbers as epoch milliseconds. Naive values are
    taken as UTC.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        try:
            return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None

    text = str(value).strip()
    if not text:
        return None
    if text[-1] in "Zz":
        text = text[:-1] + "+00:00"

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in _DATE_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def collation_key(value: Scalar) -> tuple[str, str]:
    """Case-insensitive text ordering key; exact text breaks ties between case variants."""
    text = to_text(value)
    return (text.casefold(), text)


def compare_values(a: Scalar, b: Scalar) -> int:
    """Numeric compare when both values are numbers, else case-insensitive text compare."""
    if is_number(a) and is_number(b):
        return (a > b) - (a < b)  # type: ignore[operator]
    key_a = collation_key(a)
    key_b = collation_key(b)
    return (key_a > key_b) - (key_a < key_b)


def sort_rows(rows: list[Row], field: str, direction: str = "asc") -> list[Row]:
    """Stable single-field sort. Returns a new list."""
    if not field:
        return list(rows)
    return sorted(
        rows,
        key=cmp_to_key(lambda a, b: compare_values(a.get(field), b.get(field))),
        reverse=direction == "desc",
    )
