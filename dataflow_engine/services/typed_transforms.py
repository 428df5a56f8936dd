"""Typed transform operations: single-purpose operators kept live on transform nodes.

Each operation reads a primary input (the node's first incomer) and, for
union, a secondary input (its second incomer). Like the pipeline operators
they are pure and total: input rows are never mutated, and an operation whose
required settings are blank passes its primary input through unchanged.
"""

import json
from datetime import timezone

from dataflow_engine.models.dataset import Row, Scalar
from dataflow_engine.models.query import QueryFilter
from dataflow_engine.models.transform import (
    CohortOperation,
    ExtractMonthOperation,
    FilterOperation,
    PivotOperation,
    SelectOperation,
    TransformOperation,
    UnionOperation,
)
from dataflow_engine.services.coercion import parse_datetime, to_number, to_text
from dataflow_engine.services.filter_evaluator import evaluate_query_filter


def filter_column(rows: list[Row], operation: FilterOperation) -> list[Row]:
    """Keep rows matching one column condition; unknown operators keep every row."""
    if not operation.column or not operation.operator or operation.value is None:
        return list(rows)
    clause = QueryFilter(column=operation.column, operator=operation.operator, value=operation.value)
    return [row for row in rows if evaluate_query_filter(row, clause)]


def select_columns(rows: list[Row], operation: SelectOperation) -> list[Row]:
    """Project rows onto the listed columns, skipping columns a row lacks."""
    if not operation.columns:
        return list(rows)
    return [
        {name: row[name] for name in operation.columns if name in row}
        for row in rows
    ]


def _row_identity(row: Row) -> str:
    return json.dumps(row, default=str)


def union_rows(primary: list[Row], secondary: list[Row], operation: UnionOperation) -> list[Row]:
    """Concatenate both inputs; UNION also drops exact duplicate rows.

    Rows are duplicates when they hold the same keys in the same order with
    the same values. The first occurrence keeps its position.
    """
    combined = list(primary) + list(secondary)
    if operation.mode == "UNION ALL":
        return combined

    seen: set[str] = set()
    result = []
    for row in combined:
        identity = _row_identity(row)
        if identity in seen:
            continue
        seen.add(identity)
        result.append(row)
    return result


def _pivot_cell(values: list[float], aggregation: str) -> float:
    if aggregation == "AVG":
        return sum(values) / len(values)
    if aggregation == "COUNT":
        return len(values)
    if aggregation == "MIN":
        return min(values)
    if aggregation == "MAX":
        return max(values)
    return sum(values)


def pivot_rows(rows: list[Row], operation: PivotOperation) -> list[Row]:
    """Pivot a long table into a wide one.

    One output row per distinct value of the `rows` column, one output column
    per distinct value of the `columns` column (named by its text), in
    first-seen order. Cells aggregate the numeric `values` column; a cell with
    no contributing row is 0.
    """
    if not operation.rows or not operation.columns or not operation.values:
        return list(rows)

    column_names: list[str] = []
    groups: dict[str, tuple[Scalar, dict[str, list[float]]]] = {}
    for row in rows:
        column_name = to_text(row.get(operation.columns))
        if column_name not in column_names:
            column_names.append(column_name)

        row_value = row.get(operation.rows)
        row_key = to_text(row_value)
        if row_key not in groups:
            groups[row_key] = (row_value, {})
        cells = groups[row_key][1]
        cells.setdefault(column_name, []).append(to_number(row.get(operation.values)))

    result = []
    for row_value, cells in groups.values():
        out: Row = {operation.rows: row_value}
        for column_name in column_names:
            values = cells.get(column_name)
            out[column_name] = _pivot_cell(values, operation.aggregation) if values else 0
        result.append(out)
    return result


def month_key(value: object) -> str | None:
    """Month of a date-like value as YYYY-MM in UTC, or None if it does not parse."""
    parsed = parse_datetime(value)
    if parsed is None:
        return None
    parsed = parsed.astimezone(timezone.utc)
    return f"{parsed.year:04d}-{parsed.month:02d}"


def extract_month(rows: list[Row], operation: ExtractMonthOperation) -> list[Row]:
    """Add the month of the date column to every row.

    A value that does not parse as a date is copied through as-is.
    """
    if not operation.date_column:
        return list(rows)
    result = []
    for row in rows:
        raw = row.get(operation.date_column)
        month = month_key(raw)
        result.append({**row, operation.output_column: month if month is not None else raw})
    return result


def cohort_counts(rows: list[Row], operation: CohortOperation) -> list[Row]:
    """Count rows per month of the date column, in first-seen month order.

    Rows without a parseable date are left out.
    """
    if not operation.metric_column:
        return list(rows)
    counts: dict[str, int] = {}
    for row in rows:
        month = month_key(row.get(operation.date_column))
        if month is None:
            continue
        counts[month] = counts.get(month, 0) + 1
    return [
        {"cohort_month": month, operation.metric_column: count}
        for month, count in counts.items()
    ]


def run_operation(
    operation: TransformOperation,
    primary: list[Row],
    secondary: list[Row] | None = None,
) -> list[Row]:
    """Run one typed operation. Never mutates its inputs.

    An empty primary input always yields no rows. A union without a
    secondary input returns the primary input.
    """
    if not primary:
        return []
    if isinstance(operation, FilterOperation):
        return filter_column(primary, operation)
    if isinstance(operation, SelectOperation):
        return select_columns(primary, operation)
    if isinstance(operation, UnionOperation):
        if secondary is None:
            return list(primary)
        return union_rows(primary, secondary, operation)
    if isinstance(operation, PivotOperation):
        return pivot_rows(primary, operation)
    if isinstance(operation, ExtractMonthOperation):
        return extract_month(primary, operation)
    if isinstance(operation, CohortOperation):
        return cohort_counts(primary, operation)
    return list(primary)
