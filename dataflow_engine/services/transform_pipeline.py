"""Transform pipeline: the deterministic operator chain of transform nodes.

Operators run in a fixed order:

    date range -> filter -> calculate -> aggregate -> sort

Every operator is pure and total: input rows are never mutated, and odd
values fall back to 0 (numbers) or "" (text) instead of raising.
"""

from datetime import timedelta

from dataflow_engine.models.dataset import Row, Scalar
from dataflow_engine.models.transform import (
    AggregateCalculation,
    Aggregation,
    Calculation,
    DateRangeFilter,
    FilterCondition,
    SortSpec,
    TransformConfig,
)
from dataflow_engine.services.coercion import (
    parse_datetime,
    sort_rows,
    to_number,
    to_text,
)
from dataflow_engine.services.filter_evaluator import FilterEvaluator

_evaluator = FilterEvaluator()


def filter_date_range(rows: list[Row], date_range: DateRangeFilter | None) -> list[Row]:
    """Keep rows whose date falls within [start, end] by calendar day.

    The end bound is exclusive at `end + 1 day`, so every timestamp on the
    end day is kept. Rows whose date does not parse are dropped.
    """
    if date_range is None or not date_range.enabled or not date_range.date_column:
        return list(rows)

    start = parse_datetime(date_range.start) if date_range.start else None
    end = parse_datetime(date_range.end) if date_range.end else None
    end_exclusive = end + timedelta(days=1) if end is not None else None

    result = []
    for row in rows:
        moment = parse_datetime(row.get(date_range.date_column))
        if moment is None:
            continue
        if start is not None and moment < start:
            continue
        if end_exclusive is not None and moment >= end_exclusive:
            continue
        result.append(row)
    return result


def filter_rows(rows: list[Row], conditions: list[FilterCondition]) -> list[Row]:
    """AND-only row filter; see FilterEvaluator for operator semantics."""
    return _evaluator.filter_rows(rows, conditions)


def _calculate(row: Row, calculation: Calculation) -> Scalar:
    if calculation.type == "count":
        return sum(1 for field in calculation.fields if row.get(field) is not None)
    total = sum(to_number(row.get(field)) for field in calculation.fields)
    if calculation.type == "average":
        # Divides by the configured field count, not by non-null values
        return total / len(calculation.fields) if calculation.fields else 0
    return total


def apply_calculations(rows: list[Row], calculations: list[Calculation]) -> list[Row]:
    """Add one field per calculation to every row."""
    if not calculations:
        return list(rows)
    result = []
    for row in rows:
        new_row = dict(row)
        for calculation in calculations:
            new_row[calculation.name] = _calculate(row, calculation)
        result.append(new_row)
    return result


def _aggregate(rows: list[Row], calculation: AggregateCalculation) -> Scalar:
    if calculation.operation == "count":
        return len(rows)
    values = [to_number(row.get(calculation.field)) for row in rows]
    if not values:
        return 0
    if calculation.operation == "sum":
        return sum(values)
    if calculation.operation == "avg":
        return sum(values) / len(values)
    if calculation.operation == "min":
        return min(values)
    return max(values)


_MISSING_GROUP = ("missing",)


def _group_key(row: Row, field: str) -> tuple[str, ...]:
    if field not in row:
        return _MISSING_GROUP
    value = row[field]
    if value is None:
        return ("null",)
    return ("value", to_text(value))


def aggregate_rows(rows: list[Row], aggregation: Aggregation | None) -> list[Row]:
    """Collapse rows into one row per group.

    Without group_by every row falls in a single group, producing exactly one
    row when there is at least one calculation and none otherwise. With
    group_by, rows are partitioned by the text of the group value in
    first-seen order; the output keeps the first-seen value itself. A missing
    field, an explicit None and "" form three separate groups, and the
    missing-field group carries no group_by key.
    """
    if aggregation is None:
        return list(rows)

    if not aggregation.group_by:
        if not aggregation.calculations:
            return []
        return [{calc.alias: _aggregate(rows, calc) for calc in aggregation.calculations}]

    group_by = aggregation.group_by
    groups: dict[tuple[str, ...], tuple[Scalar, list[Row]]] = {}
    for row in rows:
        value = row.get(group_by)
        key = _group_key(row, group_by)
        if key not in groups:
            groups[key] = (value, [])
        groups[key][1].append(row)

    result = []
    for key, (value, members) in groups.items():
        out: Row = {} if key == _MISSING_GROUP else {group_by: value}
        for calc in aggregation.calculations:
            out[calc.alias] = _aggregate(members, calc)
        result.append(out)
    return result


def apply_sort(rows: list[Row], sort: SortSpec | None) -> list[Row]:
    """Stable sort on a single field."""
    if sort is None or not sort.field:
        return list(rows)
    return sort_rows(rows, sort.field, sort.direction)


def run_pipeline(rows: list[Row], config: TransformConfig | None) -> list[Row]:
    """Run the full operator chain. Never mutates `rows`."""
    if config is None:
        return list(rows)
    result = filter_date_range(rows, config.date_range)
    result = filter_rows(result, config.filters)
    result = apply_calculations(result, config.calculations)
    result = aggregate_rows(result, config.aggregation)
    return apply_sort(result, config.sort)
