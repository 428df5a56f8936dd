"""One-shot query applied to a dataset when a data source connects."""

from dataflow_engine.models.dataset import Row
from dataflow_engine.models.query import QuerySpec
from dataflow_engine.services.coercion import sort_rows
from dataflow_engine.services.filter_evaluator import evaluate_query_filter


def project_columns(rows: list[Row], select_columns: list[str]) -> list[Row]:
    """Keep only the selected columns, in selection order. Absent columns are skipped."""
    if not select_columns:
        return list(rows)
    return [{col: row[col] for col in select_columns if col in row} for row in rows]


def apply_query(rows: list[Row], query: QuerySpec | None) -> list[Row]:
    """Apply projection, filter, sort and limit, in that order.

    Unlike the transform pipeline this runs once per connection delivery,
    never on downstream changes.
    """
    if query is None:
        return list(rows)

    result = project_columns(rows, query.select_columns)
    for query_filter in query.filters:
        if not query_filter.column:
            continue
        result = [row for row in result if evaluate_query_filter(row, query_filter)]
    if query.sort is not None:
        result = sort_rows(result, query.sort.field, query.sort.direction)
    if query.limit is not None:
        result = result[: query.limit]
    return result
