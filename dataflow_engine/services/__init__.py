"""Services for the dataflow graph engine."""

from dataflow_engine.services.filter_evaluator import FilterEvaluator, evaluate_query_filter
from dataflow_engine.services.query_applier import apply_query, project_columns
from dataflow_engine.services.recompute_engine import RecomputeEngine, Signature
from dataflow_engine.services.schema_inferencer import (
    detect_column_type,
    detect_columns,
    merge_columns,
    union_field_names,
)
from dataflow_engine.services.transform_pipeline import (
    aggregate_rows,
    apply_calculations,
    apply_sort,
    filter_date_range,
    filter_rows,
    run_pipeline,
)
from dataflow_engine.services.typed_transforms import (
    cohort_counts,
    extract_month,
    filter_column,
    pivot_rows,
    run_operation,
    select_columns,
    union_rows,
)

__all__ = [
    "FilterEvaluator",
    "evaluate_query_filter",
    "apply_query",
    "project_columns",
    "RecomputeEngine",
    "Signature",
    "detect_column_type",
    "detect_columns",
    "merge_columns",
    "union_field_names",
    "aggregate_rows",
    "apply_calculations",
    "apply_sort",
    "filter_date_range",
    "filter_rows",
    "run_pipeline",
    "cohort_counts",
    "extract_month",
    "filter_column",
    "pivot_rows",
    "run_operation",
    "select_columns",
    "union_rows",
]
