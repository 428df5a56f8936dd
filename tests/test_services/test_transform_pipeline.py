"""Tests for the transform pipeline operators."""

from dataflow_engine.models import (
    AggregateCalculation,
    Aggregation,
    Calculation,
    DateRangeFilter,
    FilterCondition,
    SortSpec,
    TransformConfig,
)
from dataflow_engine.services.transform_pipeline import (
    aggregate_rows,
    apply_calculations,
    apply_sort,
    filter_date_range,
    filter_rows,
    run_pipeline,
)


def _cond(field, operator, value=""):
    return FilterCondition(field=field, operator=operator, value=value)


class TestDateRangeFilter:
    """Tests for calendar-day date bounding."""

    def test_end_is_inclusive_by_day(self):
        """Test the end date keeps every timestamp on that day."""
        rows = [{"created_at": "2024-01-01T10:00:00Z"}]
        date_range = DateRangeFilter(
            enabled=True, date_column="created_at", start="2024-01-01", end="2024-01-01"
        )
        assert filter_date_range(rows, date_range) == rows

    def test_excludes_outside_bounds(self):
        """Test excludes outside bounds."""
        rows = [
            {"d": "2023-12-31T23:59:59Z"},
            {"d": "2024-01-15"},
            {"d": "2024-02-01T00:00:00Z"},
        ]
        date_range = DateRangeFilter(enabled=True, date_column="d", start="2024-01-01", end="2024-01-31")
        assert filter_date_range(rows, date_range) == [{"d": "2024-01-15"}]

    def test_unparsable_dates_dropped(self):
        """Test unparsable dates dropped."""
        rows = [{"d": "not a date"}, {"d": None}, {"other": 1}, {"d": "2024-03-01"}]
        date_range = DateRangeFilter(enabled=True, date_column="d", start="2024-01-01")
        assert filter_date_range(rows, date_range) == [{"d": "2024-03-01"}]

    def test_open_ended_start_only(self):
        """Test open ended start only."""
        rows = [{"d": "2020-01-01"}, {"d": "2030-01-01"}]
        date_range = DateRangeFilter(enabled=True, date_column="d", start="2025-01-01")
        assert filter_date_range(rows, date_range) == [{"d": "2030-01-01"}]

    def test_us_format_and_epoch_millis(self):
        """Test US-style dates and epoch milliseconds."""
        rows = [{"d": "01/15/2024"}, {"d": 1705312800000}]  # 2024-01-15T10:00:00Z
        date_range = DateRangeFilter(enabled=True, date_column="d", start="2024-01-15", end="2024-01-15")
        assert len(filter_date_range(rows, date_range)) == 2

    def test_disabled_passes_everything(self):
        """Test disabled passes everything."""
        rows = [{"d": "garbage"}]
        date_range = DateRangeFilter(enabled=False, date_column="d", start="2024-01-01")
        assert filter_date_range(rows, date_range) == rows

    def test_camel_case_aliases(self):
        """Test camel case aliases."""
        date_range = DateRangeFilter.model_validate(
            {"enabled": True, "dateColumn": "created_at", "start": "2024-01-01"}
        )
        assert date_range.date_column == "created_at"


class TestFilterRows:
    """Tests for AND-only row filtering."""

    def test_equals_example(self):
        """Test status equals active keeps the two matching rows."""
        rows = [{"status": "active"}, {"status": "inactive"}, {"status": "active"}]
        result = filter_rows(rows, [_cond("status", "equals", "active")])
        assert len(result) == 2

    def test_equals_is_case_insensitive(self):
        """Test equals is case insensitive."""
        rows = [{"status": "ACTIVE"}, {"status": "Inactive"}]
        assert filter_rows(rows, [_cond("status", "equals", "active")]) == [{"status": "ACTIVE"}]

    def test_not_equals(self):
        """Test not equals."""
        rows = [{"status": "active"}, {"status": "inactive"}]
        assert filter_rows(rows, [_cond("status", "not_equals", "Active")]) == [{"status": "inactive"}]

    def test_substring_operators(self):
        """Test substring operators."""
        rows = [{"name": "Alice Smith"}, {"name": "Bob Jones"}]
        assert filter_rows(rows, [_cond("name", "contains", "SMITH")]) == [{"name": "Alice Smith"}]
        assert filter_rows(rows, [_cond("name", "not_contains", "smith")]) == [{"name": "Bob Jones"}]
        assert filter_rows(rows, [_cond("name", "starts_with", "bob")]) == [{"name": "Bob Jones"}]
        assert filter_rows(rows, [_cond("name", "ends_with", "SMITH")]) == [{"name": "Alice Smith"}]

    def test_numeric_comparisons_coerce_strings(self):
        """Test numeric comparisons coerce strings."""
        rows = [{"amount": "100"}, {"amount": 20}, {"amount": "abc"}]
        assert filter_rows(rows, [_cond("amount", "greater_than", "50")]) == [{"amount": "100"}]
        assert filter_rows(rows, [_cond("amount", "less_than", 50)]) == [{"amount": 20}]

    def test_empty_checks(self):
        """Test empty checks."""
        rows = [{"note": ""}, {"note": None}, {"other": 1}, {"note": "x"}]
        assert len(filter_rows(rows, [_cond("note", "is_empty")])) == 3
        assert filter_rows(rows, [_cond("note", "is_not_empty")]) == [{"note": "x"}]

    def test_conditions_are_anded(self):
        """Test conditions combine with AND."""
        rows = [
            {"status": "active", "amount": 5},
            {"status": "active", "amount": 50},
            {"status": "inactive", "amount": 50},
        ]
        conditions = [_cond("status", "equals", "active"), _cond("amount", "greater_than", 10)]
        assert filter_rows(rows, conditions) == [{"status": "active", "amount": 50}]

    def test_unknown_operator_fails_open(self):
        """Test unknown operator fails open."""
        rows = [{"a": 1}, {"a": 2}]
        assert filter_rows(rows, [_cond("a", "matches_regex", "1")]) == rows

    def test_incomplete_conditions_are_ignored(self):
        """Test incomplete conditions are ignored."""
        rows = [{"a": 1}, {"a": 2}]
        assert filter_rows(rows, [_cond("", "equals", "1")]) == rows
        assert filter_rows(rows, [_cond("a", "equals", "")]) == rows

    def test_boolean_and_number_text_forms(self):
        """Test boolean and number text forms."""
        rows = [{"flag": True}, {"flag": False}, {"n": 10.0}]
        assert filter_rows(rows, [_cond("flag", "equals", "TRUE")]) == [{"flag": True}]
        assert filter_rows(rows, [_cond("n", "equals", "10")]) == [{"n": 10.0}]


class TestCalculations:
    """Tests for per-row calculated columns."""

    def test_sum_coerces_non_numeric_to_zero(self):
        """Test sum treats non-numeric values as zero."""
        rows = [{"a": 1, "b": "2", "c": "x"}]
        calc = Calculation(name="total", type="sum", fields=["a", "b", "c"])
        assert apply_calculations(rows, [calc]) == [{"a": 1, "b": "2", "c": "x", "total": 3}]

    def test_average_divides_by_configured_field_count(self):
        """Test average divides by configured field count."""
        # The missing field still counts in the divisor
        rows = [{"a": 4, "b": None}]
        calc = Calculation(name="avg", type="average", fields=["a", "b"])
        assert apply_calculations(rows, [calc])[0]["avg"] == 2

    def test_average_without_fields_is_zero(self):
        """Test average without fields is zero."""
        calc = Calculation(name="avg", type="average", fields=[])
        assert apply_calculations([{"a": 1}], [calc])[0]["avg"] == 0

    def test_count_counts_present_values(self):
        """Test count counts present values."""
        rows = [{"a": 0, "b": None, "c": ""}]
        calc = Calculation(name="n", type="count", fields=["a", "b", "c", "missing"])
        assert apply_calculations(rows, [calc])[0]["n"] == 2

    def test_input_rows_not_mutated(self):
        """Test input rows are not mutated."""
        rows = [{"a": 1}]
        apply_calculations(rows, [Calculation(name="t", type="sum", fields=["a"])])
        assert rows == [{"a": 1}]



class TestAggregation:
    """Tests for grouping and collapsing."""

    def test_group_by_example(self):
        """Test sales summed per region."""
        rows = [
            {"region": "E", "sales": 10},
            {"region": "E", "sales": 5},
            {"region": "W", "sales": 7},
        ]
        aggregation = Aggregation(
            group_by="region",
            calculations=[AggregateCalculation(field="sales", operation="sum", alias="total")],
        )
        assert aggregate_rows(rows, aggregation) == [
            {"region": "E", "total": 15},
            {"region": "W", "total": 7},
        ]

    def test_all_operations(self):
        """Test all operations."""
        rows = [{"g": "a", "v": 2}, {"g": "a", "v": "x"}, {"g": "a", "v": 7}]
        aggregation = Aggregation(
            group_by="g",
            calculations=[
                AggregateCalculation(field="v", operation="sum", alias="sum"),
                AggregateCalculation(field="v", operation="avg", alias="avg"),
                AggregateCalculation(field="v", operation="count", alias="count"),
                AggregateCalculation(field="v", operation="min", alias="min"),
                AggregateCalculation(field="v", operation="max", alias="max"),
            ],
        )
        # Non-numeric "x" is included as 0
        assert aggregate_rows(rows, aggregation) == [
            {"g": "a", "sum": 9, "avg": 3, "count": 3, "min": 0, "max": 7}
        ]

    def test_no_group_by_collapses_to_one_row(self):
        """Test no group by collapses to one row."""
        rows = [{"v": 1}, {"v": 2}, {"v": 3}]
        aggregation = Aggregation(
            calculations=[
                AggregateCalculation(field="v", operation="sum", alias="total"),
                AggregateCalculation(field="v", operation="count", alias="n"),
            ]
        )
        assert aggregate_rows(rows, aggregation) == [{"total": 6, "n": 3}]

    def test_no_group_by_without_calculations_is_empty(self):
        """Test no group by without calculations is empty."""
        assert aggregate_rows([{"v": 1}], Aggregation()) == []

    def test_no_group_by_over_empty_input(self):
        """Test no group by over empty input."""
        aggregation = Aggregation(
            calculations=[AggregateCalculation(field="v", operation="max", alias="top")]
        )
        assert aggregate_rows([], aggregation) == [{"top": 0}]

    def test_groups_by_text_of_value(self):
        """Test groups by text of value."""
        rows = [{"k": 1, "v": 1}, {"k": "1", "v": 2}, {"k": None, "v": 3}]
        aggregation = Aggregation(
            group_by="k",
            calculations=[AggregateCalculation(field="v", operation="sum", alias="s")],
        )
        assert aggregate_rows(rows, aggregation) == [{"k": 1, "s": 3}, {"k": None, "s": 3}]

    def test_missing_null_and_empty_group_separately(self):
        """Test a missing field, None and empty text form distinct groups."""
        rows = [{"k": None, "v": 1}, {"k": "", "v": 2}, {"v": 4}, {"k": None, "v": 8}]
        aggregation = Aggregation(
            group_by="k",
            calculations=[AggregateCalculation(field="v", operation="sum", alias="s")],
        )
        assert aggregate_rows(rows, aggregation) == [
            {"k": None, "s": 9},
            {"k": "", "s": 2},
            {"s": 4},
        ]

    def test_group_by_alias(self):
        """Test group by alias."""
        aggregation = Aggregation.model_validate({"groupBy": "region", "calculations": []})
        assert aggregate_rows([{"region": "E"}, {"region": "E"}], aggregation) == [{"region": "E"}]


class TestSort:
    """Tests for stable single-field sorting."""

    def test_numeric_ascending_and_descending(self):
        """Test numeric ascending and descending."""
        rows = [{"v": 10}, {"v": 2}, {"v": 33}]
        assert [r["v"] for r in apply_sort(rows, SortSpec(field="v"))] == [2, 10, 33]
        assert [r["v"] for r in apply_sort(rows, SortSpec(field="v", direction="desc"))] == [33, 10, 2]

    def test_text_sort(self):
        """Test text sort."""
        rows = [{"n": "pear"}, {"n": "apple"}, {"n": "fig"}]
        assert [r["n"] for r in apply_sort(rows, SortSpec(field="n"))] == ["apple", "fig", "pear"]

    def test_text_sort_ignores_case(self):
        """Test mixed-case text sorts alphabetically rather than uppercase first."""
        rows = [{"n": "Banana"}, {"n": "apple"}, {"n": "cherry"}]
        assert [r["n"] for r in apply_sort(rows, SortSpec(field="n"))] == ["apple", "Banana", "cherry"]
        desc = apply_sort(rows, SortSpec(field="n", direction="desc"))
        assert [r["n"] for r in desc] == ["cherry", "Banana", "apple"]

    def test_stable_for_equal_keys(self):
        """Test stable for equal keys."""
        rows = [{"k": 1, "id": "a"}, {"k": 0, "id": "b"}, {"k": 1, "id": "c"}, {"k": 0, "id": "d"}]
        asc = apply_sort(rows, SortSpec(field="k"))
        assert [r["id"] for r in asc] == ["b", "d", "a", "c"]
        desc = apply_sort(rows, SortSpec(field="k", direction="desc"))
        assert [r["id"] for r in desc] == ["a", "c", "b", "d"]

    def test_sorting_sorted_data_keeps_order(self):
        """Test sorting sorted data keeps order."""
        rows = [{"k": 1, "id": "a"}, {"k": 1, "id": "b"}, {"k": 2, "id": "c"}]
        once = apply_sort(rows, SortSpec(field="k"))
        twice = apply_sort(once, SortSpec(field="k"))
        assert twice == once == rows


class TestRunPipeline:
    """Tests for the full operator chain."""

    def test_operator_order(self):
        """Test operator order."""
        rows = [
            {"date": "2024-01-05", "region": "E", "a": 1, "b": 2, "status": "ok"},
            {"date": "2024-01-06", "region": "W", "a": 5, "b": 5, "status": "ok"},
            {"date": "2024-01-07", "region": "E", "a": 3, "b": 4, "status": "bad"},
            {"date": "2023-12-01", "region": "E", "a": 9, "b": 9, "status": "ok"},
            {"date": "2024-01-08", "region": "E", "a": 10, "b": 0, "status": "ok"},
        ]
        config = TransformConfig(
            date_range=DateRangeFilter(enabled=True, date_column="date", start="2024-01-01"),
            filters=[_cond("status", "equals", "ok")],
            calculations=[Calculation(name="ab", type="sum", fields=["a", "b"])],
            aggregation=Aggregation(
                group_by="region",
                calculations=[AggregateCalculation(field="ab", operation="sum", alias="total")],
            ),
            sort=SortSpec(field="total", direction="desc"),
        )
        assert run_pipeline(rows, config) == [
            {"region": "E", "total": 13},
            {"region": "W", "total": 10},
        ]

    def test_pure_and_deterministic(self):
        """Test the pipeline is pure and deterministic."""
        rows = [{"v": 3}, {"v": 1}, {"v": 2}]
        snapshot = [dict(r) for r in rows]
        config = TransformConfig(
            calculations=[Calculation(name="double", type="sum", fields=["v", "v"])],
            sort=SortSpec(field="double"),
        )
        first = run_pipeline(rows, config)
        second = run_pipeline(rows, config)
        assert first == second
        assert rows == snapshot

    def test_empty_config_passes_through(self):
        """Test empty config passes through."""
        rows = [{"v": 1}]
        assert run_pipeline(rows, TransformConfig()) == rows
        assert run_pipeline(rows, None) == rows
