"""Row filter evaluation for transform pipelines and connection queries."""

from dataflow_engine.models.dataset import Row, Scalar
from dataflow_engine.models.query import QueryFilter
from dataflow_engine.models.transform import FilterCondition, FilterOperator
from dataflow_engine.services.coercion import is_empty, parse_number, to_text

# Operators that do not compare against a value
VALUELESS_OPERATORS = frozenset({FilterOperator.IS_EMPTY.value, FilterOperator.IS_NOT_EMPTY.value})


class FilterEvaluator:
    """Evaluates AND-ed filter conditions against rows.

    Unknown operators pass every row.
    """

    def filter_rows(self, rows: list[Row], conditions: list[FilterCondition]) -> list[Row]:
        """Keep the rows matching every condition."""
        active = [c for c in conditions if self._is_active(c)]
        if not active:
            return list(rows)
        return [row for row in rows if self.matches(row, active)]

    def matches(self, row: Row, conditions: list[FilterCondition]) -> bool:
        """Evaluate conditions against a single row (AND logic)."""
        for condition in conditions:
            if not self._is_active(condition):
                continue
            if not self._compare_values(row.get(condition.field), condition.operator, condition.value):
                return False
        return True

    @staticmethod
    def _is_active(condition: FilterCondition) -> bool:
        """A condition without a field, or without a value it needs, is ignored."""
        if not condition.field:
            return False
        if condition.operator in VALUELESS_OPERATORS:
            return True
        return not is_empty(condition.value)

    def _compare_values(self, row_value: Scalar, operator: str, filter_value: Scalar) -> bool:
        """Compare a row value against a filter value using the given operator."""
        # Null checks first
        if operator == FilterOperator.IS_EMPTY:
            return is_empty(row_value)
        if operator == FilterOperator.IS_NOT_EMPTY:
            return not is_empty(row_value)

        # Case-insensitive text operations
        text = to_text(row_value).lower()
        needle = to_text(filter_value).lower()
        if operator == FilterOperator.EQUALS:
            return text == needle
        elif operator == FilterOperator.NOT_EQUALS:
            return text != needle
        elif operator == FilterOperator.CONTAINS:
            return needle in text
        elif operator == FilterOperator.NOT_CONTAINS:
            return needle not in text
        elif operator == FilterOperator.STARTS_WITH:
            return text.startswith(needle)
        elif operator == FilterOperator.ENDS_WITH:
            return text.endswith(needle)

        # Numeric operations
        elif operator in (FilterOperator.GREATER_THAN, FilterOperator.LESS_THAN):
            left = parse_number(row_value)
            right = parse_number(filter_value)
            if left is None or right is None:
                return False
            if operator == FilterOperator.GREATER_THAN:
                return left > right
            return left < right

        return True


def evaluate_query_filter(row: Row, query_filter: QueryFilter) -> bool:
    """Evaluate a connection-query filter clause (raw operator symbols)."""
    operator = query_filter.operator.strip().lower()
    row_value = row.get(query_filter.column)
    filter_value = query_filter.value

    if operator in ("equals", "=", "!="):
        left = parse_number(row_value)
        right = parse_number(filter_value)
        if left is not None and right is not None:
            equal = left == right
        else:
            equal = to_text(row_value) == to_text(filter_value)
        return equal if operator != "!=" else not equal
    if operator == "contains":
        return to_text(filter_value).lower() in to_text(row_value).lower()
    if operator == "starts with":
        return to_text(row_value).lower().startswith(to_text(filter_value).lower())
    if operator == "ends with":
        return to_text(row_value).lower().endswith(to_text(filter_value).lower())
    if operator in (">", "<", ">=", "<="):
        left = parse_number(row_value)
        right = parse_number(filter_value)
        if left is None or right is None:
            return False
        if operator == ">":
            return left > right
        if operator == "<":
            return left < right
        if operator == ">=":
            return left >= right
        return left <= right

    return True
