"""Pydantic models for transform node configuration."""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, field_validator
from pydantic import Field as PydanticField

from dataflow_engine.models.dataset import Scalar


class FilterOperator(str, Enum):
    """Row filter operators understood by the transform pipeline."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


class DateRangeFilter(BaseModel):
    """Calendar-day bounds on a date column. Both bounds are inclusive."""

    enabled: bool = False
    date_column: str = PydanticField(default="", alias="dateColumn")
    start: str | None = None
    end: str | None = None

    model_config = {"populate_by_name": True}


class FilterCondition(BaseModel):
    """A single AND-ed row condition.

    The operator is kept as a plain string so that conditions being edited
    with an operator the pipeline does not know still validate.
    """

    field: str = ""
    operator: str = FilterOperator.EQUALS.value
    value: Scalar = ""


class Calculation(BaseModel):
    """A per-row calculated column."""

    name: str
    type: Literal["sum", "average", "count"] = "sum"
    fields: list[str] = []


class AggregateCalculation(BaseModel):
    """One output column of an aggregation."""

    field: str
    operation: Literal["sum", "avg", "count", "min", "max"] = "sum"
    alias: str


class Aggregation(BaseModel):
    """Collapse rows into groups (or into a single row without group_by)."""

    group_by: str | None = PydanticField(default=None, alias="groupBy")
    calculations: list[AggregateCalculation] = []

    model_config = {"populate_by_name": True}


class SortSpec(BaseModel):
    """Single-field sort."""

    field: str
    direction: Literal["asc", "desc"] = "asc"


class TransformConfig(BaseModel):
    """Full operator chain of a transform node."""

    date_range: DateRangeFilter | None = PydanticField(default=None, alias="dateRange")
    filters: list[FilterCondition] = []
    calculations: list[Calculation] = []
    aggregation: Aggregation | None = None
    sort: SortSpec | None = None

    model_config = {"populate_by_name": True}


# ==================== Typed operations ====================


class FilterOperation(BaseModel):
    """Keep rows whose column matches a raw-symbol operator.

    Uses the connection-query operators plus "starts with" and "ends with".
    """

    type: Literal["filter"] = "filter"
    column: str = ""
    operator: str = ""
    value: Scalar = None


class SelectOperation(BaseModel):
    """Project rows onto a list of columns."""

    type: Literal["select"] = "select"
    columns: list[str] = []

    @field_validator("columns", mode="before")
    @classmethod
    def split_columns(cls, v: Any) -> Any:
        """Accept a comma-separated string as well as a list."""
        if isinstance(v, str):
            return [name.strip() for name in v.split(",") if name.strip()]
        return v


class UnionOperation(BaseModel):
    """Combine the primary and secondary inputs."""

    type: Literal["union"] = "union"
    mode: Literal["UNION", "UNION ALL"] = "UNION"


class PivotOperation(BaseModel):
    """Spread distinct values of one column into columns, aggregating a value column."""

    type: Literal["pivot"] = "pivot"
    rows: str = ""
    columns: str = ""
    values: str = ""
    aggregation: Literal["SUM", "AVG", "COUNT", "MIN", "MAX"] = "SUM"


class ExtractMonthOperation(BaseModel):
    """Add a YYYY-MM column derived from a date column."""

    type: Literal["extractMonth"] = "extractMonth"
    date_column: str = PydanticField(default="", alias="dateColumn")
    output_column: str = PydanticField(default="month", alias="outputColumn")

    model_config = {"populate_by_name": True}


class CohortOperation(BaseModel):
    """Count rows per calendar month of a date column."""

    type: Literal["cohort"] = "cohort"
    date_column: str = PydanticField(default="date", alias="dateColumn")
    metric_column: str = PydanticField(default="", alias="metricColumn")

    model_config = {"populate_by_name": True}


TransformOperation = Annotated[
    FilterOperation
    | SelectOperation
    | UnionOperation
    | PivotOperation
    | ExtractMonthOperation
    | CohortOperation,
    PydanticField(discriminator="type"),
]
