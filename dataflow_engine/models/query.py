"""Pydantic models for the one-shot query run when a data source connects."""

from pydantic import BaseModel
from pydantic import Field as PydanticField

from dataflow_engine.models.dataset import Scalar
from dataflow_engine.models.transform import SortSpec

QUERY_OPERATORS = ("equals", "=", "contains", "starts with", "ends with", ">", "<", ">=", "<=", "!=")


class QueryFilter(BaseModel):
    """A filter clause using raw operator symbols."""

    column: str
    operator: str = "equals"
    value: Scalar = None


class QuerySpec(BaseModel):
    """Projection, filter, sort and limit applied to a freshly connected dataset."""

    select_columns: list[str] = PydanticField(default=[], alias="selectColumns")
    filters: list[QueryFilter] = []
    sort: SortSpec | None = None
    limit: int | None = PydanticField(default=None, ge=0)

    model_config = {"populate_by_name": True}
