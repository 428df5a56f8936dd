"""Pydantic models for graph nodes and their kind-specific payloads."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, model_validator
from pydantic import Field as PydanticField

from dataflow_engine.models.dataset import Column, Row
from dataflow_engine.models.query import QuerySpec
from dataflow_engine.models.transform import TransformConfig, TransformOperation


class NodeKind(str, Enum):
    """Kinds of node in a dataflow graph."""

    DATA_SOURCE = "data_source"
    TABLE = "table"
    TRANSFORM = "transform"


class ConnectionState(str, Enum):
    """Connection lifecycle of a data source node."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class NodeData(BaseModel):
    """Fields shared by every node payload."""

    label: str = ""
    data: list[Row] = []
    filtered_data: list[Row] | None = PydanticField(default=None, alias="filteredData")
    columns: list[Column] = []

    model_config = {"populate_by_name": True}

    def effective_rows(self) -> list[Row]:
        """Filtered/overridden rows when present, else raw rows."""
        if self.filtered_data is not None:
            return self.filtered_data
        return self.data


class DataSourceData(NodeData):
    """Payload of a data source node fed by a connector."""

    source_type: str = PydanticField(default="", alias="sourceType")
    state: ConnectionState = ConnectionState.DISCONNECTED
    query: QuerySpec | None = None
    settings: dict[str, Any] = {}
    error: str | None = None
    sequence: int = 0

    @property
    def connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED


class TableData(NodeData):
    """Payload of a table node. `columns` is the table schema."""


class TransformData(NodeData):
    """Payload of a transform node; `data` holds the last applied output.

    A node carries either a pipeline `config` applied on demand or a typed
    `operation` kept live from its primary and secondary incomers.
    """

    config: TransformConfig = TransformConfig()
    operation: TransformOperation | None = None
    output_row_count: int = PydanticField(default=0, alias="outputRowCount")


NODE_DATA_TYPES: dict[NodeKind, type[NodeData]] = {
    NodeKind.DATA_SOURCE: DataSourceData,
    NodeKind.TABLE: TableData,
    NodeKind.TRANSFORM: TransformData,
}


class NodeCreate(BaseModel):
    """Request model for creating a node."""

    kind: NodeKind
    id: str | None = None
    data: dict[str, Any] = PydanticField(default_factory=dict)


class NodeUpdate(BaseModel):
    """Request model for a shallow merge into a node payload."""

    data: dict[str, Any] = PydanticField(default_factory=dict)


class Node(BaseModel):
    """A node instance in the graph."""

    id: str
    kind: NodeKind
    data: DataSourceData | TableData | TransformData
    version: int = 0
    created_at: str
    updated_at: str

    @model_validator(mode="before")
    @classmethod
    def build_payload(cls, values: Any) -> Any:
        """Validate `data` against the payload model of the node kind."""
        if isinstance(values, dict) and "kind" in values:
            payload_type = NODE_DATA_TYPES[NodeKind(values["kind"])]
            raw = values.get("data") or {}
            if not isinstance(raw, payload_type):
                if isinstance(raw, BaseModel):
                    raw = raw.model_dump(by_alias=True)
                values = {**values, "data": payload_type.model_validate(raw)}
        return values
