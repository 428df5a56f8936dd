"""Pydantic models for the dataflow graph engine."""

from dataflow_engine.models.dataset import Column, ColumnType, Dataset, Row, Scalar
from dataflow_engine.models.edge import Edge, EdgeCreate
from dataflow_engine.models.event import GraphEvent
from dataflow_engine.models.node import (
    NODE_DATA_TYPES,
    ConnectionState,
    DataSourceData,
    Node,
    NodeCreate,
    NodeData,
    NodeKind,
    NodeUpdate,
    TableData,
    TransformData,
)
from dataflow_engine.models.query import QueryFilter, QuerySpec
from dataflow_engine.models.snapshot import GraphSnapshot
from dataflow_engine.models.transform import (
    AggregateCalculation,
    Aggregation,
    Calculation,
    CohortOperation,
    DateRangeFilter,
    ExtractMonthOperation,
    FilterCondition,
    FilterOperation,
    FilterOperator,
    PivotOperation,
    SelectOperation,
    SortSpec,
    TransformConfig,
    TransformOperation,
    UnionOperation,
)

__all__ = [
    # Rows and schemas
    "Scalar",
    "Row",
    "Dataset",
    "Column",
    "ColumnType",
    # Graph
    "NodeKind",
    "ConnectionState",
    "NodeData",
    "DataSourceData",
    "TableData",
    "TransformData",
    "NODE_DATA_TYPES",
    "Node",
    "NodeCreate",
    "NodeUpdate",
    "Edge",
    "EdgeCreate",
    "GraphEvent",
    "GraphSnapshot",
    # Transform configuration
    "TransformConfig",
    "DateRangeFilter",
    "FilterCondition",
    "FilterOperator",
    "Calculation",
    "Aggregation",
    "AggregateCalculation",
    "SortSpec",
    # Typed operations
    "TransformOperation",
    "FilterOperation",
    "SelectOperation",
    "UnionOperation",
    "PivotOperation",
    "ExtractMonthOperation",
    "CohortOperation",
    # Connection query
    "QuerySpec",
    "QueryFilter",
]
