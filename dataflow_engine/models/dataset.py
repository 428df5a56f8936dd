"""Pydantic models for rows, datasets and column schemas."""

from enum import Enum

from pydantic import BaseModel

Scalar = str | int | float | bool | None
Row = dict[str, Scalar]
Dataset = list[Row]


class ColumnType(str, Enum):
    """Column types reported by connectors or inferred on merge."""

    TEXT = "TEXT"
    NUMBER = "NUMBER"
    BOOLEAN = "BOOLEAN"
    DATE = "DATE"


class Column(BaseModel):
    """A column descriptor in a node schema."""

    name: str
    type: ColumnType = ColumnType.TEXT
