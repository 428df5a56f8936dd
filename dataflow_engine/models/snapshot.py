"""Pydantic model for a serializable graph snapshot."""

from pydantic import BaseModel

from dataflow_engine.models.edge import Edge
from dataflow_engine.models.node import Node


class GraphSnapshot(BaseModel):
    """Full graph state: nodes (with datasets and configs) and edges."""

    nodes: list[Node] = []
    edges: list[Edge] = []
