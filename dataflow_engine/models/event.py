"""Pydantic models for graph change notifications."""

from typing import Any

from pydantic import BaseModel, Field

from dataflow_engine.models.edge import Edge
from dataflow_engine.models.node import Node


class GraphEvent(BaseModel):
    """A change notification emitted after a graph mutation.

    Carries snapshot copies of the node and edge lists as they stand after
    the mutation so a renderer can redraw without querying back. Later
    mutations do not alter an event already emitted.
    """

    id: str
    event_type: str
    subject_node_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    nodes: list[Node] = []
    edges: list[Edge] = []
    created_at: str
