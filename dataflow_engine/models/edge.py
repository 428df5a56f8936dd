"""Pydantic models for Edge instances."""

from pydantic import BaseModel


class EdgeCreate(BaseModel):
    """Request model for creating an edge."""

    source: str
    target: str


class Edge(BaseModel):
    """A directed data-flow edge between two nodes."""

    id: str
    source: str
    target: str
    created_at: str
