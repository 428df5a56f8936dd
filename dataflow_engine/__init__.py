"""Dataflow graph engine.

A directed graph of data source, table and transform nodes. Edges carry
data; table nodes recompute from their incomers and transform nodes run a
deterministic operator pipeline over theirs.
"""

from dataflow_engine.config import EngineSettings
from dataflow_engine.db.graph_store import GraphStore
from dataflow_engine.errors import GraphIntegrityError
from dataflow_engine.models import NodeKind, TransformConfig

__all__ = ["EngineSettings", "GraphIntegrityError", "GraphStore", "NodeKind", "TransformConfig"]
