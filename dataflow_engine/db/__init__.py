"""Database module."""

from dataflow_engine.db.database import close_database, get_db, init_database
from dataflow_engine.db.graph_registry import GraphRegistry, graph_registry
from dataflow_engine.db.graph_store import GraphStore
from dataflow_engine.db.snapshot_store import SnapshotStore, SnapshotSummary, snapshot_store

__all__ = [
    "get_db",
    "init_database",
    "close_database",
    "GraphStore",
    "GraphRegistry",
    "graph_registry",
    "SnapshotStore",
    "SnapshotSummary",
    "snapshot_store",
]
