"""GraphRegistry - Live in-memory graphs keyed by graph id."""

import uuid

from dataflow_engine.config import EngineSettings
from dataflow_engine.db.graph_store import GraphStore
from dataflow_engine.models import GraphSnapshot


class GraphRegistry:
    """Holds one GraphStore per open graph."""

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self._settings = settings
        self._graphs: dict[str, GraphStore] = {}

    def create(self, graph_id: str | None = None) -> tuple[str, GraphStore]:
        """Open a new empty graph, replacing any graph with the same id."""
        graph_id = graph_id or str(uuid.uuid4())
        store = GraphStore(self._settings)
        self._graphs[graph_id] = store
        return graph_id, store

    def get(self, graph_id: str) -> GraphStore | None:
        """Get an open graph."""
        return self._graphs.get(graph_id)

    def restore(self, graph_id: str, snapshot: GraphSnapshot) -> GraphStore:
        """Open (or replace) a graph from a snapshot.

        Raises:
            GraphIntegrityError: If the snapshot is not a valid graph
        """
        store = GraphStore.from_snapshot(snapshot, self._settings)
        self._graphs[graph_id] = store
        return store

    def delete(self, graph_id: str) -> bool:
        """Close an open graph."""
        return self._graphs.pop(graph_id, None) is not None

    def list_ids(self) -> list[str]:
        """Ids of open graphs."""
        return list(self._graphs)

    def clear(self) -> None:
        """Close every open graph."""
        self._graphs.clear()


# Global instance
graph_registry = GraphRegistry(EngineSettings.from_env())
