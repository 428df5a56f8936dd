"""SnapshotStore - Persists graph snapshots outside the graph core."""

from datetime import datetime, timezone

from pydantic import BaseModel

from dataflow_engine.db.database import get_db
from dataflow_engine.models import GraphSnapshot


class SnapshotSummary(BaseModel):
    """Listing entry for a saved graph."""

    graph_id: str
    name: str
    node_count: int
    edge_count: int
    created_at: str
    updated_at: str


def _now() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


class SnapshotStore:
    """Storage for serialized graph state."""

    async def save(self, graph_id: str, snapshot: GraphSnapshot, name: str = "") -> SnapshotSummary:
        """Insert or replace the snapshot of a graph."""
        db = await get_db()
        now = _now()

        await db.execute(
            """
            INSERT INTO graph_snapshots (graph_id, name, snapshot_json, node_count, edge_count, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(graph_id) DO UPDATE SET
                name = excluded.name,
                snapshot_json = excluded.snapshot_json,
                node_count = excluded.node_count,
                edge_count = excluded.edge_count,
                updated_at = excluded.updated_at
            """,
            (
                graph_id,
                name,
                snapshot.model_dump_json(by_alias=True),
                len(snapshot.nodes),
                len(snapshot.edges),
                now,
                now,
            ),
        )
        await db.commit()

        summary = await self.get_summary(graph_id)
        if summary is None:
            raise RuntimeError(f"Snapshot for graph {graph_id} was not persisted")
        return summary

    async def load(self, graph_id: str) -> GraphSnapshot | None:
        """Load the snapshot of a graph."""
        db = await get_db()
        cursor = await db.execute(
            "SELECT snapshot_json FROM graph_snapshots WHERE graph_id = ?",
            (graph_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None

        return GraphSnapshot.model_validate_json(row["snapshot_json"])

    async def get_summary(self, graph_id: str) -> SnapshotSummary | None:
        """Get the listing entry of a saved graph."""
        db = await get_db()
        cursor = await db.execute(
            """
            SELECT graph_id, name, node_count, edge_count, created_at, updated_at
            FROM graph_snapshots WHERE graph_id = ?
            """,
            (graph_id,),
        )
        row = await cursor.fetchone()

        if row is None:
            return None

        return SnapshotSummary(**dict(row))

    async def list_snapshots(self) -> list[SnapshotSummary]:
        """List saved graphs, most recently updated first."""
        db = await get_db()
        cursor = await db.execute(
            """
            SELECT graph_id, name, node_count, edge_count, created_at, updated_at
            FROM graph_snapshots ORDER BY updated_at DESC
            """
        )
        rows = await cursor.fetchall()
        return [SnapshotSummary(**dict(row)) for row in rows]

    async def delete(self, graph_id: str) -> bool:
        """Delete a saved graph."""
        db = await get_db()
        cursor = await db.execute(
            "DELETE FROM graph_snapshots WHERE graph_id = ?",
            (graph_id,),
        )
        await db.commit()
        return cursor.rowcount > 0


# Global instance
snapshot_store = SnapshotStore()
