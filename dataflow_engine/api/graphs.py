"""Graph API routes."""

from typing import Any

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, ValidationError

from dataflow_engine.db import GraphStore, SnapshotSummary, graph_registry, snapshot_store
from dataflow_engine.errors import GraphIntegrityError
from dataflow_engine.models import (
    Column,
    Edge,
    EdgeCreate,
    GraphEvent,
    GraphSnapshot,
    Node,
    NodeCreate,
    NodeKind,
    NodeUpdate,
    QuerySpec,
    Row,
    TransformConfig,
    TransformOperation,
)
from dataflow_engine.services.data_source_sync import DataSourceSync, SyncResult

router = APIRouter()


class GraphCreated(BaseModel):
    """Response for a newly opened graph."""

    graph_id: str


class ConnectRequest(BaseModel):
    """Request to connect (or resync) a data source node."""

    query: QuerySpec | None = None
    settings: dict[str, Any] | None = None


class DeliveryRequest(BaseModel):
    """A dataset (or error) pushed by an external connector."""

    rows: list[Row] = []
    columns: list[Column] | None = None
    error: str | None = None
    sequence: int | None = None


class FilteredDataRequest(BaseModel):
    """Override dataset for a node; null clears the override."""

    rows: list[Row] | None = None


class ImportRequest(BaseModel):
    """Request to import a dataset as a new table node."""

    rows: list[Row]
    columns: list[Column] | None = None
    label: str = ""
    id: str | None = None


class OperationRequest(BaseModel):
    """A typed transform operation; null detaches the current one."""

    operation: TransformOperation | None = None


class RowsResponse(BaseModel):
    """Rows of a dataset."""

    rows: list[Row]
    total: int


class SaveRequest(BaseModel):
    """Request to persist a graph."""

    name: str = ""


def _get_graph(graph_id: str) -> GraphStore:
    store = graph_registry.get(graph_id)
    if store is None:
        raise HTTPException(status_code=404, detail="Graph not found")
    return store


def _get_node(store: GraphStore, node_id: str) -> Node:
    node = store.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return node


# ==================== Graphs ====================


@router.post("/graphs")
async def create_graph() -> GraphCreated:
    """Open a new empty graph."""
    graph_id, _ = graph_registry.create()
    return GraphCreated(graph_id=graph_id)


@router.get("/graphs")
async def list_graphs() -> list[str]:
    """List open graphs."""
    return graph_registry.list_ids()


@router.get("/graphs/{graph_id}")
async def get_graph(graph_id: str) -> GraphSnapshot:
    """Full state of an open graph."""
    return _get_graph(graph_id).to_snapshot()


@router.delete("/graphs/{graph_id}")
async def delete_graph(graph_id: str) -> dict[str, bool]:
    """Close an open graph."""
    if not graph_registry.delete(graph_id):
        raise HTTPException(status_code=404, detail="Graph not found")
    return {"deleted": True}


@router.get("/graphs/{graph_id}/events")
async def get_events(
    graph_id: str,
    node_id: str | None = Query(None, description="Only events about this node"),
    limit: int = Query(100, ge=1, le=1000),
) -> list[GraphEvent]:
    """Recent change events of a graph."""
    return _get_graph(graph_id).get_events(limit=limit, subject_node_id=node_id)


# ==================== Nodes ====================


@router.post("/graphs/{graph_id}/nodes")
async def create_node(graph_id: str, request: NodeCreate) -> Node:
    """Create a node. A colliding id is rejected with 409."""
    store = _get_graph(graph_id)
    try:
        node_id = store.create_node(request.kind, request.data, node_id=request.id)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    if node_id is None:
        raise HTTPException(status_code=409, detail=f"Node '{request.id}' already exists")
    return _get_node(store, node_id)


@router.get("/graphs/{graph_id}/nodes/{node_id}")
async def get_node(graph_id: str, node_id: str) -> Node:
    """Get a specific node."""
    return _get_node(_get_graph(graph_id), node_id)


@router.patch("/graphs/{graph_id}/nodes/{node_id}")
async def update_node(graph_id: str, node_id: str, update: NodeUpdate) -> Node:
    """Shallow-merge fields into a node's payload."""
    store = _get_graph(graph_id)
    try:
        node = store.update_node_data(node_id, update.data)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.errors(include_url=False, include_context=False))
    if node is None:
        raise HTTPException(status_code=404, detail="Node not found")
    return node


@router.delete("/graphs/{graph_id}/nodes/{node_id}")
async def delete_node(graph_id: str, node_id: str) -> dict[str, bool]:
    """Delete a node, rewiring its incomers to its outgoers."""
    if not _get_graph(graph_id).delete_node(node_id):
        raise HTTPException(status_code=404, detail="Node not found")
    return {"deleted": True}


@router.get("/graphs/{graph_id}/nodes/{node_id}/data")
async def get_node_data(
    graph_id: str,
    node_id: str,
    limit: int | None = Query(None, ge=0),
    offset: int = Query(0, ge=0),
) -> RowsResponse:
    """Effective data of a node (override rows when set, else raw rows)."""
    store = _get_graph(graph_id)
    _get_node(store, node_id)
    rows = store.get_effective_data(node_id)
    page = rows[offset:] if limit is None else rows[offset : offset + limit]
    return RowsResponse(rows=page, total=len(rows))


@router.put("/graphs/{graph_id}/nodes/{node_id}/filtered-data")
async def set_filtered_data(graph_id: str, node_id: str, request: FilteredDataRequest) -> Node:
    """Set or clear the override dataset of a node."""
    store = _get_graph(graph_id)
    if not store.set_filtered_data(node_id, request.rows):
        raise HTTPException(status_code=404, detail="Node not found")
    return _get_node(store, node_id)


@router.post("/graphs/{graph_id}/import")
async def import_dataset(graph_id: str, request: ImportRequest) -> Node:
    """Import a dataset as a new table node."""
    store = _get_graph(graph_id)
    node_id = store.import_dataset(
        request.rows,
        columns=request.columns,
        label=request.label,
        node_id=request.id,
    )
    if node_id is None:
        raise HTTPException(status_code=409, detail=f"Node '{request.id}' already exists")
    return _get_node(store, node_id)


# ==================== Data sources ====================


@router.post("/graphs/{graph_id}/nodes/{node_id}/connect")
async def connect_data_source(graph_id: str, node_id: str, request: ConnectRequest) -> SyncResult:
    """Connect a data source through its registered connector."""
    store = _get_graph(graph_id)
    _get_node(store, node_id)
    result = await DataSourceSync(store).sync(node_id, query=request.query, settings=request.settings)
    if result.sequence is None:
        raise HTTPException(status_code=400, detail=result.error)
    return result


@router.post("/graphs/{graph_id}/nodes/{node_id}/deliver")
async def deliver_dataset(graph_id: str, node_id: str, request: DeliveryRequest) -> Node:
    """Accept a dataset pushed by an external connector. Stale deliveries get 409."""
    store = _get_graph(graph_id)
    _get_node(store, node_id)
    accepted = store.deliver_dataset(
        node_id,
        request.rows,
        columns=request.columns,
        error=request.error,
        sequence=request.sequence,
    )
    if not accepted:
        raise HTTPException(status_code=409, detail="Delivery rejected")
    return _get_node(store, node_id)


# ==================== Transforms ====================


@router.post("/graphs/{graph_id}/nodes/{node_id}/transform/preview")
async def preview_transform(graph_id: str, node_id: str, config: TransformConfig) -> RowsResponse:
    """Run a transform config over the node's input without storing it."""
    store = _get_graph(graph_id)
    _get_node(store, node_id)
    rows = store.preview_transform(node_id, config)
    return RowsResponse(rows=rows, total=len(rows))


@router.post("/graphs/{graph_id}/nodes/{node_id}/transform/apply")
async def apply_transform(graph_id: str, node_id: str, config: TransformConfig) -> Node:
    """Commit a transform config and its output to the node."""
    store = _get_graph(graph_id)
    _get_node(store, node_id)
    if store.apply_transform(node_id, config) is None:
        raise HTTPException(status_code=400, detail="Node is not a transform node")
    return _get_node(store, node_id)


@router.put("/graphs/{graph_id}/nodes/{node_id}/operation")
async def set_operation(graph_id: str, node_id: str, request: OperationRequest) -> Node:
    """Attach a typed operation to a transform node, keeping its output live."""
    store = _get_graph(graph_id)
    _get_node(store, node_id)
    if store.set_transform_operation(node_id, request.operation) is None:
        raise HTTPException(status_code=400, detail="Node is not a transform node")
    return _get_node(store, node_id)


@router.post("/graphs/{graph_id}/nodes/{node_id}/operation/preview")
async def preview_operation(graph_id: str, node_id: str, request: OperationRequest) -> RowsResponse:
    """Run a typed operation over the node's inputs without storing it."""
    store = _get_graph(graph_id)
    node = _get_node(store, node_id)
    if node.kind != NodeKind.TRANSFORM:
        raise HTTPException(status_code=400, detail="Node is not a transform node")
    rows = store.preview_operation(node_id, request.operation)
    return RowsResponse(rows=rows, total=len(rows))


# ==================== Edges ====================


@router.post("/graphs/{graph_id}/edges")
async def create_edge(graph_id: str, edge: EdgeCreate) -> Edge:
    """Create an edge. Unknown endpoints get 404; duplicates and cycles get 409."""
    store = _get_graph(graph_id)
    _get_node(store, edge.source)
    _get_node(store, edge.target)
    edge_id = store.create_edge(edge.source, edge.target)
    if edge_id is None:
        raise HTTPException(status_code=409, detail="Edge already exists or would create a cycle")
    created = store.get_edge(edge_id)
    if created is None:
        raise HTTPException(status_code=404, detail="Edge not found")
    return created


@router.delete("/graphs/{graph_id}/edges/{edge_id}")
async def delete_edge(graph_id: str, edge_id: str) -> dict[str, bool]:
    """Delete an edge."""
    if not _get_graph(graph_id).delete_edge(edge_id):
        raise HTTPException(status_code=404, detail="Edge not found")
    return {"deleted": True}


# ==================== Persistence ====================


@router.post("/graphs/{graph_id}/save")
async def save_graph(graph_id: str, request: SaveRequest) -> SnapshotSummary:
    """Persist the current state of a graph."""
    store = _get_graph(graph_id)
    return await snapshot_store.save(graph_id, store.to_snapshot(), name=request.name)


@router.post("/graphs/{graph_id}/load")
async def load_graph(graph_id: str) -> GraphSnapshot:
    """Reopen a graph from its saved snapshot."""
    snapshot = await snapshot_store.load(graph_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="No saved snapshot for graph")
    try:
        store = graph_registry.restore(graph_id, snapshot)
    except GraphIntegrityError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return store.to_snapshot()


@router.get("/snapshots")
async def list_snapshots() -> list[SnapshotSummary]:
    """List saved graphs."""
    return await snapshot_store.list_snapshots()
