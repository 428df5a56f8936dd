"""GraphStore - In-memory owner of a dataflow graph's nodes and edges.

Every public mutation follows the same sequence: apply the change, emit a
GraphEvent to subscribers, then let the RecomputeEngine settle the table and
live transform nodes downstream. The store never performs I/O; connectors push
datasets in through `deliver_dataset` and persistence goes through snapshots.
"""

import logging
import uuid
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

from pydantic import TypeAdapter

from dataflow_engine.config import EngineSettings
from dataflow_engine.errors import GraphIntegrityError
from dataflow_engine.models import (
    NODE_DATA_TYPES,
    Column,
    ConnectionState,
    DataSourceData,
    Edge,
    GraphEvent,
    GraphSnapshot,
    Node,
    NodeData,
    NodeKind,
    QuerySpec,
    Row,
    TransformConfig,
    TransformData,
    TransformOperation,
)
from dataflow_engine.services.query_applier import apply_query
from dataflow_engine.services.recompute_engine import RecomputeEngine
from dataflow_engine.services.schema_inferencer import merge_columns
from dataflow_engine.services.transform_pipeline import run_pipeline
from dataflow_engine.services.typed_transforms import run_operation

logger = logging.getLogger(__name__)

GraphListener = Callable[[GraphEvent], None]

_OPERATION_ADAPTER: TypeAdapter[TransformOperation] = TypeAdapter(TransformOperation)


def _generate_id() -> str:
    """Generate a unique ID."""
    return str(uuid.uuid4())


def _now() -> str:
    """Get current timestamp in ISO format."""
    return datetime.now(timezone.utc).isoformat()


class GraphStore:
    """In-memory dataflow graph with change notifications."""

    def __init__(self, settings: EngineSettings | None = None) -> None:
        self.settings = settings or EngineSettings()
        self._nodes: dict[str, Node] = {}
        self._edges: dict[str, Edge] = {}
        self._listeners: list[GraphListener] = []
        self._events: deque[GraphEvent] = deque(maxlen=self.settings.event_log_limit)
        self._recompute = RecomputeEngine(self, self.settings)
        self._recomputing = False
        self._recompute_pending = False

    @property
    def recompute_engine(self) -> RecomputeEngine:
        return self._recompute

    # ==================== Nodes ====================

    def create_node(
        self,
        kind: NodeKind | str,
        data: NodeData | dict[str, Any] | None = None,
        node_id: str | None = None,
    ) -> str | None:
        """Create a node.

        Args:
            kind: Node kind
            data: Kind-specific payload (model or plain dict)
            node_id: Explicit id; a fresh one is generated when omitted

        Returns:
            The node id, or None if `node_id` collides with an existing node
            (the graph is left unchanged)
        """
        kind = NodeKind(kind)
        if node_id and node_id in self._nodes:
            logger.warning(f"Rejected node creation: id {node_id!r} already exists")
            return None

        payload_type = NODE_DATA_TYPES[kind]
        if isinstance(data, NodeData):
            data = data.model_dump(by_alias=True)
        payload = payload_type.model_validate(data or {})

        node_id = node_id or self._generate_node_id(kind)
        now = _now()
        self._nodes[node_id] = Node(
            id=node_id,
            kind=kind,
            data=payload,
            created_at=now,
            updated_at=now,
        )

        self._emit("node_created", node_id, {"kind": kind.value})
        self._run_recompute()
        return node_id

    def get_node(self, node_id: str) -> Node | None:
        """Get a node by ID."""
        return self._nodes.get(node_id)

    def list_nodes(self, kind: NodeKind | str | None = None) -> list[Node]:
        """List nodes in creation order, optionally restricted to one kind."""
        if kind is None:
            return list(self._nodes.values())
        kind = NodeKind(kind)
        return [node for node in self._nodes.values() if node.kind == kind]

    def update_node_data(self, node_id: str, partial: dict[str, Any]) -> Node | None:
        """Shallow-merge `partial` into a node's payload.

        Keys may use field names or their camelCase aliases. The merged
        payload is validated against the node kind's payload model.
        """
        node = self._nodes.get(node_id)
        if node is None:
            return None

        payload_type = type(node.data)
        aliases = {
            info.alias: name for name, info in payload_type.model_fields.items() if info.alias
        }
        updates = {aliases.get(key, key): value for key, value in partial.items()}
        merged = {**node.data.model_dump(), **updates}
        new_payload = payload_type.model_validate(merged)

        rows_changed = new_payload.effective_rows() != node.data.effective_rows()
        node.data = new_payload
        node.updated_at = _now()
        if rows_changed:
            node.version += 1
        if "operation" in updates:
            self._recompute.forget(node_id)

        self._emit("node_updated", node_id, {"fields": sorted(updates)})
        self._run_recompute()
        return node

    def delete_node(self, node_id: str) -> bool:
        """Delete a node and its edges, then rewire around it.

        For every (incomer, outgoer) pair of the deleted node a direct
        incomer -> outgoer edge is created, so a pipeline A -> T -> B becomes
        A -> B.
        """
        if node_id not in self._nodes:
            return False

        incomer_ids = [node.id for node in self.get_incomers(node_id)]
        outgoer_ids = [node.id for node in self.get_outgoers(node_id)]

        removed = [
            edge_id
            for edge_id, edge in self._edges.items()
            if edge.source == node_id or edge.target == node_id
        ]
        for edge_id in removed:
            del self._edges[edge_id]
        del self._nodes[node_id]
        self._recompute.forget(node_id)

        self._emit("node_deleted", node_id, {"removed_edges": removed})
        self._rewire(incomer_ids, outgoer_ids)
        self._run_recompute()
        return True

    def _rewire(self, incomer_ids: list[str], outgoer_ids: list[str]) -> list[str]:
        """Synthesize incomer -> outgoer bypass edges for a deleted node."""
        created = []
        for source in incomer_ids:
            for target in outgoer_ids:
                if source == target or self._find_edge(source, target) is not None:
                    continue
                edge = self._add_edge(source, target)
                created.append(edge.id)
                self._emit(
                    "edge_created",
                    target,
                    {"edge_id": edge.id, "source": source, "target": target, "reason": "rewire"},
                )
        return created

    def _generate_node_id(self, kind: NodeKind) -> str:
        while True:
            node_id = f"{kind.value}-{_generate_id()[:8]}"
            if node_id not in self._nodes:
                return node_id

    # ==================== Edges ====================

    def create_edge(self, source: str, target: str) -> str | None:
        """Create an edge from `source` to `target`.

        Returns:
            The edge id, or None when an endpoint is missing, the edge
            already exists, or it would close a cycle
        """
        if source not in self._nodes or target not in self._nodes:
            logger.warning(f"Rejected edge {source} -> {target}: unknown node")
            return None
        if self._find_edge(source, target) is not None:
            logger.warning(f"Rejected edge {source} -> {target}: already exists")
            return None
        if source == target or self._reaches(target, source):
            logger.warning(f"Rejected edge {source} -> {target}: would create a cycle")
            return None

        edge = self._add_edge(source, target)
        self._emit(
            "edge_created",
            target,
            {"edge_id": edge.id, "source": source, "target": target, "reason": "user"},
        )
        self._run_recompute()
        return edge.id

    def delete_edge(self, edge_id: str) -> bool:
        """Delete an edge by ID."""
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            return False
        self._emit(
            "edge_deleted",
            edge.target,
            {"edge_id": edge_id, "source": edge.source, "target": edge.target},
        )
        self._run_recompute()
        return True

    def get_edge(self, edge_id: str) -> Edge | None:
        """Get an edge by ID."""
        return self._edges.get(edge_id)

    def list_edges(self) -> list[Edge]:
        """List edges in creation order."""
        return list(self._edges.values())

    def get_incomers(self, node_id: str) -> list[Node]:
        """Nodes with an edge into `node_id`."""
        return [
            self._nodes[edge.source]
            for edge in self._edges.values()
            if edge.target == node_id and edge.source in self._nodes
        ]

    def get_outgoers(self, node_id: str) -> list[Node]:
        """Nodes with an edge out of `node_id`."""
        return [
            self._nodes[edge.target]
            for edge in self._edges.values()
            if edge.source == node_id and edge.target in self._nodes
        ]

    def topological_order(self) -> list[str]:
        """Node ids ordered so that every edge points forward.

        Ties are broken by node id, making the order independent of creation
        order.
        """
        indegree = {node_id: 0 for node_id in self._nodes}
        children: dict[str, list[str]] = {node_id: [] for node_id in self._nodes}
        for edge in self._edges.values():
            indegree[edge.target] += 1
            children[edge.source].append(edge.target)

        ready = sorted(node_id for node_id, degree in indegree.items() if degree == 0)
        order = []
        while ready:
            node_id = ready.pop(0)
            order.append(node_id)
            for child in children[node_id]:
                indegree[child] -= 1
                if indegree[child] == 0:
                    ready.append(child)
            ready.sort()
        return order

    def _add_edge(self, source: str, target: str) -> Edge:
        edge = Edge(id=_generate_id(), source=source, target=target, created_at=_now())
        self._edges[edge.id] = edge
        return edge

    def _find_edge(self, source: str, target: str) -> Edge | None:
        for edge in self._edges.values():
            if edge.source == source and edge.target == target:
                return edge
        return None

    def _reaches(self, start: str, goal: str) -> bool:
        """True if `goal` is reachable from `start` along edges."""
        seen = set()
        stack = [start]
        while stack:
            current = stack.pop()
            if current == goal:
                return True
            if current in seen:
                continue
            seen.add(current)
            stack.extend(edge.target for edge in self._edges.values() if edge.source == current)
        return False

    # ==================== Datasets ====================

    def get_effective_data(self, node_id: str) -> list[Row]:
        """Filtered/overridden rows of a node if present, else its raw rows."""
        node = self._nodes.get(node_id)
        if node is None:
            return []
        return list(node.data.effective_rows())

    def set_filtered_data(self, node_id: str, rows: list[Row] | None) -> bool:
        """Set (or clear with None) the override dataset of a node."""
        node = self._nodes.get(node_id)
        if node is None:
            return False
        node.data.filtered_data = list(rows) if rows is not None else None
        node.version += 1
        node.updated_at = _now()

        self._emit(
            "filtered_data_changed",
            node_id,
            {"rows": None if rows is None else len(rows)},
        )
        self._run_recompute()
        return True

    def import_dataset(
        self,
        rows: list[Row],
        columns: list[Column] | list[dict[str, Any]] | None = None,
        label: str = "",
        node_id: str | None = None,
    ) -> str | None:
        """Create a table node holding an imported dataset.

        Without a reported schema every field is typed TEXT.
        """
        if columns is None:
            schema = merge_columns([], rows, self.settings.schema_sample_limit)
        else:
            schema = [Column.model_validate(column) for column in columns]
        return self.create_node(
            NodeKind.TABLE,
            {"label": label, "data": list(rows), "columns": schema},
            node_id=node_id,
        )

    def write_dataset(self, node_id: str, rows: list[Row]) -> None:
        """Replace a node's raw dataset without triggering a recompute.

        Used by the RecomputeEngine while it walks the graph.
        """
        node = self._nodes[node_id]
        node.data.data = rows
        if isinstance(node.data, TransformData):
            node.data.output_row_count = len(rows)
        node.version += 1
        node.updated_at = _now()
        self._emit("node_data_changed", node_id, {"rows": len(rows), "reason": "recompute"})

    def write_columns(self, node_id: str, columns: list[Column]) -> None:
        """Replace a node's schema without triggering a recompute."""
        node = self._nodes[node_id]
        node.data.columns = columns
        node.updated_at = _now()
        self._emit(
            "schema_changed",
            node_id,
            {"columns": [column.name for column in columns]},
        )

    # ==================== Data sources ====================

    def connect_data_source(
        self,
        node_id: str,
        query: QuerySpec | dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> int | None:
        """Move a data source into the connecting state.

        Issues a new delivery sequence number. The connector must hand it
        back to `deliver_dataset`; deliveries carrying an older number are
        rejected as stale.

        Returns:
            The sequence number, or None if `node_id` is not a data source
        """
        node = self._nodes.get(node_id)
        if node is None or not isinstance(node.data, DataSourceData):
            logger.warning(f"Cannot connect {node_id}: not a data source node")
            return None

        data = node.data
        if query is not None:
            data.query = QuerySpec.model_validate(query) if isinstance(query, dict) else query
        if settings is not None:
            data.settings = dict(settings)
        data.sequence += 1
        data.state = ConnectionState.CONNECTING
        data.error = None
        node.updated_at = _now()

        self._emit(
            "data_source_connecting",
            node_id,
            {"sequence": data.sequence, "source_type": data.source_type},
        )
        return data.sequence

    def deliver_dataset(
        self,
        node_id: str,
        rows: list[Row] | None,
        columns: list[Column] | list[dict[str, Any]] | None = None,
        error: str | None = None,
        sequence: int | None = None,
    ) -> bool:
        """Accept a dataset (or an error) pushed by a connector.

        On success the node's query is applied once to the rows, the node
        becomes Connected and downstream tables recompute. On error the
        message is stored verbatim, the node becomes Failed and its previous
        dataset is kept.

        Returns:
            False if the node is not a data source or the delivery is stale
        """
        node = self._nodes.get(node_id)
        if node is None or not isinstance(node.data, DataSourceData):
            logger.warning(f"Dropped delivery for {node_id}: not a data source node")
            return False

        data = node.data
        if sequence is not None:
            if sequence < data.sequence:
                logger.warning(
                    f"Dropped stale delivery for {node_id}: sequence {sequence} < {data.sequence}"
                )
                return False
            data.sequence = sequence
        node.updated_at = _now()

        if error is not None:
            data.state = ConnectionState.FAILED
            data.error = error
            self._emit("data_source_failed", node_id, {"error": error, "sequence": sequence})
            return True

        result = apply_query(rows or [], data.query)
        data.data = result
        data.columns = self._delivered_columns(result, columns, data.query)
        data.state = ConnectionState.CONNECTED
        data.error = None
        node.version += 1

        self._emit(
            "dataset_delivered",
            node_id,
            {"rows": len(result), "sequence": sequence},
        )
        self._run_recompute()
        return True

    def _delivered_columns(
        self,
        rows: list[Row],
        columns: list[Column] | list[dict[str, Any]] | None,
        query: QuerySpec | None,
    ) -> list[Column]:
        if columns is None:
            return merge_columns([], rows, self.settings.schema_sample_limit)
        schema = [Column.model_validate(column) for column in columns]
        if query is not None and query.select_columns:
            by_name = {column.name: column for column in schema}
            schema = [by_name[name] for name in query.select_columns if name in by_name]
        return schema

    # ==================== Transforms ====================

    def get_transform_input(self, node_id: str) -> list[Row]:
        """Merged effective data of a node's incomers, ordered by incomer id."""
        return self._recompute.merge_incomers([node.id for node in self.get_incomers(node_id)])

    def preview_transform(
        self,
        node_id: str,
        config: TransformConfig | dict[str, Any] | None = None,
    ) -> list[Row]:
        """Run the pipeline over a transform node's input without storing anything.

        Uses the node's stored config when `config` is omitted.
        """
        node = self._nodes.get(node_id)
        if node is None or not isinstance(node.data, TransformData):
            return []
        if config is None:
            config = node.data.config
        elif isinstance(config, dict):
            config = TransformConfig.model_validate(config)
        return run_pipeline(self.get_transform_input(node_id), config)

    def apply_transform(
        self,
        node_id: str,
        config: TransformConfig | dict[str, Any],
    ) -> list[Row] | None:
        """Commit a transform config and its output to the node.

        Returns:
            The output rows, or None if `node_id` is not a transform node
        """
        node = self._nodes.get(node_id)
        if node is None or not isinstance(node.data, TransformData):
            logger.warning(f"Cannot apply transform to {node_id}: not a transform node")
            return None

        if isinstance(config, dict):
            config = TransformConfig.model_validate(config)
        output = run_pipeline(self.get_transform_input(node_id), config)

        data = node.data
        data.config = config
        data.operation = None
        data.data = output
        data.output_row_count = len(output)
        data.columns = merge_columns([], output, self.settings.schema_sample_limit)
        node.version += 1
        node.updated_at = _now()
        self._recompute.forget(node_id)

        self._emit("transform_applied", node_id, {"rows": len(output)})
        self._run_recompute()
        return output

    def set_transform_operation(
        self,
        node_id: str,
        operation: TransformOperation | dict[str, Any] | None,
    ) -> Node | None:
        """Attach (or clear with None) a typed operation on a transform node.

        With an operation attached the node's output is recomputed from its
        primary and secondary incomers whenever they change. Clearing it
        keeps the last output as a plain dataset.

        Returns:
            The node, or None if `node_id` is not a transform node
        """
        node = self._nodes.get(node_id)
        if node is None or not isinstance(node.data, TransformData):
            logger.warning(f"Cannot set operation on {node_id}: not a transform node")
            return None

        if isinstance(operation, dict):
            operation = _OPERATION_ADAPTER.validate_python(operation)
        node.data.operation = operation
        node.updated_at = _now()
        self._recompute.forget(node_id)

        self._emit(
            "transform_operation_set",
            node_id,
            {"type": operation.type if operation is not None else None},
        )
        self._run_recompute()
        return node

    def preview_operation(
        self,
        node_id: str,
        operation: TransformOperation | dict[str, Any] | None = None,
    ) -> list[Row]:
        """Run a typed operation over a transform node's inputs without storing anything.

        Uses the node's stored operation when `operation` is omitted; a node
        without one previews its primary input unchanged.
        """
        node = self._nodes.get(node_id)
        if node is None or not isinstance(node.data, TransformData):
            return []
        if operation is None:
            operation = node.data.operation
        elif isinstance(operation, dict):
            operation = _OPERATION_ADAPTER.validate_python(operation)

        primary, secondary = self.get_operation_inputs(node_id)
        if operation is None:
            return list(primary)
        return run_operation(operation, primary, secondary)

    def get_operation_inputs(self, node_id: str) -> tuple[list[Row], list[Row] | None]:
        """Effective data of the first (primary) and second (secondary) incomers, in edge order."""
        incomers = self.get_incomers(node_id)
        primary = list(incomers[0].data.effective_rows()) if incomers else []
        secondary = list(incomers[1].data.effective_rows()) if len(incomers) > 1 else None
        return primary, secondary

    # ==================== Events ====================

    def subscribe(self, listener: GraphListener) -> Callable[[], None]:
        """Register a change listener.

        Returns:
            A callable that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def get_events(
        self,
        limit: int | None = None,
        subject_node_id: str | None = None,
    ) -> list[GraphEvent]:
        """Recent change events, oldest first."""
        events = [
            event
            for event in self._events
            if subject_node_id is None or event.subject_node_id == subject_node_id
        ]
        if limit is not None:
            events = events[-limit:] if limit > 0 else []
        return events

    def _emit(self, event_type: str, subject_node_id: str | None, payload: dict[str, Any]) -> None:
        event = GraphEvent(
            id=_generate_id(),
            event_type=event_type,
            subject_node_id=subject_node_id,
            payload=payload,
            nodes=[node.model_copy(deep=True) for node in self._nodes.values()],
            edges=[edge.model_copy() for edge in self._edges.values()],
            created_at=_now(),
        )
        self._events.append(event)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as e:
                logger.exception(f"Graph listener failed on {event_type}: {e}")

    def _run_recompute(self) -> None:
        """Settle downstream nodes, coalescing passes requested by listeners."""
        if self._recomputing:
            self._recompute_pending = True
            return

        self._recomputing = True
        try:
            passes = 0
            while True:
                self._recompute_pending = False
                self._recompute.recompute_all()
                passes += 1
                if not self._recompute_pending:
                    break
                if passes >= self.settings.max_recompute_passes:
                    logger.warning(f"Recompute stopped after {passes} passes with changes pending")
                    break
        finally:
            self._recomputing = False

    # ==================== Snapshots ====================

    def to_snapshot(self) -> GraphSnapshot:
        """Copy of the full graph state."""
        return GraphSnapshot(
            nodes=[node.model_copy(deep=True) for node in self._nodes.values()],
            edges=[edge.model_copy() for edge in self._edges.values()],
        )

    @classmethod
    def from_snapshot(
        cls,
        snapshot: GraphSnapshot,
        settings: EngineSettings | None = None,
    ) -> "GraphStore":
        """Build a store from a snapshot.

        Raises:
            GraphIntegrityError: On duplicate ids, dangling edges or cycles
        """
        store = cls(settings)
        for node in snapshot.nodes:
            if node.id in store._nodes:
                raise GraphIntegrityError(f"Duplicate node id {node.id!r}", node.id)
            store._nodes[node.id] = node.model_copy(deep=True)

        for edge in snapshot.edges:
            if edge.id in store._edges:
                raise GraphIntegrityError(f"Duplicate edge id {edge.id!r}", edge.id)
            if edge.source not in store._nodes or edge.target not in store._nodes:
                raise GraphIntegrityError(
                    f"Edge {edge.id!r} references a missing node", edge.id
                )
            if edge.source == edge.target or store._reaches(edge.target, edge.source):
                raise GraphIntegrityError(f"Edge {edge.id!r} closes a cycle", edge.id)
            store._edges[edge.id] = edge.model_copy()

        store._run_recompute()
        return store
