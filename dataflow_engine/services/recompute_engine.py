"""RecomputeEngine - Propagates incomer data into downstream nodes.

A table node with at least one incoming edge holds the concatenation of its
incomers' effective datasets, ordered by incomer id. A transform node carrying
a typed operation holds that operation's output over its first (primary) and
second (secondary) incomers.

Each recompute is memoized by a signature built from the incomers' version
counters, so a recompute with unchanged inputs is a no-op. That no-op is what
stops a write to a node from re-triggering itself.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from dataflow_engine.config import EngineSettings
from dataflow_engine.models import Node, NodeKind, Row
from dataflow_engine.services.schema_inferencer import merge_columns
from dataflow_engine.services.typed_transforms import run_operation

if TYPE_CHECKING:
    from dataflow_engine.db.graph_store import GraphStore

logger = logging.getLogger(__name__)

# (incomer id, incomer version, effective row count), sorted by incomer id
# except for typed operations, which keep edge order
Signature = tuple[tuple[str, int, int], ...]


class RecomputeEngine:
    """Recomputes table and live transform nodes from their incomers.

    The signature cache is private to the engine and keyed by node id.

    Example:
        engine = RecomputeEngine(graph_store, settings)
        changed_ids = engine.recompute_all()
    """

    def __init__(self, graph_store: GraphStore, settings: EngineSettings | None = None) -> None:
        self._store = graph_store
        self._settings = settings or EngineSettings()
        self._signatures: dict[str, Signature] = {}

    def signature_of(self, node_id: str) -> Signature | None:
        """Last signature stored for a node, if any."""
        return self._signatures.get(node_id)

    def forget(self, node_id: str) -> None:
        """Drop the stored signature of a node so its next recompute runs in full."""
        self._signatures.pop(node_id, None)

    def compute_signature(self, incomer_ids: list[str], ordered: bool = False) -> Signature:
        """Version vector of the given incomers.

        Sorted by incomer id unless `ordered`, in which case the given order
        is kept (typed operations tell primary and secondary input apart).
        """
        parts = []
        for incomer_id in incomer_ids if ordered else sorted(incomer_ids):
            node = self._store.get_node(incomer_id)
            if node is None:
                parts.append((incomer_id, -1, 0))
            else:
                parts.append((incomer_id, node.version, len(node.data.effective_rows())))
        return tuple(parts)

    def merge_incomers(self, incomer_ids: list[str]) -> list[Row]:
        """Concatenate incomer datasets ordered by incomer id.

        Missing nodes and missing data contribute nothing.
        """
        merged: list[Row] = []
        for incomer_id in sorted(incomer_ids):
            merged.extend(self._store.get_effective_data(incomer_id))
        return merged

    def recompute(self, node_id: str) -> bool:
        """Recompute one table node, or one transform node with a typed operation.

        Returns:
            True if the node's dataset or schema was written
        """
        node = self._store.get_node(node_id)
        if node is None:
            return False
        if node.kind == NodeKind.TABLE:
            return self._recompute_table(node)
        if is_live_transform(node):
            return self._recompute_operation(node)
        return False

    def _recompute_table(self, node: Node) -> bool:
        incomer_ids = [incomer.id for incomer in self._store.get_incomers(node.id)]
        if not incomer_ids:
            self.forget(node.id)
            return False

        previous = self._signatures.get(node.id)
        signature = self.compute_signature(incomer_ids)
        if previous == signature:
            return False

        merged = self.merge_incomers(incomer_ids)
        changed = False

        # A different incomer set means the dataset came from other nodes,
        # so a matching row count says nothing about the content.
        if previous is None or _incomer_ids(previous) != _incomer_ids(signature):
            dataset_changed = node.data.data != merged
        else:
            dataset_changed = self._dataset_changed(node.data.data, merged)
        if dataset_changed:
            self._store.write_dataset(node.id, merged)
            changed = True

        columns = merge_columns(node.data.columns, merged, self._settings.schema_sample_limit)
        if len(columns) != len(node.data.columns):
            self._store.write_columns(node.id, columns)
            changed = True

        self._signatures[node.id] = signature
        if changed:
            logger.debug(f"Recomputed table {node.id}: {len(merged)} row(s) from {len(incomer_ids)} incomer(s)")
        return changed

    def _recompute_operation(self, node: Node) -> bool:
        incomer_ids = [incomer.id for incomer in self._store.get_incomers(node.id)]
        if not incomer_ids:
            self.forget(node.id)
            return False

        signature = self.compute_signature(incomer_ids, ordered=True)
        if self._signatures.get(node.id) == signature:
            return False

        primary, secondary = self._store.get_operation_inputs(node.id)
        output = run_operation(node.data.operation, primary, secondary)
        changed = False

        if node.data.data != output:
            self._store.write_dataset(node.id, output)
            changed = True

        columns = merge_columns([], output, self._settings.schema_sample_limit)
        if columns != node.data.columns:
            self._store.write_columns(node.id, columns)
            changed = True

        self._signatures[node.id] = signature
        if changed:
            logger.debug(
                f"Recomputed {node.data.operation.type} transform {node.id}: {len(output)} row(s)"
            )
        return changed

    def recompute_all(self) -> list[str]:
        """Recompute every table and live transform node in topological order.

        Upstream nodes are settled before the nodes they feed, so one pass
        converges on an acyclic graph.

        Returns:
            Ids of the nodes that were written
        """
        changed = []
        for node_id in self._store.topological_order():
            if self.recompute(node_id):
                changed.append(node_id)
        return changed

    def _dataset_changed(self, current: list[Row], merged: list[Row]) -> bool:
        # Row count is a coarse detector: same-length content changes go unnoticed
        # unless strict change detection is on.
        if len(current) != len(merged):
            return True
        if self._settings.strict_change_detection:
            return current != merged
        return False


def is_live_transform(node: Node) -> bool:
    """True for a transform node whose output follows a typed operation."""
    return node.kind == NodeKind.TRANSFORM and getattr(node.data, "operation", None) is not None


def _incomer_ids(signature: Signature) -> set[str]:
    return {incomer_id for incomer_id, _, _ in signature}
