"""DataSourceSync - Runs a connector for a data source node and delivers the result.

This is the boundary between async connectors and the synchronous graph
core: it issues a delivery sequence number, awaits the connector, then
pushes rows or the connector error back into the GraphStore.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from dataflow_engine.connectors.base import BaseConnector, ConnectorError, ConnectorRegistry
from dataflow_engine.models import DataSourceData, QuerySpec

if TYPE_CHECKING:
    from dataflow_engine.db.graph_store import GraphStore

logger = logging.getLogger(__name__)


@dataclass
class SyncResult:
    """Result of syncing a data source node."""

    delivered: bool
    sequence: int | None = None
    row_count: int = 0
    error: str | None = None


class DataSourceSync:
    """Connects data source nodes through their registered connectors.

    Example:
        sync = DataSourceSync(graph_store)
        result = await sync.sync("data_source-1a2b3c4d", query={"limit": 100})
        if result.error:
            ...  # the node is now Failed with the same message
    """

    def __init__(self, graph_store: GraphStore, connector: BaseConnector | None = None) -> None:
        self._store = graph_store
        self._connector = connector

    async def sync(
        self,
        node_id: str,
        query: QuerySpec | dict[str, Any] | None = None,
        settings: dict[str, Any] | None = None,
    ) -> SyncResult:
        """Connect (or resync) a data source node.

        Args:
            node_id: The data source node
            query: Query applied once to the delivered rows; keeps the
                   node's current query when omitted
            settings: Connector settings; keeps the node's current ones when omitted

        Returns:
            SyncResult describing what was delivered
        """
        node = self._store.get_node(node_id)
        if node is None or not isinstance(node.data, DataSourceData):
            return SyncResult(delivered=False, error=f"Node {node_id} is not a data source")

        sequence = self._store.connect_data_source(node_id, query=query, settings=settings)
        source_type = node.data.source_type

        connector = self._connector or ConnectorRegistry.get_instance(source_type)
        if connector is None:
            message = f"No connector registered for source type '{source_type}'"
            self._store.deliver_dataset(node_id, None, error=message, sequence=sequence)
            return SyncResult(delivered=False, sequence=sequence, error=message)

        try:
            result = await connector.fetch(dict(node.data.settings))
        except ConnectorError as e:
            logger.warning(f"Connector '{source_type}' failed for {node_id}: {e}")
            self._store.deliver_dataset(node_id, None, error=str(e), sequence=sequence)
            return SyncResult(delivered=False, sequence=sequence, error=str(e))

        delivered = self._store.deliver_dataset(
            node_id,
            result.rows,
            columns=result.columns,
            sequence=sequence,
        )
        node = self._store.get_node(node_id)
        row_count = len(node.data.data) if delivered and node is not None else 0
        return SyncResult(delivered=delivered, sequence=sequence, row_count=row_count)
