"""Inline connector: rows stored directly in the node's connector settings.

Backs preset datasets and pasted data, where nothing has to be fetched.
"""

from typing import Any

from dataflow_engine.connectors.base import (
    BaseConnector,
    ConnectorError,
    ConnectorRegistry,
    ConnectorResult,
)
from dataflow_engine.models import Column


@ConnectorRegistry.register
class InlineConnector(BaseConnector):
    """Serves `settings["rows"]`, with `settings["columns"]` as the schema if given."""

    source_type = "inline"

    async def fetch(self, settings: dict[str, Any]) -> ConnectorResult:
        rows = settings.get("rows")
        if rows is None:
            raise ConnectorError("No rows configured for inline source", source_type=self.source_type)
        if not isinstance(rows, list) or not all(isinstance(row, dict) for row in rows):
            raise ConnectorError("Inline rows must be a list of objects", source_type=self.source_type)

        columns = settings.get("columns")
        if columns is not None:
            schema = [Column.model_validate(column) for column in columns]
        else:
            schema = self.describe(rows)
        return ConnectorResult(rows=rows, columns=schema, metadata={"row_count": len(rows)})
