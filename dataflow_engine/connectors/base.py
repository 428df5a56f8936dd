"""Base connector interface for external data sources.

Connectors live outside the graph core. A connector fetches a dataset for a
data source node and the caller pushes the result into the GraphStore with
`deliver_dataset`; the core never calls a connector itself.

All connectors must implement `fetch`, which turns a node's connector
settings into rows plus an optional schema.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, ClassVar

from dataflow_engine.models import Column, Row
from dataflow_engine.services.schema_inferencer import detect_columns


class ConnectorError(Exception):
    """Base exception for connector errors.

    The message is surfaced verbatim on the originating data source node.
    """

    def __init__(self, message: str, source_type: str | None = None, retriable: bool = False):
        super().__init__(message)
        self.source_type = source_type
        self.retriable = retriable


class AuthenticationError(ConnectorError):
    """Authentication failed (token expired, invalid credentials)."""

    pass


class NotFoundError(ConnectorError):
    """External dataset not found."""

    pass


class RateLimitError(ConnectorError):
    """Rate limit exceeded."""

    def __init__(self, message: str, retry_after: int | None = None, **kwargs: Any):
        super().__init__(message, retriable=True, **kwargs)
        self.retry_after = retry_after


@dataclass
class ConnectorResult:
    """A resolved dataset returned by a connector."""

    rows: list[Row]
    columns: list[Column] | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class BaseConnector(ABC):
    """Abstract base class for data source connectors.

    Example implementation:
        @ConnectorRegistry.register
        class SheetConnector(BaseConnector):
            source_type = "sheet"

            async def fetch(self, settings: dict[str, Any]) -> ConnectorResult:
                rows = await self._client.read(settings["sheet_id"])
                return ConnectorResult(rows=rows, columns=self.describe(rows))
    """

    # Unique source identifier (e.g., "inline", "googlesheets")
    source_type: ClassVar[str]

    @abstractmethod
    async def fetch(self, settings: dict[str, Any]) -> ConnectorResult:
        """Fetch the dataset described by a node's connector settings.

        Args:
            settings: Connector parameters stored on the data source node

        Returns:
            ConnectorResult with rows and, when the source knows it, a schema

        Raises:
            ConnectorError: If the dataset cannot be fetched
        """
        pass

    @staticmethod
    def describe(rows: list[Row], sample_limit: int = 200) -> list[Column]:
        """Detect column types (boolean > date > number > text) from sample rows."""
        return detect_columns(rows, sample_limit)


class ConnectorRegistry:
    """Registry of available connectors, keyed by source type."""

    _connectors: dict[str, type[BaseConnector]] = {}

    @classmethod
    def register(cls, connector_class: type[BaseConnector]) -> type[BaseConnector]:
        """Register a connector class.

        Can be used as a decorator:
            @ConnectorRegistry.register
            class InlineConnector(BaseConnector):
                source_type = "inline"
        """
        cls._connectors[connector_class.source_type] = connector_class
        return connector_class

    @classmethod
    def get(cls, source_type: str) -> type[BaseConnector] | None:
        """Get connector class by source type."""
        return cls._connectors.get(source_type)

    @classmethod
    def get_instance(cls, source_type: str) -> BaseConnector | None:
        """Instantiate the connector registered for a source type."""
        connector_class = cls._connectors.get(source_type)
        if not connector_class:
            return None
        return connector_class()

    @classmethod
    def list_source_types(cls) -> list[str]:
        """List registered source types."""
        return list(cls._connectors.keys())
