"""Data source connectors.

Connectors resolve external datasets and hand them to the graph core, which
only ever consumes what they deliver.
"""

from dataflow_engine.connectors.base import (
    AuthenticationError,
    BaseConnector,
    ConnectorError,
    ConnectorRegistry,
    ConnectorResult,
    NotFoundError,
    RateLimitError,
)

# Import connectors to trigger registration via @ConnectorRegistry.register decorator
from dataflow_engine.connectors.inline import InlineConnector  # noqa: F401

__all__ = [
    "AuthenticationError",
    "BaseConnector",
    "ConnectorError",
    "ConnectorRegistry",
    "ConnectorResult",
    "InlineConnector",
    "NotFoundError",
    "RateLimitError",
]
