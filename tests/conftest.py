"""Pytest configuration and fixtures."""

import os
import tempfile
from typing import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from dataflow_engine.db import graph_registry
from dataflow_engine.db.database import close_database, init_database
from dataflow_engine.db.graph_store import GraphStore
from dataflow_engine.main import app
from dataflow_engine.models import NodeKind


@pytest.fixture
async def test_db() -> AsyncGenerator[str, None]:
    """Set up a temporary snapshot database."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name

    await init_database(db_path)

    yield db_path

    await close_database()
    os.unlink(db_path)


@pytest.fixture(autouse=True)
def reset_registry():
    """Close every open graph after each test."""
    yield
    graph_registry.clear()


@pytest.fixture
async def client(test_db: str) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as client:
        yield client


@pytest.fixture
def store() -> GraphStore:
    """An empty graph."""
    return GraphStore()


@pytest.fixture
def sales_graph(store: GraphStore) -> GraphStore:
    """Two connected sources feeding one table.

    east (2 rows) -> merged <- west (1 row)
    """
    store.create_node(NodeKind.DATA_SOURCE, {"label": "East", "sourceType": "inline"}, node_id="east")
    store.create_node(NodeKind.DATA_SOURCE, {"label": "West", "sourceType": "inline"}, node_id="west")
    store.create_node(NodeKind.TABLE, {"label": "Merged"}, node_id="merged")
    store.deliver_dataset(
        "east",
        [{"region": "E", "sales": 10}, {"region": "E", "sales": 5}],
    )
    store.deliver_dataset("west", [{"region": "W", "sales": 7}])
    store.create_edge("east", "merged")
    store.create_edge("west", "merged")
    return store
