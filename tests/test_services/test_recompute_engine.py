"""Tests for RecomputeEngine propagation into table nodes."""

import pytest

from dataflow_engine.config import EngineSettings
from dataflow_engine.db.graph_store import GraphStore
from dataflow_engine.models import Column, ColumnType, NodeKind

EAST_ROWS = [{"region": "E", "sales": 10}, {"region": "E", "sales": 5}]
WEST_ROWS = [{"region": "W", "sales": 7}]


def _source(store: GraphStore, node_id: str, rows: list[dict]) -> None:
    store.create_node(NodeKind.DATA_SOURCE, {"sourceType": "inline"}, node_id=node_id)
    store.deliver_dataset(node_id, rows)


class TestMerge:
    """Tests for incomer concatenation."""

    def test_merged_rows_ordered_by_incomer_id(self, sales_graph):
        """Test merged rows ordered by incomer id."""
        assert sales_graph.get_node("merged").data.data == EAST_ROWS + WEST_ROWS

    def test_merge_independent_of_creation_order(self, sales_graph):
        """Test merge independent of creation order."""
        other = GraphStore()
        _source(other, "west", WEST_ROWS)
        other.create_node(NodeKind.TABLE, node_id="merged")
        _source(other, "east", EAST_ROWS)
        other.create_edge("west", "merged")
        other.create_edge("east", "merged")

        assert other.get_node("merged").data.data == sales_graph.get_node("merged").data.data

    def test_merge_uses_effective_data(self, sales_graph):
        """Test merge uses effective data."""
        sales_graph.set_filtered_data("east", [{"region": "E", "sales": 99}])
        assert sales_graph.get_node("merged").data.data == [{"region": "E", "sales": 99}] + WEST_ROWS

    def test_missing_incomers_contribute_nothing(self, sales_graph):
        """Test missing incomers contribute nothing."""
        engine = sales_graph.recompute_engine
        assert engine.merge_incomers(["west", "nope"]) == WEST_ROWS

    def test_schema_unions_incomer_fields(self, sales_graph):
        """Test schema unions incomer fields."""
        columns = sales_graph.get_node("merged").data.columns
        assert columns == [
            Column(name="region", type=ColumnType.TEXT),
            Column(name="sales", type=ColumnType.TEXT),
        ]

    def test_chained_tables(self, sales_graph):
        """Test a table fed by another table."""
        sales_graph.create_node(NodeKind.TABLE, node_id="copy")
        sales_graph.create_edge("merged", "copy")
        assert sales_graph.get_node("copy").data.data == EAST_ROWS + WEST_ROWS

        sales_graph.deliver_dataset("west", WEST_ROWS + [{"region": "W", "sales": 1}])
        assert len(sales_graph.get_node("copy").data.data) == 4


class TestSignatures:
    """Tests for memoization by incomer version vectors."""

    def test_signature_is_version_vector(self, sales_graph):
        """Test the signature is a version vector of the incomers."""
        engine = sales_graph.recompute_engine
        assert engine.signature_of("merged") == (("east", 1, 2), ("west", 1, 1))

    def test_recompute_is_idempotent(self, sales_graph):
        """Test recompute is idempotent."""
        engine = sales_graph.recompute_engine
        before = sales_graph.get_node("merged").model_copy(deep=True)

        assert engine.recompute("merged") is False
        assert engine.recompute_all() == []

        after = sales_graph.get_node("merged")
        assert after.version == before.version
        assert after.data.data == before.data.data

    def test_no_write_event_when_inputs_unchanged(self, sales_graph):
        """Test no write event when inputs unchanged."""
        count = len(sales_graph.get_events(subject_node_id="merged"))
        sales_graph.recompute_engine.recompute_all()
        assert len(sales_graph.get_events(subject_node_id="merged")) == count

    def test_non_table_nodes_are_skipped(self, sales_graph):
        """Test non-table nodes are skipped."""
        assert sales_graph.recompute_engine.recompute("east") is False
        assert sales_graph.recompute_engine.recompute("missing") is False


class TestChangeDetection:
    """Tests for row-count and strict change detection."""

    def test_same_length_change_is_ignored_by_default(self, sales_graph):
        """Test same length change is ignored by default."""
        sales_graph.deliver_dataset("west", [{"region": "W", "sales": 8}])
        assert sales_graph.get_node("merged").data.data == EAST_ROWS + WEST_ROWS
        # The new inputs are still recorded
        assert sales_graph.recompute_engine.signature_of("merged") == (("east", 1, 2), ("west", 2, 1))

    def test_strict_detection_compares_content(self):
        """Test strict detection compares content."""
        store = GraphStore(EngineSettings(strict_change_detection=True))
        _source(store, "west", WEST_ROWS)
        store.create_node(NodeKind.TABLE, node_id="merged")
        store.create_edge("west", "merged")

        store.deliver_dataset("west", [{"region": "W", "sales": 8}])
        assert store.get_node("merged").data.data == [{"region": "W", "sales": 8}]

    def test_row_count_change_is_written(self, sales_graph):
        """Test row count change is written."""
        sales_graph.deliver_dataset("west", [])
        assert sales_graph.get_node("merged").data.data == EAST_ROWS


class TestSchemaMonotonicity:
    """Tests for append-only table schemas."""

    def test_new_fields_append(self, sales_graph):
        """Test new incomer fields are appended to the schema."""
        sales_graph.deliver_dataset("west", [{"region": "W", "sales": 7, "channel": "web"}, {"region": "W"}])
        names = [c.name for c in sales_graph.get_node("merged").data.columns]
        assert names == ["region", "sales", "channel"]

    def test_columns_survive_incomer_removal(self, sales_graph):
        """Test columns survive incomer removal."""
        sales_graph.deliver_dataset("west", [{"channel": "web"}, {"channel": "store"}])
        edge = next(e for e in sales_graph.list_edges() if e.source == "west")
        sales_graph.delete_edge(edge.id)

        node = sales_graph.get_node("merged")
        assert node.data.data == EAST_ROWS
        assert [c.name for c in node.data.columns] == ["region", "sales", "channel"]

    def test_reported_types_are_kept(self, store):
        """Test reported types are kept."""
        store.create_node(
            NodeKind.TABLE,
            {"columns": [{"name": "sales", "type": "NUMBER"}]},
            node_id="t",
        )
        _source(store, "src", [{"sales": 1, "note": "x"}])
        store.create_edge("src", "t")
        assert store.get_node("t").data.columns == [
            Column(name="sales", type=ColumnType.NUMBER),
            Column(name="note", type=ColumnType.TEXT),
        ]


class TestIncomerLoss:
    """Tests for tables that lose every incomer."""

    def test_table_keeps_data_and_forgets_signature(self, sales_graph):
        """Test table keeps data and forgets signature."""
        for edge in list(sales_graph.list_edges()):
            sales_graph.delete_edge(edge.id)

        # Only west remained before the last edge went away
        assert sales_graph.get_node("merged").data.data == WEST_ROWS
        assert sales_graph.recompute_engine.signature_of("merged") is None

    def test_reconnect_recomputes(self, sales_graph):
        """Test reconnect recomputes."""
        for edge in list(sales_graph.list_edges()):
            sales_graph.delete_edge(edge.id)
        sales_graph.create_edge("east", "merged")
        assert sales_graph.get_node("merged").data.data == EAST_ROWS


class TestReentrantListeners:
    """Tests for recompute requested from inside change listeners."""

    def test_mutation_during_recompute_is_settled(self, sales_graph):
        """Test mutation during recompute is settled."""
        fired = []

        def hide_west(event):
            if event.event_type == "node_data_changed" and event.subject_node_id == "merged" and not fired:
                fired.append(event.id)
                sales_graph.set_filtered_data("west", [])

        sales_graph.subscribe(hide_west)
        sales_graph.deliver_dataset("east", EAST_ROWS + [{"region": "E", "sales": 1}])

        assert fired
        assert sales_graph.get_node("merged").data.data == EAST_ROWS + [{"region": "E", "sales": 1}]

    def test_pass_cap_stops_runaway_listeners(self, caplog):
        """Test pass cap stops runaway listeners."""
        store = GraphStore(EngineSettings(max_recompute_passes=3))
        _source(store, "src", [{"v": 0}])
        store.create_node(NodeKind.TABLE, node_id="t")
        store.create_edge("src", "t")

        counter = {"n": 0}

        def grow(event):
            if event.event_type == "node_data_changed" and event.subject_node_id == "t":
                counter["n"] += 1
                store.set_filtered_data("src", [{"v": i} for i in range(counter["n"] + 1)])

        store.subscribe(grow)
        with caplog.at_level("WARNING"):
            store.deliver_dataset("src", [{"v": 0}, {"v": 1}, {"v": 2}, {"v": 3}, {"v": 4}])

        assert "Recompute stopped after 3 passes" in caplog.text


@pytest.mark.parametrize("order", [["a", "b"], ["b", "a"]])
def test_topological_order_is_deterministic(order):
    """Test topological order is deterministic."""
    store = GraphStore()
    for node_id in order:
        store.create_node(NodeKind.TABLE, node_id=node_id)
    store.create_node(NodeKind.TABLE, node_id="c")
    store.create_edge("c", "a")
    assert store.topological_order() == ["b", "c", "a"]
