# tests/test_graph.py
"""Tests for the graph store."""

import pytest

from synnia.errors import GraphIntegrityError
from synnia.graph import Edge, ExecutionState, Graph, Node, Provenance, ProvenanceSource, new_node_id


@pytest.fixture
def graph():
    """Group g containing a and b (b contains c); loose node d."""
    g = Graph()
    g.add_node(Node(id="g", kind="group"))
    g.add_node(Node(id="a", kind="text", parent_id="g"))
    g.add_node(Node(id="b", kind="group", parent_id="g"))
    g.add_node(Node(id="c", kind="text", parent_id="b"))
    g.add_node(Node(id="d", kind="text"))
    return g


class TestNode:
    """Test node accessors."""

    def test_data_properties(self):
        node = Node(id="n", kind="recipe:concat", data={
            "asset_id": "asset-1",
            "recipe_id": "concat",
            "state": "stale",
            "title": "Concat",
        })
        assert node.asset_id == "asset-1"
        assert node.recipe_id == "concat"
        assert node.state is ExecutionState.STALE
        assert node.title == "Concat"

    def test_state_defaults_idle(self):
        assert Node(id="n", kind="text").state is ExecutionState.IDLE

    def test_provenance_round_trip(self):
        """Provenance stored as a dict reads back as a record."""
        provenance = Provenance(
            recipe_id="concat",
            sources=(ProvenanceSource("a", "h1", 1.0, "text"),),
            params_snapshot={"x": 1},
        )
        node = Node(id="n", kind="text", data={"provenance": provenance.to_dict()})
        assert node.provenance == provenance

    def test_new_node_id_strips_recipe_suffix(self):
        assert new_node_id("recipe:concat").startswith("recipe-")


class TestGraphNodes:
    """Test node insertion and lookup."""

    def test_duplicate_id(self, graph):
        with pytest.raises(ValueError):
            graph.add_node(Node(id="a", kind="text"))

    def test_missing_parent(self, graph):
        with pytest.raises(KeyError):
            graph.add_node(Node(id="x", kind="text", parent_id="nope"))

    def test_get_missing(self, graph):
        with pytest.raises(KeyError):
            graph.get_node("nope")
        assert graph.find_node("nope") is None
        assert graph.find_node(None) is None

    def test_insertion_order(self, graph):
        assert list(graph.nodes) == ["g", "a", "b", "c", "d"]


class TestContainment:
    """Test parent/child queries."""

    def test_removal_closure(self, graph):
        """Closure is breadth first from the removed node."""
        assert graph.removal_closure("g") == ["g", "a", "b", "c"]

    def test_remove_cascades(self, graph):
        """Removing a container removes its subtree and every touching edge."""
        graph.add_edge(Edge("c", "d", id="e1"))
        graph.add_edge(Edge("d", "a", id="e2"))

        nodes, edges = graph.remove_node("g")

        assert {n.id for n in nodes} == {"g", "a", "b", "c"}
        assert {e.id for e in edges} == {"e1", "e2"}
        assert list(graph.nodes) == ["d"]
        assert graph.edges == {}

    def test_ancestors(self, graph):
        assert [n.id for n in graph.ancestors("c")] == ["b", "g"]

    def test_set_parent(self, graph):
        graph.set_parent("d", "b")
        assert graph.nodes["d"].parent_id == "b"

    def test_set_parent_rejects_own_subtree(self, graph):
        with pytest.raises(GraphIntegrityError):
            graph.set_parent("g", "c")
        with pytest.raises(GraphIntegrityError):
            graph.set_parent("b", "b")

    def test_topological_order(self, graph):
        """Parents precede children."""
        order = graph.topological_order()
        for node in graph.nodes.values():
            if node.parent_id:
                assert order.index(node.parent_id) < order.index(node.id)

    def test_containment_cycle_detected(self):
        g = Graph()
        g.nodes["x"] = Node(id="x", kind="group", parent_id="y")
        g.nodes["y"] = Node(id="y", kind="group", parent_id="x")
        with pytest.raises(GraphIntegrityError):
            g.topological_order()


class TestEdges:
    """Test edge queries."""

    def test_add_edge_requires_nodes(self, graph):
        with pytest.raises(KeyError):
            graph.add_edge(Edge("a", "nope"))

    def test_edge_ids_generated(self):
        assert Edge("a", "b").id.startswith("edge-")

    def test_incoming_outgoing_by_handle(self, graph):
        graph.add_edge(Edge("a", "d", "origin", "text", id="e1"))
        graph.add_edge(Edge("c", "d", "origin", "other", id="e2"))

        assert [e.id for e in graph.incoming("d")] == ["e1", "e2"]
        assert [e.id for e in graph.incoming("d", "text")] == ["e1"]
        assert [e.id for e in graph.outgoing("a", "origin")] == ["e1"]

    def test_edge_order(self, graph):
        """Sources precede targets."""
        graph.add_edge(Edge("d", "a"))
        graph.add_edge(Edge("a", "c"))
        order = graph.edge_order()
        assert order.index("d") < order.index("a") < order.index("c")

    def test_edge_cycle_detected(self, graph):
        graph.add_edge(Edge("a", "d"))
        graph.add_edge(Edge("d", "a"))
        with pytest.raises(GraphIntegrityError):
            graph.edge_order()

    def test_nodes_with_asset(self, graph):
        graph.nodes["a"].data["asset_id"] = "asset-1"
        graph.nodes["d"].data["asset_id"] = "asset-1"
        assert [n.id for n in graph.nodes_with_asset("asset-1")] == ["a", "d"]


class TestGraphSerialization:
    """Test to_dict/from_dict."""

    def test_round_trip(self, graph):
        graph.add_edge(Edge("a", "d", "origin", "text", id="e1", kind="default"))
        restored = Graph.from_dict(graph.to_dict())

        assert list(restored.nodes) == list(graph.nodes)
        assert restored.nodes["c"].parent_id == "b"
        assert restored.edges["e1"].target_handle == "text"

    def test_dangling_edges_dropped(self):
        data = {
            "nodes": [{"id": "a", "kind": "text"}],
            "edges": [{"id": "e1", "source": "a", "target": "gone"}],
        }
        assert Graph.from_dict(data).edges == {}
