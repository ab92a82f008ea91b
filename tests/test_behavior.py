# tests/test_behavior.py
"""Tests for behaviors, patches and the built-in node kinds."""

import pytest

from synnia.behavior import BehaviorRegistry, NodeBehavior, NodePatch, apply_patches, merge_patches
from synnia.graph import Graph, Node
from synnia.nodes import NodeDefinition, NodeRegistry, default_registries
from synnia.nodes.base import CreateResult
from synnia.project import Project


class TestNodePatch:
    """Test declarative patches."""

    def test_patch_is_immutable(self):
        patch = NodePatch("n", {"data": {"a": 1}})
        with pytest.raises(TypeError):
            patch.patch["x"] = 1
        with pytest.raises(TypeError):
            patch.patch["data"]["a"] = 2

    def test_merge_folds_data(self):
        """Data keys merge across patches, other keys replace."""
        merged = merge_patches([
            NodePatch("n", {"data": {"a": 1}, "height": 10}),
            NodePatch("n", {"data": {"b": 2}, "height": 20}),
        ])
        assert merged == {"n": {"data": {"a": 1, "b": 2}, "height": 20}}

    def test_apply(self):
        graph = Graph()
        graph.add_node(Node(id="n", kind="text", data={"keep": True}))

        touched = apply_patches(graph, [
            NodePatch("n", {"data": {"state": "stale"}, "position": {"x": 5, "y": 6}}),
            NodePatch("missing", {"data": {"x": 1}}),
        ])

        node = graph.nodes["n"]
        assert touched == ["n"]
        assert node.data == {"keep": True, "state": "stale"}
        assert node.position == {"x": 5, "y": 6}


class TestBehaviorRegistry:
    """Test hook lookup."""

    def test_unknown_kind_gets_empty_behavior(self):
        behavior = BehaviorRegistry().get("mystery")
        assert behavior.on_create is None
        assert behavior.can_connect is None

    def test_virtual_kind_falls_back_to_base(self):
        registry = BehaviorRegistry()
        behavior = NodeBehavior(on_create=lambda node, ctx: [])
        registry.register("recipe", behavior)
        assert registry.get("recipe:concat") is behavior

    def test_extend(self):
        base = NodeBehavior(on_create=lambda node, ctx: [])
        extended = base.extend(on_delete=lambda node, ctx: [])
        assert extended.on_create is base.on_create
        assert extended.on_delete is not None
        assert base.on_delete is None

    def test_registries_are_isolated(self):
        """Each call builds fresh registries."""
        nodes_a, behaviors_a = default_registries()
        nodes_b, _ = default_registries()
        nodes_a.register(NodeDefinition(kind="custom", title="Custom"))
        assert nodes_b.get("custom") is None
        assert "text" in behaviors_a


class TestNodeRegistry:
    """Test definitions and aliases."""

    def test_alias_lookup(self):
        nodes, _ = default_registries()
        assert nodes.get("shortcut").kind == "reference"
        assert nodes.resolve_kind("shortcut") == "reference"
        assert nodes.resolve_kind("unknown") == "unknown"

    def test_collections(self):
        nodes, _ = default_registries()
        for kind in ("gallery", "table", "selector", "queue"):
            assert nodes.is_collection(kind)
        assert not nodes.is_collection("text")

    def test_register_custom_kind(self):
        """Custom kinds plug into projects without touching globals."""
        nodes, behaviors = default_registries()
        created = []
        nodes.register(NodeDefinition(
            kind="note",
            title="Note",
            create=lambda data, schema: CreateResult(data={"body": data}),
        ))
        behaviors.register("note", NodeBehavior(
            on_create=lambda node, ctx: created.append(node.id) or [NodePatch(node.id, {"data": {"seen": True}})],
        ))

        project = Project(definitions=nodes, behaviors=behaviors)
        node = project.add_node("note", value="hi")

        assert created == [node.id]
        assert node.data["body"] == "hi"
        assert node.data["seen"] is True
        assert node.asset_id is None


class TestBuiltinKinds:
    """Test built-in create factories and hooks."""

    def test_text_owns_asset(self):
        project = Project()
        node = project.add_node("text", value="Hello")
        assert project.asset_of(node.id).value == "Hello"
        assert node.width == 250

    def test_gallery_normalizes_items(self):
        project = Project()
        node = project.add_node("gallery", value=["a.png", {"url": "b.png", "starred": True}])
        images = project.asset_of(node.id).value
        assert images[0] == {"id": "img-0", "src": "a.png", "starred": False, "caption": ""}
        assert images[1]["src"] == "b.png"
        assert images[1]["starred"] is True

    def test_selector_assigns_ids(self):
        project = Project()
        node = project.add_node("selector", value=[{"name": "A"}, "B"])
        options = project.asset_of(node.id).value
        assert [o["id"] for o in options] == ["opt-0", "opt-1"]
        assert options[1]["name"] == "B"

    def test_table_columns_from_schema(self):
        project = Project()
        node = project.add_node("table", value=[{"a": 1}], asset_config={"schema": [{"key": "a", "type": "number"}]})
        config = project.asset_of(node.id).config
        assert config["columns"] == [{"key": "a", "label": "a", "type": "number"}]

    def test_collapse_remembers_height(self):
        project = Project()
        node = project.add_node("text", value="x")
        project.set_collapsed(node.id, True)
        assert node.height == 50
        assert node.data["expanded_height"] == 200

        project.set_collapsed(node.id, False)
        assert node.height == 200
        assert node.data["collapsed"] is False

    def test_rack_stacks_children(self):
        """Racks lock children and lay them out top to bottom."""
        project = Project()
        rack = project.add_node("rack", position={"x": 100, "y": 100})
        first = project.add_node("text", value="1", parent_id=rack.id, position={"x": 0, "y": 0})
        second = project.add_node("text", value="2", parent_id=rack.id, position={"x": 0, "y": 500})

        assert first.data["locked"] is True
        assert first.position == {"x": 15, "y": 50}
        assert second.position["y"] > first.position["y"]
        assert rack.height is not None

    def test_rack_release_restores_child(self):
        project = Project()
        rack = project.add_node("rack")
        child = project.add_node("text", value="1", parent_id=rack.id, position={"x": 40, "y": 60})

        project.set_parent(child.id, None)
        assert child.data["locked"] is False
        assert child.position == {"x": 40, "y": 60}
