# tests/test_engine.py
"""Tests for the recipe execution engine."""

import asyncio

import pytest

from synnia.config import Settings
from synnia.engine import (
    ExecutionEngine,
    OUTPUT_EDGE,
    PRODUCT_HANDLE,
    build_nodes_from_config,
    validate_inputs,
)
from synnia.graph import ExecutionState
from synnia.hashing import stable_hash
from synnia.nodes import default_registries
from synnia.project import Project
from synnia.recipes import FieldDefinition, OutputConfig, RecipeDefinition, RecipeRegistry
from synnia.recipes.executors import ExecutionResult, NodeSpec

UPPER_YAML = """
version: 1
id: text.upper
name: Uppercase
category: Text
inputSchema:
  - key: text
    label: Text
    required: true
executor:
  type: expression
  expression: text.upper()
  output_key: content
output:
  node: text
  title: Shouted
"""


def custom_recipe(recipe_id, execute, fields=None, output=None):
    return RecipeDefinition(
        id=recipe_id,
        name=recipe_id.title(),
        input_schema=fields or [],
        executor_config={"type": "custom"},
        execute=execute,
        output=output,
    )


@pytest.fixture
def project():
    return Project(Settings(success_display_delay=0))


@pytest.fixture
def recipes():
    registry = RecipeRegistry()
    registry.register_yaml(UPPER_YAML)
    return registry


@pytest.fixture
def engine(project, recipes):
    return ExecutionEngine(project, recipes)


def add_recipe_node(project, recipes, recipe_id, position=None):
    recipe = recipes.get_resolved(recipe_id)
    return project.add_node(
        f"recipe:{recipe_id}",
        value=recipe.defaults(),
        position=position or {"x": 300, "y": 0},
        asset_config={"schema": recipe.schema_dicts()},
    )


class TestValidateInputs:
    """Test required-field and object-shape checks."""

    def recipe(self):
        return custom_recipe("shape", None, fields=[
            FieldDefinition(key="topic", label="Topic", required=True),
            FieldDefinition(key="person", type="object", rules={"requiredKeys": ["name", "age"]}),
        ])

    def test_missing_required(self):
        assert validate_inputs(self.recipe(), {}) == "Missing required input: Topic"
        assert validate_inputs(self.recipe(), {"topic": ""}) == "Missing required input: Topic"
        assert validate_inputs(self.recipe(), {"topic": []}) == "Missing required input: Topic"

    def test_object_shape(self):
        recipe = self.recipe()
        assert validate_inputs(recipe, {"topic": "x", "person": "Ada"}) == \
            "Field 'person' expects an object, got str"
        assert validate_inputs(recipe, {"topic": "x", "person": {"name": "Ada"}}) == \
            "Field 'person' missing keys: age"
        assert validate_inputs(recipe, {"topic": "x", "person": {"name": "Ada", "age": 36}}) is None

    def test_optional_object_may_be_absent(self):
        assert validate_inputs(self.recipe(), {"topic": "x"}) is None


class TestBuildNodesFromConfig:
    """Test product node specs built from output configs."""

    def setup_method(self):
        self.definitions, _ = default_registries()

    def test_collection_gets_one_node(self):
        specs = build_nodes_from_config(
            [{"src": "a"}, {"src": "b"}],
            OutputConfig(node="gallery", title="Images ({{count}})"),
            self.definitions,
        )
        assert len(specs) == 1
        assert specs[0].data["title"] == "Images (2)"
        assert specs[0].data["content"] == [{"src": "a"}, {"src": "b"}]
        assert specs[0].data["collapsed"] is False

    def test_collection_default_title(self):
        specs = build_nodes_from_config([1, 2, 3], OutputConfig(node="table"), self.definitions)
        assert specs[0].data["title"] == "Table (3)"

    def test_one_node_per_item_chained(self):
        specs = build_nodes_from_config(
            [{"name": "Ada"}, {"name": "Grace"}],
            OutputConfig(node="form", title="{{index}}: {{name}}"),
            self.definitions,
        )
        assert [s.data["title"] for s in specs] == ["1: Ada", "2: Grace"]
        assert specs[0].position == "below" and specs[0].docked_to is None
        assert specs[1].position is None and specs[1].docked_to == "$prev"
        assert all(s.data["collapsed"] is True for s in specs)

    def test_text_unwraps_content(self):
        specs = build_nodes_from_config({"content": "HI"}, OutputConfig(node="text"), self.definitions)
        assert specs[0].data["content"] == "HI"
        assert specs[0].data["title"] == "#1"

    def test_empty_result(self):
        assert build_nodes_from_config(None, OutputConfig(), self.definitions) == []
        assert build_nodes_from_config([], OutputConfig(), self.definitions) == []


class TestRun:
    """Test running recipe nodes."""

    @pytest.mark.asyncio
    async def test_hello_world_staleness(self, project, recipes, engine):
        """Editing the source makes recipe and product stale; re-running merges."""
        source = project.add_node("text", value="Hello World")
        recipe_node = add_recipe_node(project, recipes, "text.upper")
        assert project.connect(source.id, recipe_node.id, "origin", "text")

        result = await engine.run(recipe_node.id)

        assert result.success
        assert result.data == {"content": "HELLO WORLD"}
        product_id, = result.created_node_ids
        product = project.get_node(product_id)
        assert project.asset_of(product_id).value == "HELLO WORLD"
        assert product.title == "Shouted"
        assert product.provenance.recipe_id == "text.upper"
        assert [(s.node_id, s.slot) for s in product.provenance.sources] == [
            (source.id, "text"), (recipe_node.id, "recipe"),
        ]
        h1 = stable_hash("Hello World")
        assert product.provenance.sources[0].node_hash == h1
        assert recipe_node.provenance.sources[0].node_hash == h1
        assert recipe_node.state is ExecutionState.IDLE
        assert recipe_node.data["execution_result"] == {"content": "HELLO WORLD"}
        assert recipe_node.data["schema_snapshot"][0]["key"] == "text"

        output_edges = project.graph.outgoing(recipe_node.id, PRODUCT_HANDLE)
        assert [(e.target, e.kind) for e in output_edges] == [(product_id, OUTPUT_EDGE)]

        project.set_value(source.id, "Hello UNIVERSE")
        assert recipe_node.state is ExecutionState.STALE
        assert product.state is ExecutionState.STALE
        assert product.provenance.sources[0].node_hash == h1

        events = []
        engine.set_state_callback(lambda node_id, state, error: events.append((node_id, state)))
        result = await engine.run(recipe_node.id)

        assert result.success
        assert result.merged_node_id == product_id
        assert result.created_node_ids == []
        assert project.asset_of(product_id).value == "HELLO UNIVERSE"
        assert recipe_node.provenance.sources[0].node_hash == stable_hash("Hello UNIVERSE")
        assert (recipe_node.id, ExecutionState.SUCCESS) in events
        assert product.state is ExecutionState.IDLE
        assert recipe_node.state is ExecutionState.IDLE
        assert not project.is_stale(product_id)
        assert len(project.graph.nodes) == 3

    @pytest.mark.asyncio
    async def test_missing_input_fails_before_executor(self, project):
        calls = []

        async def execute(ctx):
            calls.append(ctx)
            return ExecutionResult(success=True, data="x")

        registry = RecipeRegistry()
        registry.register_custom(custom_recipe(
            "needs.topic", execute, fields=[FieldDefinition(key="topic", label="Topic", required=True)],
        ))
        engine = ExecutionEngine(project, registry)
        node = project.add_node("recipe:needs.topic")

        result = await engine.run(node.id)

        assert not result.success
        assert result.error == "Missing required input: Topic"
        assert calls == []
        assert node.state is ExecutionState.ERROR
        assert node.data["error_message"] == "Missing required input: Topic"

    @pytest.mark.asyncio
    async def test_recipe_not_found(self, project, engine):
        node = project.add_node("recipe:nope")
        result = await engine.run(node.id)
        assert result.error == "Recipe not found: nope"
        assert node.state is ExecutionState.ERROR

    @pytest.mark.asyncio
    async def test_executor_exception_becomes_error(self, project):
        async def execute(ctx):
            raise RuntimeError("boom")

        registry = RecipeRegistry()
        registry.register_custom(custom_recipe("explodes", execute))
        node = project.add_node("recipe:explodes")

        result = await ExecutionEngine(project, registry).run(node.id)

        assert result.error == "boom"
        assert node.state is ExecutionState.ERROR

    @pytest.mark.asyncio
    async def test_inputs_layering(self, project):
        """Connected values beat node values, which beat defaults."""
        seen = {}

        async def execute(ctx):
            seen.update(ctx.inputs)
            return ExecutionResult(success=True, data=None)

        registry = RecipeRegistry()
        registry.register_custom(custom_recipe("layers", execute, fields=[
            FieldDefinition(key="a", default="default-a"),
            FieldDefinition(key="b", default="default-b"),
            FieldDefinition(key="c", default="default-c"),
        ]))
        engine = ExecutionEngine(project, registry)
        recipe = registry.get("layers")
        node = project.add_node(
            "recipe:layers",
            value={"b": "node-b", "c": "node-c"},
            asset_config={"schema": recipe.schema_dicts()},
        )
        source = project.add_node("text", value="wired-c")
        assert project.connect(source.id, node.id, "origin", "c")

        result = await engine.run(node.id)

        assert result.success
        assert seen == {"a": "default-a", "b": "node-b", "c": "wired-c"}
        assert result.created_node_ids == []

    @pytest.mark.asyncio
    async def test_create_nodes_chain(self, project):
        async def execute(ctx):
            return ExecutionResult(success=True, data=["a", "b", "c"], create_nodes=[
                NodeSpec(kind="text", data={"title": t, "content": t}, position="below" if i == 0 else None,
                         docked_to="$prev" if i else None)
                for i, t in enumerate(["a", "b", "c"])
            ])

        registry = RecipeRegistry()
        registry.register_custom(custom_recipe("chain", execute))
        node = project.add_node("recipe:chain", position={"x": 0, "y": 0})

        result = await ExecutionEngine(project, registry).run(node.id)

        first, second, third = (project.get_node(n) for n in result.created_node_ids)
        assert first.position == {"x": 0, "y": node.height + 100}
        assert "docked_to" not in first.data
        assert second.data["docked_to"] == first.id
        assert third.data["docked_to"] == second.id
        assert second.position["y"] == first.position["y"] + first.height
        assert [e.target for e in project.graph.outgoing(node.id, PRODUCT_HANDLE)] == [first.id]

    @pytest.mark.asyncio
    async def test_gallery_merge(self, project):
        """A second run prepends new images to the connected gallery."""
        batches = [["one.png"], ["two.png", "three.png"]]

        async def execute(ctx):
            return ExecutionResult(success=True, data=[{"src": s} for s in batches.pop(0)])

        registry = RecipeRegistry()
        registry.register_custom(custom_recipe("paint", execute, output=OutputConfig(node="gallery")))
        engine = ExecutionEngine(project, registry)
        node = project.add_node("recipe:paint")

        first = await engine.run(node.id)
        gallery_id, = first.created_node_ids
        second = await engine.run(node.id)

        assert second.merged_node_id == gallery_id
        images = project.asset_of(gallery_id).value
        assert [i["src"] for i in images] == ["two.png", "three.png", "one.png"]

    @pytest.mark.asyncio
    async def test_state_callback_and_reset(self, project, recipes):
        """Success is shown for the display delay, then the node goes idle."""
        project.settings.success_display_delay = 0.01
        engine = ExecutionEngine(project, recipes)
        events = []
        engine.set_state_callback(lambda node_id, state, error: events.append(state))

        source = project.add_node("text", value="hi")
        node = add_recipe_node(project, recipes, "text.upper")
        project.connect(source.id, node.id, "origin", "text")

        await engine.run(node.id)
        assert node.state is ExecutionState.SUCCESS

        await asyncio.sleep(0.05)
        assert node.state is ExecutionState.IDLE
        assert events == [ExecutionState.RUNNING, ExecutionState.SUCCESS, ExecutionState.IDLE]

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self, project, engine):
        def callback(node_id, state, error):
            raise ValueError("listener broke")

        engine.set_state_callback(callback)
        node = project.add_node("recipe:missing")
        result = await engine.run(node.id)
        assert result.error == "Recipe not found: missing"

    @pytest.mark.asyncio
    async def test_node_removed_during_run(self, project):
        async def execute(ctx):
            project.remove_node(ctx.node_id)
            return ExecutionResult(success=True, data="late")

        registry = RecipeRegistry()
        registry.register_custom(custom_recipe("vanish", execute, output=OutputConfig(node="text")))
        node = project.add_node("recipe:vanish")

        result = await ExecutionEngine(project, registry).run(node.id)

        assert not result.success
        assert result.error == "Node was removed during execution"
        assert len(project.graph.nodes) == 0

    @pytest.mark.asyncio
    async def test_run_is_one_undo_step(self, project, recipes, engine):
        source = project.add_node("text", value="hi")
        node = add_recipe_node(project, recipes, "text.upper")
        project.connect(source.id, node.id, "origin", "text")

        result = await engine.run(node.id)
        assert project.undo() == "Run Uppercase"
        assert result.created_node_ids[0] not in project.graph


class TestRunRecipeOn:

    @pytest.mark.asyncio
    async def test_wires_source_into_first_field(self, project, recipes, engine):
        source = project.add_node("text", value="quiet", position={"x": 10, "y": 20})

        result = await engine.run_recipe_on(source.id, "text.upper")

        assert result.success
        recipe_node = project.get_node(result.node_id)
        assert recipe_node.kind == "recipe:text.upper"
        assert recipe_node.position == {"x": 10 + 250 + 100, "y": 20}
        edge, = project.graph.incoming(recipe_node.id)
        assert (edge.source, edge.target_handle) == (source.id, "text")
        assert project.asset_of(result.created_node_ids[0]).value == "QUIET"

    @pytest.mark.asyncio
    async def test_unknown_recipe(self, project, engine):
        source = project.add_node("text", value="x")
        result = await engine.run_recipe_on(source.id, "nope")
        assert result.error == "Recipe not found: nope"
        assert len(project.graph.nodes) == 1

    @pytest.mark.asyncio
    async def test_product_links_back_to_source(self, project, engine):
        """Running on A yields B hashed from A, with a direct A -> B edge."""
        node_a = project.add_node("text", value="Hello World")

        result = await engine.run_recipe_on(node_a.id, "text.upper")

        node_b = project.get_node(result.created_node_ids[0])
        assert node_b.provenance.sources[0].node_id == node_a.id
        assert node_b.provenance.sources[0].node_hash == stable_hash("Hello World")
        links = [e for e in project.graph.outgoing(node_a.id) if e.target == node_b.id]
        assert [(e.source_handle, e.target_handle, e.kind) for e in links] == [("origin", "origin", OUTPUT_EDGE)]
        assert engine.product_node(result.node_id).id == node_b.id

        project.set_value(node_a.id, "Hello UNIVERSE")
        assert node_b.state is ExecutionState.STALE

        rerun = await engine.run(result.node_id)

        assert rerun.merged_node_id == node_b.id
        assert project.asset_of(node_b.id).value == "HELLO UNIVERSE"
        assert len([e for e in project.graph.outgoing(node_a.id) if e.target == node_b.id]) == 1
        assert not project.is_stale(node_b.id)
