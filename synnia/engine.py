# synnia/engine.py
"""
Recipe execution engine.

Runs the recipe bound to a node:
1. Mark the node running
2. Resolve inputs (defaults < node values < connected values)
3. Validate required fields and object shapes
4. Invoke the executor
5. Store the result and stamp provenance
6. Merge into the connected product node, or create new product nodes

The executor call is the only suspension point; everything else mutates
the project synchronously.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import Settings, SettingsCredentialProvider
from .graph import ExecutionState, Node
from .nodes import NodeRegistry
from .ports import collect_input_values
from .project import Project
from .provenance import stamp
from .recipes import OutputConfig, RecipeDefinition, RecipeRegistry
from .recipes.executors import ExecutionContext, ExecutionResult, NodeSpec, extract_text
from .services import Services

logger = logging.getLogger(__name__)

PRODUCT_HANDLE = "product"
ORIGIN_HANDLE = "origin"
OUTPUT_EDGE = "output"

DEFAULT_NODE_WIDTH = 250
DEFAULT_NODE_HEIGHT = 200
DOCKED_NODE_HEIGHT = 120
NODE_GAP = 100

FIELD_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


@dataclass
class RunResult:
    """Outcome of running a recipe node."""
    success: bool
    node_id: str
    data: Any = None
    error: Optional[str] = None
    created_node_ids: List[str] = field(default_factory=list)
    merged_node_id: Optional[str] = None


# (node_id, state, error message)
StateCallback = Callable[[str, ExecutionState, Optional[str]], None]


def validate_inputs(recipe: RecipeDefinition, inputs: Dict[str, Any]) -> Optional[str]:
    """First validation error for the resolved inputs, or None."""
    for f in recipe.input_schema:
        value = inputs.get(f.key)
        if f.required and (value is None or value == "" or value == []):
            return f"Missing required input: {f.display_name}"

        required_keys = f.required_keys
        if f.type == "object" and required_keys and value is not None:
            if not isinstance(value, dict):
                return f"Field '{f.key}' expects an object, got {type(value).__name__}"
            missing = [k for k in required_keys if value.get(k) in (None, "")]
            if missing:
                return f"Field '{f.key}' missing keys: {', '.join(missing)}"
    return None


def _item_title(template: str, item: Any, index: int) -> str:
    title = template.replace("{{index}}", str(index + 1))
    if isinstance(item, dict):
        title = FIELD_PLACEHOLDER.sub(lambda m: extract_text(item.get(m.group(1))), title)
    return title


def build_nodes_from_config(
    data: Any,
    output: OutputConfig,
    definitions: NodeRegistry,
) -> List[NodeSpec]:
    """
    Product node specs for a result, following the recipe's output config.

    Collection kinds receive every item in one node; other kinds get one
    node per item, the first below the recipe and the rest docked in a chain.
    """
    if data is None or data == [] or data == "":
        return []
    items = data if isinstance(data, list) else [data]
    config = dict(output.config) or None
    definition = definitions.get(output.node)

    if definition is not None and definition.is_collection:
        count = len(items)
        title = output.title.replace("{{count}}", str(count)) if output.title else f"{definition.title} ({count})"
        return [NodeSpec(
            kind=output.node,
            data={
                "title": title,
                "content": items,
                "collapsed": output.collapsed if output.collapsed is not None else False,
            },
            position="below",
            asset_config=config,
        )]

    text_kind = definitions.resolve_kind(output.node) == "text"
    specs = []
    for i, item in enumerate(items):
        specs.append(NodeSpec(
            kind=output.node,
            data={
                "title": _item_title(output.title, item, i) if output.title else f"#{i + 1}",
                "content": extract_text(item) if text_kind and not isinstance(item, str) else item,
                "collapsed": output.collapsed if output.collapsed is not None else True,
            },
            position="below" if i == 0 else None,
            docked_to="$prev" if i > 0 else None,
            asset_config=config,
        ))
    return specs


class ExecutionEngine:
    """
    Runs recipe nodes of one project.

    Concurrent runs of the same node are not prevented; the last one to
    finish wins.
    """

    def __init__(
        self,
        project: Project,
        recipes: RecipeRegistry,
        services: Optional[Services] = None,
        settings: Optional[Settings] = None,
    ):
        self.project = project
        self.recipes = recipes
        self.settings = settings or project.settings
        self.services = services or Services(credentials=SettingsCredentialProvider(self.settings))
        self._state_callback: Optional[StateCallback] = None
        self._resets: Dict[str, asyncio.TimerHandle] = {}
        # recipe node id -> node the recipe was run on
        self._lineage: Dict[str, str] = {}

    def set_state_callback(self, callback: StateCallback):
        """Set callback for node state changes."""
        self._state_callback = callback

    def _report_state(self, node_id: str, state: ExecutionState, error: Optional[str] = None):
        if self._state_callback:
            try:
                self._state_callback(node_id, state, error)
            except Exception as e:
                logger.warning(f"State callback error: {e}")

    def _set_state(self, node_id: str, state: ExecutionState, **data: Any) -> None:
        self.project.update_node_data(node_id, {"state": state.value, **data})
        self._report_state(node_id, state, data.get("error_message"))

    def _cancel_reset(self, node_id: str) -> None:
        handle = self._resets.pop(node_id, None)
        if handle is not None:
            handle.cancel()

    def _reset_to_idle(self, node_id: str) -> None:
        self._resets.pop(node_id, None)
        node = self.project.graph.find_node(node_id)
        if node is not None and node.state is ExecutionState.SUCCESS:
            self._set_state(node_id, ExecutionState.IDLE)

    def _schedule_reset(self, node_id: str) -> None:
        delay = self.settings.success_display_delay
        if delay <= 0:
            self._reset_to_idle(node_id)
            return
        loop = asyncio.get_running_loop()
        self._resets[node_id] = loop.call_later(delay, self._reset_to_idle, node_id)

    # -- inputs ----------------------------------------------------------

    def recipe_id_for(self, node: Node) -> Optional[str]:
        if node.recipe_id:
            return node.recipe_id
        if node.kind.startswith("recipe:"):
            return node.kind.split(":", 1)[1]
        return None

    def resolve_inputs(self, node: Node, recipe: RecipeDefinition) -> Tuple[Dict[str, Any], List[Tuple[str, Optional[str]]]]:
        """
        Effective inputs and the upstream (node_id, handle) pairs that fed them.

        Later layers win: schema defaults, then values stored on the node,
        then values arriving over connections.
        """
        project = self.project
        inputs = recipe.defaults()
        asset = project.asset_of(node.id)
        if asset is not None and isinstance(asset.value, dict):
            inputs.update({k: v for k, v in asset.value.items() if v is not None})
        inputs.update(collect_input_values(project.graph, project.assets, project.behaviors, node.id))

        sources = [
            (edge.source, edge.target_handle)
            for edge in project.graph.incoming(node.id)
            if edge.kind == "default"
        ]
        return inputs, sources

    # -- running -----------------------------------------------------------

    def _fail(self, node_id: str, error: str) -> RunResult:
        logger.error(f"Recipe node {node_id} failed: {error}")
        self._set_state(node_id, ExecutionState.ERROR, error_message=error)
        return RunResult(success=False, node_id=node_id, error=error)

    async def run(
        self,
        node_id: str,
        recipe_id: Optional[str] = None,
        chat_context: Optional[List[Dict[str, str]]] = None,
    ) -> RunResult:
        """Run the recipe bound to ``node_id`` (or ``recipe_id``)."""
        project = self.project
        node = project.get_node(node_id)
        recipe_id = recipe_id or self.recipe_id_for(node)
        recipe = self.recipes.get_resolved(recipe_id) if recipe_id else None
        if recipe is None:
            return self._fail(node_id, f"Recipe not found: {recipe_id}")

        self._cancel_reset(node_id)
        self._set_state(node_id, ExecutionState.RUNNING, error_message=None)

        inputs, sources = self.resolve_inputs(node, recipe)
        error = validate_inputs(recipe, inputs)
        if error:
            return self._fail(node_id, error)

        algorithm = self.settings.hash_algorithm
        provenance = stamp(project.graph, project.assets, recipe.id, sources, inputs, algorithm)

        asset = project.asset_of(node_id)
        config = (asset.config if asset is not None else None) or {}
        ctx = ExecutionContext(
            inputs=inputs,
            node_id=node_id,
            node=node,
            manifest=recipe.manifest,
            chat_context=chat_context or config.get("chat_context"),
            model_config=config.get("model_config") or inputs.get("modelConfig"),
            services=self.services,
        )

        logger.info(f"Running recipe {recipe.id} on {node_id}")
        try:
            result = await recipe.execute(ctx)
        except Exception as e:
            logger.error(f"Executor for {recipe.id} raised: {e}")
            result = ExecutionResult.failure(str(e) or type(e).__name__)

        if project.graph.find_node(node_id) is None:
            logger.warning(f"Node {node_id} was removed while {recipe.id} was running")
            return RunResult(success=False, node_id=node_id, error="Node was removed during execution")
        if not result.success:
            return self._fail(node_id, result.error or "Execution failed")

        project.update_node_data(node_id, {
            "execution_result": result.data,
            "provenance": provenance.to_dict(),
            "schema_snapshot": recipe.schema_dicts(),
            "error_message": None,
        })

        specs = result.create_nodes
        if not specs and recipe.output is not None:
            specs = build_nodes_from_config(result.data, recipe.output, project.definitions)

        created: List[str] = []
        merged: Optional[str] = None
        if specs:
            project.history.pause()
            try:
                created, merged = self._apply_products(node_id, recipe, specs, sources, inputs)
            finally:
                project.history.resume(f"Run {recipe.name}")

        self._set_state(node_id, ExecutionState.SUCCESS)
        # inputs edited during the run make the fresh result stale right away
        project.propagator.recheck({s for s, _ in sources} | {node_id})
        if project.get_node(node_id).state is ExecutionState.SUCCESS:
            self._schedule_reset(node_id)

        logger.info(f"Recipe {recipe.id} on {node_id} succeeded ({len(created)} created)")
        return RunResult(
            success=True,
            node_id=node_id,
            data=result.data,
            created_node_ids=created,
            merged_node_id=merged,
        )

    def product_node(self, node_id: str) -> Optional[Node]:
        """Node already wired to the recipe's product handle, if any."""
        for edge in self.project.graph.outgoing(node_id, PRODUCT_HANDLE):
            if edge.kind == OUTPUT_EDGE:
                target = self.project.graph.find_node(edge.target)
                if target is not None:
                    return target
        return None

    def _product_provenance(self, node_id, recipe, sources, inputs) -> Dict[str, Any]:
        product_sources = [*sources, (node_id, "recipe")]
        return stamp(
            self.project.graph, self.project.assets, recipe.id,
            product_sources, inputs, self.settings.hash_algorithm,
        ).to_dict()

    def _merge_into(self, product: Node, spec: NodeSpec) -> None:
        project = self.project
        asset = project.asset_of(product.id)
        content = spec.data.get("content")
        definition = project.definitions.get(product.kind)
        if asset is None:
            logger.warning(f"Product node {product.id} has no asset; replacing data instead")
            project.update_node_data(product.id, {"content": content})
            return

        if definition is not None and definition.is_collection and definition.get_items and definition.merge_items:
            incoming = content if isinstance(content, list) else [content]
            if definition.create is not None:
                seeded = definition.create(incoming, asset.schema)
                if seeded.asset is not None:
                    incoming = seeded.asset.value
            project.assets.set_value(asset.id, definition.merge_items(definition.get_items(asset), incoming))
        else:
            project.assets.set_value(asset.id, content)
        if spec.asset_config:
            project.assets.update_config(asset.id, spec.asset_config)

    def _position_for(self, origin: Node, spec: NodeSpec, prev: Optional[Node]) -> Tuple[Dict[str, float], Optional[str]]:
        """Position for a new product node, and the node it docks to."""
        x = origin.position.get("x", 0)
        y = origin.position.get("y", 0)
        if isinstance(spec.position, dict):
            return {"x": spec.position.get("x", x), "y": spec.position.get("y", y)}, None

        if spec.docked_to:
            anchor = prev if spec.docked_to == "$prev" else self.project.graph.find_node(spec.docked_to)
            if anchor is not None:
                return {
                    "x": anchor.position.get("x", 0),
                    "y": anchor.position.get("y", 0) + (anchor.height or DOCKED_NODE_HEIGHT),
                }, anchor.id

        if spec.position == "right":
            return {"x": x + (origin.width or DEFAULT_NODE_WIDTH) + NODE_GAP, "y": y}, None
        return {"x": x, "y": y + (origin.height or DEFAULT_NODE_HEIGHT) + NODE_GAP}, None

    def _wire_lineage(self, node_id: str, product_id: str) -> None:
        """Link the node a recipe was run on directly to the recipe's product."""
        source_id = self._lineage.get(node_id)
        graph = self.project.graph
        if source_id is None or graph.find_node(source_id) is None:
            return
        for edge in graph.outgoing(source_id, ORIGIN_HANDLE):
            if edge.target == product_id and edge.kind == OUTPUT_EDGE:
                return
        wired = self.project.connect(source_id, product_id, ORIGIN_HANDLE, ORIGIN_HANDLE, kind=OUTPUT_EDGE)
        if not wired:
            logger.warning(f"Could not link {source_id} -> {product_id}: {wired.message}")

    def _apply_products(
        self,
        node_id: str,
        recipe: RecipeDefinition,
        specs: List[NodeSpec],
        sources: List[Tuple[str, Optional[str]]],
        inputs: Dict[str, Any],
    ) -> Tuple[List[str], Optional[str]]:
        project = self.project
        product = self.product_node(node_id)
        if product is not None and len(specs) == 1:
            self._merge_into(product, specs[0])
            project.update_node_data(product.id, {
                "provenance": self._product_provenance(node_id, recipe, sources, inputs),
                "state": ExecutionState.IDLE.value,
            })
            self._wire_lineage(node_id, product.id)
            logger.debug(f"Merged result of {node_id} into {product.id}")
            return [], product.id

        origin = project.get_node(node_id)
        created: List[str] = []
        prev: Optional[Node] = None
        for i, spec in enumerate(specs):
            position, docked_to = self._position_for(origin, spec, prev)
            data = {k: v for k, v in spec.data.items() if k != "content"}
            if docked_to:
                data["docked_to"] = docked_to
            data["provenance"] = self._product_provenance(node_id, recipe, sources, inputs)

            new_node = project.add_node(
                project.definitions.resolve_kind(spec.kind),
                value=spec.data.get("content"),
                position=position,
                data=data,
                asset_config=spec.asset_config,
                source="recipe",
            )
            created.append(new_node.id)

            if spec.connect_to is not None:
                wired = project.connect(
                    node_id, new_node.id,
                    spec.connect_to.get("source_handle"),
                    spec.connect_to.get("target_handle"),
                )
            elif i == 0:
                wired = project.connect(node_id, new_node.id, PRODUCT_HANDLE, ORIGIN_HANDLE, kind=OUTPUT_EDGE)
            else:
                wired = None
            if wired is not None and not wired:
                logger.warning(f"Could not wire {node_id} -> {new_node.id}: {wired.message}")
            self._wire_lineage(node_id, new_node.id)
            prev = new_node

        return created, None

    async def run_recipe_on(
        self,
        source_node_id: str,
        recipe_id: str,
        position: Optional[Dict[str, float]] = None,
    ) -> RunResult:
        """
        Create a recipe node downstream of a source node and run it.

        The source's origin is wired into the first recipe field that
        accepts the connection, and every product is also linked straight
        back to the source.
        """
        project = self.project
        recipe = self.recipes.get_resolved(recipe_id)
        if recipe is None:
            return RunResult(success=False, node_id=source_node_id, error=f"Recipe not found: {recipe_id}")

        source = project.get_node(source_node_id)
        if position is None:
            position = {
                "x": source.position.get("x", 0) + (source.width or DEFAULT_NODE_WIDTH) + NODE_GAP,
                "y": source.position.get("y", 0),
            }
        node = project.add_node(
            f"recipe:{recipe.id}",
            value=recipe.defaults(),
            position=position,
            data={"title": recipe.name, "recipe_id": recipe.id},
            asset_config={"schema": recipe.schema_dicts()},
        )

        for f in recipe.input_schema:
            if f.hidden or f.disabled:
                continue
            if project.connect(source_node_id, node.id, ORIGIN_HANDLE, f.key):
                break
        else:
            logger.warning(f"Recipe {recipe.id} has no field that accepts {source_node_id}")

        self._lineage[node.id] = source_node_id
        try:
            return await self.run(node.id)
        finally:
            self._lineage.pop(node.id, None)
