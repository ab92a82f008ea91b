# synnia/nodes/recipe.py
"""Recipe nodes: a form of input values bound to a recipe definition."""

from typing import Any, Optional

from ..assets import Asset, AssetKind
from ..behavior import PortValue
from ..graph import Node
from .base import STANDARD_BEHAVIOR, AssetSeed, CreateResult, NodeDefinition
from .content import autofill_on_connect, schema_can_connect


def create_recipe(data: Any, schema) -> CreateResult:
    values = dict(data) if isinstance(data, dict) else {}
    return CreateResult(
        data={"state": "idle"},
        asset=AssetSeed(AssetKind.RECORD, values, {"schema": list(schema or [])}),
    )


def recipe_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    if asset is None or not isinstance(asset.value, dict):
        return None
    values = asset.value
    meta = {"node_id": node.id, "port_id": port_id}

    if port_id in ("reference", "origin"):
        return PortValue("json", values, schema=asset.schema or None, meta=meta)

    key = port_id[len("field:"):] if port_id.startswith("field:") else port_id
    if key in values:
        value = values[key]
        return PortValue("json" if isinstance(value, (dict, list)) else "text", value, meta=meta)
    return None


RECIPE_BEHAVIOR = STANDARD_BEHAVIOR.extend(
    resolve_output=recipe_resolve_output,
    can_connect=schema_can_connect,
    on_connect=autofill_on_connect,
)

RECIPE = NodeDefinition(
    kind="recipe",
    title="Recipe",
    category="Recipe",
    alias="recipe",
    create=create_recipe,
    behavior=RECIPE_BEHAVIOR,
    default_size={"width": 300, "height": 260},
)
