# synnia/nodes/base.py
"""
Node kind definitions.

A NodeDefinition describes how to construct a node of a given kind (its
initial data and owning asset) and, for collection kinds, how to read and
merge its items. Behaviors (hooks) are registered separately in the
BehaviorRegistry; a definition may bring a default behavior with it.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..assets import Asset, AssetKind
from ..behavior import EngineContext, NodeBehavior, NodePatch, PortValue
from ..graph import Node
from ..ports import field_value, value_type

logger = logging.getLogger(__name__)

COLLAPSED_HEIGHT = 50
MIN_EXPANDED_HEIGHT = 60


@dataclass
class AssetSeed:
    """Initial asset for a new node."""
    kind: AssetKind
    value: Any
    config: Optional[Dict[str, Any]] = None


@dataclass
class CreateResult:
    """What a definition's ``create`` returns."""
    data: Dict[str, Any] = field(default_factory=dict)
    asset: Optional[AssetSeed] = None


# create(data, schema) -> CreateResult
CreateFn = Callable[[Any, Optional[List[Dict[str, Any]]]], CreateResult]


@dataclass
class NodeDefinition:
    """
    Static description of a node kind.

    Attributes:
        kind: Registry key
        title: Human-readable name
        category: Palette grouping
        alias: Short name accepted by lookups and output configs
        is_collection: Kind holds a list of items (gallery, table, ...)
        create: Factory for initial node data and asset
        get_items: Reads the item list from an asset (collections only)
        merge_items: Combines existing and incoming items (collections only)
        behavior: Default hooks for the kind
    """
    kind: str
    title: str
    category: str = "Asset"
    alias: Optional[str] = None
    is_collection: bool = False
    create: Optional[CreateFn] = None
    get_items: Optional[Callable[[Asset], List[Any]]] = None
    merge_items: Optional[Callable[[List[Any], List[Any]], List[Any]]] = None
    behavior: Optional[NodeBehavior] = None
    default_size: Optional[Dict[str, float]] = None


class NodeRegistry:
    """Node definitions by kind and alias."""

    def __init__(self):
        self._definitions: Dict[str, NodeDefinition] = {}
        self._aliases: Dict[str, str] = {}

    def register(self, definition: NodeDefinition) -> None:
        if definition.kind in self._definitions:
            logger.warning(f"Overwriting node definition for {definition.kind}")
        self._definitions[definition.kind] = definition
        if definition.alias:
            self._aliases[definition.alias] = definition.kind

    def get(self, kind: str) -> Optional[NodeDefinition]:
        if kind in self._definitions:
            return self._definitions[kind]
        if kind in self._aliases:
            return self._definitions[self._aliases[kind]]
        base = kind.split(":", 1)[0]
        return self._definitions.get(base)

    def resolve_kind(self, kind: str) -> str:
        """Canonical kind for an alias; unknown names pass through."""
        return self._aliases.get(kind, kind)

    def kinds(self) -> List[str]:
        return list(self._definitions)

    def is_collection(self, kind: str) -> bool:
        definition = self.get(kind)
        return bool(definition and definition.is_collection)


def items_from(*keys: str) -> Callable[[Asset], List[Any]]:
    """get_items that accepts a bare list or a wrapper object."""
    def get_items(asset: Asset) -> List[Any]:
        value = asset.value
        if isinstance(value, list):
            return list(value)
        if isinstance(value, dict):
            for key in keys:
                if isinstance(value.get(key), list):
                    return list(value[key])
        return []
    return get_items


def append_items(existing: List[Any], incoming: List[Any]) -> List[Any]:
    return [*existing, *incoming]


def prepend_items(existing: List[Any], incoming: List[Any]) -> List[Any]:
    return [*incoming, *existing]


# -- standard behavior -------------------------------------------------

def standard_resolve_output(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    """Origin/output expose the whole value, ``field:<key>`` one key."""
    if asset is None or asset.value in (None, "", [], {}):
        return None
    if port_id in ("origin", "output"):
        return PortValue(
            type=value_type(asset.value),
            value=asset.value,
            schema=asset.schema or None,
            meta={"node_id": node.id, "port_id": port_id},
        )
    if port_id.startswith("field:"):
        return field_value(node, asset, port_id)
    return None


def standard_on_collapse(node: Node, collapsed: bool, ctx: EngineContext) -> List[NodePatch]:
    """Collapse to a header bar, remembering the expanded height."""
    data: Dict[str, Any] = {"collapsed": collapsed}
    if collapsed:
        if node.height is not None and node.height > MIN_EXPANDED_HEIGHT:
            data["expanded_height"] = node.height
        height = COLLAPSED_HEIGHT
    else:
        height = node.data.get("expanded_height", node.height)
    return [NodePatch(node.id, {"height": height, "data": data})]


STANDARD_BEHAVIOR = NodeBehavior(
    resolve_output=standard_resolve_output,
    on_collapse=standard_on_collapse,
)
