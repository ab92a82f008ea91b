# synnia/behavior.py
"""
Behavior registry.

A behavior is a bundle of optional hooks for a node kind. Hooks are pure:
lifecycle hooks return NodePatch lists that are applied by one reducer
(apply_patches), connection hooks return a message or field updates.
Kinds without a registered behavior get an empty one, so every hook
lookup is safe.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional

from .assets import Asset, AssetStore
from .graph import Edge, Graph, Node

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NodePatch:
    """A declarative update to one node. ``data`` keys merge, other keys replace."""
    target_id: str
    patch: Mapping[str, Any]

    def __post_init__(self):
        patch = dict(self.patch)
        if "data" in patch:
            patch["data"] = MappingProxyType(dict(patch["data"]))
        object.__setattr__(self, "patch", MappingProxyType(patch))


@dataclass(frozen=True)
class PortValue:
    """A value exposed on a node output port."""
    type: str  # "text", "json", "array", "image"
    value: Any
    schema: Optional[List[Dict[str, Any]]] = None
    meta: Dict[str, Any] = field(default_factory=dict)


class EngineContext:
    """Read-only view of the graph and assets handed to hooks."""

    def __init__(self, graph: Graph, assets: AssetStore):
        self._graph = graph
        self._assets = assets

    def get_node(self, node_id: Optional[str]) -> Optional[Node]:
        return self._graph.find_node(node_id)

    def get_nodes(self) -> List[Node]:
        return list(self._graph.nodes.values())

    def get_asset(self, asset_id: Optional[str]) -> Optional[Asset]:
        return self._assets.get(asset_id)

    def get_children(self, node_id: str) -> List[Node]:
        return self._graph.children_of(node_id)

    def get_incoming(self, node_id: str) -> List[Edge]:
        return self._graph.incoming(node_id)


@dataclass
class ConnectionContext:
    """Everything a connection hook may look at."""
    source_node: Node
    target_node: Node
    edge: Edge
    source_asset: Optional[Asset] = None
    target_asset: Optional[Asset] = None
    source_port_value: Optional[PortValue] = None
    engine: Optional[EngineContext] = None


PatchHook = Callable[..., List[NodePatch]]


@dataclass(frozen=True)
class NodeBehavior:
    """
    Optional hooks for one node kind.

    on_create(node, ctx) / on_delete(node, ctx) -> patches
    on_collapse(node, collapsed, ctx) -> patches
    on_child_add(container, child, ctx) / on_child_remove(container, child, ctx) -> patches
    on_layout(container, ctx) -> patches
    can_connect(cctx) -> error message or None
    on_connect(cctx) / on_disconnect(cctx) -> field updates for the target asset or None
    resolve_output(node, asset, port_id) -> PortValue or None
    """
    on_create: Optional[PatchHook] = None
    on_delete: Optional[PatchHook] = None
    on_collapse: Optional[PatchHook] = None
    on_child_add: Optional[PatchHook] = None
    on_child_remove: Optional[PatchHook] = None
    on_layout: Optional[PatchHook] = None
    can_connect: Optional[Callable[[ConnectionContext], Optional[str]]] = None
    on_connect: Optional[Callable[[ConnectionContext], Optional[Dict[str, Any]]]] = None
    on_disconnect: Optional[Callable[[ConnectionContext], Optional[Dict[str, Any]]]] = None
    resolve_output: Optional[Callable[[Node, Optional[Asset], str], Optional[PortValue]]] = None

    def extend(self, **hooks) -> "NodeBehavior":
        """Copy with some hooks replaced."""
        values = {name: getattr(self, name) for name in self.__dataclass_fields__}
        values.update(hooks)
        return NodeBehavior(**values)


EMPTY_BEHAVIOR = NodeBehavior()


class BehaviorRegistry:
    """Maps node kinds to behaviors."""

    def __init__(self):
        self._behaviors: Dict[str, NodeBehavior] = {}

    def register(self, kind: str, behavior: NodeBehavior) -> None:
        if kind in self._behaviors:
            logger.warning(f"Overwriting behavior for {kind}")
        self._behaviors[kind] = behavior

    def get(self, kind: str) -> NodeBehavior:
        """
        Behavior for a kind.

        Virtual kinds such as "recipe:summarize" fall back to their base
        kind; unknown kinds get a behavior with no hooks.
        """
        if kind in self._behaviors:
            return self._behaviors[kind]
        base = kind.split(":", 1)[0]
        if base in self._behaviors:
            return self._behaviors[base]
        return EMPTY_BEHAVIOR

    def has(self, kind: str) -> bool:
        return kind in self._behaviors

    __contains__ = has

    def kinds(self) -> List[str]:
        return list(self._behaviors)


def merge_patches(patches: Iterable[NodePatch]) -> Dict[str, Dict[str, Any]]:
    """Fold patches per target, merging ``data`` and replacing everything else."""
    merged: Dict[str, Dict[str, Any]] = {}
    for p in patches:
        current = merged.setdefault(p.target_id, {})
        for key, value in p.patch.items():
            if key == "data":
                current["data"] = {**current.get("data", {}), **value}
            elif key == "position":
                current["position"] = dict(value)
            else:
                current[key] = value
    return merged


NODE_ATTRIBUTES = ("parent_id", "position", "width", "height", "kind")


def apply_patches(graph: Graph, patches: Iterable[NodePatch]) -> List[str]:
    """
    Apply patches to the graph. Returns ids of nodes that changed.

    Patches that target missing nodes are dropped with a warning.
    """
    touched = []
    for node_id, patch in merge_patches(patches).items():
        node = graph.find_node(node_id)
        if node is None:
            logger.warning(f"Dropping patch for missing node {node_id}")
            continue
        for key, value in patch.items():
            if key == "data":
                node.data.update(value)
            elif key in NODE_ATTRIBUTES:
                setattr(node, key, value)
            else:
                logger.warning(f"Ignoring unknown patch key {key} for node {node_id}")
        touched.append(node_id)
    return touched
