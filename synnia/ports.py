# synnia/ports.py
"""
Port resolution.

Resolves the value flowing out of a node port and maps it onto a target
field. Behaviors get the first say through ``resolve_output``; generic
fallbacks cover semantic ports and ``field:<key>`` ports.
"""

from typing import Any, Dict, Optional

from .assets import Asset, AssetKind, AssetStore
from .behavior import BehaviorRegistry, PortValue
from .graph import Edge, Graph, Node

DEFAULT_SOURCE_HANDLE = "origin"
MAX_REFERENCE_DEPTH = 16


def value_type(value: Any) -> str:
    """Port type for a raw value."""
    if isinstance(value, list):
        return "array"
    if isinstance(value, (dict, int, float, bool)) or value is None:
        return "json"
    return "text"


def whole_value(node: Node, asset: Asset, port_id: str) -> PortValue:
    """A port value carrying the entire asset content."""
    if asset.kind is AssetKind.IMAGE:
        port_type = "image"
    elif asset.kind is AssetKind.ARRAY:
        port_type = "array"
    elif asset.kind is AssetKind.RECORD:
        port_type = "json"
    else:
        port_type = value_type(asset.value)
    return PortValue(
        type=port_type,
        value=asset.value,
        schema=asset.schema or None,
        meta={"node_id": node.id, "port_id": port_id},
    )


def field_value(node: Node, asset: Optional[Asset], port_id: str) -> Optional[PortValue]:
    """Resolve ``field:<key>`` against a record value."""
    if asset is None or not isinstance(asset.value, dict):
        return None
    key = port_id[len("field:"):] if port_id.startswith("field:") else port_id
    if key not in asset.value:
        return None
    value = asset.value[key]
    return PortValue(
        type="json" if isinstance(value, (dict, list)) else "text",
        value=value,
        meta={"node_id": node.id, "port_id": port_id},
    )


def resolve_port(
    behaviors: BehaviorRegistry,
    node: Node,
    asset: Optional[Asset],
    port_id: str,
) -> Optional[PortValue]:
    """Value exposed by ``node`` on ``port_id``."""
    hook = behaviors.get(node.kind).resolve_output
    if hook is not None:
        resolved = hook(node, asset, port_id)
        if resolved is not None:
            return resolved

    if asset is None:
        return None
    if port_id.startswith("field:"):
        return field_value(node, asset, port_id)
    if ":" not in port_id:
        return whole_value(node, asset, port_id)
    return None


def follow_reference(graph: Graph, node: Node) -> Node:
    """The node whose asset ``node`` exposes; shortcuts resolve to their target."""
    seen = 0
    while not node.asset_id and node.data.get("target_id") and seen < MAX_REFERENCE_DEPTH:
        target = graph.find_node(node.data["target_id"])
        if target is None:
            break
        node = target
        seen += 1
    return node


def resolve_edge(
    graph: Graph,
    assets: AssetStore,
    behaviors: BehaviorRegistry,
    edge: Edge,
) -> Optional[PortValue]:
    """Value flowing through an edge (source handle defaults to origin)."""
    source = graph.find_node(edge.source)
    if source is None:
        return None
    source = follow_reference(graph, source)
    asset = assets.get(source.asset_id)
    return resolve_port(behaviors, source, asset, edge.source_handle or DEFAULT_SOURCE_HANDLE)


def _pick_from_item(item: Dict[str, Any], key: str) -> Any:
    if key in item:
        return item[key]

    target = key.lower()
    for source_key in item:
        source = source_key.lower()
        # "selectedName" <- "name", "productType" <- "type"
        if target.endswith(source) and len(source) >= 3:
            return item[source_key]
        if source in target and len(source) >= 4:
            return item[source_key]

    for source_key, value in item.items():
        if isinstance(value, str) and source_key != "id":
            return value
    return item


def resolve_input_value(port_value: Optional[PortValue], target_key: str) -> Any:
    """
    Map a port value onto a target field.

    Arrays contribute their first item (the matching field if it has one),
    objects contribute the matching key or themselves, anything else is
    passed through. Returns None when nothing can be resolved.
    """
    if port_value is None:
        return None

    value = port_value.value
    if port_value.type == "array" and isinstance(value, list):
        if not value:
            return None
        first = value[0]
        if isinstance(first, dict):
            return _pick_from_item(first, target_key)
        return first

    if port_value.type == "json" and isinstance(value, dict):
        return value.get(target_key, value)

    return value


def collect_input_values(
    graph: Graph,
    assets: AssetStore,
    behaviors: BehaviorRegistry,
    node_id: str,
) -> Dict[str, Any]:
    """One resolved value per incoming edge that targets a named field."""
    result: Dict[str, Any] = {}
    for edge in graph.incoming(node_id):
        key = edge.target_handle
        if not key:
            continue
        value = resolve_input_value(resolve_edge(graph, assets, behaviors, edge), key)
        if value is not None:
            result[key] = value
    return result
