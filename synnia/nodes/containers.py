# synnia/nodes/containers.py
"""
Structural node kinds: racks (vertical stacks), groups and shortcuts.

None of these own an asset. Racks lay their children out top to bottom;
shortcuts point at another node through ``data["target_id"]``.
"""

from typing import Any, List

from ..behavior import EngineContext, NodeBehavior, NodePatch
from ..graph import Node
from .base import COLLAPSED_HEIGHT, CreateResult, NodeDefinition

RACK_PADDING_X = 15
RACK_PADDING_TOP = 50
RACK_GAP = 10
RACK_DEFAULT_WIDTH = 280
RACK_CHILD_HEIGHT = 240


def _rack_width(container: Node) -> float:
    return container.width or RACK_DEFAULT_WIDTH


def rack_on_child_add(container: Node, child: Node, ctx: EngineContext) -> List[NodePatch]:
    """Lock the child into the stack, remembering where it came from."""
    return [NodePatch(child.id, {
        "width": _rack_width(container) - RACK_PADDING_X * 2,
        "height": child.height or RACK_CHILD_HEIGHT,
        "data": {
            "locked": True,
            "original_position": {
                "x": child.position.get("x", 0) - container.position.get("x", 0),
                "y": child.position.get("y", 0) - container.position.get("y", 0),
            },
            "original_width": child.width,
        },
    })]


def rack_on_child_remove(container: Node, child: Node, ctx: EngineContext) -> List[NodePatch]:
    return [NodePatch(child.id, {
        "position": child.data.get("original_position") or child.position,
        "width": child.data.get("original_width"),
        "height": None,
        "data": {"locked": False, "collapsed": False},
    })]


def rack_on_collapse(container: Node, collapsed: bool, ctx: EngineContext) -> List[NodePatch]:
    patches = [NodePatch(child.id, {"data": {"hidden": collapsed}}) for child in ctx.get_children(container.id)]
    patches.append(NodePatch(container.id, {"data": {"collapsed": collapsed}}))
    return patches


def _child_height(child: Node) -> float:
    if child.data.get("collapsed"):
        return COLLAPSED_HEIGHT
    return child.height or RACK_CHILD_HEIGHT


def rack_on_layout(container: Node, ctx: EngineContext) -> List[NodePatch]:
    """Stack children vertically in their current visual order."""
    if container.data.get("collapsed"):
        return [NodePatch(container.id, {"height": None})]

    children = sorted(ctx.get_children(container.id), key=lambda n: n.position.get("y", 0))
    if not children:
        return []

    patches = []
    y = RACK_PADDING_TOP
    for child in children:
        patches.append(NodePatch(child.id, {"position": {"x": RACK_PADDING_X, "y": y}}))
        y += _child_height(child) + RACK_GAP
    patches.append(NodePatch(container.id, {"height": y - RACK_GAP + RACK_PADDING_X}))
    return patches


def create_rack(data: Any, schema) -> CreateResult:
    return CreateResult(data={"title": "Rack", "collapsed": False})


RACK = NodeDefinition(
    kind="rack",
    title="Rack",
    category="Container",
    alias="rack",
    create=create_rack,
    behavior=NodeBehavior(
        on_child_add=rack_on_child_add,
        on_child_remove=rack_on_child_remove,
        on_collapse=rack_on_collapse,
        on_layout=rack_on_layout,
    ),
    default_size={"width": RACK_DEFAULT_WIDTH, "height": RACK_PADDING_TOP},
)


def create_group(data: Any, schema) -> CreateResult:
    return CreateResult(data={"title": data if isinstance(data, str) else "Group"})


GROUP = NodeDefinition(
    kind="group",
    title="Group",
    category="Container",
    alias="group",
    create=create_group,
)


def create_reference(data: Any, schema) -> CreateResult:
    target_id = data.get("target_id") if isinstance(data, dict) else data
    return CreateResult(data={"target_id": target_id})


REFERENCE = NodeDefinition(
    kind="reference",
    title="Shortcut",
    category="Utility",
    alias="shortcut",
    create=create_reference,
)


STRUCTURAL_DEFINITIONS = [RACK, GROUP, REFERENCE]
