# synnia/validator.py
"""
Connection validation.

Checks a candidate edge before it reaches the graph store: endpoint
existence, single-source field handles, acyclicity, and finally the
target kind's own ``can_connect`` hook.
"""

from dataclasses import dataclass
from typing import Optional

from .assets import AssetStore
from .behavior import BehaviorRegistry, ConnectionContext, EngineContext
from .graph import Edge, Graph
from .ports import DEFAULT_SOURCE_HANDLE, follow_reference, resolve_port

SEMANTIC_HANDLES = frozenset({"origin", "product", "output", "trigger", "array", "reference"})


@dataclass
class ConnectionValidation:
    """Outcome of validating a candidate edge."""
    valid: bool
    message: Optional[str] = None
    edge_id: Optional[str] = None

    def __bool__(self) -> bool:
        return self.valid


VALID = ConnectionValidation(valid=True)


def is_semantic_handle(handle: Optional[str]) -> bool:
    return handle in SEMANTIC_HANDLES


def is_field_level_input(handle: Optional[str]) -> bool:
    """True for handles that bind a single input field."""
    if not handle:
        return False
    if handle in SEMANTIC_HANDLES:
        return False
    # field:<key> handles are outputs
    return not handle.startswith("field:")


def would_create_cycle(graph: Graph, source: str, target: str) -> bool:
    """True if an edge source -> target would close a loop."""
    if source == target:
        return True

    visited = set()
    stack = [target]
    while stack:
        current = stack.pop()
        if current == source:
            return True
        if current in visited:
            continue
        visited.add(current)
        stack.extend(e.target for e in graph.outgoing(current))
    return False


def build_connection_context(
    graph: Graph,
    assets: AssetStore,
    behaviors: BehaviorRegistry,
    edge: Edge,
) -> ConnectionContext:
    source = graph.get_node(edge.source)
    target = graph.get_node(edge.target)
    owner = follow_reference(graph, source)
    source_asset = assets.get(owner.asset_id)
    return ConnectionContext(
        source_node=source,
        target_node=target,
        edge=edge,
        source_asset=source_asset,
        target_asset=assets.get(target.asset_id),
        source_port_value=resolve_port(
            behaviors, owner, source_asset, edge.source_handle or DEFAULT_SOURCE_HANDLE,
        ),
        engine=EngineContext(graph, assets),
    )


def validate_connection(
    graph: Graph,
    assets: AssetStore,
    behaviors: BehaviorRegistry,
    candidate: Edge,
) -> ConnectionValidation:
    """
    Validate a candidate edge.

    Semantic target handles skip the arity and hook checks, but no edge
    may ever close a cycle.
    """
    if not graph.has_node(candidate.source) or not graph.has_node(candidate.target):
        return ConnectionValidation(False, "Node not found")

    handle = candidate.target_handle

    if is_semantic_handle(handle) or not handle:
        if would_create_cycle(graph, candidate.source, candidate.target):
            return ConnectionValidation(False, "Connection would create a cycle")
        return VALID

    if is_field_level_input(handle) and graph.incoming(candidate.target, handle):
        return ConnectionValidation(False, f"Field '{handle}' already has a connection")

    if would_create_cycle(graph, candidate.source, candidate.target):
        return ConnectionValidation(False, "Connection would create a cycle")

    target = graph.get_node(candidate.target)
    hook = behaviors.get(target.kind).can_connect
    if hook is None:
        return ConnectionValidation(False, f"{target.kind} does not accept field connections")

    error = hook(build_connection_context(graph, assets, behaviors, candidate))
    if error:
        return ConnectionValidation(False, error)
    return VALID
