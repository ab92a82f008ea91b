# synnia/graph.py
"""
Graph store: nodes, edges and parent/child containment.

Nodes are kept in insertion order. Containment (``parent_id``) and data
flow (edges) are separate relations: removing a node removes its whole
containment subtree together with every edge touching any removed node.
"""

import copy
import logging
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .errors import GraphIntegrityError

logger = logging.getLogger(__name__)


class ExecutionState(Enum):
    """Per-node execution status."""
    IDLE = "idle"
    RUNNING = "running"
    SUCCESS = "success"
    ERROR = "error"
    STALE = "stale"


@dataclass(frozen=True)
class ProvenanceSource:
    """One upstream contributor recorded at generation time."""
    node_id: str
    node_hash: str
    node_version: float = 0.0
    slot: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "node_id": self.node_id,
            "node_version": self.node_version,
            "node_hash": self.node_hash,
            "slot": self.slot,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProvenanceSource":
        return cls(
            node_id=data["node_id"],
            node_hash=data["node_hash"],
            node_version=data.get("node_version", 0.0),
            slot=data.get("slot"),
        )


@dataclass(frozen=True)
class Provenance:
    """Where a generated node came from."""
    recipe_id: str
    sources: Tuple[ProvenanceSource, ...] = ()
    params_snapshot: Dict[str, Any] = field(default_factory=dict)
    generated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recipe_id": self.recipe_id,
            "generated_at": self.generated_at,
            "sources": [s.to_dict() for s in self.sources],
            "params_snapshot": copy.deepcopy(self.params_snapshot),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Provenance":
        return cls(
            recipe_id=data.get("recipe_id", ""),
            sources=tuple(ProvenanceSource.from_dict(s) for s in data.get("sources", [])),
            params_snapshot=data.get("params_snapshot", {}),
            generated_at=data.get("generated_at", 0.0),
        )


@dataclass
class Node:
    """
    A node on the canvas.

    Attributes:
        id: Node identifier
        kind: Node kind ("text", "recipe", "recipe:summarize", ...)
        parent_id: Containing node, if any
        position: {"x": float, "y": float}
        width: Optional explicit width
        height: Optional explicit height
        data: Free-form state (asset_id, recipe_id, state, provenance, ...)
    """
    id: str
    kind: str
    parent_id: Optional[str] = None
    position: Dict[str, float] = field(default_factory=lambda: {"x": 0.0, "y": 0.0})
    width: Optional[float] = None
    height: Optional[float] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def asset_id(self) -> Optional[str]:
        return self.data.get("asset_id")

    @property
    def recipe_id(self) -> Optional[str]:
        return self.data.get("recipe_id")

    @property
    def state(self) -> ExecutionState:
        return ExecutionState(self.data.get("state", ExecutionState.IDLE.value))

    @property
    def provenance(self) -> Optional[Provenance]:
        raw = self.data.get("provenance")
        return Provenance.from_dict(raw) if raw else None

    @property
    def title(self) -> str:
        return self.data.get("title", "")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "parent_id": self.parent_id,
            "position": dict(self.position),
            "width": self.width,
            "height": self.height,
            "data": copy.deepcopy(self.data),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Node":
        return cls(
            id=data["id"],
            kind=data["kind"],
            parent_id=data.get("parent_id"),
            position=dict(data.get("position") or {"x": 0.0, "y": 0.0}),
            width=data.get("width"),
            height=data.get("height"),
            data=copy.deepcopy(data.get("data", {})),
        )


@dataclass
class Edge:
    """
    A directed connection between two nodes.

    ``kind`` is "default" for data connections, "output" for the edge from a
    recipe to its product, and "link" for shortcut links.
    """
    source: str
    target: str
    source_handle: Optional[str] = None
    target_handle: Optional[str] = None
    id: str = ""
    kind: str = "default"

    def __post_init__(self):
        if not self.id:
            self.id = f"edge-{uuid.uuid4().hex[:12]}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "target": self.target,
            "source_handle": self.source_handle,
            "target_handle": self.target_handle,
            "kind": self.kind,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Edge":
        return cls(
            id=data.get("id", ""),
            source=data["source"],
            target=data["target"],
            source_handle=data.get("source_handle"),
            target_handle=data.get("target_handle"),
            kind=data.get("kind", "default"),
        )


def new_node_id(kind: str) -> str:
    base = kind.split(":", 1)[0]
    return f"{base}-{uuid.uuid4().hex[:12]}"


class Graph:
    """Nodes and edges with containment and ordering queries."""

    def __init__(self):
        self.nodes: Dict[str, Node] = {}
        self.edges: Dict[str, Edge] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def __contains__(self, node_id: str) -> bool:
        return node_id in self.nodes

    # -- nodes ---------------------------------------------------------

    def add_node(self, node: Node) -> str:
        if node.id in self.nodes:
            raise ValueError(f"Node {node.id} already exists")
        if node.parent_id is not None and node.parent_id not in self.nodes:
            raise KeyError(f"Parent {node.parent_id} not found")
        self.nodes[node.id] = node
        return node.id

    def get_node(self, node_id: str) -> Node:
        if node_id not in self.nodes:
            raise KeyError(f"Node {node_id} not found")
        return self.nodes[node_id]

    def has_node(self, node_id: Optional[str]) -> bool:
        return node_id is not None and node_id in self.nodes

    def find_node(self, node_id: Optional[str]) -> Optional[Node]:
        return self.nodes.get(node_id) if node_id is not None else None

    def removal_closure(self, node_id: str) -> List[str]:
        """Node plus all containment descendants, breadth first."""
        self.get_node(node_id)
        children: Dict[str, List[str]] = {}
        for node in self.nodes.values():
            if node.parent_id is not None:
                children.setdefault(node.parent_id, []).append(node.id)

        seen = {node_id}
        order = [node_id]
        queue = deque([node_id])
        while queue:
            current = queue.popleft()
            for child_id in children.get(current, []):
                if child_id not in seen:
                    seen.add(child_id)
                    order.append(child_id)
                    queue.append(child_id)
        return order

    def remove_node(self, node_id: str) -> Tuple[List[Node], List[Edge]]:
        """
        Remove a node, its containment descendants, and every incident edge.

        The full closure is computed before anything is deleted.

        Returns:
            (removed nodes, removed edges)
        """
        doomed = self.removal_closure(node_id)
        doomed_set = set(doomed)
        doomed_edges = [
            e for e in self.edges.values()
            if e.source in doomed_set or e.target in doomed_set
        ]

        removed_nodes = [self.nodes.pop(nid) for nid in doomed]
        for edge in doomed_edges:
            del self.edges[edge.id]

        logger.debug(f"Removed {len(removed_nodes)} nodes and {len(doomed_edges)} edges from {node_id}")
        return removed_nodes, doomed_edges

    def children_of(self, node_id: str) -> List[Node]:
        return [n for n in self.nodes.values() if n.parent_id == node_id]

    def descendants(self, node_id: str) -> List[Node]:
        return [self.nodes[nid] for nid in self.removal_closure(node_id)[1:]]

    def ancestors(self, node_id: str) -> List[Node]:
        """Parent chain from nearest to root."""
        chain = []
        seen = {node_id}
        current = self.get_node(node_id).parent_id
        while current is not None and current in self.nodes:
            if current in seen:
                raise GraphIntegrityError(f"Containment cycle through {current}")
            seen.add(current)
            parent = self.nodes[current]
            chain.append(parent)
            current = parent.parent_id
        return chain

    def set_parent(self, node_id: str, parent_id: Optional[str]) -> None:
        node = self.get_node(node_id)
        if parent_id is not None:
            self.get_node(parent_id)
            if parent_id == node_id or any(a.id == node_id for a in self.ancestors(parent_id)):
                raise GraphIntegrityError(f"Cannot place {node_id} inside its own subtree")
        node.parent_id = parent_id

    def topological_order(self) -> List[str]:
        """
        Containment order: every parent precedes its children.

        Roots (no parent, or a parent that no longer exists) keep their
        insertion order; children follow breadth first.
        """
        children: Dict[str, List[str]] = {}
        roots = []
        for node in self.nodes.values():
            if node.parent_id is None or node.parent_id not in self.nodes:
                roots.append(node.id)
            else:
                children.setdefault(node.parent_id, []).append(node.id)

        order = []
        visited = set()
        queue = deque(roots)
        while queue:
            current = queue.popleft()
            if current in visited:
                continue
            visited.add(current)
            order.append(current)
            queue.extend(children.get(current, []))

        if len(order) != len(self.nodes):
            raise GraphIntegrityError("Containment relation contains a cycle")
        return order

    # -- edges ---------------------------------------------------------

    def add_edge(self, edge: Edge) -> str:
        self.get_node(edge.source)
        self.get_node(edge.target)
        if edge.id in self.edges:
            raise ValueError(f"Edge {edge.id} already exists")
        self.edges[edge.id] = edge
        return edge.id

    def get_edge(self, edge_id: str) -> Edge:
        if edge_id not in self.edges:
            raise KeyError(f"Edge {edge_id} not found")
        return self.edges[edge_id]

    def remove_edge(self, edge_id: str) -> Edge:
        edge = self.get_edge(edge_id)
        del self.edges[edge_id]
        return edge

    def incoming(self, node_id: str, handle: Optional[str] = None) -> List[Edge]:
        return [
            e for e in self.edges.values()
            if e.target == node_id and (handle is None or e.target_handle == handle)
        ]

    def outgoing(self, node_id: str, handle: Optional[str] = None) -> List[Edge]:
        return [
            e for e in self.edges.values()
            if e.source == node_id and (handle is None or e.source_handle == handle)
        ]

    def edge_order(self) -> List[str]:
        """Data-flow order: every edge source precedes its target."""
        indegree = {nid: 0 for nid in self.nodes}
        for edge in self.edges.values():
            indegree[edge.target] += 1

        queue = deque(nid for nid, deg in indegree.items() if deg == 0)
        order = []
        while queue:
            current = queue.popleft()
            order.append(current)
            for edge in self.outgoing(current):
                indegree[edge.target] -= 1
                if indegree[edge.target] == 0:
                    queue.append(edge.target)

        if len(order) != len(self.nodes):
            raise GraphIntegrityError("Edge relation contains a cycle")
        return order

    def nodes_with_asset(self, asset_id: str) -> List[Node]:
        return [n for n in self.nodes.values() if n.asset_id == asset_id]

    # -- serialization -------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nodes": [n.to_dict() for n in self.nodes.values()],
            "edges": [e.to_dict() for e in self.edges.values()],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Graph":
        graph = cls()
        for node_data in data.get("nodes", []):
            node = Node.from_dict(node_data)
            graph.nodes[node.id] = node
        for edge_data in data.get("edges", []):
            edge = Edge.from_dict(edge_data)
            if edge.source in graph.nodes and edge.target in graph.nodes:
                graph.edges[edge.id] = edge
            else:
                logger.warning(f"Dropping dangling edge {edge.id}")
        return graph
