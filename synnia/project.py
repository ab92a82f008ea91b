# synnia/project.py
"""
Project: the graph, its assets, and every edit that touches them.

All mutation of a project goes through this class so that behavior hooks
run, structural edits land on the undo stack, and asset changes reach the
staleness propagator.

Saved projects are JSON:

    {
        "version": "2.0.0",
        "meta": {"name": ..., "created_at": ..., "updated_at": ...},
        "nodes": [...],
        "edges": [...],
        "assets": {asset_id: {...}}
    }
"""

import copy
import json
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from .assets import Asset, AssetHistory, AssetStore
from .behavior import BehaviorRegistry, EngineContext, NodePatch, apply_patches
from .config import Settings
from .errors import GraphIntegrityError
from .graph import Edge, ExecutionState, Graph, Node, new_node_id
from .history import Command, UndoStack
from .nodes import NodeRegistry, default_registries
from .ports import follow_reference
from .provenance import StalenessPropagator, is_stale, stale_nodes
from .validator import (
    ConnectionValidation,
    build_connection_context,
    validate_connection,
    would_create_cycle,
)

logger = logging.getLogger(__name__)

PROJECT_VERSION = "2.0.0"
SHORTCUT_OFFSET = 20
LINK_HANDLE = "reference"

# Data that belongs to a run, not to the node's content
RUN_KEYS = ("state", "provenance", "execution_result", "error_message", "selected")


@dataclass
class _Snapshot:
    nodes: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)
    edges: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)
    assets: Dict[str, Optional[Dict[str, Any]]] = field(default_factory=dict)


class _Change:
    """
    Before/after capture around one structural edit.

    Ids that did not exist before the edit are restored as absent on undo.
    """

    def __init__(self, project: "Project", node_ids: Iterable[Optional[str]]):
        self.project = project
        self.node_ids = [n for n in node_ids if n]
        self.known = (
            set(project.graph.nodes),
            set(project.graph.edges),
            set(project.assets.ids()),
        )
        self.before = project._capture(*project._scope(self.node_ids))

    def commit(self, label: str, *more_node_ids: Optional[str]) -> None:
        project = self.project
        nodes, edges, assets = project._scope([*self.node_ids, *[n for n in more_node_ids if n]])
        after = project._capture(
            nodes | set(self.before.nodes),
            edges | set(self.before.edges),
            assets | set(self.before.assets),
        )
        before = self.before
        for kind, known in zip(("nodes", "edges", "assets"), self.known):
            before_map = getattr(before, kind)
            after_map = getattr(after, kind)
            for key in list(after_map):
                if key in before_map:
                    continue
                if key in known:
                    del after_map[key]
                else:
                    before_map[key] = None

        project.history.record(Command(
            undo=lambda: project._restore(before),
            redo=lambda: project._restore(after),
            label=label,
        ))


class Project:
    """
    A workspace of nodes, edges and assets.

    Registries are explicit: pass your own NodeRegistry/BehaviorRegistry to
    add node kinds, or take the built-in set.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        definitions: Optional[NodeRegistry] = None,
        behaviors: Optional[BehaviorRegistry] = None,
        name: str = "Untitled",
    ):
        self.settings = settings or Settings()
        if definitions is None or behaviors is None:
            default_definitions, default_behaviors = default_registries()
            if definitions is None:
                definitions = default_definitions
            if behaviors is None:
                behaviors = default_behaviors
        self.definitions = definitions
        self.behaviors = behaviors

        self.graph = Graph()
        self.asset_history = AssetHistory(self.settings.asset_history_limit)
        self.assets = AssetStore(self.settings.hash_algorithm, self.asset_history)
        self.history = UndoStack(self.settings.history_limit)
        self.propagator = StalenessPropagator(self.graph, self.assets, self.settings.hash_algorithm)
        self.assets.subscribe(self.propagator.on_asset_changed)

        now = time.time()
        self.meta: Dict[str, Any] = {"name": name, "created_at": now, "updated_at": now}

    # -- lookups -------------------------------------------------------

    def get_node(self, node_id: str) -> Node:
        return self.graph.get_node(node_id)

    def asset_of(self, node_id: str) -> Optional[Asset]:
        """Asset shown by a node, following shortcuts."""
        node = self.graph.find_node(node_id)
        if node is None:
            return None
        return self.assets.get(follow_reference(self.graph, node).asset_id)

    def context(self) -> EngineContext:
        return EngineContext(self.graph, self.assets)

    def is_stale(self, node_id: str) -> bool:
        return is_stale(self.graph, self.assets, self.get_node(node_id), self.settings.hash_algorithm)

    def stale_nodes(self) -> List[Node]:
        return stale_nodes(self.graph, self.assets, self.settings.hash_algorithm)

    def _touch(self) -> None:
        self.meta["updated_at"] = time.time()

    # -- patches -------------------------------------------------------

    def apply_patches(self, patches: Iterable[NodePatch]) -> List[str]:
        touched = apply_patches(self.graph, patches)
        if touched:
            self._touch()
        return touched

    def update_node_data(self, node_id: str, patch: Dict[str, Any]) -> Node:
        node = self.get_node(node_id)
        self.apply_patches([NodePatch(node_id, {"data": patch})])
        return node

    def _layout(self, container_id: Optional[str]) -> None:
        container = self.graph.find_node(container_id)
        if container is None:
            return
        hook = self.behaviors.get(container.kind).on_layout
        if hook is not None:
            self.apply_patches(hook(container, self.context()))

    def _child_added(self, child: Node) -> None:
        parent = self.graph.find_node(child.parent_id)
        if parent is None:
            return
        hook = self.behaviors.get(parent.kind).on_child_add
        if hook is not None:
            self.apply_patches(hook(parent, child, self.context()))
        self._layout(parent.id)

    # -- nodes ---------------------------------------------------------

    def add_node(
        self,
        kind: str,
        *,
        value: Any = None,
        position: Optional[Dict[str, float]] = None,
        parent_id: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
        asset_config: Optional[Dict[str, Any]] = None,
        asset_name: Optional[str] = None,
        source: str = "user",
        node_id: Optional[str] = None,
    ) -> Node:
        """
        Create a node (and its asset) from the kind's definition.

        Unknown kinds become bare nodes without an asset.
        """
        change = _Change(self, [parent_id])
        definition = self.definitions.get(kind)
        if definition is None:
            logger.warning(f"Unknown node kind {kind}, creating a bare node")

        schema = (asset_config or {}).get("schema")
        created = definition.create(value, schema) if definition and definition.create else None

        node_data: Dict[str, Any] = {}
        if definition is not None:
            node_data["title"] = definition.title
        if created is not None:
            node_data.update(copy.deepcopy(created.data))
        if kind.startswith("recipe:"):
            node_data.setdefault("recipe_id", kind.split(":", 1)[1])
        node_data.update(copy.deepcopy(data or {}))

        if created is not None and created.asset is not None:
            seed = created.asset
            config = {**(seed.config or {}), **(asset_config or {})}
            node_data["asset_id"] = self.assets.create(
                seed.kind,
                seed.value,
                name=asset_name or node_data.get("title", ""),
                config=config or None,
                source=source,
            )

        size = definition.default_size if definition and definition.default_size else {}
        node = Node(
            id=node_id or new_node_id(kind),
            kind=kind,
            parent_id=parent_id,
            position=dict(position or {"x": 0.0, "y": 0.0}),
            width=size.get("width"),
            height=size.get("height"),
            data=node_data,
        )
        try:
            self.graph.add_node(node)
        except (KeyError, ValueError):
            if created is not None and created.asset is not None:
                self.assets.delete(node_data["asset_id"])
            raise

        hook = self.behaviors.get(kind).on_create
        if hook is not None:
            self.apply_patches(hook(node, self.context()))
        self._child_added(node)

        change.commit(f"Add {kind}", node.id)
        self._touch()
        logger.debug(f"Added {kind} node {node.id}")
        return node

    def _discard(self, node_id: str) -> Tuple[List[Node], List[Edge]]:
        """Remove a node's closure and destroy assets nothing else shows."""
        removed_nodes, removed_edges = self.graph.remove_node(node_id)
        for node in removed_nodes:
            asset_id = node.asset_id
            if asset_id and not self.graph.nodes_with_asset(asset_id):
                self.assets.delete(asset_id)
        return removed_nodes, removed_edges

    def remove_node(self, node_id: str) -> List[str]:
        """
        Remove a node, its containment descendants and incident edges.

        Returns:
            Ids of every removed node
        """
        node = self.get_node(node_id)
        parent_id = node.parent_id
        change = _Change(self, [node_id, parent_id])

        ctx = self.context()
        closure = self.graph.removal_closure(node_id)
        patches: List[NodePatch] = []
        for nid in closure:
            hook = self.behaviors.get(self.graph.nodes[nid].kind).on_delete
            if hook is not None:
                patches.extend(hook(self.graph.nodes[nid], ctx))

        removed_nodes, _ = self._discard(node_id)
        self.apply_patches(p for p in patches if p.target_id in self.graph)
        self._layout(parent_id)

        change.commit(f"Remove {node.kind}")
        self._touch()
        return [n.id for n in removed_nodes]

    def set_parent(self, node_id: str, parent_id: Optional[str]) -> None:
        """Move a node into (or out of) a container."""
        node = self.get_node(node_id)
        old_parent_id = node.parent_id
        if old_parent_id == parent_id:
            return
        change = _Change(self, [node_id, old_parent_id, parent_id])

        old_parent = self.graph.find_node(old_parent_id)
        if old_parent is not None:
            hook = self.behaviors.get(old_parent.kind).on_child_remove
            if hook is not None:
                self.apply_patches(hook(old_parent, node, self.context()))

        self.graph.set_parent(node_id, parent_id)
        self._child_added(node)
        self._layout(old_parent_id)

        change.commit("Move node")
        self._touch()

    def set_collapsed(self, node_id: str, collapsed: bool) -> None:
        node = self.get_node(node_id)
        hook = self.behaviors.get(node.kind).on_collapse
        if hook is not None:
            self.apply_patches(hook(node, collapsed, self.context()))
        else:
            self.apply_patches([NodePatch(node_id, {"data": {"collapsed": collapsed}})])
        self._layout(node.parent_id)

    def set_value(self, node_id: str, value: Any) -> Asset:
        """Replace the value of the asset a node shows."""
        asset = self.asset_of(node_id)
        if asset is None:
            raise KeyError(f"Node {node_id} has no asset")
        self._touch()
        return self.assets.set_value(asset.id, value)

    # -- edges ---------------------------------------------------------

    def connect(
        self,
        source: str,
        target: str,
        source_handle: Optional[str] = None,
        target_handle: Optional[str] = None,
        kind: str = "default",
        strict: bool = False,
    ) -> ConnectionValidation:
        """
        Validate and add an edge.

        The target's ``on_connect`` hook may fill fields of the target asset.

        Raises:
            GraphIntegrityError: only when ``strict`` and the edge is rejected
        """
        edge = Edge(source, target, source_handle, target_handle, kind=kind)
        result = validate_connection(self.graph, self.assets, self.behaviors, edge)
        if not result:
            logger.debug(f"Rejected edge {source} -> {target}: {result.message}")
            if strict:
                raise GraphIntegrityError(result.message)
            return result

        change = _Change(self, [source, target])
        self.graph.add_edge(edge)
        target_node = self.graph.nodes[target]
        hook = self.behaviors.get(target_node.kind).on_connect
        if hook is not None:
            updates = hook(build_connection_context(self.graph, self.assets, self.behaviors, edge))
            if updates and target_node.asset_id in self.assets:
                self.assets.update_fields(target_node.asset_id, updates)

        change.commit("Connect")
        self._touch()
        return ConnectionValidation(True, edge_id=edge.id)

    def _disconnect(self, edge: Edge) -> None:
        target_node = self.graph.find_node(edge.target)
        if target_node is not None:
            hook = self.behaviors.get(target_node.kind).on_disconnect
            if hook is not None:
                updates = hook(build_connection_context(self.graph, self.assets, self.behaviors, edge))
                if updates and target_node.asset_id in self.assets:
                    self.assets.update_fields(target_node.asset_id, updates)
        self.graph.remove_edge(edge.id)

    def disconnect(self, edge_id: str) -> Edge:
        edge = self.graph.get_edge(edge_id)
        change = _Change(self, [edge.source, edge.target])
        self._disconnect(edge)
        change.commit("Disconnect")
        self._touch()
        return edge

    # -- shortcuts and copies -------------------------------------------

    def create_shortcut(self, node_id: str) -> Node:
        """Reference node pointing at ``node_id``, linked to it by a link edge."""
        target = self.get_node(node_id)
        self.history.pause()
        try:
            shortcut = self.add_node(
                "reference",
                value={"target_id": target.id},
                position={
                    "x": target.position.get("x", 0) + SHORTCUT_OFFSET,
                    "y": target.position.get("y", 0) + SHORTCUT_OFFSET,
                },
                parent_id=target.parent_id,
                data={"title": f"Shortcut to {target.title or target.id}"},
            )
            self.connect(target.id, shortcut.id, "origin", LINK_HANDLE, kind="link", strict=True)
        finally:
            self.history.resume("Create shortcut")
        return shortcut

    def relink_shortcut(self, shortcut_id: str, new_target_id: str) -> ConnectionValidation:
        """
        Point a shortcut at another node.

        Every edge into the shortcut is rewired to come from the new target.
        """
        shortcut = self.get_node(shortcut_id)
        if self.definitions.resolve_kind(shortcut.kind) != "reference":
            raise ValueError(f"Node {shortcut_id} is not a shortcut")
        new_target = self.graph.find_node(new_target_id)
        if new_target is None:
            return ConnectionValidation(False, "Node not found")
        if would_create_cycle(self.graph, new_target_id, shortcut_id):
            return ConnectionValidation(False, "Connection would create a cycle")

        incoming = self.graph.incoming(shortcut_id)
        change = _Change(self, [shortcut_id, new_target_id, *[e.source for e in incoming]])

        self.apply_patches([NodePatch(shortcut_id, {"data": {
            "target_id": new_target_id,
            "title": f"Shortcut to {new_target.title or new_target.id}",
        }})])
        for edge in incoming:
            edge.source = new_target_id
        if not any(e.kind == "link" for e in incoming):
            self.graph.add_edge(Edge(new_target_id, shortcut_id, "origin", LINK_HANDLE, kind="link"))

        change.commit("Relink shortcut")
        self.propagator.recheck([shortcut_id])
        self._touch()
        return ConnectionValidation(True)

    def detach_node(self, node_id: str) -> Node:
        """Turn a generated node into a plain one: drop provenance and incoming edges."""
        node = self.get_node(node_id)
        change = _Change(self, [node_id])
        for edge in self.graph.incoming(node_id):
            self._disconnect(edge)
        self.apply_patches([NodePatch(node_id, {"data": {
            "provenance": None,
            "state": ExecutionState.IDLE.value,
        }})])
        change.commit("Detach node")
        self._touch()
        return node

    def duplicate_node(self, node_id: str, position: Optional[Dict[str, float]] = None) -> Node:
        """Copy a node with its own copy of the asset."""
        original = self.get_node(node_id)
        change = _Change(self, [original.parent_id])

        data = {k: copy.deepcopy(v) for k, v in original.data.items() if k not in RUN_KEYS}
        asset = self.assets.get(original.asset_id)
        if asset is not None:
            data["asset_id"] = self.assets.create(
                asset.kind,
                asset.value,
                name=f"{asset.sys.name} (Copy)",
                config=asset.config,
                source="user",
            )

        node = Node(
            id=new_node_id(original.kind),
            kind=original.kind,
            parent_id=original.parent_id,
            position=dict(position or {
                "x": original.position.get("x", 0) + SHORTCUT_OFFSET,
                "y": original.position.get("y", 0) + SHORTCUT_OFFSET,
            }),
            width=original.width,
            height=original.height,
            data=data,
        )
        self.graph.add_node(node)
        self._child_added(node)

        change.commit(f"Duplicate {original.kind}", node.id)
        self._touch()
        return node

    # -- undo ------------------------------------------------------------

    def undo(self) -> Optional[str]:
        return self.history.undo()

    def redo(self) -> Optional[str]:
        return self.history.redo()

    def _scope(self, node_ids: Iterable[str]) -> Tuple[Set[str], Set[str], Set[str]]:
        """Nodes, edges and assets an edit around ``node_ids`` may touch."""
        nodes: Set[str] = set()
        for nid in node_ids:
            if nid not in self.graph:
                continue
            nodes.update(self.graph.removal_closure(nid))
            parent = self.graph.find_node(self.graph.nodes[nid].parent_id)
            if parent is not None:
                nodes.add(parent.id)
                nodes.update(c.id for c in self.graph.children_of(parent.id))
        edges = {e.id for e in self.graph.edges.values() if e.source in nodes or e.target in nodes}
        assets = {self.graph.nodes[n].asset_id for n in nodes if self.graph.nodes[n].asset_id}
        return nodes, edges, assets

    def _capture(self, node_ids: Iterable[str], edge_ids: Iterable[str], asset_ids: Iterable[str]) -> _Snapshot:
        snapshot = _Snapshot()
        for nid in node_ids:
            node = self.graph.find_node(nid)
            snapshot.nodes[nid] = node.to_dict() if node else None
        for eid in edge_ids:
            edge = self.graph.edges.get(eid)
            snapshot.edges[eid] = edge.to_dict() if edge else None
        for aid in asset_ids:
            asset = self.assets.get(aid)
            snapshot.assets[aid] = copy.deepcopy(asset.to_dict()) if asset else None
        return snapshot

    def _restore(self, snapshot: _Snapshot) -> None:
        for eid, data in snapshot.edges.items():
            if data is None:
                self.graph.edges.pop(eid, None)
        for nid, data in snapshot.nodes.items():
            if data is None:
                self.graph.nodes.pop(nid, None)
        for aid, data in snapshot.assets.items():
            if data is None:
                self.assets.delete(aid)
            else:
                self.assets.add(Asset.from_dict(copy.deepcopy(data)))
        for nid, data in snapshot.nodes.items():
            if data is not None:
                self.graph.nodes[nid] = Node.from_dict(data)
        for eid, data in snapshot.edges.items():
            if data is not None:
                self.graph.edges[eid] = Edge.from_dict(data)
        # restored assets bypass change notification; re-derive stale flags
        self.propagator.recheck(list(self.graph.nodes))
        self._touch()

    # -- persistence -----------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        graph = self.graph.to_dict()
        return {
            "version": PROJECT_VERSION,
            "meta": dict(self.meta),
            "nodes": graph["nodes"],
            "edges": graph["edges"],
            "assets": self.assets.to_dict(),
        }

    @classmethod
    def from_dict(
        cls,
        data: Dict[str, Any],
        settings: Optional[Settings] = None,
        definitions: Optional[NodeRegistry] = None,
        behaviors: Optional[BehaviorRegistry] = None,
    ) -> "Project":
        version = str(data.get("version", PROJECT_VERSION))
        if version.split(".")[0] != PROJECT_VERSION.split(".")[0]:
            logger.warning(f"Project version {version} differs from {PROJECT_VERSION}")

        project = cls(settings, definitions, behaviors)
        project.meta.update(data.get("meta") or {})
        project.assets.load_dict(data.get("assets") or {})
        project.graph = Graph.from_dict(data)
        project.propagator.graph = project.graph

        for node in project.graph.nodes.values():
            if node.asset_id and node.asset_id not in project.assets:
                logger.warning(f"Node {node.id} refers to missing asset {node.asset_id}")
        return project

    def save(self, path: Path | str) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, ensure_ascii=False)
        logger.info(f"Saved project to {path}")
        return path

    @classmethod
    def load(
        cls,
        path: Path | str,
        settings: Optional[Settings] = None,
        definitions: Optional[NodeRegistry] = None,
        behaviors: Optional[BehaviorRegistry] = None,
    ) -> "Project":
        path = Path(path)
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        project = cls.from_dict(data, settings, definitions, behaviors)
        logger.info(f"Loaded project {project.meta.get('name')} from {path}")
        return project
