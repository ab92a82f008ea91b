# synnia/provenance.py
"""
Provenance stamping and staleness propagation.

A generated node records the fingerprint of every upstream node it was
computed from. When an asset changes, nodes whose provenance names one of
the asset's owners are re-checked and flipped to ``stale`` on mismatch.
Propagation is one level per change event: a node turning stale does not
change its own value, so nothing further downstream is touched.
"""

import logging
import time
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .assets import AssetStore
from .behavior import NodePatch, apply_patches
from .graph import ExecutionState, Graph, Node, Provenance, ProvenanceSource
from .hashing import DEFAULT_ALGORITHM, stable_hash
from .ports import follow_reference

logger = logging.getLogger(__name__)

# Node data that changes without changing what the node represents
TRANSIENT_KEYS = frozenset({
    "state",
    "error_message",
    "execution_result",
    "provenance",
    "collapsed",
    "expanded_height",
    "selected",
})


def node_fingerprint(
    graph: Graph,
    assets: AssetStore,
    node_id: str,
    algorithm: str = DEFAULT_ALGORITHM,
) -> Optional[str]:
    """
    Live fingerprint of a node.

    Nodes with an asset (directly or through a shortcut) use the asset hash;
    other nodes hash their data minus transient keys. None for unknown ids.
    """
    node = graph.find_node(node_id)
    if node is None:
        return None
    owner = follow_reference(graph, node)
    asset = assets.get(owner.asset_id)
    if asset is not None:
        return asset.hash
    stable = {k: v for k, v in owner.data.items() if k not in TRANSIENT_KEYS}
    return stable_hash(stable, algorithm)


def node_version(graph: Graph, assets: AssetStore, node_id: str) -> float:
    node = graph.find_node(node_id)
    if node is None:
        return 0.0
    asset = assets.get(follow_reference(graph, node).asset_id)
    return asset.sys.updated_at if asset is not None else 0.0


def stamp(
    graph: Graph,
    assets: AssetStore,
    recipe_id: str,
    sources: Iterable[Tuple[str, Optional[str]]],
    params: Optional[Dict[str, Any]] = None,
    algorithm: str = DEFAULT_ALGORITHM,
) -> Provenance:
    """
    Build a provenance record.

    Args:
        sources: (node_id, slot) pairs; repeated node ids keep the first slot
        params: Resolved inputs at generation time
    """
    seen = set()
    entries = []
    for node_id, slot in sources:
        if node_id in seen:
            continue
        fingerprint = node_fingerprint(graph, assets, node_id, algorithm)
        if fingerprint is None:
            logger.warning(f"Provenance source {node_id} not found")
            continue
        seen.add(node_id)
        entries.append(ProvenanceSource(
            node_id=node_id,
            node_hash=fingerprint,
            node_version=node_version(graph, assets, node_id),
            slot=slot,
        ))
    return Provenance(
        recipe_id=recipe_id,
        sources=tuple(entries),
        params_snapshot=dict(params or {}),
        generated_at=time.time(),
    )


def mismatched_sources(
    graph: Graph,
    assets: AssetStore,
    provenance: Provenance,
    algorithm: str = DEFAULT_ALGORITHM,
) -> List[ProvenanceSource]:
    """Sources whose stored fingerprint no longer matches."""
    return [
        s for s in provenance.sources
        if node_fingerprint(graph, assets, s.node_id, algorithm) != s.node_hash
    ]


def is_stale(graph: Graph, assets: AssetStore, node: Node, algorithm: str = DEFAULT_ALGORITHM) -> bool:
    provenance = node.provenance
    if provenance is None:
        return False
    return bool(mismatched_sources(graph, assets, provenance, algorithm))


def stale_nodes(graph: Graph, assets: AssetStore, algorithm: str = DEFAULT_ALGORITHM) -> List[Node]:
    return [n for n in graph.nodes.values() if is_stale(graph, assets, n, algorithm)]


class StalenessPropagator:
    """
    Asset listener that flags generated nodes whose sources changed.

    Subscribe ``on_asset_changed`` to an AssetStore. Stored provenance is
    never modified; only the node's ``state`` is patched.
    """

    def __init__(self, graph: Graph, assets: AssetStore, algorithm: str = DEFAULT_ALGORITHM):
        self.graph = graph
        self.assets = assets
        self.algorithm = algorithm

    def owners_of(self, asset_id: str) -> List[str]:
        """Nodes exposing the asset, including shortcuts to them."""
        owners = [n.id for n in self.graph.nodes_with_asset(asset_id)]
        owner_set = set(owners)
        for node in self.graph.nodes.values():
            if not node.asset_id and node.data.get("target_id") in owner_set:
                owners.append(node.id)
        return owners

    def on_asset_changed(self, asset_id: str, old_hash: str, new_hash: str) -> List[str]:
        """Re-check dependents of the asset's owners. Returns ids whose state changed."""
        if old_hash == new_hash:
            return []
        changed = self.recheck(self.owners_of(asset_id))
        if changed:
            logger.debug(f"Asset {asset_id} changed: re-flagged {', '.join(changed)}")
        return changed

    def recheck(self, owner_ids: Iterable[str]) -> List[str]:
        """Re-evaluate every node whose provenance names one of ``owner_ids``."""
        owners = set(owner_ids)
        if not owners:
            return []

        patches = []
        for node in self.graph.nodes.values():
            provenance = node.provenance
            if provenance is None or not any(s.node_id in owners for s in provenance.sources):
                continue
            state = node.state
            if state is ExecutionState.RUNNING:
                continue
            stale = bool(mismatched_sources(self.graph, self.assets, provenance, self.algorithm))
            if stale and state is not ExecutionState.STALE:
                patches.append(NodePatch(node.id, {"data": {"state": ExecutionState.STALE.value}}))
            elif not stale and state is ExecutionState.STALE:
                patches.append(NodePatch(node.id, {"data": {"state": ExecutionState.IDLE.value}}))

        return apply_patches(self.graph, patches)
