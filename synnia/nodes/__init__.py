# synnia/nodes - Built-in node kinds
"""
Built-in node definitions and their default behaviors.

    nodes, behaviors = default_registries()
"""

from typing import Tuple

from ..behavior import BehaviorRegistry
from .base import (
    STANDARD_BEHAVIOR,
    AssetSeed,
    CreateResult,
    NodeDefinition,
    NodeRegistry,
)
from .containers import STRUCTURAL_DEFINITIONS
from .content import CONTENT_DEFINITIONS
from .recipe import RECIPE, RECIPE_BEHAVIOR

BUILTIN_DEFINITIONS = [*CONTENT_DEFINITIONS, RECIPE, *STRUCTURAL_DEFINITIONS]


def register_builtin(nodes: NodeRegistry, behaviors: BehaviorRegistry) -> None:
    """Register every built-in kind and its behavior."""
    for definition in BUILTIN_DEFINITIONS:
        nodes.register(definition)
        if definition.behavior is not None:
            behaviors.register(definition.kind, definition.behavior)


def default_registries() -> Tuple[NodeRegistry, BehaviorRegistry]:
    """Fresh registries populated with the built-in kinds."""
    nodes = NodeRegistry()
    behaviors = BehaviorRegistry()
    register_builtin(nodes, behaviors)
    return nodes, behaviors


__all__ = [
    "AssetSeed",
    "BUILTIN_DEFINITIONS",
    "CreateResult",
    "NodeDefinition",
    "NodeRegistry",
    "RECIPE_BEHAVIOR",
    "STANDARD_BEHAVIOR",
    "default_registries",
    "register_builtin",
]
