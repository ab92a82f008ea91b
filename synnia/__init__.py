# synnia - Node graph workspace with content-addressed assets and recipe execution
#
# Nodes on a canvas own assets (text, images, records, arrays). Recipes are
# declarative transformations that read connected nodes, call an executor,
# and write their results back into the graph as new or merged nodes.
#
# Core concepts:
# - Asset: A hashed value owned by one or more nodes
# - Graph: Nodes, containment, and typed edges between ports
# - Behavior: Per-kind hooks for creation, connection and layout
# - Recipe: Input schema plus executor, loaded from YAML manifests
# - Engine: Runs recipe nodes and records provenance for staleness

from .assets import Asset, AssetHistory, AssetKind, AssetStore
from .behavior import BehaviorRegistry, NodeBehavior, NodePatch, PortValue
from .config import Settings
from .engine import ExecutionEngine, RunResult
from .errors import ExpressionError, GraphIntegrityError, ManifestError, SynniaError
from .graph import Edge, ExecutionState, Graph, Node, Provenance
from .hashing import stable_hash
from .history import UndoStack
from .nodes import NodeDefinition, NodeRegistry, default_registries
from .project import Project
from .provenance import StalenessPropagator
from .recipes import RecipeDefinition, RecipeRegistry
from .validator import ConnectionValidation, validate_connection

__all__ = [
    # Core
    "Asset",
    "AssetHistory",
    "AssetKind",
    "AssetStore",
    "Edge",
    "ExecutionState",
    "Graph",
    "Node",
    "Provenance",
    "stable_hash",
    # Behaviors
    "BehaviorRegistry",
    "NodeBehavior",
    "NodeDefinition",
    "NodePatch",
    "NodeRegistry",
    "PortValue",
    "default_registries",
    "ConnectionValidation",
    "validate_connection",
    # Recipes and execution
    "ExecutionEngine",
    "RecipeDefinition",
    "RecipeRegistry",
    "RunResult",
    "StalenessPropagator",
    # Workspace
    "Project",
    "Settings",
    "UndoStack",
    # Errors
    "SynniaError",
    "ManifestError",
    "GraphIntegrityError",
    "ExpressionError",
]

__version__ = "0.1.0"
