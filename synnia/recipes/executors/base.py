# synnia/recipes/executors/base.py
"""
Executor contract and factory registry.

An executor is an async callable taking an ExecutionContext and returning
an ExecutionResult. Executors never raise: every failure is reported as
``success=False`` with a message. Factories build executors from the
``executor`` block of a recipe manifest.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ...graph import Node
from ...services import Services

logger = logging.getLogger(__name__)


@dataclass
class NodeSpec:
    """
    A node an executor asks the engine to create.

    Attributes:
        kind: Node kind or alias
        data: Initial node data; ``content`` becomes the asset value
        position: "below", "right", or {"x", "y"}
        connect_to: {"source_handle", "target_handle"} wiring from the recipe node
        docked_to: Node id, or "$prev" for the previously created node
        asset_config: Config for the created asset
    """
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)
    position: Any = None
    connect_to: Optional[Dict[str, Optional[str]]] = None
    docked_to: Optional[str] = None
    asset_config: Optional[Dict[str, Any]] = None


@dataclass
class ExecutionContext:
    """Everything an executor may read."""
    inputs: Dict[str, Any]
    node_id: Optional[str] = None
    node: Optional[Node] = None
    manifest: Dict[str, Any] = field(default_factory=dict)
    chat_context: Optional[List[Dict[str, str]]] = None
    model_config: Optional[Dict[str, Any]] = None
    services: Services = field(default_factory=Services)


@dataclass
class ExecutionResult:
    """Outcome of one executor invocation."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    create_nodes: Optional[List[NodeSpec]] = None

    @classmethod
    def failure(cls, error: str) -> "ExecutionResult":
        return cls(success=False, error=error)


Executor = Callable[[ExecutionContext], Awaitable[ExecutionResult]]
ExecutorFactory = Callable[[Dict[str, Any]], Executor]


def failing_executor(error: str) -> Executor:
    """An executor that always reports ``error``."""
    async def execute(ctx: ExecutionContext) -> ExecutionResult:
        return ExecutionResult.failure(error)
    return execute


class ExecutorFactoryRegistry:
    """Executor factories keyed by executor type."""

    def __init__(self):
        self._factories: Dict[str, ExecutorFactory] = {}

    def register(self, executor_type: str, factory: ExecutorFactory) -> None:
        if executor_type in self._factories:
            logger.warning(f"Overwriting executor factory for {executor_type}")
        self._factories[executor_type] = factory

    def create(self, config: Dict[str, Any]) -> Executor:
        """
        Build an executor from an executor config.

        Raises:
            ValueError: if the type is unknown
        """
        executor_type = config.get("type")
        factory = self._factories.get(executor_type)
        if factory is None:
            available = ", ".join(sorted(self._factories))
            raise ValueError(f"Unknown executor type: {executor_type}. Available: {available}")
        return factory(config)

    def types(self) -> List[str]:
        return list(self._factories)

    def has(self, executor_type: str) -> bool:
        return executor_type in self._factories
