# synnia/recipes/executors - Executor dispatch
"""
Built-in executor types and the factory registry.

    factories = default_executor_factories()
    execute = factories.create({"type": "template", "template": "Hi {{name}}"})
    result = await execute(ExecutionContext(inputs={"name": "Ada"}))
"""

from .base import (
    ExecutionContext,
    ExecutionResult,
    Executor,
    ExecutorFactory,
    ExecutorFactoryRegistry,
    NodeSpec,
    failing_executor,
)
from .custom import create_custom_executor
from .expression import create_expression_executor, evaluate
from .http import create_http_executor
from .llm_agent import create_llm_agent_executor
from .media import create_media_executor
from .template import create_template_executor
from .utils import extract_json, extract_text, extract_value, interpolate, repair_truncated_json_array

BUILTIN_FACTORIES = {
    "template": create_template_executor,
    "expression": create_expression_executor,
    "http": create_http_executor,
    "llm-agent": create_llm_agent_executor,
    "media": create_media_executor,
    "custom": create_custom_executor,
}


def default_executor_factories() -> ExecutorFactoryRegistry:
    registry = ExecutorFactoryRegistry()
    for executor_type, factory in BUILTIN_FACTORIES.items():
        registry.register(executor_type, factory)
    return registry


__all__ = [
    "BUILTIN_FACTORIES",
    "ExecutionContext",
    "ExecutionResult",
    "Executor",
    "ExecutorFactory",
    "ExecutorFactoryRegistry",
    "NodeSpec",
    "default_executor_factories",
    "evaluate",
    "extract_json",
    "extract_text",
    "extract_value",
    "failing_executor",
    "interpolate",
    "repair_truncated_json_array",
]
