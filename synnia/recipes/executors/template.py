# synnia/recipes/executors/template.py
"""Template executor: ``{{key}}`` interpolation against the inputs."""

from typing import Any, Dict

from .base import ExecutionContext, ExecutionResult, Executor
from .utils import interpolate


def create_template_executor(config: Dict[str, Any]) -> Executor:
    template = config.get("template", "")
    output_key = config.get("output_key") or config.get("outputKey") or "result"

    async def execute(ctx: ExecutionContext) -> ExecutionResult:
        return ExecutionResult(success=True, data={output_key: interpolate(template, ctx.inputs)})

    return execute
