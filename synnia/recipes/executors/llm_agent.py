# synnia/recipes/executors/llm_agent.py
"""
LLM agent executor.

Interpolates system/user prompt templates, calls the configured LLMService
and optionally parses the reply as JSON. With ``create_nodes`` set, an
array reply is turned into one node per element.
"""

import logging
from typing import Any, Dict, List, Optional

from ...services import LLMRequest
from .base import ExecutionContext, ExecutionResult, Executor, NodeSpec
from .utils import extract_json, interpolate

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 2048


def _option(config: Dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    value = config.get(snake)
    if value is None:
        value = config.get(camel)
    return default if value is None else value


def infer_schema(item: Any) -> List[Dict[str, Any]]:
    """Field schema from the keys of a sample item."""
    if not isinstance(item, dict):
        return [{"key": "value", "label": "Value", "type": "string"}]
    return [{"key": key, "label": key[:1].upper() + key[1:], "type": "string"} for key in item]


def build_node_specs(items: List[Any], node_config: Dict[str, Any]) -> List[NodeSpec]:
    """One node per array element, chained below the recipe."""
    if not items:
        return []
    kind = node_config.get("kind") or node_config.get("node") or "form"
    schema = node_config.get("schema") or infer_schema(items[0])
    title_template = _option(node_config, "title_template", "titleTemplate")

    specs = []
    for i, item in enumerate(items):
        values = {**item, "index": i + 1} if isinstance(item, dict) else {"index": i + 1}
        title = interpolate(title_template, values) if title_template else f"#{i + 1}"
        specs.append(NodeSpec(
            kind=kind,
            data={"title": title, "content": item, "collapsed": True},
            position="below" if i == 0 else None,
            docked_to="$prev" if i > 0 else None,
            asset_config={"schema": schema},
        ))
    return specs


def _user_prompt(template: str, ctx: ExecutionContext) -> str:
    # follow-up turns answer the latest user message
    if ctx.chat_context:
        for message in reversed(ctx.chat_context):
            if message.get("role") == "user" and message.get("content"):
                return message["content"]
    return interpolate(template, ctx.inputs)


def create_llm_agent_executor(config: Dict[str, Any]) -> Executor:
    system_template = _option(config, "system_prompt", "systemPrompt", "")
    user_template = _option(config, "user_prompt_template", "userPromptTemplate", "")
    parse_as = _option(config, "parse_as", "parseAs", "text")
    create_nodes = bool(_option(config, "create_nodes", "createNodes", False))
    node_config = _option(config, "node_config", "nodeConfig", {})

    async def execute(ctx: ExecutionContext) -> ExecutionResult:
        llm = ctx.services.llm
        if llm is None:
            return ExecutionResult.failure("No LLM service configured")

        user_prompt = _user_prompt(user_template, ctx)
        if not user_prompt.strip():
            return ExecutionResult.failure("User prompt is empty")
        system_prompt = interpolate(system_template, ctx.inputs) if system_template else None

        model_config = ctx.model_config or {}
        params = model_config.get("params") or {}
        request = LLMRequest(
            user_prompt=user_prompt,
            system_prompt=system_prompt or None,
            model_id=model_config.get("model_id"),
            temperature=_first(params.get("temperature"), config.get("temperature"),
                               ctx.inputs.get("temperature"), DEFAULT_TEMPERATURE),
            max_tokens=_first(_option(params, "max_tokens", "maxTokens"),
                              _option(config, "max_tokens", "maxTokens"),
                              ctx.inputs.get("max_tokens"), DEFAULT_MAX_TOKENS),
            json_mode=parse_as == "json",
            provider_id=model_config.get("provider"),
        )

        try:
            response = await llm.complete(request)
        except Exception as e:
            logger.error(f"LLM service error: {e}")
            return ExecutionResult.failure(str(e) or "LLM call failed")
        if not response.success:
            return ExecutionResult.failure(response.error or "LLM call failed")
        if response.truncated:
            logger.warning("LLM response was truncated at the token limit")

        if parse_as != "json":
            return ExecutionResult(success=True, data=response.text or "")

        if response.data is not None:
            data = response.data
        else:
            ok, data = extract_json(response.text or "")
            if not ok:
                return ExecutionResult.failure("Failed to parse JSON response")

        result = ExecutionResult(success=True, data=data)
        if create_nodes and isinstance(data, list):
            result.create_nodes = build_node_specs(data, node_config)
        return result

    return execute


def _first(*values: Optional[Any]) -> Any:
    for value in values:
        if value is not None:
            return value
    return None
