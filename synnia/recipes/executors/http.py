# synnia/recipes/executors/http.py
"""HTTP executor: one interpolated request, JSON or text response."""

import logging
from typing import Any, Dict

import httpx

from .base import ExecutionContext, ExecutionResult, Executor
from .utils import interpolate

logger = logging.getLogger(__name__)


def create_http_executor(config: Dict[str, Any]) -> Executor:
    url_template = config.get("url", "")
    method = (config.get("method") or "GET").upper()
    header_templates = config.get("headers") or {}
    body_template = config.get("body")
    response_type = config.get("response_type") or config.get("responseType") or "json"
    output_key = config.get("output_key") or config.get("outputKey") or "response"

    async def execute(ctx: ExecutionContext) -> ExecutionResult:
        url = interpolate(url_template, ctx.inputs)
        headers = {k: interpolate(v, ctx.inputs) for k, v in header_templates.items()}
        content = None
        if body_template and method != "GET":
            content = interpolate(body_template, ctx.inputs)
            if not any(k.lower() == "content-type" for k in headers):
                headers["Content-Type"] = "application/json"

        try:
            async with ctx.services.http_client() as client:
                response = await client.request(method, url, headers=headers, content=content)
        except httpx.TimeoutException:
            return ExecutionResult.failure(f"HTTP request timed out: {url}")
        except httpx.HTTPError as e:
            return ExecutionResult.failure(f"HTTP request failed: {e}")

        if not response.is_success:
            return ExecutionResult.failure(f"HTTP {response.status_code}: {response.reason_phrase}")

        if response_type == "text":
            data = response.text
        else:
            try:
                data = response.json()
            except ValueError:
                return ExecutionResult.failure("HTTP response is not valid JSON")

        logger.debug(f"{method} {url} -> {response.status_code}")
        return ExecutionResult(success=True, data={output_key: data})

    return execute
