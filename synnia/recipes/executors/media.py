# synnia/recipes/executors/media.py
"""
Media executor: image and video generation through a ModelService.

The model comes from the ``modelConfig`` input (or the context's model
config); the provider is the configured one, else the model's own, else
the first one it supports. Generated images are returned in gallery item
shape so they can feed a gallery node directly.
"""

import logging
import time
from typing import Any, Dict, List

from ...services import ModelInput
from .base import ExecutionContext, ExecutionResult, Executor

logger = logging.getLogger(__name__)

CAPTION_LENGTH = 50


def gallery_items(images: List[Any], prompt: str) -> List[Dict[str, Any]]:
    stamp = int(time.time() * 1000)
    items = []
    for idx, image in enumerate(images):
        src = image.get("url") or image.get("src", "") if isinstance(image, dict) else str(image)
        items.append({
            "id": f"gen-{stamp}-{idx}",
            "src": src,
            "starred": False,
            "caption": prompt[:CAPTION_LENGTH],
        })
    return items


def create_media_executor(config: Dict[str, Any]) -> Executor:
    async def execute(ctx: ExecutionContext) -> ExecutionResult:
        model_config = ctx.inputs.get("modelConfig") or ctx.inputs.get("model_config") \
            or ctx.model_config or {}
        model_id = model_config.get("model_id") or model_config.get("modelId") or config.get("model")
        if not model_id:
            return ExecutionResult.failure("No model selected")

        model = ctx.services.models.get(model_id)
        if model is None:
            return ExecutionResult.failure(f"Model not found: {model_id}")

        provider = model_config.get("provider") or model.provider \
            or (model.supported_providers[0] if model.supported_providers else None)
        credentials = ctx.services.credentials.credentials_for(provider) if provider else None
        if not credentials:
            return ExecutionResult.failure(f"No credentials configured for {provider}")

        prompt = str(ctx.inputs.get("prompt") or "")
        image = ctx.inputs.get("image")
        request = ModelInput(
            config=dict(model_config.get("params") or {}),
            prompt=prompt,
            negative_prompt=ctx.inputs.get("negative_prompt") or ctx.inputs.get("negativePrompt"),
            images=[image] if image else None,
            credentials=credentials,
        )

        try:
            result = await model.execute(request)
        except Exception as e:
            logger.error(f"Model {model_id} failed: {e}")
            return ExecutionResult.failure(str(e) or "Media generation failed")
        if not result.success:
            return ExecutionResult.failure(result.error or "Media generation failed")

        data = result.data or {}
        if data.get("type") == "images" and data.get("images"):
            return ExecutionResult(success=True, data=gallery_items(data["images"], prompt))
        if data.get("type") == "video" and data.get("video_url"):
            return ExecutionResult(success=True, data={"video_url": data["video_url"]})
        return ExecutionResult(success=True, data=data)

    return execute
