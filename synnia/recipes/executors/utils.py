# synnia/recipes/executors/utils.py
"""Helpers shared by the built-in executors."""

import json
import logging
import re
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")
JSON_BLOCK = re.compile(r"```json\s*([\s\S]*?)\s*```")
JSON_ARRAY = re.compile(r"\[\s*\{[\s\S]*\}\s*\]")
TRAILING_COMMA = re.compile(r",\s*$")


def extract_value(value: Any) -> Any:
    """Unwrap ``{"content": ...}`` / ``{"value": ...}`` wrappers."""
    if isinstance(value, dict):
        if "content" in value:
            return value["content"]
        if "value" in value:
            return value["value"]
    return value


def extract_text(value: Any) -> str:
    value = extract_value(value)
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (dict, list, bool)):
        return json.dumps(value, ensure_ascii=False)
    return str(value)


def extract_number(value: Any) -> float:
    value = extract_value(value)
    if value is None or value == "":
        return 0
    return float(value)


def interpolate(template: str, values: Dict[str, Any]) -> str:
    """Replace ``{{key}}`` placeholders; unknown keys become empty strings."""
    return PLACEHOLDER.sub(lambda m: extract_text(values.get(m.group(1))), template or "")


def repair_truncated_json_array(text: str) -> Optional[str]:
    """
    Salvage a JSON array that was cut off mid-stream.

    Everything after the last complete ``}`` is dropped and the array is
    closed. Returns the repaired text, or None if it cannot be repaired.
    """
    text = text.strip()
    if not text.startswith("["):
        return None
    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        pass

    last = text.rfind("}")
    if last == -1:
        return None
    repaired = TRAILING_COMMA.sub("", text[:last + 1]) + "]"
    try:
        json.loads(repaired)
    except json.JSONDecodeError:
        return None

    logger.warning(f"Repaired truncated JSON array, dropped {len(text) - last - 1} trailing characters")
    return repaired


def extract_json(text: str) -> Tuple[bool, Any]:
    """
    Parse JSON out of an LLM response.

    Tries a fenced ```json block, then a bare array of objects, then the
    whole text, and finally a truncated-array repair.

    Returns:
        (success, data)
    """
    candidate = text
    block = JSON_BLOCK.search(text)
    if block:
        candidate = block.group(1)
    else:
        array = JSON_ARRAY.search(text)
        if array:
            candidate = array.group(0)

    try:
        return True, json.loads(candidate)
    except json.JSONDecodeError:
        repaired = repair_truncated_json_array(candidate)
        if repaired is not None:
            return True, json.loads(repaired)
        return False, None
