# synnia/hashing.py
"""
Content fingerprints.

Every asset value is canonicalized into a plain JSON structure before it is
hashed, so two values that compare equal always produce the same digest no
matter how their mappings were built up.
"""

import dataclasses
import hashlib
import json
import math
from pathlib import Path
from typing import Any

DEFAULT_ALGORITHM = "sha256"


def canonicalize(value: Any) -> Any:
    """
    Reduce a value to a JSON-safe structure with a single representation.

    Mappings keep string keys (ordering is applied at serialization time),
    sequences become lists, sets are sorted by their own canonical JSON, and
    bytes are tagged so they never collide with a string of the same text.

    Raises:
        ValueError: for NaN/infinite floats or unsupported types
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueError(f"Cannot fingerprint non-finite float: {value!r}")
        return value
    if isinstance(value, dict):
        return {str(k): canonicalize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [canonicalize(v) for v in value]
    if isinstance(value, (set, frozenset)):
        items = [canonicalize(v) for v in value]
        return sorted(items, key=_dumps)
    if isinstance(value, (bytes, bytearray)):
        return {"$bytes": bytes(value).hex()}
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return canonicalize(dataclasses.asdict(value))
    if hasattr(value, "to_dict"):
        return canonicalize(value.to_dict())
    raise ValueError(f"Cannot fingerprint value of type {type(value).__name__}")


def _dumps(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def canonical_json(value: Any) -> str:
    """Serialize a value in canonical form (sorted keys, compact separators)."""
    return _dumps(canonicalize(value))


def stable_hash(value: Any, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """
    Fingerprint an arbitrary value.

    Args:
        value: Data to hash (canonicalized, then JSON serialized)
        algorithm: hashlib algorithm name (default: sha256)

    Returns:
        Full hex digest
    """
    hasher = hashlib.new(algorithm)
    hasher.update(canonical_json(value).encode("utf-8"))
    return hasher.hexdigest()


def content_hash(text: str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Hash raw text content without JSON canonicalization."""
    hasher = hashlib.new(algorithm)
    hasher.update(text.encode("utf-8"))
    return hasher.hexdigest()


def file_hash(path: Path | str, algorithm: str = DEFAULT_ALGORITHM) -> str:
    """Hash a file's bytes in chunks."""
    hasher = hashlib.new(algorithm)
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(65536), b""):
            hasher.update(chunk)
    return hasher.hexdigest()
