# synnia/recipes/executors/custom.py
"""
Custom executors loaded from an import path.

The executor config names a factory as ``module:attribute``; the factory is
called with the config and must return an executor. Import problems yield
an executor that reports the problem instead of raising at load time.
"""

import importlib
import logging
from typing import Any, Dict

from .base import Executor, failing_executor

logger = logging.getLogger(__name__)


def create_custom_executor(config: Dict[str, Any]) -> Executor:
    target = config.get("module") or config.get("entry")
    if not target or ":" not in target:
        return failing_executor("Custom executor requires 'module' in the form 'package.module:factory'")

    module_name, attr = target.split(":", 1)
    try:
        module = importlib.import_module(module_name)
        factory = getattr(module, attr)
    except (ImportError, AttributeError) as e:
        logger.error(f"Cannot load custom executor {target}: {e}")
        return failing_executor(f"Cannot load custom executor {target}: {e}")

    try:
        return factory(config)
    except Exception as e:
        raise ValueError(f"Custom executor factory {target} failed: {e}") from e
