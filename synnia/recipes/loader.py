# synnia/recipes/loader.py
"""
Recipe manifest loader.

Two manifest dialects are understood:

    version 1   id, name, inputSchema (or input), executor, optional mixin
                list whose schemas are merged under the recipe's own fields
    version 2   id, name, model, plus input/prompt/output either inline or
                from package files; the executor is synthesized from the
                model category and prompts

A recipe package is a directory:

    my-recipe/
        manifest.yaml
        input.schema.json      # optional, replaces manifest input
        output.config.yaml     # optional, merged over manifest output
        output.schema.json     # optional, becomes output.schema
        prompts/system.md      # optional
        prompts/user.md        # optional
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from ..errors import ManifestError
from .executors import ExecutorFactoryRegistry, default_executor_factories
from .executors.base import ExecutionContext, ExecutionResult, Executor
from .schema import FieldDefinition, OutputConfig, RecipeDefinition

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.yaml"
MEDIA_CATEGORIES = ("image-generation", "video-generation")


@dataclass
class PackageFiles:
    """Raw contents of a recipe package."""
    manifest: str
    input_schema: Optional[str] = None
    output_config: Optional[str] = None
    output_schema: Optional[str] = None
    system_prompt: Optional[str] = None
    user_prompt: Optional[str] = None


def _load_yaml(text: str, source: Optional[str]) -> Dict[str, Any]:
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ManifestError(f"Invalid YAML: {e}", source)
    if not isinstance(raw, dict):
        raise ManifestError("Manifest must be a mapping", source)
    return raw


def _load_json(text: str, what: str, source: Optional[str]) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid {what}: {e}", source)


def validate_manifest(raw: Dict[str, Any], source: Optional[str] = None) -> Dict[str, Any]:
    """
    Check the required keys for the manifest's dialect.

    Raises:
        ManifestError: if a required key is missing
    """
    if raw.get("version") == 2:
        for key in ("id", "name", "model"):
            if not raw.get(key):
                raise ManifestError(f'Recipe manifest missing "{key}"', source)
        return raw

    for key in ("id", "name"):
        if not raw.get(key):
            raise ManifestError(f'Recipe manifest missing "{key}"', source)
    if raw.get("inputSchema") is None and raw.get("input") is None:
        raise ManifestError('Recipe manifest missing "inputSchema"', source)
    if not raw.get("executor"):
        raise ManifestError('Recipe manifest missing "executor"', source)
    if raw.get("version") != 1:
        logger.warning(f"Recipe {raw['id']} has unknown version: {raw.get('version')}, expected 1")
    return raw


def parse_manifest(yaml_content: str, source: Optional[str] = None) -> Dict[str, Any]:
    """Parse and validate a manifest from YAML text."""
    return validate_manifest(_load_yaml(yaml_content, source), source)


def load_recipe_package(files: PackageFiles, source: Optional[str] = None) -> Dict[str, Any]:
    """Assemble a manifest from package files; the split files win over inline sections."""
    manifest = parse_manifest(files.manifest, source)

    if files.input_schema:
        manifest["input"] = _load_json(files.input_schema, "input schema", source)

    if files.system_prompt or files.user_prompt:
        manifest["prompt"] = {
            "system": files.system_prompt or "",
            "user": files.user_prompt or "",
        }

    if files.output_config:
        output_config = _load_yaml(files.output_config, source)
        manifest["output"] = {**(manifest.get("output") or {}), **output_config}

    if files.output_schema:
        manifest["output"] = dict(manifest.get("output") or {})
        manifest["output"]["schema"] = _load_json(files.output_schema, "output schema", source)

    return manifest


def _read_optional(path: Path) -> Optional[str]:
    return path.read_text(encoding="utf-8") if path.exists() else None


def load_recipe_dir(path: Path | str) -> Dict[str, Any]:
    """Load a recipe package directory into a manifest."""
    path = Path(path)
    manifest_path = path / MANIFEST_FILE
    if not manifest_path.exists():
        raise ManifestError(f"No {MANIFEST_FILE}", str(path))

    files = PackageFiles(
        manifest=manifest_path.read_text(encoding="utf-8"),
        input_schema=_read_optional(path / "input.schema.json"),
        output_config=_read_optional(path / "output.config.yaml"),
        output_schema=_read_optional(path / "output.schema.json"),
        system_prompt=_read_optional(path / "prompts" / "system.md"),
        user_prompt=_read_optional(path / "prompts" / "user.md"),
    )
    return load_recipe_package(files, str(path))


def parse_fields(raw_fields: Optional[List[Dict[str, Any]]], source: Optional[str] = None) -> List[FieldDefinition]:
    try:
        return [FieldDefinition.from_manifest(f) for f in raw_fields or []]
    except (ValueError, TypeError, AttributeError) as e:
        raise ManifestError(str(e), source)


def merge_schemas(
    recipe_fields: List[FieldDefinition],
    mixin_schemas: List[List[FieldDefinition]],
) -> List[FieldDefinition]:
    """
    Merge mixin schemas under the recipe's own fields.

    Later mixins override earlier ones by key; the recipe's fields override
    all mixins but keep a mixin label when they do not set their own.
    Field order follows first appearance.
    """
    merged: Dict[str, FieldDefinition] = {}
    for schema in mixin_schemas:
        for f in schema:
            merged[f.key] = f
    for f in recipe_fields:
        existing = merged.get(f.key)
        merged[f.key] = f.merged_over(existing) if existing else f
    return list(merged.values())


# =============================================================================
# Version 2 executor synthesis
# =============================================================================

def synthesize_executor_config(manifest: Dict[str, Any]) -> Dict[str, Any]:
    """Executor config equivalent to a version 2 manifest."""
    model = manifest.get("model") or {}
    if isinstance(model, str):
        model = {"id": model}
    prompt = manifest.get("prompt") or {}
    output = manifest.get("output") or {}
    defaults = model.get("defaultParams") or model.get("default_params") or {}

    if model.get("category") in MEDIA_CATEGORIES:
        return {"type": "media", "model": model.get("id")}

    text_output = output.get("node") == "text" or output.get("format") in ("text", "markdown")
    return {
        "type": "llm-agent",
        "system_prompt": prompt.get("system", ""),
        "user_prompt_template": prompt.get("user", ""),
        "parse_as": "text" if text_output else "json",
        "temperature": defaults.get("temperature"),
        "max_tokens": defaults.get("maxTokens") or defaults.get("max_tokens"),
    }


def _require_model(execute: Executor) -> Executor:
    async def run(ctx: ExecutionContext) -> ExecutionResult:
        model_config = ctx.model_config or {}
        if not (model_config.get("model_id") or model_config.get("modelId")):
            return ExecutionResult.failure("No model selected")
        return await execute(ctx)
    return run


# =============================================================================
# Resolution
# =============================================================================

MixinLookup = Callable[[str], Optional[RecipeDefinition]]


def _check_shape(manifest: Dict[str, Any], recipe_id: str) -> None:
    for key in ("executor", "output", "prompt"):
        value = manifest.get(key)
        if value is not None and not isinstance(value, dict):
            raise ManifestError(f'"{key}" must be a mapping, got {type(value).__name__}', recipe_id)
    model = manifest.get("model")
    if model is not None and not isinstance(model, (str, dict)):
        raise ManifestError(f'"model" must be an id or a mapping, got {type(model).__name__}', recipe_id)
    for key in ("input", "inputSchema"):
        value = manifest.get(key)
        if value is not None and not isinstance(value, list):
            raise ManifestError(f'"{key}" must be a list of fields', recipe_id)


def create_recipe(
    manifest: Dict[str, Any],
    executors: ExecutorFactoryRegistry,
    get_mixin: Optional[MixinLookup] = None,
) -> RecipeDefinition:
    """
    Resolve a validated manifest into a RecipeDefinition.

    Raises:
        ManifestError: if fields or the executor cannot be built
    """
    recipe_id = manifest["id"]
    version = 2 if manifest.get("version") == 2 else 1
    _check_shape(manifest, recipe_id)

    if version == 2:
        input_schema = parse_fields(manifest.get("input"), recipe_id)
        executor_config = synthesize_executor_config(manifest)
        mixins: List[str] = []
    else:
        own_fields = parse_fields(manifest.get("inputSchema") or manifest.get("input"), recipe_id)
        executor_config = dict(manifest["executor"])
        mixin_raw = manifest.get("mixin") or []
        mixins = [mixin_raw] if isinstance(mixin_raw, str) else list(mixin_raw)
        mixin_schemas = []
        for mixin_id in mixins:
            mixin = get_mixin(mixin_id) if get_mixin else None
            if mixin is None:
                logger.warning(f"Recipe {recipe_id}: mixin {mixin_id} not found")
                continue
            mixin_schemas.append(mixin.input_schema)
        input_schema = merge_schemas(own_fields, mixin_schemas)

    try:
        execute = executors.create(executor_config)
    except (ValueError, TypeError, AttributeError, KeyError) as e:
        raise ManifestError(str(e), recipe_id)
    if version == 2:
        execute = _require_model(execute)

    output_raw = manifest.get("output") or executor_config.get("output")
    try:
        output = OutputConfig.from_dict(output_raw)
    except (ValueError, TypeError, AttributeError) as e:
        raise ManifestError(f"Invalid output: {e}", recipe_id)
    output_schema = None
    if output_raw and output_raw.get("schema"):
        output_schema = parse_fields(output_raw["schema"], recipe_id)

    return RecipeDefinition(
        id=recipe_id,
        name=manifest["name"],
        input_schema=input_schema,
        executor_config=executor_config,
        execute=execute,
        category=manifest.get("category"),
        description=manifest.get("description"),
        icon=manifest.get("icon"),
        output=output,
        output_schema=output_schema,
        manifest=manifest,
        mixins=mixins,
        version=version,
    )


def check_schema_compatibility(
    snapshot: Optional[List[Dict[str, Any]]],
    current: List[Dict[str, Any]],
) -> Dict[str, Any]:
    """
    Compare a node's saved schema snapshot with the recipe's current schema.

    Removed fields make the pair incompatible; added fields do not. An
    empty snapshot (never run) is always compatible.
    """
    if not snapshot:
        return {"compatible": True, "warnings": [], "added": [], "removed": []}

    snapshot_keys = [f["key"] for f in snapshot]
    current_keys = {f["key"] for f in current}
    labels = {f["key"]: f.get("label") for f in snapshot}

    removed = [k for k in snapshot_keys if k not in current_keys]
    added = [f["key"] for f in current if f["key"] not in set(snapshot_keys)]
    warnings = [f'Field "{labels.get(k) or k}" was removed from recipe' for k in removed]

    return {"compatible": not removed, "warnings": warnings, "added": added, "removed": removed}


# =============================================================================
# Registry
# =============================================================================

@dataclass
class LoadReport:
    """Outcome of loading a recipe directory."""
    loaded: List[str] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)


class RecipeRegistry:
    """
    Loaded recipes by id.

    Manifests are kept alongside resolved definitions so mixins can be
    re-resolved after the recipes they depend on change.
    """

    def __init__(self, executors: Optional[ExecutorFactoryRegistry] = None):
        self.executors = executors or default_executor_factories()
        self._recipes: Dict[str, RecipeDefinition] = {}
        self._manifests: Dict[str, Dict[str, Any]] = {}

    def __len__(self) -> int:
        return len(self._recipes)

    def __contains__(self, recipe_id: str) -> bool:
        return recipe_id in self._recipes

    def register_yaml(self, yaml_content: str, source: Optional[str] = None) -> RecipeDefinition:
        return self.register_manifest(_load_yaml(yaml_content, source), source)

    def register_manifest(self, manifest: Dict[str, Any], source: Optional[str] = None) -> RecipeDefinition:
        manifest = validate_manifest(manifest, source)
        recipe = create_recipe(manifest, self.executors, self._recipes.get)
        if recipe.id in self._recipes:
            logger.warning(f"Overwriting recipe {recipe.id}")
        self._manifests[recipe.id] = manifest
        self._recipes[recipe.id] = recipe
        logger.debug(f"Registered recipe {recipe.id} ({recipe.executor_config.get('type')})")
        return recipe

    def register_custom(self, recipe: RecipeDefinition) -> None:
        """Register a hand-built definition (no manifest)."""
        if recipe.id in self._recipes:
            logger.warning(f"Overwriting recipe {recipe.id}")
        self._manifests.pop(recipe.id, None)
        self._recipes[recipe.id] = recipe

    def load_directory(self, path: Path | str) -> LoadReport:
        """
        Load every manifest under ``path``.

        Accepts loose ``*.yaml``/``*.yml`` manifests and package directories
        containing ``manifest.yaml``. Manifests without mixins are registered
        first. Bad manifests are logged and skipped.
        """
        path = Path(path)
        report = LoadReport()
        pending: List[tuple] = []

        for entry in sorted(path.iterdir()):
            source = str(entry)
            try:
                if entry.is_dir():
                    if not (entry / MANIFEST_FILE).exists():
                        continue
                    manifest = load_recipe_dir(entry)
                elif entry.suffix in (".yaml", ".yml"):
                    manifest = parse_manifest(entry.read_text(encoding="utf-8"), source)
                else:
                    continue
            except (ManifestError, OSError) as e:
                logger.error(f"Skipping recipe {source}: {e}")
                report.skipped[source] = str(e)
                continue
            pending.append((source, manifest))

        pending.sort(key=lambda item: bool(item[1].get("mixin")))
        for source, manifest in pending:
            try:
                recipe = self.register_manifest(manifest)
            except ManifestError as e:
                logger.error(f"Skipping recipe {source}: {e}")
                report.skipped[source] = str(e)
                continue
            report.loaded.append(recipe.id)

        logger.info(f"Loaded {len(report.loaded)} recipes from {path} ({len(report.skipped)} skipped)")
        return report

    def get(self, recipe_id: Optional[str]) -> Optional[RecipeDefinition]:
        return self._recipes.get(recipe_id) if recipe_id else None

    def get_resolved(self, recipe_id: str) -> Optional[RecipeDefinition]:
        """The recipe with mixins re-resolved against the current registry."""
        manifest = self._manifests.get(recipe_id)
        if manifest is not None:
            return create_recipe(manifest, self.executors, self._recipes.get)
        return self._recipes.get(recipe_id)

    def all(self) -> List[RecipeDefinition]:
        return list(self._recipes.values())

    def by_category(self) -> Dict[str, List[RecipeDefinition]]:
        grouped: Dict[str, List[RecipeDefinition]] = {}
        for recipe in self._recipes.values():
            grouped.setdefault(recipe.category or "Other", []).append(recipe)
        return grouped

    def has(self, recipe_id: str) -> bool:
        return recipe_id in self._recipes

    def clear(self) -> None:
        self._recipes.clear()
        self._manifests.clear()
