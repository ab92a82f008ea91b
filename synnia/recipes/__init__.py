# synnia/recipes - Recipe definitions, loading and execution
"""
Recipes are declarative transformations: an input schema plus an executor.

    registry = RecipeRegistry()
    report = registry.load_directory("recipes/")
    recipe = registry.get("text.concat")
"""

from .loader import (
    LoadReport,
    PackageFiles,
    RecipeRegistry,
    check_schema_compatibility,
    create_recipe,
    load_recipe_dir,
    load_recipe_package,
    merge_schemas,
    parse_manifest,
    synthesize_executor_config,
    validate_manifest,
)
from .schema import FieldDefinition, OutputConfig, RecipeDefinition

__all__ = [
    "FieldDefinition",
    "LoadReport",
    "OutputConfig",
    "PackageFiles",
    "RecipeDefinition",
    "RecipeRegistry",
    "check_schema_compatibility",
    "create_recipe",
    "load_recipe_dir",
    "load_recipe_package",
    "merge_schemas",
    "parse_manifest",
    "synthesize_executor_config",
    "validate_manifest",
]
