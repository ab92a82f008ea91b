#!/usr/bin/env python3
"""
Synnia CLI

  synnia hash <file>                  - Fingerprint a JSON/YAML/text value
  synnia recipes <dir>...             - List recipes by category
  synnia validate <manifest>          - Parse and check one manifest
  synnia stale <project.json>         - List stale nodes of a project
  synnia run <project.json> <node>    - Run a recipe node and save the project

Usage:
  synnia [--config FILE] [-v] <command> ...
"""

import argparse
import asyncio
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import List

import yaml

from .config import Settings
from .errors import ManifestError
from .hashing import stable_hash


def read_value(path: Path):
    """Load a file as JSON, YAML, or plain text by extension."""
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()
    if suffix == ".json":
        return json.loads(text)
    if suffix in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return text


def load_recipes(settings: Settings, dirs: List[str]):
    """Registry populated from explicit dirs, else the configured ones."""
    from .recipes import RecipeRegistry

    registry = RecipeRegistry()
    paths = [Path(d) for d in dirs] if dirs else settings.recipe_dirs
    skipped = {}
    for path in paths:
        if not path.is_dir():
            print(f"Warning: recipe directory not found: {path}", file=sys.stderr)
            continue
        report = registry.load_directory(path)
        skipped.update(report.skipped)
    return registry, skipped


def cmd_hash(args, settings: Settings):
    """Print the fingerprint of a file's value."""
    value = read_value(Path(args.file))
    print(stable_hash(value, args.algorithm or settings.hash_algorithm))


def cmd_recipes(args, settings: Settings):
    """List loaded recipes grouped by category."""
    registry, skipped = load_recipes(settings, args.dirs)

    if args.json:
        print(json.dumps({
            "recipes": [r.summary() for r in registry.all()],
            "skipped": skipped,
        }, indent=2))
        return

    for category, recipes in sorted(registry.by_category().items()):
        print(f"{category}:")
        for recipe in recipes:
            print(f"  {recipe.id:<24} {recipe.name} [{recipe.executor_config.get('type')}]")

    print(f"\nLoaded: {len(registry)}")
    if skipped:
        print(f"Skipped: {len(skipped)}")
        for source, reason in skipped.items():
            print(f"  {source}: {reason}")


def cmd_validate(args, settings: Settings):
    """Parse one manifest file or package directory."""
    from .recipes import RecipeRegistry, load_recipe_dir, parse_manifest

    path = Path(args.manifest)
    try:
        if path.is_dir():
            manifest = load_recipe_dir(path)
        else:
            manifest = parse_manifest(path.read_text(encoding="utf-8"), str(path))
        recipe = RecipeRegistry().register_manifest(manifest, str(path))
    except (ManifestError, OSError) as e:
        print(f"Invalid: {e}")
        sys.exit(1)

    print(f"Valid: {recipe.id} ({recipe.name})")
    print(json.dumps(recipe.summary(), indent=2))


def cmd_stale(args, settings: Settings):
    """List stale nodes and the sources that changed."""
    from .project import Project
    from .provenance import mismatched_sources

    project = Project.load(args.project, settings)
    stale = project.stale_nodes()
    if not stale:
        print("No stale nodes")
        return

    for node in stale:
        changed = mismatched_sources(project.graph, project.assets, node.provenance, settings.hash_algorithm)
        print(f"{node.id} ({node.title or node.kind})")
        for source in changed:
            print(f"  changed: {source.node_id} [{source.slot or '-'}]")
    print(f"\nStale: {len(stale)}")


def cmd_run(args, settings: Settings):
    """Run a recipe node of a saved project."""
    from .engine import ExecutionEngine
    from .project import Project

    # nothing observes the success display in a one-shot run
    settings = dataclasses.replace(settings, success_display_delay=0)
    project = Project.load(args.project, settings)
    registry, _ = load_recipes(settings, args.recipes)
    engine = ExecutionEngine(project, registry, settings=settings)

    try:
        project.get_node(args.node)
    except KeyError:
        print(f"Error: node not found: {args.node}")
        sys.exit(1)

    result = asyncio.run(engine.run(args.node, recipe_id=args.recipe_id))
    if not result.success:
        print(f"[FAILED] {result.error}")
        sys.exit(1)

    output_path = project.save(args.output or args.project)
    print(f"[DONE] {args.node}")
    if result.merged_node_id:
        print(f"Merged into: {result.merged_node_id}")
    for node_id in result.created_node_ids:
        print(f"Created: {node_id}")
    print(f"Saved: {output_path}")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="synnia",
        description="Synnia - node graph and recipe execution",
    )
    parser.add_argument("--config", help="Config file (default: ~/.synnia/config.yaml)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    hash_parser = subparsers.add_parser("hash", help="Fingerprint a value")
    hash_parser.add_argument("file", help="JSON, YAML or text file")
    hash_parser.add_argument("--algorithm", help="hashlib algorithm (default from config)")

    recipes_parser = subparsers.add_parser("recipes", help="List recipes")
    recipes_parser.add_argument("dirs", nargs="*", help="Recipe directories (default from config)")
    recipes_parser.add_argument("--json", action="store_true", help="Print JSON")

    validate_parser = subparsers.add_parser("validate", help="Validate a manifest")
    validate_parser.add_argument("manifest", help="Manifest YAML file or package directory")

    stale_parser = subparsers.add_parser("stale", help="List stale nodes")
    stale_parser.add_argument("project", help="Project JSON file")

    run_parser = subparsers.add_parser("run", help="Run a recipe node")
    run_parser.add_argument("project", help="Project JSON file")
    run_parser.add_argument("node", help="Recipe node id")
    run_parser.add_argument("-r", "--recipes", action="append", default=[],
                            help="Recipe directory (repeatable, default from config)")
    run_parser.add_argument("--recipe-id", help="Run this recipe instead of the node's own")
    run_parser.add_argument("-o", "--output", help="Save to this file instead of the input")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    settings = Settings.load(args.config)

    commands = {
        "hash": cmd_hash,
        "recipes": cmd_recipes,
        "validate": cmd_validate,
        "stale": cmd_stale,
        "run": cmd_run,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        sys.exit(1)
    command(args, settings)


if __name__ == "__main__":
    main()
