# tests/test_recipes.py
"""Tests for recipe manifests, packages and the registry."""

import json

import pytest

from synnia.errors import ManifestError
from synnia.recipes import (
    FieldDefinition,
    PackageFiles,
    RecipeRegistry,
    check_schema_compatibility,
    load_recipe_dir,
    load_recipe_package,
    merge_schemas,
    parse_manifest,
    synthesize_executor_config,
)
from synnia.recipes.executors import ExecutionContext, ExecutionResult

CONCAT_YAML = """
version: 1
id: text.concat
name: Concat
category: Text
inputSchema:
  - key: a
    label: First
    required: true
  - key: b
    default: "!"
executor:
  type: template
  template: "{{a}}{{b}}"
"""

BASE_YAML = """
version: 1
id: base.style
name: Style
inputSchema:
  - key: style
    label: Style
    default: plain
  - key: tone
    label: Tone
executor:
  type: template
  template: "{{style}}"
"""

MIXED_YAML = """
version: 1
id: text.styled
name: Styled
mixin: [base.style]
inputSchema:
  - key: tone
    default: warm
  - key: text
    required: true
executor:
  type: template
  template: "{{text}} ({{style}}, {{tone}})"
"""

V2_YAML = """
version: 2
id: gen.names
name: Name Generator
model:
  category: text
  defaultParams:
    temperature: 0.2
    maxTokens: 500
input:
  - key: topic
    required: true
prompt:
  system: You name things.
  user: "Names for {{topic}}"
output:
  node: selector
"""


@pytest.fixture
def registry():
    return RecipeRegistry()


class TestParseManifest:
    """Test manifest validation."""

    def test_v1(self):
        manifest = parse_manifest(CONCAT_YAML)
        assert manifest["id"] == "text.concat"

    @pytest.mark.parametrize("missing", ["id", "name", "executor"])
    def test_v1_required_keys(self, missing):
        lines = [l for l in CONCAT_YAML.splitlines() if not l.startswith(f"{missing}:")]
        with pytest.raises(ManifestError):
            parse_manifest("\n".join(lines))

    def test_v1_requires_input(self):
        with pytest.raises(ManifestError, match="inputSchema"):
            parse_manifest("version: 1\nid: x\nname: X\nexecutor: {type: template}\n")

    def test_v2_requires_model(self):
        with pytest.raises(ManifestError, match="model"):
            parse_manifest("version: 2\nid: x\nname: X\n")

    def test_invalid_yaml(self):
        with pytest.raises(ManifestError, match="Invalid YAML"):
            parse_manifest("id: [unclosed", "bad.yaml")

    def test_not_a_mapping(self):
        with pytest.raises(ManifestError, match="mapping"):
            parse_manifest("- a\n- b\n")

    def test_source_in_message(self):
        with pytest.raises(ManifestError) as exc:
            parse_manifest("- a\n", "recipes/bad.yaml")
        assert exc.value.source == "recipes/bad.yaml"
        assert str(exc.value).startswith("recipes/bad.yaml:")


class TestFields:
    """Test field normalization and schema merging."""

    def test_select_becomes_string_widget(self):
        f = FieldDefinition.from_manifest({"key": "mode", "type": "select", "options": ["a", "b"]})
        assert f.type == "string"
        assert f.widget == "select"
        assert f.display_name == "mode"

    def test_required_keys_rule(self):
        f = FieldDefinition.from_manifest({"key": "obj", "type": "object", "rules": {"requiredKeys": ["a"]}})
        assert f.required_keys == ["a"]

    def test_missing_key(self):
        with pytest.raises(ValueError):
            FieldDefinition.from_manifest({"label": "No key"})

    def test_merge_schemas(self):
        """Recipe fields override mixins but keep a mixin label."""
        mixin = [FieldDefinition(key="style", label="Style"), FieldDefinition(key="tone", label="Tone")]
        own = [FieldDefinition(key="tone", default="warm"), FieldDefinition(key="text")]

        merged = merge_schemas(own, [mixin])
        assert [f.key for f in merged] == ["style", "tone", "text"]
        assert merged[1].label == "Tone"
        assert merged[1].default == "warm"


class TestRegistry:
    """Test registration and lookup."""

    def test_register_yaml(self, registry):
        recipe = registry.register_yaml(CONCAT_YAML)

        assert recipe.id in registry
        assert registry.get("text.concat") is recipe
        assert recipe.defaults() == {"b": "!"}
        assert recipe.get_field("a").label == "First"
        assert recipe.summary()["executor"] == "template"

    def test_overwrite(self, registry):
        registry.register_yaml(CONCAT_YAML)
        registry.register_yaml(CONCAT_YAML.replace("name: Concat", "name: Concat 2"))
        assert len(registry) == 1
        assert registry.get("text.concat").name == "Concat 2"

    def test_unknown_executor_type(self, registry):
        with pytest.raises(ManifestError, match="Unknown executor type"):
            registry.register_yaml(CONCAT_YAML.replace("type: template", "type: teleport"))

    def test_by_category(self, registry):
        registry.register_yaml(CONCAT_YAML)
        registry.register_yaml(BASE_YAML)
        groups = registry.by_category()
        assert [r.id for r in groups["Text"]] == ["text.concat"]
        assert [r.id for r in groups["Other"]] == ["base.style"]

    def test_mixin_resolution(self, registry):
        registry.register_yaml(BASE_YAML)
        recipe = registry.register_yaml(MIXED_YAML)
        assert [f.key for f in recipe.input_schema] == ["style", "tone", "text"]
        assert recipe.defaults() == {"style": "plain", "tone": "warm"}

    def test_get_resolved_sees_updated_mixin(self, registry):
        registry.register_yaml(BASE_YAML)
        registry.register_yaml(MIXED_YAML)
        registry.register_yaml(BASE_YAML.replace("default: plain", "default: bold"))

        assert registry.get_resolved("text.styled").defaults()["style"] == "bold"

    def test_missing_mixin_is_skipped(self, registry):
        recipe = registry.register_yaml(MIXED_YAML)
        assert [f.key for f in recipe.input_schema] == ["tone", "text"]

    def test_register_custom(self, registry):
        base = registry.register_yaml(CONCAT_YAML)
        registry.register_custom(base)
        assert registry.get_resolved("text.concat") is base

    @pytest.mark.asyncio
    async def test_execute(self, registry):
        recipe = registry.register_yaml(CONCAT_YAML)
        result = await recipe.execute(ExecutionContext(inputs={"a": "Hi", "b": "?"}))
        assert result.success
        assert result.data == {"result": "Hi?"}

    def test_runtime_executor_type(self, registry):
        """New executor types can be registered at runtime."""
        async def shout(ctx):
            return ExecutionResult(success=True, data=ctx.inputs["a"].upper())

        registry.executors.register("shout", lambda config: shout)
        recipe = registry.register_yaml(CONCAT_YAML.replace("type: template", "type: shout"))
        assert recipe.executor_config["type"] == "shout"


class TestVersion2:
    """Test model-driven manifests."""

    def test_synthesized_llm_config(self):
        config = synthesize_executor_config(parse_manifest(V2_YAML))
        assert config["type"] == "llm-agent"
        assert config["system_prompt"] == "You name things."
        assert config["user_prompt_template"] == "Names for {{topic}}"
        assert config["parse_as"] == "json"
        assert config["temperature"] == 0.2
        assert config["max_tokens"] == 500

    def test_text_output_parses_as_text(self):
        manifest = parse_manifest(V2_YAML.replace("node: selector", "node: text"))
        assert synthesize_executor_config(manifest)["parse_as"] == "text"

    def test_media_category(self):
        manifest = parse_manifest("version: 2\nid: img\nname: Img\nmodel: {category: image-generation, id: flux}\n")
        assert synthesize_executor_config(manifest) == {"type": "media", "model": "flux"}

    @pytest.mark.asyncio
    async def test_requires_model_selection(self, registry):
        recipe = registry.register_yaml(V2_YAML)
        result = await recipe.execute(ExecutionContext(inputs={"topic": "cats"}))
        assert not result.success
        assert result.error == "No model selected"


class TestPackages:
    """Test split-file recipe packages."""

    def test_package_files(self):
        manifest = load_recipe_package(PackageFiles(
            manifest=V2_YAML,
            input_schema=json.dumps([{"key": "subject", "required": True}]),
            output_config="title: Names ({{count}})\n",
            output_schema=json.dumps([{"key": "name"}]),
            user_prompt="Name a {{subject}}",
        ))
        assert manifest["input"] == [{"key": "subject", "required": True}]
        assert manifest["prompt"] == {"system": "", "user": "Name a {{subject}}"}
        assert manifest["output"]["node"] == "selector"
        assert manifest["output"]["title"] == "Names ({{count}})"
        assert manifest["output"]["schema"] == [{"key": "name"}]

    def test_bad_json(self):
        with pytest.raises(ManifestError, match="input schema"):
            load_recipe_package(PackageFiles(manifest=V2_YAML, input_schema="{nope"))

    def test_load_dir(self, tmp_path):
        package = tmp_path / "names"
        (package / "prompts").mkdir(parents=True)
        (package / "manifest.yaml").write_text(V2_YAML, encoding="utf-8")
        (package / "prompts" / "system.md").write_text("Be brief.", encoding="utf-8")

        manifest = load_recipe_dir(package)
        assert manifest["prompt"]["system"] == "Be brief."

    def test_load_dir_without_manifest(self, tmp_path):
        with pytest.raises(ManifestError):
            load_recipe_dir(tmp_path)

    def test_load_directory(self, registry, tmp_path):
        """Loose files and packages load; mixins resolve; bad files are skipped."""
        (tmp_path / "a_styled.yaml").write_text(MIXED_YAML, encoding="utf-8")
        (tmp_path / "b_base.yml").write_text(BASE_YAML, encoding="utf-8")
        (tmp_path / "broken.yaml").write_text("id: [", encoding="utf-8")
        (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")
        package = tmp_path / "names"
        package.mkdir()
        (package / "manifest.yaml").write_text(V2_YAML, encoding="utf-8")
        (tmp_path / "empty_dir").mkdir()

        report = registry.load_directory(tmp_path)

        assert sorted(report.loaded) == ["base.style", "gen.names", "text.styled"]
        assert list(report.skipped) == [str(tmp_path / "broken.yaml")]
        assert [f.key for f in registry.get("text.styled").input_schema] == ["style", "tone", "text"]

    @pytest.mark.parametrize("body", [
        "executor: template\ninputSchema: []\n",
        "executor:\n  type: template\n  template: hi\ninputSchema: []\noutput: text\n",
        "executor:\n  type: custom\n  module: json:loads\ninputSchema: []\n",
        "executor:\n  type: template\ninputSchema: text\n",
        "version: 2\nmodel: gpt\nprompt: Say hi\n",
        "version: 2\nmodel: [gpt]\n",
    ])
    def test_load_directory_skips_malformed_shapes(self, registry, tmp_path, body):
        """A well-formed YAML file with the wrong shape only skips itself."""
        (tmp_path / "a_bad.yaml").write_text(f"id: bad.one\nname: Bad\n{body}", encoding="utf-8")
        (tmp_path / "b_good.yaml").write_text(CONCAT_YAML, encoding="utf-8")

        report = registry.load_directory(tmp_path)

        assert report.loaded == ["text.concat"]
        assert list(report.skipped) == [str(tmp_path / "a_bad.yaml")]
        assert "bad.one" not in registry

    def test_shape_errors_raise_manifest_error(self, registry):
        with pytest.raises(ManifestError, match='"output" must be a mapping'):
            registry.register_yaml(
                "version: 1\nid: x\nname: X\ninputSchema: []\n"
                "executor:\n  type: template\n  template: hi\noutput: text\n"
            )


class TestSchemaCompatibility:
    """Test snapshot comparisons."""

    def test_removed_field_incompatible(self):
        result = check_schema_compatibility(
            [{"key": "a", "label": "A"}, {"key": "b"}],
            [{"key": "a"}, {"key": "c"}],
        )
        assert result["compatible"] is False
        assert result["removed"] == ["b"]
        assert result["added"] == ["c"]
        assert result["warnings"] == ['Field "b" was removed from recipe']

    def test_empty_snapshot_compatible(self):
        assert check_schema_compatibility(None, [{"key": "a"}])["compatible"] is True
