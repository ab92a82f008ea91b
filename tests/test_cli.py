# tests/test_cli.py
"""Tests for the command line interface."""

import json

import pytest

from synnia.cli import main
from synnia.config import Settings
from synnia.hashing import stable_hash
from synnia.project import Project
from synnia.provenance import stamp

UPPER_YAML = """
version: 1
id: text.upper
name: Uppercase
category: Text
inputSchema:
  - key: text
    required: true
executor:
  type: expression
  expression: text.upper()
  output_key: content
output:
  node: text
"""


@pytest.fixture
def config(tmp_path):
    return str(tmp_path / "missing-config.yaml")


@pytest.fixture
def recipe_dir(tmp_path):
    path = tmp_path / "recipes"
    path.mkdir()
    (path / "upper.yaml").write_text(UPPER_YAML)
    return path


class TestHash:

    def test_json_value(self, tmp_path, config, capsys):
        path = tmp_path / "value.json"
        path.write_text(json.dumps({"b": 1, "a": 2}))

        main(["--config", config, "hash", str(path)])

        assert capsys.readouterr().out.strip() == stable_hash({"a": 2, "b": 1})

    def test_text_value(self, tmp_path, config, capsys):
        path = tmp_path / "value.txt"
        path.write_text("Hello World")
        main(["--config", config, "hash", str(path), "--algorithm", "md5"])
        assert capsys.readouterr().out.strip() == stable_hash("Hello World", "md5")


class TestRecipes:

    def test_list(self, recipe_dir, config, capsys):
        (recipe_dir / "broken.yaml").write_text("id: [")

        main(["--config", config, "recipes", str(recipe_dir)])

        out = capsys.readouterr().out
        assert "Text:" in out
        assert "text.upper" in out
        assert "Loaded: 1" in out
        assert "Skipped: 1" in out

    def test_json(self, recipe_dir, config, capsys):
        main(["--config", config, "recipes", str(recipe_dir), "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["recipes"][0]["id"] == "text.upper"
        assert data["recipes"][0]["inputs"] == ["text"]


class TestValidate:

    def test_valid(self, recipe_dir, config, capsys):
        main(["--config", config, "validate", str(recipe_dir / "upper.yaml")])
        assert "Valid: text.upper (Uppercase)" in capsys.readouterr().out

    def test_invalid(self, tmp_path, config, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("id: x\nname: X\n")

        with pytest.raises(SystemExit) as exc:
            main(["--config", config, "validate", str(path)])

        assert exc.value.code == 1
        assert 'Recipe manifest missing "inputSchema"' in capsys.readouterr().out


class TestProjectCommands:
    """Test commands that read saved projects."""

    def test_run(self, tmp_path, recipe_dir, config, capsys):
        project = Project(Settings())
        source = project.add_node("text", value="quiet")
        node = project.add_node("recipe:text.upper", asset_config={"schema": [{"key": "text"}]})
        project.connect(source.id, node.id, "origin", "text")
        path = project.save(tmp_path / "project.json")

        main(["--config", config, "run", str(path), node.id, "-r", str(recipe_dir)])

        out = capsys.readouterr().out
        assert f"[DONE] {node.id}" in out
        loaded = Project.load(path)
        product_id = out.split("Created: ")[1].split()[0]
        assert loaded.asset_of(product_id).value == "QUIET"
        assert loaded.get_node(node.id).state.value == "idle"

    def test_run_failure(self, tmp_path, recipe_dir, config, capsys):
        project = Project(Settings())
        node = project.add_node("recipe:text.upper")
        path = project.save(tmp_path / "project.json")

        with pytest.raises(SystemExit):
            main(["--config", config, "run", str(path), node.id, "-r", str(recipe_dir)])

        assert "[FAILED] Missing required input: text" in capsys.readouterr().out

    def test_run_unknown_node(self, tmp_path, recipe_dir, config, capsys):
        path = Project(Settings()).save(tmp_path / "project.json")
        with pytest.raises(SystemExit):
            main(["--config", config, "run", str(path), "nope", "-r", str(recipe_dir)])
        assert "node not found: nope" in capsys.readouterr().out

    def test_stale(self, tmp_path, config, capsys):
        project = Project(Settings())
        source = project.add_node("text", value="v1")
        derived = project.add_node("text", value="out")
        provenance = stamp(project.graph, project.assets, "r", [(source.id, "text")])
        project.update_node_data(derived.id, {"provenance": provenance.to_dict()})
        project.set_value(source.id, "v2")
        path = project.save(tmp_path / "project.json")

        main(["--config", config, "stale", str(path)])

        out = capsys.readouterr().out
        assert derived.id in out
        assert f"changed: {source.id} [text]" in out
        assert "Stale: 1" in out

    def test_no_stale(self, tmp_path, config, capsys):
        path = Project(Settings()).save(tmp_path / "project.json")
        main(["--config", config, "stale", str(path)])
        assert "No stale nodes" in capsys.readouterr().out


def test_no_command(config):
    with pytest.raises(SystemExit):
        main(["--config", config])
