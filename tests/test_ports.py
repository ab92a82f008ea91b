# tests/test_ports.py
"""Tests for port resolution."""

import pytest

from synnia.behavior import PortValue
from synnia.ports import collect_input_values, follow_reference, resolve_input_value, value_type
from synnia.project import Project


class TestResolveInputValue:
    """Test mapping port values onto fields."""

    def test_none(self):
        assert resolve_input_value(None, "x") is None

    def test_text_passes_through(self):
        assert resolve_input_value(PortValue("text", "hello"), "anything") == "hello"

    def test_object_picks_matching_key(self):
        value = PortValue("json", {"name": "Ada", "age": 36})
        assert resolve_input_value(value, "name") == "Ada"
        assert resolve_input_value(value, "other") == {"name": "Ada", "age": 36}

    def test_array_uses_first_item(self):
        assert resolve_input_value(PortValue("array", ["a", "b"]), "x") == "a"
        assert resolve_input_value(PortValue("array", []), "x") is None

    def test_array_item_fuzzy_match(self):
        """'selectedName' picks the 'name' key of the first item."""
        items = [{"id": "opt-0", "name": "Ada", "description": "Mathematician"}]
        assert resolve_input_value(PortValue("array", items), "selectedName") == "Ada"
        assert resolve_input_value(PortValue("array", items), "description") == "Mathematician"

    def test_array_item_falls_back_to_first_string(self):
        items = [{"id": "opt-0", "label": "Only"}]
        assert resolve_input_value(PortValue("array", items), "zzz") == "Only"


class TestValueType:

    def test_types(self):
        assert value_type("x") == "text"
        assert value_type([1]) == "array"
        assert value_type({"a": 1}) == "json"
        assert value_type(3) == "json"


class TestCollectInputs:
    """Test gathering connected values for a node."""

    @pytest.fixture
    def project(self):
        return Project()

    def test_collects_field_values(self, project):
        text = project.add_node("text", value="Hello")
        form = project.add_node("form", asset_config={"schema": [{"key": "greeting"}, {"key": "other"}]})
        project.connect(text.id, form.id, "origin", "greeting")

        values = collect_input_values(project.graph, project.assets, project.behaviors, form.id)
        assert values == {"greeting": "Hello"}

    def test_field_port_of_record(self, project):
        source = project.add_node("form", value={"name": "Ada", "city": "London"})
        form = project.add_node("form", asset_config={"schema": [{"key": "where"}]})
        project.connect(source.id, form.id, "field:city", "where")

        values = collect_input_values(project.graph, project.assets, project.behaviors, form.id)
        assert values == {"where": "London"}

    def test_values_flow_through_shortcuts(self, project):
        """A shortcut exposes its target's asset."""
        text = project.add_node("text", value="Hello")
        shortcut = project.create_shortcut(text.id)
        form = project.add_node("form", asset_config={"schema": [{"key": "greeting"}]})
        project.connect(shortcut.id, form.id, "origin", "greeting")

        assert follow_reference(project.graph, shortcut) is text
        values = collect_input_values(project.graph, project.assets, project.behaviors, form.id)
        assert values == {"greeting": "Hello"}

        project.set_value(text.id, "Hi there")
        values = collect_input_values(project.graph, project.assets, project.behaviors, form.id)
        assert values == {"greeting": "Hi there"}
