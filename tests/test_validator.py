# tests/test_validator.py
"""Tests for connection validation."""

import pytest

from synnia.graph import Edge
from synnia.project import Project
from synnia.validator import is_field_level_input, is_semantic_handle, validate_connection, would_create_cycle

FORM_SCHEMA = [
    {"key": "name", "label": "Name", "type": "string"},
    {"key": "locked", "label": "Locked", "type": "string", "connection": False},
]


@pytest.fixture
def project():
    return Project()


def check(project, source, target, source_handle=None, target_handle=None):
    edge = Edge(source, target, source_handle, target_handle)
    return validate_connection(project.graph, project.assets, project.behaviors, edge)


class TestHandles:
    """Test handle classification."""

    def test_semantic(self):
        for handle in ("origin", "product", "output", "trigger", "array", "reference"):
            assert is_semantic_handle(handle)
        assert not is_semantic_handle("name")

    def test_field_level(self):
        assert is_field_level_input("name")
        assert not is_field_level_input("origin")
        assert not is_field_level_input("field:name")
        assert not is_field_level_input(None)


class TestValidateConnection:
    """Test the ordered checks."""

    def test_missing_node(self, project):
        a = project.add_node("text", value="a")
        result = check(project, a.id, "nope")
        assert not result
        assert result.message == "Node not found"

    def test_semantic_handle_accepted(self, project):
        """Semantic handles skip the hook check."""
        a = project.add_node("text", value="a")
        b = project.add_node("text", value="b")
        assert check(project, a.id, b.id, "origin", "origin")

    def test_self_loop_rejected(self, project):
        a = project.add_node("text", value="a")
        result = check(project, a.id, a.id, "origin", "origin")
        assert result.message == "Connection would create a cycle"

    def test_cycle_rejected(self, project):
        """An edge closing a path back to its source is rejected."""
        a = project.add_node("text", value="a")
        b = project.add_node("text", value="b")
        c = project.add_node("text", value="c")
        assert project.connect(a.id, b.id, "origin", "origin")
        assert project.connect(b.id, c.id, "origin", "origin")

        result = project.connect(c.id, a.id, "origin", "origin")
        assert not result
        assert result.message == "Connection would create a cycle"
        assert len(project.graph.edges) == 2

    def test_occupied_field(self, project):
        """A field handle takes a single source."""
        a = project.add_node("text", value="a")
        b = project.add_node("text", value="b")
        form = project.add_node("form", asset_config={"schema": FORM_SCHEMA})
        assert project.connect(a.id, form.id, "origin", "name")

        result = project.connect(b.id, form.id, "origin", "name")
        assert not result
        assert result.message == "Field 'name' already has a connection"
        assert len(project.graph.incoming(form.id)) == 1

    def test_occupied_checked_before_cycle(self, project):
        form = project.add_node("form", asset_config={"schema": FORM_SCHEMA})
        other = project.add_node("text", value="x")
        assert project.connect(other.id, form.id, "origin", "name")
        result = check(project, form.id, form.id, "origin", "name")
        assert result.message == "Field 'name' already has a connection"

    def test_kind_without_hook(self, project):
        a = project.add_node("text", value="a")
        b = project.add_node("text", value="b")
        result = check(project, a.id, b.id, "origin", "content")
        assert result.message == "text does not accept field connections"

    def test_hook_message(self, project):
        """The target's hook decides field connections."""
        a = project.add_node("text", value="a")
        form = project.add_node("form", asset_config={"schema": FORM_SCHEMA})

        assert check(project, a.id, form.id, "origin", "name")
        assert check(project, a.id, form.id, "origin", "missing").message == "Unknown field 'missing'"
        assert check(project, a.id, form.id, "origin", "locked").message == \
            "Field 'Locked' does not accept connections"

    def test_would_create_cycle(self, project):
        a = project.add_node("text", value="a")
        b = project.add_node("text", value="b")
        project.connect(a.id, b.id, "origin", "origin")
        assert would_create_cycle(project.graph, b.id, a.id)
        assert not would_create_cycle(project.graph, a.id, b.id)
