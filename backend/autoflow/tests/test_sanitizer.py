# tests/test_sanitizer.py
import copy

import pytest

from autoflow.core.errors import ValidationError
from autoflow.models.state import Document
from autoflow.services.sanitizer import is_valid_uuid4, sanitize

from conftest import make_document


def test_uuid4_check_requires_version_and_variant():
    assert is_valid_uuid4("3f2504e0-4f89-41d3-9a0c-0305e82c3301")
    # version nibble 1
    assert not is_valid_uuid4("3f2504e0-4f89-11d3-9a0c-0305e82c3301")
    # variant nibble c
    assert not is_valid_uuid4("3f2504e0-4f89-41d3-ca0c-0305e82c3301")
    assert not is_valid_uuid4("node-1")
    assert not is_valid_uuid4(None)


def test_defaults_are_filled_and_identity_stripped():
    raw = {
        "id": "123",
        "versionId": "abc",
        "meta": {"instanceId": "xyz", "templateCredsSetupCompleted": True},
        "nodes": [{"name": "Hook", "type": "n8n-nodes-base.webhook", "parameters": {}}],
    }
    doc = sanitize(raw)
    out = doc.to_export()

    assert out["name"] == "Untitled Workflow"
    assert out["connections"] == {}
    assert out["active"] is False
    assert out["settings"] == {"executionOrder": "v1"}
    assert out["pinData"] == {}
    assert out["tags"] == []
    assert "id" not in out and "versionId" not in out
    assert out["meta"] == {"templateCredsSetupCompleted": True}

    node = out["nodes"][0]
    assert is_valid_uuid4(node["id"])
    assert node["position"] == [100, 300]
    assert node["typeVersion"] == 1


def test_node_defaults_use_index():
    raw = {"name": "W", "nodes": [{"type": "a"}, {"type": "b", "position": "bad"}, {"type": "c", "position": (5, 6)}]}
    doc = sanitize(raw)
    assert doc.node_names() == ["Node 1", "Node 2", "Node 3"]
    assert doc.nodes[1].position == [300, 300]
    assert doc.nodes[2].position == [5, 6]


def test_existing_execution_order_is_kept():
    raw = make_document()
    raw["settings"] = {"executionOrder": "v0", "timezone": "UTC"}
    assert sanitize(raw).settings == {"executionOrder": "v0", "timezone": "UTC"}

    raw["settings"] = {"timezone": "UTC"}
    assert sanitize(raw).settings == {"timezone": "UTC", "executionOrder": "v1"}


def test_valid_ids_and_extra_fields_survive():
    raw = make_document()
    raw["staticData"] = {"lastId": 4}
    raw["nodes"][0]["credentials"] = {"httpAuth": {"id": "1"}}
    before = [n["id"] for n in raw["nodes"]]

    doc = sanitize(raw).to_export()
    assert [n["id"] for n in doc["nodes"]] == before
    assert doc["staticData"] == {"lastId": 4}
    assert doc["nodes"][0]["credentials"] == {"httpAuth": {"id": "1"}}


def test_input_is_not_mutated():
    raw = make_document()
    raw["nodes"][0]["id"] = "bad"
    snapshot = copy.deepcopy(raw)
    sanitize(raw)
    assert raw == snapshot


def test_idempotent():
    raw = {"nodes": [{"type": "x", "id": "nope"}, {"type": "y"}], "id": "42"}
    once = sanitize(raw)
    twice = sanitize(once)
    assert twice.to_export() == once.to_export()
    assert isinstance(twice, Document)


@pytest.mark.parametrize("raw", [{"name": "x"}, {"name": "x", "nodes": {"a": 1}}, "not a workflow"])
def test_missing_nodes_is_rejected(raw):
    with pytest.raises(ValidationError, match="missing nodes array"):
        sanitize(raw)


def test_node_without_type_is_rejected():
    with pytest.raises(ValidationError, match="node Lonely missing type field"):
        sanitize({"nodes": [{"name": "Lonely"}]})


def test_empty_nodes_is_allowed():
    doc = sanitize({"name": "Empty", "nodes": []})
    assert doc.nodes == []


@pytest.mark.parametrize("params", [None, [], "x=1", 7])
def test_non_mapping_parameters_become_empty(params):
    raw = make_document()
    raw["nodes"][0]["parameters"] = params
    assert sanitize(raw).nodes[0].parameters == {}


@pytest.mark.parametrize(
    "field, value, expected",
    [
        ("tags", "ops", []),
        ("tags", ("ops", "eu"), ["ops", "eu"]),
        ("pinData", [], {}),
        ("connections", [], {}),
        ("settings", "fast", {"executionOrder": "v1"}),
        ("active", "yes", False),
        ("name", 123, "123"),
        ("name", ["x"], "Untitled Workflow"),
        ("name", "", "Untitled Workflow"),
    ],
)
def test_mistyped_workflow_fields_are_repaired(field, value, expected):
    raw = make_document()
    raw[field] = value
    assert sanitize(raw).to_export()[field] == expected


def test_mistyped_node_fields_are_repaired():
    raw = make_document()
    raw["nodes"][0].update(name={"x": 1}, typeVersion="2", position=[1, "2"])
    raw["nodes"][1]["type"] = 5
    doc = sanitize(raw)
    assert doc.nodes[0].name == "Node 1"
    assert doc.nodes[0].type_version == 1
    assert doc.nodes[0].position == [100, 300]
    assert doc.nodes[1].type == "5"


def test_non_mapping_node_needs_a_type():
    with pytest.raises(ValidationError, match="node Node 2 missing type field"):
        sanitize({"nodes": [{"type": "a"}, "junk"]})
    with pytest.raises(ValidationError, match="missing type field"):
        sanitize({"nodes": [{"name": "L", "type": ["a"]}]})


def test_repaired_document_is_stable():
    raw = make_document()
    raw.update(tags="ops", pinData=[], active=None)
    raw["nodes"][1]["parameters"] = None
    once = sanitize(raw)
    assert sanitize(once).to_export() == once.to_export()
