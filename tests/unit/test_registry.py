import pytest

from core.node_registry import NODE_REGISTRY, describe_nodes, load_nodes
from nodes.base.base_node import Base
from nodes.core.fields.get_field_node import GetField

CATALOGUE = [
    "AnyEquals",
    "AnyNotEquals",
    "AsType",
    "AssertEquals",
    "AssertNotEquals",
    "Debug",
    "EnumInnerValue",
    "EnumVariantName",
    "Expression",
    "Format",
    "GetField",
    "IsNone",
    "IsSome",
    "ListContains",
    "ListGet",
    "ListLength",
    "ListPush",
    "ListTryGet",
    "Mappings",
    "SetField",
    "SetMapping",
    "TryAsType",
    "TryGetField",
    "TrySetField",
    "Unwrap",
    "UnwrapOrDefault",
    "Value",
    "WriteItem",
]


def test_default_registry_has_catalogue():
    assert sorted(NODE_REGISTRY) == CATALOGUE


def test_registered_classes_are_importable_objects():
    assert NODE_REGISTRY["GetField"] is GetField
    assert all(issubclass(cls, Base) for cls in NODE_REGISTRY.values())


def test_load_nodes_single_directory():
    registry = load_nodes(["nodes/core/fields"])
    assert sorted(registry) == ["GetField", "SetField", "TryGetField", "TrySetField"]


def test_load_nodes_shared_helpers_are_not_nodes():
    registry = load_nodes(["nodes/core/lists"])
    assert sorted(registry) == ["ListContains", "ListGet", "ListLength", "ListPush", "ListTryGet"]


def test_load_nodes_missing_directory_is_empty():
    assert load_nodes(["nodes/does_not_exist"]) == {}


def test_describe_nodes():
    contracts = {c["type"]: c for c in describe_nodes(NODE_REGISTRY)}
    assert list(contracts) == CATALOGUE

    mappings = contracts["Mappings"]
    assert mappings["category"] == "mappings"
    assert {"name": "kind", "type": "string", "default": "any"} in mappings["inputs"]
    assert {"name": "default_ranges", "type": "list<sys:math/range>"} in mappings["inputs"]

    value = contracts["Value"]
    assert value["outputs"] == [{"name": "value", "type": "int"}]
    assert value["state"] == [
        {"name": "type", "type": "str", "default": "int"},
        {"name": "value", "type": "Any", "default": None},
    ]


@pytest.mark.parametrize("node_type", CATALOGUE)
def test_every_node_builds_with_default_state(node_type):
    node = NODE_REGISTRY[node_type](1, {})
    assert node.describe()["type"] == node_type
