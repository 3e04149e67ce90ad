import json
import logging

import pytest
import yaml

from core.errors import ConversionError
from core.serialization import dump_document, load_document, value_from_json, value_to_json
from core.types_registry import ANY, FLOAT, INT, STRING, NamedType, OptionalType, TypeId
from core.values import EnumValue, Number, OptionalValue, String

ITEM = NamedType(TypeId("eh", "Item"))
REWARD = NamedType(TypeId("eh", "Reward"))
DROP = NamedType(TypeId("eh", "loot/drop"))


def test_inline_fields_are_flattened(registry):
    item = value_from_json(registry, ITEM, {"id": "sword", "price": 5, "hp": 40, "speed": 1.5, "tags": ["a"]})
    stats = item.fields["stats"]
    assert stats.fields["hp"] == Number.of_int(40)
    assert stats.fields["speed"] == Number.of_float(1.5)
    assert value_to_json(registry, item) == {
        "id": "sword",
        "price": 5,
        "hp": 40,
        "speed": 1.5,
        "tags": ["a"],
        "note": None,
    }


def test_missing_fields_take_defaults(registry):
    item = value_from_json(registry, ITEM, {})
    assert item.fields["stats"].fields["hp"] == Number.of_int(10)
    assert item.fields["note"] == OptionalValue(STRING, None)


def test_alias_key_is_accepted(registry):
    item = value_from_json(registry, ITEM, {"cost": 12})
    assert item.fields["price"] == Number.of_int(12)


def test_unknown_keys_are_logged(registry, caplog):
    with caplog.at_level(logging.WARNING, logger="core.serialization"):
        value_from_json(registry, ITEM, {"id": "x", "colour": "red"})
    assert "colour" in caplog.text


def test_out_of_bounds_field_rejected(registry):
    with pytest.raises(ConversionError, match="field `hp`"):
        value_from_json(registry, ITEM, {"hp": 1000})


def test_enum_is_externally_tagged(registry):
    reward = value_from_json(registry, REWARD, {"credits": 30})
    assert reward == EnumValue(REWARD.type_id, "credits", Number.of_int(30))
    assert value_to_json(registry, reward) == {"credits": 30}


def test_enum_unknown_tag_rejected(registry):
    with pytest.raises(ConversionError, match="no variant `gold`"):
        value_from_json(registry, REWARD, {"gold": 1})


def test_enum_requires_single_key(registry):
    with pytest.raises(ConversionError, match="single-key"):
        value_from_json(registry, REWARD, {"credits": 1, "item": {}})


def test_group_type_with_nested_enum(registry):
    drop = value_from_json(registry, DROP, {"reward": {"item": {"id": "gem"}}})
    assert drop.fields["weight"] == Number.of_float(1.5)
    assert drop.fields["reward"].payload.fields["id"] == String("gem")


@pytest.mark.parametrize(
    "type_ref,data",
    [
        (INT, 1.5),
        (INT, True),
        (FLOAT, "1"),
        (ITEM, [1, 2]),
    ],
)
def test_primitive_mismatches_rejected(registry, type_ref, data):
    with pytest.raises(ConversionError):
        value_from_json(registry, type_ref, data)


def test_integral_float_document_accepted_as_int(registry):
    assert value_from_json(registry, INT, 3.0) == Number.of_int(3)


def test_optional_and_any(registry):
    assert value_from_json(registry, OptionalType(INT), None) == OptionalValue(INT, None)
    assert value_from_json(registry, ANY, "text") == String("text")
    with pytest.raises(ConversionError, match="cannot infer"):
        value_from_json(registry, ANY, {"a": 1})


def test_dump_document_formats():
    data = {"b": 1, "a": [True, None]}
    assert json.loads(dump_document(data, "json")) == data
    assert yaml.safe_load(dump_document(data, "yaml")) == data
    with pytest.raises(ConversionError, match="Unknown output format"):
        dump_document(data, "xml")


def test_load_document_errors():
    assert load_document('{"a": 1}') == {"a": 1}
    assert load_document("a: 1", "yaml") == {"a": 1}
    with pytest.raises(ConversionError, match="Invalid json"):
        load_document("{", "json")
