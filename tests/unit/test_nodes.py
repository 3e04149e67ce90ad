import json
import logging

import pytest

from core.errors import NodeExecutionError, NodeValidationError
from core.serialization import value_from_json
from core.side_effects import RunContext, SideEffects
from core.types_registry import ANY, FLOAT, INT, STRING, ListType, NamedType, OptionalType, TypeId
from core.values import Bool, EnumValue, ListValue, Number, OptionalValue, String, default_for
from nodes.core.fields.get_field_node import GetField
from nodes.core.fields.set_field_node import SetField
from nodes.core.fields.try_get_field_node import TryGetField
from nodes.core.fields.try_set_field_node import TrySetField
from nodes.core.io.assert_equals_node import AssertEquals
from nodes.core.io.assert_not_equals_node import AssertNotEquals
from nodes.core.io.debug_node import Debug
from nodes.core.io.write_item_node import WriteItem
from nodes.core.lists.list_contains_node import ListContains
from nodes.core.lists.list_get_node import ListGet
from nodes.core.lists.list_length_node import ListLength
from nodes.core.lists.list_push_node import ListPush
from nodes.core.lists.list_try_get_node import ListTryGet
from nodes.core.mappings.mappings_node import RANGE_TYPE, Mappings
from nodes.core.mappings.set_mapping_node import SetMapping
from nodes.core.math.expression_node import Expression
from nodes.core.strings.format_node import Format
from nodes.core.values.any_equals_node import AnyEquals
from nodes.core.values.any_not_equals_node import AnyNotEquals
from nodes.core.values.as_type_node import AsType
from nodes.core.values.enum_inner_value_node import EnumInnerValue
from nodes.core.values.enum_variant_name_node import EnumVariantName
from nodes.core.values.is_none_node import IsNone
from nodes.core.values.is_some_node import IsSome
from nodes.core.values.try_as_type_node import TryAsType
from nodes.core.values.unwrap_node import Unwrap
from nodes.core.values.unwrap_or_default_node import UnwrapOrDefault
from nodes.core.values.value_node import Value

ITEM = NamedType(TypeId("eh", "Item"))


@pytest.fixture
def effects(project_dir):
    return SideEffects("emitted", base_dir=project_dir)


@pytest.fixture
def make_ctx(registry, effects):
    def _make(node_id: int = 1, stage: int = 0) -> RunContext:
        return RunContext(registry, effects, "nodes", node_id, stage)

    return _make


@pytest.fixture
def item(registry):
    return value_from_json(registry, ITEM, {"id": "sword", "price": 20, "hp": 50})


# ============================================================================
# Fields
# ============================================================================


@pytest.mark.asyncio
async def test_get_field(make_ctx, item):
    result = await GetField(1, {"field": "hp"}).execute({"object": item}, make_ctx())
    assert result == {"value": Number.of_int(50)}


@pytest.mark.asyncio
async def test_get_field_missing(make_ctx, item):
    with pytest.raises(NodeExecutionError) as exc_info:
        await GetField(1, {"field": "colour"}).execute({"object": item}, make_ctx())
    assert exc_info.value.kind == "FieldNotFound"


@pytest.mark.asyncio
async def test_try_get_field(make_ctx, item):
    node = TryGetField(1, {"field": "cost"})
    found = await node.execute({"object": item}, make_ctx())
    assert found["found"] == Bool(True)
    assert found["value"].inner == Number.of_int(20)

    missing = await TryGetField(1, {"field": "colour"}).execute({"object": item}, make_ctx())
    assert missing["found"] == Bool(False)
    assert missing["value"].present is False


@pytest.mark.asyncio
async def test_set_field(make_ctx, item):
    result = await SetField(1, {"field": "speed"}).execute(
        {"object": item, "value": Number.of_int(2)}, make_ctx()
    )
    assert result["old_value"] == Number.of_float(0.0)
    assert result["object"].fields["stats"].fields["speed"] == Number.of_float(2.0)


@pytest.mark.asyncio
async def test_set_field_bounds_error(make_ctx, item):
    with pytest.raises(NodeExecutionError) as exc_info:
        await SetField(1, {"field": "hp"}).execute({"object": item, "value": Number.of_int(0)}, make_ctx())
    assert exc_info.value.kind == "ConversionError"


@pytest.mark.asyncio
async def test_try_set_field(make_ctx, item):
    node = TrySetField(1, {"field": "id"})
    ok = await node.execute({"object": item, "value": String("axe")}, make_ctx())
    assert ok["success"] == Bool(True)
    assert ok["old_value"].inner == String("sword")

    failed = await node.execute({"object": item, "value": Number.of_int(1)}, make_ctx())
    assert failed["success"] == Bool(False)
    assert failed["object"] is item
    assert failed["old_value"].present is False


@pytest.mark.asyncio
async def test_field_nodes_require_object(make_ctx):
    with pytest.raises(NodeValidationError, match="Missing input 'object'"):
        await GetField(1, {"field": "hp"}).execute({}, make_ctx())


# ============================================================================
# Values
# ============================================================================


@pytest.mark.asyncio
async def test_value_node_default(make_ctx, registry):
    node = Value(1, {"type": "eh:Item"})
    assert node.outputs["value"].type == ITEM
    result = await node.execute({}, make_ctx())
    assert result["value"] == default_for(registry, ITEM)


@pytest.mark.asyncio
async def test_value_node_literal(make_ctx):
    node = Value(1, {"type": "list<float>", "value": [1, 2.5]})
    result = await node.execute({}, make_ctx())
    assert [n.magnitude for n in result["value"].items] == [1.0, 2.5]


@pytest.mark.asyncio
async def test_value_node_enum(make_ctx):
    node = Value(1, {"type": "eh:Reward", "value": {"credits": 3}})
    result = await node.execute({}, make_ctx())
    assert result["value"] == EnumValue(TypeId("eh", "Reward"), "credits", Number.of_int(3))


def test_value_node_bad_type():
    with pytest.raises(NodeValidationError, match="Invalid type in state 'type'"):
        Value(1, {"type": "list<int"})


@pytest.mark.asyncio
async def test_as_type(make_ctx):
    node = AsType(1, {"type": "float"})
    assert await node.execute({"value": Number.of_int(2)}, make_ctx()) == {"value": Number.of_float(2.0)}
    with pytest.raises(NodeExecutionError):
        await AsType(1, {"type": "int"}).execute({"value": Number.of_float(2.5)}, make_ctx())


@pytest.mark.asyncio
async def test_try_as_type(make_ctx):
    node = TryAsType(1, {"type": "int"})
    assert node.outputs["value"].type == OptionalType(INT)

    ok = await node.execute({"value": Number.of_float(4.0)}, make_ctx())
    assert ok == {"value": OptionalValue(INT, Number.of_int(4)), "success": Bool(True)}

    failed = await node.execute({"value": String("4")}, make_ctx())
    assert failed == {"value": OptionalValue(INT, None), "success": Bool(False)}


# ============================================================================
# Math and strings
# ============================================================================


def test_expression_ports_follow_variables():
    node = Expression(1, {"expression": "sqrt(x^2 + y^2)"})
    assert list(node.inputs) == ["x", "y"]
    assert node.inputs["x"].type == FLOAT


def test_expression_invalid():
    with pytest.raises(NodeValidationError, match="Invalid expression"):
        Expression(1, {"expression": "1 +"})


@pytest.mark.asyncio
async def test_expression_evaluates(make_ctx):
    node = Expression(1, {"expression": "sqrt(x^2 + y^2)"})
    result = await node.execute({"x": Number.of_int(3), "y": Number.of_float(4.0)}, make_ctx())
    assert result == {"value": Number.of_float(5.0)}


@pytest.mark.asyncio
async def test_expression_error_surfaces(make_ctx):
    with pytest.raises(NodeExecutionError) as exc_info:
        await Expression(1, {"expression": "1 / x"}).execute({}, make_ctx())
    assert exc_info.value.kind == "ExpressionError"


@pytest.mark.asyncio
async def test_format(make_ctx, item):
    node = Format(1, {"format": "{name} costs {price} {{gold}}"})
    assert list(node.inputs) == ["name", "price"]
    assert node.inputs["price"].type == ANY
    result = await node.execute({"name": String("sword"), "price": Number.of_float(20.0)}, make_ctx())
    assert result == {"text": String("sword costs 20 {gold}")}


def test_format_invalid():
    with pytest.raises(NodeValidationError, match="Invalid format string"):
        Format(1, {"format": "{oops"})


# ============================================================================
# Mappings
# ============================================================================


def _ranges(registry, *pairs):
    return value_from_json(registry, ListType(RANGE_TYPE), [{"start": s, "end": e} for s, e in pairs])


@pytest.mark.asyncio
async def test_mappings_node(make_ctx, registry, effects, project_dir):
    node = Mappings(1)
    inputs = {"path": String("ids"), "default_ranges": _ranges(registry, (10, 20)), "input": String("a")}
    assert await node.execute(inputs, make_ctx()) == {"id": Number.of_int(10)}
    effects.commit()
    saved = json.loads((project_dir / "ids.json").read_text(encoding="utf-8"))
    assert saved == {"values": {"a": 10}, "ranges": [{"start": 10, "end": 20}]}


@pytest.mark.asyncio
async def test_mappings_node_kinds_and_stages(make_ctx, registry):
    ranges = _ranges(registry, (1, 5))
    create = Mappings(1)
    reuse = Mappings(2)
    base = {"path": String("ids"), "default_ranges": ranges, "input": String("boss")}

    created = await create.execute({**base, "kind": String("NewId")}, make_ctx(1, stage=0))
    with pytest.raises(NodeExecutionError) as exc_info:
        await reuse.execute({**base, "kind": String("ExistingId")}, make_ctx(2, stage=0))
    assert exc_info.value.kind == "MappingNotFound"

    found = await reuse.execute({**base, "kind": String("ExistingId")}, make_ctx(2, stage=1))
    assert found == created


@pytest.mark.asyncio
async def test_set_mapping_node(make_ctx, effects):
    node = SetMapping(1)
    inputs = {"path": String("ids"), "input": String("pinned"), "value": Number.of_int(42)}
    assert await node.execute(inputs, make_ctx()) == {"id": Number.of_int(42)}
    store = effects.mappings.open("ids")
    assert store.lookup("pinned") == 42


# ============================================================================
# IO
# ============================================================================


@pytest.mark.asyncio
async def test_write_item_transient(make_ctx, effects, item, project_dir):
    result = await WriteItem(7).execute({"value": item}, make_ctx(7))
    target = project_dir / "emitted" / "nodes.n7.0.json"
    assert result == {"path": String(str(target))}
    effects.commit()
    assert json.loads(target.read_text(encoding="utf-8"))["hp"] == 50


@pytest.mark.asyncio
async def test_write_item_explicit_yaml(make_ctx, effects, project_dir):
    node = WriteItem(1, {"format": "YAML"})
    inputs = {"path": OptionalValue(STRING, String("out/item")), "value": Number.of_int(3)}
    result = await node.execute(inputs, make_ctx())
    assert result["path"].value.endswith("item.yaml")
    effects.commit()
    assert (project_dir / "out" / "item.yaml").read_text(encoding="utf-8").startswith("3")


@pytest.mark.asyncio
async def test_write_item_unknown_format(make_ctx):
    with pytest.raises(NodeExecutionError, match="Unsupported format 'toml'"):
        await WriteItem(1, {"format": "toml"}).execute({"value": Number.of_int(1)}, make_ctx())


@pytest.mark.asyncio
async def test_debug_logs_value(make_ctx, item, caplog):
    with caplog.at_level(logging.INFO, logger="DebugNode-3"):
        result = await Debug(3).execute({"value": Number.of_float(1.5)}, make_ctx(3))
    assert result == {"text": String("1.5")}
    assert "1.5" in caplog.text


# ============================================================================
# Optionals, equality and enums
# ============================================================================


@pytest.mark.asyncio
async def test_is_some_and_is_none(make_ctx):
    present = OptionalValue(INT, Number.of_int(1))
    empty = OptionalValue(INT, None)
    assert await IsSome(1).execute({"option": present}, make_ctx()) == {"is_some": Bool(True)}
    assert await IsSome(1).execute({"option": empty}, make_ctx()) == {"is_some": Bool(False)}
    assert await IsNone(1).execute({"option": empty}, make_ctx()) == {"is_none": Bool(True)}
    # A plain value arrives wrapped as a present optional
    assert await IsNone(1).execute({"option": String("x")}, make_ctx()) == {"is_none": Bool(False)}


@pytest.mark.asyncio
async def test_unconnected_option_is_empty(make_ctx):
    assert await IsSome(1).execute({}, make_ctx()) == {"is_some": Bool(False)}


@pytest.mark.asyncio
async def test_unwrap(make_ctx, item):
    result = await Unwrap(1).execute({"value": OptionalValue(ITEM, item)}, make_ctx())
    assert result == {"value": item}


@pytest.mark.asyncio
async def test_unwrap_empty_fails(make_ctx):
    with pytest.raises(NodeExecutionError, match="value is None") as exc_info:
        await Unwrap(1).execute({"value": OptionalValue(INT, None)}, make_ctx())
    assert exc_info.value.kind == "ValueAccessError"

    with pytest.raises(NodeExecutionError, match="boss id required"):
        await Unwrap(1).execute(
            {"value": OptionalValue(INT, None), "message": String("  boss id required ")}, make_ctx()
        )


@pytest.mark.asyncio
async def test_unwrap_or_default(make_ctx, registry):
    node = UnwrapOrDefault(1, {"type": "eh:Item"})
    assert node.inputs["value"].type == OptionalType(ITEM)
    assert node.outputs["value"].type == ITEM

    empty = await node.execute({"value": OptionalValue(ITEM, None)}, make_ctx())
    assert empty == {"value": default_for(registry, ITEM)}

    ints = UnwrapOrDefault(2)
    assert await ints.execute({"value": OptionalValue(FLOAT, Number.of_float(3.0))}, make_ctx()) == {
        "value": Number.of_int(3)
    }
    assert await ints.execute({}, make_ctx()) == {"value": Number.of_int(0)}


@pytest.mark.asyncio
async def test_any_equals(make_ctx, item):
    equals = AnyEquals(1)
    not_equals = AnyNotEquals(2)

    same = {"a": Number.of_int(2), "b": Number.of_float(2.0)}
    assert await equals.execute(same, make_ctx()) == {"equal": Bool(True)}
    assert await not_equals.execute(same, make_ctx()) == {"not_equal": Bool(False)}

    different = {"a": item, "b": String("sword")}
    assert await equals.execute(different, make_ctx()) == {"equal": Bool(False)}
    assert await not_equals.execute(different, make_ctx()) == {"not_equal": Bool(True)}

    assert (await equals.execute({"a": item, "b": item}, make_ctx()))["equal"] == Bool(True)


@pytest.mark.asyncio
async def test_any_equals_requires_both_inputs(make_ctx):
    with pytest.raises(NodeValidationError, match="Missing input 'b'"):
        await AnyEquals(1).execute({"a": Number.of_int(1)}, make_ctx())


@pytest.mark.asyncio
async def test_enum_inspection(make_ctx):
    reward = EnumValue(TypeId("eh", "Reward"), "credits", Number.of_int(3))
    assert await EnumVariantName(1).execute({"enum": reward}, make_ctx()) == {"variant_name": String("credits")}
    assert await EnumInnerValue(1).execute({"enum": reward}, make_ctx()) == {"value": Number.of_int(3)}


@pytest.mark.asyncio
async def test_enum_inspection_rejects_other_values(make_ctx, item):
    with pytest.raises(NodeExecutionError, match="is not an enum") as exc_info:
        await EnumVariantName(1).execute({"enum": item}, make_ctx())
    assert exc_info.value.kind == "ValueAccessError"
    with pytest.raises(NodeExecutionError, match="value of type `int` is not an enum"):
        await EnumInnerValue(1).execute({"enum": Number.of_int(1)}, make_ctx())


@pytest.mark.asyncio
async def test_assert_equals(make_ctx):
    ok = await AssertEquals(1).execute({"a": Number.of_int(1), "b": Number.of_float(1.0)}, make_ctx())
    assert ok == {}

    with pytest.raises(NodeExecutionError, match=r"assert_equals failed: 1 != 2 \(ids differ\)") as exc_info:
        await AssertEquals(1).execute(
            {"a": Number.of_int(1), "b": Number.of_int(2), "message": String("ids differ")}, make_ctx()
        )
    assert exc_info.value.kind == "AssertionFailed"


@pytest.mark.asyncio
async def test_assert_not_equals(make_ctx):
    assert await AssertNotEquals(1).execute({"a": String("a"), "b": String("b")}, make_ctx()) == {}
    with pytest.raises(NodeExecutionError, match="assert_not_equals failed: a == a"):
        await AssertNotEquals(1).execute({"a": String("a"), "b": String("a")}, make_ctx())


# ============================================================================
# Lists
# ============================================================================


@pytest.fixture
def numbers():
    return ListValue(INT, (Number.of_int(1), Number.of_int(2), Number.of_int(3)))


@pytest.mark.asyncio
async def test_list_length(make_ctx, numbers):
    assert await ListLength(1).execute({"list": numbers}, make_ctx()) == {"length": Number.of_int(3)}


@pytest.mark.asyncio
async def test_list_get(make_ctx, numbers):
    node = ListGet(1)
    assert await node.execute({"list": numbers, "index": Number.of_int(0)}, make_ctx()) == {"item": Number.of_int(1)}
    assert await node.execute({"list": numbers, "index": Number.of_int(-1)}, make_ctx()) == {"item": Number.of_int(3)}
    with pytest.raises(NodeExecutionError, match="the list has 3 elements, but the index is 3"):
        await node.execute({"list": numbers, "index": Number.of_int(3)}, make_ctx())


@pytest.mark.asyncio
async def test_list_get_requires_list(make_ctx):
    with pytest.raises(NodeExecutionError, match="expected a list, got `string`") as exc_info:
        await ListGet(1).execute({"list": String("abc"), "index": Number.of_int(0)}, make_ctx())
    assert exc_info.value.kind == "ConversionError"


@pytest.mark.asyncio
async def test_list_try_get(make_ctx, numbers):
    node = ListTryGet(1)
    found = await node.execute({"list": numbers, "index": Number.of_int(-3)}, make_ctx())
    assert found["found"] == Bool(True)
    assert found["item"].inner == Number.of_int(1)

    missing = await node.execute({"list": numbers, "index": Number.of_int(-4)}, make_ctx())
    assert missing["found"] == Bool(False)
    assert missing["item"].present is False


@pytest.mark.asyncio
async def test_list_push_converts_item(make_ctx):
    floats = ListValue(FLOAT, (Number.of_float(0.5),))
    result = await ListPush(1).execute({"list": floats, "item": Number.of_int(2)}, make_ctx())
    assert result == {"list": ListValue(FLOAT, (Number.of_float(0.5), Number.of_float(2.0)))}
    # The input list is untouched
    assert len(floats.items) == 1

    with pytest.raises(NodeExecutionError) as exc_info:
        await ListPush(1).execute({"list": floats, "item": String("x")}, make_ctx())
    assert exc_info.value.kind == "ConversionError"


@pytest.mark.asyncio
async def test_list_contains(make_ctx, numbers):
    node = ListContains(1)
    assert await node.execute({"list": numbers, "item": Number.of_float(2.0)}, make_ctx()) == {"contains": Bool(True)}
    assert await node.execute({"list": numbers, "item": Number.of_int(7)}, make_ctx()) == {"contains": Bool(False)}
