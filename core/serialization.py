"""Value <-> document (JSON/YAML) conversion.

Structs serialise as objects keyed by field name; inline fields are flattened
into the enclosing object. Enums serialise externally tagged, `{tag: payload}`.
"""

import json
import logging
from typing import Any

import yaml

from core.errors import ConversionError
from core.types_registry import (
    AnyType,
    EnumDef,
    ListType,
    NamedType,
    OptionalType,
    PrimitiveKind,
    PrimitiveType,
    StructDef,
    TypeRef,
    TypesRegistry,
)
from core.values import (
    Bool,
    EnumValue,
    ListValue,
    Number,
    OptionalValue,
    String,
    Struct,
    Value,
    check_bounds,
    default_for,
    field_default,
    from_python,
)

logger = logging.getLogger(__name__)

OUTPUT_FORMATS = ("json", "yaml")


def value_to_json(registry: TypesRegistry, value: Value) -> Any:
    if isinstance(value, Number):
        return value.magnitude
    if isinstance(value, (Bool, String)):
        return value.value
    if isinstance(value, ListValue):
        return [value_to_json(registry, item) for item in value.items]
    if isinstance(value, OptionalValue):
        return None if value.inner is None else value_to_json(registry, value.inner)
    if isinstance(value, EnumValue):
        return {value.tag: value_to_json(registry, value.payload)}

    struct = registry.get_struct(value.type_id)
    result: dict[str, Any] = {}
    for f in struct.fields:
        child = value_to_json(registry, value.fields[f.name])
        if f.inline:
            result.update(child)
        else:
            result[f.name] = child
    return result


def value_from_json(registry: TypesRegistry, type_ref: TypeRef, data: Any) -> Value:
    """Build a value of `type_ref` from a decoded JSON/YAML document.

    Missing struct fields take their defaults; unknown keys are reported and ignored.
    """
    if isinstance(type_ref, NamedType):
        typedef = registry.resolve(type_ref.type_id)
        if isinstance(typedef, StructDef):
            if not isinstance(data, dict):
                raise ConversionError(f"expected an object for `{type_ref}`, got {_kind(data)}")
            consumed: set[str] = set()
            value = _read_struct(registry, typedef, data, consumed)
            unknown = [k for k in data if k not in consumed]
            if unknown:
                logger.warning(f"Ignoring unknown keys {unknown} for `{type_ref}`")
            return value
        return _read_enum(registry, typedef, data)

    if isinstance(type_ref, PrimitiveType):
        return _read_primitive(type_ref, data)
    if isinstance(type_ref, ListType):
        if not isinstance(data, list):
            raise ConversionError(f"expected a list for `{type_ref}`, got {_kind(data)}")
        return ListValue(type_ref.item, [value_from_json(registry, type_ref.item, d) for d in data])
    if isinstance(type_ref, OptionalType):
        if data is None:
            return OptionalValue(type_ref.inner, None)
        return OptionalValue(type_ref.inner, value_from_json(registry, type_ref.inner, data))
    if isinstance(type_ref, AnyType):
        if isinstance(data, (bool, int, float, str)):
            return from_python(data)
        raise ConversionError(f"cannot infer a value type for {_kind(data)}")
    raise ConversionError(f"unsupported type `{type_ref}`")


def _kind(data: Any) -> str:
    if data is None:
        return "null"
    return type(data).__name__


def _read_primitive(type_ref: PrimitiveType, data: Any) -> Value:
    kind = type_ref.kind
    if kind == PrimitiveKind.BOOL and isinstance(data, bool):
        return Bool(data)
    if kind == PrimitiveKind.STRING and isinstance(data, str):
        return String(data)
    if isinstance(data, (int, float)) and not isinstance(data, bool):
        if kind == PrimitiveKind.FLOAT:
            return Number.of_float(data)
        if kind == PrimitiveKind.INT and float(data).is_integer():
            return Number.of_int(int(data))
    raise ConversionError(f"expected `{type_ref}`, got {_kind(data)} {data!r}")


def _read_struct(
    registry: TypesRegistry, struct: StructDef, data: dict[str, Any], consumed: set[str]
) -> Struct:
    fields: dict[str, Value] = {}
    for f in struct.fields:
        if f.inline:
            typedef = registry.resolve(f.type.type_id)
            if isinstance(typedef, StructDef):
                fields[f.name] = _read_struct(registry, typedef, data, consumed)
            else:
                fields[f.name] = _read_inline_enum(registry, typedef, data, consumed)
            continue

        key = f.name if f.name in data else f.alias if f.alias in data else None
        if key is None:
            fields[f.name] = field_default(registry, f)
            continue
        consumed.add(key)
        try:
            value = value_from_json(registry, f.type, data[key])
            fields[f.name] = check_bounds(f, value)
        except ConversionError as e:
            raise ConversionError(f"field `{f.name}` of `{struct.type_id}`: {e}") from e
    return Struct(struct.type_id, fields)


def _read_enum(registry: TypesRegistry, enum: EnumDef, data: Any) -> EnumValue:
    if not isinstance(data, dict) or len(data) != 1:
        raise ConversionError(f"expected a single-key object for enum `{enum.type_id}`")
    tag, payload = next(iter(data.items()))
    variant = enum.variant(tag)
    if variant is None:
        raise ConversionError(f"enum `{enum.type_id}` has no variant `{tag}`")
    return EnumValue(enum.type_id, tag, value_from_json(registry, variant.payload, payload))


def _read_inline_enum(
    registry: TypesRegistry, enum: EnumDef, data: dict[str, Any], consumed: set[str]
) -> EnumValue:
    for variant in enum.variants:
        if variant.tag in data:
            consumed.add(variant.tag)
            payload = value_from_json(registry, variant.payload, data[variant.tag])
            return EnumValue(enum.type_id, variant.tag, payload)
    return default_for(registry, NamedType(enum.type_id))


def dump_document(data: Any, fmt: str = "json") -> str:
    if fmt == "json":
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    if fmt == "yaml":
        return yaml.safe_dump(data, sort_keys=False, allow_unicode=True)
    raise ConversionError(f"Unknown output format `{fmt}` (expected one of {OUTPUT_FORMATS})")


def load_document(text: str, fmt: str = "json") -> Any:
    try:
        if fmt == "json":
            return json.loads(text)
        if fmt == "yaml":
            return yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConversionError(f"Invalid {fmt} document: {e}") from e
    raise ConversionError(f"Unknown document format `{fmt}` (expected one of {OUTPUT_FORMATS})")


__all__ = [
    "OUTPUT_FORMATS",
    "value_to_json",
    "value_from_json",
    "dump_document",
    "load_document",
]
