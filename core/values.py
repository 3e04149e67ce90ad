"""Runtime value model.

Values are immutable trees; a struct's field mapping is read-only, and every
update produces a new value that shares untouched sub-trees with the old one.
"""

import math
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, TypeAlias

from core.errors import ConversionError, SchemaError
from core.types_registry import (
    BOOL,
    FLOAT,
    INT,
    STRING,
    AnyType,
    EnumDef,
    Field,
    ListType,
    NamedType,
    OptionalType,
    PrimitiveKind,
    PrimitiveType,
    StructDef,
    TypeId,
    TypeRef,
    TypesRegistry,
)


class NumberKind(str, Enum):
    INT = "int"
    FLOAT = "float"


@dataclass(frozen=True)
class Number:
    kind: NumberKind
    magnitude: int | float

    @staticmethod
    def of_int(value: int) -> "Number":
        return Number(NumberKind.INT, int(value))

    @staticmethod
    def of_float(value: float) -> "Number":
        return Number(NumberKind.FLOAT, float(value))


@dataclass(frozen=True)
class Bool:
    value: bool


@dataclass(frozen=True)
class String:
    value: str


@dataclass(frozen=True)
class Struct:
    type_id: TypeId
    fields: Mapping[str, "Value"]

    def __post_init__(self):
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))

    def replace(self, name: str, value: "Value") -> "Struct":
        """Return a copy with one field replaced; other fields are shared."""
        updated = dict(self.fields)
        updated[name] = value
        return Struct(self.type_id, updated)


@dataclass(frozen=True)
class EnumValue:
    type_id: TypeId
    tag: str
    payload: "Value"


@dataclass(frozen=True)
class ListValue:
    item_type: TypeRef
    items: tuple["Value", ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "items", tuple(self.items))


@dataclass(frozen=True)
class OptionalValue:
    inner_type: TypeRef
    inner: "Value | None" = None

    @property
    def present(self) -> bool:
        return self.inner is not None


Value: TypeAlias = Number | Bool | String | Struct | EnumValue | ListValue | OptionalValue

_ZERO: dict[PrimitiveKind, Value] = {
    PrimitiveKind.INT: Number.of_int(0),
    PrimitiveKind.FLOAT: Number.of_float(0.0),
    PrimitiveKind.BOOL: Bool(False),
    PrimitiveKind.STRING: String(""),
}


def from_python(value: Any) -> Value:
    """Wrap a Python scalar into a value."""
    if isinstance(value, (Number, Bool, String, Struct, EnumValue, ListValue, OptionalValue)):
        return value
    # bool first: bool is a subclass of int
    if isinstance(value, bool):
        return Bool(value)
    if isinstance(value, int):
        return Number.of_int(value)
    if isinstance(value, float):
        return Number.of_float(value)
    if isinstance(value, str):
        return String(value)
    raise ConversionError(f"cannot build a value from {type(value).__name__}")


def type_of(value: Value) -> TypeRef:
    if isinstance(value, Number):
        return INT if value.kind == NumberKind.INT else FLOAT
    if isinstance(value, Bool):
        return BOOL
    if isinstance(value, String):
        return STRING
    if isinstance(value, (Struct, EnumValue)):
        return NamedType(value.type_id)
    if isinstance(value, ListValue):
        return ListType(value.item_type)
    if isinstance(value, OptionalValue):
        return OptionalType(value.inner_type)
    raise ConversionError(f"not a value: {value!r}")


def type_name(value: Value) -> str:
    return str(type_of(value))


# ============================================================================
# Defaults
# ============================================================================


def default_for(registry: TypesRegistry, type_ref: TypeRef, _stack: tuple[TypeId, ...] = ()) -> Value:
    """Build the default value of a type.

    Struct fields take their declared default, or the zero value of their type
    clamped into the field's min/max range. Enums default to their first variant.
    """
    if isinstance(type_ref, PrimitiveType):
        return _ZERO[type_ref.kind]
    if isinstance(type_ref, ListType):
        return ListValue(type_ref.item, ())
    if isinstance(type_ref, OptionalType):
        return OptionalValue(type_ref.inner, None)
    if isinstance(type_ref, AnyType):
        raise SchemaError("`any` has no default value")

    type_id = type_ref.type_id
    if type_id in _stack:
        raise SchemaError(f"Type `{type_id}` has no finite default value")
    stack = (*_stack, type_id)
    typedef = registry.resolve(type_id)
    if isinstance(typedef, StructDef):
        return Struct(type_id, {f.name: field_default(registry, f, stack) for f in typedef.fields})
    variant = typedef.variants[0]
    return EnumValue(type_id, variant.tag, default_for(registry, variant.payload, stack))


def field_default(registry: TypesRegistry, field: Field, _stack: tuple[TypeId, ...] = ()) -> Value:
    if field.has_default:
        # Imported lazily: serialization builds on this module
        from core.serialization import value_from_json

        return value_from_json(registry, field.type, field.default)
    return _clamp(field, default_for(registry, field.type, _stack))


def _clamp(field: Field, value: Value) -> Value:
    if not isinstance(value, Number):
        return value
    magnitude = value.magnitude
    if field.min is not None and magnitude < field.min:
        magnitude = field.min
    if field.max is not None and magnitude > field.max:
        magnitude = field.max
    if magnitude == value.magnitude:
        return value
    if value.kind == NumberKind.INT:
        rounded = math.ceil(magnitude) if magnitude == field.min else math.floor(magnitude)
        return Number.of_int(rounded)
    return Number.of_float(magnitude)


def check_bounds(field: Field, value: Value) -> Value:
    if not isinstance(value, Number):
        return value
    if field.min is not None and value.magnitude < field.min:
        raise ConversionError(
            f"value {value.magnitude} is below the minimum {field.min} of field `{field.name}`"
        )
    if field.max is not None and value.magnitude > field.max:
        raise ConversionError(
            f"value {value.magnitude} is above the maximum {field.max} of field `{field.name}`"
        )
    return value


# ============================================================================
# Conversion
# ============================================================================


def convert(registry: TypesRegistry, value: Value, target: TypeRef) -> Value:
    """Coerce a value into `target`, or raise ConversionError without partial results."""
    if isinstance(target, AnyType):
        return value
    source = type_of(value)
    if source == target:
        return value

    if isinstance(target, OptionalType):
        if isinstance(value, OptionalValue):
            if value.inner is None:
                return OptionalValue(target.inner, None)
            return OptionalValue(target.inner, convert(registry, value.inner, target.inner))
        return OptionalValue(target.inner, convert(registry, value, target.inner))

    if isinstance(value, OptionalValue):
        if value.inner is None:
            raise ConversionError(f"cannot convert an empty `{source}` to `{target}`")
        return convert(registry, value.inner, target)

    if isinstance(value, Number):
        if target == FLOAT:
            return Number.of_float(float(value.magnitude))
        if target == INT:
            if float(value.magnitude).is_integer():
                return Number.of_int(int(value.magnitude))
            raise ConversionError(f"cannot convert non-integral number {value.magnitude} to `int`")

    if isinstance(value, ListValue) and isinstance(target, ListType):
        items = tuple(convert(registry, item, target.item) for item in value.items)
        return ListValue(target.item, items)

    raise ConversionError(f"cannot convert `{source}` to `{target}`")


def convert_for_field(registry: TypesRegistry, value: Value, field: Field) -> Value:
    return check_bounds(field, convert(registry, value, field.type))


def check_shape(registry: TypesRegistry, value: Value, deep: bool = True) -> None:
    """Ensure struct/enum values match their registry definitions exactly."""
    if isinstance(value, Struct):
        struct = registry.get_struct(value.type_id)
        expected = set(struct.field_names())
        actual = set(value.fields.keys())
        if expected != actual:
            missing = ", ".join(sorted(expected - actual)) or "-"
            extra = ", ".join(sorted(actual - expected)) or "-"
            raise ConversionError(
                f"value does not match `{value.type_id}` (missing: {missing}; unknown: {extra})"
            )
        if deep:
            for child in value.fields.values():
                check_shape(registry, child, deep)
    elif isinstance(value, EnumValue):
        enum: EnumDef = registry.get_enum(value.type_id)
        if enum.variant(value.tag) is None:
            raise ConversionError(f"enum `{value.type_id}` has no variant `{value.tag}`")
        if deep:
            check_shape(registry, value.payload, deep)
    elif deep and isinstance(value, ListValue):
        for item in value.items:
            check_shape(registry, item, deep)
    elif deep and isinstance(value, OptionalValue) and value.inner is not None:
        check_shape(registry, value.inner, deep)


def values_equal(a: Value, b: Value) -> bool:
    """Structural equality; numbers compare by magnitude whatever their kind."""
    if isinstance(a, Number) and isinstance(b, Number):
        return a.magnitude == b.magnitude
    if isinstance(a, Struct) and isinstance(b, Struct):
        return (
            a.type_id == b.type_id
            and a.fields.keys() == b.fields.keys()
            and all(values_equal(v, b.fields[k]) for k, v in a.fields.items())
        )
    if isinstance(a, EnumValue) and isinstance(b, EnumValue):
        return a.type_id == b.type_id and a.tag == b.tag and values_equal(a.payload, b.payload)
    if isinstance(a, ListValue) and isinstance(b, ListValue):
        return len(a.items) == len(b.items) and all(values_equal(x, y) for x, y in zip(a.items, b.items))
    if isinstance(a, OptionalValue) and isinstance(b, OptionalValue):
        if a.inner is None or b.inner is None:
            return a.inner is None and b.inner is None
        return values_equal(a.inner, b.inner)
    return a == b


def display(value: Value) -> str:
    """Human readable rendering used by string formatting and debug output."""
    if isinstance(value, Number):
        if value.kind == NumberKind.FLOAT and float(value.magnitude).is_integer():
            return str(int(value.magnitude))
        return str(value.magnitude)
    if isinstance(value, Bool):
        return "true" if value.value else "false"
    if isinstance(value, String):
        return value.value
    if isinstance(value, Struct):
        inner = ", ".join(f"{k}: {display(v)}" for k, v in value.fields.items())
        return f"{value.type_id} {{ {inner} }}"
    if isinstance(value, EnumValue):
        return f"{value.type_id}::{value.tag}({display(value.payload)})"
    if isinstance(value, ListValue):
        return "[" + ", ".join(display(v) for v in value.items) + "]"
    if value.inner is None:
        return "null"
    return display(value.inner)


__all__ = [
    "NumberKind",
    "Number",
    "Bool",
    "String",
    "Struct",
    "EnumValue",
    "ListValue",
    "OptionalValue",
    "Value",
    "from_python",
    "type_of",
    "type_name",
    "default_for",
    "field_default",
    "check_bounds",
    "convert",
    "convert_for_field",
    "check_shape",
    "values_equal",
    "display",
]
