"""Generic named field access on struct and enum values.

Lookup is depth-first: direct field names, then aliases, then inline fields in
declaration order. Enum values are searched through their active payload. The
first match wins.
"""

from typing import NamedTuple

from core.errors import ConversionError, FieldNotFound, NotAStructOrEnum
from core.types_registry import TypesRegistry
from core.values import EnumValue, Struct, Value, convert_for_field, type_name


class SetFieldResult(NamedTuple):
    object: Value
    old_value: Value


class TrySetFieldResult(NamedTuple):
    object: Value
    success: bool
    old_value: Value | None


def _ensure_object(obj: Value) -> None:
    if not isinstance(obj, (Struct, EnumValue)):
        raise NotAStructOrEnum(type_name(obj))


def _find(registry: TypesRegistry, obj: Value, name: str) -> Value | None:
    if isinstance(obj, EnumValue):
        return _find(registry, obj.payload, name)
    if not isinstance(obj, Struct):
        return None

    struct = registry.get_struct(obj.type_id)
    field = struct.direct_field(name)
    if field is not None:
        return obj.fields[field.name]
    for inline in struct.inline_fields():
        found = _find(registry, obj.fields[inline.name], name)
        if found is not None:
            return found
    return None


def _swap(registry: TypesRegistry, obj: Value, name: str, value: Value) -> tuple[Value, Value] | None:
    """Rebuild the path down to `name` with the new value; siblings are shared."""
    if isinstance(obj, EnumValue):
        found = _swap(registry, obj.payload, name, value)
        if found is None:
            return None
        payload, old = found
        return EnumValue(obj.type_id, obj.tag, payload), old
    if not isinstance(obj, Struct):
        return None

    struct = registry.get_struct(obj.type_id)
    field = struct.direct_field(name)
    if field is not None:
        converted = convert_for_field(registry, value, field)
        return obj.replace(field.name, converted), obj.fields[field.name]
    for inline in struct.inline_fields():
        found = _swap(registry, obj.fields[inline.name], name, value)
        if found is not None:
            child, old = found
            return obj.replace(inline.name, child), old
    return None


def get_field(registry: TypesRegistry, obj: Value, name: str) -> Value:
    _ensure_object(obj)
    found = _find(registry, obj, name)
    if found is None:
        raise FieldNotFound(name, type_name(obj))
    return found


def try_get_field(registry: TypesRegistry, obj: Value, name: str) -> Value | None:
    _ensure_object(obj)
    return _find(registry, obj, name)


def set_field(registry: TypesRegistry, obj: Value, name: str, value: Value) -> SetFieldResult:
    """Replace the field `name` with `value`, converted to the field's type.

    Raises FieldNotFound, NotAStructOrEnum or ConversionError. `obj` is never mutated.
    """
    _ensure_object(obj)
    found = _swap(registry, obj, name, value)
    if found is None:
        raise FieldNotFound(name, type_name(obj))
    return SetFieldResult(*found)


def try_set_field(registry: TypesRegistry, obj: Value, name: str, value: Value) -> TrySetFieldResult:
    _ensure_object(obj)
    try:
        found = _swap(registry, obj, name, value)
    except ConversionError:
        found = None
    if found is None:
        return TrySetFieldResult(obj, False, None)
    return TrySetFieldResult(found[0], True, found[1])


__all__ = [
    "SetFieldResult",
    "TrySetFieldResult",
    "get_field",
    "try_get_field",
    "set_field",
    "try_set_field",
]
