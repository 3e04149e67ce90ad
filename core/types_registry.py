import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any, NotRequired, Required, TypeAlias, TypedDict

import rustworkx as rx

from core.errors import SchemaError

logger = logging.getLogger(__name__)

BUILTIN_MODULE = "sys"


@dataclass(frozen=True, order=True)
class TypeId:
    """Globally unique `(module, name)` pair, written as `module:name`."""

    module: str
    name: str

    def __str__(self) -> str:
        return f"{self.module}:{self.name}"

    @staticmethod
    def parse(text: str, module: str | None = None) -> "TypeId":
        if ":" in text:
            mod, _, name = text.partition(":")
        elif module is None:
            raise SchemaError(f"Type name `{text}` has no module prefix")
        else:
            mod, name = module, text
        mod, name = mod.strip(), name.strip()
        if not mod or not name:
            raise SchemaError(f"Invalid type id `{text}`")
        return TypeId(mod, name)


class PrimitiveKind(str, Enum):
    INT = "int"
    FLOAT = "float"
    BOOL = "bool"
    STRING = "string"


@dataclass(frozen=True)
class PrimitiveType:
    kind: PrimitiveKind

    def __str__(self) -> str:
        return self.kind.value


@dataclass(frozen=True)
class NamedType:
    type_id: TypeId

    def __str__(self) -> str:
        return str(self.type_id)


@dataclass(frozen=True)
class ListType:
    item: "TypeRef"

    def __str__(self) -> str:
        return f"list<{self.item}>"


@dataclass(frozen=True)
class OptionalType:
    inner: "TypeRef"

    def __str__(self) -> str:
        return f"optional<{self.inner}>"


@dataclass(frozen=True)
class AnyType:
    """Port-only type accepting any value unchanged."""

    def __str__(self) -> str:
        return "any"


TypeRef: TypeAlias = PrimitiveType | NamedType | ListType | OptionalType | AnyType

INT = PrimitiveType(PrimitiveKind.INT)
FLOAT = PrimitiveType(PrimitiveKind.FLOAT)
BOOL = PrimitiveType(PrimitiveKind.BOOL)
STRING = PrimitiveType(PrimitiveKind.STRING)
ANY = AnyType()

_TYPE_NAMES: dict[str, TypeRef] = {
    "int": INT,
    "integer": INT,
    "float": FLOAT,
    "number": FLOAT,
    "bool": BOOL,
    "boolean": BOOL,
    "string": STRING,
    "any": ANY,
}

_GENERICS: tuple[tuple[str, Callable[[TypeRef], TypeRef]], ...] = (
    ("list<", ListType),
    ("optional<", OptionalType),
)


def parse_type_ref(text: str, module: str | None = None) -> TypeRef:
    """Parse the textual form of a type (`int`, `list<eh:Item>`, `optional<Name>`).

    Bare names resolve inside `module`.
    """
    text = text.strip()
    lowered = text.lower()
    if lowered in _TYPE_NAMES:
        return _TYPE_NAMES[lowered]
    for prefix, wrapper in _GENERICS:
        if lowered.startswith(prefix):
            if not text.endswith(">"):
                raise SchemaError(f"Unterminated generic type `{text}`")
            return wrapper(parse_type_ref(text[len(prefix) : -1], module))
    return NamedType(TypeId.parse(text, module))


def is_numeric(type_ref: TypeRef) -> bool:
    return type_ref in (INT, FLOAT)


@dataclass(frozen=True)
class Field:
    name: str
    type: TypeRef
    alias: str | None = None
    default: Any = None
    has_default: bool = False
    min: float | None = None
    max: float | None = None
    # Opaque to the engine, consumed by editors only
    editor: str | None = None
    inline: bool = False


@dataclass(frozen=True)
class StructDef:
    type_id: TypeId
    fields: tuple[Field, ...] = ()

    def direct_field(self, name: str) -> Field | None:
        """Look up a field by name, then by alias."""
        for f in self.fields:
            if f.name == name:
                return f
        for f in self.fields:
            if f.alias is not None and f.alias == name:
                return f
        return None

    def inline_fields(self) -> tuple[Field, ...]:
        return tuple(f for f in self.fields if f.inline)

    def field_names(self) -> tuple[str, ...]:
        return tuple(f.name for f in self.fields)


@dataclass(frozen=True)
class EnumVariant:
    tag: str
    payload: TypeRef


@dataclass(frozen=True)
class EnumDef:
    type_id: TypeId
    variants: tuple[EnumVariant, ...] = ()

    def variant(self, tag: str) -> EnumVariant | None:
        for v in self.variants:
            if v.tag == tag:
                return v
        return None


TypeDef: TypeAlias = StructDef | EnumDef


@dataclass(frozen=True)
class Module:
    name: str
    types: tuple[TypeDef, ...] = ()
    version: str | None = None


class TypesRegistry:
    """Immutable `TypeId -> TypeDef` table built from fully validated modules."""

    def __init__(self, types: Mapping[TypeId, TypeDef], modules: Mapping[str, Module]):
        self._types: dict[TypeId, TypeDef] = dict(types)
        self._modules: dict[str, Module] = dict(modules)

    @classmethod
    def load(cls, modules: Iterable[Module], include_builtin: bool = True) -> "TypesRegistry":
        all_modules = list(modules)
        if include_builtin and not any(m.name == BUILTIN_MODULE for m in all_modules):
            # Imported lazily: schema builds on the types defined in this module
            from core.schema import builtin_module

            all_modules.insert(0, builtin_module())

        table: dict[TypeId, TypeDef] = {}
        by_name: dict[str, Module] = {}
        for module in all_modules:
            if module.name in by_name:
                raise SchemaError(f"Duplicate module `{module.name}`")
            by_name[module.name] = module
            for typedef in module.types:
                if typedef.type_id.module != module.name:
                    raise SchemaError(
                        f"Type `{typedef.type_id}` is declared inside module `{module.name}`"
                    )
                if typedef.type_id in table:
                    raise SchemaError(f"Duplicate type `{typedef.type_id}`")
                table[typedef.type_id] = typedef

        registry = cls(table, by_name)
        registry._validate()
        logger.info(f"Loaded {len(table)} types from {len(by_name)} modules")
        return registry

    # ============================================================================
    # Queries
    # ============================================================================

    def resolve(self, type_id: TypeId) -> TypeDef:
        try:
            return self._types[type_id]
        except KeyError:
            raise SchemaError(f"Unknown type `{type_id}`") from None

    def get_struct(self, type_id: TypeId) -> StructDef:
        typedef = self.resolve(type_id)
        if not isinstance(typedef, StructDef):
            raise SchemaError(f"Type `{type_id}` is not a struct")
        return typedef

    def get_enum(self, type_id: TypeId) -> EnumDef:
        typedef = self.resolve(type_id)
        if not isinstance(typedef, EnumDef):
            raise SchemaError(f"Type `{type_id}` is not an enum")
        return typedef

    def __contains__(self, type_id: object) -> bool:
        return type_id in self._types

    def __len__(self) -> int:
        return len(self._types)

    @property
    def types(self) -> dict[TypeId, TypeDef]:
        return dict(self._types)

    @property
    def modules(self) -> dict[str, Module]:
        return dict(self._modules)

    # ============================================================================
    # Validation
    # ============================================================================

    def _validate(self) -> None:
        for typedef in self._types.values():
            if isinstance(typedef, StructDef):
                self._validate_struct(typedef)
            else:
                self._validate_enum(typedef)
        self._validate_inline_chains()
        self._validate_defaults()

    def _check_ref(self, ref: TypeRef, where: str) -> None:
        if isinstance(ref, NamedType):
            if ref.type_id not in self._types:
                raise SchemaError(f"{where}: reference to unknown type `{ref.type_id}`")
        elif isinstance(ref, ListType):
            self._check_ref(ref.item, where)
        elif isinstance(ref, OptionalType):
            self._check_ref(ref.inner, where)
        elif isinstance(ref, AnyType):
            raise SchemaError(f"{where}: `any` is only allowed on node ports")

    def _validate_struct(self, struct: StructDef) -> None:
        seen: set[str] = set()
        for f in struct.fields:
            where = f"field `{f.name}` of `{struct.type_id}`"
            if f.name in seen:
                raise SchemaError(f"Duplicate {where}")
            seen.add(f.name)
            self._check_ref(f.type, where)
            if f.inline and not isinstance(f.type, NamedType):
                raise SchemaError(f"Inline {where} must reference a struct or enum type")
            if (f.min is not None or f.max is not None) and not is_numeric(f.type):
                raise SchemaError(f"{where}: min/max constraints require a numeric type")
            if f.min is not None and f.max is not None and f.min > f.max:
                raise SchemaError(f"{where}: min {f.min} is greater than max {f.max}")
        for f in struct.fields:
            if f.alias is None:
                continue
            if f.alias in seen:
                raise SchemaError(
                    f"Alias `{f.alias}` of field `{f.name}` collides with another field of `{struct.type_id}`"
                )
            seen.add(f.alias)

    def _validate_enum(self, enum: EnumDef) -> None:
        if not enum.variants:
            raise SchemaError(f"Enum `{enum.type_id}` has no variants")
        tags: set[str] = set()
        for v in enum.variants:
            if v.tag in tags:
                raise SchemaError(f"Duplicate variant `{v.tag}` in enum `{enum.type_id}`")
            tags.add(v.tag)
            self._check_ref(v.payload, f"variant `{v.tag}` of `{enum.type_id}`")

    def _validate_inline_chains(self) -> None:
        graph = rx.PyDiGraph()
        index = {type_id: graph.add_node(type_id) for type_id in self._types}
        for typedef in self._types.values():
            if isinstance(typedef, StructDef):
                targets = [f.type for f in typedef.inline_fields()]
            else:
                targets = [v.payload for v in typedef.variants]
            for target in targets:
                if isinstance(target, NamedType):
                    graph.add_edge(index[typedef.type_id], index[target.type_id], None)

        if rx.is_directed_acyclic_graph(graph):
            return
        cycle = next(iter(rx.simple_cycles(graph)), [])
        chain = " -> ".join(str(graph[i]) for i in cycle) or "unknown"
        raise SchemaError(f"Inline fields form a cycle: {chain}")

    def _validate_defaults(self) -> None:
        # Imported lazily: the value model depends on this module
        from core.errors import ConversionError
        from core.serialization import value_from_json
        from core.values import check_bounds

        for typedef in self._types.values():
            if not isinstance(typedef, StructDef):
                continue
            for f in typedef.fields:
                if not f.has_default:
                    continue
                try:
                    check_bounds(f, value_from_json(self, f.type, f.default))
                except ConversionError as e:
                    raise SchemaError(
                        f"Invalid default for field `{f.name}` of `{typedef.type_id}`: {e}"
                    ) from e


# Progress/lifecycle enums for node execution
class ProgressState(str, Enum):
    START = "start"
    UPDATE = "update"
    DONE = "done"
    ERROR = "error"
    STOPPED = "stopped"


class NodeCategory(str, Enum):
    IO = "io"
    FIELDS = "fields"
    VALUES = "values"
    MATH = "math"
    STRINGS = "strings"
    MAPPINGS = "mappings"
    LISTS = "lists"
    BASE = "base"


# Types for the graph serialisation consumed by the executor.
class SerialisedLink(TypedDict, total=False):
    id: NotRequired[int]
    origin_id: Required[int]
    origin_port: Required[str]
    target_id: Required[int]
    target_port: Required[str]


class SerialisedNode(TypedDict, total=False):
    id: Required[int]
    type: Required[str]
    title: NotRequired[str]
    state: NotRequired[dict[str, Any]]
    # Inline values for unconnected input ports, in document form
    inputs: NotRequired[dict[str, Any]]


class SerialisableGraph(TypedDict, total=False):
    id: str
    name: NotRequired[str]
    nodes: list[SerialisedNode]
    links: NotRequired[list[SerialisedLink]]
    extra: NotRequired[dict[str, Any]]


# Structured progress event contract for execution reporting
class ProgressEvent(TypedDict, total=False):
    node_id: int
    state: ProgressState
    progress: float
    text: str
    meta: dict[str, Any]


NodeInputs: TypeAlias = dict[str, Any]
NodeOutput: TypeAlias = dict[str, Any]
ExecutionResults: TypeAlias = dict[int, NodeOutput]
NodeRegistry: TypeAlias = dict[str, type[Any]]

ProgressCallback = Callable[[ProgressEvent], None]
ResultCallback = Callable[[int, NodeOutput], None]


__all__ = [
    "BUILTIN_MODULE",
    "TypeId",
    "PrimitiveKind",
    "PrimitiveType",
    "NamedType",
    "ListType",
    "OptionalType",
    "AnyType",
    "TypeRef",
    "INT",
    "FLOAT",
    "BOOL",
    "STRING",
    "ANY",
    "parse_type_ref",
    "is_numeric",
    "Field",
    "StructDef",
    "EnumVariant",
    "EnumDef",
    "TypeDef",
    "Module",
    "TypesRegistry",
    "ProgressState",
    "NodeCategory",
    "SerialisedLink",
    "SerialisedNode",
    "SerialisableGraph",
    "ProgressEvent",
    "NodeInputs",
    "NodeOutput",
    "ExecutionResults",
    "NodeRegistry",
    "ProgressCallback",
    "ResultCallback",
]
