"""Module schema sources.

Modules are YAML documents describing structs and enums:

    module: eh
    version: "1.0"
    types:
      - kind: struct
        name: Item
        fields:
          - {name: id, type: string}
          - {name: price, type: int, min: 0, default: 10, alias: cost}
          - {name: stats, type: Stats, inline: true}
      - kind: enum
        name: Reward
        variants:
          - {tag: item, type: Item}
          - {tag: credits, type: int}
    groups:
      - name: math
        types:
          - kind: struct
            name: range        # becomes eh:math/range
            fields: [...]

Sources are validated with pydantic and converted into immutable `Module`s.
"""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.errors import SchemaError
from core.types_registry import (
    BUILTIN_MODULE,
    EnumDef,
    EnumVariant,
    Module,
    StructDef,
    TypeDef,
    TypeId,
    parse_type_ref,
)
from core.types_registry import Field as SchemaField

logger = logging.getLogger(__name__)

MODULE_SUFFIXES = (".yaml", ".yml")
BUILTIN_MODULE_PATH = Path(__file__).parent / "modules" / f"{BUILTIN_MODULE}.yaml"


class FieldSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    type: str
    alias: str | None = None
    default: Any = None
    min: float | None = None
    max: float | None = None
    editor: str | None = None
    inline: bool = False


class StructSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["struct"]
    name: str
    fields: list[FieldSource] = Field(default_factory=list)


class VariantSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    tag: str
    type: str


class EnumSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["enum"]
    name: str
    variants: list[VariantSource]


TypeSource = Annotated[StructSource | EnumSource, Field(discriminator="kind")]


class GroupSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    types: list[TypeSource] = Field(default_factory=list)
    groups: list["GroupSource"] = Field(default_factory=list)


class ModuleSource(BaseModel):
    model_config = ConfigDict(extra="forbid")

    module: str
    version: str | None = None
    types: list[TypeSource] = Field(default_factory=list)
    groups: list[GroupSource] = Field(default_factory=list)


def parse_module_source(text: str, origin: str = "<string>") -> ModuleSource:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise SchemaError(f"{origin}: invalid YAML: {e}") from e
    if not isinstance(data, dict):
        raise SchemaError(f"{origin}: module document must be a mapping")
    try:
        return ModuleSource.model_validate(data)
    except ValidationError as ve:
        raise SchemaError(f"{origin}: invalid module definition: {ve}") from ve


def load_module_source(path: str | Path) -> ModuleSource:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaError(f"Failed to read module file `{path}`: {e}") from e
    return parse_module_source(text, origin=str(path))


def _build_type(source: StructSource | EnumSource, module: str, prefix: str) -> TypeDef:
    type_id = TypeId(module, prefix + source.name)
    if isinstance(source, StructSource):
        fields = tuple(
            SchemaField(
                name=f.name,
                type=parse_type_ref(f.type, module),
                alias=f.alias,
                default=f.default,
                has_default="default" in f.model_fields_set,
                min=f.min,
                max=f.max,
                editor=f.editor,
                inline=f.inline,
            )
            for f in source.fields
        )
        return StructDef(type_id=type_id, fields=fields)
    variants = tuple(
        EnumVariant(tag=v.tag, payload=parse_type_ref(v.type, module)) for v in source.variants
    )
    return EnumDef(type_id=type_id, variants=variants)


def _collect_types(
    types: list[StructSource | EnumSource],
    groups: list[GroupSource],
    module: str,
    prefix: str,
) -> list[TypeDef]:
    result = [_build_type(t, module, prefix) for t in types]
    for group in groups:
        result.extend(_collect_types(group.types, group.groups, module, f"{prefix}{group.name}/"))
    return result


def to_module(source: ModuleSource) -> Module:
    types = _collect_types(source.types, source.groups, source.module, "")
    return Module(name=source.module, types=tuple(types), version=source.version)


def load_module_dir(directory: str | Path) -> list[Module]:
    """Load every module file below `directory`, sorted by path."""
    directory = Path(directory)
    if not directory.is_dir():
        raise SchemaError(f"Module directory `{directory}` does not exist")
    paths = sorted(p for p in directory.rglob("*") if p.suffix in MODULE_SUFFIXES)
    modules = []
    for path in paths:
        logger.debug(f"Loading module file {path}")
        modules.append(to_module(load_module_source(path)))
    return modules


@lru_cache(maxsize=1)
def builtin_module() -> Module:
    return to_module(load_module_source(BUILTIN_MODULE_PATH))


__all__ = [
    "FieldSource",
    "StructSource",
    "VariantSource",
    "EnumSource",
    "GroupSource",
    "ModuleSource",
    "parse_module_source",
    "load_module_source",
    "load_module_dir",
    "to_module",
    "builtin_module",
]
