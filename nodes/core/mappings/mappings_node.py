import asyncio

from core.mappings import IdRange, MappingKind
from core.side_effects import RunContext
from core.types_registry import BOOL, INT, STRING, ListType, NamedType, NodeCategory, TypeId
from core.values import ListValue, Number, Value
from nodes.base.base_node import Base, Port

RANGE_TYPE = NamedType(TypeId("sys", "math/range"))


def ranges_from_value(value: ListValue) -> list[IdRange]:
    return [IdRange(int(r.fields["start"].magnitude), int(r.fields["end"].magnitude)) for r in value.items]


class Mappings(Base):
    """
    Maps a string id to a stable numeric id stored in a mapping file.

    Inputs:
    - path: mapping file, relative to the project directory (`.json` is appended when missing)
    - default_ranges: id ranges used while the mapping file does not exist yet
    - persistent: whether the mapping is written back to the file
    - kind: `any` (get or create), `new_id` (must not be created twice in a run)
      or `existing_id` (must have been created by `new_id` in an earlier stage)
    - input: the string id

    Output:
    - id: the numeric id
    """

    CATEGORY = NodeCategory.MAPPINGS
    inputs = {
        "path": STRING,
        "default_ranges": ListType(RANGE_TYPE),
        "persistent": Port(BOOL, True),
        "kind": Port(STRING, "any"),
        "input": STRING,
    }
    outputs = {"id": INT}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        ranges = ranges_from_value(inputs["default_ranges"]) or None
        kind = MappingKind.parse(inputs["kind"].value)
        store = await asyncio.to_thread(ctx.effects.mappings.open, inputs["path"].value, ranges)
        numeric = await asyncio.to_thread(
            store.request, inputs["input"].value, kind, ctx.stage, inputs["persistent"].value
        )
        return {"id": Number.of_int(numeric)}
