from core.errors import ConversionError, ValueAccessError
from core.side_effects import RunContext
from core.types_registry import ANY, INT, NodeCategory
from core.values import ListValue, Value, type_name
from nodes.base.base_node import Base


def ensure_list(value: Value) -> ListValue:
    if not isinstance(value, ListValue):
        raise ConversionError(f"expected a list, got `{type_name(value)}`")
    return value


def resolve_index(items: tuple[Value, ...], index: int) -> int | None:
    """Position addressed by `index`; negative indices count from the end."""
    if index < 0:
        index += len(items)
    if index < 0 or index >= len(items):
        return None
    return index


class ListGet(Base):
    """Item at `index`; negative indices count from the end of the list."""

    CATEGORY = NodeCategory.LISTS
    inputs = {"list": ANY, "index": INT}
    outputs = {"item": ANY}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        items = ensure_list(inputs["list"]).items
        index = inputs["index"].magnitude
        position = resolve_index(items, index)
        if position is None:
            raise ValueAccessError(
                f"Index out of bound: the list has {len(items)} elements, but the index is {index}"
            )
        return {"item": items[position]}
