from core.side_effects import RunContext
from core.types_registry import ANY, NodeCategory
from core.values import ListValue, Value, convert
from nodes.base.base_node import Base
from nodes.core.lists.list_get_node import ensure_list


class ListPush(Base):
    """Appends `item`, converted to the list's item type, and returns the new list."""

    CATEGORY = NodeCategory.LISTS
    inputs = {"list": ANY, "item": ANY}
    outputs = {"list": ANY}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        values = ensure_list(inputs["list"])
        item = convert(ctx.registry, inputs["item"], values.item_type)
        return {"list": ListValue(values.item_type, (*values.items, item))}
