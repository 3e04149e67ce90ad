from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, INT, NodeCategory, OptionalType
from core.values import Bool, OptionalValue, Value
from nodes.base.base_node import Base
from nodes.core.lists.list_get_node import ensure_list, resolve_index


class ListTryGet(Base):
    CATEGORY = NodeCategory.LISTS
    inputs = {"list": ANY, "index": INT}
    outputs = {"item": OptionalType(ANY), "found": BOOL}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        values = ensure_list(inputs["list"])
        position = resolve_index(values.items, inputs["index"].magnitude)
        if position is None:
            return {"item": OptionalValue(values.item_type, None), "found": Bool(False)}
        return {"item": OptionalValue(values.item_type, values.items[position]), "found": Bool(True)}
