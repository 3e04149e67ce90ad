from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, NodeCategory
from core.values import Bool, Value, values_equal
from nodes.base.base_node import Base
from nodes.core.lists.list_get_node import ensure_list


class ListContains(Base):
    CATEGORY = NodeCategory.LISTS
    inputs = {"list": ANY, "item": ANY}
    outputs = {"contains": BOOL}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        values = ensure_list(inputs["list"])
        found = any(values_equal(item, inputs["item"]) for item in values.items)
        return {"contains": Bool(found)}
