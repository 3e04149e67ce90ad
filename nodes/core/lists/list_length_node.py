from core.side_effects import RunContext
from core.types_registry import ANY, INT, NodeCategory
from core.values import Number, Value
from nodes.base.base_node import Base
from nodes.core.lists.list_get_node import ensure_list


class ListLength(Base):
    CATEGORY = NodeCategory.LISTS
    inputs = {"list": ANY}
    outputs = {"length": INT}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        return {"length": Number.of_int(len(ensure_list(inputs["list"]).items))}
