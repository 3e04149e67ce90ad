from core.errors import ValueAccessError
from core.side_effects import RunContext
from core.types_registry import ANY, NodeCategory
from core.values import EnumValue, Value, type_name
from nodes.base.base_node import Base


class EnumInnerValue(Base):
    CATEGORY = NodeCategory.VALUES
    inputs = {"enum": ANY}
    outputs = {"value": ANY}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        value = inputs["enum"]
        if not isinstance(value, EnumValue):
            raise ValueAccessError(f"value of type `{type_name(value)}` is not an enum")
        return {"value": value.payload}
