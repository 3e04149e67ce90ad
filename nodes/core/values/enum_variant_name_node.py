from core.errors import ValueAccessError
from core.side_effects import RunContext
from core.types_registry import ANY, STRING, NodeCategory
from core.values import EnumValue, String, Value, type_name
from nodes.base.base_node import Base


class EnumVariantName(Base):
    """Tag of the variant an enum value holds."""

    CATEGORY = NodeCategory.VALUES
    inputs = {"enum": ANY}
    outputs = {"variant_name": STRING}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        value = inputs["enum"]
        if not isinstance(value, EnumValue):
            raise ValueAccessError(f"value of type `{type_name(value)}` is not an enum")
        return {"variant_name": String(value.tag)}
