from core.field_access import try_set_field
from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, NodeCategory, OptionalType
from core.values import Bool, OptionalValue, Value
from nodes.base.base_node import Base


class TrySetField(Base):
    CATEGORY = NodeCategory.FIELDS
    inputs = {"object": ANY, "value": ANY}
    outputs = {"object": ANY, "success": BOOL, "old_value": OptionalType(ANY)}
    state_fields = {"field": str}
    default_state = {"field": ""}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        result = try_set_field(ctx.registry, inputs["object"], self.state["field"], inputs["value"])
        return {
            "object": result.object,
            "success": Bool(result.success),
            "old_value": OptionalValue(ANY, result.old_value),
        }
