from core.field_access import set_field
from core.side_effects import RunContext
from core.types_registry import ANY, NodeCategory
from core.values import Value
from nodes.base.base_node import Base


class SetField(Base):
    """Replaces a field of a struct or enum value, converting the new value to the field type.

    Outputs the updated object and the value that was replaced.
    """

    CATEGORY = NodeCategory.FIELDS
    inputs = {"object": ANY, "value": ANY}
    outputs = {"object": ANY, "old_value": ANY}
    state_fields = {"field": str}
    default_state = {"field": ""}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        result = set_field(ctx.registry, inputs["object"], self.state["field"], inputs["value"])
        return {"object": result.object, "old_value": result.old_value}
