from core.field_access import try_get_field
from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, NodeCategory, OptionalType
from core.values import Bool, OptionalValue, Value
from nodes.base.base_node import Base


class TryGetField(Base):
    CATEGORY = NodeCategory.FIELDS
    inputs = {"object": ANY}
    outputs = {"value": OptionalType(ANY), "found": BOOL}
    state_fields = {"field": str}
    default_state = {"field": ""}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        found = try_get_field(ctx.registry, inputs["object"], self.state["field"])
        return {"value": OptionalValue(ANY, found), "found": Bool(found is not None)}
