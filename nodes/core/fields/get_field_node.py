from core.field_access import get_field
from core.side_effects import RunContext
from core.types_registry import ANY, NodeCategory
from core.values import Value
from nodes.base.base_node import Base


class GetField(Base):
    """Reads the field named in `field` from a struct or enum value.

    Inline sub-structs and the active enum payload are searched too.
    """

    CATEGORY = NodeCategory.FIELDS
    inputs = {"object": ANY}
    outputs = {"value": ANY}
    state_fields = {"field": str}
    default_state = {"field": ""}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        return {"value": get_field(ctx.registry, inputs["object"], self.state["field"])}
