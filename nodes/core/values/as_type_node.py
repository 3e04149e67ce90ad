from core.side_effects import RunContext
from core.types_registry import ANY, NodeCategory, TypeRef
from core.values import Value, convert
from nodes.base.base_node import Base, Port


class AsType(Base):
    """Converts the input to the type named in state; fails when no conversion exists."""

    CATEGORY = NodeCategory.VALUES
    inputs = {"value": ANY}
    state_fields = {"type": str}
    default_state = {"type": "float"}

    def build_outputs(self) -> dict[str, TypeRef | Port]:
        return {"value": self._state_type()}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        return {"value": convert(ctx.registry, inputs["value"], self.outputs["value"].type)}
