from core.side_effects import RunContext
from core.types_registry import NodeCategory, OptionalType, TypeRef
from core.values import Value, default_for
from nodes.base.base_node import Base, Port


class UnwrapOrDefault(Base):
    """Value of an optional, or the default value of the state `type` when empty."""

    CATEGORY = NodeCategory.VALUES
    state_fields = {"type": str}
    default_state = {"type": "int"}

    def build_inputs(self) -> dict[str, TypeRef | Port]:
        return {"value": OptionalType(self._state_type())}

    def build_outputs(self) -> dict[str, TypeRef | Port]:
        return {"value": self._state_type()}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        option = inputs["value"]
        if option.inner is None:
            return {"value": default_for(ctx.registry, self.outputs["value"].type)}
        return {"value": option.inner}
