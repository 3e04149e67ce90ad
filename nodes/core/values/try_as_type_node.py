from core.errors import ConversionError
from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, NodeCategory, OptionalType, TypeRef
from core.values import Bool, OptionalValue, Value, convert
from nodes.base.base_node import Base, Port


class TryAsType(Base):
    CATEGORY = NodeCategory.VALUES
    inputs = {"value": ANY}
    state_fields = {"type": str}
    default_state = {"type": "float"}

    def build_outputs(self) -> dict[str, TypeRef | Port]:
        return {"value": OptionalType(self._state_type()), "success": BOOL}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        target = self.outputs["value"].type.inner
        try:
            converted = convert(ctx.registry, inputs["value"], target)
        except ConversionError:
            return {"value": OptionalValue(target, None), "success": Bool(False)}
        return {"value": OptionalValue(target, converted), "success": Bool(True)}
