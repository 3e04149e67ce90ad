from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, NodeCategory, OptionalType
from core.values import Bool, Value
from nodes.base.base_node import Base


class IsNone(Base):
    CATEGORY = NodeCategory.VALUES
    inputs = {"option": OptionalType(ANY)}
    outputs = {"is_none": BOOL}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        return {"is_none": Bool(not inputs["option"].present)}
