from core.side_effects import RunContext
from core.types_registry import ANY, BOOL, NodeCategory
from core.values import Bool, Value, values_equal
from nodes.base.base_node import Base


class AnyEquals(Base):
    CATEGORY = NodeCategory.VALUES
    inputs = {"a": ANY, "b": ANY}
    outputs = {"equal": BOOL}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        return {"equal": Bool(values_equal(inputs["a"], inputs["b"]))}
