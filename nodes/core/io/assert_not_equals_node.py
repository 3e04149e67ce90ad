from core.errors import AssertionFailed
from core.side_effects import RunContext
from core.types_registry import ANY, STRING, NodeCategory
from core.values import Value, display, values_equal
from nodes.base.base_node import Base, Port


class AssertNotEquals(Base):
    CATEGORY = NodeCategory.IO
    inputs = {"a": ANY, "b": ANY, "message": Port(STRING, "")}
    outputs = {}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        a, b = inputs["a"], inputs["b"]
        if values_equal(a, b):
            failure = f"assert_not_equals failed: {display(a)} == {display(b)}"
            message = inputs["message"].value.strip()
            raise AssertionFailed(f"{failure} ({message})" if message else failure)
        return {}
