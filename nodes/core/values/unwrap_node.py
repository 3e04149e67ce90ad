from core.errors import ValueAccessError
from core.side_effects import RunContext
from core.types_registry import ANY, STRING, NodeCategory, OptionalType
from core.values import Value
from nodes.base.base_node import Base, Port


class Unwrap(Base):
    """Extracts the value of an optional; an empty optional stops the run.

    The `message` input replaces the default error text when it is not blank.
    """

    CATEGORY = NodeCategory.VALUES
    inputs = {"value": OptionalType(ANY), "message": Port(STRING, "")}
    outputs = {"value": ANY}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        option = inputs["value"]
        if option.inner is None:
            message = inputs["message"].value.strip()
            raise ValueAccessError(message or "value is None")
        return {"value": option.inner}
