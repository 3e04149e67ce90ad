from typing import Any

from core.serialization import value_from_json
from core.side_effects import RunContext
from core.types_registry import NodeCategory, TypeRef
from core.values import Value as RuntimeValue
from core.values import default_for
from nodes.base.base_node import Base, Port


class Value(Base):
    """Typed constant.

    State:
    - type: type name of the constant (`int`, `eh:Item`, `list<string>`, ...)
    - value: the constant in document form; the type's default value when empty
    """

    CATEGORY = NodeCategory.VALUES
    outputs = {}
    state_fields = {"type": str, "value": Any}
    default_state = {"type": "int", "value": None}

    def build_outputs(self) -> dict[str, TypeRef | Port]:
        return {"value": self._state_type()}

    async def _execute_impl(self, inputs: dict[str, RuntimeValue], ctx: RunContext) -> dict[str, RuntimeValue]:
        type_ref = self.outputs["value"].type
        raw = self.state.get("value")
        if raw is None:
            return {"value": default_for(ctx.registry, type_ref)}
        return {"value": value_from_json(ctx.registry, type_ref, raw)}
