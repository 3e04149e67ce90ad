from core.errors import ExpressionError, NodeValidationError
from core.expression import compile_expression
from core.side_effects import RunContext
from core.types_registry import FLOAT, NodeCategory, TypeRef
from core.values import Number, Value
from nodes.base.base_node import Base, Port


class Expression(Base):
    """Evaluates an arithmetic expression; every variable in it becomes a float input.

    Example: `sqrt(x^2 + y^2)` has inputs `x` and `y`.
    """

    CATEGORY = NodeCategory.MATH
    outputs = {"value": FLOAT}
    state_fields = {"expression": str}
    default_state = {"expression": "0"}

    def build_inputs(self) -> dict[str, TypeRef | Port]:
        try:
            compiled = compile_expression(self.state["expression"])
        except ExpressionError as e:
            raise NodeValidationError(self.id, f"Invalid expression: {e}") from e
        return {name: FLOAT for name in compiled.variables}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        compiled = compile_expression(self.state["expression"])
        args = {name: float(value.magnitude) for name, value in inputs.items()}
        return {"value": Number.of_float(compiled.evaluate(args))}
