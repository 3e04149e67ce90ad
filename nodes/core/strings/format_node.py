from core.errors import NodeValidationError, TemplateError
from core.side_effects import RunContext
from core.template import prepare
from core.types_registry import ANY, STRING, NodeCategory, TypeRef
from core.values import String, Value, display
from nodes.base.base_node import Base, Port


class Format(Base):
    """Fills a `{key}` template; each distinct key becomes an input port.

    Input values of any type are rendered with their display form.
    """

    CATEGORY = NodeCategory.STRINGS
    outputs = {"text": STRING}
    state_fields = {"format": str}
    default_state = {"format": ""}

    def build_inputs(self) -> dict[str, TypeRef | Port]:
        try:
            template = prepare(self.state["format"])
        except TemplateError as e:
            raise NodeValidationError(self.id, f"Invalid format string: {e}") from e
        return {key: ANY for key in template.keys}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        template = prepare(self.state["format"])
        text = template.format({key: display(value) for key, value in inputs.items()})
        return {"text": String(text)}
