from core.serialization import OUTPUT_FORMATS, value_to_json
from core.side_effects import RunContext
from core.types_registry import ANY, STRING, NodeCategory, OptionalType
from core.values import String, Value
from nodes.base.base_node import Base, Port


class WriteItem(Base):
    """
    Emits a value as a data file when the run commits.

    Inputs:
    - path: target file (extension added from the format when missing). An existing
      file that was not written by the engine is never overwritten. When empty, the
      file goes to the emitted directory and is replaced on every run.
    - value: the value to write

    Output:
    - path: where the file will be written

    State:
    - format: "json" or "yaml"; empty uses the configured output format
    """

    CATEGORY = NodeCategory.IO
    inputs = {"path": Port(OptionalType(STRING), None), "value": ANY}
    outputs = {"path": STRING}
    state_fields = {"format": str}
    default_state = {"format": ""}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        fmt = self.state["format"].strip().lower() or None
        if fmt is not None and fmt not in OUTPUT_FORMATS:
            raise ValueError(f"Unsupported format '{fmt}', expected one of {OUTPUT_FORMATS}")
        path_value = inputs["path"].inner
        path = path_value.value if path_value is not None else None
        data = value_to_json(ctx.registry, inputs["value"])
        target = ctx.effects.emit_file(data, ctx.graph_id, ctx.node_id, path, fmt)
        return {"path": String(str(target))}
