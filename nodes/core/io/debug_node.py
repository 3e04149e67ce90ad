import logging

from core.side_effects import RunContext
from core.types_registry import ANY, STRING, NodeCategory
from core.values import String, Value, display
from nodes.base.base_node import Base


class Debug(Base):
    """Logs the incoming value and passes its text on."""

    CATEGORY = NodeCategory.IO
    inputs = {"value": ANY}
    outputs = {"text": STRING}

    def __init__(self, id: int, state=None):
        super().__init__(id, state)
        self.logger = logging.getLogger(f"DebugNode-{self.id}")

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        text = display(inputs["value"])
        self.logger.info(f"Debug [{ctx.graph_id} n{ctx.node_id} stage {ctx.stage}]: {text}")
        return {"text": String(text)}
