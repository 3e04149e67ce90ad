import asyncio

from core.side_effects import RunContext
from core.types_registry import BOOL, INT, STRING, NodeCategory
from core.values import Number, Value
from nodes.base.base_node import Base, Port


class SetMapping(Base):
    """Pins a string id to an explicit numeric id in a mapping file."""

    CATEGORY = NodeCategory.MAPPINGS
    inputs = {
        "path": STRING,
        "persistent": Port(BOOL, True),
        "input": STRING,
        "value": INT,
    }
    outputs = {"id": INT}

    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        store = await asyncio.to_thread(ctx.effects.mappings.open, inputs["path"].value)
        numeric = await asyncio.to_thread(
            store.set_mapping,
            inputs["input"].value,
            int(inputs["value"].magnitude),
            inputs["persistent"].value,
        )
        return {"id": Number.of_int(numeric)}
