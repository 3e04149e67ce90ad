import asyncio
import logging
from collections import defaultdict
from enum import Enum
from typing import Any

import rustworkx as rx

from core.errors import (
    ConversionError,
    GraphCycleError,
    GraphError,
    NodeExecutionError,
    NodeValidationError,
    PortArityError,
    RunCancelledError,
)
from core.serialization import value_from_json
from core.side_effects import RunContext, SideEffects
from core.types_registry import (
    ExecutionResults,
    NodeCategory,
    NodeOutput,
    ProgressCallback,
    ResultCallback,
    SerialisableGraph,
    SerialisedLink,
    TypesRegistry,
)
from core.values import Value
from nodes.base.base_node import Base

logger = logging.getLogger(__name__)

NodeId = int
DEFAULT_EMITTED_DIR = "emitted"


class _GraphExecutionState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class GraphExecutor:
    """Builds a node graph, runs it level by level and commits its side effects.

    Nodes of one level (execution stage) run concurrently; a level starts only
    after the previous one finished. Side effects are committed only when every
    node succeeded and the run was not cancelled.
    """

    def __init__(
        self,
        graph: SerialisableGraph,
        node_registry: dict[str, type[Base]],
        types_registry: TypesRegistry,
        effects: SideEffects | None = None,
    ):
        self.graph = graph
        self.graph_id = str(graph.get("id") or "graph")
        self.node_registry = node_registry
        self.types_registry = types_registry
        self.effects = effects or SideEffects(DEFAULT_EMITTED_DIR)
        self.nodes: dict[int, Base] = {}
        self.inline_inputs: dict[int, dict[str, Value]] = {}
        # target node -> target port -> (origin node, origin port)
        self.incoming: dict[int, dict[str, tuple[int, str]]] = defaultdict(dict)
        self.dag: rx.PyDiGraph = rx.PyDiGraph()
        self._id_to_idx: dict[int, int] = {}
        self._idx_to_id: dict[int, int] = {}
        self._state: _GraphExecutionState = _GraphExecutionState.IDLE
        self._cancellation_reason: str | None = None
        self._progress_callback: ProgressCallback | None = None
        self._result_callback: ResultCallback | None = None
        self._active_tasks: list[asyncio.Task[NodeOutput]] = []  # Track active tasks for cancellation
        self._build_graph()

    # ============================================================================
    # Build
    # ============================================================================

    def _build_graph(self):
        for node_data in self.graph.get("nodes", []) or []:
            node_id = node_data["id"]
            node_type = node_data["type"]
            if node_id in self.nodes:
                raise GraphError(f"Duplicate node id: {node_id}")
            if node_type not in self.node_registry:
                raise GraphError(f"Unknown node type: {node_type}")

            try:
                node = self.node_registry[node_type](node_id, node_data.get("state") or {})
            except NodeValidationError as e:
                raise GraphError(str(e)) from e
            self.nodes[node_id] = node
            self.inline_inputs[node_id] = self._parse_inline_inputs(node, node_data.get("inputs") or {})

            idx = self.dag.add_node(node_id)
            self._id_to_idx[node_id] = idx
            self._idx_to_id[idx] = node_id

        for link in self.graph.get("links", []) or []:
            s_link: SerialisedLink = link
            from_id = s_link["origin_id"]
            to_id = s_link["target_id"]
            if from_id not in self._id_to_idx:
                logger.warning(
                    f"Link {s_link.get('id', 'unknown')} references non-existent origin node {from_id}, skipping"
                )
                continue
            if to_id not in self._id_to_idx:
                logger.warning(
                    f"Link {s_link.get('id', 'unknown')} references non-existent target node {to_id}, skipping"
                )
                continue
            self._add_link(s_link)

        if not _rx_is_dag(self.dag):
            cycle = next(iter(rx.simple_cycles(self.dag)), [])
            raise GraphCycleError([self._idx_to_id[i] for i in cycle])

        logger.debug(f"Built graph {self.graph_id} with {len(self.nodes)} nodes")

    def _parse_inline_inputs(self, node: Base, raw: dict[str, Any]) -> dict[str, Value]:
        parsed: dict[str, Value] = {}
        for name, data in raw.items():
            port = node.inputs.get(name)
            if port is None:
                raise GraphError(f"Node {node.id} has no input port '{name}'")
            try:
                parsed[name] = value_from_json(self.types_registry, port.type, data)
            except ConversionError as e:
                raise GraphError(f"Node {node.id}: invalid inline value for '{name}': {e}") from e
        return parsed

    def _add_link(self, link: SerialisedLink) -> None:
        from_id, origin_port = link["origin_id"], link["origin_port"]
        to_id, target_port = link["target_id"], link["target_port"]
        if origin_port not in self.nodes[from_id].outputs:
            raise GraphError(f"Node {from_id} has no output port '{origin_port}'")
        if target_port not in self.nodes[to_id].inputs:
            raise GraphError(f"Node {to_id} has no input port '{target_port}'")

        count = sum(
            1
            for other in self.graph.get("links", []) or []
            if other["target_id"] == to_id
            and other["target_port"] == target_port
            and other["origin_id"] in self._id_to_idx
        )
        if count > 1:
            raise PortArityError(to_id, target_port, count)

        self.incoming[to_id][target_port] = (from_id, origin_port)
        self.dag.add_edge(self._id_to_idx[from_id], self._id_to_idx[to_id], None)

    def stages(self) -> list[list[int]]:
        """Node ids grouped by execution stage."""
        return [sorted(self._idx_to_id[idx] for idx in level) for level in _rx_levels(self.dag)]

    # ============================================================================
    # Execution Flow
    # ============================================================================

    async def execute(self) -> ExecutionResults:
        results: ExecutionResults = {}
        levels = self.stages()
        self._active_tasks.clear()
        self._state = _GraphExecutionState.RUNNING

        try:
            for stage, level in enumerate(levels):
                self._raise_if_cancelled()
                await self._execute_level(stage, level, results)
            self._raise_if_cancelled()
            written = await asyncio.to_thread(self.effects.commit)
            logger.info(f"Graph {self.graph_id} finished, {len(written)} files written")
        except (Exception, asyncio.CancelledError) as e:
            logger.error(f"Execution failed: {type(e).__name__}: {e}")
            self.effects.discard()
            raise
        finally:
            await self._cleanup_execution()

        return results

    async def _execute_level(self, stage: int, level: list[int], results: ExecutionResults) -> None:
        """Run every node of a stage and wait for all of them."""
        tasks: list[asyncio.Task[NodeOutput]] = []
        for node_id in level:
            node = self.nodes[node_id]
            inputs = self._get_node_inputs(node_id, results)
            ctx = RunContext(self.types_registry, self.effects, self.graph_id, node_id, stage)
            task = asyncio.create_task(self._execute_node_with_error_handling(node_id, node, inputs, ctx))
            tasks.append(task)
            self._active_tasks.append(task)

        outcomes = await asyncio.gather(*tasks, return_exceptions=True)
        self._raise_if_cancelled()

        failure: BaseException | None = None
        for node_id, outcome in zip(level, outcomes):
            if isinstance(outcome, BaseException):
                failure = failure or outcome
                continue
            self._process_result(node_id, outcome, results)
        if isinstance(failure, asyncio.CancelledError):
            raise RunCancelledError("cancelled")
        if failure is not None:
            raise failure

    def _process_result(self, node_id: int, output: NodeOutput, results: ExecutionResults) -> None:
        node = self.nodes[node_id]
        logger.debug(f"RESULT_TRACE: Processing result for node {node_id}, type={type(node).__name__}")
        if self._should_emit_immediately(node) and self._result_callback:
            self._result_callback(node_id, output)
        results[node_id] = output

    async def _execute_node_with_error_handling(
        self, node_id: int, node: Base, inputs: dict[str, Value], ctx: RunContext
    ) -> NodeOutput:
        try:
            return await node.execute(inputs, ctx)
        except NodeExecutionError as e:
            if e.original_exc is not None:
                logger.debug(
                    f"ERROR_TRACE: Original exception: {type(e.original_exc).__name__}: {str(e.original_exc)}"
                )
            logger.error(f"Node {node_id} failed: {str(e)}")
            raise
        except asyncio.CancelledError:
            logger.debug(f"STOP_TRACE: Node {node_id} cancelled")
            raise
        except Exception as e:
            logger.error(f"Node {node_id} failed: {type(e).__name__}: {str(e)}")
            raise NodeExecutionError(node_id, f"{type(e).__name__}: {e}", original_exc=e) from e

    def _get_node_inputs(self, node_id: int, results: ExecutionResults) -> dict[str, Value]:
        inputs: dict[str, Value] = dict(self.inline_inputs.get(node_id, {}))
        for port, (origin_id, origin_port) in self.incoming.get(node_id, {}).items():
            inputs[port] = results[origin_id][origin_port]
        return inputs

    async def _cleanup_execution(self) -> None:
        """Cancel remaining tasks and settle the execution state."""
        pending = [t for t in self._active_tasks if not t.done()]
        if pending:
            self._cancel_all_tasks(pending)
            await asyncio.gather(*pending, return_exceptions=True)
        self._active_tasks.clear()
        if self._state == _GraphExecutionState.RUNNING:
            self._state = _GraphExecutionState.IDLE
        elif self._state == _GraphExecutionState.STOPPING:
            self._state = _GraphExecutionState.STOPPED

    def _cancel_all_tasks(self, tasks: list[asyncio.Task[NodeOutput]]):
        """Cancel all active tasks immediately."""
        for task in tasks:
            if not task.done():
                task.cancel()

    def _raise_if_cancelled(self) -> None:
        if self.is_stopping or self.is_stopped:
            raise RunCancelledError(self._cancellation_reason)

    def force_stop(self, reason: str = "user"):
        """Single entrypoint to immediately kill all execution. Idempotent."""
        if self.state in (_GraphExecutionState.STOPPING, _GraphExecutionState.STOPPED):
            return

        self._state = _GraphExecutionState.STOPPING
        self._cancellation_reason = reason

        logger.debug(f"STOP_TRACE: Cancelling {len(self._active_tasks)} active tasks")
        self._cancel_all_tasks(self._active_tasks)

        for node_id, node in self.nodes.items():
            logger.debug(f"STOP_TRACE: Calling force_stop on node {node_id} ({type(node).__name__})")
            node.force_stop()

        self._state = _GraphExecutionState.STOPPED

    async def stop(self, reason: str = "user"):
        logger.debug("STOP_TRACE: GraphExecutor.stop called")
        self.force_stop(reason=reason)

    # ============================================================================
    # State Management
    # ============================================================================

    @property
    def state(self) -> _GraphExecutionState:
        """Read-only property that prevents type narrowing."""
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == _GraphExecutionState.RUNNING

    @property
    def is_stopping(self) -> bool:
        return self._state == _GraphExecutionState.STOPPING

    @property
    def is_stopped(self) -> bool:
        return self._state == _GraphExecutionState.STOPPED

    @property
    def cancellation_reason(self) -> str | None:
        return self._cancellation_reason

    # ============================================================================
    # Configuration
    # ============================================================================

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """Set a progress callback function."""
        self._progress_callback = callback
        for node in self.nodes.values():
            node.set_progress_callback(callback)

    def set_result_callback(self, callback: ResultCallback) -> None:
        """Set a result callback function for immediate emission."""
        self._result_callback = callback

    def _should_emit_immediately(self, node: Base) -> bool:
        """Check if node should emit results immediately (IO category nodes)."""
        return node.CATEGORY == NodeCategory.IO


# ---- rustworkx helper shims with precise typing to satisfy the type checker ----
def _rx_levels(dag: Any) -> Any:
    return list(rx.topological_generations(dag))


def _rx_is_dag(dag: Any) -> bool:
    return rx.is_directed_acyclic_graph(dag)
