import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError, create_model

from core.errors import (
    ConversionError,
    NodeExecutionError,
    NodeValidationError,
    SchemaError,
)
from core.serialization import value_from_json
from core.side_effects import RunContext
from core.types_registry import (
    NodeCategory,
    ProgressCallback,
    ProgressEvent,
    ProgressState,
    TypeRef,
    TypesRegistry,
    parse_type_ref,
)
from core.values import Value, check_shape, convert, default_for

logger = logging.getLogger(__name__)

_NO_DEFAULT = object()


@dataclass(frozen=True)
class Port:
    """Typed node port. `default` is given in document (JSON) form."""

    type: TypeRef
    default: Any = _NO_DEFAULT

    @property
    def has_default(self) -> bool:
        return self.default is not _NO_DEFAULT


def _as_port(ref: "TypeRef | Port") -> Port:
    return ref if isinstance(ref, Port) else Port(ref)


class Base(ABC):
    # Port declarations may be bare types or Port objects with defaults
    inputs: dict[str, TypeRef | Port] = {}
    outputs: dict[str, TypeRef | Port] = {}
    # Node state: python types validated with pydantic, plus their defaults
    state_fields: dict[str, Any] = {}
    default_state: dict[str, Any] = {}
    CATEGORY: NodeCategory = NodeCategory.BASE

    def __init__(self, id: int, state: dict[str, Any] | None = None):
        self.id = id
        self.state = {**self.default_state, **(state or {})}
        self._validate_state()
        self.inputs: dict[str, Port] = {k: _as_port(v) for k, v in self.build_inputs().items()}
        self.outputs: dict[str, Port] = {k: _as_port(v) for k, v in self.build_outputs().items()}
        self._progress_callback: ProgressCallback | None = None
        self._is_stopped = False

    def build_inputs(self) -> dict[str, TypeRef | Port]:
        """Input ports of this instance. Override when ports depend on state."""
        return dict(type(self).inputs)

    def build_outputs(self) -> dict[str, TypeRef | Port]:
        return dict(type(self).outputs)

    def _state_type(self, key: str = "type") -> TypeRef:
        """Parse a type name stored in node state (`int`, `list<eh:Item>`, ...)."""
        try:
            return parse_type_ref(str(self.state.get(key) or ""))
        except SchemaError as e:
            raise NodeValidationError(self.id, f"Invalid type in state '{key}': {e}") from e

    def _get_or_build_model(self, fields: dict[str, Any]) -> type[BaseModel]:
        field_defs: dict[str, Any] = {name: (tp, ...) for name, tp in fields.items()}
        return create_model(
            f"Node{type(self).__name__}State",
            __base__=BaseModel,
            **field_defs,
        )

    def _validate_state(self) -> None:
        if not self.state_fields:
            return
        try:
            model = self._get_or_build_model(self.state_fields)
            validated = model.model_validate(
                {k: self.state.get(k) for k in self.state_fields}, strict=False
            )
        except ValidationError as ve:
            raise NodeValidationError(self.id, f"State validation failed: {ve}") from ve
        self.state.update(validated.model_dump())

    # ============================================================================
    # Contract
    # ============================================================================

    def describe(self) -> dict[str, Any]:
        """Node contract: typed inputs (with optional defaults), outputs and state fields."""

        def port_entry(name: str, port: Port) -> dict[str, Any]:
            entry: dict[str, Any] = {"name": name, "type": str(port.type)}
            if port.has_default:
                entry["default"] = port.default
            return entry

        return {
            "type": type(self).__name__,
            "category": self.CATEGORY.value,
            "inputs": [port_entry(k, p) for k, p in self.inputs.items()],
            "outputs": [{"name": k, "type": str(p.type)} for k, p in self.outputs.items()],
            "state": [
                {
                    "name": k,
                    "type": getattr(tp, "__name__", str(tp)),
                    "default": self.default_state.get(k),
                }
                for k, tp in self.state_fields.items()
            ],
        }

    # ============================================================================
    # Inputs / outputs
    # ============================================================================

    def prepare_inputs(self, inputs: dict[str, Value], registry: TypesRegistry) -> dict[str, Value]:
        """Fill unconnected ports with defaults and convert everything to the port types.

        Raises NodeValidationError when an input is missing or cannot be converted.
        """
        prepared: dict[str, Value] = {}
        for name, port in self.inputs.items():
            try:
                if name in inputs:
                    value = inputs[name]
                elif port.has_default:
                    value = value_from_json(registry, port.type, port.default)
                else:
                    value = default_for(registry, port.type)
                prepared[name] = convert(registry, value, port.type)
            except SchemaError as e:
                raise NodeValidationError(self.id, f"Missing input '{name}': {e}") from e
            except ConversionError as e:
                raise NodeValidationError(self.id, f"Input '{name}': {e}") from e
        return prepared

    def _validate_outputs(self, outputs: dict[str, Value], registry: TypesRegistry) -> dict[str, Value]:
        converted: dict[str, Value] = {}
        for name, port in self.outputs.items():
            if name not in outputs:
                raise NodeValidationError(self.id, f"Missing output '{name}'")
            try:
                converted[name] = convert(registry, outputs[name], port.type)
                check_shape(registry, converted[name])
            except ConversionError as e:
                raise NodeValidationError(self.id, f"Output '{name}': {e}") from e
        return converted

    # ============================================================================
    # Progress
    # ============================================================================

    def set_progress_callback(self, callback: ProgressCallback) -> None:
        """Set a callback function to report progress during execution."""
        self._progress_callback = callback

    def _clamp_progress(self, value: float) -> float:
        return min(max(value, 0.0), 100.0)

    def _emit_progress(
        self,
        state: ProgressState,
        progress: float | None = None,
        text: str = "",
        meta: dict[str, Any] | None = None,
    ) -> None:
        if not self._progress_callback:
            return
        event: ProgressEvent = {
            "node_id": self.id,
            "state": state,
        }
        if progress is not None:
            event["progress"] = self._clamp_progress(progress)
        if text:
            event["text"] = text
        if meta:
            event["meta"] = meta
        self._progress_callback(event)

    def force_stop(self):
        """Mark the node as stopped. Idempotent."""
        if self._is_stopped:
            return
        self._is_stopped = True
        self._emit_progress(ProgressState.STOPPED, 100.0, "stopped")

    # ============================================================================
    # Execution
    # ============================================================================

    async def execute(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        """Template method for execution with uniform error handling and progress lifecycle."""
        prepared = self.prepare_inputs(inputs, ctx.registry)  # Raises NodeValidationError
        self._emit_progress(ProgressState.START, 0.0, "start")
        try:
            result = await self._execute_impl(prepared, ctx)
            result = self._validate_outputs(result, ctx.registry)
            self._emit_progress(ProgressState.DONE, 100.0, "")
            return result
        except NodeExecutionError:
            raise
        except Exception as e:
            self._emit_progress(ProgressState.ERROR, 100.0, f"error: {type(e).__name__}: {str(e)}")
            raise NodeExecutionError(self.id, f"{type(e).__name__}: {e}", original_exc=e) from e

    @abstractmethod
    async def _execute_impl(self, inputs: dict[str, Value], ctx: RunContext) -> dict[str, Value]:
        """Core execution logic - implement in subclasses. Do not add try/except here; let base handle errors."""
        raise NotImplementedError("Subclasses must implement _execute_impl()")
