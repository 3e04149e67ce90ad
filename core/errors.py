"""Error taxonomy shared by the registry, value model, allocator and executor."""


class EngineError(Exception):
    """Base exception for all engine errors."""

    pass


class SchemaError(EngineError):
    """Raised when module definitions are invalid. Aborts the whole registry load."""

    pass


# Graph structure errors (raised before any node runs)
class GraphError(EngineError):
    """Raised when a serialised graph cannot be built."""

    pass


class GraphCycleError(GraphError):
    def __init__(self, node_ids: list[int]):
        chain = " -> ".join(str(n) for n in node_ids)
        super().__init__(f"Graph contains cycles: {chain}")
        self.node_ids = node_ids


class PortArityError(GraphError):
    def __init__(self, node_id: int, port: str, count: int):
        super().__init__(
            f"Input port '{port}' of node {node_id} has {count} incoming links (at most one allowed)"
        )
        self.node_id = node_id
        self.port = port


# Value errors
class ValueAccessError(EngineError):
    pass


class FieldNotFound(ValueAccessError):
    def __init__(self, field: str, type_name: str):
        super().__init__(f"field `{field}` not found in object of type `{type_name}`")
        self.field = field


class NotAStructOrEnum(ValueAccessError):
    def __init__(self, type_name: str):
        super().__init__(f"value of type `{type_name}` is not a struct or an enum")


class ConversionError(EngineError):
    pass


class ExpressionError(EngineError):
    pass


class TemplateError(EngineError):
    pass


# Mapping allocator errors
class MappingError(EngineError):
    pass


class RangeExhausted(MappingError):
    pass


class MappingConflict(MappingError):
    pass


class MappingNotFound(MappingError):
    pass


class AssertionFailed(EngineError):
    pass


class PathCollision(EngineError):
    def __init__(self, path: str):
        super().__init__(f"File already exists at path `{path}`")
        self.path = path


# Node exceptions
class NodeError(EngineError):
    """Base exception for all node-related errors."""

    pass


class NodeValidationError(NodeError):
    """Raised when node inputs or state fail validation."""

    def __init__(self, node_id: int, message: str):
        super().__init__(f"Node {node_id}: {message}")
        self.node_id = node_id


class NodeExecutionError(NodeError):
    """Raised when node execution fails."""

    def __init__(self, node_id: int, message: str, original_exc: Exception | None = None):
        super().__init__(f"Node {node_id}: {message}")
        self.node_id = node_id
        self.original_exc = original_exc

    @property
    def kind(self) -> str:
        if self.original_exc is not None:
            return type(self.original_exc).__name__
        return type(self).__name__


class RunCancelledError(EngineError):
    def __init__(self, reason: str | None):
        super().__init__(f"Run cancelled ({reason or 'unknown'})")
        self.reason = reason


__all__ = [
    "EngineError",
    "SchemaError",
    "GraphError",
    "GraphCycleError",
    "PortArityError",
    "ValueAccessError",
    "FieldNotFound",
    "NotAStructOrEnum",
    "ConversionError",
    "ExpressionError",
    "TemplateError",
    "MappingError",
    "RangeExhausted",
    "MappingConflict",
    "MappingNotFound",
    "AssertionFailed",
    "PathCollision",
    "NodeError",
    "NodeValidationError",
    "NodeExecutionError",
    "RunCancelledError",
]
