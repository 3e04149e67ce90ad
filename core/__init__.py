"""Core package for the typed graph engine.

Modules:
- errors: error taxonomy shared by every component
- types_registry: type references, struct/enum definitions and the TypesRegistry
- schema: YAML module sources validated with pydantic
- values: immutable runtime values, defaults and conversions
- serialization: values to and from JSON/YAML documents
- field_access: named field lookup and replacement through inline fields
- expression: arithmetic expression compiler
- template: `{key}` string templates
- mappings: persistent string id -> numeric id allocator
- side_effects: run-scoped file emission and commit
- graph_executor: staged DAG execution engine for node graphs
- node_registry: registry of available node classes
"""

# No explicit imports to avoid circular dependencies
# Import these modules directly (e.g., from core.graph_executor import GraphExecutor)
# instead of from core import graph_executor

__all__ = []
