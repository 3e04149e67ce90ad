# nodes/__init__.py
# This package contains the base class and implementations for graph nodes.
# Submodules:
# - base/: the abstract Base node (typed ports, state validation, execution template).
# - core/: node implementations organized by domain (fields, values, math, strings, mappings, io).
#
# Every concrete Base subclass under nodes/core/ is auto-discovered by core.node_registry.
