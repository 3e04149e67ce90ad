# core/node_registry.py
# This module handles dynamic loading of node classes from specified directories.

import importlib
import inspect
import logging
import os
from typing import Any

from core.types_registry import NodeRegistry
from nodes.base.base_node import Base

logger = logging.getLogger(__name__)

PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))


def load_nodes(directories: list[str]) -> NodeRegistry:
    """
    Loads all concrete subclasses of Base from the given directories.

    Args:
        directories: Paths (relative to the project root) to search for node modules.

    Returns:
        Dictionary mapping node class names to their types.

    Note: Skips abstract classes and __init__.py files. Modules are imported by
    their dotted path, so directories must live below the project root.
    """
    registry: NodeRegistry = {}
    for dir_path in directories:
        base_dir = dir_path if os.path.isabs(dir_path) else os.path.join(PROJECT_ROOT, dir_path)
        for root, subdirs, files in os.walk(base_dir):
            subdirs[:] = sorted(d for d in subdirs if not d.startswith(("_", ".")))
            for filename in sorted(files):
                if not filename.endswith(".py") or filename == "__init__.py":
                    continue
                module_path = os.path.join(root, filename)
                rel_path = os.path.relpath(module_path, start=PROJECT_ROOT)
                module_name = rel_path.replace(os.sep, ".").rsplit(".py", 1)[0]
                module = importlib.import_module(module_name)
                for name, obj in vars(module).items():
                    if (
                        isinstance(obj, type)
                        and issubclass(obj, Base)
                        and obj is not Base
                        and obj.__module__ == module.__name__
                        and not inspect.isabstract(obj)
                    ):
                        if name in registry:
                            logger.warning(f"Node type {name} from {module_name} overrides an earlier definition")
                        registry[name] = obj
    logger.debug(f"Loaded {len(registry)} node types")
    return registry


def describe_nodes(registry: NodeRegistry) -> list[dict[str, Any]]:
    """Contracts of every registered node type, built from a default-state instance."""
    return [registry[name](0, {}).describe() for name in sorted(registry)]


NODE_REGISTRY: NodeRegistry = load_nodes(["nodes/core"])
