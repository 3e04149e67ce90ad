"""
Command line entrypoint for the graph engine.

Usage examples:
    python main.py check --modules modules/
    python main.py run --modules modules/ --graph graphs/items.json
    python main.py nodes

Commands:
  - check: load and validate every module below the module directory
  - run: execute a JSON or YAML graph document and print the node outputs as JSON
  - nodes: print the contract (inputs, outputs, state) of every node type
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any

from config.settings import load_settings
from core.errors import ConversionError, EngineError
from core.types_registry import TypesRegistry

logger = logging.getLogger(__name__)


def _load_registry(modules_dir: str) -> TypesRegistry:
    from core.schema import load_module_dir

    modules = load_module_dir(modules_dir) if Path(modules_dir).exists() else []
    if not modules:
        logger.warning(f"No modules found in {modules_dir}, only built-in types are available")
    return TypesRegistry.load(modules)


def cmd_check(args: argparse.Namespace) -> int:
    registry = _load_registry(args.modules)
    for name, module in sorted(registry.modules.items()):
        count = len(module.types)
        version = f" v{module.version}" if module.version else ""
        print(f"{name}{version}: {count} types")
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    from core.graph_executor import GraphExecutor
    from core.node_registry import NODE_REGISTRY
    from core.serialization import load_document, value_to_json
    from core.side_effects import SideEffects

    registry = _load_registry(args.modules)
    graph_path = Path(args.graph)
    fmt = "yaml" if graph_path.suffix in (".yaml", ".yml") else "json"
    try:
        graph: dict[str, Any] = load_document(graph_path.read_text(encoding="utf-8"), fmt)
    except (OSError, ConversionError) as e:
        raise EngineError(f"Failed to read graph `{args.graph}`: {e}") from e
    if not isinstance(graph, dict):
        raise EngineError(f"Failed to read graph `{args.graph}`: document must be a mapping")
    graph.setdefault("id", graph_path.stem)

    effects = SideEffects(args.emitted_dir, base_dir=args.project_dir, output_format=args.format)
    executor = GraphExecutor(graph, NODE_REGISTRY, registry, effects)
    results = asyncio.run(executor.execute())

    printable = {
        str(node_id): {port: value_to_json(registry, value) for port, value in outputs.items()}
        for node_id, outputs in sorted(results.items())
    }
    print(json.dumps(printable, indent=2, ensure_ascii=False))
    return 0


def cmd_nodes(args: argparse.Namespace) -> int:
    from core.node_registry import NODE_REGISTRY, describe_nodes

    print(json.dumps(describe_nodes(NODE_REGISTRY), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    settings = load_settings()
    parser = argparse.ArgumentParser(description="Typed graph execution engine")
    parser.add_argument("--log-level", default=settings.log_level, help="Logging level (default: %(default)s)")
    sub = parser.add_subparsers(dest="command", required=True)

    check = sub.add_parser("check", help="Validate module definitions")
    check.add_argument("--modules", default=settings.modules_dir, help="Module directory")
    check.set_defaults(func=cmd_check)

    run = sub.add_parser("run", help="Execute a graph")
    run.add_argument("--modules", default=settings.modules_dir, help="Module directory")
    run.add_argument("--graph", required=True, help="Graph JSON or YAML document")
    run.add_argument("--project-dir", default=".", help="Base directory for relative output and mapping paths")
    run.add_argument("--emitted-dir", default=settings.emitted_dir, help="Directory for engine-managed files")
    run.add_argument("--format", default=settings.output_format, choices=["json", "yaml"], help="Output format")
    run.set_defaults(func=cmd_run)

    nodes = sub.add_parser("nodes", help="Print node contracts")
    nodes.set_defaults(func=cmd_nodes)
    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return args.func(args)
    except EngineError as e:
        logger.error(str(e))
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
