"""Run-scoped side effects.

Nodes never touch the filesystem directly: emitted files and mapping stores are
collected here and written only when the whole run succeeded.
"""

import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from core.errors import EngineError, PathCollision
from core.mappings import MappingSession
from core.serialization import OUTPUT_FORMATS, dump_document
from core.types_registry import TypesRegistry

logger = logging.getLogger(__name__)

# Explicit output paths written by the engine; these may be overwritten by later runs
MANIFEST_NAME = ".generated.json"


@dataclass(frozen=True)
class PendingFile:
    path: Path
    content: str
    explicit: bool
    node_id: int


def _sanitise(name: str) -> str:
    cleaned = "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in name)
    return cleaned or "graph"


def _stage(path: Path, data: bytes) -> str:
    """Write `data` to a temporary file beside `path` and return its name."""
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
    except OSError:
        os.unlink(tmp)
        raise
    return tmp


class SideEffects:
    def __init__(
        self,
        emitted_dir: str | Path,
        base_dir: str | Path | None = None,
        output_format: str = "json",
    ):
        if output_format not in OUTPUT_FORMATS:
            raise EngineError(f"Unknown output format `{output_format}` (expected one of {OUTPUT_FORMATS})")
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        emitted = Path(emitted_dir)
        self.emitted_dir = emitted if emitted.is_absolute() else self.base_dir / emitted
        self.output_format = output_format
        self.mappings = MappingSession(self.base_dir)
        self._pending: dict[Path, PendingFile] = {}
        self._counters: dict[int, int] = {}
        self._lock = threading.Lock()

    # ============================================================================
    # Emission
    # ============================================================================

    def _manifest_path(self) -> Path:
        return self.emitted_dir / MANIFEST_NAME

    def _generated_paths(self) -> set[str]:
        manifest = self._manifest_path()
        if not manifest.exists():
            return set()
        try:
            return set(json.loads(manifest.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError) as e:
            raise EngineError(f"Failed to read generated file manifest `{manifest}`: {e}") from e

    def _check_explicit(self, path: Path, generated: set[str]) -> None:
        if path.exists() and str(path) not in generated:
            raise PathCollision(str(path))

    def resolve_output_path(self, path: str, fmt: str) -> Path:
        resolved = Path(path.strip().replace("\\", "/"))
        if not resolved.suffix:
            resolved = resolved.with_suffix(f".{fmt}")
        if not resolved.is_absolute():
            resolved = self.base_dir / resolved
        return resolved.resolve()

    def emit_file(
        self,
        data: Any,
        graph_id: str,
        node_id: int,
        path: str | None = None,
        fmt: str | None = None,
    ) -> Path:
        """Queue a document for writing at commit time and return its target path.

        Without `path` the file goes to the emitted directory under a name derived
        from the graph and node, and is replaced on every run.
        """
        fmt = fmt or self.output_format
        content = dump_document(data, fmt)
        with self._lock:
            index = self._counters.get(node_id, 0)
            self._counters[node_id] = index + 1
            if path is None or not path.strip():
                target = self.emitted_dir / f"{_sanitise(graph_id)}.n{node_id}.{index}.{fmt}"
                explicit = False
            else:
                target = self.resolve_output_path(path, fmt)
                explicit = True
                self._check_explicit(target, self._generated_paths())
            if target in self._pending:
                raise PathCollision(str(target))
            self._pending[target] = PendingFile(target, content, explicit, node_id)
        logger.debug(f"Node {node_id} queued {target}")
        return target

    @property
    def pending_files(self) -> list[PendingFile]:
        with self._lock:
            return list(self._pending.values())

    # ============================================================================
    # Commit / discard
    # ============================================================================

    def commit(self) -> list[Path]:
        """Write every pending file and mapping store, or none of them.

        All collision and mapping checks run before the first write. Targets are
        staged next to their destination and only moved into place once every
        one of them was staged.
        """
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()

        generated = self._generated_paths()
        for item in pending:
            if item.explicit:
                self._check_explicit(item.path, generated)
        snapshots = self.mappings.snapshots()

        targets: list[tuple[Path, bytes]] = [(item.path, item.content.encode("utf-8")) for item in pending]
        if any(item.explicit for item in pending):
            generated.update(str(item.path) for item in pending if item.explicit)
            manifest = json.dumps(sorted(generated), indent=2).encode("utf-8")
            targets.append((self._manifest_path(), manifest))
        targets.extend((store.path, data) for store, data in snapshots)

        staged: list[tuple[str, Path]] = []
        try:
            for path, data in targets:
                staged.append((_stage(path, data), path))
        except OSError as e:
            for tmp, _ in staged:
                os.unlink(tmp)
            raise EngineError(f"Failed to stage `{path}` for writing: {e}") from e

        for tmp, path in staged:
            os.replace(tmp, path)
        for item in pending:
            logger.info(f"Wrote {item.path}")
        for store, data in snapshots:
            store.mark_saved(data)
        return [item.path for item in pending]

    def discard(self) -> None:
        with self._lock:
            dropped = len(self._pending)
            self._pending.clear()
            self._counters.clear()
        self.mappings.discard()
        logger.debug(f"Discarded {dropped} pending files")


@dataclass
class RunContext:
    """Per-node view of the running graph handed to `Base.execute`."""

    registry: TypesRegistry
    effects: SideEffects
    graph_id: str
    node_id: int
    stage: int = 0


__all__ = ["MANIFEST_NAME", "PendingFile", "SideEffects", "RunContext"]
