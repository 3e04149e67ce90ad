"""Persistent string id -> numeric id allocator.

A mapping file looks like:

    {"values": {"item.sword": 100, "item.shield": 101},
     "ranges": [{"start": 100, "end": 199}]}

Stores are owned by a `MappingSession` for the duration of one graph run and are
only written back when the run commits.
"""

import hashlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.errors import MappingConflict, MappingError, MappingNotFound, RangeExhausted

logger = logging.getLogger(__name__)

MAPPING_SUFFIX = ".json"


class MappingKind(str, Enum):
    ANY = "any"
    NEW_ID = "new_id"
    EXISTING_ID = "existing_id"

    @classmethod
    def parse(cls, text: "str | MappingKind") -> "MappingKind":
        if isinstance(text, MappingKind):
            return text
        aliases = {"Any": cls.ANY, "NewId": cls.NEW_ID, "ExistingId": cls.EXISTING_ID}
        text = text.strip()
        if text in aliases:
            return aliases[text]
        try:
            return cls(text.lower())
        except ValueError:
            raise MappingError(f"Unknown mapping kind `{text}`") from None


@dataclass(frozen=True)
class IdRange:
    """Inclusive range of numeric ids."""

    start: int
    end: int

    def __post_init__(self):
        if self.start > self.end:
            raise MappingError(f"Invalid id range [{self.start}, {self.end}]")


class _RangeModel(BaseModel):
    start: int
    end: int


class MappingFile(BaseModel):
    model_config = ConfigDict(extra="ignore")

    values: dict[str, int] = Field(default_factory=dict)
    ranges: list[_RangeModel] = Field(default_factory=list)


@dataclass
class _Entry:
    id: int
    persistent: bool


def _fingerprint(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class MappingStore:
    def __init__(
        self,
        path: Path,
        entries: dict[str, _Entry] | None = None,
        ranges: Iterable[IdRange] = (),
        fingerprint: str | None = None,
    ):
        self.path = path
        self._entries: dict[str, _Entry] = dict(entries or {})
        self._owners: dict[int, str] = {e.id: k for k, e in self._entries.items()}
        self._ranges: list[IdRange] = list(ranges)
        self._cursors: list[int] = [r.start for r in self._ranges]
        # Ranges are fixed once a file was loaded or defaults were provided
        self._ranges_initialized = fingerprint is not None or bool(self._ranges)
        self._created: dict[str, int] = {}
        self._fingerprint = fingerprint
        self._lock = threading.Lock()

    @classmethod
    def load(cls, path: str | Path, default_ranges: Iterable[IdRange] | None = None) -> "MappingStore":
        path = Path(path)
        if not path.exists():
            logger.debug(f"Mapping file {path} does not exist yet, starting empty")
            store = cls(path)
            if default_ranges is not None:
                store.provide_default_ranges(default_ranges)
            return store

        try:
            raw = path.read_bytes()
            packed = MappingFile.model_validate(json.loads(raw))
        except OSError as e:
            raise MappingError(f"Failed to read mapping file `{path}`: {e}") from e
        except (json.JSONDecodeError, ValidationError) as e:
            raise MappingError(f"Invalid mapping file `{path}`: {e}") from e

        entries: dict[str, _Entry] = {}
        owners: dict[int, str] = {}
        for string_id, numeric in packed.values.items():
            if numeric in owners:
                raise MappingError(
                    f"Mapping file `{path}` maps both `{owners[numeric]}` and `{string_id}` to {numeric}"
                )
            owners[numeric] = string_id
            entries[string_id] = _Entry(numeric, True)
        ranges = [IdRange(r.start, r.end) for r in packed.ranges]
        logger.debug(f"Loaded {len(entries)} mappings from {path}")
        return cls(path, entries, ranges, _fingerprint(raw))

    # ============================================================================
    # Queries and updates
    # ============================================================================

    def provide_default_ranges(self, ranges: Iterable[IdRange]) -> None:
        """Install ranges for a store without a file. The first call wins."""
        with self._lock:
            if self._ranges_initialized:
                return
            self._ranges = list(ranges)
            self._cursors = [r.start for r in self._ranges]
            self._ranges_initialized = True

    @property
    def ranges(self) -> list[IdRange]:
        return list(self._ranges)

    def request(self, string_id: str, kind: MappingKind, stage: int, persistent: bool = True) -> int:
        kind = MappingKind.parse(kind)
        with self._lock:
            if kind == MappingKind.EXISTING_ID:
                created_at = self._created.get(string_id)
                if created_at is None or created_at >= stage:
                    raise MappingNotFound(f"ID `{string_id}` is not yet created via `NewId` mapping")
                return self._entries[string_id].id

            if kind == MappingKind.NEW_ID:
                if string_id in self._created:
                    raise MappingConflict(f"ID `{string_id}` is already taken")
                numeric = self._get_or_mint(string_id, persistent)
                self._created[string_id] = stage
                return numeric

            return self._get_or_mint(string_id, persistent)

    def set_mapping(self, string_id: str, numeric_id: int, persistent: bool = True) -> int:
        with self._lock:
            entry = self._entries.get(string_id)
            if entry is not None:
                if entry.id != numeric_id:
                    raise MappingConflict(f"ID `{string_id}` is already mapped to {entry.id}")
                entry.persistent = entry.persistent or persistent
                return numeric_id
            owner = self._owners.get(numeric_id)
            if owner is not None:
                raise MappingConflict(f"Numeric ID {numeric_id} is already taken by `{owner}`")
            self._entries[string_id] = _Entry(numeric_id, persistent)
            self._owners[numeric_id] = string_id
            return numeric_id

    def lookup(self, string_id: str) -> int | None:
        with self._lock:
            entry = self._entries.get(string_id)
            return None if entry is None else entry.id

    def has_persistent_ids(self) -> bool:
        with self._lock:
            return any(e.persistent for e in self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def _get_or_mint(self, string_id: str, persistent: bool) -> int:
        entry = self._entries.get(string_id)
        if entry is not None:
            entry.persistent = entry.persistent or persistent
            return entry.id
        numeric = self._next_id()
        self._entries[string_id] = _Entry(numeric, persistent)
        self._owners[numeric] = string_id
        logger.debug(f"Minted id {numeric} for `{string_id}` in {self.path}")
        return numeric

    def _next_id(self) -> int:
        if not self._ranges:
            raise RangeExhausted(
                "No ID ranges are available. Please add a new range to the available IDs"
            )
        for index, id_range in enumerate(self._ranges):
            candidate = self._cursors[index]
            while candidate <= id_range.end:
                if candidate not in self._owners:
                    self._cursors[index] = candidate + 1
                    return candidate
                candidate += 1
            self._cursors[index] = candidate
        raise RangeExhausted(f"No free IDs are left in {self.path}")

    # ============================================================================
    # Persistence
    # ============================================================================

    def snapshot(self) -> bytes | None:
        """Serialised file contents to write at commit, or None when there is nothing to save.

        Raises `MappingError` when the file changed on disk since it was loaded.
        """
        with self._lock:
            values = {k: e.id for k, e in self._entries.items() if e.persistent}
            if not values and self._fingerprint is None:
                return None
            self._check_unmodified()
            packed = {
                "values": dict(sorted(values.items())),
                "ranges": [{"start": r.start, "end": r.end} for r in self._ranges],
            }
            return (json.dumps(packed, indent=2) + "\n").encode("utf-8")

    def mark_saved(self, data: bytes) -> None:
        with self._lock:
            self._fingerprint = _fingerprint(data)
        logger.info(f"Saved {len(json.loads(data)['values'])} mappings to {self.path}")

    def save(self) -> bool:
        """Write persistent entries and ranges back to disk.

        Returns False when there was nothing persistent to write.
        """
        data = self.snapshot()
        if data is None:
            return False
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=self.path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, self.path)
        except OSError as e:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise MappingError(f"Failed to write mapping file `{self.path}`: {e}") from e
        self.mark_saved(data)
        return True

    def check_unmodified(self) -> None:
        with self._lock:
            self._check_unmodified()

    def _check_unmodified(self) -> None:
        current = self.path.read_bytes() if self.path.exists() else None
        expected = self._fingerprint
        if current is None and expected is None:
            return
        if current is None or expected is None or _fingerprint(current) != expected:
            raise MappingError(
                f"Mapping file `{self.path}` was modified by other side effects since it was loaded"
            )


class MappingSession:
    """Mapping stores opened during one run, keyed by resolved path."""

    def __init__(self, base_dir: str | Path | None = None):
        self.base_dir = Path(base_dir) if base_dir is not None else Path.cwd()
        self._stores: dict[Path, MappingStore] = {}
        self._lock = threading.Lock()

    def resolve_path(self, path: str) -> Path:
        path = path.strip()
        if not path:
            raise MappingError("Mapping path must not be empty")
        resolved = Path(path)
        if not resolved.suffix:
            resolved = resolved.with_suffix(MAPPING_SUFFIX)
        if not resolved.is_absolute():
            resolved = self.base_dir / resolved
        return resolved.resolve()

    def open(self, path: str, default_ranges: Iterable[IdRange] | None = None) -> MappingStore:
        resolved = self.resolve_path(path)
        with self._lock:
            store = self._stores.get(resolved)
            if store is None:
                store = MappingStore.load(resolved, default_ranges)
                self._stores[resolved] = store
        if default_ranges is not None:
            store.provide_default_ranges(default_ranges)
        return store

    @property
    def stores(self) -> dict[Path, MappingStore]:
        with self._lock:
            return dict(self._stores)

    def snapshots(self) -> list[tuple[MappingStore, bytes]]:
        """Contents of every store that needs saving.

        All stores are checked against their files before anything is returned.
        """
        stores = list(self.stores.values())
        for store in stores:
            store.check_unmodified()
        result = []
        for store in stores:
            data = store.snapshot()
            if data is not None:
                result.append((store, data))
        return result

    def discard(self) -> None:
        with self._lock:
            self._stores.clear()


__all__ = [
    "MappingKind",
    "IdRange",
    "MappingFile",
    "MappingStore",
    "MappingSession",
]
