"""
infrastructure.py

Key-value store implementations, collection repositories and the Unit of
Work for the Construction Site Dashboard.

Two stores are provided:

  InMemoryKeyValueStore   – serialised JSON text in a dict; lives for the
                            lifetime of the process (demos and tests).
  JsonFileKeyValueStore   – one <key>.json file per collection in a data
                            directory; survives restarts.

Each collection (materials, workers, projects) is kept under its own key as
a JSON array, written whole on every save.  The repositories translate
between those arrays and the domain dataclasses and treat unreadable
content as "nothing stored".

To swap in another backend, implement AbstractKeyValueStore from
application.py and override get_uow() in api.py:

    app.dependency_overrides[get_uow] = lambda: KeyValueUnitOfWork(MyStore())
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

from application import (
    MATERIALS_KEY,
    PROJECTS_KEY,
    WORKERS_KEY,
    AbstractKeyValueStore,
    AbstractMaterialRepository,
    AbstractProjectRepository,
    AbstractUnitOfWork,
    AbstractWorkerRepository,
)
from config import AppConfig
from model import (
    NO_DEADLINE,
    DEFAULT_PROJECT_STATUS,
    Material,
    MaterialStatus,
    Project,
    Worker,
    WorkerStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ---------------------------------------------------------------------------
# Key-value stores
# ---------------------------------------------------------------------------

class InMemoryKeyValueStore(AbstractKeyValueStore):
    """
    Keeps each value as serialised JSON text, so a load always hands back a
    fresh copy.  `initial` seeds raw text per key, as if written earlier.
    """

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def load(self, key: str) -> Optional[Any]:
        raw = self._data.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as exc:
            logger.warning("Discarding unreadable value stored under %r: %s", key, exc)
            return None

    def save(self, key: str, value: Any) -> None:
        self._data[key] = json.dumps(value)

    def raw(self, key: str) -> Optional[str]:
        return self._data.get(key)


class JsonFileKeyValueStore(AbstractKeyValueStore):
    """Stores each key as <directory>/<key>.json, replacing the file atomically."""

    def __init__(self, directory: Path):
        self._dir = Path(directory)

    def _path(self, key: str) -> Path:
        return self._dir / f"{key}.json"

    def load(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with path.open("r", encoding="utf-8") as fh:
                return json.load(fh)
        except (OSError, ValueError) as exc:
            logger.warning("Discarding unreadable file %s: %s", path, exc)
            return None

    def save(self, key: str, value: Any) -> None:
        self._dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(value, fh, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self._path(key))
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.debug("Wrote %s", self._path(key))


def build_store(config: AppConfig) -> AbstractKeyValueStore:
    """Create the store selected by configuration."""
    if config.storage_backend == "memory":
        logger.info("Using in-memory storage")
        return InMemoryKeyValueStore()
    if config.storage_backend == "json":
        logger.info("Using JSON file storage in %s", config.data_dir)
        return JsonFileKeyValueStore(config.data_dir)
    raise ValueError(
        f"Unknown storage backend {config.storage_backend!r}; expected 'json' or 'memory'."
    )


# ---------------------------------------------------------------------------
# Record codecs
# ---------------------------------------------------------------------------

def _text(value: Any, default: Optional[str] = None) -> str:
    if value is None and default is not None:
        return default
    if not isinstance(value, str):
        raise TypeError(f"expected text, got {type(value).__name__}")
    return value


def _number(value: Any) -> float:
    """Accept JSON numbers and numeric strings (older records kept raw input text)."""
    if isinstance(value, bool):
        raise TypeError("expected a number, got a boolean")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return float(value)
    raise TypeError(f"expected a number, got {type(value).__name__}")


def _identifier(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise TypeError(f"expected a numeric id, got {value!r}")
    return int(value)


class _Codec:
    """Converts domain dataclasses to and from their stored JSON records."""

    @staticmethod
    def material_to_record(m: Material) -> Dict[str, Any]:
        return {"name": m.name, "status": m.status.value, "quantity": m.quantity}

    @staticmethod
    def material_from_record(record: Dict[str, Any]) -> Material:
        return Material(
            name=_text(record["name"]),
            status=MaterialStatus(record["status"]),
            quantity=_number(record["quantity"]),
        )

    @staticmethod
    def worker_to_record(w: Worker) -> Dict[str, Any]:
        return {
            "id": w.id,
            "name": w.name,
            "role": w.role,
            "status": w.status.value,
            "project": w.project,
            "isAbsent": w.is_absent,
            "month": w.month,
        }

    @staticmethod
    def worker_from_record(record: Dict[str, Any]) -> Worker:
        project = record.get("project")
        return Worker(
            id=_identifier(record["id"]),
            name=_text(record["name"]),
            role=_text(record["role"]),
            status=WorkerStatus(record["status"]),
            project=_text(project) if project is not None else None,
            is_absent=bool(record.get("isAbsent", False)),
            month=_text(record.get("month"), default=""),
        )

    @staticmethod
    def project_to_record(p: Project) -> Dict[str, Any]:
        return {
            "id": p.id,
            "name": p.name,
            "deadline": p.deadline,
            "progress": p.progress,
            "status": p.status,
        }

    @staticmethod
    def project_from_record(record: Dict[str, Any]) -> Project:
        return Project(
            id=_identifier(record["id"]),
            name=_text(record["name"]),
            deadline=_text(record.get("deadline"), default=NO_DEADLINE),
            progress=_number(record.get("progress", 0)),
            status=_text(record.get("status"), default=DEFAULT_PROJECT_STATUS),
        )


# ---------------------------------------------------------------------------
# Repository implementations
# ---------------------------------------------------------------------------

class _CollectionRepository(Generic[T]):
    """Whole-collection load/save of one key, tolerant of malformed content."""

    def __init__(
        self,
        store: AbstractKeyValueStore,
        key: str,
        to_record: Callable[[T], Dict[str, Any]],
        from_record: Callable[[Dict[str, Any]], T],
    ):
        self._store = store
        self._key = key
        self._to_record = to_record
        self._from_record = from_record

    def load(self) -> Optional[List[T]]:
        raw = self._store.load(self._key)
        if raw is None:
            return None
        if not isinstance(raw, list):
            logger.warning(
                "Stored %r is a %s, not a list; ignoring it", self._key, type(raw).__name__
            )
            return None
        items: List[T] = []
        for position, record in enumerate(raw):
            try:
                if not isinstance(record, dict):
                    raise TypeError(f"expected an object, got {type(record).__name__}")
                items.append(self._from_record(record))
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("Skipping malformed %s entry #%d: %s", self._key, position, exc)
        if raw and not items:
            logger.warning("No readable %s entries; ignoring stored value", self._key)
            return None
        return items

    def save(self, items: List[T]) -> None:
        self._store.save(self._key, [self._to_record(item) for item in items])
        logger.debug("Saved %d %s", len(items), self._key)


class KeyValueMaterialRepository(_CollectionRepository[Material], AbstractMaterialRepository):
    def __init__(self, store: AbstractKeyValueStore):
        super().__init__(store, MATERIALS_KEY, _Codec.material_to_record, _Codec.material_from_record)


class KeyValueWorkerRepository(_CollectionRepository[Worker], AbstractWorkerRepository):
    def __init__(self, store: AbstractKeyValueStore):
        super().__init__(store, WORKERS_KEY, _Codec.worker_to_record, _Codec.worker_from_record)


class KeyValueProjectRepository(_CollectionRepository[Project], AbstractProjectRepository):
    def __init__(self, store: AbstractKeyValueStore):
        super().__init__(store, PROJECTS_KEY, _Codec.project_to_record, _Codec.project_from_record)


# ---------------------------------------------------------------------------
# Shared in-memory store (module-level singleton)
# Lives for the lifetime of the process; restarting uvicorn resets it.
# ---------------------------------------------------------------------------

_default_store = InMemoryKeyValueStore()


# ---------------------------------------------------------------------------
# Unit of Work
# ---------------------------------------------------------------------------

class KeyValueUnitOfWork(AbstractUnitOfWork):
    """
    Wraps the three collection repositories over one store.  commit() and
    rollback() are no-ops because every save reaches the store immediately.
    """

    def __init__(self, store: AbstractKeyValueStore = _default_store):
        self.store = store
        self.materials = KeyValueMaterialRepository(store)
        self.workers = KeyValueWorkerRepository(store)
        self.projects = KeyValueProjectRepository(store)

    def commit(self) -> None: pass     # saves are immediate
    def rollback(self) -> None: pass   # nothing buffered to discard
