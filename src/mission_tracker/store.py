"""Keyed record stores.

Records are plain JSON-compatible dicts keyed by id. Only per-record
atomic writes are guaranteed; there are no multi-record transactions.
"""

import copy
import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Protocol

import portalocker

from .errors import NotFoundError, ValidationError
from .utils import atomic_write_text

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class RecordStore(Protocol):
    """Protocol for the persistence collaborator."""

    def get(self, record_id: str) -> Optional[Record]:
        """Return the record or None if absent."""
        ...

    def create(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Create a record. Raises ValidationError if the id exists."""
        ...

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        """Merge fields into a record. Raises NotFoundError if absent."""
        ...

    def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Record]:
        """Return records whose fields equal every filter value."""
        ...


def matches(record: Mapping[str, Any], filter: Optional[Mapping[str, Any]]) -> bool:
    """Equality match of every filter key."""
    if not filter:
        return True
    return all(record.get(key) == value for key, value in filter.items())


class MemoryRecordStore:
    """In-process store for tests and embedding."""

    def __init__(self):
        self._records: Dict[str, Record] = {}
        self._lock = threading.Lock()

    def get(self, record_id: str) -> Optional[Record]:
        with self._lock:
            record = self._records.get(record_id)
            return copy.deepcopy(record) if record is not None else None

    def create(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        with self._lock:
            if record_id in self._records:
                raise ValidationError(f"Record already exists: {record_id}")
            record = copy.deepcopy(dict(fields))
            record["id"] = record_id
            self._records[record_id] = record
            return copy.deepcopy(record)

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        with self._lock:
            if record_id not in self._records:
                raise NotFoundError("Record", record_id)
            self._records[record_id].update(copy.deepcopy(dict(fields)))
            return copy.deepcopy(self._records[record_id])

    def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Record]:
        with self._lock:
            return [
                copy.deepcopy(r) for r in self._records.values() if matches(r, filter)
            ]


class JsonFileRecordStore:
    """One JSON file per record under a directory.

    Writes go through an atomic rename, so readers never see a torn record.
    Read-modify-write in ``update`` holds a per-record portalocker lock so
    concurrent updates to the same record from several processes are
    serialized.
    """

    def __init__(self, base_dir: Path, lock_timeout: float = 30.0):
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.lock_dir = self.base_dir / ".locks"
        self.lock_dir.mkdir(exist_ok=True)
        self.lock_timeout = lock_timeout

    def get(self, record_id: str) -> Optional[Record]:
        return self._read(self._record_path(record_id))

    def create(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        path = self._record_path(record_id)
        with self._locked(record_id):
            if path.exists():
                raise ValidationError(f"Record already exists: {record_id}")
            record = dict(fields)
            record["id"] = record_id
            self._write(path, record)
        return record

    def update(self, record_id: str, fields: Mapping[str, Any]) -> Record:
        path = self._record_path(record_id)
        with self._locked(record_id):
            record = self._read(path)
            if record is None:
                raise NotFoundError("Record", record_id)
            record.update(fields)
            self._write(path, record)
        return record

    def list(self, filter: Optional[Mapping[str, Any]] = None) -> List[Record]:
        records = []
        for path in sorted(self.base_dir.glob("*.json")):
            record = self._read(path)
            if record is not None and matches(record, filter):
                records.append(record)
        return records

    def _record_path(self, record_id: str) -> Path:
        if not record_id or "/" in record_id or "\\" in record_id or record_id.startswith("."):
            raise ValidationError(f"Invalid record id: {record_id!r}")
        return self.base_dir / f"{record_id}.json"

    def _locked(self, record_id: str) -> portalocker.Lock:
        return portalocker.Lock(
            str(self.lock_dir / f"{record_id}.lock"), "w", timeout=self.lock_timeout
        )

    def _read(self, path: Path) -> Optional[Record]:
        try:
            with path.open() as f:
                return json.load(f)
        except FileNotFoundError:
            return None

    def _write(self, path: Path, record: Record) -> None:
        atomic_write_text(path, json.dumps(record, indent=2, sort_keys=True))
        logger.debug("Wrote record %s", path.name)
