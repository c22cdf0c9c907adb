"""
Request and identity storage

- Repository classes are injected into services instead of a shared global handle
- In-memory implementations for tests and ephemeral runs
- JSON file implementations with in-memory caching, safe to share between
  the API process and the cron sweep
- Every read-check-write goes through update(), which holds the store lock
  (plus a file lock for JSON); this is what keeps duplicate responses and
  competing accepts race-free
"""
import json
import os
import tempfile
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar

from filelock import FileLock, Timeout

from bloodlink.core import config
from bloodlink.database.cache import TTLCache
from bloodlink.database.schemas import BloodRequest, RequestStatus, UserIdentity
from bloodlink.services.errors import NotFoundError, StorageError

T = TypeVar("T")


def read_json(filepath: str) -> List[Dict[str, Any]]:
    """
    Read JSON file, return empty list if not found

    A corrupt or unreadable file raises StorageError rather than reading as empty,
    so a later write can never silently drop existing records.
    """
    path = Path(filepath)
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except FileNotFoundError:
        return []
    except (OSError, json.JSONDecodeError) as e:
        raise StorageError(f"Failed to read {filepath}: {e}") from e


def write_json(filepath: str, data: List[Dict[str, Any]]):
    """
    Write data to JSON file (atomic replace)
    """
    path = Path(filepath)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        with os.fdopen(fd, 'w') as f:
            json.dump(data, f, indent=2)
        os.replace(tmp_path, path)
    except OSError as e:
        raise StorageError(f"Failed to write {filepath}: {e}") from e


class _RecordStore:
    """
    Keyed collection of pydantic records guarded by a single lock

    Subclasses provide _load/_save; records are kept in JSON form so callers
    always get fresh model instances and can never mutate stored state in place.
    """
    model = None
    label = "record"

    def __init__(self):
        self._lock = threading.RLock()

    def _load(self) -> Dict[str, Dict[str, Any]]:
        raise NotImplementedError

    def _save(self, records: Dict[str, Dict[str, Any]]):
        raise NotImplementedError

    @contextmanager
    def _write_lock(self):
        """Held around every read-check-write"""
        with self._lock:
            yield

    def _parse(self, record: Dict[str, Any]):
        return self.model.model_validate(record)

    def get(self, record_id: str):
        with self._lock:
            record = self._load().get(record_id)
        return self._parse(record) if record is not None else None

    def list(self, predicate: Optional[Callable[[Any], bool]] = None) -> list:
        with self._lock:
            records = list(self._load().values())
        items = [self._parse(record) for record in records]
        if predicate is None:
            return items
        return [item for item in items if predicate(item)]

    def save(self, item):
        with self._write_lock():
            records = dict(self._load())
            records[item.id] = item.model_dump(mode="json")
            self._save(records)
        return item

    def update(self, record_id: str, mutate: Callable[[Any], T]) -> T:
        """
        Atomically load a record, apply mutate, and persist it

        If mutate raises, nothing is written.
        """
        with self._write_lock():
            records = self._load()
            record = records.get(record_id)
            if record is None:
                raise NotFoundError(f"{self.label.capitalize()} not found")
            item = self._parse(record)
            result = mutate(item)
            records = dict(records)
            records[record_id] = item.model_dump(mode="json")
            self._save(records)
            return result


class _MemoryBackend:
    def __init__(self):
        super().__init__()
        self._records: Dict[str, Dict[str, Any]] = {}

    def _load(self) -> Dict[str, Dict[str, Any]]:
        return self._records

    def _save(self, records: Dict[str, Dict[str, Any]]):
        self._records = records


class _JsonBackend:
    """
    JSON file shared by every process that opens the same data directory

    Writes hold an inter-process file lock and re-read the file under it.
    Cached reads are keyed on the file's identity (inode, mtime, size), so a
    file replaced by another process is picked up on the next read.
    """
    def __init__(self, filepath: str, cache_ttl_seconds: int = 60,
                 lock_timeout: float = config.STORAGE_LOCK_TIMEOUT_SECONDS):
        super().__init__()
        self.filepath = filepath
        self._cache = TTLCache(ttl_seconds=cache_ttl_seconds)
        self._file_lock = FileLock(f"{filepath}.lock", timeout=lock_timeout)

    @contextmanager
    def _write_lock(self):
        with self._lock:
            try:
                Path(self.filepath).parent.mkdir(parents=True, exist_ok=True)
                self._file_lock.acquire()
            except Timeout as e:
                raise StorageError(f"Timed out waiting for lock on {self.filepath}") from e
            except OSError as e:
                raise StorageError(f"Failed to lock {self.filepath}: {e}") from e
            try:
                # Writes always start from the file on disk
                self._cache.invalidate("records")
                yield
            finally:
                self._file_lock.release()

    def _signature(self):
        try:
            stat = os.stat(self.filepath)
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to stat {self.filepath}: {e}") from e
        return (stat.st_ino, stat.st_mtime_ns, stat.st_size)

    def _read_file(self) -> Dict[str, Dict[str, Any]]:
        return {record["id"]: record for record in read_json(self.filepath)}

    def _load(self) -> Dict[str, Dict[str, Any]]:
        signature = self._signature()
        cached = self._cache.get("records")
        if cached is not None and cached[0] == signature:
            return cached[1]
        records = self._read_file()
        self._cache.set("records", (signature, records))
        return records

    def _save(self, records: Dict[str, Dict[str, Any]]):
        write_json(self.filepath, list(records.values()))
        self._cache.set("records", (self._signature(), records))


class RequestStore(_RecordStore):
    """
    Blood requests with their embedded response lists
    """
    model = BloodRequest
    label = "blood request"

    def add(self, request: BloodRequest) -> BloodRequest:
        return self.save(request)

    def expire_due(self, now: datetime) -> List[BloodRequest]:
        """
        Mark every active request with expires_at <= now as expired

        Requests already in a terminal state are untouched, so repeated
        sweeps never transition anything twice.
        """
        with self._write_lock():
            records = dict(self._load())
            expired = []
            for record_id, record in records.items():
                request = self._parse(record)
                if request.status != RequestStatus.ACTIVE or request.expires_at > now:
                    continue
                request.status = RequestStatus.EXPIRED
                request.updated_at = now
                records[record_id] = request.model_dump(mode="json")
                expired.append(request)
            if expired:
                self._save(records)
        return expired


class UserDirectory(_RecordStore):
    """
    Read-mostly view of identities owned by the identity subsystem
    """
    model = UserIdentity
    label = "user"

    def list_donors(self) -> List[UserIdentity]:
        return self.list(lambda user: user.is_donor)


class InMemoryRequestStore(_MemoryBackend, RequestStore):
    pass


class JsonRequestStore(_JsonBackend, RequestStore):
    def __init__(self, data_dir: str = config.DATA_DIR, cache_ttl_seconds: int = config.CACHE_TTL_SECONDS):
        super().__init__(str(Path(data_dir) / "requests.json"), cache_ttl_seconds)


class InMemoryUserDirectory(_MemoryBackend, UserDirectory):
    pass


class JsonUserDirectory(_JsonBackend, UserDirectory):
    def __init__(self, data_dir: str = config.DATA_DIR, cache_ttl_seconds: int = config.CACHE_TTL_SECONDS):
        super().__init__(str(Path(data_dir) / "users.json"), cache_ttl_seconds)


def create_request_store(backend: str = config.STORAGE_BACKEND) -> RequestStore:
    if backend == "memory":
        return InMemoryRequestStore()
    if backend == "json":
        return JsonRequestStore()
    raise ValueError(f"Unknown STORAGE_BACKEND '{backend}' (expected 'json' or 'memory')")


def create_user_directory(backend: str = config.STORAGE_BACKEND) -> UserDirectory:
    if backend == "memory":
        return InMemoryUserDirectory()
    if backend == "json":
        return JsonUserDirectory()
    raise ValueError(f"Unknown STORAGE_BACKEND '{backend}' (expected 'json' or 'memory')")
