import copy
import json
import logging
import threading
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor, wait
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from pymongo import MongoClient

from config import Settings

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "profiles", "posts", "chat", "votes")

WriteErrorHandler = Callable[[str, BaseException], None]


class RecordStore(ABC):
    """
    Whole-document storage keyed by collection name.

    Every collection is one JSON-shaped document; callers read it, change it
    and write it back in full. There is no locking: concurrent
    read-modify-write sequences on one collection can lose updates.
    """

    kind = "abstract"

    @abstractmethod
    def read(self, name: str, default: Dict[str, Any]) -> Dict[str, Any]:
        pass

    @abstractmethod
    def write(self, name: str, document: Dict[str, Any]) -> None:
        pass

    def close(self) -> None:
        pass


# -------- Local JSON files ---------

class LocalFileRecordStore(RecordStore):
    """One pretty-printed `<name>.json` file per collection under `data_dir`."""

    kind = "local"

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)

    def path_for(self, name: str) -> Path:
        return self.data_dir / f"{name}.json"

    def _dump(self, path: Path, document: Dict[str, Any]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")

    def read(self, name: str, default: Dict[str, Any]) -> Dict[str, Any]:
        path = self.path_for(name)
        if not path.exists():
            self._dump(path, default)
            return default
        # malformed files raise json.JSONDecodeError to the caller
        return json.loads(path.read_text(encoding="utf-8"))

    def write(self, name: str, document: Dict[str, Any]) -> None:
        self._dump(self.path_for(name), document)


# -------- In-memory fallback ---------

class MemoryRecordStore(RecordStore):
    kind = "memory"

    def __init__(self):
        self._docs: Dict[str, Dict[str, Any]] = {}

    def read(self, name: str, default: Dict[str, Any]) -> Dict[str, Any]:
        if name not in self._docs:
            self._docs[name] = copy.deepcopy(default)
            return default
        return copy.deepcopy(self._docs[name])

    def write(self, name: str, document: Dict[str, Any]) -> None:
        self._docs[name] = copy.deepcopy(document)


# -------- Hosted key-value store ---------

class MongoKVClient:
    """Key-value view of a MongoDB collection: one `{_id: key, value: doc}` per key."""

    def __init__(self, url: str, database: str, collection: str = "kv", timeout_ms: int = 1500):
        self._client = MongoClient(url, serverSelectionTimeoutMS=timeout_ms)
        self._col = self._client[database][collection]

    def get(self, key: str) -> Optional[Any]:
        doc = self._col.find_one({"_id": key})
        if not doc:
            return None
        return doc.get("value")

    def set(self, key: str, value: Any) -> bool:
        self._col.replace_one({"_id": key}, {"_id": key, "value": value}, upsert=True)
        return True

    def ping(self) -> None:
        self._client.admin.command("ping")

    def close(self) -> None:
        self._client.close()


class HostedRecordStore(RecordStore):
    """
    Record store over a remote key-value client with an in-process cache.

    Writes update the cache immediately and are pushed to the remote by a
    single background worker, so remote writes land in issue order. Until a
    collection's latest write has been acknowledged (or after it failed) the
    cache is the source of truth for that collection; otherwise reads go to
    the remote and refresh the cache. Remote errors are logged and never
    reach the caller.
    """

    kind = "hosted"

    def __init__(self, client, on_write_error: Optional[WriteErrorHandler] = None):
        self.client = client
        self.on_write_error = on_write_error
        self._cache: Dict[str, Any] = {}
        self._pending: Dict[str, Future] = {}
        # guards _pending between the caller and the write worker
        self._lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="kv-write")

    def _cache_is_newer(self, name: str) -> bool:
        with self._lock:
            future = self._pending.get(name)
        if future is None:
            return False
        return not future.done() or future.exception() is not None

    def read(self, name: str, default: Dict[str, Any]) -> Dict[str, Any]:
        if self._cache_is_newer(name):
            return copy.deepcopy(self._cache[name])
        try:
            data = self.client.get(name)
        except Exception as e:
            logger.error(f"KV read error for {name}: {e}")
            data = None
        if data:
            self._cache[name] = copy.deepcopy(data)
            return data
        if name in self._cache:
            return copy.deepcopy(self._cache[name])
        return default

    def write(self, name: str, document: Dict[str, Any]) -> None:
        self._cache[name] = copy.deepcopy(document)
        with self._lock:
            future = self._executor.submit(self.client.set, name, copy.deepcopy(document))
            self._pending[name] = future
        future.add_done_callback(partial(self._write_done, name))

    def _write_done(self, name: str, future: Future) -> None:
        exc = future.exception()
        if exc is None:
            with self._lock:
                if self._pending.get(name) is future:
                    self._pending.pop(name, None)
            return
        # cache keeps the new document; the remote is behind until the next write
        logger.error(f"Background KV write error for {name}: {exc}")
        if self.on_write_error is not None:
            self.on_write_error(name, exc)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight remote writes. Returns False on timeout."""
        with self._lock:
            futures = list(self._pending.values())
        _, not_done = wait(futures, timeout=timeout)
        return not not_done

    def close(self) -> None:
        self.flush()
        self._executor.shutdown(wait=True)
        if hasattr(self.client, "close"):
            self.client.close()


# -------- Backend selection ---------

def create_record_store(settings: Settings, on_write_error: Optional[WriteErrorHandler] = None) -> RecordStore:
    if settings.backend == "local":
        return LocalFileRecordStore(settings.data_dir)
    if settings.backend == "memory":
        return MemoryRecordStore()
    if not settings.database_url:
        logger.warning("DATABASE_URL not set, hosted backend unavailable; using in-memory store")
        return MemoryRecordStore()
    client = MongoKVClient(settings.database_url, settings.database_name, settings.kv_collection)
    logger.info(f"Using hosted record store ({settings.database_name}.{settings.kv_collection})")
    return HostedRecordStore(client, on_write_error=on_write_error)
