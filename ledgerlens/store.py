import asyncio
import json
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Mapping, Protocol, Sequence

from ledgerlens.config import Settings
from ledgerlens.errors import StoreUnavailableError
from ledgerlens.logging_setup import get_logger

logger = get_logger(__name__)

RawRecord = Mapping[str, Any]


class RecordStore(Protocol):
    def subscribe(self, user_id: str) -> AsyncIterator[List[dict]]:
        ...

    async def replace_all(self, user_id: str, records: Sequence[RawRecord]) -> None:
        ...

    def snapshot(self, user_id: str) -> List[dict]:
        ...


class MemoryRecordStore:
    """Per-user record collections with push-based full snapshots.

    ``subscribe`` yields the current collection immediately and then the whole
    collection again after every ``replace_all``. Closing the iterator (or
    cancelling the task consuming it) ends the subscription.
    """

    def __init__(self):
        self._records: Dict[str, List[dict]] = {}
        self._listeners: Dict[str, List[asyncio.Queue]] = {}

    def snapshot(self, user_id: str) -> List[dict]:
        return [dict(r) for r in self._load(user_id)]

    async def subscribe(self, user_id: str) -> AsyncIterator[List[dict]]:
        queue: asyncio.Queue = asyncio.Queue()
        self._listeners.setdefault(user_id, []).append(queue)
        try:
            yield self.snapshot(user_id)
            while True:
                yield await queue.get()
        finally:
            self._listeners[user_id].remove(queue)

    async def replace_all(self, user_id: str, records: Sequence[RawRecord]) -> None:
        rows = [dict(r) for r in records]
        self._save(user_id, rows)
        logger.info("Replaced %d record(s) for user %s", len(rows), user_id)
        for queue in self._listeners.get(user_id, ()):
            queue.put_nowait([dict(r) for r in rows])

    def listener_count(self, user_id: str) -> int:
        return len(self._listeners.get(user_id, ()))

    def _load(self, user_id: str) -> List[dict]:
        return self._records.get(user_id, [])

    def _save(self, user_id: str, rows: List[dict]) -> None:
        self._records[user_id] = rows


class JsonFileRecordStore(MemoryRecordStore):
    """Local-only store: one JSON file per user under ``<data_dir>/<app_id>/``.

    Used when no shared backend is configured; snapshots are only pushed to
    subscribers within this process.
    """

    def __init__(self, root: Path):
        super().__init__()
        self.root = Path(root)

    def path_for(self, user_id: str) -> Path:
        return self.root / f"{user_id}.json"

    def _load(self, user_id: str) -> List[dict]:
        if user_id in self._records:
            return self._records[user_id]
        path = self.path_for(user_id)
        if not path.exists():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreUnavailableError(f"cannot read {path}: {e}") from e
        if not isinstance(data, list):
            raise StoreUnavailableError(f"{path} does not hold a list of records")
        self._records[user_id] = data
        return data

    def _save(self, user_id: str, rows: List[dict]) -> None:
        path = self.path_for(user_id)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8") as f:
                json.dump(rows, f, ensure_ascii=False, indent=2, default=str)
        except OSError as e:
            raise StoreUnavailableError(f"cannot write {path}: {e}") from e
        super()._save(user_id, rows)


def open_store(settings: Settings) -> MemoryRecordStore:
    if settings.local_only:
        logger.warning("Using local-only record store under %s", settings.data_dir)
        return JsonFileRecordStore(settings.data_dir / settings.app_id)
    return MemoryRecordStore()
