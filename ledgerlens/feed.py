import asyncio
from typing import Any, AsyncIterator, List, Mapping, Optional, Sequence, Set

from ledgerlens.errors import StoreUnavailableError
from ledgerlens.events import BACKEND_UNAVAILABLE, DATA_CHANGED, SIGNED_IN, SIGNED_OUT, EventBus
from ledgerlens.logging_setup import get_logger
from ledgerlens.state import AppState
from ledgerlens.store import RecordStore
from ledgerlens.transforms import normalize_records

logger = get_logger(__name__)


async def recompute(records: Sequence[Mapping[str, Any]], state: AppState, bus: EventBus) -> bool:
    """Normalize one snapshot off the loop and commit it if nothing newer was issued."""
    generation = state.begin_recompute()
    transactions = await asyncio.to_thread(normalize_records, records)
    if not state.commit(generation, transactions):
        return False
    bus.publish(DATA_CHANGED, {
        "user_id": state.user_id,
        "generation": generation,
        "count": len(transactions),
    })
    return True


class SnapshotConsumer:
    """Starts one recompute per snapshot and keeps only the ones still running.

    An older recompute still in flight when a newer snapshot arrives is
    superseded rather than awaited. Finished recomputes are dropped as they
    complete; a failed one is logged and counted.
    """

    def __init__(self, state: AppState, bus: EventBus):
        self.state = state
        self.bus = bus
        self.pending: Set[asyncio.Task] = set()
        self.committed = 0
        self.failed = 0

    def _finished(self, task: asyncio.Task) -> None:
        self.pending.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.failed += 1
            logger.error("Recompute failed for %s: %s", self.state.user_id, error, exc_info=error)
        elif task.result():
            self.committed += 1

    def submit(self, records: Sequence[Mapping[str, Any]]) -> asyncio.Task:
        task = asyncio.create_task(recompute(records, self.state, self.bus))
        self.pending.add(task)
        task.add_done_callback(self._finished)
        return task

    async def run(self, snapshots: AsyncIterator[List[dict]]) -> int:
        try:
            async for records in snapshots:
                self.submit(records)
        except asyncio.CancelledError:
            for task in list(self.pending):
                task.cancel()
            raise
        finally:
            aclose = getattr(snapshots, "aclose", None)
            if aclose is not None:
                await aclose()
        # Done callbacks run before gather's, so the counters are final here.
        await asyncio.gather(*self.pending, return_exceptions=True)
        return self.committed


async def consume(snapshots: AsyncIterator[List[dict]], state: AppState, bus: EventBus) -> int:
    """Recompute on every full snapshot; returns how many recomputes committed."""
    return await SnapshotConsumer(state, bus).run(snapshots)


class LiveFeed:
    """Keeps one store subscription open for the signed-in user."""

    def __init__(self, store: RecordStore, state: AppState, bus: EventBus):
        self.store = store
        self.state = state
        self.bus = bus
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, user_id: str) -> asyncio.Task:
        self._cancel()
        self.state.sign_in(user_id)
        self.bus.publish(SIGNED_IN, {"user_id": user_id})
        self._task = asyncio.create_task(self._run(user_id))
        return self._task

    def stop(self) -> Optional[asyncio.Task]:
        """Cancel the subscription and clear the signed-in user's data.

        Returns the cancelled task so async callers can await its shutdown.
        """
        task = self._cancel()
        user_id = self.state.user_id
        if user_id is not None:
            self.state.sign_out()
            self.bus.publish(SIGNED_OUT, {"user_id": user_id})
        return task

    def _cancel(self) -> Optional[asyncio.Task]:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()
        return task

    async def _run(self, user_id: str) -> int:
        try:
            return await consume(self.store.subscribe(user_id), self.state, self.bus)
        except StoreUnavailableError as e:
            logger.error("Record store unavailable for %s: %s", user_id, e)
            self.bus.publish(BACKEND_UNAVAILABLE, {"user_id": user_id, "message": str(e)})
            return 0
