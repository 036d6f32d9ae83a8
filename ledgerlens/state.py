import threading
from typing import Any, Iterable, Mapping, Optional, Tuple

from ledgerlens.domain import Transaction
from ledgerlens.logging_setup import get_logger
from ledgerlens.transforms import normalize_records

logger = get_logger(__name__)


class AppState:
    """Current user and transaction set, owned by the composition root.

    The transaction tuple is swapped whole, so readers never observe a partial
    update. Every recompute takes a generation number and only the newest
    issued generation may commit; a slower, older recompute is discarded.
    """

    def __init__(self, user_id: Optional[str] = None):
        self._lock = threading.Lock()
        self._user_id = user_id
        self._transactions: Tuple[Transaction, ...] = ()
        self._issued = 0
        self._committed = 0

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return self._transactions

    @property
    def generation(self) -> int:
        return self._committed

    def sign_in(self, user_id: str) -> None:
        with self._lock:
            if user_id != self._user_id:
                self._transactions = ()
                self._issued += 1
            self._user_id = user_id

    def sign_out(self) -> None:
        with self._lock:
            self._user_id = None
            self._transactions = ()
            # Pending recomputes for the old user must not land.
            self._issued += 1

    def begin_recompute(self) -> int:
        with self._lock:
            self._issued += 1
            return self._issued

    def commit(self, generation: int, transactions: Tuple[Transaction, ...]) -> bool:
        with self._lock:
            if generation != self._issued:
                logger.debug("Dropping stale recompute %d (latest is %d)", generation, self._issued)
                return False
            self._transactions = tuple(transactions)
            self._committed = generation
            return True

    def replace(self, records: Iterable[Mapping[str, Any]]) -> bool:
        generation = self.begin_recompute()
        return self.commit(generation, normalize_records(records))
