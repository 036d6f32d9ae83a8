from typing import Any, Dict, List, Optional, Union

from ledgerlens.config import Settings, load_settings
from ledgerlens.domain import ForecastReport, PeriodSelection, Scope
from ledgerlens.errors import StoreUnavailableError
from ledgerlens.events import (
    BACKEND_UNAVAILABLE,
    DATA_CHANGED,
    SIGNED_IN,
    SIGNED_OUT,
    Event,
    EventBus,
    Subscription,
)
from ledgerlens.feed import LiveFeed
from ledgerlens.functional import Either
from ledgerlens.identity import IdentityProvider, StaticIdentity
from ledgerlens.ingest import upload_csv
from ledgerlens.logging_setup import get_logger
from ledgerlens.services import DashboardService, ForecastService
from ledgerlens.state import AppState
from ledgerlens.store import RecordStore, open_store

logger = get_logger(__name__)


class Dashboard:
    """Composition root owning state, collaborators and services.

    Event wiring happens once here. Two ways to feed data in: ``feed`` keeps
    a live store subscription (async hosts), ``refresh`` pulls one snapshot
    (rerun-per-interaction hosts such as Streamlit). Both end in a
    ``DATA_CHANGED`` publish that reloads the forecast; ``SIGNED_IN`` and
    ``SIGNED_OUT`` reload it too, since both clear the transaction set.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        identity: Optional[IdentityProvider] = None,
        store: Optional[RecordStore] = None,
        bus: Optional[EventBus] = None,
    ):
        self.settings = settings or load_settings()
        self.identity = identity or StaticIdentity()
        self.store = store if store is not None else open_store(self.settings)
        self.bus = bus or EventBus()
        self.state = AppState()
        self.views = DashboardService(top_n=self.settings.top_n)
        self.forecast = ForecastService(bus=self.bus, horizon=self.settings.forecast_horizon)
        self.feed = LiveFeed(self.store, self.state, self.bus)
        self.backend_error: Optional[str] = None
        self._last_snapshot: Optional[tuple] = None

        self._subscriptions: List[Subscription] = [
            self.bus.subscribe(DATA_CHANGED, self._on_data_changed),
            self.bus.subscribe(SIGNED_IN, self._on_data_changed),
            self.bus.subscribe(SIGNED_OUT, self._on_data_changed),
            self.bus.subscribe(BACKEND_UNAVAILABLE, self._on_backend_unavailable),
        ]
        self._remove_auth_listener = None

    def bind_identity(self) -> None:
        """Follow sign-in/sign-out with a live feed; requires a running event loop."""
        if self._remove_auth_listener is None:
            self._remove_auth_listener = self.identity.on_change(self._on_auth_change)

    def close(self) -> None:
        for sub in self._subscriptions:
            sub.cancel()
        if self._remove_auth_listener is not None:
            self._remove_auth_listener()
            self._remove_auth_listener = None
        self.feed.stop()

    def _on_auth_change(self, user_id: Optional[str]) -> None:
        if user_id is None:
            self.feed.stop()
        else:
            self.feed.start(user_id)

    def _on_data_changed(self, event: Event, payload: dict) -> None:
        self.forecast.load(self.state.transactions)

    def _on_backend_unavailable(self, event: Event, payload: dict) -> None:
        self.backend_error = payload.get("message")

    def refresh(self) -> bool:
        """Reload the signed-in user's records from the store in one pass."""
        user_id = self.identity.current_user_id()
        previous = self.state.user_id
        if user_id is None:
            if previous is not None:
                self.state.sign_out()
                self._last_snapshot = None
                self.bus.publish(SIGNED_OUT, {"user_id": previous})
            return False
        if previous != user_id:
            self.state.sign_in(user_id)
            self._last_snapshot = None
            self.bus.publish(SIGNED_IN, {"user_id": user_id})
        try:
            records = self.store.snapshot(user_id)
        except StoreUnavailableError as e:
            logger.error("Record store unavailable for %s: %s", user_id, e)
            self.bus.publish(BACKEND_UNAVAILABLE, {"user_id": user_id, "message": str(e)})
            return False

        self.backend_error = None
        # An unchanged snapshot keeps the committed data and any forecast already run.
        if self.state.generation and (user_id, records) == self._last_snapshot:
            return False
        self._last_snapshot = (user_id, records)
        if not self.state.replace(records):
            return False
        self.bus.publish(DATA_CHANGED, {
            "user_id": user_id,
            "generation": self.state.generation,
            "count": len(self.state.transactions),
        })
        return True

    async def upload(self, data: Union[str, bytes]) -> int:
        user_id = self.identity.current_user_id()
        if user_id is None:
            raise PermissionError("sign in before uploading statements")
        count = await upload_csv(self.store, user_id, data)
        if not self.feed.running:
            self.refresh()
        return count

    def view(self, scope: Scope, selection: Optional[PeriodSelection] = None) -> Dict[str, Any]:
        return self.views.report(self.state.transactions, scope, selection)

    def run_forecast(self) -> Either[dict, ForecastReport]:
        return self.forecast.run()
