from datetime import datetime
from typing import Any, Callable, Dict, List, NamedTuple

from ledgerlens.logging_setup import get_logger

__all__ = [
    'Event', 'EventBus', 'Subscription',
    'DATA_CHANGED', 'SIGNED_IN', 'SIGNED_OUT', 'FORECAST_FAILED', 'BACKEND_UNAVAILABLE',
]

logger = get_logger(__name__)

DATA_CHANGED = "DATA_CHANGED"
SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
FORECAST_FAILED = "FORECAST_FAILED"
BACKEND_UNAVAILABLE = "BACKEND_UNAVAILABLE"


class Event(NamedTuple):
    name: str
    ts: str
    payload: dict


Handler = Callable[[Event, dict], Any]


class Subscription:
    """Handle returned by :meth:`EventBus.subscribe`; ``cancel`` detaches the handler."""

    def __init__(self, bus: 'EventBus', name: str, handler: Handler):
        self._bus = bus
        self.name = name
        self.handler = handler
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self._bus.unsubscribe(self.name, self.handler)
            self.active = False


class EventBus:
    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {}

    def subscribe(self, name: str, handler: Handler) -> Subscription:
        self._subscribers.setdefault(name, []).append(handler)
        return Subscription(self, name, handler)

    def publish(self, name: str, payload: dict) -> List[Any]:
        handlers = list(self._subscribers.get(name, ()))
        if not handlers:
            return []

        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        logger.debug("Publishing %s to %d handler(s)", name, len(handlers))
        return [handler(event, payload) for handler in handlers]

    def unsubscribe(self, name: str, handler: Handler) -> None:
        handlers = self._subscribers.get(name)
        if handlers and handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, name: str) -> int:
        return len(self._subscribers.get(name, ()))
