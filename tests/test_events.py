from ledgerlens.events import DATA_CHANGED, FORECAST_FAILED, EventBus


def test_publish_calls_handlers_in_order():
    bus = EventBus()
    seen = []
    bus.subscribe(DATA_CHANGED, lambda e, p: seen.append(("first", p["count"])) or "a")
    bus.subscribe(DATA_CHANGED, lambda e, p: seen.append(("second", e.name)) or "b")

    results = bus.publish(DATA_CHANGED, {"count": 3})
    assert results == ["a", "b"]
    assert seen == [("first", 3), ("second", DATA_CHANGED)]


def test_publish_without_subscribers():
    assert EventBus().publish(FORECAST_FAILED, {}) == []


def test_subscription_cancel_is_idempotent():
    bus = EventBus()
    sub = bus.subscribe(DATA_CHANGED, lambda e, p: None)
    assert bus.subscriber_count(DATA_CHANGED) == 1

    sub.cancel()
    sub.cancel()
    assert not sub.active
    assert bus.subscriber_count(DATA_CHANGED) == 0
    assert bus.publish(DATA_CHANGED, {}) == []


def test_event_carries_timestamp_and_payload():
    bus = EventBus()
    captured = []
    bus.subscribe(DATA_CHANGED, lambda e, p: captured.append(e))
    bus.publish(DATA_CHANGED, {"user_id": "u1"})
    assert captured[0].payload == {"user_id": "u1"}
    assert captured[0].ts
