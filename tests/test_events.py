from parish.events import (
    Event, EventBus, EVENT_NAMES, DONATION_RECORDED, REMINDER_FIRED, PAYMENT_SAVED,
    payment_saved_handler,
)


def test_event_bus_subscribe_and_publish():
    bus = EventBus()
    seen = []

    def handler(event: Event, payload: dict) -> dict:
        seen.append((event.name, payload))
        return {"processed": True}

    bus.subscribe(DONATION_RECORDED, handler)
    results = bus.publish(DONATION_RECORDED, {"id": "1"})

    assert results == [{"processed": True}]
    assert seen == [(DONATION_RECORDED, {"id": "1"})]


def test_multiple_subscribers_run_in_order():
    bus = EventBus()
    bus.subscribe(REMINDER_FIRED, lambda e, p: {"handler": 1})
    bus.subscribe(REMINDER_FIRED, lambda e, p: {"handler": 2})
    assert bus.publish(REMINDER_FIRED, {}) == [{"handler": 1}, {"handler": 2}]


def test_publish_without_subscribers():
    assert EventBus().publish(PAYMENT_SAVED, {"receipt_number": "RCP-2025-0001"}) == []


def test_unsubscribe_during_publish():
    bus = EventBus()
    calls = []

    def once(event, payload):
        calls.append(1)
        bus.unsubscribe(DONATION_RECORDED, once)
        return {}

    bus.subscribe(DONATION_RECORDED, once)
    bus.publish(DONATION_RECORDED, {})
    bus.publish(DONATION_RECORDED, {})
    assert calls == [1]


def test_payment_saved_handler_messages():
    bus = EventBus()
    bus.subscribe(PAYMENT_SAVED, payment_saved_handler)
    assert bus.publish(PAYMENT_SAVED, {"receipt_number": "RCP-2025-0003"}) == [
        {"message": "Payment RCP-2025-0003 recorded"}
    ]
    assert bus.publish(PAYMENT_SAVED, {"receipt_number": "RCP-2025-0001", "edited": True}) == [
        {"message": "Payment RCP-2025-0001 updated"}
    ]


def test_unknown_event_names_are_rejected():
    bus = EventBus()
    for call in (
        lambda: bus.subscribe("DONATION_DELETED", payment_saved_handler),
        lambda: bus.publish("donation_recorded", {}),
        lambda: bus.unsubscribe("PAYMENT_VOIDED", payment_saved_handler),
    ):
        try:
            call()
        except ValueError:
            pass
        else:
            assert False, "expected ValueError"


def test_subscriber_count_tracks_subscriptions():
    bus = EventBus()
    assert [bus.subscriber_count(n) for n in EVENT_NAMES] == [0, 0, 0]
    bus.subscribe(PAYMENT_SAVED, payment_saved_handler)
    assert bus.subscriber_count(PAYMENT_SAVED) == 1
    bus.unsubscribe(PAYMENT_SAVED, payment_saved_handler)
    assert bus.subscriber_count(PAYMENT_SAVED) == 0
