from typing import Callable, Dict, List, Literal, NamedTuple
from datetime import datetime

__all__ = [
    'EventBus', 'Event', 'EventName', 'EVENT_NAMES',
    'DONATION_RECORDED', 'REMINDER_FIRED', 'PAYMENT_SAVED',
    'payment_saved_handler',
]

# payload: Donation.to_dict() of the stored record
DONATION_RECORDED = "DONATION_RECORDED"
# payload: {"title", "body", "record_id"} notification
REMINDER_FIRED = "REMINDER_FIRED"
# payload: {"receipt_number", "edited"}
PAYMENT_SAVED = "PAYMENT_SAVED"

EventName = Literal["DONATION_RECORDED", "REMINDER_FIRED", "PAYMENT_SAVED"]
EVENT_NAMES = (DONATION_RECORDED, REMINDER_FIRED, PAYMENT_SAVED)


class Event(NamedTuple):
    name: EventName
    ts: str
    payload: dict


Handler = Callable[[Event, dict], dict]


def _known(name: str) -> str:
    if name not in EVENT_NAMES:
        raise ValueError(f"unknown parish event: {name!r}")
    return name


class EventBus:
    """Synchronous bus for the parish office events.

    Handlers run in subscription order on the publishing thread; their
    returned dicts come back from publish() in the same order.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[Handler]] = {name: [] for name in EVENT_NAMES}

    def subscribe(self, name: EventName, handler: Handler) -> None:
        self._subscribers[_known(name)].append(handler)

    def publish(self, name: EventName, payload: dict) -> List[dict]:
        handlers = list(self._subscribers[_known(name)])
        if not handlers:
            return []
        event = Event(name=name, ts=datetime.now().isoformat(), payload=payload)
        # copied so a handler may unsubscribe itself
        return [handler(event, payload) for handler in handlers]

    def unsubscribe(self, name: EventName, handler: Handler) -> None:
        handlers = self._subscribers[_known(name)]
        if handler in handlers:
            handlers.remove(handler)

    def subscriber_count(self, name: EventName) -> int:
        return len(self._subscribers[_known(name)])


def payment_saved_handler(event: Event, payload: dict) -> dict:
    verb = "updated" if payload.get("edited") else "recorded"
    return {"message": f"Payment {payload.get('receipt_number', '')} {verb}"}
