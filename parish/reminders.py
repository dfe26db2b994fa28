"""Mass intention reminders.

A reminder entry is just the id of a donation; the donation itself is looked
up in the TransactionStore. An entry is added for every completed Mass
Intentions donation that names someone, and removed once its notification
fires or when it is cleared by hand. Timers only live as long as the process,
so entries whose instant passes while nothing is running stay in the list as
"upcoming" until somebody clears them.
"""

import json
import logging
import threading
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from parish.domain import MASS_INTENTIONS, Donation
from parish.events import REMINDER_FIRED, Event

logger = logging.getLogger(__name__)

REMINDERS_KEY = "donation_reminders_v1"
NOTIFICATION_TITLE = "Mass Intention Reminder"

GRANTED = "granted"
DENIED = "denied"
UNAVAILABLE = "unavailable"


class ReminderState(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    PENDING_UNSCHEDULED = "pending_unscheduled"
    PENDING_SCHEDULED = "pending_scheduled"
    FIRED = "fired"


def is_applicable(record: Donation) -> bool:
    return record.purpose_of_donation == MASS_INTENTIONS and record.has_intention


def target_instant(record: Donation) -> Optional[datetime]:
    time_part = record.time_of_donation or "00:00"
    try:
        return datetime.fromisoformat(f"{record.date_of_donation}T{time_part}")
    except (TypeError, ValueError):
        return None


def build_notification(record: Donation) -> dict:
    return {
        "title": NOTIFICATION_TITLE,
        "body": f"Mass for {record.name_of_persons} is scheduled now "
                f"({record.date_of_donation} {record.time_of_donation}).",
        "record_id": record.id,
    }


def log_notifier(notification: dict) -> None:
    logger.info("%s: %s", notification["title"], notification["body"])


def no_permission() -> str:
    return UNAVAILABLE


class ReminderScheduler:
    """Derives reminders from recorded donations and fires them once.

    store: TransactionStore used to resolve record ids
    notifier: callable receiving a {"title", "body", "record_id"} dict
    permission: callable returning "granted", "denied" or "unavailable"
    """

    def __init__(
        self,
        storage,
        store,
        notifier: Callable[[dict], None] = log_notifier,
        permission: Callable[[], str] = no_permission,
        bus=None,
        clock: Callable[[], datetime] = datetime.now,
        timer_factory=threading.Timer,
        key: str = REMINDERS_KEY,
    ):
        self.storage = storage
        self.store = store
        self.notifier = notifier
        self.permission = permission
        self.bus = bus
        self.clock = clock
        self.timer_factory = timer_factory
        self.key = key
        self._entries: Tuple[str, ...] = ()
        self._states: Dict[str, ReminderState] = {}
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.RLock()

    def load(self) -> Tuple[str, ...]:
        raw = self.storage.get_item(self.key)
        entries: Tuple[str, ...] = ()
        if raw:
            try:
                data = json.loads(raw)
                if not isinstance(data, list):
                    raise ValueError("reminders blob is not a list")
                ids = []
                for item in data:
                    if not isinstance(item, dict) or set(item) != {"record_id"}:
                        raise ValueError(f"unknown reminder shape: {item!r}")
                    rid = str(item["record_id"])
                    if rid not in ids:
                        ids.append(rid)
                entries = tuple(ids)
            except (ValueError, TypeError) as e:
                logger.warning("Discarding stored reminders: %s", e)
                try:
                    self.storage.remove_item(self.key)
                except Exception:
                    logger.exception("Could not remove corrupt reminders blob")
        with self._lock:
            self._entries = entries
            for rid in entries:
                self._states.setdefault(rid, ReminderState.PENDING_UNSCHEDULED)
        return entries

    def _persist(self) -> None:
        try:
            self.storage.set_item(self.key, json.dumps([{"record_id": rid} for rid in self._entries]))
        except Exception:
            logger.exception("Could not persist reminders")

    def _add_entry(self, record_id: str) -> bool:
        with self._lock:
            if record_id in self._entries:
                return False
            self._entries = self._entries + (record_id,)
            self._persist()
            return True

    def _request_permission(self) -> str:
        try:
            return self.permission()
        except Exception:
            logger.warning("Notification permission request failed", exc_info=True)
            return UNAVAILABLE

    def schedule(self, record: Donation) -> ReminderState:
        if not is_applicable(record):
            return ReminderState.NOT_APPLICABLE

        when = target_instant(record)
        now = self.clock()
        if when is None or when <= now:
            self._add_entry(record.id)
            state = ReminderState.PENDING_UNSCHEDULED
            logger.info("Reminder for %s stored as upcoming (no timer)", record.id)
        else:
            self._add_entry(record.id)
            if self._request_permission() == GRANTED:
                self._arm(record.id, (when - now).total_seconds())
            else:
                logger.debug("Notifications not permitted; reminder %s kept without timer", record.id)
            state = ReminderState.PENDING_SCHEDULED
        with self._lock:
            # a timer with a tiny delay may already have fired
            if self._states.get(record.id) != ReminderState.FIRED:
                self._states[record.id] = state
        return state

    def _arm(self, record_id: str, delay: float) -> None:
        with self._lock:
            if record_id in self._timers:
                return
            try:
                timer = self.timer_factory(delay, self.fire, args=(record_id,))
                timer.daemon = True
                timer.start()
            except Exception:
                logger.exception("Could not arm reminder timer for %s", record_id)
                return
            self._timers[record_id] = timer
            logger.info("Reminder for %s armed in %.0fs", record_id, delay)

    def fire(self, record_id: str) -> Optional[dict]:
        """Emit the notification for *record_id* and drop its entry.

        Does nothing if the entry was already fired or cleared.
        """
        with self._lock:
            self._timers.pop(record_id, None)
            if record_id not in self._entries:
                return None
            record = self.store.get(record_id)
            self._entries = tuple(rid for rid in self._entries if rid != record_id)
            self._persist()
            self._states[record_id] = ReminderState.FIRED
        if record is None:
            logger.warning("Reminder %s refers to an unknown donation", record_id)
            return None
        notification = build_notification(record)
        try:
            self.notifier(notification)
        except Exception:
            logger.exception("Notifier failed for reminder %s", record_id)
        if self.bus is not None:
            try:
                self.bus.publish(REMINDER_FIRED, notification)
            except Exception:
                logger.exception("REMINDER_FIRED handler failed for %s", record_id)
        return notification

    def clear(self, record_id: str) -> bool:
        with self._lock:
            timer = self._timers.pop(record_id, None)
            if timer is not None:
                timer.cancel()
            if record_id not in self._entries:
                return False
            self._entries = tuple(rid for rid in self._entries if rid != record_id)
            self._states.pop(record_id, None)
            self._persist()
            return True

    def shutdown(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()
        if timers:
            logger.info("Cancelled %d reminder timer(s)", len(timers))

    def on_donation_recorded(self, event: Event, payload: dict) -> dict:
        """Event bus handler; scheduling never fails the submit that triggered it."""
        record = self.store.get(payload.get("id", ""))
        if record is None:
            return {}
        try:
            state = self.schedule(record)
        except Exception:
            logger.exception("Reminder scheduling failed for %s", record.id)
            return {}
        return {"reminder_state": state.value}

    def entries(self) -> Tuple[str, ...]:
        return self._entries

    def state_of(self, record_id: str) -> Optional[ReminderState]:
        return self._states.get(record_id)

    def is_armed(self, record_id: str) -> bool:
        return record_id in self._timers

    def upcoming(self) -> Tuple[Donation, ...]:
        found = (self.store.get(rid) for rid in self._entries)
        return tuple(r for r in found if r is not None)
