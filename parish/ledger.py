import json
import logging
import time
from datetime import date
from typing import Optional, Tuple

from parish.domain import Donation, RecordShapeError

logger = logging.getLogger(__name__)

STORAGE_KEY = "donation_transactions_v1"


def _parse_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        return None


def by_date_range(start=None, end=None):
    start_d = _parse_date(start)
    end_d = _parse_date(end)

    def _filter(t: Donation) -> bool:
        d = _parse_date(t.date_of_donation)
        if d is None:
            return True
        if start_d and d < start_d:
            return False
        if end_d and d > end_d:
            return False
        return True

    return _filter


class TransactionStore:
    """Append-only donation ledger, most recent first, persisted on every change."""

    def __init__(self, storage, key: str = STORAGE_KEY, clock=time.time):
        self.storage = storage
        self.key = key
        self._clock = clock
        self._transactions: Tuple[Donation, ...] = ()
        self._last_id = 0

    def load(self) -> Tuple[Donation, ...]:
        raw = self.storage.get_item(self.key)
        self._transactions = ()
        if raw:
            try:
                data = json.loads(raw)
                if not isinstance(data, list):
                    raise RecordShapeError("transactions blob is not a list")
                self._transactions = tuple(Donation.from_dict(d) for d in data)
            except (ValueError, TypeError) as e:
                logger.warning("Discarding stored transactions: %s", e)
                try:
                    self.storage.remove_item(self.key)
                except Exception:
                    logger.exception("Could not remove corrupt transactions blob")
        # ids from other writers may be anything; only plain ASCII numbers seed next_id
        numeric = (int(t.id) for t in self._transactions if t.id.isascii() and t.id.isdigit())
        self._last_id = max(numeric, default=0)
        logger.info("Loaded %d donation(s)", len(self._transactions))
        return self._transactions

    def next_id(self) -> str:
        candidate = int(self._clock() * 1000)
        if candidate <= self._last_id:
            candidate = self._last_id + 1
        self._last_id = candidate
        return str(candidate)

    def append(self, record: Donation) -> Tuple[Donation, ...]:
        updated = (record,) + self._transactions
        self._persist(updated)
        self._transactions = updated
        logger.info("Recorded donation %s (%s)", record.id, record.purpose_of_donation)
        return updated

    def _persist(self, transactions: Tuple[Donation, ...]) -> None:
        self.storage.set_item(self.key, json.dumps([t.to_dict() for t in transactions]))

    def all(self) -> Tuple[Donation, ...]:
        return self._transactions

    def get(self, record_id: str) -> Optional[Donation]:
        return next((t for t in self._transactions if t.id == record_id), None)

    def filter_by_date_range(self, start=None, end=None) -> Tuple[Donation, ...]:
        return tuple(filter(by_date_range(start, end), self._transactions))

    def __len__(self) -> int:
        return len(self._transactions)
