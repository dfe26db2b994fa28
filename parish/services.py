import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from parish.domain import Donation, ParishError
from parish.events import DONATION_RECORDED, EventBus
from parish.forms import DonationForm, FormState, reset_form, validate_donation, with_errors, parse_amount
from parish.functional import Either, Left, Right

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Donation recorded and payment processed (mock)."
FAILURE_MESSAGE = "Failed to process donation. Try again."
BUSY_MESSAGE = "A donation is already being processed."


@dataclass(frozen=True)
class SubmitResult:
    state: FormState
    record: Optional[Donation] = None
    message: str = ""
    reminder_states: tuple = field(default_factory=tuple)

    @property
    def ok(self) -> bool:
        return self.record is not None


def mock_processor(record: Donation) -> None:
    """Stands in for the payment gateway; a real one would raise on failure."""


def checked_form(form: DonationForm) -> Either[dict, DonationForm]:
    errors = validate_donation(form)
    return Left(errors) if errors else Right(form)


def build_donation(state: FormState, record_id: str, now: datetime) -> Either[dict, Donation]:
    def _from_form(f: DonationForm) -> Donation:
        return Donation(
            id=record_id,
            timestamp=now.isoformat(),
            date_of_donation=f.date_of_donation,
            time_of_donation=f.time_of_donation,
            full_name=f.full_name,
            contact_number=f.contact_number,
            email_address=f.email_address or None,
            home_address=f.home_address or None,
            donation_amount=parse_amount(f.donation_amount),
            reference_number=f.reference_number,
            gcash_number=f.gcash_number,
            name_of_persons=f.name_of_persons or None,
            purpose_of_donation=f.purpose_of_donation,
            intention_type=f.intention_type,
            status="completed",
        )

    return checked_form(state.form).map(_from_form)


class DonationService:
    """Facade for the donation form: validate, process, record, publish.

    processor: callable taking the new Donation; raising marks the submit failed
    processing_delay: seconds slept before the donation counts as processed
    """

    def __init__(
        self,
        store,
        bus: Optional[EventBus] = None,
        processor: Callable[[Donation], None] = mock_processor,
        processing_delay: float = 0.0,
        clock: Callable[[], datetime] = datetime.now,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.store = store
        self.bus = bus or EventBus()
        self.processor = processor
        self.processing_delay = processing_delay
        self.clock = clock
        self.sleep = sleep
        self._busy = threading.Lock()

    @property
    def busy(self) -> bool:
        return self._busy.locked()

    def submit(self, state: FormState) -> SubmitResult:
        if not self._busy.acquire(blocking=False):
            logger.warning("Rejected re-entrant donation submit")
            return SubmitResult(state=with_errors(state, {"general": BUSY_MESSAGE}), message=BUSY_MESSAGE)
        try:
            return self._submit(state)
        finally:
            self._busy.release()

    def _submit(self, state: FormState) -> SubmitResult:
        built = build_donation(state, self.store.next_id(), self.clock())
        if built.is_left():
            logger.debug("Donation form invalid: %s", sorted(built.get_error()))
            return SubmitResult(state=with_errors(state, built.get_error()))

        outcome = built.bind(self._process)
        if outcome.is_left():
            return SubmitResult(state=with_errors(state, outcome.get_error()), message=FAILURE_MESSAGE)
        record = outcome.get_or_else(None)

        try:
            results = self.bus.publish(DONATION_RECORDED, record.to_dict())
        except Exception:
            logger.exception("DONATION_RECORDED handler failed for %s", record.id)
            results = []
        reminder_states = tuple(r["reminder_state"] for r in results if r and "reminder_state" in r)
        return SubmitResult(state=reset_form(), record=record, message=SUCCESS_MESSAGE,
                            reminder_states=reminder_states)

    def _process(self, record: Donation) -> Either[dict, Donation]:
        """Run the payment step, then record the donation."""
        try:
            if self.processing_delay:
                self.sleep(self.processing_delay)
            self.processor(record)
        except Exception:
            # any processor error counts as a failed payment
            logger.exception("Processing donation %s failed", record.id)
            return Left({"general": FAILURE_MESSAGE})
        try:
            self.store.append(record)
        except (ParishError, OSError, ValueError) as e:
            logger.error("Could not record donation %s: %s", record.id, e)
            return Left({"general": FAILURE_MESSAGE})
        return Right(record)

    def cancel(self) -> FormState:
        return reset_form()
