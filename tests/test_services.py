from datetime import datetime
from decimal import Decimal

from parish.domain import StorageError
from parish.events import EventBus, DONATION_RECORDED
from parish.forms import DonationForm, FormState, AMOUNT_MESSAGE
from parish.functional import Left
from parish.ledger import TransactionStore
from parish.reminders import ReminderScheduler, ReminderState, DENIED
from parish.services import (
    DonationService, build_donation, SUCCESS_MESSAGE, FAILURE_MESSAGE, BUSY_MESSAGE,
)
from parish.storage import MemoryStorage

NOW = datetime(2025, 6, 1, 9, 0)


def make_state(**overrides):
    values = dict(
        date_of_donation="2025-01-01",
        time_of_donation="10:00",
        full_name="Maria Santos",
        contact_number="09181234567",
        donation_amount="500",
        reference_number="REF-123",
        gcash_number="09171234567",
        name_of_persons="Juan Dela Cruz",
        purpose_of_donation="Mass Intentions",
        intention_type="Thanksgiving",
    )
    values.update(overrides)
    return FormState(form=DonationForm(**values))


def make_service(processor=None, storage=None):
    storage = storage or MemoryStorage()
    store = TransactionStore(storage)
    store.load()
    bus = EventBus()
    scheduler = ReminderScheduler(storage, store, permission=lambda: DENIED, clock=lambda: NOW)
    scheduler.load()
    bus.subscribe(DONATION_RECORDED, scheduler.on_donation_recorded)
    kwargs = {"processor": processor} if processor else {}
    slept = []
    service = DonationService(store, bus=bus, processing_delay=0.7, clock=lambda: NOW,
                              sleep=slept.append, **kwargs)
    return service, store, scheduler, slept


def test_build_donation_left_on_errors():
    result = build_donation(make_state(full_name=""), "1", NOW)
    assert result.is_left()
    assert result.get_error() == {"full_name": "Full name is required"}


def test_build_donation_right_quantizes_amount():
    result = build_donation(make_state(donation_amount="500.5", email_address=""), "1", NOW)
    assert result.is_right()
    record = result.get_or_else(None)
    assert record.donation_amount == Decimal("500.50")
    assert str(record.donation_amount) == "500.50"
    assert record.email_address is None
    assert record.status == "completed"
    assert record.timestamp == "2025-06-01T09:00:00"


def test_mass_intention_in_the_past_scenario():
    service, store, scheduler, slept = make_service()
    result = service.submit(make_state())

    assert result.ok
    assert result.message == SUCCESS_MESSAGE
    assert result.record.status == "completed"
    assert store.all() == (result.record,)
    assert slept == [0.7]
    assert result.reminder_states == (ReminderState.PENDING_UNSCHEDULED.value,)
    assert scheduler.entries() == (result.record.id,)
    assert scheduler.state_of(result.record.id) == ReminderState.PENDING_UNSCHEDULED
    # the form is reset after success
    assert result.state == FormState()


def test_two_submits_with_same_intention_make_two_reminders():
    service, store, scheduler, _ = make_service()
    first = service.submit(make_state())
    second = service.submit(make_state())
    assert first.record.id != second.record.id
    assert scheduler.entries() == (first.record.id, second.record.id)
    assert [t.id for t in store.all()] == [second.record.id, first.record.id]


def test_invalid_submit_keeps_form_and_reports_errors():
    service, store, _, slept = make_service()
    state = make_state(gcash_number="0917", full_name="")
    result = service.submit(state)
    assert not result.ok
    assert set(result.state.errors) == {"gcash_number", "full_name"}
    assert result.state.form == state.form
    assert store.all() == ()
    assert slept == []


def test_processing_failure_preserves_form():
    def failing(record):
        raise RuntimeError("gateway down")

    service, store, scheduler, _ = make_service(processor=failing)
    state = make_state()
    result = service.submit(state)
    assert not result.ok
    assert result.state.errors == {"general": FAILURE_MESSAGE}
    assert result.state.form == state.form
    assert store.all() == ()
    assert scheduler.entries() == ()


def test_storage_failure_is_reported_as_general_error():
    class FailingStorage(MemoryStorage):
        def set_item(self, key, value):
            raise StorageError("read-only")

    service, store, _, _ = make_service(storage=FailingStorage())
    result = service.submit(make_state())
    assert result.state.errors == {"general": FAILURE_MESSAGE}
    assert store.all() == ()


def test_reminder_handler_failure_does_not_fail_submit():
    service, store, _, _ = make_service()

    def broken(event, payload):
        raise RuntimeError("listener bug")

    service.bus.subscribe(DONATION_RECORDED, broken)
    result = service.submit(make_state())
    assert result.ok
    assert len(store.all()) == 1


def test_reentrant_submit_is_rejected():
    holder = {}

    def processor(record):
        holder["inner"] = holder["service"].submit(make_state(reference_number="REF-2"))

    service, store, _, _ = make_service(processor=processor)
    holder["service"] = service
    outer = service.submit(make_state())

    assert outer.ok
    assert holder["inner"].message == BUSY_MESSAGE
    assert holder["inner"].state.errors == {"general": BUSY_MESSAGE}
    assert len(store.all()) == 1
    assert not service.busy


def test_cancel_resets_form():
    service, _, _, _ = make_service()
    assert service.cancel() == FormState()


def test_build_donation_left_equals_errors():
    assert build_donation(make_state(reference_number=""), "1", NOW) == Left(
        {"reference_number": "Reference number is required"}
    )


def test_oversized_amount_is_rejected_not_raised():
    service, store, _, slept = make_service()
    result = service.submit(make_state(donation_amount="1" * 27))
    assert not result.ok
    assert result.state.errors == {"donation_amount": AMOUNT_MESSAGE}
    assert store.all() == ()
    assert slept == []


def test_amount_rounding_to_zero_is_never_recorded():
    service, store, _, _ = make_service()
    result = service.submit(make_state(donation_amount="0.004"))
    assert not result.ok
    assert result.state.errors == {"donation_amount": AMOUNT_MESSAGE}
    assert store.all() == ()


def test_any_processor_error_becomes_general_error():
    for exc in (KeyError("token"), TypeError("bad payload"), ValueError("declined")):
        def processor(record, exc=exc):
            raise exc

        service, store, scheduler, _ = make_service(processor=processor)
        result = service.submit(make_state())
        assert result.message == FAILURE_MESSAGE
        assert result.state.errors == {"general": FAILURE_MESSAGE}
        assert store.all() == ()
        assert scheduler.entries() == ()
