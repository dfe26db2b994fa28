from decimal import Decimal

from parish.domain import Donation
from parish.reports import (
    total_all, summary_by_purpose, count_by_intention_type, format_php,
    donations_frame, purpose_frame, DONATION_COLUMNS,
)


def make_donation(id, purpose, amount, intention="Thanksgiving", name=None):
    return Donation(
        id=id,
        timestamp="2025-01-01T08:00:00",
        date_of_donation="2025-01-01",
        time_of_donation="10:00",
        full_name="Maria Santos",
        contact_number="09181234567",
        donation_amount=Decimal(str(amount)),
        reference_number=f"REF-{id}",
        gcash_number="09171234567",
        purpose_of_donation=purpose,
        intention_type=intention,
        name_of_persons=name,
    )


def make_sample():
    return (
        make_donation("1", "A", 100),
        make_donation("2", "B", 50),
        make_donation("3", "A", 25),
    )


def test_summary_by_purpose():
    assert summary_by_purpose(make_sample()) == {"A": 125, "B": 50}


def test_summary_keeps_encounter_order_and_omits_absent_purposes():
    summary = summary_by_purpose(make_sample())
    assert list(summary) == ["A", "B"]
    assert "General Parish Fund" not in summary
    assert summary_by_purpose(()) == {}


def test_total_all():
    assert total_all(make_sample()) == Decimal("175")
    assert total_all(()) == 0


def test_total_all_accepts_generator():
    gen = (t for t in make_sample() if t.purpose_of_donation == "A")
    assert total_all(gen) == 125


def test_count_by_intention_type():
    trans = make_sample() + (make_donation("4", "A", 10, intention="Birthday"),)
    assert count_by_intention_type(trans) == {"Thanksgiving": 3, "Birthday": 1}


def test_format_php():
    assert format_php(Decimal("1234.5")) == "₱1,234.50"
    assert format_php(0) == "₱0.00"
    assert format_php(-20) == "-₱20.00"


def test_donations_frame_rows():
    trans = (make_donation("1", "Mass Intentions", "500.00", name="Juan Dela Cruz"),
             make_donation("2", "General Parish Fund", 50))
    df = donations_frame(trans)
    assert list(df.columns) == DONATION_COLUMNS
    assert df.iloc[0]["Name"] == "Maria Santos (Intention: Juan Dela Cruz)"
    assert df.iloc[0]["Purpose"] == "Mass Intentions / Thanksgiving"
    assert df.iloc[0]["Amount (PHP)"] == "₱500.00"
    assert df.iloc[1]["Name"] == "Maria Santos"


def test_donations_frame_empty():
    df = donations_frame(())
    assert df.empty
    assert list(df.columns) == DONATION_COLUMNS


def test_purpose_frame():
    df = purpose_frame(summary_by_purpose(make_sample()))
    assert df["Total"].tolist() == [125.0, 50.0]
