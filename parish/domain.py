import re
from dataclasses import dataclass, fields
from decimal import Decimal, InvalidOperation
from typing import Optional

MASS_INTENTIONS = "Mass Intentions"

PURPOSES = (
    MASS_INTENTIONS,
    "Parish Development / Maintenance",
    "Charity Programs (Feeding, Outreach, etc.)",
    "General Parish Fund",
    "Others (specify)",
)

INTENTION_TYPES = (
    "Thanksgiving",
    "Healing/Recovery",
    "Birthday",
    "Anniversary",
    "Others(specify)",
)

STATUSES = ("pending", "completed", "failed")

CENTS = Decimal("0.01")

GCASH_DIGITS = re.compile(r"[0-9]{11}")


class ParishError(Exception):
    """Base class for errors raised by the parish core."""


class StorageError(ParishError):
    pass


class ConfigError(ParishError):
    pass


class RecordShapeError(ParishError, ValueError):
    """Persisted data does not match a known record shape."""


def quantize_amount(value) -> Optional[Decimal]:
    """*value* rounded to cents, or None when it is not a finite decimal
    that fits the context precision once rounded."""
    try:
        amount = Decimal(str(value))
        if not amount.is_finite():
            return None
        return amount.quantize(CENTS)
    except (InvalidOperation, ValueError):
        return None


def to_amount(value) -> Decimal:
    amount = quantize_amount(value)
    if amount is None:
        raise RecordShapeError(f"invalid amount: {value!r}")
    return amount


# A submitted donation (one row of the donation ledger)
@dataclass(frozen=True)
class Donation:
    id: str
    timestamp: str                  # creation instant, ISO-8601
    date_of_donation: str           # YYYY-MM-DD
    time_of_donation: str           # HH:MM
    full_name: str
    contact_number: str
    donation_amount: Decimal
    reference_number: str
    gcash_number: str               # 11 digits
    purpose_of_donation: str
    intention_type: str
    status: str = "completed"
    email_address: Optional[str] = None
    home_address: Optional[str] = None
    name_of_persons: Optional[str] = None   # mass intention

    @property
    def has_intention(self) -> bool:
        return bool(self.name_of_persons and self.name_of_persons.strip())

    def to_dict(self) -> dict:
        d = {f.name: getattr(self, f.name) for f in fields(self)}
        d["donation_amount"] = str(self.donation_amount)
        return d

    @classmethod
    def from_dict(cls, data: dict) -> "Donation":
        """Build a donation from its persisted shape.

        Unknown or missing keys raise RecordShapeError, and so does any
        value a submitted donation could not have: a non-positive amount,
        a payment-channel number other than 11 digits, or a purpose,
        intention type or status outside the known lists.
        """
        if not isinstance(data, dict):
            raise RecordShapeError(f"expected an object, got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise RecordShapeError(f"unknown donation fields: {sorted(unknown)}")
        required = known - {"status", "email_address", "home_address", "name_of_persons"}
        missing = required - set(data)
        if missing:
            raise RecordShapeError(f"missing donation fields: {sorted(missing)}")
        for name in known - {"donation_amount"}:
            value = data.get(name)
            if value is not None and not isinstance(value, str):
                raise RecordShapeError(f"field {name} must be a string")
        status = data.get("status", "completed")
        if status not in STATUSES:
            raise RecordShapeError(f"unknown status: {status!r}")
        if data["purpose_of_donation"] not in PURPOSES:
            raise RecordShapeError(f"unknown purpose: {data['purpose_of_donation']!r}")
        if data["intention_type"] not in INTENTION_TYPES:
            raise RecordShapeError(f"unknown intention type: {data['intention_type']!r}")
        if not GCASH_DIGITS.fullmatch(data["gcash_number"] or ""):
            raise RecordShapeError("gcash_number must be exactly 11 digits")
        amount = to_amount(data["donation_amount"])
        if amount <= 0:
            raise RecordShapeError(f"donation amount must be positive, got {amount}")
        return cls(**{**data, "status": status, "donation_amount": amount})


@dataclass(frozen=True)
class Payment:
    id: int
    first_name: str
    last_name: str
    sacrament_type: str
    category: str
    total_amount: float
    amount_paid: float
    balance: float
    status: str          # paid | partial | unpaid
    created_at: str
    receipt_number: str

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"


@dataclass(frozen=True)
class ExpenseReport:
    report_id: str
    expense_name: str
    category: str
    amount: float
    quantity: int
    total_cost: float
    date_of_expense: str
    description: str = ""
