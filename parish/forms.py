import re
from dataclasses import dataclass, field, fields, replace
from decimal import Decimal
from typing import Dict, Mapping, Optional

from parish.domain import GCASH_DIGITS, MASS_INTENTIONS, quantize_amount

GCASH_LENGTH = 11

_NON_DIGITS = re.compile(r"[^0-9]")
_AMOUNT_INPUT = re.compile(r"([0-9]+(\.[0-9]{0,2})?)?")

REQUIRED_MESSAGES = {
    "date_of_donation": "Date is required",
    "time_of_donation": "Time is required",
    "full_name": "Full name is required",
    "contact_number": "Contact number is required",
    "reference_number": "Reference number is required",
    "purpose_of_donation": "Purpose is required",
    "intention_type": "Intention type is required",
}
AMOUNT_MESSAGE = "Enter valid donation amount"
GCASH_MESSAGE = "GCash number must be exactly 11 digits"


@dataclass(frozen=True)
class DonationForm:
    date_of_donation: str = ""
    time_of_donation: str = ""
    full_name: str = ""
    contact_number: str = ""
    email_address: str = ""
    home_address: str = ""
    donation_amount: str = ""
    reference_number: str = ""
    gcash_number: str = ""
    name_of_persons: str = ""
    purpose_of_donation: str = MASS_INTENTIONS
    intention_type: str = ""


FIELD_NAMES = tuple(f.name for f in fields(DonationForm))


@dataclass(frozen=True)
class FormState:
    """Values of the donation being edited plus the errors shown next to each field."""
    form: DonationForm = field(default_factory=DonationForm)
    errors: Mapping[str, str] = field(default_factory=dict)

    @property
    def is_valid(self) -> bool:
        return not any(self.errors.values())


def filter_gcash(value: str):
    """Digits of *value*, or None when they would not fit the 11-digit field."""
    digits = _NON_DIGITS.sub("", value or "")
    if len(digits) > GCASH_LENGTH:
        return None
    return digits


def filter_amount(value: str):
    value = value or ""
    if value == "" or _AMOUNT_INPUT.fullmatch(value):
        return value
    return None


_INPUT_FILTERS = {
    "gcash_number": filter_gcash,
    "donation_amount": filter_amount,
}


def edit_field(state: FormState, name: str, value: str) -> FormState:
    """Apply one keystroke to *state*.

    Rejected input returns *state* itself; accepted input also clears the
    field's error.
    """
    if name not in FIELD_NAMES:
        raise KeyError(name)
    value = "" if value is None else str(value)
    input_filter = _INPUT_FILTERS.get(name)
    if input_filter is not None:
        value = input_filter(value)
        if value is None:
            return state
    errors = {k: v for k, v in state.errors.items() if k != name}
    return FormState(form=replace(state.form, **{name: value}), errors=errors)


def parse_amount(value: str) -> Optional[Decimal]:
    """The amount in cents, or None unless it is still positive once rounded."""
    amount = quantize_amount(value)
    if amount is None or amount <= 0:
        return None
    return amount


def validate_donation(form: DonationForm) -> Dict[str, str]:
    errors: Dict[str, str] = {}

    for name, message in REQUIRED_MESSAGES.items():
        if not getattr(form, name):
            errors[name] = message

    if not form.donation_amount or parse_amount(form.donation_amount) is None:
        errors["donation_amount"] = AMOUNT_MESSAGE

    # checked even though the edit filter already keeps the field numeric
    if not GCASH_DIGITS.fullmatch(form.gcash_number or ""):
        errors["gcash_number"] = GCASH_MESSAGE

    return errors


def with_errors(state: FormState, errors: Mapping[str, str]) -> FormState:
    return FormState(form=state.form, errors=dict(errors))


def reset_form() -> FormState:
    return FormState()
