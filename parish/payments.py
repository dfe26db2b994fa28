import json
from datetime import datetime
from functools import reduce
from typing import Optional, Tuple

from parish.domain import Payment

SACRAMENT_TYPES = (
    "Baptism",
    "First Communion",
    "Confirmation",
    "Wedding",
    "Funeral",
    "Mass Intention",
)

PAYMENT_STATUSES = ("paid", "partial", "unpaid")

PAYMENT_CATEGORIES = (
    "Ministerial Services",
    "Collections",
    "Other Income",
    "Donation from Special Projects",
    "Other Church Income/Donations Individuals",
    "Foreign & Local Fundings Assistance",
    "Pontifical Collections",
    "National Collections",
    "Diocesan Collections",
    "Priest Honoraria",
    "Rectory Expenses",
    "Regular Expenses",
    "Church Supplies & Other Expenses",
    "Repair & Maintenance",
    "Honorarium",
    "Pastoral Program",
    "Special Project Donation",
    "Remittance to the Curia",
    "Cash Advances (Receivables)",
)


def load_seed(path: str) -> Tuple[Payment, ...]:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    return tuple(Payment(**p) for p in data["payments"])


def payment_status(total_amount: float, amount_paid: float) -> str:
    if amount_paid >= total_amount:
        return "paid"
    if amount_paid > 0:
        return "partial"
    return "unpaid"


def compute_change(total_amount: float, amount_paid: float) -> str:
    if amount_paid > total_amount:
        return f"{amount_paid - total_amount:.2f}"
    return "0.00"


def next_receipt_number(payments: Tuple[Payment, ...], year: int) -> str:
    return f"RCP-{year}-{len(payments) + 1:04d}"


def save_payment(
    payments: Tuple[Payment, ...],
    first_name: str,
    last_name: str,
    sacrament_type: str,
    category: str,
    total_amount: float,
    amount_paid: float,
    editing_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Tuple[Tuple[Payment, ...], Payment]:
    """Create a payment, or replace the one with *editing_id* in place.

    Edits keep the original id, creation time and receipt number.
    """
    now = now or datetime.now()
    fields = dict(
        first_name=first_name,
        last_name=last_name,
        sacrament_type=sacrament_type,
        category=category,
        total_amount=float(total_amount),
        amount_paid=float(amount_paid),
        balance=float(total_amount) - float(amount_paid),
        status=payment_status(total_amount, amount_paid),
    )

    if editing_id is not None:
        current = next((p for p in payments if p.id == editing_id), None)
        if current is None:
            raise KeyError(editing_id)
        updated = Payment(id=current.id, created_at=current.created_at,
                          receipt_number=current.receipt_number, **fields)
        return tuple(updated if p.id == editing_id else p for p in payments), updated

    new_id = int(now.timestamp() * 1000)
    if any(p.id == new_id for p in payments):
        new_id = max(p.id for p in payments) + 1
    created = Payment(
        id=new_id,
        created_at=now.isoformat(timespec="seconds"),
        receipt_number=next_receipt_number(payments, now.year),
        **fields,
    )
    return payments + (created,), created


def by_search(term: str):
    term = (term or "").lower()

    def _filter(p: Payment) -> bool:
        return term == "" or term in p.full_name.lower() or term in p.receipt_number.lower()

    return _filter


def by_field(name: str, value: str):
    def _filter(p: Payment) -> bool:
        return not value or getattr(p, name) == value

    return _filter


def filter_payments(
    payments: Tuple[Payment, ...],
    search: str = "",
    sacrament: str = "",
    status: str = "",
    category: str = "",
) -> Tuple[Payment, ...]:
    preds = (
        by_search(search),
        by_field("sacrament_type", sacrament),
        by_field("status", status),
        by_field("category", category),
    )
    return tuple(p for p in payments if all(pred(p) for pred in preds))


def total_income(payments: Tuple[Payment, ...]) -> float:
    return reduce(lambda acc, p: acc + p.amount_paid, payments, 0.0)
