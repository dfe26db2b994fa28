from collections import defaultdict
from datetime import datetime
from decimal import Decimal
from functools import reduce
from typing import Dict, Iterable

import pandas as pd

from parish.domain import Donation

DONATION_COLUMNS = ["Time", "Name", "Purpose", "Amount (PHP)", "GCash", "Reference"]


def total_all(records: Iterable[Donation]) -> Decimal:
    return reduce(lambda acc, t: acc + t.donation_amount, records, Decimal("0"))


def summary_by_purpose(records: Iterable[Donation]) -> Dict[str, Decimal]:
    # plain dict keeps first-seen order of purposes
    totals: Dict[str, Decimal] = {}
    for t in records:
        totals[t.purpose_of_donation] = totals.get(t.purpose_of_donation, Decimal("0")) + t.donation_amount
    return totals


def count_by_intention_type(records: Iterable[Donation]) -> Dict[str, int]:
    counts: Dict[str, int] = defaultdict(int)
    for t in records:
        counts[t.intention_type] += 1
    return dict(counts)


def format_php(amount) -> str:
    amount = Decimal(str(amount or 0))
    sign = "-" if amount < 0 else ""
    return f"{sign}₱{abs(amount):,.2f}"


def _display_time(ts: str) -> str:
    try:
        return datetime.fromisoformat(ts).strftime("%m/%d/%Y, %I:%M:%S %p")
    except (TypeError, ValueError):
        return ts


def donations_frame(records: Iterable[Donation]) -> pd.DataFrame:
    """Rows of the transactions table, newest first as given."""
    rows = []
    for t in records:
        name = t.full_name
        if t.has_intention:
            name += f" (Intention: {t.name_of_persons})"
        rows.append({
            "Time": _display_time(t.timestamp),
            "Name": name,
            "Purpose": f"{t.purpose_of_donation} / {t.intention_type}",
            "Amount (PHP)": format_php(t.donation_amount),
            "GCash": t.gcash_number,
            "Reference": t.reference_number,
        })
    return pd.DataFrame(rows, columns=DONATION_COLUMNS)


def purpose_frame(summary: Dict[str, Decimal]) -> pd.DataFrame:
    return pd.DataFrame(
        [{"Purpose": k, "Total": float(v)} for k, v in summary.items()],
        columns=["Purpose", "Total"],
    )
