"""Client for the parish expense report endpoint.

The endpoint answers ``GET <report_url>?category=&month=&year=`` with::

    {"success": true, "reports": [...], "totalExpenses": 1234.5,
     "availableYears": [2024, 2025]}
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional, Tuple

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from parish.domain import ExpenseReport, ParishError

logger = logging.getLogger(__name__)

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

# (group label, categories) in the order the report screen lists them
EXPENSE_CATEGORY_GROUPS = (
    ("I. Parish Receipts Subject to 10% Diocesan Share",
     ("Ministerial Services", "Collections", "Other Income")),
    ("II. Diocesan Receipts Not Subject to 10% Diocesan Share",
     ("Donation from Special Projects", "Other Church Income/Donations Individuals",
      "Foreign & Local Fundings Assistance")),
    ("III. Diocesan Receipts",
     ("Pontifical Collections", "National Collections", "Diocesan Collections")),
    ("Disbursement",
     ("Priest Honoraria", "Rectory Expenses", "Regular Expenses",
      "Church Supplies & Other Expenses", "Repair & Maintenance", "Honorarium",
      "Pastoral Program", "Special Project Donation", "Remittance to the Curia",
      "Cash Advances (Receivables)")),
    ("IV. Other Receipts",
     ("Parish Receipts Subject", "Ministerial Services", "Collections", "Other Income")),
)

_ISO_DATE = re.compile(r"\d{4}-\d{2}-\d{2}")


class ExpenseReportError(ParishError):
    pass


@dataclass(frozen=True)
class ExpenseReportPage:
    reports: Tuple[ExpenseReport, ...]
    total_expenses: float
    available_years: Tuple[int, ...] = field(default_factory=tuple)


def expense_categories() -> Tuple[str, ...]:
    seen: List[str] = []
    for _, cats in EXPENSE_CATEGORY_GROUPS:
        seen.extend(c for c in cats if c not in seen)
    return tuple(seen)


def month_number(month) -> int:
    """1-12 from a month number or an English month name."""
    if isinstance(month, int):
        number = month
    elif isinstance(month, str) and month.strip().isdigit():
        number = int(month)
    elif isinstance(month, str) and month.strip().capitalize() in MONTH_NAMES:
        return MONTH_NAMES.index(month.strip().capitalize()) + 1
    else:
        raise ValueError(f"unknown month: {month!r}")
    if not 1 <= number <= 12:
        raise ValueError(f"month must be within 1-12, got {number}")
    return number


def total_cost(amount: float, quantity: int) -> str:
    return f"{float(amount) * int(quantity):.2f}"


def parse_report(row: dict) -> ExpenseReport:
    amount = float(row.get("amount") or 0)
    quantity = int(row.get("quantity") or 0)
    cost = row.get("totalCost")
    return ExpenseReport(
        report_id=str(row.get("reportID", "")),
        expense_name=row.get("expenseName") or "",
        category=row.get("category") or "",
        amount=amount,
        quantity=quantity,
        total_cost=float(cost) if cost is not None else amount * quantity,
        date_of_expense=row.get("dateOfExpense") or "",
        description=row.get("description") or "",
    )


def search_expenses(reports: Iterable[ExpenseReport], term: str) -> Tuple[ExpenseReport, ...]:
    term = (term or "").lower()
    if not term:
        return tuple(reports)
    return tuple(
        r for r in reports
        if term in r.expense_name.lower() or term in (r.description or "").lower()
    )


def format_expense_date(value: str) -> str:
    if not value:
        return value
    if _ISO_DATE.fullmatch(value):
        return value
    try:
        return datetime.strptime(value.split(" ")[0], "%Y-%m-%d").strftime("%m/%d/%Y")
    except ValueError:
        return value


class SessionManager:
    """Lazily built requests session with retries on transient failures."""

    def __init__(self, max_retries: int = 3, backoff_factor: float = 1.0):
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self._session: Optional[requests.Session] = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            retry = Retry(
                total=self.max_retries,
                backoff_factor=self.backoff_factor,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET"],
            )
            adapter = HTTPAdapter(max_retries=retry)
            self._session.mount("http://", adapter)
            self._session.mount("https://", adapter)
        return self._session

    def close(self) -> None:
        if self._session:
            self._session.close()
            self._session = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class ExpenseReportClient:
    def __init__(self, base_url: str, session_manager: Optional[SessionManager] = None,
                 timeout: float = 30.0):
        self.base_url = base_url
        self.session_manager = session_manager or SessionManager()
        self.timeout = timeout

    def fetch(self, category: Optional[str] = None, month=None,
              year: Optional[int] = None) -> ExpenseReportPage:
        params = {}
        if category:
            params["category"] = category
        if month:
            params["month"] = month_number(month)
        if year:
            params["year"] = int(year)

        try:
            response = self.session_manager.session.get(self.base_url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            logger.error("Error fetching expense reports: %s", e)
            raise ExpenseReportError("An error occurred while fetching expense data") from e
        except ValueError as e:
            logger.error("Expense report response is not JSON: %s", e)
            raise ExpenseReportError("An error occurred while fetching expense data") from e

        if not isinstance(data, dict) or not data.get("success"):
            raise ExpenseReportError("Failed to fetch expense reports")

        try:
            reports = tuple(parse_report(r) for r in data.get("reports") or [])
            total = float(data.get("totalExpenses") or 0)
            years = tuple(int(y) for y in data.get("availableYears") or [])
        except (TypeError, ValueError, AttributeError) as e:
            raise ExpenseReportError("Failed to fetch expense reports") from e
        logger.info("Fetched %d expense report(s) with %s", len(reports), params or "no filters")
        return ExpenseReportPage(reports=reports, total_expenses=total, available_years=years)
