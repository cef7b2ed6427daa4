"""
Aggregation Engine

Pure functions deriving views and statistics from a transaction
collection. Nothing here holds state or touches storage; every
dashboard number is recomputed from the in-memory ledger.

Sums use Decimal, so totals are exact at any scale a shop will see.
"""

from collections import defaultdict
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from shop_ledger.models.transaction import (
    ZERO,
    DailyPoint,
    LedgerSummary,
    LedgerView,
    Transaction,
    TransactionType,
)


def period_key_for(day: date) -> str:
    """The YYYY-MM period key containing a day."""
    return f"{day.year:04d}-{day.month:02d}"


def filter_by_period(
    transactions: Iterable[Transaction],
    period_key: str,
) -> list[Transaction]:
    """
    Records whose date starts with the period key.

    A plain prefix match: "2024-03" matches "2024-03-31" but not
    "2024-3-1". Malformed dates never raise, they just don't match.
    """
    return [t for t in transactions if t.date.startswith(period_key)]


def filter_by_exact_date(
    transactions: Iterable[Transaction],
    date_key: str,
) -> list[Transaction]:
    """Records dated exactly date_key."""
    return [t for t in transactions if t.date == date_key]


def summarize(transactions: Iterable[Transaction]) -> LedgerSummary:
    """Income, expense and profit (income - expense)."""
    income = ZERO
    expense = ZERO
    for t in transactions:
        if t.type == TransactionType.INCOME:
            income += t.amount
        else:
            expense += t.amount
    return LedgerSummary(income=income, expense=expense, profit=income - expense)


def _calendar_key(date_text: str) -> tuple[int, date, str]:
    """Sort key: real calendar dates first, unparseable text last."""
    try:
        parsed = datetime.strptime(date_text, "%Y-%m-%d").date()
    except ValueError:
        return (1, date.max, date_text)
    return (0, parsed, date_text)


def to_daily_series(transactions: Iterable[Transaction]) -> list[DailyPoint]:
    """
    Per-day income/expense, ascending by calendar date.

    Only days that have transactions appear; gaps are not zero-filled.
    """
    income: dict[str, Decimal] = defaultdict(lambda: ZERO)
    expense: dict[str, Decimal] = defaultdict(lambda: ZERO)
    seen: set[str] = set()

    for t in transactions:
        seen.add(t.date)
        if t.type == TransactionType.INCOME:
            income[t.date] += t.amount
        else:
            expense[t.date] += t.amount

    return [
        DailyPoint(date=day, income=income[day], expense=expense[day])
        for day in sorted(seen, key=_calendar_key)
    ]


def sort_newest_first(transactions: Iterable[Transaction]) -> list[Transaction]:
    """Order for the transaction table. Stable for same-day entries."""
    def key(t: Transaction) -> tuple[int, date]:
        malformed, day, _ = _calendar_key(t.date)
        # Malformed dates sink to the bottom
        return (1 - malformed, day)

    return sorted(transactions, key=key, reverse=True)


def build_view(
    transactions: Iterable[Transaction],
    period_key: str,
    today: Optional[date] = None,
) -> LedgerView:
    """Derive everything the dashboard needs for one month."""
    today = today or date.today()
    all_transactions = list(transactions)
    in_period = filter_by_period(all_transactions, period_key)

    return LedgerView(
        period_key=period_key,
        transactions=sort_newest_first(in_period),
        summary=summarize(in_period),
        today=summarize(filter_by_exact_date(all_transactions, today.isoformat())),
        daily_series=to_daily_series(in_period),
    )
