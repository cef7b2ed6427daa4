"""Ledger aggregation package."""

from shop_ledger.ledger.aggregation import (
    build_view,
    filter_by_exact_date,
    filter_by_period,
    period_key_for,
    sort_newest_first,
    summarize,
    to_daily_series,
)

__all__ = [
    "build_view",
    "filter_by_exact_date",
    "filter_by_period",
    "period_key_for",
    "sort_newest_first",
    "summarize",
    "to_daily_series",
]
