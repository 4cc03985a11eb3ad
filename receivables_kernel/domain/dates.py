"""Calendar-day arithmetic for due dates and overdue periods.

All differences are plain calendar days; weekends and holidays count.
"""

from __future__ import annotations

from datetime import date, timedelta


def days_between(start: date, end: date) -> int:
    """Signed number of calendar days from ``start`` to ``end``."""
    return (end - start).days


def days_overdue(due: date, paid: date) -> int:
    """Days past ``due`` on ``paid``; zero when paid on or before due."""
    return max(0, days_between(due, paid))


def derive_due_date(
    invoice_date: date,
    payment_terms_days: int,
    override: date | None = None,
) -> date:
    """Due date is the manual override when set, else invoice date plus terms."""
    if override is not None:
        return override
    return invoice_date + timedelta(days=payment_terms_days)
