"""Age arithmetic and the overdue policy.

These are plain functions of their inputs — no clock is read here.
Callers pass ``today`` explicitly so classification is deterministic for
a fixed (birth_date, today) pair.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from dateutil.relativedelta import relativedelta

from vaxledger.models.records import DoseState


GRACE_PERIOD_MONTHS = 1


def age_in_months(birth_date: date, today: date) -> int:
    """Whole months elapsed from birth to today, floored at zero."""
    months = (today.year - birth_date.year) * 12 + (today.month - birth_date.month)
    if today.day < birth_date.day:
        months -= 1
    return max(0, months)


def add_months(start: date, months: int) -> date:
    """Calendar-month offset, clamped to the end of shorter months."""
    return start + relativedelta(months=months)


def classify_dose(child_age_months: int, dose_age_months: int) -> DoseState:
    """Pending until the grace window after the scheduled age has passed."""
    if child_age_months < dose_age_months:
        return DoseState.PENDING
    if child_age_months <= dose_age_months + GRACE_PERIOD_MONTHS:
        return DoseState.PENDING
    return DoseState.OVERDUE


def completion_rate(completed: int, total: int) -> int:
    """round(100 * completed / total), half-up; 0 when nothing is required."""
    if total <= 0:
        return 0
    rate = Decimal(100 * completed) / Decimal(total)
    return int(rate.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
