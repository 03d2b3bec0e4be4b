"""
Simple-interest installment arithmetic.

The rate is a flat percentage applied once per period count, not an annual
rate amortised over the term:

    interest = principal * rate / 100 * periods
    total    = principal + interest
    emi      = round(total / periods)

A period stated in days is converted to months (days / 30) before the rate is
applied, and its installment is quoted per day.
"""
import calendar
import math
from datetime import date, timedelta
from enum import Enum
from typing import Iterator, NamedTuple, Optional, Union

from core.errors import InvalidArgumentError

DAYS_PER_MONTH = 30


class PeriodUnit(str, Enum):
    DAYS = "days"
    WEEKS = "weeks"
    MONTHS = "months"


class PenaltyType(str, Enum):
    PER_DAY = "per_day"
    PER_WEEK = "per_week"
    FIXED_TOTAL = "fixed_total"


class Installment(NamedTuple):
    emi: float
    total: float
    interest: float
    period_in_months: Optional[float] = None


class ScheduledInstallment(NamedTuple):
    emi_no: int
    due_date: date
    amount: float


_PERIOD_LABELS = {
    PeriodUnit.DAYS: "Days",
    PeriodUnit.WEEKS: "Weeks",
    PeriodUnit.MONTHS: "Months",
}

_EMI_FREQUENCIES = {
    PeriodUnit.DAYS: "Daily installment",
    PeriodUnit.WEEKS: "Weekly installment",
    PeriodUnit.MONTHS: "Monthly installment",
}

_RATE_UNITS = {
    PeriodUnit.DAYS: "per day",
    PeriodUnit.WEEKS: "per week",
    PeriodUnit.MONTHS: "per month",
}


def parse_period_unit(value: Union[PeriodUnit, str, None]) -> PeriodUnit:
    """Map a unit (enum or free text) to a PeriodUnit, falling back to months."""
    if isinstance(value, PeriodUnit):
        return value
    try:
        return PeriodUnit(str(value).lower())
    except ValueError:
        return PeriodUnit.MONTHS


def _check_terms(principal: float, rate_percent: float, period: float) -> None:
    if period is None or period <= 0:
        raise InvalidArgumentError(f"period must be positive, got {period}")
    if principal is None or principal <= 0:
        raise InvalidArgumentError(f"principal must be positive, got {principal}")
    if rate_percent is None or rate_percent < 0:
        raise InvalidArgumentError(f"interest rate cannot be negative, got {rate_percent}")


def compute_emi(principal: float, rate_percent: float, period_count: int) -> int:
    _check_terms(principal, rate_percent, period_count)
    interest = principal * (rate_percent / 100) * period_count
    total = principal + interest
    return round(total / period_count)


def calculate_installment(
    principal: float,
    rate_percent: float,
    period: int,
    period_unit: Union[PeriodUnit, str, None] = PeriodUnit.MONTHS,
) -> Installment:
    _check_terms(principal, rate_percent, period)
    unit = parse_period_unit(period_unit)

    if unit is PeriodUnit.DAYS:
        period_in_months = period / DAYS_PER_MONTH
        interest = principal * (rate_percent / 100) * period_in_months
        total = principal + interest
        return Installment(
            emi=total / period, total=total, interest=interest, period_in_months=period_in_months
        )

    interest = principal * (rate_percent / 100) * period
    total = principal + interest
    return Installment(emi=round(total / period), total=total, interest=interest)


def reducing_balance_emi(principal: float, annual_rate: float, period_months: int) -> Installment:
    """
    Amortised EMI on a reducing balance:
    EMI = P * r * (1 + r)^n / ((1 + r)^n - 1), with r the monthly rate.
    All three figures are rounded to whole currency units.
    """
    _check_terms(principal, annual_rate, period_months)
    monthly_rate = annual_rate / 100 / 12
    if monthly_rate == 0:
        emi = principal / period_months
    else:
        growth = (1 + monthly_rate) ** period_months
        emi = principal * monthly_rate * growth / (growth - 1)
    total = emi * period_months
    return Installment(emi=round(emi), total=round(total), interest=round(total - principal))


def calculate_penalty(
    amount: float,
    days_overdue: int,
    penalty_rate: float,
    penalty_type: Union[PenaltyType, str] = PenaltyType.PER_DAY,
) -> int:
    """Late-payment penalty; unknown penalty types are charged per day."""
    if days_overdue <= 0:
        return 0
    try:
        kind = PenaltyType(penalty_type)
    except ValueError:
        kind = PenaltyType.PER_DAY

    rate = penalty_rate / 100
    if kind is PenaltyType.PER_WEEK:
        return round(amount * rate * math.ceil(days_overdue / 7))
    if kind is PenaltyType.FIXED_TOTAL:
        return round(amount * rate)
    return round(amount * rate * days_overdue)


def period_label(period_unit: Union[PeriodUnit, str, None]) -> str:
    return _PERIOD_LABELS[parse_period_unit(period_unit)]


def emi_frequency(period_unit: Union[PeriodUnit, str, None]) -> str:
    return _EMI_FREQUENCIES[parse_period_unit(period_unit)]


def interest_rate_display(rate: float, period_unit: Union[PeriodUnit, str, None]) -> str:
    return f"{rate:g}% {_RATE_UNITS[parse_period_unit(period_unit)]} (Simple Interest)"


def add_months(start: date, months: int) -> date:
    # clamp to the last day of the target month (Jan 31 + 1 month -> Feb 28/29)
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def due_date(start: date, step: int, period_unit: Union[PeriodUnit, str, None]) -> date:
    unit = parse_period_unit(period_unit)
    if unit is PeriodUnit.DAYS:
        return start + timedelta(days=step)
    if unit is PeriodUnit.WEEKS:
        return start + timedelta(weeks=step)
    return add_months(start, step)


def build_schedule(
    period: int,
    period_unit: Union[PeriodUnit, str, None],
    emi: float,
    start: date,
) -> Iterator[ScheduledInstallment]:
    """One installment per period step, the first falling one step after `start`."""
    if period <= 0:
        raise InvalidArgumentError(f"period must be positive, got {period}")
    for emi_no in range(1, period + 1):
        yield ScheduledInstallment(emi_no, due_date(start, emi_no, period_unit), emi)
