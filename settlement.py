"""Payment due dates under closing-cycle billing.

A counterparty bills on a cycle described by three numbers: the day the
cycle closes, how many months after closing the payment is made, and the
day of that month the payment arrives. Both days accept ``END_OF_MONTH``
(31) meaning the last calendar day of whatever month it lands in; the value
99 used by older ledgers means the same thing.
"""

from __future__ import annotations

from calendar import monthrange
from datetime import date
from typing import Iterable, Mapping, Optional, Union

from dateutil.relativedelta import relativedelta

from errors import InvalidCycleParameters
from models import INFLOW, Counterparty

END_OF_MONTH = 31
LEGACY_END_OF_MONTH = 99


def _cycle_day(name: str, value) -> int:
    """Validate a closing or payment day and map the legacy sentinel."""

    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCycleParameters(f"{name} must be a whole day number, got {value!r}")
    if value == LEGACY_END_OF_MONTH:
        return END_OF_MONTH
    if not 1 <= value <= END_OF_MONTH:
        raise InvalidCycleParameters(f"{name} must be between 1 and 31, got {value}")
    return value


def _day_in_month(year: int, month: int, day: int) -> int:
    # END_OF_MONTH is the largest day, so clamping also resolves the sentinel
    return min(day, monthrange(year, month)[1])


def compute_due_date(
    completion_date: date,
    closing_day: int,
    payment_month_offset: int,
    payment_day: int,
) -> date:
    """Return the date payment is due for work completed on ``completion_date``.

    Parameters
    ----------
    completion_date:
        Day the work was delivered or the obligation arose.
    closing_day:
        Day of month the billing cycle closes, or ``END_OF_MONTH``.
    payment_month_offset:
        Whole months between the closing month and the payment month
        (0 = same month, 1 = next month, ...).
    payment_day:
        Day of the payment month, or ``END_OF_MONTH``. Days the month does
        not have are clamped to its last day.

    Raises
    ------
    InvalidCycleParameters
        If any parameter is malformed or the result is not a representable
        date.
    """

    if not isinstance(completion_date, date):
        raise InvalidCycleParameters(f"completion_date must be a date, got {completion_date!r}")
    closing = _cycle_day("closing_day", closing_day)
    paying = _cycle_day("payment_day", payment_day)
    if (
        isinstance(payment_month_offset, bool)
        or not isinstance(payment_month_offset, int)
        or payment_month_offset < 0
    ):
        raise InvalidCycleParameters(
            f"payment_month_offset must be a non-negative whole number, got {payment_month_offset!r}"
        )

    try:
        month_start = completion_date.replace(day=1)
        closing_date = month_start.replace(
            day=_day_in_month(month_start.year, month_start.month, closing)
        )
        if completion_date > closing_date:
            month_start += relativedelta(months=1)

        payment_month = month_start + relativedelta(months=payment_month_offset)
        return payment_month.replace(
            day=_day_in_month(payment_month.year, payment_month.month, paying)
        )
    except (ValueError, OverflowError) as exc:
        raise InvalidCycleParameters(
            f"No due date for {completion_date} with cycle "
            f"({closing_day}, {payment_month_offset}, {payment_day}): {exc}"
        ) from exc


def _ordinal(day: int) -> str:
    if 10 <= day % 100 <= 20:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
    return f"{day}{suffix}"


def format_payment_cycle(closing_day: int, payment_month_offset: int, payment_day: int) -> str:
    """Describe a billing cycle, e.g. ``closes on the 20th, paid end of next month``."""

    closing = _cycle_day("closing_day", closing_day)
    paying = _cycle_day("payment_day", payment_day)
    closing_str = "end of month" if closing == END_OF_MONTH else f"on the {_ordinal(closing)}"
    month_str = {
        0: "this month",
        1: "next month",
        2: "the month after next",
    }.get(payment_month_offset, f"{payment_month_offset} months later")
    if paying == END_OF_MONTH:
        paid_str = f"end of {month_str}"
    else:
        paid_str = f"on the {_ordinal(paying)} of {month_str}"
    return f"closes {closing_str}, paid {paid_str}"


Counterparties = Union[Mapping[str, Counterparty], Iterable[Counterparty]]


def find_counterparty(
    counterparties: Counterparties, counterparty_id: Optional[str]
) -> Optional[Counterparty]:
    """Return the counterparty with ``counterparty_id`` or ``None``."""

    if counterparty_id is None:
        return None
    if isinstance(counterparties, Mapping):
        return counterparties.get(counterparty_id)
    return next((c for c in counterparties if c.id == counterparty_id), None)


def due_date_for(
    direction: str, accrual_date: date, counterparty: Optional[Counterparty]
) -> date:
    """Return the due date for an event accrued on ``accrual_date``.

    Revenue owed by a counterparty follows its billing cycle; everything
    else is due the day it accrues.
    """

    if direction == INFLOW and counterparty is not None:
        return compute_due_date(
            accrual_date,
            counterparty.closing_day,
            counterparty.payment_month_offset,
            counterparty.payment_day,
        )
    return accrual_date
