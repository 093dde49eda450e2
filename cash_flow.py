"""Cash position helper over scheduled financial events.

This module walks the unsettled events in date order to find the lowest
balance the account reaches, when it first goes negative, and how much can
be spent today without that happening.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from interval_packer import CASH_BASIS, display_date
from models import INFLOW, FinancialEvent

CENT = Decimal("0.01")


@dataclass
class CashEvent:
    """Represents a dated cash movement."""

    date: date
    amount: Decimal  # positive for inflow, negative for outflow


def _build_events(
    events: Iterable[FinancialEvent], basis: str, start: Optional[date]
) -> List[CashEvent]:
    """Convert unsettled ``FinancialEvent`` records into signed ``CashEvent`` objects."""

    cash: List[CashEvent] = []
    for event in events:
        if event.settled:
            continue
        when = display_date(event, basis)
        if start is not None and when < start:
            continue
        amount = event.amount.quantize(CENT, rounding=ROUND_HALF_UP)
        cash.append(CashEvent(date=when, amount=amount if event.direction == INFLOW else -amount))
    # Sort by date; on the same day inflows land before outflows
    cash.sort(key=lambda e: (e.date, e.amount < 0))
    return cash


def projected_min_balance(
    opening_balance: float | Decimal,
    events: Iterable[FinancialEvent],
    basis: str = CASH_BASIS,
    start: Optional[date] = None,
) -> tuple[Decimal, date | None]:
    """Return the minimum projected balance and the first date it drops below zero."""

    balance = Decimal(str(opening_balance)).quantize(CENT, rounding=ROUND_HALF_UP)

    running = balance
    min_balance = running
    negative_date = None
    for event in _build_events(events, basis, start):
        running += event.amount
        if running < min_balance:
            min_balance = running
        if negative_date is None and running < 0:
            negative_date = event.date

    return min_balance, negative_date


def max_safe_payment(
    opening_balance: float | Decimal,
    events: Iterable[FinancialEvent],
    start: Optional[date] = None,
) -> Decimal:
    """Return the largest amount that can be paid today without a future overdraft.

    Parameters
    ----------
    opening_balance:
        Current amount of money available.
    events:
        Scheduled financial events. Settled events have already moved cash
        and are ignored.
    start:
        Events due before this date are ignored.

    Returns
    -------
    Decimal
        The maximum additional payment that keeps the balance non-negative
        for all future events.
    """

    min_balance, _ = projected_min_balance(opening_balance, events, start=start)
    return max(Decimal("0"), min_balance)
