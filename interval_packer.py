"""Pack work-item bars onto calendar rows and total cash per day.

Items are clipped to the visible window and placed in order of start date,
longest first on ties. Each takes the lowest row that is free on every day it
covers. Rows are capped; an item that does not fit is marked as overflow on
each of its days and only shows up in that day's "+N more" count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Set, Tuple

from dateutil.relativedelta import relativedelta, weekday

from config import MAX_VISIBLE_ROWS, WEEK_STARTS_ON
from models import INFLOW, CalendarDay, DaySummary, FinancialEvent, RenderableSlot, WorkItem

logger = logging.getLogger(__name__)

MONTH = "month"
WEEK = "week"

CASH_BASIS = "cash"
ACCRUAL_BASIS = "accrual"


def calendar_window(
    anchor: date, granularity: str = MONTH, week_starts_on: int = WEEK_STARTS_ON
) -> Tuple[date, date]:
    """Return the first and last day of the full weeks shown around ``anchor``.

    ``month`` covers every week touching the anchor's month; ``week`` covers
    the anchor's own week.
    """

    week_start = weekday(week_starts_on)
    week_end = weekday((week_starts_on + 6) % 7)
    if granularity == WEEK:
        first, last = anchor, anchor
    elif granularity == MONTH:
        first = anchor.replace(day=1)
        last = first + relativedelta(months=1, days=-1)
    else:
        raise ValueError(f"Unknown calendar granularity: {granularity}")
    return (
        first + relativedelta(weekday=week_start(-1)),
        last + relativedelta(weekday=week_end(+1)),
    )


def _days_between(start: date, end: date) -> List[date]:
    return [start + timedelta(days=n) for n in range((end - start).days + 1)]


def calendar_days(
    window: Tuple[date, date],
    period_month: Optional[Tuple[int, int]] = None,
    today: Optional[date] = None,
) -> List[CalendarDay]:
    """Build the day cells for ``window``.

    ``period_month`` is the (year, month) being displayed; days outside it are
    flagged as padding. Without it every day is in period.
    """

    today = today or date.today()
    return [
        CalendarDay(
            date=d,
            day_key=d.isoformat(),
            in_period=period_month is None or (d.year, d.month) == tuple(period_month),
            is_today=d == today,
        )
        for d in _days_between(*window)
    ]


def packing_order(items: Iterable[WorkItem]) -> List[WorkItem]:
    """Start date ascending, then longer spans first, then id."""
    return sorted(items, key=lambda item: (item.start_date, -item.span_days, item.id))


def display_date(event: FinancialEvent, basis: str = CASH_BASIS) -> date:
    if basis == ACCRUAL_BASIS:
        return event.accrual_date
    if basis == CASH_BASIS:
        return event.display_date
    raise ValueError(f"Unknown display basis: {basis}")


@dataclass
class CalendarLayout:
    days: List[CalendarDay]
    slots_by_day: Dict[str, List[RenderableSlot]]
    summaries: Dict[str, DaySummary]
    max_row_index: int = 0
    max_rows: Optional[int] = MAX_VISIBLE_ROWS
    rows_by_item: Dict[str, Optional[int]] = field(default_factory=dict)

    def visible_slots(self, day_key: str) -> List[RenderableSlot]:
        """Non-overflow slots of ``day_key`` ordered by row."""
        slots = [s for s in self.slots_by_day.get(day_key, []) if not s.is_overflow]
        return sorted(slots, key=lambda s: s.row_index)

    def more_count(self, day_key: str) -> int:
        summary = self.summaries.get(day_key)
        return summary.overflow_count if summary else 0


def layout(
    work_items: Iterable[WorkItem],
    window: Tuple[date, date],
    events: Iterable[FinancialEvent] = (),
    today: Optional[date] = None,
    max_rows: Optional[int] = MAX_VISIBLE_ROWS,
    period_month: Optional[Tuple[int, int]] = None,
    basis: str = CASH_BASIS,
) -> CalendarLayout:
    """Lay out ``work_items`` and total ``events`` over ``window``.

    Parameters
    ----------
    work_items:
        Items to place. They are read, never modified.
    window:
        Inclusive ``(start, end)`` of the visible days.
    events:
        Financial events to total per day by their display date.
    max_rows:
        Row cap; ``None`` packs without a cap.
    basis:
        ``cash`` places events on their due date (falling back to accrual),
        ``accrual`` on their accrual date.

    Returns
    -------
    CalendarLayout
        Day cells, slots per day key, per-day summaries with inflow/outflow
        totals and overflow counts, and the highest row used by a visible
        item. Overflow slots carry ``row_index == max_rows``.
    """

    start, end = window
    if start > end:
        raise ValueError(f"Window starts {start} after it ends {end}")

    days = calendar_days(window, period_month, today)
    used_rows: Dict[str, Set[int]] = {d.day_key: set() for d in days}
    slots_by_day: Dict[str, List[RenderableSlot]] = {d.day_key: [] for d in days}
    summaries: Dict[str, DaySummary] = {d.day_key: DaySummary() for d in days}
    rows_by_item: Dict[str, Optional[int]] = {}

    max_row_index = 0
    for item in packing_order(work_items):
        if item.start_date > end or item.end_date < start:
            continue
        keys = [d.isoformat() for d in _days_between(max(item.start_date, start), min(item.end_date, end))]

        row = 0
        while max_rows is None or row < max_rows:
            if all(row not in used_rows[k] for k in keys):
                break
            row += 1
        is_overflow = max_rows is not None and row >= max_rows

        if is_overflow:
            rows_by_item[item.id] = None
        else:
            rows_by_item[item.id] = row
            max_row_index = max(max_row_index, row)

        for idx, key in enumerate(keys):
            if is_overflow:
                summaries[key].overflow_count += 1
            else:
                used_rows[key].add(row)
            slots_by_day[key].append(
                RenderableSlot(
                    item=item,
                    row_index=row,
                    is_range_start=idx == 0,
                    is_range_end=idx == len(keys) - 1,
                    is_overflow=is_overflow,
                )
            )

    for event in events:
        key = display_date(event, basis).isoformat()
        summary = summaries.get(key)
        if summary is None:
            continue
        summary.events.append(event)
        if event.direction == INFLOW:
            summary.inflow += event.amount
        else:
            summary.outflow += event.amount

    overflowed = sum(1 for row in rows_by_item.values() if row is None)
    if overflowed:
        logger.debug("%d work items overflowed %s rows in %s..%s", overflowed, max_rows, start, end)

    return CalendarLayout(
        days=days,
        slots_by_day=slots_by_day,
        summaries=summaries,
        max_row_index=max_row_index,
        max_rows=max_rows,
        rows_by_item=rows_by_item,
    )

