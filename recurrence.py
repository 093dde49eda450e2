"""Expand recurring rules into dated financial events.

A rule recurs monthly or yearly on ``day_of_period``. Days a month does not
have fall on its last day, and 31 always means the last day. Each occurrence
is computed from its own month rather than from the previous occurrence, so
a rule on the 31st comes back to the 31st after February.

Every produced event carries ``instance_date``, the canonical occurrence
date. Together with the rule id it is the key used to de-duplicate against
events already in the ledger.
"""

from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from config import INITIAL_HORIZON_MONTHS
from edit_plan import FINANCIAL_EVENTS, RECURRING_RULES, EditPlan, new_id
from errors import InvalidRecurringRule
from models import DIRECTIONS, FREQUENCIES, MONTHLY, YEARLY, FinancialEvent, RecurringRule
from settlement import Counterparties, due_date_for, find_counterparty

logger = logging.getLogger(__name__)

Window = Tuple[date, date]


def validate_rule(rule: RecurringRule) -> None:
    """Raise ``InvalidRecurringRule`` if ``rule`` cannot be expanded."""

    if rule.frequency not in FREQUENCIES:
        raise InvalidRecurringRule(f"Unknown frequency: {rule.frequency}")
    if rule.direction not in DIRECTIONS:
        raise InvalidRecurringRule(f"Unknown direction: {rule.direction}")
    if isinstance(rule.day_of_period, bool) or not isinstance(rule.day_of_period, int):
        raise InvalidRecurringRule(f"day_of_period must be a whole number, got {rule.day_of_period!r}")
    if not 1 <= rule.day_of_period <= 31:
        raise InvalidRecurringRule(f"day_of_period must be between 1 and 31, got {rule.day_of_period}")
    if rule.frequency == YEARLY:
        if rule.month_of_year is None or not 1 <= rule.month_of_year <= 12:
            raise InvalidRecurringRule(
                f"Yearly rules need a month_of_year between 1 and 12, got {rule.month_of_year!r}"
            )
    elif rule.month_of_year is not None:
        raise InvalidRecurringRule("month_of_year is only valid for yearly rules")
    if rule.end_date is not None and rule.end_date < rule.start_date:
        raise InvalidRecurringRule(f"Rule ends {rule.end_date} before it starts {rule.start_date}")
    if rule.base_amount <= Decimal("0"):
        raise InvalidRecurringRule(f"Amount must be positive, got {rule.base_amount}")


def _step(rule: RecurringRule) -> relativedelta:
    return relativedelta(months=1) if rule.frequency == MONTHLY else relativedelta(years=1)


def _first_period(rule: RecurringRule, on_or_after: date) -> date:
    """First day of the period whose occurrence may be the first on or after ``on_or_after``."""
    if rule.frequency == MONTHLY:
        return on_or_after.replace(day=1)
    return date(on_or_after.year, rule.month_of_year, 1)


def _occurrence_in(rule: RecurringRule, period_start: date) -> date:
    last = monthrange(period_start.year, period_start.month)[1]
    return period_start.replace(day=min(rule.day_of_period, last))


def occurrence_dates(rule: RecurringRule, window_start: date, window_end: date) -> List[date]:
    """Return every occurrence of ``rule`` within the window and the rule's own bounds."""

    validate_rule(rule)
    lower = max(rule.start_date, window_start)
    upper = window_end if rule.end_date is None else min(rule.end_date, window_end)
    if lower > upper:
        return []

    step = _step(rule)
    period = _first_period(rule, lower)
    dates: List[date] = []
    while True:
        current = _occurrence_in(rule, period)
        if current > upper:
            break
        if current >= lower:
            dates.append(current)
        period += step
    return dates


def next_occurrence(rule: RecurringRule, after: date) -> Optional[date]:
    """Return the first occurrence strictly after ``after``, or ``None`` past the rule end."""

    start = after + timedelta(days=1)
    candidates = occurrence_dates(rule, start, start + relativedelta(years=1, months=1))
    return candidates[0] if candidates else None


def initial_window(rule: RecurringRule, horizon_months: int = INITIAL_HORIZON_MONTHS) -> Window:
    """Window a new rule is materialized over: its whole term, or ``horizon_months`` if open-ended."""

    if rule.end_date is not None:
        return rule.start_date, rule.end_date
    return rule.start_date, rule.start_date + relativedelta(months=horizon_months)


def expand(
    rule: RecurringRule,
    window: Window,
    counterparties: Counterparties = (),
) -> List[FinancialEvent]:
    """Return one unsaved event per occurrence of ``rule`` inside ``window``.

    The active flag is not consulted; callers bound the window to decide
    whether an inactive rule still yields its history.
    """

    window_start, window_end = window
    dates = occurrence_dates(rule, window_start, window_end)
    counterparty = find_counterparty(counterparties, rule.counterparty_id)
    if rule.counterparty_id is not None and counterparty is None:
        logger.debug(
            "Counterparty %s of rule %s not supplied; instances fall due on accrual",
            rule.counterparty_id,
            rule.id,
        )

    events = [
        FinancialEvent(
            id=None,
            direction=rule.direction,
            amount=rule.base_amount,
            accrual_date=occurrence,
            due_date=due_date_for(rule.direction, occurrence, counterparty),
            settled=False,
            recurring_rule_id=rule.id,
            instance_date=occurrence,
            detached=False,
            counterparty_id=rule.counterparty_id,
            memo=rule.memo or rule.title,
        )
        for occurrence in dates
    ]
    logger.debug("Expanded rule %s over %s..%s into %d instances", rule.id, window_start, window_end, len(events))
    return events


def merge_instances(
    existing: Iterable[FinancialEvent], produced: Iterable[FinancialEvent]
) -> List[FinancialEvent]:
    """Return the produced events whose (rule, instance date) key is not yet present."""

    seen = {e.series_key for e in existing if e.recurring_rule_id is not None}
    fresh: List[FinancialEvent] = []
    for event in produced:
        if event.series_key in seen:
            continue
        seen.add(event.series_key)
        fresh.append(event)
    return fresh


def materialize(
    rule: RecurringRule,
    counterparties: Counterparties = (),
    horizon_months: int = INITIAL_HORIZON_MONTHS,
) -> EditPlan:
    """Plan the creation of ``rule`` together with its initial instances."""

    validate_rule(rule)
    if rule.id is None:
        rule = replace(rule, id=new_id())

    plan = EditPlan()
    plan.create(RECURRING_RULES, rule.to_dict(), record_id=rule.id)
    for event in expand(rule, initial_window(rule, horizon_months), counterparties):
        plan.create(FINANCIAL_EVENTS, event.to_dict())
    logger.info("Planned rule %s with %d instances", rule.id, len(plan) - 1)
    return plan
