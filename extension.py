"""Keep open-ended recurring rules materialized ahead of today.

Meant to run once per session. A rule is extended when its furthest instance
falls within ``threshold_months`` of today; the new instances continue the
series contiguously from the occurrence after that furthest one. Instances
already in the ledger are never produced again, inactive rules are left
alone, and nothing is produced past a rule's end date.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Iterable, List, Mapping, Optional

from dateutil.relativedelta import relativedelta

from config import EXTENSION_MONTHS, EXTENSION_THRESHOLD_MONTHS, Settings
from edit_plan import FINANCIAL_EVENTS, EditPlan
from errors import SchedulingError
from models import FinancialEvent, RecurringRule
from recurrence import expand, initial_window, merge_instances, next_occurrence, occurrence_dates
from settlement import Counterparties

logger = logging.getLogger(__name__)


def _instances_of(rule: RecurringRule, events: Iterable[FinancialEvent]) -> List[FinancialEvent]:
    return [e for e in events if e.recurring_rule_id == rule.id]


def latest_instance_date(rule: RecurringRule, events: Iterable[FinancialEvent]) -> Optional[date]:
    dates = [e.instance_date for e in _instances_of(rule, events) if e.instance_date is not None]
    return max(dates) if dates else None


def needs_extension(
    rule: RecurringRule,
    existing: Iterable[FinancialEvent],
    today: Optional[date] = None,
    threshold_months: int = EXTENSION_THRESHOLD_MONTHS,
) -> bool:
    """Return True when ``rule`` should get more instances materialized."""

    if not rule.is_active:
        return False

    latest = latest_instance_date(rule, existing)
    if latest is None:
        return bool(occurrence_dates(rule, *initial_window(rule)))

    if next_occurrence(rule, latest) is None:
        return False
    today = today or date.today()
    return latest < today + relativedelta(months=threshold_months)


def extend(
    rule: RecurringRule,
    existing: Iterable[FinancialEvent],
    counterparties: Counterparties = (),
    today: Optional[date] = None,
    threshold_months: int = EXTENSION_THRESHOLD_MONTHS,
    extension_months: int = EXTENSION_MONTHS,
) -> List[FinancialEvent]:
    """Return the instances of ``rule`` missing from ``existing``.

    Windows of ``extension_months`` are added until the series reaches past
    the threshold, so one call catches up a rule that has fallen far behind.
    """

    known = _instances_of(rule, existing)
    added: List[FinancialEvent] = []
    while needs_extension(rule, known, today, threshold_months):
        latest = latest_instance_date(rule, known)
        if latest is None:
            window = initial_window(rule, extension_months)
        else:
            start = next_occurrence(rule, latest)
            window = (start, start + relativedelta(months=extension_months))

        batch = merge_instances(known, expand(rule, window, counterparties))
        if not batch:
            break
        known.extend(batch)
        added.extend(batch)

    if added:
        logger.debug(
            "Rule %s extended by %d instances through %s",
            rule.id,
            len(added),
            added[-1].instance_date,
        )
    return added


def extend_all(
    rules: Iterable[RecurringRule],
    events: Iterable[FinancialEvent],
    counterparties: Counterparties = (),
    today: Optional[date] = None,
    settings: Optional[Settings] = None,
) -> EditPlan:
    """Plan the creation of every missing instance across ``rules``.

    Returns an empty plan when nothing is due for extension. A rule that
    cannot be expanded, or whose counterparty has an impossible billing
    cycle, is logged and skipped; the other rules are still extended.
    """

    settings = settings or Settings()
    events = list(events)
    if not isinstance(counterparties, Mapping):
        counterparties = {c.id: c for c in counterparties}

    plan = EditPlan()
    for rule in rules:
        try:
            added = extend(
                rule,
                events,
                counterparties,
                today=today,
                threshold_months=settings.extension_threshold_months,
                extension_months=settings.extension_months,
            )
        except SchedulingError as exc:
            logger.warning("Rule %s was not extended: %s", rule.id, exc)
            continue
        for event in added:
            plan.create(FINANCIAL_EVENTS, event.to_dict())

    if not plan.is_empty():
        logger.info("Maintenance pass planned %d new recurring instances", len(plan))
    return plan
