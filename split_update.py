"""Edits to recurring instances: "this one only" or "this and all future".

Editing a single instance detaches it from its rule so later series edits
leave it alone. A series edit rewrites the rule and every later instance
that is neither settled nor detached; settled instances are history and are
never part of a series edit. Nothing here writes to storage; every function
returns an ``EditPlan`` and raises before building one if the edit is not
allowed.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from edit_plan import FINANCIAL_EVENTS, RECURRING_RULES, EditPlan
from errors import NotARecurringInstance, ScopeNotPermitted, SchedulingError
from models import DIRECTIONS, FinancialEvent, RecurringRule, parse_date, to_decimal
from settlement import Counterparties, due_date_for, find_counterparty

logger = logging.getLogger(__name__)


class EditScope(str, Enum):
    SINGLE_INSTANCE = "single_instance"
    THIS_AND_FUTURE = "this_and_future"


# fields an instance edit may carry
INSTANCE_FIELDS = (
    "amount",
    "direction",
    "accrual_date",
    "due_date",
    "settled",
    "counterparty_id",
    "work_item_id",
    "memo",
)
# the subset that can be pushed through a whole series
SERIES_FIELDS = ("amount", "direction", "counterparty_id", "memo")
RULE_FIELD_NAMES = {"amount": "base_amount"}


def _normalize(values: Dict[str, Any]) -> Dict[str, Any]:
    unknown = sorted(set(values) - set(INSTANCE_FIELDS))
    if unknown:
        raise SchedulingError(f"Fields cannot be edited: {', '.join(unknown)}")

    out = dict(values)
    if "amount" in out:
        out["amount"] = to_decimal(out["amount"])
    if "direction" in out and out["direction"] not in DIRECTIONS:
        raise SchedulingError(f"Unknown direction: {out['direction']}")
    for key in ("accrual_date", "due_date"):
        if out.get(key) is not None:
            out[key] = parse_date(out[key])
    if "settled" in out:
        out["settled"] = bool(out["settled"])
    return out


def _edit_single(target: FinancialEvent, values: Dict[str, Any]) -> EditPlan:
    plan = EditPlan()
    plan.update(FINANCIAL_EVENTS, target.id, {**values, "detached": True})
    logger.debug("Detached instance %s of rule %s", target.id, target.recurring_rule_id)
    return plan


def _edit_series(
    target: FinancialEvent,
    values: Dict[str, Any],
    rule: RecurringRule,
    instances: Iterable[FinancialEvent],
    counterparties: Counterparties,
) -> EditPlan:
    if target.settled:
        raise ScopeNotPermitted(
            f"Instance {target.id} is settled and cannot anchor a series edit"
        )
    not_series = sorted(set(values) - set(SERIES_FIELDS))
    if not_series:
        raise ScopeNotPermitted(
            f"Fields cannot be changed across a series: {', '.join(not_series)}"
        )
    if rule.id != target.recurring_rule_id:
        raise SchedulingError(f"Instance {target.id} does not belong to rule {rule.id}")

    rule_changes = {}
    for key, value in values.items():
        rule_key = RULE_FIELD_NAMES.get(key, key)
        if getattr(rule, rule_key) != value:
            rule_changes[rule_key] = value

    rederive_due = "counterparty_id" in rule_changes or "direction" in rule_changes
    direction = values.get("direction", rule.direction)
    counterparty_id = values.get("counterparty_id", rule.counterparty_id)
    counterparty = find_counterparty(counterparties, counterparty_id)
    if rederive_due and counterparty_id is not None and counterparty is None:
        raise SchedulingError(f"Counterparty {counterparty_id} was not supplied")

    candidates: List[FinancialEvent] = [
        e for e in instances if e.recurring_rule_id == rule.id and e.id != target.id
    ]
    candidates.append(target)
    affected = sorted(
        (
            e
            for e in candidates
            if e.instance_date >= target.instance_date and not e.settled and not e.detached
        ),
        key=lambda e: e.instance_date,
    )

    # due dates are all computed before the first operation is recorded
    updates = []
    for event in affected:
        fields = dict(values)
        if rederive_due:
            fields["due_date"] = due_date_for(direction, event.accrual_date, counterparty)
        updates.append((event.id, fields))

    plan = EditPlan()
    if rule_changes:
        plan.update(RECURRING_RULES, rule.id, rule_changes)
    for event_id, fields in updates:
        plan.update(FINANCIAL_EVENTS, event_id, fields)
    logger.debug(
        "Series edit of rule %s from %s touches %d instances",
        rule.id,
        target.instance_date,
        len(updates),
    )
    return plan


def apply_edit(
    target: FinancialEvent,
    new_values: Dict[str, Any],
    scope: EditScope | str,
    rule: Optional[RecurringRule] = None,
    instances: Iterable[FinancialEvent] = (),
    counterparties: Counterparties = (),
) -> EditPlan:
    """Plan an edit of a recurring instance.

    Parameters
    ----------
    target:
        The instance the user edited.
    new_values:
        Field values to write. Series edits accept only ``amount``,
        ``direction``, ``counterparty_id`` and ``memo``.
    scope:
        ``single_instance`` or ``this_and_future``.
    rule, instances, counterparties:
        Current state of the rule, its materialized instances and the
        counterparties needed to re-derive due dates. Only series edits
        read them.

    Raises
    ------
    NotARecurringInstance
        If ``target`` is a one-off event.
    ScopeNotPermitted
        If a series edit is anchored on a settled instance or carries fields
        that only make sense for one instance.
    """

    scope = EditScope(scope)
    if target.recurring_rule_id is None:
        raise NotARecurringInstance(f"Event {target.id} is not an instance of a recurring rule")
    if target.id is None:
        raise SchedulingError("Cannot edit an instance that has not been stored")
    values = _normalize(new_values)

    if scope is EditScope.SINGLE_INSTANCE:
        return _edit_single(target, values)
    if rule is None:
        raise SchedulingError("A series edit needs the instance's rule")
    return _edit_series(target, values, rule, instances, counterparties)


def delete_rule(rule: RecurringRule, instances: Iterable[FinancialEvent]) -> EditPlan:
    """Plan deletion of ``rule`` and its still-open instances.

    Settled and detached instances are kept as independent history.
    """

    plan = EditPlan()
    plan.delete(RECURRING_RULES, rule.id)
    kept = 0
    for event in instances:
        if event.recurring_rule_id != rule.id:
            continue
        if event.settled or event.detached:
            kept += 1
            continue
        plan.delete(FINANCIAL_EVENTS, event.id)
    logger.debug("Deleting rule %s removes %d instances, keeps %d", rule.id, len(plan) - 1, kept)
    return plan
