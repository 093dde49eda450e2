"""Money tied to work items: expected revenue, rescheduling and profit.

Creating a work item also plans its estimated revenue, accrued on the day
the work is delivered and due according to the counterparty's billing cycle.
Moving the item moves that revenue with it, except where the event is
already settled or was edited by hand.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional

from edit_plan import FINANCIAL_EVENTS, WORK_ITEMS, EditPlan, new_id
from models import INFLOW, OUTFLOW, Counterparty, FinancialEvent, WorkItem, parse_date, to_decimal
from settlement import Counterparties, due_date_for, find_counterparty

logger = logging.getLogger(__name__)

HEALTHY_MARGIN = Decimal("30")
WARNING_MARGIN = Decimal("10")


def create_work_item_plan(
    item: WorkItem,
    estimated_amount: Decimal | float | str,
    counterparty: Counterparty,
) -> EditPlan:
    """Plan a new work item and the revenue event it is expected to earn.

    ``InvalidCycleParameters`` from the counterparty's billing cycle
    propagates and no plan is returned.
    """

    if item.id is None:
        item = replace(item, id=new_id())
    due = due_date_for(INFLOW, item.end_date, counterparty)

    event = FinancialEvent(
        id=None,
        direction=INFLOW,
        amount=to_decimal(estimated_amount),
        accrual_date=item.end_date,
        due_date=due,
        work_item_id=item.id,
        counterparty_id=counterparty.id,
        memo=f"[Work] {item.title}",
    )
    plan = EditPlan()
    plan.create(WORK_ITEMS, item.to_dict(), record_id=item.id)
    plan.create(FINANCIAL_EVENTS, event.to_dict())
    logger.info("Planned work item %s with revenue due %s", item.id, due)
    return plan


@dataclass
class RescheduleResult:
    plan: EditPlan
    updated_count: int = 0
    skipped_count: int = 0
    warnings: List[str] = field(default_factory=list)


def reschedule_work_item(
    item: WorkItem,
    new_start: date | str,
    new_end: date | str,
    events: Iterable[FinancialEvent],
    counterparties: Counterparties = (),
) -> RescheduleResult:
    """Plan moving ``item`` to new dates and re-deriving its revenue dates.

    Linked inflow events accrue on the new end date and get a fresh due
    date. Settled events, detached events and events without a known
    counterparty are skipped with a warning each.
    """

    new_start = parse_date(new_start)
    new_end = parse_date(new_end)
    if new_start > new_end:
        raise ValueError(f"Work item {item.id} cannot end {new_end} before it starts {new_start}")

    pending = []
    warnings: List[str] = []
    for event in events:
        if event.work_item_id != item.id or event.direction != INFLOW:
            continue
        label = event.memo or "expected payment"
        if event.settled:
            warnings.append(f"'{label}' is already settled; its dates were not changed")
            continue
        if event.detached:
            warnings.append(f"'{label}' was edited by hand; its dates were not changed")
            continue
        counterparty = find_counterparty(counterparties, event.counterparty_id)
        if counterparty is None:
            warnings.append(f"'{label}' has no known counterparty; its due date cannot be computed")
            continue
        pending.append(
            (event.id, {"accrual_date": new_end, "due_date": due_date_for(INFLOW, new_end, counterparty)})
        )

    plan = EditPlan()
    plan.update(WORK_ITEMS, item.id, {"start_date": new_start, "end_date": new_end})
    for event_id, fields in pending:
        plan.update(FINANCIAL_EVENTS, event_id, fields)

    for message in warnings:
        logger.warning("Reschedule of %s: %s", item.id, message)
    return RescheduleResult(
        plan=plan,
        updated_count=len(pending),
        skipped_count=len(warnings),
        warnings=warnings,
    )


@dataclass
class WorkItemFinancials:
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    gross_profit: Decimal = Decimal("0")
    profit_margin: Decimal = Decimal("0")
    income_events: List[FinancialEvent] = field(default_factory=list)
    expense_events: List[FinancialEvent] = field(default_factory=list)

    @property
    def event_count(self) -> int:
        return len(self.income_events) + len(self.expense_events)

    @property
    def is_deficit(self) -> bool:
        return self.gross_profit < 0


def profit_margin(gross_profit: Decimal, income: Decimal) -> Decimal:
    """Return gross profit as a percentage of income, one decimal place."""

    if income == 0:
        return Decimal("0")
    return (gross_profit / income * Decimal("100")).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)


def work_item_financials(
    item: Optional[WorkItem], events: Iterable[FinancialEvent]
) -> WorkItemFinancials:
    """Profit and loss of ``item`` from the events linked to it."""

    if item is None:
        return WorkItemFinancials()

    linked = [e for e in events if e.work_item_id == item.id]
    income = [e for e in linked if e.direction == INFLOW]
    expense = [e for e in linked if e.direction == OUTFLOW]
    total_income = sum((e.amount for e in income), Decimal("0"))
    total_expense = sum((e.amount for e in expense), Decimal("0"))
    gross = total_income - total_expense
    return WorkItemFinancials(
        total_income=total_income,
        total_expense=total_expense,
        gross_profit=gross,
        profit_margin=profit_margin(gross, total_income),
        income_events=income,
        expense_events=expense,
    )


def health_status(margin: Decimal | float) -> str:
    """Classify a profit margin as ``healthy``, ``warning`` or ``danger``."""

    margin = to_decimal(margin)
    if margin >= HEALTHY_MARGIN:
        return "healthy"
    if margin >= WARNING_MARGIN:
        return "warning"
    return "danger"
