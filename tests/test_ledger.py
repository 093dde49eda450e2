import json
import os
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(Path(__file__).resolve().parent, "..")))

from edit_plan import FINANCIAL_EVENTS, RECURRING_RULES, WORK_ITEMS, EditPlan
from errors import PlanConflict
from extension import extend_all
from ledger import LedgerStore
from models import OUTFLOW, Counterparty, RecurringRule, WorkItem
from recurrence import materialize
from split_update import EditScope, apply_edit, delete_rule


def _rule():
    return RecurringRule(
        id=None,
        title="Rent",
        base_amount="800",
        direction=OUTFLOW,
        frequency="monthly",
        day_of_period=1,
        start_date=date(2024, 1, 1),
        end_date=date(2024, 6, 30),
    )


def test_missing_file_is_empty(tmp_path):
    ledger = LedgerStore(tmp_path / "ledger.json")
    assert ledger.work_items() == []
    assert ledger.events() == []
    assert ledger.counterparties() == {}


def test_apply_persists_and_reloads(tmp_path):
    path = tmp_path / "ledger.json"
    ledger = LedgerStore(path)
    created = ledger.apply(materialize(_rule()))

    assert len(created) == 7
    assert len(ledger.rules()) == 1
    assert len(ledger.events()) == 6

    with path.open() as f:
        raw = json.load(f)
    assert len(raw[FINANCIAL_EVENTS]) == 6
    assert not path.with_suffix(".tmp").exists()

    reopened = LedgerStore(path)
    assert sorted(e.instance_date for e in reopened.events()) == [
        date(2024, m, 1) for m in range(1, 7)
    ]
    assert reopened.events()[0].amount == Decimal("800")


def test_failed_plan_changes_nothing(tmp_path):
    path = tmp_path / "ledger.json"
    ledger = LedgerStore(path)
    ledger.apply(materialize(_rule()))
    before = path.read_text()

    plan = EditPlan()
    first = ledger.events()[0]
    plan.update(FINANCIAL_EVENTS, first.id, {"amount": "1"})
    plan.delete(FINANCIAL_EVENTS, "does-not-exist")
    with pytest.raises(PlanConflict):
        ledger.apply(plan)

    assert path.read_text() == before
    assert ledger.get(FINANCIAL_EVENTS, first.id).amount == Decimal("800")


def test_invalid_record_rejects_plan(tmp_path):
    ledger = LedgerStore(tmp_path / "ledger.json")
    plan = EditPlan()
    plan.create(WORK_ITEMS, {"id": "w1", "title": "Job", "start_date": "2024-03-10", "end_date": "2024-03-01"})
    with pytest.raises(PlanConflict):
        ledger.apply(plan)
    assert ledger.work_items() == []


def test_duplicate_create_conflicts(tmp_path):
    ledger = LedgerStore(tmp_path / "ledger.json")
    item = WorkItem(id="w1", title="Job", start_date=date(2024, 3, 1), end_date=date(2024, 3, 2))
    plan = EditPlan()
    plan.create(WORK_ITEMS, item.to_dict(), record_id=item.id)
    ledger.apply(plan)
    with pytest.raises(PlanConflict):
        ledger.apply(plan)
    assert len(ledger.work_items()) == 1


def test_empty_plan_does_not_write(tmp_path):
    path = tmp_path / "ledger.json"
    ledger = LedgerStore(path)
    assert ledger.apply(EditPlan()) == []
    assert not path.exists()


def test_series_edit_round_trip(tmp_path):
    ledger = LedgerStore(tmp_path / "ledger.json")
    ledger.apply(materialize(_rule()))
    rule = ledger.rules()[0]
    events = sorted(ledger.events(), key=lambda e: e.instance_date)

    ledger.apply(apply_edit(events[1], {"amount": "50"}, EditScope.SINGLE_INSTANCE, rule, events))
    events = sorted(ledger.events(), key=lambda e: e.instance_date)
    plan = apply_edit(events[0], {"amount": "900"}, EditScope.THIS_AND_FUTURE, rule, events)
    ledger.apply(plan)

    amounts = [e.amount for e in sorted(ledger.events(), key=lambda e: e.instance_date)]
    assert amounts == [Decimal("900"), Decimal("50")] + [Decimal("900")] * 4
    assert ledger.rules()[0].base_amount == Decimal("900")

    ledger.apply(delete_rule(ledger.rules()[0], ledger.events()))
    assert ledger.rules() == []
    survivors = ledger.events()
    assert [e.amount for e in survivors] == [Decimal("50")]
    assert survivors[0].detached


def test_maintenance_is_idempotent(tmp_path):
    ledger = LedgerStore(tmp_path / "ledger.json")
    ledger.add_counterparty(Counterparty("acme", "Acme", 31, 1, 31))
    plan = EditPlan()
    rule = RecurringRule(
        id="fee",
        title="Fee",
        base_amount="100",
        direction="inflow",
        frequency="monthly",
        day_of_period=15,
        start_date=date(2024, 1, 15),
        counterparty_id="acme",
    )
    plan.create(RECURRING_RULES, rule.to_dict(), record_id=rule.id)
    ledger.apply(plan)

    today = date(2024, 1, 1)
    first = extend_all(ledger.rules(), ledger.events(), ledger.counterparties(), today=today)
    ledger.apply(first)
    second = extend_all(ledger.rules(), ledger.events(), ledger.counterparties(), today=today)

    assert not first.is_empty()
    assert second.is_empty()
    keys = [e.series_key for e in ledger.events()]
    assert len(keys) == len(set(keys))
    assert ledger.events()[0].due_date is not None
