import os
import sys
from datetime import date
from pathlib import Path
from types import MappingProxyType

sys.path.insert(0, os.path.abspath(os.path.join(Path(__file__).resolve().parent, "..")))

from config import Settings
from edit_plan import FINANCIAL_EVENTS
from extension import extend, extend_all, latest_instance_date, needs_extension
from models import INFLOW, OUTFLOW, Counterparty, FinancialEvent, RecurringRule
from recurrence import expand


def _rule(**overrides):
    values = dict(
        id="subs",
        title="Software subscription",
        base_amount="1200",
        direction=OUTFLOW,
        frequency="monthly",
        day_of_period=10,
        start_date=date(2024, 1, 10),
    )
    values.update(overrides)
    return RecurringRule(**values)


def _stored(events, prefix="e"):
    for i, event in enumerate(events):
        event.id = f"{prefix}{i}"
    return events


def test_rule_close_to_horizon_needs_extension():
    rule = _rule()
    existing = expand(rule, (date(2024, 1, 1), date(2024, 6, 30)))
    assert needs_extension(rule, existing, today=date(2024, 3, 1))


def test_rule_far_ahead_does_not_need_extension():
    rule = _rule()
    existing = expand(rule, (date(2024, 1, 1), date(2025, 6, 30)))
    assert not needs_extension(rule, existing, today=date(2024, 3, 1))


def test_inactive_rule_never_needs_extension():
    rule = _rule(is_active=False)
    assert not needs_extension(rule, [], today=date(2024, 3, 1))
    assert extend(rule, [], today=date(2024, 3, 1)) == []


def test_ended_rule_is_not_extended():
    rule = _rule(end_date=date(2024, 4, 30))
    existing = expand(rule, (date(2024, 1, 1), date(2024, 12, 31)))
    assert latest_instance_date(rule, existing) == date(2024, 4, 10)
    assert not needs_extension(rule, existing, today=date(2024, 3, 1))
    assert extend(rule, existing, today=date(2024, 3, 1)) == []


def test_rule_without_instances_is_materialized():
    rule = _rule()
    added = extend(rule, [], today=date(2024, 1, 1), threshold_months=6, extension_months=12)
    assert added[0].instance_date == date(2024, 1, 10)
    assert added[-1].instance_date >= date(2024, 7, 1)


def test_extension_continues_without_gaps_or_duplicates():
    rule = _rule()
    existing = expand(rule, (date(2024, 1, 1), date(2024, 6, 30)))
    added = extend(rule, existing, today=date(2024, 3, 1), threshold_months=6, extension_months=12)

    dates = [e.instance_date for e in existing + added]
    assert len(dates) == len(set(dates))
    assert added[0].instance_date == date(2024, 7, 10)
    assert dates == sorted(dates)
    assert not needs_extension(rule, existing + added, today=date(2024, 3, 1))


def test_extension_catches_up_in_one_call():
    rule = _rule()
    existing = expand(rule, (date(2024, 1, 1), date(2024, 2, 29)))
    added = extend(rule, existing, today=date(2026, 1, 1), threshold_months=6, extension_months=12)

    assert latest_instance_date(rule, existing + added) >= date(2026, 7, 1)
    months = [(e.instance_date.year, e.instance_date.month) for e in existing + added]
    assert len(months) == len(set(months))


def test_extension_keeps_end_of_month_alignment():
    rule = _rule(day_of_period=31, start_date=date(2024, 1, 31))
    existing = expand(rule, (date(2024, 1, 1), date(2024, 2, 29)))
    added = extend(rule, existing, today=date(2024, 1, 1), threshold_months=3, extension_months=2)
    assert [e.instance_date for e in added][:3] == [
        date(2024, 3, 31),
        date(2024, 4, 30),
        date(2024, 5, 31),
    ]


def test_extend_all_twice_adds_nothing_second_time():
    client = Counterparty("acme", "Acme", 31, 1, 31)
    rules = [
        _rule(),
        _rule(id="fee", direction=INFLOW, counterparty_id="acme", day_of_period=31),
        _rule(id="old", is_active=False),
    ]
    settings = Settings(extension_threshold_months=6, extension_months=12)
    today = date(2024, 1, 1)

    plan = extend_all(rules, [], [client], today=today, settings=settings)
    created = [
        FinancialEvent.from_dict(op.fields) for op in plan.for_collection(FINANCIAL_EVENTS)
    ]
    assert {e.recurring_rule_id for e in created} == {"subs", "fee"}
    fee = [e for e in created if e.recurring_rule_id == "fee"]
    assert fee[0].due_date == date(2024, 2, 29)

    again = extend_all(rules, _stored(created), {"acme": client}, today=today, settings=settings)
    assert again.is_empty()


def test_extend_all_ignores_events_of_other_rules():
    rule = _rule()
    other = expand(_rule(id="other"), (date(2024, 1, 1), date(2026, 12, 31)))
    plan = extend_all([rule], other, today=date(2024, 1, 1))
    assert not plan.is_empty()
    assert all(op.fields["recurring_rule_id"] == "subs" for op in plan)


def test_extend_all_accepts_any_mapping_of_counterparties():
    client = Counterparty("acme", "Acme", 31, 1, 31)
    rule = _rule(id="fee", direction=INFLOW, counterparty_id="acme", day_of_period=31)
    plan = extend_all([rule], [], MappingProxyType({"acme": client}), today=date(2024, 1, 1))

    first = FinancialEvent.from_dict(plan.for_collection(FINANCIAL_EVENTS)[0].fields)
    assert first.due_date == date(2024, 2, 29)


def test_extend_all_skips_only_the_broken_rule():
    broken = Counterparty("bad", "Bad", closing_day=0, payment_month_offset=1, payment_day=31)
    rules = [
        _rule(id="fee", direction=INFLOW, counterparty_id="bad"),
        _rule(id="bad-day", day_of_period=40),
        _rule(),
    ]
    plan = extend_all(rules, [], [broken], today=date(2024, 1, 1))

    assert not plan.is_empty()
    assert {op.fields["recurring_rule_id"] for op in plan} == {"subs"}
