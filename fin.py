"""Command-line menu for the project calendar and recurring cash schedule."""

from collections import defaultdict
from datetime import date
from decimal import Decimal, InvalidOperation
import logging
from typing import List, Optional

from cash_flow import max_safe_payment, projected_min_balance
from config import load_settings
from extension import extend_all
from interval_packer import MONTH, calendar_window, layout
from ledger import LedgerStore
from models import FinancialEvent, parse_date
from split_update import EditScope, apply_edit, delete_rule


# ---------------------------------------------------------------------------
# Calendar


def show_calendar(ledger: LedgerStore, settings=None) -> None:
    """Print the work-item rows and cash totals for one month."""
    settings = settings or load_settings()
    month_str = input("Month to show (YYYY-MM) [this month]: ").strip()
    try:
        anchor = parse_date(f"{month_str}-01") if month_str else date.today().replace(day=1)
    except ValueError:
        print("Invalid month.")
        return

    window = calendar_window(anchor, MONTH, settings.week_starts_on)
    result = layout(
        ledger.work_items(),
        window,
        ledger.events(),
        max_rows=settings.max_visible_rows,
        period_month=(anchor.year, anchor.month),
    )

    print(f"\n--- {anchor.strftime('%B %Y')} ---")
    for day in result.days:
        if not day.in_period:
            continue
        key = day.day_key
        summary = result.summaries[key]
        slots = result.visible_slots(key)
        if not slots and not summary.events:
            continue
        marker = " (today)" if day.is_today else ""
        print(f"{key}{marker}: in=${summary.inflow:.2f} out=${summary.outflow:.2f}")
        for slot in slots:
            edge = "[" if slot.is_range_start else "-"
            edge += "]" if slot.is_range_end else "-"
            print(f"  row {slot.row_index} {edge} {slot.item.title}")
        more = result.more_count(key)
        if more:
            print(f"  +{more} more")
    placed = [row for row in result.rows_by_item.values() if row is not None]
    print(f"Rows used: {result.max_row_index + 1 if placed else 0}")


# ---------------------------------------------------------------------------
# Recurring rules


def run_maintenance(ledger: LedgerStore, today: Optional[date] = None, settings=None) -> int:
    """Materialize any recurring instances that are due for extension."""
    settings = settings or load_settings()
    try:
        plan = extend_all(
            ledger.rules(), ledger.events(), ledger.counterparties(), today=today, settings=settings
        )
        ledger.apply(plan)
    except ValueError as exc:
        print(f"Warning: {exc}")
        return 0
    print(f"Added {len(plan)} recurring instances.")
    return len(plan)


def _open_instances(ledger: LedgerStore) -> List[FinancialEvent]:
    events = [e for e in ledger.events() if e.recurring_rule_id and not e.settled]
    events.sort(key=lambda e: (e.instance_date, e.recurring_rule_id))
    return events


def _pick(items: list, prompt: str):
    idx = input(prompt).strip()
    if idx.isdigit() and 1 <= int(idx) <= len(items):
        return items[int(idx) - 1]
    return None


def edit_instance(ledger: LedgerStore) -> None:
    """Change one recurring instance, or it and every later one."""
    instances = _open_instances(ledger)
    print("\nOpen recurring instances:")
    for i, e in enumerate(instances, 1):
        flag = " (edited)" if e.detached else ""
        print(f"{i}. {e.instance_date} {e.memo} ${e.amount} due {e.display_date}{flag}")
    target = _pick(instances, "Number to edit: ")
    if target is None:
        return

    values = {}
    amount = input(f"Amount [{target.amount}]: ").strip()
    if amount:
        try:
            values["amount"] = Decimal(amount)
        except InvalidOperation:
            print("Invalid amount.")
            return
    memo = input(f"Memo [{target.memo}]: ").strip()
    if memo:
        values["memo"] = memo
    if not values:
        return

    choice = input("Apply to O)nly this one or F)uture ones too: ").strip().lower()
    scope = EditScope.THIS_AND_FUTURE if choice == "f" else EditScope.SINGLE_INSTANCE
    rule = next((r for r in ledger.rules() if r.id == target.recurring_rule_id), None)
    try:
        plan = apply_edit(target, values, scope, rule, ledger.events(), ledger.counterparties())
        ledger.apply(plan)
    except ValueError as exc:
        print(f"Warning: {exc}")
        return
    print(f"Updated {len(plan)} records.")


def delete_recurring(ledger: LedgerStore) -> None:
    """Delete a rule and its open instances."""
    rules = ledger.rules()
    print("\nRecurring rules:")
    for i, r in enumerate(rules, 1):
        state = "active" if r.is_active else "inactive"
        print(f"{i}. {r.title} ${r.base_amount} {r.frequency} ({r.direction}, {state})")
    rule = _pick(rules, "Number to delete: ")
    if rule is None:
        return
    plan = delete_rule(rule, ledger.events())
    try:
        ledger.apply(plan)
    except ValueError as exc:
        print(f"Warning: {exc}")
        return
    print(f"Deleted rule and {len(plan) - 1} open instances.")


# ---------------------------------------------------------------------------
# Cash forecast


def run_forecast(ledger: LedgerStore) -> None:
    """Show the lowest upcoming balance and how much is safe to spend today."""
    try:
        balance = Decimal(input("Enter current account balance: ").strip())
    except InvalidOperation:
        print("Invalid balance.")
        return

    today = date.today()
    events = ledger.events()
    low, negative = projected_min_balance(balance, events, start=today)
    safe = max_safe_payment(balance, events, start=today)

    by_month = defaultdict(lambda: Decimal("0"))
    for e in events:
        if not e.settled and e.display_date >= today:
            sign = 1 if e.direction == "inflow" else -1
            by_month[e.display_date.strftime("%Y-%m")] += sign * e.amount
    for month in sorted(by_month):
        print(f"{month}: net ${by_month[month]:.2f}")

    print(f"Lowest balance: ${low:.2f}")
    if negative:
        print(f"<<< LOW BALANCE: goes negative on {negative.isoformat()}")
    print(f"Safe to spend today: ${safe:.2f}")


# ---------------------------------------------------------------------------
# Menu


def main() -> None:
    """Display the main menu and handle user selections."""
    settings = load_settings()
    ledger = LedgerStore(settings.data_file)
    run_maintenance(ledger, settings=settings)
    while True:
        print("\n--- Schedule Menu ---")
        print("1. Show calendar")
        print("2. Extend recurring rules")
        print("3. Edit recurring instance")
        print("4. Delete recurring rule")
        print("5. Cash forecast")
        print("6. Quit")
        choice = input("Select an option: ").strip()
        if choice == "1":
            show_calendar(ledger, settings)
        elif choice == "2":
            run_maintenance(ledger, settings=settings)
        elif choice == "3":
            edit_instance(ledger)
        elif choice == "4":
            delete_recurring(ledger)
        elif choice == "5":
            run_forecast(ledger)
        elif choice == "6":
            break
        else:
            print("Invalid option.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    main()
