import os
import sys
from datetime import date
from pathlib import Path

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(Path(__file__).resolve().parent, "..")))

from errors import InvalidCycleParameters, SchedulingError
from models import INFLOW, OUTFLOW, Counterparty
from settlement import (
    END_OF_MONTH,
    compute_due_date,
    due_date_for,
    find_counterparty,
    format_payment_cycle,
)


def test_end_of_month_next_month_non_leap():
    assert compute_due_date(date(2023, 1, 31), 31, 1, 31) == date(2023, 2, 28)


def test_end_of_month_next_month_leap_year():
    assert compute_due_date(date(2024, 1, 31), 31, 1, 31) == date(2024, 2, 29)


def test_completion_after_closing_rolls_to_next_cycle():
    # closes on the 20th, paid the 10th of the following month
    assert compute_due_date(date(2024, 3, 25), 20, 1, 10) == date(2024, 5, 10)
    assert compute_due_date(date(2024, 3, 20), 20, 1, 10) == date(2024, 4, 10)
    assert compute_due_date(date(2024, 3, 1), 20, 1, 10) == date(2024, 4, 10)


def test_same_month_payment():
    assert compute_due_date(date(2024, 6, 3), 15, 0, 25) == date(2024, 6, 25)


def test_closing_day_beyond_month_end_is_clamped():
    # February has no 30th; the cycle closes on the 29th in 2024
    assert compute_due_date(date(2024, 2, 29), 30, 1, 5) == date(2024, 3, 5)


def test_payment_day_clamped_in_short_month():
    assert compute_due_date(date(2024, 3, 10), 31, 1, 31) == date(2024, 4, 30)
    assert compute_due_date(date(2024, 3, 10), 31, 1, 30) == date(2024, 4, 30)
    assert compute_due_date(date(2023, 1, 5), 31, 1, 30) == date(2023, 2, 28)


def test_legacy_end_of_month_value():
    assert compute_due_date(date(2023, 1, 31), 99, 1, 99) == date(2023, 2, 28)
    assert compute_due_date(date(2023, 1, 31), 99, 1, 99) == compute_due_date(
        date(2023, 1, 31), END_OF_MONTH, 1, END_OF_MONTH
    )


def test_offset_crosses_year_boundary():
    assert compute_due_date(date(2024, 11, 15), 31, 2, 31) == date(2025, 1, 31)
    assert compute_due_date(date(2024, 12, 31), 31, 1, 31) == date(2025, 1, 31)


def test_due_date_never_before_completion():
    for day in range(1, 32):
        completion = date(2024, 1, day)
        for closing in (1, 10, 15, 28, 31):
            due = compute_due_date(completion, closing, 1, 31)
            assert due >= completion


@pytest.mark.parametrize(
    "args",
    [
        (0, 1, 31),
        (32, 1, 31),
        (31, 1, 0),
        (31, -1, 31),
        (31, 1.5, 31),
        ("31", 1, 31),
        (True, 1, 31),
    ],
)
def test_invalid_parameters_raise(args):
    with pytest.raises(InvalidCycleParameters):
        compute_due_date(date(2024, 1, 15), *args)


def test_invalid_completion_date_raises():
    with pytest.raises(InvalidCycleParameters):
        compute_due_date("2024-01-15", 31, 1, 31)


def test_cycle_errors_are_value_errors():
    with pytest.raises(ValueError):
        compute_due_date(date(2024, 1, 15), 40, 1, 31)
    assert issubclass(InvalidCycleParameters, SchedulingError)


def test_result_past_max_date_raises():
    with pytest.raises(InvalidCycleParameters):
        compute_due_date(date(9999, 12, 31), 1, 1, 5)


def test_format_payment_cycle():
    assert format_payment_cycle(31, 1, 31) == "closes end of month, paid end of next month"
    assert format_payment_cycle(20, 1, 10) == "closes on the 20th, paid on the 10th of next month"
    assert format_payment_cycle(1, 0, 22) == "closes on the 1st, paid on the 22nd of this month"
    assert format_payment_cycle(99, 3, 3) == "closes end of month, paid on the 3rd of 3 months later"


def test_due_date_for_follows_counterparty_only_for_inflows():
    client = Counterparty("c1", "Client", closing_day=31, payment_month_offset=1, payment_day=31)
    accrued = date(2024, 1, 31)
    assert due_date_for(INFLOW, accrued, client) == date(2024, 2, 29)
    assert due_date_for(OUTFLOW, accrued, client) == accrued
    assert due_date_for(INFLOW, accrued, None) == accrued


def test_find_counterparty_accepts_mapping_or_list():
    client = Counterparty("c1", "Client", 31, 1, 31)
    assert find_counterparty({"c1": client}, "c1") is client
    assert find_counterparty([client], "c1") is client
    assert find_counterparty([client], "missing") is None
    assert find_counterparty([client], None) is None
