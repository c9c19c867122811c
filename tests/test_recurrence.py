from datetime import date
from decimal import Decimal

from models import IntervalUnit, MonthDayPolicy
from recurrence import calculate_next_date, resolve_occurrences, scheduled_dates
from schemas import BillOverrideIn, ScheduledBillIn


def _bill(policy: MonthDayPolicy, **kwargs) -> ScheduledBillIn:
    return ScheduledBillIn(
        id=1,
        name="Rent",
        amount=Decimal("-1200"),
        next_due_date=kwargs.pop("next_due_date", date(2024, 1, 31)),
        interval_unit=kwargs.pop("interval_unit", IntervalUnit.month),
        month_day_policy=policy,
        **kwargs,
    )


def test_calculate_next_date_snap_to_end():
    bill = _bill(MonthDayPolicy.snap_to_end)
    assert calculate_next_date(bill, date(2024, 1, 31)) == date(2024, 2, 29)


def test_calculate_next_date_keeps_anchor_day_after_short_month():
    bill = _bill(MonthDayPolicy.snap_to_end)
    assert calculate_next_date(bill, date(2024, 2, 29)) == date(2024, 3, 31)


def test_calculate_next_date_skip_policy():
    bill = _bill(MonthDayPolicy.skip)
    assert calculate_next_date(bill, date(2024, 1, 31)) == date(2024, 3, 31)


def test_calculate_next_date_carry_forward_uses_current_day():
    bill = _bill(MonthDayPolicy.carry_forward)
    assert calculate_next_date(bill, date(2024, 2, 29)) == date(2024, 3, 29)


def test_weekly_and_yearly_steps():
    weekly = _bill(MonthDayPolicy.snap_to_end, interval_unit=IntervalUnit.week, interval_count=2)
    assert calculate_next_date(weekly, date(2024, 1, 31)) == date(2024, 2, 14)
    yearly = _bill(MonthDayPolicy.snap_to_end, interval_unit=IntervalUnit.year)
    assert calculate_next_date(yearly, date(2024, 1, 31)) == date(2025, 1, 31)


def test_scheduled_dates_stop_at_end_date():
    bill = _bill(
        MonthDayPolicy.snap_to_end,
        next_due_date=date(2024, 1, 15),
        end_date=date(2024, 3, 1),
    )
    assert scheduled_dates(bill, until=date(2024, 6, 30)) == [date(2024, 1, 15), date(2024, 2, 15)]


def test_overrides_move_reprice_or_skip_occurrences():
    bill = _bill(
        MonthDayPolicy.snap_to_end,
        next_due_date=date(2024, 1, 15),
        overrides=(
            BillOverrideIn(original_date=date(2024, 1, 15), amount=Decimal("-1100")),
            BillOverrideIn(original_date=date(2024, 2, 15), override_date=date(2024, 2, 20)),
            BillOverrideIn(original_date=date(2024, 3, 15), is_skipped=True),
        ),
    )
    occurrences = resolve_occurrences(bill, until=date(2024, 4, 30))

    assert [(o.due_date, o.amount) for o in occurrences] == [
        (date(2024, 1, 15), Decimal("-1100")),
        (date(2024, 2, 20), Decimal("-1200")),
        (date(2024, 4, 15), Decimal("-1200")),
    ]
    assert [o.is_overridden for o in occurrences] == [True, True, False]
    assert occurrences[1].original_date == date(2024, 2, 15)


def test_inactive_bill_has_no_occurrences():
    bill = _bill(MonthDayPolicy.snap_to_end, is_active=False)
    assert resolve_occurrences(bill, until=date(2024, 12, 31)) == []


def test_later_occurrence_pulled_before_horizon_by_override():
    bill = _bill(
        MonthDayPolicy.snap_to_end,
        next_due_date=date(2024, 1, 15),
        overrides=(
            BillOverrideIn(original_date=date(2024, 3, 15), override_date=date(2024, 2, 28)),
            BillOverrideIn(original_date=date(2024, 4, 15), override_date=date(2024, 4, 20)),
        ),
    )
    occurrences = resolve_occurrences(bill, until=date(2024, 2, 28))

    assert [(o.original_date, o.due_date) for o in occurrences] == [
        (date(2024, 1, 15), date(2024, 1, 15)),
        (date(2024, 2, 15), date(2024, 2, 15)),
        (date(2024, 3, 15), date(2024, 2, 28)),
    ]
