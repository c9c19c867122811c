from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Optional

import pytest

from errors import (
    InconsistentCategoryReferenceError,
    InvalidPeriodStateError,
    NegativeAllocationError,
    PeriodNotFoundError,
    PriorPeriodNotClosedError,
)
from models import BudgetStrategy, BudgetType, PeriodStatus, RolloverType
from periods import Period
from schemas import BudgetCategoryIn, BudgetIn
from settlement import (
    PeriodCategoryRecord,
    PeriodLedger,
    cadence_boundary_reached,
    compute_rollover_out,
    effective_budget,
    _open_successor,
    open_period,
    project_periods,
    settle_period,
)

JANUARY = Period("2026-01", date(2026, 1, 1), date(2026, 1, 31))
FEBRUARY = Period("2026-02", date(2026, 2, 1), date(2026, 2, 28))
MARCH = Period("2026-03", date(2026, 3, 1), date(2026, 3, 31))


def _budget(**kwargs) -> BudgetIn:
    return BudgetIn(
        id=1,
        name="Household",
        budget_type=BudgetType.monthly,
        strategy=BudgetStrategy.rollover,
        period_start=date(2026, 1, 1),
        **kwargs,
    )


def _category(
    category_id: int,
    rollover_type: RolloverType = RolloverType.monthly,
    amount: str = "500",
    cap: Optional[str] = None,
    **kwargs,
) -> BudgetCategoryIn:
    return BudgetCategoryIn(
        id=category_id,
        budget_id=kwargs.pop("budget_id", 1),
        category_id=100 + category_id,
        amount=Decimal(amount),
        rollover_type=rollover_type,
        rollover_cap=Decimal(cap) if cap is not None else None,
        **kwargs,
    )


def _opened(categories, window=JANUARY, ledger=None) -> PeriodLedger:
    record, records = open_period(_budget(), categories, window, ledger=ledger)
    base = ledger if ledger is not None else PeriodLedger()
    return base.with_records(record, records)


def test_monthly_surplus_rolls_into_successor():
    categories = [_category(1)]
    ledger = _opened(categories)

    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("300")})

    assert result.period.status == PeriodStatus.closed
    assert result.categories[0].rollover_out == Decimal("200")
    assert result.next_period.period_start == FEBRUARY.start
    assert result.next_period.status == PeriodStatus.open
    successor = result.next_categories[0]
    assert successor.rollover_in == Decimal("200")
    assert successor.effective_budget == Decimal("700")


@pytest.mark.parametrize("spent", ["0", "250", "500", "900"])
def test_rollover_none_always_carries_zero(spent):
    categories = [_category(1, RolloverType.none)]
    ledger = _opened(categories)

    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal(spent)})

    assert result.categories[0].rollover_out == 0
    assert result.next_categories[0].rollover_in == 0


def test_overspending_never_carries_negative_balance():
    categories = [_category(1)]
    ledger = _opened(categories)
    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("650")})
    assert result.categories[0].rollover_out == 0


def test_cap_bounds_rollover_and_successor_matches_exactly():
    categories = [_category(1, cap="50")]
    ledger = _opened(categories)

    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("100")})

    out = result.categories[0].rollover_out
    assert out == Decimal("50")
    assert result.next_categories[0].rollover_in == out
    assert result.next_categories[0].effective_budget == Decimal("550")


def test_income_categories_never_roll_over():
    categories = [_category(1, is_income=True)]
    ledger = _opened(categories)
    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("3000")})
    assert result.categories[0].rollover_out == 0
    assert result.period.actual_income == Decimal("3000")
    assert result.period.actual_expenses == 0


def test_effective_budget_is_capped():
    assert effective_budget(Decimal("500"), Decimal("200")) == Decimal("700")
    assert effective_budget(Decimal("500"), Decimal("200"), Decimal("75")) == Decimal("575")


def test_cadence_boundaries():
    assert cadence_boundary_reached(RolloverType.monthly, FEBRUARY)
    assert not cadence_boundary_reached(RolloverType.quarterly, FEBRUARY)
    assert cadence_boundary_reached(RolloverType.quarterly, MARCH)
    assert not cadence_boundary_reached(RolloverType.annual, MARCH)
    december = Period("2026-12", date(2026, 12, 1), date(2026, 12, 31))
    assert cadence_boundary_reached(RolloverType.annual, december)
    assert not cadence_boundary_reached(RolloverType.none, december)


def test_off_boundary_period_keeps_accumulated_balance():
    category = _category(1, RolloverType.quarterly)
    record = PeriodCategoryRecord(
        budget_id=1,
        budget_category_id=1,
        period_start=FEBRUARY.start,
        budgeted_amount=Decimal("500"),
        rollover_in=Decimal("40"),
        effective_budget=Decimal("540"),
        actual_amount=Decimal("100"),
    )
    assert compute_rollover_out(record, category, FEBRUARY) == Decimal("40")
    march = replace(record, period_start=MARCH.start)
    assert compute_rollover_out(march, category, MARCH) == Decimal("440")


def test_rollover_is_quantized_to_four_places():
    categories = [_category(1, amount="100.12345")]
    ledger = _opened(categories)
    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("0")})
    assert result.categories[0].rollover_out == Decimal("100.1235")


def test_settling_closed_period_replays_stored_result():
    categories = [_category(1)]
    ledger = _opened(categories)
    first = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("300")})
    settled = ledger.apply(first)

    second = settle_period(_budget(), categories, settled, JANUARY.start, actuals={1: Decimal("0")})

    assert second.replayed
    assert second.rollover_out() == first.rollover_out()
    assert second.next_period == first.next_period


def test_apply_returns_new_ledger():
    categories = [_category(1)]
    ledger = _opened(categories)
    result = settle_period(_budget(), categories, ledger, JANUARY.start)
    settled = ledger.apply(result)

    assert ledger.period(1, JANUARY.start).status == PeriodStatus.open
    assert settled.period(1, JANUARY.start).status == PeriodStatus.closed
    assert settled.open_period(1).period_start == FEBRUARY.start
    assert len(settled) == 2


def test_stored_actuals_are_used_without_override():
    categories = [_category(1)]
    record, records = open_period(_budget(), categories, JANUARY)
    spent = [replace(r, actual_amount=Decimal("120")) for r in records]
    ledger = PeriodLedger([record], spent)

    result = settle_period(_budget(), categories, ledger, JANUARY.start)

    assert result.categories[0].rollover_out == Decimal("380")


def test_sequential_settlement_chains_balances():
    categories = [_category(1)]
    ledger = _opened(categories)
    ledger = ledger.apply(
        settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("300")})
    )
    result = settle_period(_budget(), categories, ledger, FEBRUARY.start, actuals={1: Decimal("600")})

    assert result.categories[0].rollover_in == Decimal("200")
    assert result.categories[0].rollover_out == Decimal("100")
    assert result.next_categories[0].rollover_in == Decimal("100")


def test_successor_opened_from_closed_predecessor_inherits_balance():
    categories = [_category(1)]
    ledger = _opened(categories)
    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("300")})
    closed_only = PeriodLedger([result.period], result.categories)

    _, records = open_period(_budget(), categories, FEBRUARY, ledger=closed_only)

    assert records[0].rollover_in == Decimal("200")


def test_prior_period_must_be_closed_first():
    categories = [_category(1)]
    ledger = _opened(categories)
    ledger = _opened(categories, FEBRUARY, ledger)

    with pytest.raises(PriorPeriodNotClosedError) as excinfo:
        settle_period(_budget(), categories, ledger, FEBRUARY.start)
    assert excinfo.value.prior_start == JANUARY.start
    assert ledger.period(1, FEBRUARY.start).status == PeriodStatus.open


def test_missing_period_raises():
    with pytest.raises(PeriodNotFoundError):
        settle_period(_budget(), [_category(1)], PeriodLedger(), JANUARY.start)


def test_projected_period_cannot_be_settled():
    categories = [_category(1)]
    record, records = open_period(_budget(), categories, JANUARY, status=PeriodStatus.projected)
    ledger = PeriodLedger([record], records)
    with pytest.raises(InvalidPeriodStateError):
        settle_period(_budget(), categories, ledger, JANUARY.start)


def test_projected_successor_is_promoted_with_balance():
    categories = [_category(1)]
    ledger = _opened(categories)
    for record, records in project_periods(_budget(), categories, ledger, after=JANUARY, count=2):
        assert record.status == PeriodStatus.projected
        ledger = ledger.with_records(record, records)

    result = settle_period(_budget(), categories, ledger, JANUARY.start, actuals={1: Decimal("450")})

    assert result.next_period.status == PeriodStatus.open
    assert result.next_categories[0].rollover_in == Decimal("50")
    assert result.next_categories[0].effective_budget == Decimal("550")


def test_project_periods_skips_existing_windows():
    categories = [_category(1)]
    ledger = _opened(categories, FEBRUARY)
    projected = project_periods(_budget(), categories, ledger, after=JANUARY, count=2)
    assert [record.period_start for record, _ in projected] == [MARCH.start]


def test_record_for_removed_category_is_inconsistent():
    ledger = _opened([_category(1), _category(2)])
    with pytest.raises(InconsistentCategoryReferenceError) as excinfo:
        settle_period(_budget(), [_category(1)], ledger, JANUARY.start)
    assert excinfo.value.budget_category_id == 2


def test_category_from_other_budget_is_inconsistent():
    with pytest.raises(InconsistentCategoryReferenceError):
        open_period(_budget(), [_category(1, budget_id=2)], JANUARY)


def test_negative_allocation_is_rejected():
    with pytest.raises(NegativeAllocationError) as excinfo:
        open_period(_budget(), [_category(1, amount="-5")], JANUARY)
    assert excinfo.value.amount == Decimal("-5")


def test_last_period_of_ended_budget_has_no_successor():
    budget = _budget(period_end=date(2026, 1, 15))
    window = Period("2026-01", date(2026, 1, 1), date(2026, 1, 15))
    categories = [_category(1)]
    record, records = open_period(budget, categories, window)
    ledger = PeriodLedger([record], records)

    result = settle_period(budget, categories, ledger, window.start, actuals={1: Decimal("100")})
    settled = ledger.apply(result)

    assert result.next_period is None
    assert result.next_categories == ()
    assert result.categories[0].rollover_out == Decimal("400")
    assert settled.period(1, window.start).status == PeriodStatus.closed
    assert settled.open_period(1) is None
    assert len(settled) == 1
    assert settle_period(budget, categories, settled, window.start).replayed


def test_no_successor_past_month_aligned_budget_end():
    budget = _budget(period_end=date(2026, 1, 31))
    categories = [_category(1)]
    record, records = open_period(budget, categories, JANUARY)
    ledger = PeriodLedger([record], records)

    result = settle_period(budget, categories, ledger, JANUARY.start)

    assert result.next_period is None
    assert project_periods(budget, categories, ledger.apply(result), after=JANUARY, count=3) == []


def test_successor_must_start_after_closed_period():
    categories = [_category(1)]
    by_id = {c.id: c for c in categories}
    with pytest.raises(InvalidPeriodStateError):
        _open_successor(_budget(), categories, by_id, PeriodLedger(), JANUARY, JANUARY, {})
