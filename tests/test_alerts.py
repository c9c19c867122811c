from datetime import date
from decimal import Decimal

from alerts import AlertLevel, projected_overspend, threshold_crossings
from breakdown import assemble_breakdowns
from schemas import BudgetCategoryIn, BudgetIn


def _setup(actuals, **overrides):
    budget = BudgetIn(id=1, period_start=date(2026, 1, 1))
    categories = [
        BudgetCategoryIn(id=1, budget_id=1, category_id=11, name="Groceries", amount=Decimal("100"), **overrides),
        BudgetCategoryIn(id=2, budget_id=1, category_id=12, name="Salary", amount=Decimal("100"), is_income=True),
    ]
    return categories, assemble_breakdowns(budget, categories, actuals)


def test_below_warning_has_no_crossing():
    categories, breakdowns = _setup({1: Decimal("79")})
    assert threshold_crossings(categories, breakdowns) == []


def test_warning_critical_and_over_budget_levels():
    for spent, level, threshold in [
        ("80", AlertLevel.warning, 80),
        ("95", AlertLevel.critical, 95),
        ("100", AlertLevel.over_budget, 100),
        ("140", AlertLevel.over_budget, 100),
    ]:
        categories, breakdowns = _setup({1: Decimal(spent), 2: Decimal("500")})
        [crossing] = threshold_crossings(categories, breakdowns)
        assert crossing.level == level
        assert crossing.threshold == threshold
        assert crossing.budget_category_id == 1


def test_custom_thresholds_per_category():
    categories, breakdowns = _setup(
        {1: Decimal("60")}, alert_warn_percent=50, alert_critical_percent=60
    )
    [crossing] = threshold_crossings(categories, breakdowns)
    assert crossing.level == AlertLevel.critical


def test_projected_overspend_flags_fast_burn():
    _, breakdowns = _setup({1: Decimal("50"), 2: Decimal("5000")})
    [crossing] = projected_overspend(breakdowns, 10, 30)
    assert crossing.level == AlertLevel.projected_overspend
    assert crossing.percent_used == Decimal("150.00")


def test_projected_overspend_ignores_slow_burn_and_already_over():
    _, slow = _setup({1: Decimal("30")})
    assert projected_overspend(slow, 10, 30) == []
    _, over = _setup({1: Decimal("120")})
    assert projected_overspend(over, 10, 30) == []
    assert projected_overspend(slow, 0, 30) == []


def test_zero_thresholds_need_some_spending():
    categories, idle = _setup({}, alert_warn_percent=0, alert_critical_percent=0)
    assert threshold_crossings(categories, idle) == []

    categories, spent = _setup({1: Decimal("5")}, alert_warn_percent=0, alert_critical_percent=0)
    [crossing] = threshold_crossings(categories, spent)
    assert crossing.level == AlertLevel.critical
    assert crossing.threshold == 0
