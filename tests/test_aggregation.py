from datetime import date
from decimal import Decimal

from aggregation import (
    actual_income,
    aggregate_spending,
    signed_totals,
    total_by_category_group,
    total_by_flex_group,
)
from models import CategoryGroup, TransactionStatus
from periods import Period
from schemas import BudgetCategoryIn, LedgerTransactionIn, TransactionSplitIn

JANUARY = Period("2026-01", date(2026, 1, 1), date(2026, 1, 31))


def _categories() -> list[BudgetCategoryIn]:
    return [
        BudgetCategoryIn(id=1, budget_id=1, category_id=10, name="Groceries", amount=Decimal("500")),
        BudgetCategoryIn(id=2, budget_id=1, category_id=20, name="Salary", amount=Decimal("0"), is_income=True),
        BudgetCategoryIn(
            id=3,
            budget_id=1,
            name="Savings transfer",
            is_transfer=True,
            transfer_account_id=7,
            amount=Decimal("200"),
        ),
    ]


def _txn(day: int, amount: str, **kwargs) -> LedgerTransactionIn:
    return LedgerTransactionIn(date=date(2026, 1, day), amount=Decimal(amount), **kwargs)


def test_expense_spend_nets_refunds_and_splits():
    transactions = [
        _txn(3, "-120", category_id=10),
        _txn(5, "20", category_id=10),
        _txn(
            8,
            "-100",
            splits=(
                TransactionSplitIn(category_id=10, amount=Decimal("-60")),
                TransactionSplitIn(category_id=30, amount=Decimal("-40")),
            ),
        ),
    ]
    actuals = aggregate_spending(JANUARY, transactions, _categories())
    assert actuals[1] == Decimal("160")


def test_unmatched_void_excluded_and_out_of_window_are_ignored():
    transactions = [
        _txn(3, "-50", category_id=99),
        _txn(4, "-300", category_id=10, status=TransactionStatus.void),
        _txn(6, "-40", category_id=10, account_id=5),
        LedgerTransactionIn(date=date(2026, 2, 1), amount=Decimal("-75"), category_id=10),
    ]
    actuals = aggregate_spending(
        JANUARY, transactions, _categories(), excluded_account_ids=[5]
    )
    assert actuals == {1: Decimal("0"), 2: Decimal("0"), 3: Decimal("0")}


def test_refunds_never_push_spend_below_zero():
    actuals = aggregate_spending(JANUARY, [_txn(3, "45", category_id=10)], _categories())
    assert actuals[1] == Decimal("0")


def test_income_keeps_raw_signed_sum():
    transactions = [_txn(1, "3000", category_id=20), _txn(15, "-100", category_id=20)]
    actuals = aggregate_spending(JANUARY, transactions, _categories())
    assert actuals[2] == Decimal("2900")
    assert actual_income(_categories(), actuals) == Decimal("2900")


def test_transfers_count_only_outflows_to_flagged_category():
    transactions = [
        _txn(2, "-150", is_transfer=True, transfer_account_id=7),
        _txn(9, "150", is_transfer=True, transfer_account_id=7),
        _txn(10, "-80", is_transfer=True, transfer_account_id=8),
        # A transfer that also carries a category never hits the category.
        _txn(11, "-25", is_transfer=True, transfer_account_id=7, category_id=10),
    ]
    totals = signed_totals(JANUARY, transactions, _categories())
    assert totals[3] == Decimal("-175")
    assert totals[1] == Decimal("0")
    assert aggregate_spending(JANUARY, transactions, _categories())[3] == Decimal("175")


def test_group_and_flex_totals_skip_income():
    categories = [
        BudgetCategoryIn(id=1, budget_id=1, category_id=10, amount=Decimal("400"),
                         category_group=CategoryGroup.need, flex_group="Home"),
        BudgetCategoryIn(id=2, budget_id=1, category_id=11, amount=Decimal("100"),
                         category_group=CategoryGroup.want, flex_group=" Home "),
        BudgetCategoryIn(id=3, budget_id=1, category_id=20, amount=Decimal("0"), is_income=True,
                         category_group=CategoryGroup.need, flex_group="Home"),
        BudgetCategoryIn(id=4, budget_id=1, category_id=12, amount=Decimal("50")),
    ]
    actuals = {1: Decimal("300"), 2: Decimal("80"), 3: Decimal("5000"), 4: Decimal("10")}

    assert total_by_flex_group(categories, actuals) == {"Home": Decimal("380")}
    groups = total_by_category_group(categories, actuals)
    assert groups[CategoryGroup.need] == Decimal("300")
    assert groups[CategoryGroup.want] == Decimal("80")
    assert groups[CategoryGroup.saving] == Decimal("0")
