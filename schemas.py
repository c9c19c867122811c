import datetime as dt
from datetime import date
from decimal import Decimal
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from models import (
    BudgetStrategy,
    BudgetType,
    CategoryGroup,
    IntervalUnit,
    MonthDayPolicy,
    RolloverType,
    TransactionStatus,
)
from policy import DEFAULT_ALERT_CRITICAL_PERCENT, DEFAULT_ALERT_WARN_PERCENT


class BudgetConfigIn(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    fiscal_year_start: int = Field(default=1, ge=1, le=12)
    pay_period_days: Optional[int] = Field(default=None, gt=0)
    excluded_account_ids: tuple[int, ...] = ()
    alert_warn_percent: int = Field(default=DEFAULT_ALERT_WARN_PERCENT, ge=0, le=100)
    alert_critical_percent: int = Field(
        default=DEFAULT_ALERT_CRITICAL_PERCENT, ge=0, le=100
    )


class BudgetIn(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    user_id: int = 1
    name: str = ""
    # Unknown types are kept as raw strings so the period resolver can
    # reject them with InvalidBudgetTypeError.
    budget_type: Union[BudgetType, str] = BudgetType.monthly
    strategy: BudgetStrategy = BudgetStrategy.fixed
    period_start: date
    period_end: Optional[date] = None
    base_income: Optional[Decimal] = None
    income_linked: bool = False
    currency_code: str = Field(default="USD", min_length=3, max_length=3)
    is_active: bool = True
    config: BudgetConfigIn = Field(default_factory=BudgetConfigIn)

    @field_validator("budget_type", mode="before")
    @classmethod
    def _coerce_budget_type(cls, value: object) -> object:
        if isinstance(value, str) and not isinstance(value, BudgetType):
            try:
                return BudgetType(value.upper())
            except ValueError:
                return value
        return value

    @field_validator("currency_code")
    @classmethod
    def _upper_currency(cls, value: str) -> str:
        return value.upper()


class BudgetCategoryIn(BaseModel):
    """Snapshot of one category allocation inside a budget.

    ``amount`` is not bounded here; the engine rejects negative values and
    raises NegativeAllocationError.
    """

    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: int
    budget_id: int
    category_id: Optional[int] = None
    name: Optional[str] = Field(default=None, max_length=120)
    transfer_account_id: Optional[int] = None
    is_transfer: bool = False
    category_group: Optional[CategoryGroup] = None
    amount: Decimal
    is_income: bool = False
    rollover_type: RolloverType = RolloverType.none
    rollover_cap: Optional[Decimal] = Field(default=None, ge=0)
    flex_group: Optional[str] = Field(default=None, max_length=100)
    alert_warn_percent: int = Field(default=DEFAULT_ALERT_WARN_PERCENT, ge=0, le=100)
    alert_critical_percent: int = Field(
        default=DEFAULT_ALERT_CRITICAL_PERCENT, ge=0, le=100
    )
    sort_order: int = 0

    @field_validator("flex_group")
    @classmethod
    def _blank_flex_group(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def _transfer_xor_category(self) -> "BudgetCategoryIn":
        if self.is_transfer and self.category_id is not None:
            raise ValueError("A transfer allocation cannot also reference a category")
        if self.is_transfer and self.transfer_account_id is None:
            raise ValueError("A transfer allocation requires transfer_account_id")
        return self

    @property
    def carries_rollover(self) -> bool:
        return not self.is_income and self.rollover_type != RolloverType.none

    @property
    def pool(self) -> Optional[str]:
        if self.is_income:
            return None
        return self.flex_group

    @property
    def display_name(self) -> str:
        if self.name:
            return self.name
        return "Transfer" if self.is_transfer else "Uncategorized"


class TransactionSplitIn(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    category_id: Optional[int] = None
    amount: Decimal


class LedgerTransactionIn(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    date: dt.date
    amount: Decimal
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    is_transfer: bool = False
    transfer_account_id: Optional[int] = None
    status: TransactionStatus = TransactionStatus.cleared
    splits: tuple[TransactionSplitIn, ...] = ()


class BillOverrideIn(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    original_date: date
    override_date: Optional[date] = None
    amount: Optional[Decimal] = None
    is_skipped: bool = False


class ScheduledBillIn(BaseModel):
    model_config = ConfigDict(frozen=True, from_attributes=True)

    id: Optional[int] = None
    name: str = Field(default="", max_length=120)
    amount: Decimal
    next_due_date: date
    interval_unit: IntervalUnit = IntervalUnit.month
    interval_count: int = Field(default=1, gt=0)
    month_day_policy: MonthDayPolicy = MonthDayPolicy.snap_to_end
    end_date: Optional[date] = None
    is_active: bool = True
    category_id: Optional[int] = None
    overrides: tuple[BillOverrideIn, ...] = ()
