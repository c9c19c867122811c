from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class BudgetType(str, Enum):
    monthly = "MONTHLY"
    annual = "ANNUAL"
    pay_period = "PAY_PERIOD"


class BudgetStrategy(str, Enum):
    fixed = "FIXED"
    rollover = "ROLLOVER"
    zero_based = "ZERO_BASED"
    fifty_thirty_twenty = "FIFTY_THIRTY_TWENTY"


class RolloverType(str, Enum):
    none = "NONE"
    monthly = "MONTHLY"
    quarterly = "QUARTERLY"
    annual = "ANNUAL"


class CategoryGroup(str, Enum):
    need = "NEED"
    want = "WANT"
    saving = "SAVING"


class PeriodStatus(str, Enum):
    open = "OPEN"
    closed = "CLOSED"
    projected = "PROJECTED"


class PaceStatus(str, Enum):
    under = "under"
    on_track = "on_track"
    over = "over"


class TransactionStatus(str, Enum):
    cleared = "CLEARED"
    pending = "PENDING"
    void = "VOID"


class IntervalUnit(str, Enum):
    day = "day"
    week = "week"
    month = "month"
    year = "year"


class MonthDayPolicy(str, Enum):
    snap_to_end = "snap_to_end"
    skip = "skip"
    carry_forward = "carry_forward"


def _value_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda members: [member.value for member in members],
    )


MONEY = Numeric(20, 4)


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Budget(Base, TimestampMixin):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    budget_type: Mapped[BudgetType] = mapped_column(
        _value_enum(BudgetType, "budgettype"), nullable=False, default=BudgetType.monthly
    )
    strategy: Mapped[BudgetStrategy] = mapped_column(
        _value_enum(BudgetStrategy, "budgetstrategy"),
        nullable=False,
        default=BudgetStrategy.fixed,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[Optional[date]] = mapped_column(Date)
    base_income: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    income_linked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    currency_code: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    config_json: Mapped[Optional[str]] = mapped_column(Text)

    categories: Mapped[list["BudgetCategory"]] = relationship(
        "BudgetCategory", back_populates="budget", order_by="BudgetCategory.sort_order"
    )
    periods: Mapped[list["BudgetPeriod"]] = relationship(
        "BudgetPeriod", back_populates="budget", order_by="BudgetPeriod.period_start"
    )

    __table_args__ = (Index("ix_budgets_user_active", "user_id", "is_active"),)


class BudgetCategory(Base, TimestampMixin):
    __tablename__ = "budget_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey("budgets.id"), nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(Integer)
    name: Mapped[Optional[str]] = mapped_column(String(120))
    transfer_account_id: Mapped[Optional[int]] = mapped_column(Integer)
    is_transfer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    category_group: Mapped[Optional[CategoryGroup]] = mapped_column(
        _value_enum(CategoryGroup, "categorygroup")
    )
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    is_income: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rollover_type: Mapped[RolloverType] = mapped_column(
        _value_enum(RolloverType, "rollovertype"),
        nullable=False,
        default=RolloverType.none,
    )
    rollover_cap: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    flex_group: Mapped[Optional[str]] = mapped_column(String(100))
    alert_warn_percent: Mapped[int] = mapped_column(Integer, default=80, nullable=False)
    alert_critical_percent: Mapped[int] = mapped_column(
        Integer, default=95, nullable=False
    )
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    budget: Mapped["Budget"] = relationship("Budget", back_populates="categories")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="ck_budget_category_amount_positive"),
        CheckConstraint(
            "NOT (is_transfer AND category_id IS NOT NULL)",
            name="ck_budget_category_transfer_xor_category",
        ),
        Index("ix_budget_categories_budget", "budget_id"),
        Index("ix_budget_categories_flex", "budget_id", "flex_group"),
    )


class BudgetPeriod(Base, TimestampMixin):
    __tablename__ = "budget_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_id: Mapped[int] = mapped_column(ForeignKey("budgets.id"), nullable=False)
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[PeriodStatus] = mapped_column(
        _value_enum(PeriodStatus, "periodstatus"),
        nullable=False,
        default=PeriodStatus.open,
    )
    actual_income: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    actual_expenses: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    total_budgeted: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)

    budget: Mapped["Budget"] = relationship("Budget", back_populates="periods")
    period_categories: Mapped[list["BudgetPeriodCategory"]] = relationship(
        "BudgetPeriodCategory",
        back_populates="period",
        order_by="BudgetPeriodCategory.budget_category_id",
    )

    __table_args__ = (
        UniqueConstraint("budget_id", "period_start", name="uq_budget_period_start"),
        Index("ix_budget_periods_dates", "budget_id", "period_start", "period_end"),
    )


class BudgetPeriodCategory(Base, TimestampMixin):
    __tablename__ = "budget_period_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    budget_period_id: Mapped[int] = mapped_column(
        ForeignKey("budget_periods.id"), nullable=False
    )
    budget_category_id: Mapped[int] = mapped_column(
        ForeignKey("budget_categories.id"), nullable=False
    )
    category_id: Mapped[Optional[int]] = mapped_column(Integer)
    budgeted_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    rollover_in: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    effective_budget: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    actual_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)
    rollover_out: Mapped[Decimal] = mapped_column(MONEY, nullable=False, default=0)

    period: Mapped["BudgetPeriod"] = relationship(
        "BudgetPeriod", back_populates="period_categories"
    )
    budget_category: Mapped["BudgetCategory"] = relationship("BudgetCategory")

    __table_args__ = (
        UniqueConstraint(
            "budget_period_id",
            "budget_category_id",
            name="uq_budget_period_category",
        ),
        CheckConstraint("rollover_in >= 0", name="ck_bpc_rollover_in_positive"),
        CheckConstraint("rollover_out >= 0", name="ck_bpc_rollover_out_positive"),
        Index("ix_bpc_period", "budget_period_id"),
    )
