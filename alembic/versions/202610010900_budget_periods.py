"""budgets, categories and settled periods

Revision ID: 202610010900
Revises:
Create Date: 2026-10-01 09:00:00.000000

"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


revision = "202610010900"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(20, 4)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column(
            "budget_type",
            sa.Enum("MONTHLY", "ANNUAL", "PAY_PERIOD", name="budgettype"),
            nullable=False,
        ),
        sa.Column(
            "strategy",
            sa.Enum(
                "FIXED",
                "ROLLOVER",
                "ZERO_BASED",
                "FIFTY_THIRTY_TWENTY",
                name="budgetstrategy",
            ),
            nullable=False,
        ),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=True),
        sa.Column("base_income", MONEY, nullable=True),
        sa.Column("income_linked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("currency_code", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("config_json", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_budgets_user_active", "budgets", ["user_id", "is_active"])

    op.create_table(
        "budget_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("budgets.id"), nullable=False),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("name", sa.String(length=120), nullable=True),
        sa.Column("transfer_account_id", sa.Integer(), nullable=True),
        sa.Column("is_transfer", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "category_group",
            sa.Enum("NEED", "WANT", "SAVING", name="categorygroup"),
            nullable=True,
        ),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("is_income", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "rollover_type",
            sa.Enum("NONE", "MONTHLY", "QUARTERLY", "ANNUAL", name="rollovertype"),
            nullable=False,
            server_default="NONE",
        ),
        sa.Column("rollover_cap", MONEY, nullable=True),
        sa.Column("flex_group", sa.String(length=100), nullable=True),
        sa.Column("alert_warn_percent", sa.Integer(), nullable=False, server_default="80"),
        sa.Column("alert_critical_percent", sa.Integer(), nullable=False, server_default="95"),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deleted_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0", name="ck_budget_category_amount_positive"),
        sa.CheckConstraint(
            "NOT (is_transfer AND category_id IS NOT NULL)",
            name="ck_budget_category_transfer_xor_category",
        ),
    )
    op.create_index("ix_budget_categories_budget", "budget_categories", ["budget_id"])
    op.create_index(
        "ix_budget_categories_flex", "budget_categories", ["budget_id", "flex_group"]
    )

    op.create_table(
        "budget_periods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("budget_id", sa.Integer(), sa.ForeignKey("budgets.id"), nullable=False),
        sa.Column("period_start", sa.Date(), nullable=False),
        sa.Column("period_end", sa.Date(), nullable=False),
        sa.Column(
            "status",
            sa.Enum("OPEN", "CLOSED", "PROJECTED", name="periodstatus"),
            nullable=False,
            server_default="OPEN",
        ),
        sa.Column("actual_income", MONEY, nullable=False, server_default="0"),
        sa.Column("actual_expenses", MONEY, nullable=False, server_default="0"),
        sa.Column("total_budgeted", MONEY, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("budget_id", "period_start", name="uq_budget_period_start"),
    )
    op.create_index(
        "ix_budget_periods_dates",
        "budget_periods",
        ["budget_id", "period_start", "period_end"],
    )

    op.create_table(
        "budget_period_categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "budget_period_id",
            sa.Integer(),
            sa.ForeignKey("budget_periods.id"),
            nullable=False,
        ),
        sa.Column(
            "budget_category_id",
            sa.Integer(),
            sa.ForeignKey("budget_categories.id"),
            nullable=False,
        ),
        sa.Column("category_id", sa.Integer(), nullable=True),
        sa.Column("budgeted_amount", MONEY, nullable=False),
        sa.Column("rollover_in", MONEY, nullable=False, server_default="0"),
        sa.Column("effective_budget", MONEY, nullable=False),
        sa.Column("actual_amount", MONEY, nullable=False, server_default="0"),
        sa.Column("rollover_out", MONEY, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "budget_period_id", "budget_category_id", name="uq_budget_period_category"
        ),
        sa.CheckConstraint("rollover_in >= 0", name="ck_bpc_rollover_in_positive"),
        sa.CheckConstraint("rollover_out >= 0", name="ck_bpc_rollover_out_positive"),
    )
    op.create_index("ix_bpc_period", "budget_period_categories", ["budget_period_id"])


def downgrade() -> None:
    op.drop_index("ix_bpc_period", table_name="budget_period_categories")
    op.drop_table("budget_period_categories")
    op.drop_index("ix_budget_periods_dates", table_name="budget_periods")
    op.drop_table("budget_periods")
    op.drop_index("ix_budget_categories_flex", table_name="budget_categories")
    op.drop_index("ix_budget_categories_budget", table_name="budget_categories")
    op.drop_table("budget_categories")
    op.drop_index("ix_budgets_user_active", table_name="budgets")
    op.drop_table("budgets")
