"""initial ledger schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum(
                "INCOME", "FIX", "VARIABLE", "SF1", "SF2", name="categorytype"
            ),
            nullable=False,
        ),
        sa.Column(
            "rollover_strategy",
            sa.Enum("RESET", "ACCUMULATE", "SWEEP", name="rolloverstrategy"),
            nullable=False,
            server_default="RESET",
        ),
        sa.Column("target_amount_cents", sa.Integer()),
        sa.Column("due_date", sa.Date()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )
    op.create_index(
        "ix_categories_user_active_order",
        "categories",
        ["user_id", "is_active", "sort_order"],
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column(
            "type",
            sa.Enum("cash", "bank", "credit", "savings", name="accounttype"),
            nullable=False,
        ),
        sa.Column(
            "initial_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("account_id", sa.Integer(), sa.ForeignKey("accounts.id")),
        sa.Column("category_id", sa.Integer(), sa.ForeignKey("categories.id")),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("memo", sa.Text()),
        *_timestamps(),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category_id", "date"],
    )
    op.create_index(
        "ix_transactions_user_account", "transactions", ["user_id", "account_id"]
    )

    op.create_table(
        "monthly_budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("month_iso", sa.String(length=7), nullable=False),
        sa.Column("assigned_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column(
            "start_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id",
            "category_id",
            "month_iso",
            name="uq_monthly_budget_user_category_month",
        ),
    )
    op.create_index(
        "ix_monthly_budget_user_month", "monthly_budgets", ["user_id", "month_iso"]
    )

    op.create_table(
        "budget_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column(
            "category_id", sa.Integer(), sa.ForeignKey("categories.id"), nullable=False
        ),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "frequency",
            sa.Enum(
                "monthly",
                "quarterly",
                "semi_annual",
                "annual",
                name="budgetitemfrequency",
            ),
            nullable=False,
        ),
        sa.Column("monthly_impact_cents", sa.Integer(), nullable=False),
        sa.Column(
            "saved_balance_cents", sa.Integer(), nullable=False, server_default="0"
        ),
        *_timestamps(),
        sa.CheckConstraint("amount_cents > 0", name="ck_budget_item_amount_positive"),
        sa.CheckConstraint(
            "monthly_impact_cents > 0", name="ck_budget_item_impact_positive"
        ),
        sa.CheckConstraint(
            "saved_balance_cents >= 0", name="ck_budget_item_saved_non_negative"
        ),
    )
    op.create_index(
        "ix_budget_items_user_frequency", "budget_items", ["user_id", "frequency"]
    )


def downgrade():
    op.drop_index("ix_budget_items_user_frequency", table_name="budget_items")
    op.drop_table("budget_items")
    op.drop_index("ix_monthly_budget_user_month", table_name="monthly_budgets")
    op.drop_table("monthly_budgets")
    op.drop_index("ix_transactions_user_account", table_name="transactions")
    op.drop_index("ix_transactions_user_category_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("accounts")
    op.drop_index("ix_categories_user_active_order", table_name="categories")
    op.drop_table("categories")
