from datetime import date, datetime
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
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CategoryType(str, Enum):
    income = "INCOME"
    fix = "FIX"
    variable = "VARIABLE"
    sf1 = "SF1"
    sf2 = "SF2"


class RolloverStrategy(str, Enum):
    reset = "RESET"
    accumulate = "ACCUMULATE"
    sweep = "SWEEP"


class AccountType(str, Enum):
    cash = "cash"
    bank = "bank"
    credit = "credit"
    savings = "savings"


class BudgetItemFrequency(str, Enum):
    monthly = "monthly"
    quarterly = "quarterly"
    semi_annual = "semi_annual"
    annual = "annual"


FREQUENCY_MONTHS = {
    BudgetItemFrequency.monthly: 1,
    BudgetItemFrequency.quarterly: 3,
    BudgetItemFrequency.semi_annual: 6,
    BudgetItemFrequency.annual: 12,
}


def _values(enum_cls):
    return [member.value for member in enum_cls]


CATEGORY_TYPE_ENUM = SAEnum(
    CategoryType, name="categorytype", values_callable=_values
)
ROLLOVER_STRATEGY_ENUM = SAEnum(
    RolloverStrategy, name="rolloverstrategy", values_callable=_values
)


def default_strategy_for(category_type: CategoryType) -> RolloverStrategy:
    if category_type in (CategoryType.sf1, CategoryType.sf2):
        return RolloverStrategy.accumulate
    return RolloverStrategy.reset


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[CategoryType] = mapped_column(CATEGORY_TYPE_ENUM, nullable=False)
    rollover_strategy: Mapped[RolloverStrategy] = mapped_column(
        ROLLOVER_STRATEGY_ENUM, nullable=False, default=RolloverStrategy.reset
    )
    target_amount_cents: Mapped[Optional[int]] = mapped_column(Integer)
    due_date: Mapped[Optional[date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    sort_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="category"
    )
    budgets: Mapped[list["MonthlyBudget"]] = relationship(
        "MonthlyBudget", back_populates="category", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
        Index("ix_categories_user_active_order", "user_id", "is_active", "sort_order"),
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[AccountType] = mapped_column(SAEnum(AccountType), nullable=False)
    initial_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    account_id: Mapped[Optional[int]] = mapped_column(ForeignKey("accounts.id"))
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    # Signed: positive is an inflow, negative an outflow.
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    memo: Mapped[Optional[str]] = mapped_column(Text)

    account: Mapped[Optional["Account"]] = relationship(
        "Account", back_populates="transactions"
    )
    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="transactions"
    )

    __table_args__ = (
        Index("ix_transactions_user_date", "user_id", "date"),
        Index("ix_transactions_user_category_date", "user_id", "category_id", "date"),
        Index("ix_transactions_user_account", "user_id", "account_id"),
    )


class MonthlyBudget(Base, TimestampMixin):
    __tablename__ = "monthly_budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    month_iso: Mapped[str] = mapped_column(String(7), nullable=False)
    assigned_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # Frozen when the row is created; never recomputed afterwards.
    start_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    category: Mapped["Category"] = relationship("Category", back_populates="budgets")

    __table_args__ = (
        UniqueConstraint(
            "user_id",
            "category_id",
            "month_iso",
            name="uq_monthly_budget_user_category_month",
        ),
        Index("ix_monthly_budget_user_month", "user_id", "month_iso"),
    )


class BudgetItem(Base, TimestampMixin):
    __tablename__ = "budget_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    frequency: Mapped[BudgetItemFrequency] = mapped_column(
        SAEnum(BudgetItemFrequency), nullable=False
    )
    monthly_impact_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    saved_balance_cents: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0
    )

    category: Mapped["Category"] = relationship("Category")

    __table_args__ = (
        CheckConstraint("amount_cents > 0", name="ck_budget_item_amount_positive"),
        CheckConstraint(
            "monthly_impact_cents > 0", name="ck_budget_item_impact_positive"
        ),
        CheckConstraint(
            "saved_balance_cents >= 0", name="ck_budget_item_saved_non_negative"
        ),
        Index("ix_budget_items_user_frequency", "user_id", "frequency"),
    )
