"""Storage access for the budget engine.

Engine services only talk to a :class:`LedgerRepository`. The SQL
implementation is bound to one session and one user; tests and other callers
may substitute any object with the same methods.
"""

from __future__ import annotations

import functools
import logging
from datetime import date
from typing import Callable, Optional, Protocol, Sequence, TypeVar

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from errors import BudgetRowExists, RepositoryError
from models import (
    Account,
    BudgetItem,
    BudgetItemFrequency,
    Category,
    MonthlyBudget,
    Transaction,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


class LedgerRepository(Protocol):
    user_id: int

    def list_active_categories(self) -> Sequence[Category]: ...

    def get_category(self, category_id: int) -> Optional[Category]: ...

    def list_transactions(
        self, start: date, end: date, category_id: Optional[int] = None
    ) -> Sequence[Transaction]: ...

    def activity_by_category(self, start: date, end: date) -> dict[int, int]: ...

    def category_has_transactions(
        self, category_id: int, start: date, end: date
    ) -> bool: ...

    def category_spent_total(self, category_id: int) -> int: ...

    def list_stored_budget_rows(self, month_iso: str) -> Sequence[MonthlyBudget]: ...

    def get_budget_row(
        self, category_id: int, month_iso: str
    ) -> Optional[MonthlyBudget]: ...

    def category_assigned_total(self, category_id: int) -> int: ...

    def list_accounts(self) -> Sequence[Account]: ...

    def account_transaction_totals(self) -> dict[int, int]: ...

    def list_budget_items(
        self,
        *,
        category_id: Optional[int] = None,
        monthly: Optional[bool] = None,
    ) -> Sequence[BudgetItem]: ...

    def insert_budget_row(
        self,
        category_id: int,
        month_iso: str,
        *,
        assigned_cents: int,
        start_balance_cents: int,
    ) -> MonthlyBudget: ...

    def update_budget_row_assigned(
        self, row: MonthlyBudget, assigned_cents: int
    ) -> MonthlyBudget: ...


def _translate_errors(operation: str) -> Callable[[Callable[..., T]], Callable[..., T]]:
    def decorator(fn: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(fn)
        def wrapper(self: "SqlLedgerRepository", *args, **kwargs) -> T:
            try:
                return fn(self, *args, **kwargs)
            except RepositoryError:
                raise
            except SQLAlchemyError as exc:
                self.session.rollback()
                logger.exception(
                    f"repository_failure: op={operation} user_id={self.user_id}"
                )
                raise RepositoryError(f"{operation} failed") from exc

        return wrapper

    return decorator


class SqlLedgerRepository:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @_translate_errors("list_active_categories")
    def list_active_categories(self) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id, Category.is_active.is_(True))
            .order_by(Category.sort_order, Category.name)
        )
        return list(self.session.scalars(stmt).all())

    @_translate_errors("get_category")
    def get_category(self, category_id: int) -> Optional[Category]:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            return None
        return category

    @_translate_errors("list_transactions")
    def list_transactions(
        self, start: date, end: date, category_id: Optional[int] = None
    ) -> list[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(start, end),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        if category_id is not None:
            stmt = stmt.where(Transaction.category_id == category_id)
        return list(self.session.scalars(stmt).all())

    @_translate_errors("activity_by_category")
    def activity_by_category(self, start: date, end: date) -> dict[int, int]:
        stmt = (
            select(
                Transaction.category_id,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("activity"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id.is_not(None),
                Transaction.date.between(start, end),
            )
            .group_by(Transaction.category_id)
        )
        return {
            row.category_id: int(row.activity or 0)
            for row in self.session.execute(stmt)
        }

    @_translate_errors("category_has_transactions")
    def category_has_transactions(
        self, category_id: int, start: date, end: date
    ) -> bool:
        stmt = (
            select(Transaction.id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category_id,
                Transaction.date.between(start, end),
            )
            .limit(1)
        )
        return self.session.scalar(stmt) is not None

    @_translate_errors("category_spent_total")
    def category_spent_total(self, category_id: int) -> int:
        """Sum of outflows ever booked to the category, as a positive number."""
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.category_id == category_id,
            Transaction.amount_cents < 0,
        )
        return -int(self.session.execute(stmt).scalar_one() or 0)

    @_translate_errors("list_stored_budget_rows")
    def list_stored_budget_rows(self, month_iso: str) -> list[MonthlyBudget]:
        stmt = select(MonthlyBudget).where(
            MonthlyBudget.user_id == self.user_id,
            MonthlyBudget.month_iso == month_iso,
        )
        return list(self.session.scalars(stmt).all())

    @_translate_errors("get_budget_row")
    def get_budget_row(
        self, category_id: int, month_iso: str
    ) -> Optional[MonthlyBudget]:
        return self.session.scalar(
            select(MonthlyBudget).where(
                MonthlyBudget.user_id == self.user_id,
                MonthlyBudget.category_id == category_id,
                MonthlyBudget.month_iso == month_iso,
            )
        )

    @_translate_errors("category_assigned_total")
    def category_assigned_total(self, category_id: int) -> int:
        stmt = select(func.coalesce(func.sum(MonthlyBudget.assigned_cents), 0)).where(
            MonthlyBudget.user_id == self.user_id,
            MonthlyBudget.category_id == category_id,
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    @_translate_errors("list_accounts")
    def list_accounts(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.created_at, Account.id)
        )
        return list(self.session.scalars(stmt).all())

    @_translate_errors("account_transaction_totals")
    def account_transaction_totals(self) -> dict[int, int]:
        stmt = (
            select(
                Transaction.account_id,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.account_id.is_not(None),
            )
            .group_by(Transaction.account_id)
        )
        return {
            row.account_id: int(row.total or 0) for row in self.session.execute(stmt)
        }

    @_translate_errors("list_budget_items")
    def list_budget_items(
        self,
        *,
        category_id: Optional[int] = None,
        monthly: Optional[bool] = None,
    ) -> list[BudgetItem]:
        stmt = (
            select(BudgetItem)
            .where(BudgetItem.user_id == self.user_id)
            .order_by(BudgetItem.name, BudgetItem.id)
        )
        if category_id is not None:
            stmt = stmt.where(BudgetItem.category_id == category_id)
        if monthly is True:
            stmt = stmt.where(BudgetItem.frequency == BudgetItemFrequency.monthly)
        elif monthly is False:
            stmt = stmt.where(BudgetItem.frequency != BudgetItemFrequency.monthly)
        return list(self.session.scalars(stmt).all())

    @_translate_errors("insert_budget_row")
    def insert_budget_row(
        self,
        category_id: int,
        month_iso: str,
        *,
        assigned_cents: int,
        start_balance_cents: int,
    ) -> MonthlyBudget:
        row = MonthlyBudget(
            user_id=self.user_id,
            category_id=category_id,
            month_iso=month_iso,
            assigned_cents=assigned_cents,
            start_balance_cents=start_balance_cents,
        )
        self.session.add(row)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise BudgetRowExists(
                f"Budget row for category {category_id} in {month_iso} already exists"
            ) from exc
        self.session.refresh(row)
        return row

    @_translate_errors("update_budget_row_assigned")
    def update_budget_row_assigned(
        self, row: MonthlyBudget, assigned_cents: int
    ) -> MonthlyBudget:
        row.assigned_cents = assigned_cents
        self.session.commit()
        self.session.refresh(row)
        return row
