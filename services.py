from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Union

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from errors import BudgetRowExists, NotFound, RepositoryError, ValidationError
from models import (
    FREQUENCY_MONTHS,
    Account,
    AccountType,
    BudgetItem,
    BudgetItemFrequency,
    Category,
    CategoryType,
    MonthlyBudget,
    RolloverStrategy,
    Transaction,
    default_strategy_for,
)
from money import Money
from periods import MonthPeriod, local_today, months_between
from repository import LedgerRepository
from rollover import available_for, prior_available, rollover_for
from schemas import AccountIn, BudgetItemIn, CategoryIn, TransactionIn

logger = logging.getLogger(__name__)

MonthLike = Union[str, MonthPeriod]
AmountLike = Union[str, Money]

MAX_TREND_MONTHS = 120
_PERCENT = Decimal("0.01")

DEFAULT_ACCOUNTS = [
    ("Main Account", AccountType.bank),
    ("Cash", AccountType.cash),
]
DEFAULT_CATEGORIES = [
    ("Salary", CategoryType.income),
    ("Freelance", CategoryType.income),
    ("Groceries", CategoryType.variable),
    ("Rent", CategoryType.fix),
    ("Transport", CategoryType.variable),
    ("Eating Out", CategoryType.variable),
    ("Entertainment", CategoryType.variable),
    ("Health", CategoryType.variable),
    ("Shopping", CategoryType.variable),
]


def is_income(category: Category) -> bool:
    return category.type == CategoryType.income


def _sum_cents(values: Iterable[int]) -> Money:
    return Money.from_cents(sum(values, 0))


@dataclass(frozen=True)
class MonthlyBudgetView:
    id: str
    category: Category
    month: str
    start_balance: Money
    assigned: Money
    activity: Money
    available: Money
    is_virtual: bool


@dataclass(frozen=True)
class BudgetSummary:
    month: str
    total_income: Money
    leftover_from_reset: Money
    total_assigned: Money
    total_activity: Money
    total_available: Money
    overspent: Money
    to_be_budgeted: Money


@dataclass(frozen=True)
class MonthlyStatistics:
    month: str
    income: Money
    expenses: Money
    balance: Money
    transaction_count: int


@dataclass(frozen=True)
class YearToDateTotals:
    year: int
    total_income: Money
    total_expenses: Money
    balance: Money
    transaction_count: int
    months_with_data: int


@dataclass(frozen=True)
class CategorySpending:
    category_id: Optional[int]
    category_name: str
    category_type: Optional[CategoryType]
    total: Money
    percentage: Decimal


@dataclass(frozen=True)
class AccountBalance:
    account: Account
    current_balance: Money


@dataclass(frozen=True)
class BillStatus:
    item: BudgetItem
    monthly_impact: Money
    is_paid: bool


@dataclass(frozen=True)
class SinkingFundStatus:
    item: BudgetItem
    amount: Money
    monthly_impact: Money
    saved_balance: Money
    progress_percentage: int


@dataclass(frozen=True)
class SafeToSpendResult:
    safe_to_spend: Money
    total_liquid: Money
    pending_bills: Money
    sinking_contributions: Money


class _MonthData:
    """Stored rows and per-category activity of one month, loaded together."""

    def __init__(self, repo: LedgerRepository, period: MonthPeriod) -> None:
        self.period = period
        self.rows: dict[int, MonthlyBudget] = {
            row.category_id: row for row in repo.list_stored_budget_rows(period.iso)
        }
        self.activity: dict[int, int] = repo.activity_by_category(
            period.start, period.end
        )

    def activity_for(self, category_id: int) -> Money:
        return Money.from_cents(self.activity.get(category_id, 0))

    def available_for(self, category: Category) -> Optional[Money]:
        return prior_available(
            self.rows.get(category.id), self.activity_for(category.id)
        )

    def start_balance_after(self, category: Category) -> Money:
        """Start balance of the following month for ``category``."""
        return rollover_for(
            category, self.rows.get(category.id), self.activity_for(category.id)
        )


def frozen_start_balance(
    repo: LedgerRepository, category: Category, period: MonthPeriod
) -> Money:
    """Start balance to store in a new row, from the data present right now."""
    prev = period.previous()
    prior_row = repo.get_budget_row(category.id, prev.iso)
    prior_activity = _sum_cents(
        txn.amount_cents
        for txn in repo.list_transactions(prev.start, prev.end, category.id)
    )
    return rollover_for(category, prior_row, prior_activity)


class BudgetLedger:
    def __init__(self, repo: LedgerRepository) -> None:
        self.repo = repo

    def month_view(self, month: MonthLike) -> list[MonthlyBudgetView]:
        period = MonthPeriod.coerce(month)
        categories = self.repo.list_active_categories()
        current = _MonthData(self.repo, period)
        previous = _MonthData(self.repo, period.previous())

        views: list[MonthlyBudgetView] = []
        for category in categories:
            row = current.rows.get(category.id)
            # Recomputed from the previous month; the stored
            # start_balance_cents is not read on this path.
            start_balance = previous.start_balance_after(category)
            assigned = Money.from_cents(row.assigned_cents) if row else Money.zero()
            activity = current.activity_for(category.id)
            views.append(
                MonthlyBudgetView(
                    id=str(row.id) if row else f"virtual-{category.id}",
                    category=category,
                    month=period.iso,
                    start_balance=start_balance,
                    assigned=assigned,
                    activity=activity,
                    available=available_for(start_balance, assigned, activity),
                    is_virtual=row is None,
                )
            )
        return views


class MonthInitializer:
    def __init__(self, repo: LedgerRepository) -> None:
        self.repo = repo

    def initialize_month(self, month: MonthLike) -> int:
        period = MonthPeriod.coerce(month)
        categories = [c for c in self.repo.list_active_categories() if not is_income(c)]
        if not categories:
            return 0
        previous = _MonthData(self.repo, period.previous())

        created = 0
        for category in categories:
            try:
                if self.repo.get_budget_row(category.id, period.iso) is not None:
                    continue
                start_balance = previous.start_balance_after(category)
                self.repo.insert_budget_row(
                    category.id,
                    period.iso,
                    assigned_cents=0,
                    start_balance_cents=start_balance.cents,
                )
            except RepositoryError as exc:
                logger.warning(
                    f"initialize_month_skip: user_id={self.repo.user_id} "
                    f"month={period.iso} category_id={category.id} error={exc}"
                )
                continue
            created += 1

        logger.info(
            f"initialize_month: user_id={self.repo.user_id} month={period.iso} "
            f"created={created}"
        )
        return created


class SummaryAggregator:
    def __init__(
        self, repo: LedgerRepository, ledger: Optional[BudgetLedger] = None
    ) -> None:
        self.repo = repo
        self.ledger = ledger or BudgetLedger(repo)

    def budget_summary(self, month: MonthLike) -> BudgetSummary:
        period = MonthPeriod.coerce(month)
        categories = self.repo.list_active_categories()
        income_ids = {c.id for c in categories if is_income(c)}

        total_income = Money.zero()
        if income_ids:
            total_income = _sum_cents(
                abs(txn.amount_cents)
                for txn in self.repo.list_transactions(period.start, period.end)
                if txn.category_id in income_ids
            )

        previous = _MonthData(self.repo, period.previous())
        leftover_from_reset = Money.zero()
        for category in categories:
            if is_income(category):
                continue
            if category.rollover_strategy != RolloverStrategy.reset:
                continue
            prior = previous.available_for(category)
            if prior is not None:
                leftover_from_reset += prior

        expense_views = [
            v for v in self.ledger.month_view(period) if not is_income(v.category)
        ]
        total_assigned = Money.total(v.assigned for v in expense_views)
        total_activity = Money.total(v.activity for v in expense_views)
        total_available = Money.total(v.available for v in expense_views)
        overspent = Money.total(
            abs(v.available) for v in expense_views if v.available.is_negative()
        )

        return BudgetSummary(
            month=period.iso,
            total_income=total_income,
            leftover_from_reset=leftover_from_reset,
            total_assigned=total_assigned,
            total_activity=total_activity,
            total_available=total_available,
            overspent=overspent,
            to_be_budgeted=total_income + leftover_from_reset - total_assigned,
        )

    @staticmethod
    def _statistics(month_iso: str, amounts: list[int]) -> MonthlyStatistics:
        income = _sum_cents(a for a in amounts if a > 0)
        expenses = _sum_cents(-a for a in amounts if a < 0)
        return MonthlyStatistics(
            month=month_iso,
            income=income,
            expenses=expenses,
            balance=income - expenses,
            transaction_count=len(amounts),
        )

    def monthly_statistics(self, month: MonthLike) -> MonthlyStatistics:
        period = MonthPeriod.coerce(month)
        amounts = [
            txn.amount_cents
            for txn in self.repo.list_transactions(period.start, period.end)
        ]
        return self._statistics(period.iso, amounts)

    def monthly_trends(
        self, start: MonthLike, end: MonthLike
    ) -> list[MonthlyStatistics]:
        """Statistics for every month from ``start`` to ``end``, inclusive."""
        first = MonthPeriod.coerce(start)
        last = MonthPeriod.coerce(end)
        if first > last:
            raise ValidationError("Start month must not be after end month")
        span = (last.year - first.year) * 12 + (last.month - first.month) + 1
        if span > MAX_TREND_MONTHS:
            raise ValidationError(f"Trends cover at most {MAX_TREND_MONTHS} months")

        buckets: dict[str, list[int]] = {first.shift(i).iso: [] for i in range(span)}
        for txn in self.repo.list_transactions(first.start, last.end):
            buckets[MonthPeriod.containing(txn.date).iso].append(txn.amount_cents)
        return [self._statistics(iso, amounts) for iso, amounts in buckets.items()]

    def year_to_date(self, year: int) -> YearToDateTotals:
        months = self.monthly_trends(MonthPeriod(year, 1), MonthPeriod(year, 12))
        income = Money.total(m.income for m in months)
        expenses = Money.total(m.expenses for m in months)
        return YearToDateTotals(
            year=year,
            total_income=income,
            total_expenses=expenses,
            balance=income - expenses,
            transaction_count=sum(m.transaction_count for m in months),
            months_with_data=sum(1 for m in months if m.transaction_count),
        )

    def category_spending(self, month: MonthLike) -> list[CategorySpending]:
        period = MonthPeriod.coerce(month)
        spent: dict[Optional[int], int] = {}
        for txn in self.repo.list_transactions(period.start, period.end):
            if txn.amount_cents < 0:
                spent[txn.category_id] = spent.get(txn.category_id, 0) - txn.amount_cents
        total = sum(spent.values())

        rows: list[CategorySpending] = []
        for category_id, cents in spent.items():
            category = (
                self.repo.get_category(category_id) if category_id is not None else None
            )
            percentage = (Decimal(cents) * 100 / Decimal(total)).quantize(
                _PERCENT, rounding=ROUND_HALF_UP
            )
            rows.append(
                CategorySpending(
                    category_id=category_id,
                    category_name=category.name if category else "Uncategorized",
                    category_type=category.type if category else None,
                    total=Money.from_cents(cents),
                    percentage=percentage,
                )
            )
        rows.sort(key=lambda r: (-r.total.cents, r.category_name))
        return rows


class BudgetAssignmentService:
    def __init__(self, repo: LedgerRepository) -> None:
        self.repo = repo

    def assign_budget(
        self, category_id: int, month: MonthLike, amount: AmountLike
    ) -> MonthlyBudget:
        period = MonthPeriod.coerce(month)
        value = Money.parse(amount)
        category = self.repo.get_category(category_id)
        if category is None:
            raise NotFound("Category not found")
        if is_income(category):
            raise ValidationError("Budgets cannot be assigned to income categories")

        existing = self.repo.get_budget_row(category.id, period.iso)
        if existing is not None:
            # start_balance_cents stays frozen at its creation value.
            row = self.repo.update_budget_row_assigned(existing, value.cents)
            logger.info(
                f"assign_budget: user_id={self.repo.user_id} category_id={category.id} "
                f"month={period.iso} assigned={value} action=update"
            )
            return row

        start_balance = frozen_start_balance(self.repo, category, period)
        try:
            row = self.repo.insert_budget_row(
                category.id,
                period.iso,
                assigned_cents=value.cents,
                start_balance_cents=start_balance.cents,
            )
        except BudgetRowExists:
            winner = self.repo.get_budget_row(category.id, period.iso)
            if winner is None:
                raise
            logger.info(
                f"assign_budget_race: user_id={self.repo.user_id} "
                f"category_id={category.id} month={period.iso}"
            )
            return self.repo.update_budget_row_assigned(winner, value.cents)

        logger.info(
            f"assign_budget: user_id={self.repo.user_id} category_id={category.id} "
            f"month={period.iso} assigned={value} start_balance={start_balance} "
            "action=create"
        )
        return row

    def quick_assign(self, category_ids: list[int], month: MonthLike) -> int:
        period = MonthPeriod.coerce(month)
        if not category_ids:
            raise ValidationError("No categories selected")
        summary = SummaryAggregator(self.repo).budget_summary(period)
        if not summary.to_be_budgeted.is_positive():
            raise ValidationError("No funds available to assign")

        share = summary.to_be_budgeted.divide(len(category_ids))
        assigned = 0
        for category_id in category_ids:
            try:
                self.assign_budget(category_id, period, share)
            except (NotFound, ValidationError, RepositoryError) as exc:
                logger.warning(
                    f"quick_assign_skip: user_id={self.repo.user_id} "
                    f"category_id={category_id} month={period.iso} error={exc}"
                )
                continue
            assigned += 1
        return assigned


class SuggestionEngine:
    def __init__(self, repo: LedgerRepository) -> None:
        self.repo = repo

    def _target_based(
        self, category: Category, period: MonthPeriod
    ) -> Optional[Money]:
        target = Money.from_cents(category.target_amount_cents or 0)
        if not target.is_positive():
            return None

        if category.type == CategoryType.fix:
            return target

        if category.type == CategoryType.sf1 and category.due_date is not None:
            months_remaining = max(1, months_between(category.due_date, period))
            assigned_total = Money.from_cents(
                self.repo.category_assigned_total(category.id)
            )
            spent_total = Money.from_cents(
                self.repo.category_spent_total(category.id)
            )
            saved_balance = max(Money.zero(), assigned_total - spent_total)
            remaining = max(Money.zero(), target - saved_balance)
            return remaining.divide(months_remaining)

        return None

    def suggested_amount(
        self, category_id: int, month: MonthLike
    ) -> Optional[Money]:
        period = MonthPeriod.coerce(month)
        category = self.repo.get_category(category_id)
        if category is None:
            raise NotFound("Category not found")
        return self._target_based(category, period)

    def all_suggested_amounts(self, month: MonthLike) -> dict[int, Money]:
        period = MonthPeriod.coerce(month)
        prev_assigned = {
            row.category_id: Money.from_cents(row.assigned_cents)
            for row in self.repo.list_stored_budget_rows(period.previous().iso)
        }

        suggestions: dict[int, Money] = {}
        for category in self.repo.list_active_categories():
            if is_income(category):
                continue
            suggestion = self._target_based(category, period)
            if suggestion is not None:
                suggestions[category.id] = suggestion
                continue
            fallback = prev_assigned.get(category.id)
            if fallback is not None and fallback.is_positive():
                suggestions[category.id] = fallback
        return suggestions


class SafeToSpendCalculator:
    def __init__(self, repo: LedgerRepository) -> None:
        self.repo = repo

    def account_balances(self) -> list[AccountBalance]:
        totals = self.repo.account_transaction_totals()
        return [
            AccountBalance(
                account=account,
                current_balance=Money.from_cents(
                    account.initial_balance_cents + totals.get(account.id, 0)
                ),
            )
            for account in self.repo.list_accounts()
        ]

    def bills_checklist(self, today: Optional[date] = None) -> list[BillStatus]:
        period = MonthPeriod.current(today)
        return [
            BillStatus(
                item=item,
                monthly_impact=Money.from_cents(item.monthly_impact_cents),
                is_paid=self.repo.category_has_transactions(
                    item.category_id, period.start, period.end
                ),
            )
            for item in self.repo.list_budget_items(monthly=True)
        ]

    def sinking_funds(self) -> list[SinkingFundStatus]:
        funds: list[SinkingFundStatus] = []
        for item in self.repo.list_budget_items(monthly=False):
            progress = 0
            if item.amount_cents > 0:
                progress = min(
                    100,
                    (item.saved_balance_cents * 200 + item.amount_cents)
                    // (2 * item.amount_cents),
                )
            funds.append(
                SinkingFundStatus(
                    item=item,
                    amount=Money.from_cents(item.amount_cents),
                    monthly_impact=Money.from_cents(item.monthly_impact_cents),
                    saved_balance=Money.from_cents(item.saved_balance_cents),
                    progress_percentage=progress,
                )
            )
        return funds

    def safe_to_spend(self, today: Optional[date] = None) -> SafeToSpendResult:
        total_liquid = Money.total(b.current_balance for b in self.account_balances())
        pending_bills = Money.total(
            bill.monthly_impact
            for bill in self.bills_checklist(today)
            if not bill.is_paid
        )
        sinking_contributions = Money.total(
            fund.monthly_impact for fund in self.sinking_funds()
        )
        return SafeToSpendResult(
            safe_to_spend=total_liquid - pending_bills - sinking_contributions,
            total_liquid=total_liquid,
            pending_bills=pending_bills,
            sinking_contributions=sinking_contributions,
        )


class CategoryService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self, include_inactive: bool = False) -> list[Category]:
        stmt = (
            select(Category)
            .where(Category.user_id == self.user_id)
            .order_by(Category.sort_order, Category.name)
        )
        if not include_inactive:
            stmt = stmt.where(Category.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFound("Category not found")
        return category

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Category).where(
            Category.user_id == self.user_id,
            func.lower(Category.name) == name.lower(),
        )
        if exclude_id is not None:
            stmt = stmt.where(Category.id != exclude_id)
        if self.session.scalar(stmt):
            raise ValidationError("Category with this name already exists")

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        self._ensure_unique_name(name)
        category = Category(
            user_id=self.user_id,
            name=name,
            type=data.type,
            rollover_strategy=data.rollover_strategy or default_strategy_for(data.type),
            target_amount_cents=(
                Money.parse(data.target_amount).cents if data.target_amount else None
            ),
            due_date=data.due_date,
            sort_order=data.sort_order,
        )
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryIn) -> Category:
        category = self.get(category_id)
        name = data.name.strip()
        self._ensure_unique_name(name, exclude_id=category.id)
        if data.type != category.type:
            referenced = self.session.scalar(
                select(Transaction.id)
                .where(
                    Transaction.user_id == self.user_id,
                    Transaction.category_id == category.id,
                )
                .limit(1)
            )
            if referenced is not None:
                raise ValidationError(
                    "Category type cannot change once transactions reference it"
                )
            category.type = data.type
        category.name = name
        if data.rollover_strategy is not None:
            category.rollover_strategy = data.rollover_strategy
        category.target_amount_cents = (
            Money.parse(data.target_amount).cents if data.target_amount else None
        )
        category.due_date = data.due_date
        category.sort_order = data.sort_order
        self.session.commit()
        self.session.refresh(category)
        return category

    def archive(self, category_id: int) -> None:
        category = self.get(category_id)
        category.is_active = False
        self.session.commit()

    def restore(self, category_id: int) -> None:
        category = self.get(category_id)
        category.is_active = True
        self.session.commit()

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        has_transactions = self.session.scalar(
            select(Transaction.id)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.category_id == category.id,
            )
            .limit(1)
        )
        if has_transactions is not None:
            raise ValidationError("Cannot delete category with existing transactions")
        has_items = self.session.scalar(
            select(BudgetItem.id)
            .where(
                BudgetItem.user_id == self.user_id,
                BudgetItem.category_id == category.id,
            )
            .limit(1)
        )
        if has_items is not None:
            raise ValidationError("Cannot delete category with existing budget items")
        self.session.delete(category)
        self.session.commit()
        logger.info(
            f"category_deleted: user_id={self.user_id} category_id={category_id}"
        )


class DefaultsSeeder:
    """Gives a new user two accounts and a starter set of categories."""

    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def seed(self) -> bool:
        has_accounts = self.session.scalar(
            select(Account.id).where(Account.user_id == self.user_id).limit(1)
        )
        if has_accounts is not None:
            return False

        for name, account_type in DEFAULT_ACCOUNTS:
            self.session.add(
                Account(
                    user_id=self.user_id,
                    name=name,
                    type=account_type,
                    initial_balance_cents=0,
                )
            )
        existing = {
            name.lower()
            for name in self.session.scalars(
                select(Category.name).where(Category.user_id == self.user_id)
            )
        }
        added = 0
        for index, (name, category_type) in enumerate(DEFAULT_CATEGORIES):
            if name.lower() in existing:
                continue
            self.session.add(
                Category(
                    user_id=self.user_id,
                    name=name,
                    type=category_type,
                    rollover_strategy=default_strategy_for(category_type),
                    sort_order=index,
                )
            )
            added += 1
        self.session.commit()
        logger.info(
            f"defaults_seeded: user_id={self.user_id} "
            f"accounts={len(DEFAULT_ACCOUNTS)} categories={added}"
        )
        return True


class AccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_all(self) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == self.user_id)
            .order_by(Account.created_at, Account.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != self.user_id:
            raise NotFound("Account not found")
        return account

    def create(self, data: AccountIn) -> Account:
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            type=data.type,
            initial_balance_cents=Money.parse(data.initial_balance).cents,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        account = self.get(account_id)
        account.name = data.name.strip()
        account.type = data.type
        account.initial_balance_cents = Money.parse(data.initial_balance).cents
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> None:
        account = self.get(account_id)
        in_use = self.session.scalar(
            select(Transaction.id).where(Transaction.account_id == account.id).limit(1)
        )
        if in_use is not None:
            raise ValidationError("Account still has transactions")
        self.session.delete(account)
        self.session.commit()


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def _check_references(self, data: TransactionIn) -> None:
        if data.category_id is not None:
            CategoryService(self.session, self.user_id).get(data.category_id)
        if data.account_id is not None:
            AccountService(self.session, self.user_id).get(data.account_id)

    def create(self, data: TransactionIn) -> Transaction:
        self._check_references(data)
        txn = Transaction(
            user_id=self.user_id,
            account_id=data.account_id,
            category_id=data.category_id,
            amount_cents=Money.parse(data.amount).cents,
            date=data.date,
            memo=data.memo,
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.get(Transaction, transaction_id)
        if not txn or txn.user_id != self.user_id:
            raise NotFound("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        self._check_references(data)
        txn.account_id = data.account_id
        txn.category_id = data.category_id
        txn.amount_cents = Money.parse(data.amount).cents
        txn.date = data.date
        txn.memo = data.memo
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()

    def list_for_month(self, month: MonthLike) -> list[Transaction]:
        period = MonthPeriod.coerce(month)
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date.between(period.start, period.end),
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return self.session.scalars(stmt).all()


class BudgetItemService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    @staticmethod
    def monthly_impact(amount: Money, frequency: BudgetItemFrequency) -> Money:
        return amount.divide(FREQUENCY_MONTHS[frequency])

    def list_all(self, category_id: Optional[int] = None) -> list[BudgetItem]:
        stmt = (
            select(BudgetItem)
            .where(BudgetItem.user_id == self.user_id)
            .order_by(BudgetItem.name, BudgetItem.id)
        )
        if category_id is not None:
            stmt = stmt.where(BudgetItem.category_id == category_id)
        return self.session.scalars(stmt).all()

    def get(self, item_id: int) -> BudgetItem:
        item = self.session.get(BudgetItem, item_id)
        if not item or item.user_id != self.user_id:
            raise NotFound("Budget item not found")
        return item

    def _apply(self, item: BudgetItem, data: BudgetItemIn) -> None:
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        if is_income(category):
            raise ValidationError("Budget items cannot belong to income categories")
        amount = Money.parse(data.amount)
        if not amount.is_positive():
            raise ValidationError("Amount must be greater than zero")
        impact = self.monthly_impact(amount, data.frequency)
        if not impact.is_positive():
            raise ValidationError("Amount is too small for the selected frequency")
        item.category_id = category.id
        item.name = data.name.strip()
        item.amount_cents = amount.cents
        item.frequency = data.frequency
        item.monthly_impact_cents = impact.cents
        item.saved_balance_cents = Money.parse(data.saved_balance).cents

    def create(self, data: BudgetItemIn) -> BudgetItem:
        item = BudgetItem(user_id=self.user_id)
        self._apply(item, data)
        self.session.add(item)
        self.session.commit()
        self.session.refresh(item)
        return item

    def update(self, item_id: int, data: BudgetItemIn) -> BudgetItem:
        item = self.get(item_id)
        self._apply(item, data)
        self.session.commit()
        self.session.refresh(item)
        return item

    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        self.session.delete(item)
        self.session.commit()

    def mark_bill_paid(
        self, item_id: int, account_id: int, day: Optional[date] = None
    ) -> Transaction:
        item = self.get(item_id)
        AccountService(self.session, self.user_id).get(account_id)
        txn = Transaction(
            user_id=self.user_id,
            account_id=account_id,
            category_id=item.category_id,
            amount_cents=-abs(item.monthly_impact_cents),
            date=day or local_today(),
            memo="Bill payment",
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"mark_bill_paid: user_id={self.user_id} item_id={item.id} "
            f"transaction_id={txn.id}"
        )
        return txn
