import logging
from datetime import date

from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import RepositoryError
from models import CategoryType, MonthlyBudget, RolloverStrategy
from repository import SqlLedgerRepository
from schemas import CategoryIn, TransactionIn
from services import (
    BudgetAssignmentService,
    CategoryService,
    MonthInitializer,
    TransactionService,
)

USER_ID = 1


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def stored_rows(session, month_iso):
    rows = session.scalars(
        select(MonthlyBudget).where(MonthlyBudget.month_iso == month_iso)
    ).all()
    return {
        row.category_id: (row.id, row.assigned_cents, row.start_balance_cents)
        for row in rows
    }


def seed(session):
    categories = CategoryService(session, USER_ID)
    rent = categories.create(CategoryIn(name="Rent", type=CategoryType.fix))
    groceries = categories.create(
        CategoryIn(
            name="Groceries",
            type=CategoryType.variable,
            rollover_strategy=RolloverStrategy.accumulate,
        )
    )
    salary = categories.create(CategoryIn(name="Salary", type=CategoryType.income))
    return rent, groceries, salary


def test_initialize_month_is_idempotent() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    rent, groceries, salary = seed(session)

    BudgetAssignmentService(repo).assign_budget(groceries.id, "2025-01", "300.00")
    TransactionService(session, USER_ID).create(
        TransactionIn(date=date(2025, 1, 8), amount="-250.00", category_id=groceries.id)
    )

    initializer = MonthInitializer(repo)
    assert initializer.initialize_month("2025-02") == 2

    first = stored_rows(session, "2025-02")
    assert set(first) == {rent.id, groceries.id}
    assert salary.id not in first
    assert first[groceries.id][1:] == (0, 5000)
    assert first[rent.id][1:] == (0, 0)

    assert initializer.initialize_month("2025-02") == 0
    assert stored_rows(session, "2025-02") == first


def test_initialize_month_sweeps_surplus_and_keeps_deficit() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    categories = CategoryService(session, USER_ID)
    dining = categories.create(
        CategoryIn(
            name="Dining",
            type=CategoryType.variable,
            rollover_strategy=RolloverStrategy.sweep,
        )
    )
    travel = categories.create(
        CategoryIn(
            name="Travel",
            type=CategoryType.variable,
            rollover_strategy=RolloverStrategy.sweep,
        )
    )
    assign = BudgetAssignmentService(repo)
    txns = TransactionService(session, USER_ID)
    assign.assign_budget(dining.id, "2025-01", "200.00")
    assign.assign_budget(travel.id, "2025-01", "100.00")
    txns.create(TransactionIn(date=date(2025, 1, 9), amount="-50.00", category_id=dining.id))
    txns.create(TransactionIn(date=date(2025, 1, 21), amount="-130.00", category_id=travel.id))

    assert MonthInitializer(repo).initialize_month("2025-02") == 2

    rows = stored_rows(session, "2025-02")
    assert rows[dining.id][1:] == (0, 0)
    assert rows[travel.id][1:] == (0, -3000)


def test_initialize_month_with_only_income_categories() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    CategoryService(session, USER_ID).create(
        CategoryIn(name="Salary", type=CategoryType.income)
    )

    assert MonthInitializer(repo).initialize_month("2025-02") == 0
    assert stored_rows(session, "2025-02") == {}


class FailingInsertRepository(SqlLedgerRepository):
    def __init__(self, session, user_id, failing_category_id):
        super().__init__(session, user_id)
        self.failing_category_id = failing_category_id

    def insert_budget_row(self, category_id, month_iso, **kwargs):
        if category_id == self.failing_category_id:
            raise RepositoryError("insert_budget_row failed")
        return super().insert_budget_row(category_id, month_iso, **kwargs)


def test_initialize_month_skips_failing_categories(caplog) -> None:
    session = make_session()
    rent, groceries, _ = seed(session)
    repo = FailingInsertRepository(session, USER_ID, failing_category_id=rent.id)

    with caplog.at_level(logging.WARNING, logger="services"):
        created = MonthInitializer(repo).initialize_month("2025-02")

    assert created == 1
    assert set(stored_rows(session, "2025-02")) == {groceries.id}
    assert any("initialize_month_skip" in r.getMessage() for r in caplog.records)
