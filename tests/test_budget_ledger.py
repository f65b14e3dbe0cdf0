from datetime import date

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from models import CategoryType, RolloverStrategy
from repository import SqlLedgerRepository
from schemas import CategoryIn, TransactionIn
from services import (
    BudgetAssignmentService,
    BudgetLedger,
    CategoryService,
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


def add_category(session, name, type_, strategy=None):
    return CategoryService(session, USER_ID).create(
        CategoryIn(name=name, type=type_, rollover_strategy=strategy)
    )


def spend(session, category, amount, day):
    return TransactionService(session, USER_ID).create(
        TransactionIn(date=day, amount=amount, category_id=category.id)
    )


def views_by_name(repo, month):
    return {v.category.name: v for v in BudgetLedger(repo).month_view(month)}


def test_reset_category_starts_next_month_at_zero() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    rent = add_category(session, "Rent", CategoryType.fix)
    assert rent.rollover_strategy == RolloverStrategy.reset

    BudgetAssignmentService(repo).assign_budget(rent.id, "2025-01", "1000.00")
    spend(session, rent, "-1000.00", date(2025, 1, 3))

    jan = views_by_name(repo, "2025-01")["Rent"]
    assert str(jan.assigned) == "1000.00"
    assert str(jan.activity) == "-1000.00"
    assert str(jan.available) == "0.00"

    feb = views_by_name(repo, "2025-02")["Rent"]
    assert str(feb.start_balance) == "0.00"


def test_reset_discards_overspending_too() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    fun = add_category(session, "Fun", CategoryType.variable, RolloverStrategy.reset)

    BudgetAssignmentService(repo).assign_budget(fun.id, "2025-01", "50.00")
    spend(session, fun, "-70.00", date(2025, 1, 20))

    assert str(views_by_name(repo, "2025-01")["Fun"].available) == "-20.00"
    assert str(views_by_name(repo, "2025-02")["Fun"].start_balance) == "0.00"


def test_accumulate_carries_overspending_forward() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    groceries = add_category(
        session, "Groceries", CategoryType.variable, RolloverStrategy.accumulate
    )

    BudgetAssignmentService(repo).assign_budget(groceries.id, "2025-01", "300.00")
    spend(session, groceries, "-200.00", date(2025, 1, 5))
    spend(session, groceries, "-150.00", date(2025, 1, 25))

    jan = views_by_name(repo, "2025-01")["Groceries"]
    assert str(jan.available) == "-50.00"

    feb = views_by_name(repo, "2025-02")["Groceries"]
    assert str(feb.start_balance) == "-50.00"
    assert str(feb.available) == "-50.00"


def test_sweep_keeps_only_deficits() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    dining = add_category(session, "Dining", CategoryType.variable, RolloverStrategy.sweep)
    travel = add_category(session, "Travel", CategoryType.variable, RolloverStrategy.sweep)
    assign = BudgetAssignmentService(repo)

    assign.assign_budget(dining.id, "2025-01", "200.00")
    spend(session, dining, "-50.00", date(2025, 1, 10))
    assign.assign_budget(travel.id, "2025-01", "100.00")
    spend(session, travel, "-130.00", date(2025, 1, 11))

    feb = views_by_name(repo, "2025-02")
    assert str(feb["Dining"].start_balance) == "0.00"
    assert str(feb["Travel"].start_balance) == "-30.00"


def test_available_identity_holds_for_every_category() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    rent = add_category(session, "Rent", CategoryType.fix)
    groceries = add_category(
        session, "Groceries", CategoryType.variable, RolloverStrategy.accumulate
    )
    vacation = add_category(session, "Vacation", CategoryType.sf1)
    salary = add_category(session, "Salary", CategoryType.income)
    assign = BudgetAssignmentService(repo)

    assign.assign_budget(rent.id, "2025-01", "900.00")
    assign.assign_budget(groceries.id, "2025-01", "250.00")
    assign.assign_budget(vacation.id, "2025-01", "100.00")
    spend(session, rent, "-900.00", date(2025, 1, 1))
    spend(session, groceries, "-275.50", date(2025, 1, 15))
    spend(session, salary, "3000.00", date(2025, 1, 1))
    assign.assign_budget(groceries.id, "2025-02", "300.00")
    spend(session, groceries, "-10.25", date(2025, 2, 2))

    for month in ("2025-01", "2025-02", "2025-03"):
        for view in BudgetLedger(repo).month_view(month):
            assert view.available == view.start_balance + view.assigned + view.activity

    feb = views_by_name(repo, "2025-02")
    assert str(feb["Groceries"].start_balance) == "-25.50"
    assert str(feb["Vacation"].start_balance) == "100.00"
    assert str(feb["Salary"].start_balance) == "0.00"


def test_categories_without_rows_are_virtual() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    rent = add_category(session, "Rent", CategoryType.fix)
    groceries = add_category(session, "Groceries", CategoryType.variable)
    row = BudgetAssignmentService(repo).assign_budget(rent.id, "2025-02", "800.00")

    feb = views_by_name(repo, "2025-02")
    assert feb["Rent"].id == str(row.id)
    assert feb["Rent"].is_virtual is False
    assert feb["Groceries"].id == f"virtual-{groceries.id}"
    assert feb["Groceries"].is_virtual is True
    assert feb["Groceries"].assigned.cents == 0


def test_activity_is_recomputed_after_transaction_delete() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    groceries = add_category(session, "Groceries", CategoryType.variable)
    txn = spend(session, groceries, "-42.00", date(2025, 1, 9))

    assert str(views_by_name(repo, "2025-01")["Groceries"].activity) == "-42.00"

    TransactionService(session, USER_ID).delete(txn.id)
    assert str(views_by_name(repo, "2025-01")["Groceries"].activity) == "0.00"


def test_accumulate_without_prior_row_uses_prior_activity() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    groceries = add_category(
        session, "Groceries", CategoryType.variable, RolloverStrategy.accumulate
    )
    spend(session, groceries, "-20.00", date(2025, 1, 12))

    assert str(views_by_name(repo, "2025-02")["Groceries"].start_balance) == "-20.00"


def test_archived_categories_and_other_users_are_hidden() -> None:
    session = make_session()
    repo = SqlLedgerRepository(session, USER_ID)
    add_category(session, "Rent", CategoryType.fix)
    old = add_category(session, "Old", CategoryType.variable)
    CategoryService(session, USER_ID).archive(old.id)
    CategoryService(session, 2).create(
        CategoryIn(name="Someone else", type=CategoryType.variable)
    )

    assert set(views_by_name(repo, "2025-01")) == {"Rent"}
