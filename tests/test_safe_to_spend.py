from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import ValidationError
from models import AccountType, BudgetItemFrequency, CategoryType
from money import Money
from repository import SqlLedgerRepository
from schemas import AccountIn, BudgetItemIn, CategoryIn
from services import (
    AccountService,
    BudgetItemService,
    CategoryService,
    SafeToSpendCalculator,
)

USER_ID = 1
TODAY = date(2025, 3, 10)


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def seed(session):
    categories = CategoryService(session, USER_ID)
    rent = categories.create(CategoryIn(name="Rent", type=CategoryType.fix))
    insurance = categories.create(CategoryIn(name="Insurance", type=CategoryType.sf2))
    account = AccountService(session, USER_ID).create(
        AccountIn(name="Checking", type=AccountType.bank, initial_balance="5000.00")
    )
    items = BudgetItemService(session, USER_ID)
    rent_bill = items.create(
        BudgetItemIn(category_id=rent.id, name="Rent", amount="800.00")
    )
    policy = items.create(
        BudgetItemIn(
            category_id=insurance.id,
            name="Car insurance",
            amount="1800.00",
            frequency=BudgetItemFrequency.annual,
            saved_balance="900.00",
        )
    )
    return account, rent_bill, policy


def test_safe_to_spend_reserves_bills_and_sinking_funds() -> None:
    session = make_session()
    seed(session)
    repo = SqlLedgerRepository(session, USER_ID)

    result = SafeToSpendCalculator(repo).safe_to_spend(TODAY)

    assert str(result.total_liquid) == "5000.00"
    assert str(result.pending_bills) == "800.00"
    assert str(result.sinking_contributions) == "150.00"
    assert str(result.safe_to_spend) == "4050.00"


def test_paid_bill_stops_being_pending() -> None:
    session = make_session()
    account, rent_bill, _ = seed(session)
    repo = SqlLedgerRepository(session, USER_ID)

    txn = BudgetItemService(session, USER_ID).mark_bill_paid(
        rent_bill.id, account.id, date(2025, 3, 5)
    )
    assert txn.amount_cents == -80000
    assert txn.category_id == rent_bill.category_id

    calculator = SafeToSpendCalculator(repo)
    bills = calculator.bills_checklist(TODAY)
    assert [(b.item.name, b.is_paid) for b in bills] == [("Rent", True)]
    # Still unpaid when looking at April.
    assert calculator.bills_checklist(date(2025, 4, 1))[0].is_paid is False

    result = calculator.safe_to_spend(TODAY)
    assert str(result.total_liquid) == "4200.00"
    assert str(result.pending_bills) == "0.00"
    assert str(result.safe_to_spend) == "4050.00"


def test_sinking_fund_progress() -> None:
    session = make_session()
    _, _, policy = seed(session)
    repo = SqlLedgerRepository(session, USER_ID)

    funds = SafeToSpendCalculator(repo).sinking_funds()
    assert len(funds) == 1
    assert funds[0].progress_percentage == 50
    assert str(funds[0].monthly_impact) == "150.00"

    BudgetItemService(session, USER_ID).update(
        policy.id,
        BudgetItemIn(
            category_id=policy.category_id,
            name="Car insurance",
            amount="1800.00",
            frequency=BudgetItemFrequency.annual,
            saved_balance="2000.00",
        ),
    )
    assert SafeToSpendCalculator(repo).sinking_funds()[0].progress_percentage == 100


def test_monthly_impact_by_frequency() -> None:
    impact = BudgetItemService.monthly_impact
    assert str(impact(Money.parse("1200.00"), BudgetItemFrequency.annual)) == "100.00"
    assert str(impact(Money.parse("100.00"), BudgetItemFrequency.quarterly)) == "33.33"
    assert str(impact(Money.parse("90.00"), BudgetItemFrequency.semi_annual)) == "15.00"
    assert str(impact(Money.parse("55.55"), BudgetItemFrequency.monthly)) == "55.55"


def test_budget_item_validation() -> None:
    session = make_session()
    categories = CategoryService(session, USER_ID)
    salary = categories.create(CategoryIn(name="Salary", type=CategoryType.income))
    misc = categories.create(CategoryIn(name="Misc", type=CategoryType.variable))
    items = BudgetItemService(session, USER_ID)

    with pytest.raises(ValidationError):
        items.create(BudgetItemIn(category_id=salary.id, name="Nope", amount="10.00"))
    with pytest.raises(ValidationError):
        items.create(
            BudgetItemIn(
                category_id=misc.id,
                name="Tiny",
                amount="0.01",
                frequency=BudgetItemFrequency.annual,
            )
        )
    with pytest.raises(ValidationError):
        items.create(BudgetItemIn(category_id=misc.id, name="Zero", amount="0.00"))


def test_account_balances_include_transactions() -> None:
    session = make_session()
    account, rent_bill, _ = seed(session)
    BudgetItemService(session, USER_ID).mark_bill_paid(
        rent_bill.id, account.id, date(2025, 2, 1)
    )
    repo = SqlLedgerRepository(session, USER_ID)

    balances = SafeToSpendCalculator(repo).account_balances()
    assert [(b.account.name, str(b.current_balance)) for b in balances] == [
        ("Checking", "4200.00")
    ]
