import pytest

from errors import ComputationError
from models import Category, CategoryType, MonthlyBudget, RolloverStrategy
from money import Money
from rollover import compute_start_balance, prior_available, rollover_for


def m(value: str) -> Money:
    return Money.parse(value)


@pytest.mark.parametrize(
    "strategy,prior,expected",
    [
        (RolloverStrategy.reset, "150.00", "0.00"),
        (RolloverStrategy.reset, "-20.00", "0.00"),
        (RolloverStrategy.accumulate, "150.00", "150.00"),
        (RolloverStrategy.accumulate, "-50.00", "-50.00"),
        (RolloverStrategy.sweep, "150.00", "0.00"),
        (RolloverStrategy.sweep, "-30.00", "-30.00"),
    ],
)
def test_strategy_table(strategy, prior, expected) -> None:
    assert str(compute_start_balance(strategy, m(prior))) == expected


def test_missing_prior_month_starts_at_zero() -> None:
    for strategy in RolloverStrategy:
        assert compute_start_balance(strategy, None) == Money.zero()


def test_unknown_strategy_is_a_computation_error() -> None:
    with pytest.raises(ComputationError):
        compute_start_balance("BOGUS", m("1.00"))  # type: ignore[arg-type]


def test_prior_available_uses_row_and_activity() -> None:
    row = MonthlyBudget(
        category_id=1, month_iso="2025-01", start_balance_cents=1000, assigned_cents=30000
    )
    assert str(prior_available(row, m("-350.00"))) == "-40.00"


def test_prior_available_without_row() -> None:
    assert str(prior_available(None, m("-20.00"))) == "-20.00"
    assert prior_available(None, Money.zero()) is None


def test_rollover_for_income_is_always_zero() -> None:
    salary = Category(
        id=1,
        name="Salary",
        type=CategoryType.income,
        rollover_strategy=RolloverStrategy.accumulate,
    )
    assert rollover_for(salary, None, m("3000.00")) == Money.zero()


def test_rollover_for_accumulate_without_prior_row_carries_activity() -> None:
    groceries = Category(
        id=2,
        name="Groceries",
        type=CategoryType.variable,
        rollover_strategy=RolloverStrategy.accumulate,
    )
    assert str(rollover_for(groceries, None, m("-20.00"))) == "-20.00"
