"""Month-to-month carry-over of category balances."""

from typing import Callable, Optional

from errors import ComputationError
from models import Category, CategoryType, MonthlyBudget, RolloverStrategy
from money import Money


def _reset(prior: Money) -> Money:
    return Money.zero()


def _accumulate(prior: Money) -> Money:
    return prior


def _sweep(prior: Money) -> Money:
    return min(prior, Money.zero())


STRATEGIES: dict[RolloverStrategy, Callable[[Money], Money]] = {
    RolloverStrategy.reset: _reset,
    RolloverStrategy.accumulate: _accumulate,
    RolloverStrategy.sweep: _sweep,
}


def compute_start_balance(
    strategy: RolloverStrategy, prior_available: Optional[Money]
) -> Money:
    if prior_available is None:
        return Money.zero()
    try:
        rule = STRATEGIES[strategy]
    except KeyError as exc:
        raise ComputationError(f"Unknown rollover strategy: {strategy!r}") from exc
    return rule(prior_available)


def available_for(
    start_balance: Money, assigned: Money, activity: Money
) -> Money:
    return start_balance + assigned + activity


def prior_available(
    prior_row: Optional[MonthlyBudget], prior_activity: Money
) -> Optional[Money]:
    """The previous month's ``available``, or None when that month left no trace.

    Without a stored row the previous month counts as start 0 and assigned 0,
    so raw activity still rolls over.
    """
    if prior_row is not None:
        return available_for(
            Money.from_cents(prior_row.start_balance_cents),
            Money.from_cents(prior_row.assigned_cents),
            prior_activity,
        )
    if prior_activity:
        return prior_activity
    return None


def rollover_for(
    category: Category,
    prior_row: Optional[MonthlyBudget],
    prior_activity: Money,
) -> Money:
    if category.type == CategoryType.income:
        return Money.zero()
    strategy = category.rollover_strategy or RolloverStrategy.reset
    return compute_start_balance(
        strategy, prior_available(prior_row, prior_activity)
    )
