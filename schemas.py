import datetime as dt
from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from errors import ValidationError
from models import AccountType, BudgetItemFrequency, CategoryType, RolloverStrategy
from money import Money


def _normalize_amount(value: object, *, allow_negative: bool = True) -> str:
    if isinstance(value, float):
        raise ValueError("Amounts must be decimal strings, not floats")
    if isinstance(value, int):
        value = str(value)
    if not isinstance(value, str):
        raise ValueError("Amounts must be decimal strings")
    try:
        amount = Money.parse(value)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc
    if not allow_negative and amount.is_negative():
        raise ValueError("Amount must not be negative")
    return str(amount)


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType
    rollover_strategy: Optional[RolloverStrategy] = None
    target_amount: Optional[str] = None
    due_date: Optional[date] = None
    sort_order: int = 0

    @field_validator("target_amount", mode="before")
    @classmethod
    def _target(cls, value: object) -> Optional[str]:
        if value is None or value == "":
            return None
        return _normalize_amount(value)


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: AccountType
    initial_balance: str = "0.00"

    @field_validator("initial_balance", mode="before")
    @classmethod
    def _balance(cls, value: object) -> str:
        return _normalize_amount(value)


class TransactionIn(BaseModel):
    date: date
    amount: str
    category_id: Optional[int] = None
    account_id: Optional[int] = None
    memo: Optional[str] = Field(default=None, max_length=200)

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: object) -> str:
        return _normalize_amount(value)


class BudgetItemIn(BaseModel):
    category_id: int
    name: str = Field(..., min_length=1, max_length=120)
    amount: str
    frequency: BudgetItemFrequency = BudgetItemFrequency.monthly
    saved_balance: str = "0.00"

    @field_validator("amount", "saved_balance", mode="before")
    @classmethod
    def _amounts(cls, value: object) -> str:
        return _normalize_amount(value, allow_negative=False)


class AssignBudgetIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: str

    @field_validator("amount", mode="before")
    @classmethod
    def _amount(cls, value: object) -> str:
        return _normalize_amount(value)


class QuickAssignIn(BaseModel):
    category_ids: list[int] = Field(default_factory=list)


class PayBillIn(BaseModel):
    account_id: int
    date: Optional[dt.date] = None


class CategoryOut(BaseModel):
    id: int
    name: str
    type: CategoryType
    rollover_strategy: RolloverStrategy
    target_amount: Optional[str]
    due_date: Optional[date]
    is_active: bool
    sort_order: int


class MonthlyBudgetOut(BaseModel):
    id: int
    category_id: int
    month: str
    assigned_amount: str
    start_balance: str


class MonthlyBudgetViewOut(BaseModel):
    id: str
    category_id: int
    category_name: str
    category_type: CategoryType
    rollover_strategy: RolloverStrategy
    month: str
    start_balance: str
    assigned_amount: str
    activity: str
    available: str
    is_virtual: bool


class BudgetSummaryOut(BaseModel):
    month: str
    to_be_budgeted: str
    total_income: str
    leftover_from_reset: str
    total_assigned: str
    total_activity: str
    total_available: str
    overspent: str


class MonthlyStatisticsOut(BaseModel):
    month: str
    income: str
    expenses: str
    balance: str
    transaction_count: int


class YearToDateOut(BaseModel):
    year: int
    total_income: str
    total_expenses: str
    balance: str
    transaction_count: int
    months_with_data: int


class CategorySpendingOut(BaseModel):
    category_id: Optional[int]
    category_name: str
    category_type: Optional[CategoryType]
    total: str
    percentage: str


class SafeToSpendOut(BaseModel):
    safe_to_spend: str
    total_liquid: str
    pending_bills: str
    sinking_contributions: str


class BillStatusOut(BaseModel):
    id: int
    name: str
    category_id: int
    category_name: str
    monthly_impact: str
    is_paid: bool


class SinkingFundOut(BaseModel):
    id: int
    name: str
    category_id: int
    category_name: str
    amount: str
    monthly_impact: str
    saved_balance: str
    progress_percentage: int


class AccountOut(BaseModel):
    id: int
    name: str
    type: AccountType
    initial_balance: str
    current_balance: Optional[str] = None


class TransactionOut(BaseModel):
    id: int
    date: date
    amount: str
    category_id: Optional[int]
    account_id: Optional[int]
    memo: Optional[str]


class BudgetItemOut(BaseModel):
    id: int
    category_id: int
    name: str
    amount: str
    frequency: BudgetItemFrequency
    monthly_impact: str
    saved_balance: str
