import logging
from typing import Optional

from fastapi import Depends, FastAPI, Header, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from auth import bearer_token, resolve_user
from config import get_settings
from database import get_db
from errors import (
    ComputationError,
    NotFound,
    RepositoryError,
    Unauthorized,
    ValidationError,
)
from models import Account, BudgetItem, Category, MonthlyBudget, Transaction
from money import Money
from periods import MonthPeriod
from repository import SqlLedgerRepository
from schemas import (
    AccountIn,
    AccountOut,
    AssignBudgetIn,
    BillStatusOut,
    BudgetItemIn,
    BudgetItemOut,
    BudgetSummaryOut,
    CategoryIn,
    CategoryOut,
    CategorySpendingOut,
    MonthlyBudgetOut,
    MonthlyBudgetViewOut,
    MonthlyStatisticsOut,
    PayBillIn,
    QuickAssignIn,
    SafeToSpendOut,
    SinkingFundOut,
    TransactionIn,
    TransactionOut,
    YearToDateOut,
)
from services import (
    AccountService,
    BudgetAssignmentService,
    BudgetItemService,
    BudgetLedger,
    CategoryService,
    DefaultsSeeder,
    MonthInitializer,
    MonthlyStatistics,
    SafeToSpendCalculator,
    SuggestionEngine,
    SummaryAggregator,
    TransactionService,
)

settings = get_settings()
logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="ZBB Ledger")

GENERIC_FAILURE = "Failed to compute or save budget data"


@app.exception_handler(Unauthorized)
def unauthorized_handler(request: Request, exc: Unauthorized) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc)},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(ValidationError)
def validation_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(NotFound)
def not_found_handler(request: Request, exc: NotFound) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(RepositoryError)
def repository_handler(request: Request, exc: RepositoryError) -> JSONResponse:
    logger.error(f"request_failed: path={request.url.path} error={exc}")
    return JSONResponse(status_code=500, content={"detail": GENERIC_FAILURE})


@app.exception_handler(ComputationError)
def computation_handler(request: Request, exc: ComputationError) -> JSONResponse:
    logger.error(f"computation_failed: path={request.url.path} error={exc}")
    return JSONResponse(status_code=500, content={"detail": GENERIC_FAILURE})


@app.exception_handler(SQLAlchemyError)
def database_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"database_failure: path={request.url.path}")
    return JSONResponse(status_code=500, content={"detail": GENERIC_FAILURE})


def current_user_id(authorization: Optional[str] = Header(default=None)) -> int:
    return resolve_user(bearer_token(authorization))


def ledger_repo(
    db: Session = Depends(get_db), user_id: int = Depends(current_user_id)
) -> SqlLedgerRepository:
    return SqlLedgerRepository(db, user_id)


def month_param(month: str) -> MonthPeriod:
    return MonthPeriod.parse(month)


def _money(cents: Optional[int]) -> Optional[str]:
    if cents is None:
        return None
    return str(Money.from_cents(cents))


def category_out(category: Category) -> CategoryOut:
    return CategoryOut(
        id=category.id,
        name=category.name,
        type=category.type,
        rollover_strategy=category.rollover_strategy,
        target_amount=_money(category.target_amount_cents),
        due_date=category.due_date,
        is_active=category.is_active,
        sort_order=category.sort_order,
    )


def account_out(account: Account, balance: Optional[Money] = None) -> AccountOut:
    return AccountOut(
        id=account.id,
        name=account.name,
        type=account.type,
        initial_balance=_money(account.initial_balance_cents),
        current_balance=str(balance) if balance is not None else None,
    )


def transaction_out(txn: Transaction) -> TransactionOut:
    return TransactionOut(
        id=txn.id,
        date=txn.date,
        amount=_money(txn.amount_cents),
        category_id=txn.category_id,
        account_id=txn.account_id,
        memo=txn.memo,
    )


def budget_item_out(item: BudgetItem) -> BudgetItemOut:
    return BudgetItemOut(
        id=item.id,
        category_id=item.category_id,
        name=item.name,
        amount=_money(item.amount_cents),
        frequency=item.frequency,
        monthly_impact=_money(item.monthly_impact_cents),
        saved_balance=_money(item.saved_balance_cents),
    )


def budget_row_out(row: MonthlyBudget) -> MonthlyBudgetOut:
    return MonthlyBudgetOut(
        id=row.id,
        category_id=row.category_id,
        month=row.month_iso,
        assigned_amount=_money(row.assigned_cents),
        start_balance=_money(row.start_balance_cents),
    )


def statistics_out(stats: MonthlyStatistics) -> MonthlyStatisticsOut:
    return MonthlyStatisticsOut(
        month=stats.month,
        income=str(stats.income),
        expenses=str(stats.expenses),
        balance=str(stats.balance),
        transaction_count=stats.transaction_count,
    )


@app.get("/api/months/{month}/budgets", response_model=list[MonthlyBudgetViewOut])
def api_month_budgets(
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    return [
        MonthlyBudgetViewOut(
            id=view.id,
            category_id=view.category.id,
            category_name=view.category.name,
            category_type=view.category.type,
            rollover_strategy=view.category.rollover_strategy,
            month=view.month,
            start_balance=str(view.start_balance),
            assigned_amount=str(view.assigned),
            activity=str(view.activity),
            available=str(view.available),
            is_virtual=view.is_virtual,
        )
        for view in BudgetLedger(repo).month_view(period)
    ]


@app.get("/api/months/{month}/summary", response_model=BudgetSummaryOut)
def api_month_summary(
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    summary = SummaryAggregator(repo).budget_summary(period)
    return BudgetSummaryOut(
        month=summary.month,
        to_be_budgeted=str(summary.to_be_budgeted),
        total_income=str(summary.total_income),
        leftover_from_reset=str(summary.leftover_from_reset),
        total_assigned=str(summary.total_assigned),
        total_activity=str(summary.total_activity),
        total_available=str(summary.total_available),
        overspent=str(summary.overspent),
    )


@app.get("/api/months/{month}/statistics", response_model=MonthlyStatisticsOut)
def api_month_statistics(
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    return statistics_out(SummaryAggregator(repo).monthly_statistics(period))


@app.get(
    "/api/months/{month}/category-spending",
    response_model=list[CategorySpendingOut],
)
def api_category_spending(
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    return [
        CategorySpendingOut(
            category_id=row.category_id,
            category_name=row.category_name,
            category_type=row.category_type,
            total=str(row.total),
            percentage=str(row.percentage),
        )
        for row in SummaryAggregator(repo).category_spending(period)
    ]


@app.get("/api/trends", response_model=list[MonthlyStatisticsOut])
def api_trends(
    start: str,
    end: str,
    repo: SqlLedgerRepository = Depends(ledger_repo),
):
    months = SummaryAggregator(repo).monthly_trends(
        MonthPeriod.parse(start), MonthPeriod.parse(end)
    )
    return [statistics_out(stats) for stats in months]


@app.get("/api/years/{year}/totals", response_model=YearToDateOut)
def api_year_totals(year: int, repo: SqlLedgerRepository = Depends(ledger_repo)):
    totals = SummaryAggregator(repo).year_to_date(year)
    return YearToDateOut(
        year=totals.year,
        total_income=str(totals.total_income),
        total_expenses=str(totals.total_expenses),
        balance=str(totals.balance),
        transaction_count=totals.transaction_count,
        months_with_data=totals.months_with_data,
    )


@app.post("/api/months/{month}/initialize")
def api_initialize_month(
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    created = MonthInitializer(repo).initialize_month(period)
    return {"month": period.iso, "created": created}


@app.put(
    "/api/months/{month}/budgets/{category_id}", response_model=MonthlyBudgetOut
)
def api_assign_budget(
    category_id: int,
    payload: AssignBudgetIn,
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    row = BudgetAssignmentService(repo).assign_budget(
        category_id, period, payload.amount
    )
    return budget_row_out(row)


@app.post("/api/months/{month}/quick-assign")
def api_quick_assign(
    payload: QuickAssignIn,
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    assigned = BudgetAssignmentService(repo).quick_assign(payload.category_ids, period)
    return {"month": period.iso, "assigned": assigned}


@app.get("/api/months/{month}/suggestions")
def api_suggestions(
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    suggestions = SuggestionEngine(repo).all_suggested_amounts(period)
    return {str(category_id): str(amount) for category_id, amount in suggestions.items()}


@app.get("/api/months/{month}/suggestions/{category_id}")
def api_suggestion(
    category_id: int,
    repo: SqlLedgerRepository = Depends(ledger_repo),
    period: MonthPeriod = Depends(month_param),
):
    amount = SuggestionEngine(repo).suggested_amount(category_id, period)
    return {
        "category_id": category_id,
        "month": period.iso,
        "suggested_amount": str(amount) if amount is not None else None,
    }


@app.get("/api/safe-to-spend", response_model=SafeToSpendOut)
def api_safe_to_spend(repo: SqlLedgerRepository = Depends(ledger_repo)):
    result = SafeToSpendCalculator(repo).safe_to_spend()
    return SafeToSpendOut(
        safe_to_spend=str(result.safe_to_spend),
        total_liquid=str(result.total_liquid),
        pending_bills=str(result.pending_bills),
        sinking_contributions=str(result.sinking_contributions),
    )


@app.get("/api/bills", response_model=list[BillStatusOut])
def api_bills(repo: SqlLedgerRepository = Depends(ledger_repo)):
    return [
        BillStatusOut(
            id=bill.item.id,
            name=bill.item.name,
            category_id=bill.item.category_id,
            category_name=bill.item.category.name,
            monthly_impact=str(bill.monthly_impact),
            is_paid=bill.is_paid,
        )
        for bill in SafeToSpendCalculator(repo).bills_checklist()
    ]


@app.get("/api/sinking-funds", response_model=list[SinkingFundOut])
def api_sinking_funds(repo: SqlLedgerRepository = Depends(ledger_repo)):
    return [
        SinkingFundOut(
            id=fund.item.id,
            name=fund.item.name,
            category_id=fund.item.category_id,
            category_name=fund.item.category.name,
            amount=str(fund.amount),
            monthly_impact=str(fund.monthly_impact),
            saved_balance=str(fund.saved_balance),
            progress_percentage=fund.progress_percentage,
        )
        for fund in SafeToSpendCalculator(repo).sinking_funds()
    ]


@app.get("/api/categories", response_model=list[CategoryOut])
def api_categories(
    include_inactive: bool = False,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    service = CategoryService(db, user_id)
    return [category_out(c) for c in service.list_all(include_inactive)]


@app.post("/api/categories", response_model=CategoryOut, status_code=201)
def api_create_category(
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    category = CategoryService(db, user_id).create(payload)
    logger.info(f"category_created: user_id={user_id} category_id={category.id}")
    return category_out(category)


@app.get("/api/categories/{category_id}", response_model=CategoryOut)
def api_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return category_out(CategoryService(db, user_id).get(category_id))


@app.put("/api/categories/{category_id}", response_model=CategoryOut)
def api_update_category(
    category_id: int,
    payload: CategoryIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return category_out(CategoryService(db, user_id).update(category_id, payload))


@app.post("/api/categories/{category_id}/archive", status_code=204)
def api_archive_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryService(db, user_id).archive(category_id)
    return Response(status_code=204)


@app.post("/api/categories/{category_id}/restore", status_code=204)
def api_restore_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryService(db, user_id).restore(category_id)
    return Response(status_code=204)


@app.delete("/api/categories/{category_id}", status_code=204)
def api_delete_category(
    category_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    CategoryService(db, user_id).delete(category_id)
    return Response(status_code=204)


@app.post("/api/seed-defaults")
def api_seed_defaults(
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return {"seeded": DefaultsSeeder(db, user_id).seed()}


@app.get("/api/accounts", response_model=list[AccountOut])
def api_accounts(repo: SqlLedgerRepository = Depends(ledger_repo)):
    return [
        account_out(balance.account, balance.current_balance)
        for balance in SafeToSpendCalculator(repo).account_balances()
    ]


@app.post("/api/accounts", response_model=AccountOut, status_code=201)
def api_create_account(
    payload: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    account = AccountService(db, user_id).create(payload)
    return account_out(account)


@app.put("/api/accounts/{account_id}", response_model=AccountOut)
def api_update_account(
    account_id: int,
    payload: AccountIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return account_out(AccountService(db, user_id).update(account_id, payload))


@app.delete("/api/accounts/{account_id}", status_code=204)
def api_delete_account(
    account_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    AccountService(db, user_id).delete(account_id)
    return Response(status_code=204)


@app.get("/api/transactions", response_model=list[TransactionOut])
def api_transactions(
    month: Optional[str] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    period = MonthPeriod.parse(month) if month else MonthPeriod.current()
    items = TransactionService(db, user_id).list_for_month(period)
    return [transaction_out(txn) for txn in items]


@app.post("/api/transactions", response_model=TransactionOut, status_code=201)
def api_create_transaction(
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).create(payload)
    return transaction_out(txn)


@app.put("/api/transactions/{transaction_id}", response_model=TransactionOut)
def api_update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = TransactionService(db, user_id).update(transaction_id, payload)
    return transaction_out(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(
    transaction_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    TransactionService(db, user_id).delete(transaction_id)
    return Response(status_code=204)


@app.get("/api/budget-items", response_model=list[BudgetItemOut])
def api_budget_items(
    category_id: Optional[int] = None,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    items = BudgetItemService(db, user_id).list_all(category_id)
    return [budget_item_out(item) for item in items]


@app.post("/api/budget-items", response_model=BudgetItemOut, status_code=201)
def api_create_budget_item(
    payload: BudgetItemIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return budget_item_out(BudgetItemService(db, user_id).create(payload))


@app.put("/api/budget-items/{item_id}", response_model=BudgetItemOut)
def api_update_budget_item(
    item_id: int,
    payload: BudgetItemIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    return budget_item_out(BudgetItemService(db, user_id).update(item_id, payload))


@app.delete("/api/budget-items/{item_id}", status_code=204)
def api_delete_budget_item(
    item_id: int,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    BudgetItemService(db, user_id).delete(item_id)
    return Response(status_code=204)


@app.post(
    "/api/budget-items/{item_id}/pay", response_model=TransactionOut, status_code=201
)
def api_pay_bill(
    item_id: int,
    payload: PayBillIn,
    db: Session = Depends(get_db),
    user_id: int = Depends(current_user_id),
):
    txn = BudgetItemService(db, user_id).mark_bill_paid(
        item_id, payload.account_id, payload.date
    )
    return transaction_out(txn)
