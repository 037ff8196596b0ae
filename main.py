import logging
from typing import Optional

from fastapi import Depends, FastAPI, HTTPException
from sqlalchemy.orm import Session

from balances import BalanceService
from config import get_settings
from database import SessionLocal, snapshot_scope
from errors import NotFoundError
from models import TransactionKind
from money import quantize_money
from periods import resolve_month
from recurrence import local_today
from schemas import (
    AccountIn,
    AmountEditIn,
    CategoryIn,
    CompletionIn,
    DatesEditIn,
    EntryIn,
    MonthView,
    UpdateFutureIn,
)
from services import (
    AccountService,
    CategoryService,
    DashboardService,
    InsightsService,
    RecurringService,
    TransactionService,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Monthly Ledger")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_read_db():
    with snapshot_scope() as db:
        yield db


def _http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


def _entry_out(entry) -> dict[str, object]:
    return {
        "id": entry.id,
        "title": entry.title,
        "amount": entry.amount,
        "kind": entry.kind,
        "schedule_type": entry.schedule_type,
        "cadence": entry.cadence,
        "date": entry.date,
        "start_date": entry.start_date,
        "end_date": entry.end_date,
        "is_active": entry.is_active,
        "category_id": entry.category_id,
        "paid_from_account_id": entry.paid_from_account_id,
        "received_to_account_id": entry.received_to_account_id,
        "recurrence_group_id": entry.recurrence_group_id,
        "entry_role": entry.entry_role,
        "parent_id": entry.parent_id,
        "is_completed": entry.is_completed,
        "completed_at": entry.completed_at,
    }


def _account_out(account) -> dict[str, object]:
    return {
        "id": account.id,
        "name": account.name,
        "account_type": account.account_type,
        "initial_balance": account.initial_balance,
        "use_manual_override": account.use_manual_override,
        "manual_balance_override": account.manual_balance_override,
    }


@app.get("/api/dashboard", response_model=MonthView)
def dashboard(
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_read_db),
):
    try:
        period = resolve_month(year, month, today=local_today())
        return DashboardService(db).build_month(period.year, period.month)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/categories")
def list_categories(db: Session = Depends(get_db)):
    return [
        {"id": c.id, "name": c.name, "type": c.type, "is_system": c.is_system}
        for c in CategoryService(db).list_all()
    ]


@app.post("/api/categories", status_code=201)
def create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"id": category.id, "name": category.name, "type": category.type}


@app.post("/api/categories/seed")
def seed_categories(db: Session = Depends(get_db)):
    return {"created": CategoryService(db).seed_defaults()}


@app.get("/api/accounts")
def list_accounts(db: Session = Depends(get_read_db)):
    balances = BalanceService(db)
    today = local_today()
    return [
        {
            **_account_out(a),
            "current_balance": quantize_money(balances.current_balance(a.id, today)),
        }
        for a in AccountService(db).list_all()
    ]


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        return _account_out(AccountService(db).create(data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.put("/api/accounts/{account_id}")
def update_account(account_id: int, data: AccountIn, db: Session = Depends(get_db)):
    try:
        return _account_out(AccountService(db).update(account_id, data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/accounts/{account_id}", status_code=204)
def delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).soft_delete(account_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/accounts/{account_id}/balance")
def account_balance(
    account_id: int,
    year: Optional[int] = None,
    month: Optional[int] = None,
    db: Session = Depends(get_read_db),
):
    try:
        period = resolve_month(year, month, today=local_today())
        balance = BalanceService(db).balance_as_of(account_id, period.year, period.month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {
        "account_id": account_id,
        "year": period.year,
        "month": period.month,
        "balance": quantize_money(balance),
    }


@app.get("/api/transactions")
def list_transactions(db: Session = Depends(get_db)):
    split = TransactionService(db).list_split(local_today())
    return {key: [_entry_out(e) for e in entries] for key, entries in split.items()}


@app.post("/api/transactions", status_code=201)
def create_transaction(data: EntryIn, db: Session = Depends(get_db)):
    try:
        return _entry_out(TransactionService(db).create(data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/transactions/{entry_id}/amount")
def edit_amount(entry_id: int, data: AmountEditIn, db: Session = Depends(get_db)):
    try:
        return _entry_out(TransactionService(db).edit_amount(entry_id, data.amount))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/transactions/{entry_id}/dates")
def edit_dates(entry_id: int, data: DatesEditIn, db: Session = Depends(get_db)):
    try:
        return _entry_out(TransactionService(db).edit_dates(entry_id, data))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/transactions/{entry_id}/active")
def set_active(entry_id: int, is_active: bool, db: Session = Depends(get_db)):
    try:
        return _entry_out(TransactionService(db).set_active(entry_id, is_active))
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.delete("/api/transactions/{entry_id}", status_code=204)
def delete_transaction(entry_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).soft_delete(entry_id)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.post("/api/recurring/{template_id}/update-future", status_code=201)
def update_future(
    template_id: int, data: UpdateFutureIn, db: Session = Depends(get_db)
):
    try:
        successor = RecurringService(db).update_future(
            template_id, data.effective_from, data.new_amount
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _entry_out(successor)


@app.get("/api/recurring/series/{group_id}")
def recurring_series(group_id: str, db: Session = Depends(get_db)):
    return [_entry_out(e) for e in RecurringService(db).series(group_id)]


@app.post("/api/recurring/{template_id}/complete")
def complete_recurring(
    template_id: int, data: CompletionIn, db: Session = Depends(get_db)
):
    try:
        record = RecurringService(db).complete(
            template_id, data.year, data.month, data.amount
        )
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _entry_out(record)


@app.post("/api/recurring/{template_id}/revert")
def revert_recurring(
    template_id: int, year: int, month: int, db: Session = Depends(get_db)
):
    try:
        reverted = RecurringService(db).revert(template_id, year, month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"reverted": reverted}


@app.post("/api/recurring/complete-all")
def complete_all_recurring(year: int, month: int, db: Session = Depends(get_db)):
    try:
        created = RecurringService(db).complete_all_due(year, month)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return {"created": len(created)}


@app.get("/api/insights/balance")
def insight_balance(
    year: int,
    month: int,
    account: Optional[str] = None,
    db: Session = Depends(get_read_db),
):
    try:
        return InsightsService(db).balances(year, month, account)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/api/insights/{kind}")
def insight_flow(
    kind: TransactionKind,
    year: int,
    month: int,
    account: Optional[str] = None,
    db: Session = Depends(get_read_db),
):
    try:
        return InsightsService(db).monthly_flow(year, month, kind, account)
    except ValueError as exc:
        raise _http_error(exc) from exc


@app.get("/healthz")
def healthz():
    return {"status": "ok", "today": local_today().isoformat()}
