import datetime as dt
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

from models import AccountType, Cadence, ScheduleType, TransactionKind


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: TransactionKind


class AccountIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    account_type: AccountType = AccountType.savings
    initial_balance: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    use_manual_override: bool = False
    manual_balance_override: Optional[Decimal] = Field(
        default=None, max_digits=14, decimal_places=2
    )


class EntryIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)
    kind: TransactionKind
    schedule_type: ScheduleType = ScheduleType.one_time
    category_id: Optional[int] = None
    date: Optional[dt.date] = None
    cadence: Optional[Cadence] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    paid_from_account_id: Optional[int] = None
    received_to_account_id: Optional[int] = None


class AmountEditIn(BaseModel):
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class DatesEditIn(BaseModel):
    date: Optional[dt.date] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None


class UpdateFutureIn(BaseModel):
    effective_from: dt.date
    new_amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class CompletionIn(BaseModel):
    year: int = Field(..., ge=1970, le=3000)
    month: int = Field(..., ge=1, le=12)
    amount: Optional[Decimal] = Field(default=None, gt=0, max_digits=14, decimal_places=2)


class DueStatus(str, Enum):
    not_due = "not_due"
    due_pending = "due_pending"
    due_completed = "due_completed"


class DueItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    entry_id: int
    title: str
    amount: Decimal
    kind: TransactionKind
    status: DueStatus
    is_recurring: bool
    due_date: Optional[dt.date] = None
    installment_number: Optional[int] = None
    total_installments: Optional[int] = None

    @computed_field
    @property
    def completed(self) -> bool:
        return self.status == DueStatus.due_completed


class CategoryTotal(BaseModel):
    category_name: str
    kind: TransactionKind
    total: Decimal


class AccountBalance(BaseModel):
    account_id: int
    account_name: str
    balance: Decimal
    is_manual_override: bool


class AccountBalanceSeries(BaseModel):
    account_id: int
    account_name: str
    monthly_balances: list[Decimal]


class MonthView(BaseModel):
    year: int
    month: int
    total_income: Decimal
    total_expense: Decimal
    net: Decimal
    account_balances: list[AccountBalance] = Field(default_factory=list)
    due_items: list[DueItem] = Field(default_factory=list)
    category_totals: list[CategoryTotal] = Field(default_factory=list)
    month_labels: list[str] = Field(default_factory=list)
    yearly_account_balances: list[AccountBalanceSeries] = Field(default_factory=list)
    completed_recurring_count: int = 0
    pending_recurring_count: int = 0
    top_expense_category: str = "N/A"
    highest_due_expense: Decimal = Decimal("0.00")
