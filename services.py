from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, joinedload

from balances import BalanceService, reconstruct_balance
from completions import CompletionService, completions_by_parent, latest_completion
from config import get_current_user_id
from errors import InvalidArgumentError, NotFoundError
from models import (
    Account,
    Category,
    Entry,
    EntryRole,
    ScheduleType,
    TransactionKind,
)
from money import ZERO, format_money, quantize_money, to_decimal
from periods import MONTH_LABELS, MonthPeriod, add_months, month_end, month_start
from recurrence import (
    count_occurrences_until,
    first_occurrence_on_or_after,
    is_due_in_month,
    local_today,
    total_scheduled_installments,
)
from repository import EntryRepository
from schemas import (
    AccountBalance,
    AccountBalanceSeries,
    AccountIn,
    CategoryIn,
    CategoryTotal,
    DatesEditIn,
    DueItem,
    DueStatus,
    EntryIn,
    MonthView,
)


logger = logging.getLogger(__name__)

UNCATEGORIZED = "Uncategorized"

DEFAULT_CATEGORIES = {
    TransactionKind.income: ["Salary", "Business", "Investments", "Other"],
    TransactionKind.expense: [
        "Food",
        "Travel",
        "EMI",
        "Chit Fund",
        "Utilities",
        "Insurance",
        "Shopping",
    ],
}


def _category_name(entry: Entry) -> str:
    return entry.category.name if entry.category else UNCATEGORIZED


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(
        self, kind: Optional[TransactionKind] = None, include_archived: bool = False
    ) -> list[Category]:
        stmt = select(Category).where(Category.user_id == self.user_id)
        if kind:
            stmt = stmt.where(Category.type == kind)
        if not include_archived:
            stmt = stmt.where(Category.archived_at.is_(None))
        stmt = stmt.order_by(Category.type, Category.name)
        return list(self.session.scalars(stmt).all())

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        name = data.name.strip()
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                Category.type == data.type,
                Category.name == name,
            )
        )
        if existing:
            raise InvalidArgumentError("Category already exists")
        category = Category(user_id=self.user_id, name=name, type=data.type)
        self.session.add(category)
        self.session.commit()
        self.session.refresh(category)
        return category

    def seed_defaults(self) -> int:
        """Create the built-in categories unless the user already has some."""
        if self.list_all(include_archived=True):
            return 0
        created = 0
        for kind, names in DEFAULT_CATEGORIES.items():
            for name in names:
                self.session.add(
                    Category(user_id=self.user_id, name=name, type=kind, is_system=True)
                )
                created += 1
        self.session.commit()
        logger.info(f"categories_seeded: user_id={self.user_id} count={created}")
        return created


class AccountService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)

    @staticmethod
    def _validate(data: AccountIn) -> None:
        if data.use_manual_override and data.manual_balance_override is None:
            raise InvalidArgumentError(
                "Manual balance override is required when manual override is enabled"
            )

    def list_all(self) -> list[Account]:
        return self.repo.list_accounts(self.user_id)

    def get(self, account_id: int) -> Account:
        return self.repo.get_account(self.user_id, account_id)

    def create(self, data: AccountIn) -> Account:
        self._validate(data)
        account = Account(
            user_id=self.user_id,
            name=data.name.strip(),
            account_type=data.account_type,
            initial_balance=data.initial_balance,
            use_manual_override=data.use_manual_override,
            manual_balance_override=data.manual_balance_override,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        return account

    def update(self, account_id: int, data: AccountIn) -> Account:
        self._validate(data)
        account = self.get(account_id)
        account.name = data.name.strip()
        account.account_type = data.account_type
        account.initial_balance = data.initial_balance
        account.use_manual_override = data.use_manual_override
        account.manual_balance_override = data.manual_balance_override
        self.session.commit()
        self.session.refresh(account)
        return account

    def soft_delete(self, account_id: int) -> None:
        account = self.get(account_id)
        account.deleted_at = datetime.utcnow()
        self.session.commit()
        logger.info(f"account_deleted: account_id={account_id}")


class TransactionService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)

    def get(self, entry_id: int) -> Entry:
        entry = self.session.get(Entry, entry_id)
        if (
            not entry
            or entry.user_id != self.user_id
            or entry.deleted_at is not None
            or entry.entry_role != EntryRole.standard
        ):
            raise NotFoundError("Transaction not found")
        return entry

    def _validate(self, data: EntryIn) -> None:
        if data.category_id is None:
            raise InvalidArgumentError("Category is required")
        category = CategoryService(self.session, self.user_id).get(data.category_id)
        if category.type != data.kind:
            raise InvalidArgumentError("Category type mismatch")
        if data.kind == TransactionKind.expense and data.paid_from_account_id is None:
            raise InvalidArgumentError("Paid-from account is required for expenses")
        for account_id in (data.paid_from_account_id, data.received_to_account_id):
            if account_id is not None:
                self.repo.get_account(self.user_id, account_id)

        if data.schedule_type == ScheduleType.one_time:
            if data.date is None:
                raise InvalidArgumentError("Date is required for one-time transactions")
            return
        if data.start_date is None:
            raise InvalidArgumentError("Start date is required for recurring transactions")
        if data.cadence is None:
            raise InvalidArgumentError("Frequency is required for recurring transactions")
        if data.end_date and data.end_date < data.start_date:
            raise InvalidArgumentError("End date must be on or after start date")

    def create(self, data: EntryIn) -> Entry:
        self._validate(data)
        recurring = data.schedule_type == ScheduleType.recurring
        entry = Entry(
            user_id=self.user_id,
            title=data.title.strip(),
            amount=data.amount,
            kind=data.kind,
            schedule_type=data.schedule_type,
            cadence=data.cadence if recurring else None,
            date=None if recurring else data.date,
            start_date=data.start_date if recurring else None,
            end_date=data.end_date if recurring else None,
            category_id=data.category_id,
            paid_from_account_id=data.paid_from_account_id,
            received_to_account_id=data.received_to_account_id,
            recurrence_group_id=str(uuid.uuid4()) if recurring else None,
            entry_role=EntryRole.standard,
            is_active=True,
            is_completed=not recurring,
        )
        self.session.add(entry)
        self.session.commit()
        self.session.refresh(entry)
        logger.info(
            f"entry_created: entry_id={entry.id} schedule={entry.schedule_type.value} "
            f"kind={entry.kind.value}"
        )
        return entry

    def edit_amount(self, entry_id: int, amount: Decimal) -> Entry:
        if to_decimal(amount) <= 0:
            raise InvalidArgumentError("Amount must be greater than zero")
        entry = self.get(entry_id)
        entry.amount = to_decimal(amount)
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def edit_dates(self, entry_id: int, data: DatesEditIn) -> Entry:
        entry = self.get(entry_id)
        if entry.schedule_type == ScheduleType.one_time:
            if data.date is None:
                raise InvalidArgumentError("Date is required for one-time transactions")
            entry.date = data.date
        else:
            if data.start_date is None:
                raise InvalidArgumentError(
                    "Start date is required for recurring transactions"
                )
            if data.end_date and data.end_date < data.start_date:
                raise InvalidArgumentError("End date must be on or after start date")
            entry.start_date = data.start_date
            entry.end_date = data.end_date
        self.session.commit()
        self.session.refresh(entry)
        return entry

    def set_active(self, entry_id: int, is_active: bool) -> Entry:
        entry = self.get(entry_id)
        entry.is_active = is_active
        self.session.commit()
        return entry

    def soft_delete(self, entry_id: int) -> None:
        entry = self.get(entry_id)
        entry.deleted_at = datetime.utcnow()
        self.session.commit()
        logger.info(f"entry_deleted: entry_id={entry_id}")

    def list_split(self, today: Optional[date] = None) -> dict[str, list[Entry]]:
        """Standard entries split into still-running and finished ones."""
        today = today or local_today()
        stmt = (
            select(Entry)
            .options(joinedload(Entry.category))
            .where(
                Entry.user_id == self.user_id,
                Entry.deleted_at.is_(None),
                Entry.entry_role == EntryRole.standard,
            )
        )
        entries = list(self.session.scalars(stmt).unique().all())

        def finished(entry: Entry) -> bool:
            if entry.schedule_type == ScheduleType.one_time:
                return entry.date is not None and entry.date < today
            return not entry.is_active or (
                entry.end_date is not None and entry.end_date < today
            )

        active = [e for e in entries if not finished(e)]
        done = [e for e in entries if finished(e)]
        active.sort(key=lambda e: (e.created_at or datetime.min, e.id), reverse=True)
        done.sort(key=lambda e: (e.updated_at or datetime.min, e.id), reverse=True)
        return {"active": active, "completed": done}


class RecurringService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)
        self.completions = CompletionService(session, self.user_id)

    def get(self, template_id: int) -> Entry:
        return self.repo.get_template(self.user_id, template_id)

    def series(self, group_id: str) -> list[Entry]:
        return self.repo.list_series(self.user_id, group_id)

    def update_future(
        self, template_id: int, effective_from: date, new_amount: Decimal
    ) -> Entry:
        """Change the amount from ``effective_from`` on without touching history.

        The current template is closed the day before its next occurrence on
        or after ``effective_from`` and a successor carrying the new amount
        starts on that occurrence, in the same recurrence group.
        """
        current = self.get(template_id)
        amount = to_decimal(new_amount)
        if amount <= 0:
            raise InvalidArgumentError("Amount must be greater than zero")
        if current.start_date is None or effective_from <= current.start_date:
            raise InvalidArgumentError(
                "Effective date must be after the current recurring start date"
            )

        successor_start = first_occurrence_on_or_after(current, effective_from)
        if successor_start is None:
            raise InvalidArgumentError("Recurring entry has no schedule")
        if successor_start <= current.start_date:
            successor_start = first_occurrence_on_or_after(
                current, add_months(current.start_date, 1)
            )
        original_end = current.end_date
        if original_end is not None and successor_start > original_end:
            raise InvalidArgumentError("Effective date is after the series has ended")

        try:
            current.end_date = successor_start - timedelta(days=1)
            if current.recurrence_group_id is None:
                current.recurrence_group_id = str(uuid.uuid4())
            successor = Entry(
                user_id=current.user_id,
                title=current.title,
                amount=amount,
                kind=current.kind,
                schedule_type=ScheduleType.recurring,
                cadence=current.cadence,
                start_date=successor_start,
                end_date=original_end,
                is_active=current.is_active,
                category_id=current.category_id,
                paid_from_account_id=current.paid_from_account_id,
                received_to_account_id=current.received_to_account_id,
                recurrence_group_id=current.recurrence_group_id,
                entry_role=EntryRole.standard,
                is_completed=False,
            )
            self.session.add(successor)
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        self.session.refresh(successor)
        logger.info(
            f"series_fork: template_id={current.id} successor_id={successor.id} "
            f"group={current.recurrence_group_id} starts={successor_start.isoformat()} "
            f"amount={amount}"
        )
        return successor

    def _due_template(self, template_id: int, year: int, month: int) -> Entry:
        template = self.get(template_id)
        if not is_due_in_month(template, year, month):
            raise InvalidArgumentError(
                "This recurring item is not due in the selected month"
            )
        return template

    def complete(
        self,
        template_id: int,
        year: int,
        month: int,
        amount: Optional[Decimal] = None,
    ) -> Entry:
        template = self._due_template(template_id, year, month)
        return self.completions.mark_completed(template, year, month, amount)

    def revert(self, template_id: int, year: int, month: int) -> bool:
        template = self.get(template_id)
        return self.completions.revert_completion(template, year, month)

    def complete_all_due(self, year: int, month: int) -> list[Entry]:
        period = MonthPeriod(year, month)
        templates = self.repo.list_recurring_templates(
            self.user_id, month_start=period.start, month_end=period.end
        )
        due = [t for t in templates if is_due_in_month(t, year, month)]
        return self.completions.mark_all_due(due, year, month)


class DashboardService:
    """Builds the month view: due items, totals, categories and balances."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)

    def status_for(self, template: Entry, year: int, month: int) -> DueStatus:
        if not is_due_in_month(template, year, month):
            return DueStatus.not_due
        completions = self.repo.list_completions(
            self.user_id, [template.id], month_start(year, month)
        )
        if latest_completion(completions) is not None:
            return DueStatus.due_completed
        return DueStatus.due_pending

    def build_month(self, year: int, month: int) -> MonthView:
        period = MonthPeriod(year, month)

        one_times = self.repo.list_one_time_entries(
            self.user_id, start=period.start, end=period.end
        )
        templates = self.repo.list_recurring_templates(
            self.user_id, month_start=period.start, month_end=period.end
        )
        due_recurring = [t for t in templates if is_due_in_month(t, year, month)]
        completed = completions_by_parent(
            self.repo.list_completions(
                self.user_id, [t.id for t in due_recurring], period.start
            )
        )

        def effective(template: Entry) -> Decimal:
            record = completed.get(template.id)
            return to_decimal(record.amount if record else template.amount)

        totals = {TransactionKind.income: ZERO, TransactionKind.expense: ZERO}
        by_category: dict[tuple[str, TransactionKind], Decimal] = {}
        for entry, amount in [(e, to_decimal(e.amount)) for e in one_times] + [
            (t, effective(t)) for t in due_recurring
        ]:
            totals[entry.kind] += amount
            key = (_category_name(entry), entry.kind)
            by_category[key] = by_category.get(key, ZERO) + amount

        category_totals = [
            CategoryTotal(category_name=name, kind=kind, total=quantize_money(total))
            for (name, kind), total in by_category.items()
        ]
        category_totals.sort(key=lambda c: c.total, reverse=True)

        due_items = [
            DueItem(
                entry_id=t.id,
                title=t.title,
                amount=quantize_money(effective(t)),
                kind=t.kind,
                status=(
                    DueStatus.due_completed
                    if t.id in completed
                    else DueStatus.due_pending
                ),
                is_recurring=True,
                due_date=period.start,
                installment_number=count_occurrences_until(t, period.end),
                total_installments=total_scheduled_installments(t),
            )
            for t in due_recurring
        ]
        due_items.extend(
            DueItem(
                entry_id=e.id,
                title=e.title,
                amount=quantize_money(e.amount),
                kind=e.kind,
                status=(
                    DueStatus.due_completed if e.is_completed else DueStatus.due_pending
                ),
                is_recurring=False,
                due_date=e.date,
            )
            for e in one_times
        )
        kind_order = {TransactionKind.income: 0, TransactionKind.expense: 1}
        due_items.sort(key=lambda item: (kind_order[item.kind], item.title))

        balances, series = self._account_balances(year, month)

        top_expense = next(
            (c.category_name for c in category_totals if c.kind == TransactionKind.expense),
            "N/A",
        )
        highest_due_expense = max(
            (effective(t) for t in due_recurring if t.kind == TransactionKind.expense),
            default=ZERO,
        )
        completed_count = sum(1 for t in due_recurring if t.id in completed)

        income = totals[TransactionKind.income]
        expense = totals[TransactionKind.expense]
        logger.debug(
            f"month_view: user_id={self.user_id} period={year}-{month:02d} "
            f"one_time={len(one_times)} due_recurring={len(due_recurring)} "
            f"completed={completed_count}"
        )
        return MonthView(
            year=year,
            month=month,
            total_income=quantize_money(income),
            total_expense=quantize_money(expense),
            net=quantize_money(income - expense),
            account_balances=balances,
            due_items=due_items,
            category_totals=category_totals,
            month_labels=list(MONTH_LABELS),
            yearly_account_balances=series,
            completed_recurring_count=completed_count,
            pending_recurring_count=len(due_recurring) - completed_count,
            top_expense_category=top_expense,
            highest_due_expense=quantize_money(highest_due_expense),
        )

    def _account_balances(
        self, year: int, month: int
    ) -> tuple[list[AccountBalance], list[AccountBalanceSeries]]:
        balances: list[AccountBalance] = []
        series: list[AccountBalanceSeries] = []
        year_end = month_end(year, 12)
        one_time = self.repo.list_one_time_entries(self.user_id, end=year_end)
        templates = self.repo.list_recurring_templates(
            self.user_id, active_only=False, month_end=year_end
        )
        for account in self.repo.list_accounts(self.user_id):
            monthly = [
                reconstruct_balance(account, one_time, templates, month_end(year, m))
                for m in range(1, 13)
            ]
            balances.append(
                AccountBalance(
                    account_id=account.id,
                    account_name=account.name,
                    balance=quantize_money(monthly[month - 1]),
                    is_manual_override=account.use_manual_override,
                )
            )
            series.append(
                AccountBalanceSeries(
                    account_id=account.id,
                    account_name=account.name,
                    monthly_balances=[quantize_money(b) for b in monthly],
                )
            )
        return balances, series


class InsightsService:
    """Balance and income/expense answers for one month, optionally per account."""

    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)

    @staticmethod
    def _select_accounts(
        accounts: list[Account], account_name: Optional[str]
    ) -> tuple[list[Account], Optional[str]]:
        if not account_name or not account_name.strip():
            return accounts, None
        needle = account_name.strip().lower()

        exact = [a for a in accounts if a.name.lower() == needle]
        if len(exact) == 1:
            return exact, None
        partial = [a for a in accounts if needle in a.name.lower()]
        if len(partial) == 1:
            return partial, None
        if not partial:
            available = (
                "No bank accounts found."
                if not accounts
                else f"Available accounts: {', '.join(a.name for a in accounts)}."
            )
            return [], f"I couldn't find account '{account_name}'. {available}"
        names = ", ".join(a.name for a in partial)
        return [], (
            f"I found multiple accounts matching '{account_name}': {names}. "
            "Which one do you mean?"
        )

    @staticmethod
    def _clarify(question: str) -> dict[str, object]:
        return {"requires_clarification": True, "clarification_question": question}

    def balances(
        self, year: int, month: int, account_name: Optional[str] = None
    ) -> dict[str, object]:
        period = MonthPeriod(year, month)
        accounts, question = self._select_accounts(
            self.repo.list_accounts(self.user_id), account_name
        )
        if question:
            return self._clarify(question)

        balance_service = BalanceService(self.session, self.user_id)
        items = [
            {
                "account_id": account.id,
                "account_name": account.name,
                "amount": quantize_money(
                    balance_service.balance_as_of(account.id, year, month)
                ),
                "is_manual_override": account.use_manual_override,
            }
            for account in accounts
        ]
        items.sort(key=lambda item: item["amount"], reverse=True)
        total = quantize_money(sum((i["amount"] for i in items), ZERO))
        return {
            "requires_clarification": False,
            "intent": "balance",
            "year": year,
            "month": month,
            "month_label": period.label,
            "accounts": items,
            "total_amount": total,
            "summary": f"Balance as of end of {period.label}: {format_money(total)}",
        }

    def monthly_flow(
        self,
        year: int,
        month: int,
        kind: TransactionKind,
        account_name: Optional[str] = None,
    ) -> dict[str, object]:
        period = MonthPeriod(year, month)
        all_accounts = self.repo.list_accounts(self.user_id)
        accounts, question = self._select_accounts(all_accounts, account_name)
        if question:
            return self._clarify(question)

        one_times = self.repo.list_one_time_entries(
            self.user_id, kind=kind, start=period.start, end=period.end
        )
        templates = self.repo.list_recurring_templates(
            self.user_id, kind=kind, month_start=period.start, month_end=period.end
        )
        due = [t for t in templates if is_due_in_month(t, year, month)]
        completed = completions_by_parent(
            self.repo.list_completions(self.user_id, [t.id for t in due], period.start)
        )

        def account_of(entry: Entry) -> Optional[int]:
            if kind == TransactionKind.income:
                return entry.received_to_account_id
            return entry.paid_from_account_id

        selected_ids = {a.id for a in accounts}
        totals: dict[Optional[int], Decimal] = {}

        def add(account_id: Optional[int], amount: Decimal) -> None:
            if account_name and account_id not in selected_ids:
                return
            totals[account_id] = totals.get(account_id, ZERO) + amount

        for entry in one_times:
            add(account_of(entry), to_decimal(entry.amount))
        for template in due:
            record = completed.get(template.id)
            add(
                account_of(template),
                to_decimal(record.amount if record else template.amount),
            )

        names = {a.id: a.name for a in all_accounts}
        items = [
            {
                "account_id": account_id,
                "account_name": (
                    names.get(account_id, "Unknown account")
                    if account_id is not None
                    else "Unassigned"
                ),
                "amount": quantize_money(amount),
            }
            for account_id, amount in totals.items()
            if amount != 0
        ]
        items.sort(key=lambda item: item["amount"], reverse=True)
        total = quantize_money(sum((i["amount"] for i in items), ZERO))
        return {
            "requires_clarification": False,
            "intent": kind.value,
            "year": year,
            "month": month,
            "month_label": period.label,
            "accounts": items,
            "total_amount": total,
            "summary": f"Total {kind.value} for {period.label}: {format_money(total)}",
        }
