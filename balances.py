from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from config import get_current_user_id
from models import Account, Entry, EntryRole, ScheduleType, TransactionKind
from money import ZERO, to_decimal
from periods import month_end, validate_month
from recurrence import count_occurrences_until, local_today
from repository import EntryRepository


def _receives(entry: Entry, account_id: int) -> bool:
    return entry.kind == TransactionKind.income and entry.received_to_account_id == account_id


def _pays(entry: Entry, account_id: int) -> bool:
    return entry.kind == TransactionKind.expense and entry.paid_from_account_id == account_id


def reconstruct_balance(
    account: Account,
    one_time_entries: Iterable[Entry],
    templates: Iterable[Entry],
    as_of: date,
) -> Decimal:
    """Balance of ``account`` at the end of ``as_of``.

    Recurring templates contribute their own amount once per scheduled
    occurrence. Completion records are confirmations of a single period and
    never move the historical ledger.
    """
    if account.use_manual_override and account.manual_balance_override is not None:
        return to_decimal(account.manual_balance_override)

    credits = ZERO
    debits = ZERO
    for entry in one_time_entries:
        if entry.deleted_at is not None or entry.entry_role == EntryRole.recurring_completion:
            continue
        if entry.schedule_type != ScheduleType.one_time or entry.date is None:
            continue
        if entry.date > as_of:
            continue
        if _receives(entry, account.id):
            credits += to_decimal(entry.amount)
        elif _pays(entry, account.id):
            debits += to_decimal(entry.amount)

    recurring_credits = ZERO
    recurring_debits = ZERO
    for template in templates:
        if template.deleted_at is not None or template.entry_role == EntryRole.recurring_completion:
            continue
        if template.schedule_type != ScheduleType.recurring:
            continue
        if template.start_date is None or template.start_date > as_of:
            continue
        occurrences = count_occurrences_until(template, as_of)
        if not occurrences:
            continue
        contribution = to_decimal(template.amount) * occurrences
        if _receives(template, account.id):
            recurring_credits += contribution
        elif _pays(template, account.id):
            recurring_debits += contribution

    return (
        to_decimal(account.initial_balance)
        + credits
        + recurring_credits
        - debits
        - recurring_debits
    )


class BalanceService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()
        self.repo = EntryRepository(session)

    def _movements(self, account_id: int, until: date) -> tuple[list[Entry], list[Entry]]:
        one_time = self.repo.list_one_time_entries(
            self.user_id, end=until, account_id=account_id
        )
        templates = self.repo.list_recurring_templates(
            self.user_id, active_only=False, month_end=until, account_id=account_id
        )
        return one_time, templates

    def balance_as_of(self, account_id: int, year: int, month: int) -> Decimal:
        validate_month(year, month)
        account = self.repo.get_account(self.user_id, account_id)
        if account.use_manual_override and account.manual_balance_override is not None:
            return to_decimal(account.manual_balance_override)
        as_of = month_end(year, month)
        one_time, templates = self._movements(account.id, as_of)
        return reconstruct_balance(account, one_time, templates, as_of)

    def current_balance(self, account_id: int, today: Optional[date] = None) -> Decimal:
        today = today or local_today()
        return self.balance_as_of(account_id, today.year, today.month)

    def yearly_balances(self, account_id: int, year: int) -> list[Decimal]:
        """Month-end balances for January through December of ``year``."""
        validate_month(year, 12)
        account = self.repo.get_account(self.user_id, account_id)
        one_time, templates = self._movements(account.id, month_end(year, 12))
        return [
            reconstruct_balance(account, one_time, templates, month_end(year, m))
            for m in range(1, 13)
        ]
