from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Optional

from sqlalchemy import or_, select
from sqlalchemy.orm import Session, joinedload

from errors import NotFoundError
from models import (
    Account,
    Entry,
    EntryRole,
    ScheduleType,
    TransactionKind,
)


class EntryRepository:
    """Storage collaborator the engine reads from and writes completions through.

    Soft-deleted rows never leave this class. Write methods only flush; the
    calling service owns the commit so one logical operation is one
    transaction.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def _standard(self, user_id: int, schedule_type: ScheduleType):
        return (
            select(Entry)
            .options(joinedload(Entry.category))
            .where(
                Entry.user_id == user_id,
                Entry.deleted_at.is_(None),
                Entry.entry_role == EntryRole.standard,
                Entry.schedule_type == schedule_type,
            )
        )

    @staticmethod
    def _touching_account(stmt, account_id: Optional[int]):
        if account_id is None:
            return stmt
        return stmt.where(
            or_(
                Entry.paid_from_account_id == account_id,
                Entry.received_to_account_id == account_id,
            )
        )

    def list_one_time_entries(
        self,
        user_id: int,
        *,
        kind: Optional[TransactionKind] = None,
        start: Optional[date] = None,
        end: Optional[date] = None,
        account_id: Optional[int] = None,
    ) -> list[Entry]:
        stmt = self._standard(user_id, ScheduleType.one_time).where(
            Entry.date.isnot(None)
        )
        if kind:
            stmt = stmt.where(Entry.kind == kind)
        if start:
            stmt = stmt.where(Entry.date >= start)
        if end:
            stmt = stmt.where(Entry.date <= end)
        stmt = self._touching_account(stmt, account_id)
        stmt = stmt.order_by(Entry.date, Entry.id)
        return list(self.session.scalars(stmt).unique().all())

    def list_recurring_templates(
        self,
        user_id: int,
        *,
        kind: Optional[TransactionKind] = None,
        active_only: bool = True,
        month_start: Optional[date] = None,
        month_end: Optional[date] = None,
        account_id: Optional[int] = None,
    ) -> list[Entry]:
        stmt = self._standard(user_id, ScheduleType.recurring).where(
            Entry.start_date.isnot(None)
        )
        if kind:
            stmt = stmt.where(Entry.kind == kind)
        if active_only:
            stmt = stmt.where(Entry.is_active.is_(True))
        if month_end:
            stmt = stmt.where(Entry.start_date <= month_end)
        if month_start:
            stmt = stmt.where(
                or_(Entry.end_date.is_(None), Entry.end_date >= month_start)
            )
        stmt = self._touching_account(stmt, account_id)
        stmt = stmt.order_by(Entry.start_date, Entry.id)
        return list(self.session.scalars(stmt).unique().all())

    def list_completions(
        self, user_id: int, parent_ids: Iterable[int], period_date: date
    ) -> list[Entry]:
        ids = list(parent_ids)
        if not ids:
            return []
        stmt = (
            select(Entry)
            .where(
                Entry.user_id == user_id,
                Entry.deleted_at.is_(None),
                Entry.entry_role == EntryRole.recurring_completion,
                Entry.parent_id.in_(ids),
                Entry.date == period_date,
            )
            .order_by(Entry.id)
        )
        return list(self.session.scalars(stmt).all())

    def get_template(self, user_id: int, template_id: int) -> Entry:
        template = self.session.get(Entry, template_id)
        if (
            not template
            or template.user_id != user_id
            or template.deleted_at is not None
            or not template.is_recurring_template
        ):
            raise NotFoundError("Recurring entry not found")
        return template

    def list_series(self, user_id: int, group_id: str) -> list[Entry]:
        stmt = (
            self._standard(user_id, ScheduleType.recurring)
            .where(Entry.recurrence_group_id == group_id)
            .order_by(Entry.start_date, Entry.id)
        )
        return list(self.session.scalars(stmt).unique().all())

    def get_account(self, user_id: int, account_id: int) -> Account:
        account = self.session.get(Account, account_id)
        if not account or account.user_id != user_id or account.deleted_at is not None:
            raise NotFoundError("Account not found")
        return account

    def list_accounts(self, user_id: int) -> list[Account]:
        stmt = (
            select(Account)
            .where(Account.user_id == user_id, Account.deleted_at.is_(None))
            .order_by(Account.name, Account.id)
        )
        return list(self.session.scalars(stmt).all())

    def upsert_completion(
        self,
        parent: Entry,
        period_date: date,
        amount: Decimal,
        completed_at: datetime,
    ) -> Entry:
        existing = self.list_completions(parent.user_id, [parent.id], period_date)
        if existing:
            # newest row wins if earlier writes left duplicates behind
            record = max(existing, key=lambda c: (c.created_at or datetime.min, c.id))
            record.amount = amount
            record.completed_at = completed_at
            record.is_completed = True
            self.session.flush()
            return record

        record = Entry(
            user_id=parent.user_id,
            title=parent.title,
            amount=amount,
            kind=parent.kind,
            schedule_type=ScheduleType.one_time,
            date=period_date,
            category_id=parent.category_id,
            paid_from_account_id=parent.paid_from_account_id,
            received_to_account_id=parent.received_to_account_id,
            parent_id=parent.id,
            recurrence_group_id=parent.recurrence_group_id,
            entry_role=EntryRole.recurring_completion,
            is_active=True,
            is_completed=True,
            completed_at=completed_at,
        )
        self.session.add(record)
        self.session.flush()
        return record

    def soft_delete_completion(self, parent_id: int, period_date: date) -> int:
        parent = self.session.get(Entry, parent_id)
        if parent is None:
            return 0
        now = datetime.utcnow()
        removed = 0
        for record in self.list_completions(parent.user_id, [parent_id], period_date):
            record.deleted_at = now
            removed += 1
        if removed:
            self.session.flush()
        return removed
