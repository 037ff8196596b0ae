import datetime as dt
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


MONEY = Numeric(14, 2, asdecimal=True)


class TransactionKind(str, Enum):
    income = "income"
    expense = "expense"


class ScheduleType(str, Enum):
    one_time = "one_time"
    recurring = "recurring"


class EntryRole(str, Enum):
    standard = "standard"
    recurring_completion = "recurring_completion"


class Cadence(str, Enum):
    weekly = "weekly"
    monthly = "monthly"
    quarterly = "quarterly"
    every_4_months = "every_4_months"
    half_yearly = "half_yearly"
    yearly = "yearly"

    @property
    def is_weekly(self) -> bool:
        return self is Cadence.weekly

    @property
    def interval_days(self) -> Optional[int]:
        return 7 if self is Cadence.weekly else None

    @property
    def interval_months(self) -> Optional[int]:
        return _CADENCE_MONTHS.get(self)


_CADENCE_MONTHS = {
    Cadence.monthly: 1,
    Cadence.quarterly: 3,
    Cadence.every_4_months: 4,
    Cadence.half_yearly: 6,
    Cadence.yearly: 12,
}


class AccountType(str, Enum):
    savings = "savings"
    current = "current"
    cash = "cash"
    wallet = "wallet"
    salary = "salary"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    type: Mapped[TransactionKind] = mapped_column(
        SAEnum(TransactionKind), nullable=False
    )
    is_system: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    archived_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    entries: Mapped[list["Entry"]] = relationship("Entry", back_populates="category")

    __table_args__ = (
        UniqueConstraint("user_id", "type", "name", name="uq_category_user_type_name"),
    )


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SAEnum(AccountType), nullable=False, default=AccountType.savings
    )
    initial_balance: Mapped[Decimal] = mapped_column(
        MONEY, nullable=False, default=Decimal("0")
    )
    use_manual_override: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )
    manual_balance_override: Mapped[Optional[Decimal]] = mapped_column(MONEY)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    __table_args__ = (Index("ix_accounts_user_name", "user_id", "name"),)


class Entry(Base, TimestampMixin):
    """One row per movement, recurring template or completion record.

    The role tag tells the kinds apart: completions carry
    ``EntryRole.recurring_completion`` and point at their template through
    ``parent_id``; everything else is ``EntryRole.standard``.
    """

    __tablename__ = "entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    kind: Mapped[TransactionKind] = mapped_column(
        SAEnum(TransactionKind), nullable=False
    )
    schedule_type: Mapped[ScheduleType] = mapped_column(
        SAEnum(ScheduleType), nullable=False, default=ScheduleType.one_time
    )
    cadence: Mapped[Optional[Cadence]] = mapped_column(SAEnum(Cadence))
    date: Mapped[Optional[dt.date]] = mapped_column(Date)
    start_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    end_date: Mapped[Optional[dt.date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    category_id: Mapped[Optional[int]] = mapped_column(ForeignKey("categories.id"))
    paid_from_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    received_to_account_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("accounts.id")
    )
    parent_id: Mapped[Optional[int]] = mapped_column(ForeignKey("entries.id"))
    recurrence_group_id: Mapped[Optional[str]] = mapped_column(String(36))
    entry_role: Mapped[EntryRole] = mapped_column(
        SAEnum(EntryRole), nullable=False, default=EntryRole.standard
    )
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime)

    category: Mapped[Optional["Category"]] = relationship(
        "Category", back_populates="entries"
    )
    paid_from_account: Mapped[Optional["Account"]] = relationship(
        "Account", foreign_keys=[paid_from_account_id]
    )
    received_to_account: Mapped[Optional["Account"]] = relationship(
        "Account", foreign_keys=[received_to_account_id]
    )
    parent: Mapped[Optional["Entry"]] = relationship(
        "Entry", remote_side="Entry.id", foreign_keys=[parent_id]
    )

    __table_args__ = (
        Index("ix_entries_user_role_date", "user_id", "entry_role", "date"),
        Index("ix_entries_user_schedule_start", "user_id", "schedule_type", "start_date"),
        Index("ix_entries_parent_date", "parent_id", "date"),
        Index("ix_entries_group", "recurrence_group_id"),
        CheckConstraint("amount > 0", name="ck_entries_amount_positive"),
        CheckConstraint(
            "parent_id IS NULL OR parent_id != id", name="ck_entries_not_own_parent"
        ),
    )

    @property
    def is_recurring_template(self) -> bool:
        return (
            self.entry_role == EntryRole.standard
            and self.schedule_type == ScheduleType.recurring
        )

    @property
    def is_completion(self) -> bool:
        return self.entry_role == EntryRole.recurring_completion
