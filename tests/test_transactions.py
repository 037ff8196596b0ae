from datetime import date
from decimal import Decimal

import pytest
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from balances import BalanceService
from database import Base
from errors import InvalidArgumentError, NotFoundError
from models import Cadence, ScheduleType, TransactionKind
from schemas import AccountIn, CategoryIn, DatesEditIn, EntryIn
from services import (
    AccountService,
    CategoryService,
    RecurringService,
    TransactionService,
)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _setup(session: Session):
    categories = CategoryService(session)
    salary = categories.create(CategoryIn(name="Salary", type=TransactionKind.income))
    housing = categories.create(CategoryIn(name="Housing", type=TransactionKind.expense))
    account = AccountService(session).create(
        AccountIn(name="Savings", initial_balance=Decimal("100000"))
    )
    return salary, housing, account


def _recurring(housing, account, **overrides) -> EntryIn:
    data = dict(
        title="Rent",
        amount=Decimal("18000"),
        kind=TransactionKind.expense,
        schedule_type=ScheduleType.recurring,
        category_id=housing.id,
        cadence=Cadence.monthly,
        start_date=date(2026, 1, 1),
        paid_from_account_id=account.id,
    )
    data.update(overrides)
    return EntryIn(**data)


def test_create_recurring_assigns_group_and_pending_state():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        entry = TransactionService(session).create(_recurring(housing, account))

        assert entry.recurrence_group_id
        assert entry.is_completed is False
        assert entry.date is None
        assert entry.is_recurring_template


def test_create_one_time_is_completed_and_drops_recurring_fields():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        entry = TransactionService(session).create(
            EntryIn(
                title="Plumber",
                amount=Decimal("1500"),
                kind=TransactionKind.expense,
                category_id=housing.id,
                date=date(2026, 2, 3),
                cadence=Cadence.monthly,
                start_date=date(2026, 2, 1),
                paid_from_account_id=account.id,
            )
        )

        assert entry.is_completed is True
        assert entry.cadence is None
        assert entry.start_date is None
        assert entry.recurrence_group_id is None


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"category_id": None}, "Category is required"),
        ({"kind": TransactionKind.income}, "Category type mismatch"),
        ({"paid_from_account_id": None}, "Paid-from account is required"),
        ({"start_date": None}, "Start date is required"),
        ({"cadence": None}, "Frequency is required"),
        ({"end_date": date(2025, 12, 31)}, "End date must be on or after"),
        (
            {"schedule_type": ScheduleType.one_time, "date": None},
            "Date is required",
        ),
    ],
)
def test_create_rejects_invalid_input(overrides, message):
    with make_session() as session:
        _salary, housing, account = _setup(session)
        with pytest.raises(InvalidArgumentError, match=message):
            TransactionService(session).create(
                _recurring(housing, account, **overrides)
            )


def test_create_rejects_unknown_account():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        with pytest.raises(NotFoundError):
            TransactionService(session).create(
                _recurring(housing, account, paid_from_account_id=account.id + 10)
            )


def test_amount_must_be_positive():
    with pytest.raises(ValidationError):
        EntryIn(title="Rent", amount=Decimal("0"), kind=TransactionKind.expense)
    with make_session() as session:
        _salary, housing, account = _setup(session)
        rent = TransactionService(session).create(_recurring(housing, account))
        with pytest.raises(InvalidArgumentError):
            TransactionService(session).edit_amount(rent.id, Decimal("-5"))


def test_update_future_monthly_forks_at_month_boundary():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        rent = TransactionService(session).create(_recurring(housing, account))

        successor = RecurringService(session).update_future(
            rent.id, date(2026, 4, 10), Decimal("20000")
        )
        session.refresh(rent)

        assert rent.end_date == date(2026, 3, 31)
        assert rent.amount == Decimal("18000")
        assert successor.start_date == date(2026, 4, 1)
        assert successor.end_date is None
        assert successor.amount == Decimal("20000")
        assert successor.cadence == Cadence.monthly
        assert successor.recurrence_group_id == rent.recurrence_group_id

        balances = BalanceService(session)
        assert balances.balance_as_of(account.id, 2026, 3) == Decimal("46000")
        assert balances.balance_as_of(account.id, 2026, 4) == Decimal("26000")

        series = RecurringService(session).series(rent.recurrence_group_id)
        assert [e.id for e in series] == [rent.id, successor.id]


def test_update_future_quarterly_keeps_phase():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        premium = TransactionService(session).create(
            _recurring(housing, account, title="Insurance", cadence=Cadence.quarterly)
        )

        successor = RecurringService(session).update_future(
            premium.id, date(2026, 2, 15), Decimal("7000")
        )
        session.refresh(premium)

        assert premium.end_date == date(2026, 3, 31)
        assert successor.start_date == date(2026, 4, 1)


def test_update_future_weekly_moves_to_next_weekday():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        cleaner = TransactionService(session).create(
            _recurring(
                housing,
                account,
                title="Cleaner",
                amount=Decimal("500"),
                cadence=Cadence.weekly,
                start_date=date(2026, 1, 5),
            )
        )

        successor = RecurringService(session).update_future(
            cleaner.id, date(2026, 1, 14), Decimal("600")
        )
        session.refresh(cleaner)

        assert cleaner.end_date == date(2026, 1, 18)
        assert successor.start_date == date(2026, 1, 19)


def test_update_future_mid_first_month_starts_next_month():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        rent = TransactionService(session).create(
            _recurring(housing, account, start_date=date(2026, 1, 15))
        )

        successor = RecurringService(session).update_future(
            rent.id, date(2026, 1, 20), Decimal("19000")
        )
        session.refresh(rent)

        assert rent.end_date == date(2026, 1, 31)
        assert successor.start_date == date(2026, 2, 1)


def test_update_future_rejects_bad_dates():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        txns = TransactionService(session)
        rent = txns.create(_recurring(housing, account))
        lease = txns.create(
            _recurring(housing, account, title="Lease", end_date=date(2026, 3, 31))
        )
        recurring = RecurringService(session)

        with pytest.raises(InvalidArgumentError):
            recurring.update_future(rent.id, date(2026, 1, 1), Decimal("20000"))
        with pytest.raises(InvalidArgumentError):
            recurring.update_future(lease.id, date(2026, 5, 1), Decimal("20000"))
        with pytest.raises(NotFoundError):
            recurring.update_future(rent.id + 100, date(2026, 5, 1), Decimal("20000"))

        session.refresh(lease)
        assert lease.end_date == date(2026, 3, 31)
        assert len(recurring.series(lease.recurrence_group_id)) == 1


def test_edit_dates_validates_range():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        txns = TransactionService(session)
        rent = txns.create(_recurring(housing, account))

        with pytest.raises(InvalidArgumentError):
            txns.edit_dates(
                rent.id,
                DatesEditIn(start_date=date(2026, 5, 1), end_date=date(2026, 4, 1)),
            )
        updated = txns.edit_dates(
            rent.id, DatesEditIn(start_date=date(2026, 2, 1), end_date=date(2026, 6, 30))
        )
        assert updated.start_date == date(2026, 2, 1)
        assert updated.end_date == date(2026, 6, 30)


def test_soft_delete_hides_entry():
    with make_session() as session:
        _salary, housing, account = _setup(session)
        txns = TransactionService(session)
        rent = txns.create(_recurring(housing, account))
        txns.soft_delete(rent.id)

        with pytest.raises(NotFoundError):
            txns.get(rent.id)
        assert txns.list_split(date(2026, 1, 15)) == {"active": [], "completed": []}


def test_list_split_separates_running_and_finished():
    with make_session() as session:
        salary, housing, account = _setup(session)
        txns = TransactionService(session)
        rent = txns.create(_recurring(housing, account))
        lease = txns.create(
            _recurring(housing, account, title="Lease", end_date=date(2026, 2, 28))
        )
        paused = txns.create(_recurring(housing, account, title="Gym"))
        txns.set_active(paused.id, False)
        bonus = txns.create(
            EntryIn(
                title="Bonus",
                amount=Decimal("5000"),
                kind=TransactionKind.income,
                category_id=salary.id,
                date=date(2026, 3, 1),
                received_to_account_id=account.id,
            )
        )
        refund = txns.create(
            EntryIn(
                title="Refund",
                amount=Decimal("300"),
                kind=TransactionKind.income,
                category_id=salary.id,
                date=date(2026, 5, 1),
            )
        )

        split = txns.list_split(date(2026, 3, 15))

        assert {e.id for e in split["active"]} == {rent.id, refund.id}
        assert {e.id for e in split["completed"]} == {lease.id, paused.id, bonus.id}
