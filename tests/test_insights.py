from datetime import date
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import Cadence, ScheduleType, TransactionKind
from schemas import AccountIn, CategoryIn, EntryIn
from services import (
    AccountService,
    CategoryService,
    InsightsService,
    RecurringService,
    TransactionService,
)


def make_session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return Session(engine)


def _seed(session: Session) -> dict:
    CategoryService(session).seed_defaults()
    categories = {
        (c.type, c.name): c for c in CategoryService(session).list_all()
    }
    accounts = AccountService(session)
    hdfc_salary = accounts.create(
        AccountIn(name="HDFC Salary", initial_balance=Decimal("10000"))
    )
    hdfc_joint = accounts.create(
        AccountIn(name="HDFC Joint", initial_balance=Decimal("5000"))
    )
    sbi = accounts.create(AccountIn(name="SBI", initial_balance=Decimal("2000")))
    txns = TransactionService(session)
    pay = txns.create(
        EntryIn(
            title="Salary",
            amount=Decimal("85000"),
            kind=TransactionKind.income,
            schedule_type=ScheduleType.recurring,
            category_id=categories[(TransactionKind.income, "Salary")].id,
            cadence=Cadence.monthly,
            start_date=date(2026, 1, 1),
            received_to_account_id=hdfc_salary.id,
        )
    )
    txns.create(
        EntryIn(
            title="Dividend",
            amount=Decimal("1200"),
            kind=TransactionKind.income,
            category_id=categories[(TransactionKind.income, "Investments")].id,
            date=date(2026, 2, 20),
        )
    )
    txns.create(
        EntryIn(
            title="Groceries",
            amount=Decimal("3000"),
            kind=TransactionKind.expense,
            category_id=categories[(TransactionKind.expense, "Food")].id,
            date=date(2026, 2, 5),
            paid_from_account_id=sbi.id,
        )
    )
    return {"pay": pay, "hdfc_salary": hdfc_salary, "hdfc_joint": hdfc_joint, "sbi": sbi}


def test_seed_defaults_runs_once():
    with make_session() as session:
        categories = CategoryService(session)
        assert categories.seed_defaults() == 11
        assert categories.seed_defaults() == 0
        names = {c.name for c in categories.list_all(kind=TransactionKind.expense)}
        assert "EMI" in names


def test_balance_for_all_accounts():
    with make_session() as session:
        _seed(session)
        answer = InsightsService(session).balances(2026, 2)

        assert answer["requires_clarification"] is False
        assert answer["month_label"] == "February 2026"
        amounts = {a["account_name"]: a["amount"] for a in answer["accounts"]}
        assert amounts == {
            "HDFC Salary": Decimal("180000.00"),
            "HDFC Joint": Decimal("5000.00"),
            "SBI": Decimal("-1000.00"),
        }
        assert answer["accounts"][0]["account_name"] == "HDFC Salary"
        assert answer["total_amount"] == Decimal("184000.00")
        assert answer["summary"] == "Balance as of end of February 2026: 184,000.00"


def test_exact_name_wins_over_partial_matches():
    with make_session() as session:
        _seed(session)
        answer = InsightsService(session).balances(2026, 2, "sbi")
        assert [a["account_name"] for a in answer["accounts"]] == ["SBI"]


def test_single_partial_match_is_accepted():
    with make_session() as session:
        _seed(session)
        answer = InsightsService(session).balances(2026, 2, "joint")
        assert [a["account_name"] for a in answer["accounts"]] == ["HDFC Joint"]


def test_ambiguous_name_asks_for_clarification():
    with make_session() as session:
        _seed(session)
        answer = InsightsService(session).balances(2026, 2, "hdfc")
        assert answer["requires_clarification"] is True
        assert "HDFC Joint" in answer["clarification_question"]
        assert "HDFC Salary" in answer["clarification_question"]


def test_unknown_name_lists_available_accounts():
    with make_session() as session:
        _seed(session)
        answer = InsightsService(session).monthly_flow(
            2026, 2, TransactionKind.expense, "axis"
        )
        assert answer["requires_clarification"] is True
        assert "Available accounts" in answer["clarification_question"]


def test_income_flow_groups_by_account_with_unassigned():
    with make_session() as session:
        seeded = _seed(session)
        RecurringService(session).complete(seeded["pay"].id, 2026, 2, Decimal("86000"))

        answer = InsightsService(session).monthly_flow(2026, 2, TransactionKind.income)

        assert answer["intent"] == "income"
        assert answer["accounts"] == [
            {
                "account_id": seeded["hdfc_salary"].id,
                "account_name": "HDFC Salary",
                "amount": Decimal("86000.00"),
            },
            {"account_id": None, "account_name": "Unassigned", "amount": Decimal("1200.00")},
        ]
        assert answer["total_amount"] == Decimal("87200.00")
        assert answer["summary"] == "Total income for February 2026: 87,200.00"


def test_expense_flow_for_one_account():
    with make_session() as session:
        _seed(session)
        answer = InsightsService(session).monthly_flow(
            2026, 2, TransactionKind.expense, "SBI"
        )
        assert [a["amount"] for a in answer["accounts"]] == [Decimal("3000.00")]

        empty = InsightsService(session).monthly_flow(
            2026, 2, TransactionKind.expense, "HDFC Joint"
        )
        assert empty["accounts"] == []
        assert empty["total_amount"] == Decimal("0")
