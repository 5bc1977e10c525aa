from datetime import date, timedelta
from decimal import Decimal

from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import TransactionType, User
from schemas import TransactionIn
from services import StatsService, TransactionFilters, TransactionService


def _user(session: Session, email: str = "ana@finance-app.io") -> User:
    user = User(name="Ana", email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def _add(
    service: TransactionService,
    kind: TransactionType,
    amount: str,
    category: str,
    day: date,
) -> None:
    service.create(
        TransactionIn(type=kind, amount=Decimal(amount), category=category, date=day)
    )


def test_empty_user_stats() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        summary = StatsService(session, user.id).summary(
            TransactionFilters(), today=date(2025, 6, 15)
        )
        assert summary == {
            "totals": {"income": 0.0, "expense": 0.0, "balance": 0.0},
            "monthly": [],
            "categories": [],
        }


def test_balance_is_income_minus_expense() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        other = _user(session, "ben@finance-app.io")
        txns = TransactionService(session, user.id)
        _add(txns, TransactionType.income, "1000", "Salary", date(2025, 6, 1))
        _add(txns, TransactionType.expense, "250.50", "Food", date(2025, 6, 5))
        _add(txns, TransactionType.expense, "49.50", "Transport", date(2025, 6, 6))
        _add(
            TransactionService(session, other.id),
            TransactionType.expense,
            "999",
            "Food",
            date(2025, 6, 6),
        )

        totals = StatsService(session, user.id).totals(TransactionFilters())
        assert totals == {"income": 1000.0, "expense": 300.0, "balance": 700.0}

        june_first = StatsService(session, user.id).totals(
            TransactionFilters(start=date(2025, 6, 1), end=date(2025, 6, 6))
        )
        assert june_first == {"income": 1000.0, "expense": 250.5, "balance": 749.5}


def test_monthly_rollup_window_and_order() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        txns = TransactionService(session, user.id)
        _add(txns, TransactionType.income, "1000", "Salary", date(2025, 6, 1))
        _add(txns, TransactionType.expense, "250.50", "Food", date(2025, 6, 5))
        _add(txns, TransactionType.expense, "49.50", "Transport", date(2025, 1, 10))
        _add(txns, TransactionType.expense, "80", "Food", date(2024, 5, 20))

        stats = StatsService(session, user.id)
        monthly = stats.monthly(TransactionFilters(), today=date(2025, 6, 15))
        assert monthly == [
            {"year": 2025, "month": 1, "type": "expense", "total": 49.5},
            {"year": 2025, "month": 6, "type": "expense", "total": 250.5},
            {"year": 2025, "month": 6, "type": "income", "total": 1000.0},
        ]

        narrowed = stats.monthly(
            TransactionFilters(start=date(2025, 2, 1)), today=date(2025, 6, 15)
        )
        assert [(row["year"], row["month"]) for row in narrowed] == [
            (2025, 6),
            (2025, 6),
        ]

        categories = stats.categories(TransactionFilters())
        assert categories == [
            {"category": "Salary", "type": "income", "total": 1000.0},
            {"category": "Food", "type": "expense", "total": 330.5},
            {"category": "Transport", "type": "expense", "total": 49.5},
        ]


def test_trends_window_and_top_categories() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    today = date(2025, 6, 15)

    with Session(engine) as session:
        user = _user(session)
        txns = TransactionService(session, user.id)
        _add(txns, TransactionType.expense, "10", "Food", date(2025, 6, 8))
        _add(txns, TransactionType.expense, "5", "Food", date(2025, 6, 9))
        _add(txns, TransactionType.expense, "30", "Bills", date(2025, 6, 12))
        _add(txns, TransactionType.expense, "1", "Shopping", date(2025, 6, 13))
        _add(txns, TransactionType.income, "100", "Salary", date(2025, 6, 14))
        _add(txns, TransactionType.expense, "20", "Transport", date(2025, 6, 15))

        trends = StatsService(session, user.id).trends(7, today=today)
        assert trends["range"] == {"start": "2025-06-09", "end": "2025-06-15"}
        assert [(row["day"], row["type"]) for row in trends["daily"]] == [
            (9, "expense"),
            (12, "expense"),
            (13, "expense"),
            (14, "income"),
            (15, "expense"),
        ]
        assert trends["topCategories"] == [
            {"category": "Bills", "total": 30.0},
            {"category": "Transport", "total": 20.0},
            {"category": "Food", "total": 5.0},
        ]


def test_trends_days_are_clamped() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    today = date(2025, 6, 15)

    with Session(engine) as session:
        stats = StatsService(session, _user(session).id)
        assert stats.trends(0, today=today)["range"]["start"] == "2025-06-15"
        longest = stats.trends(1000, today=today)["range"]["start"]
        assert longest == (today - timedelta(days=364)).isoformat()
