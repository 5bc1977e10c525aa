from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import PaymentMethod, TransactionType, User
from schemas import TransactionIn
from services import NotFoundError, TransactionFilters, TransactionService


def _user(session: Session, email: str) -> User:
    user = User(name=email.split("@")[0], email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def _expense(amount: str, category: str, day: date, description: str = "") -> TransactionIn:
    return TransactionIn(
        type=TransactionType.expense,
        amount=Decimal(amount),
        category=category,
        payment_method=PaymentMethod.card,
        description=description,
        date=day,
    )


def test_create_then_list_round_trip() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session, "ana@finance-app.io")
        service = TransactionService(session, user.id)
        created = service.create(_expense("12.34", "Food", date(2025, 6, 1), "Lunch"))

        items, total = service.list(TransactionFilters())
        assert total == 1
        assert [t.id for t in items] == [created.id]
        stored = items[0]
        assert stored.amount_cents == 1234
        assert stored.category == "Food"
        assert stored.payment_method == PaymentMethod.card
        assert stored.description == "Lunch"
        assert stored.date == date(2025, 6, 1)


def test_missing_date_uses_today_and_missing_description_is_blank() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session, "ana@finance-app.io")
        txn = TransactionService(session, user.id).create(
            TransactionIn(
                type=TransactionType.income,
                amount=Decimal("100"),
                category="Salary",
            ),
            today=date(2025, 6, 15),
        )
        assert txn.date == date(2025, 6, 15)
        assert txn.description == ""
        assert txn.payment_method == PaymentMethod.cash


def test_other_users_transactions_are_not_found() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        owner = _user(session, "ana@finance-app.io")
        other = _user(session, "ben@finance-app.io")
        txn = TransactionService(session, owner.id).create(
            _expense("5", "Food", date(2025, 6, 1))
        )

        intruder = TransactionService(session, other.id)
        with pytest.raises(NotFoundError):
            intruder.get(txn.id)
        with pytest.raises(NotFoundError):
            intruder.update(txn.id, _expense("1", "Food", date(2025, 6, 1)))
        with pytest.raises(NotFoundError):
            intruder.delete(txn.id)
        assert intruder.list(TransactionFilters()) == ([], 0)


def test_update_keeps_date_when_omitted_and_delete_removes() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session, "ana@finance-app.io")
        service = TransactionService(session, user.id)
        txn = service.create(_expense("5", "Food", date(2025, 6, 1)))

        updated = service.update(
            txn.id,
            TransactionIn(
                type=TransactionType.expense, amount=Decimal("7.5"), category="Transport"
            ),
        )
        assert updated.amount_cents == 750
        assert updated.category == "Transport"
        assert updated.date == date(2025, 6, 1)

        service.delete(txn.id)
        with pytest.raises(NotFoundError):
            service.get(txn.id)


def test_filters_search_and_pagination() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session, "ana@finance-app.io")
        service = TransactionService(session, user.id)
        service.create(_expense("10", "Food", date(2025, 6, 1), "Pizza Night"))
        service.create(_expense("20", "Transport", date(2025, 6, 2), "Taxi home"))
        service.create(_expense("30", "Food", date(2025, 6, 10), "Groceries"))

        _, total = service.list(TransactionFilters(query="pizza"))
        assert total == 1
        _, total = service.list(TransactionFilters(query="FOOD"))
        assert total == 2

        windowed, total = service.list(
            TransactionFilters(start=date(2025, 6, 1), end=date(2025, 6, 10))
        )
        assert total == 2
        assert [t.date for t in windowed] == [date(2025, 6, 2), date(2025, 6, 1)]

        page, total = service.list(TransactionFilters(), limit=2, offset=2)
        assert total == 3
        assert [t.date for t in page] == [date(2025, 6, 1)]
