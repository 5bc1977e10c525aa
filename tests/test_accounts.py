from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from database import Base
from models import AccountType, User, WalletType
from schemas import (
    BankAccountIn,
    BankAccountUpdateIn,
    DigitalWalletIn,
    DigitalWalletUpdateIn,
)
from services import BankAccountService, DigitalWalletService, NotFoundError


def _user(session: Session, email: str = "ana@finance-app.io") -> User:
    user = User(name="Ana", email=email, password_hash="x")
    session.add(user)
    session.commit()
    return user


def test_bank_account_lifecycle() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = BankAccountService(session, user.id)
        account = service.create(
            BankAccountIn(
                bank_name="First Bank",
                account_type=AccountType.checking,
                account_number="000123456789",
                balance=Decimal("1500.25"),
            )
        )
        assert account.account_number == "6789"
        assert account.balance_cents == 150_025
        assert account.last_sync is None

        service.update(account.id, BankAccountUpdateIn(balance=Decimal("10")))
        assert service.get(account.id).balance_cents == 1_000

        assert service.sync(account.id).last_sync is not None

        service.deactivate(account.id)
        assert service.list_active() == []


def test_bank_account_is_owner_scoped() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        owner = _user(session)
        other = _user(session, "ben@finance-app.io")
        account = BankAccountService(session, owner.id).create(
            BankAccountIn(
                bank_name="First Bank",
                account_type=AccountType.savings,
                account_number="4321",
            )
        )
        with pytest.raises(NotFoundError):
            BankAccountService(session, other.id).get(account.id)


def test_digital_wallet_lifecycle() -> None:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        user = _user(session)
        service = DigitalWalletService(session, user.id)
        wallet = service.create(
            DigitalWalletIn(
                wallet_type=WalletType.paypal,
                wallet_name="Personal",
                wallet_id="pp-001",
                paypal_email="ana@finance-app.io",
            )
        )
        assert [w.id for w in service.list_active()] == [wallet.id]

        service.update(wallet.id, DigitalWalletUpdateIn(wallet_name="Travel"))
        assert service.get(wallet.id).wallet_name == "Travel"

        service.deactivate(wallet.id)
        assert service.list_active() == []
        with pytest.raises(NotFoundError):
            DigitalWalletService(session, user.id + 1).sync(wallet.id)
