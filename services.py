from __future__ import annotations

import logging
import math
import re
import secrets
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from pathlib import Path
from typing import Optional
from zoneinfo import ZoneInfo

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from analytics import (
    Anomaly,
    ExpenseRecord,
    KeywordTable,
    Prediction,
    SpendingInsight,
    Suggestion,
    build_suggestions,
    categorize,
    detect_anomalies,
    predict_expenses,
    spending_above_usual,
)
from auth import hash_password, verify_password
from config import get_settings
from models import (
    BankAccount,
    Budget,
    DigitalWallet,
    PaymentMethod,
    Transaction,
    TransactionType,
    User,
)
from periods import (
    Period,
    add_months,
    budget_period_range,
    month_start,
    shift_months,
    trailing_days,
    trailing_months_start,
)
from schemas import (
    BankAccountIn,
    BankAccountUpdateIn,
    BudgetIn,
    DigitalWalletIn,
    DigitalWalletUpdateIn,
    SettingsIn,
    SignupIn,
    TransactionIn,
)

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 100
MAX_AVATAR_BYTES = 5 * 1024 * 1024
AVATAR_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}


class ValidationError(ValueError):
    pass


class DuplicateError(ValidationError):
    pass


class NotFoundError(ValueError):
    pass


class AuthError(ValueError):
    pass


class StoreError(RuntimeError):
    pass


def today_local() -> date:
    return datetime.now(ZoneInfo(get_settings().timezone)).date()


def to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal("1")))


def cents_to_units(cents: int) -> float:
    return cents / 100


def _commit(session: Session, action: str) -> None:
    try:
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception(f"store_error: action={action}")
        raise StoreError(f"Could not {action}") from exc


@dataclass
class TransactionFilters:
    type: Optional[TransactionType] = None
    category: Optional[str] = None
    payment_method: Optional[PaymentMethod] = None
    start: Optional[date] = None
    end: Optional[date] = None
    query: Optional[str] = None


def _apply_filters(stmt, filters: TransactionFilters):
    if filters.type:
        stmt = stmt.where(Transaction.type == filters.type)
    if filters.category:
        stmt = stmt.where(Transaction.category == filters.category)
    if filters.payment_method:
        stmt = stmt.where(Transaction.payment_method == filters.payment_method)
    if filters.start:
        stmt = stmt.where(Transaction.date >= filters.start)
    if filters.end:
        stmt = stmt.where(Transaction.date < filters.end)
    if filters.query:
        like = f"%{filters.query.lower()}%"
        stmt = stmt.where(
            or_(
                func.lower(func.coalesce(Transaction.description, "")).like(like),
                func.lower(Transaction.category).like(like),
            )
        )
    return stmt


def store_avatar(filename: str, content: bytes) -> str:
    """Write an uploaded avatar under the upload dir and return its public URL."""
    if not content:
        raise ValidationError("Empty file")
    if len(content) > MAX_AVATAR_BYTES:
        raise ValidationError("Avatar too large (max 5MB)")
    path = Path(filename or "")
    ext = path.suffix.lower()
    if ext not in AVATAR_EXTENSIONS:
        raise ValidationError("Avatar must be an image file")
    base = re.sub(r"[^a-z0-9_-]", "", path.stem, flags=re.IGNORECASE) or "avatar"
    unique = f"{int(time.time() * 1000)}-{secrets.randbelow(10**9)}"
    stored = f"{base}-{unique}{ext}"
    (get_settings().upload_dir / stored).write_bytes(content)
    return f"/uploads/{stored}"


def discard_avatar(avatar_url: Optional[str]) -> None:
    """Remove a stored avatar whose owner was never created."""
    if not avatar_url:
        return
    (get_settings().upload_dir / Path(avatar_url).name).unlink(missing_ok=True)


class UserService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get(self, user_id: int) -> User:
        user = self.session.get(User, user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    def signup(self, data: SignupIn, avatar_url: Optional[str] = None) -> User:
        email = data.email.lower()
        existing = self.session.scalar(select(User).where(User.email == email))
        if existing:
            raise DuplicateError("Email already registered")
        user = User(
            name=data.name,
            email=email,
            password_hash=hash_password(data.password),
            avatar_url=avatar_url,
            currency=data.currency.upper(),
            locale=data.locale,
        )
        self.session.add(user)
        try:
            self.session.commit()
        except IntegrityError as exc:
            self.session.rollback()
            raise DuplicateError("Email already registered") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            logger.exception("store_error: action=signup")
            raise StoreError("Could not create user") from exc
        self.session.refresh(user)
        logger.info(f"user_signup: user_id={user.id}")
        return user

    def authenticate(self, email: str, password: str) -> User:
        user = self.session.scalar(select(User).where(User.email == email.lower()))
        if not user or not verify_password(password, user.password_hash):
            logger.info("user_login_failed")
            raise AuthError("Invalid credentials")
        return user

    def update_settings(self, user_id: int, data: SettingsIn) -> User:
        user = self.get(user_id)
        if data.currency is not None:
            user.currency = data.currency.upper()
        if data.locale is not None:
            user.locale = data.locale
        _commit(self.session, "update settings")
        return user

    def set_avatar(self, user_id: int, avatar_url: str) -> User:
        user = self.get(user_id)
        user.avatar_url = avatar_url
        _commit(self.session, "update avatar")
        return user


class TransactionService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def create(self, data: TransactionIn, *, today: Optional[date] = None) -> Transaction:
        txn = Transaction(
            user_id=self.user_id,
            type=data.type,
            amount_cents=to_cents(data.amount),
            category=data.category,
            payment_method=data.payment_method,
            description=data.description or "",
            date=data.date or today or today_local(),
        )
        self.session.add(txn)
        _commit(self.session, "create transaction")
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: user_id={self.user_id} id={txn.id} type={txn.type.value}"
        )
        return txn

    def get(self, transaction_id: int) -> Transaction:
        txn = self.session.scalar(
            select(Transaction).where(
                Transaction.user_id == self.user_id, Transaction.id == transaction_id
            )
        )
        if not txn:
            raise NotFoundError("Transaction not found")
        return txn

    def update(self, transaction_id: int, data: TransactionIn) -> Transaction:
        txn = self.get(transaction_id)
        txn.type = data.type
        txn.amount_cents = to_cents(data.amount)
        txn.category = data.category
        txn.payment_method = data.payment_method
        txn.description = data.description or ""
        if data.date is not None:
            txn.date = data.date
        _commit(self.session, "update transaction")
        self.session.refresh(txn)
        logger.info(f"transaction_updated: user_id={self.user_id} id={txn.id}")
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        _commit(self.session, "delete transaction")
        logger.info(f"transaction_deleted: user_id={self.user_id} id={transaction_id}")

    def list(
        self,
        filters: TransactionFilters,
        limit: int = 10,
        offset: int = 0,
    ) -> tuple[list[Transaction], int]:
        stmt = _apply_filters(
            select(Transaction).where(Transaction.user_id == self.user_id), filters
        )
        stmt = (
            stmt.order_by(Transaction.date.desc(), Transaction.id.desc())
            .offset(offset)
            .limit(limit)
        )
        count_stmt = _apply_filters(
            select(func.count(Transaction.id)).where(
                Transaction.user_id == self.user_id
            ),
            filters,
        )
        items = list(self.session.scalars(stmt).all())
        total = int(self.session.execute(count_stmt).scalar_one() or 0)
        return items, total

    def described_history(
        self, limit: int = HISTORY_LIMIT
    ) -> list[tuple[Optional[str], Optional[str]]]:
        stmt = (
            select(Transaction.description, Transaction.category)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.description.is_not(None),
                Transaction.description != "",
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(limit)
        )
        return [(row.description, row.category) for row in self.session.execute(stmt)]

    def expenses_between(self, start: date, end: date) -> list[ExpenseRecord]:
        """Expense rows with ``start <= date <= end``, newest first."""
        stmt = (
            select(Transaction)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date >= start,
                Transaction.date <= end,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
        )
        return [
            ExpenseRecord(
                category=txn.category,
                amount_cents=txn.amount_cents,
                date=txn.date,
                description=txn.description,
                id=txn.id,
            )
            for txn in self.session.scalars(stmt)
        ]


class StatsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def totals(self, filters: TransactionFilters) -> dict[str, float]:
        stmt = _apply_filters(
            select(
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            ).where(Transaction.user_id == self.user_id),
            filters,
        ).group_by(Transaction.type)
        by_type = {row.type: int(row.total or 0) for row in self.session.execute(stmt)}
        income = by_type.get(TransactionType.income, 0)
        expense = by_type.get(TransactionType.expense, 0)
        return {
            "income": cents_to_units(income),
            "expense": cents_to_units(expense),
            "balance": cents_to_units(income - expense),
        }

    def monthly(
        self, filters: TransactionFilters, *, today: Optional[date] = None
    ) -> list[dict[str, object]]:
        window_start = trailing_months_start(today or today_local(), 12)
        start = max(window_start, filters.start) if filters.start else window_start
        scoped = TransactionFilters(
            type=filters.type,
            category=filters.category,
            payment_method=filters.payment_method,
            start=start,
            end=filters.end,
            query=filters.query,
        )
        year = func.strftime("%Y", Transaction.date).label("year")
        month = func.strftime("%m", Transaction.date).label("month")
        stmt = _apply_filters(
            select(
                year,
                month,
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            ).where(Transaction.user_id == self.user_id),
            scoped,
        ).group_by(year, month, Transaction.type)
        rows = sorted(
            (
                (int(row.year), int(row.month), row.type, int(row.total or 0))
                for row in self.session.execute(stmt)
            ),
            key=lambda r: (r[0], r[1], r[2].value),
        )
        return [
            {"year": y, "month": m, "type": t.value, "total": cents_to_units(total)}
            for y, m, t, total in rows
        ]

    def categories(self, filters: TransactionFilters) -> list[dict[str, object]]:
        total = func.coalesce(func.sum(Transaction.amount_cents), 0).label("total")
        stmt = (
            _apply_filters(
                select(Transaction.category, Transaction.type, total).where(
                    Transaction.user_id == self.user_id
                ),
                filters,
            )
            .group_by(Transaction.category, Transaction.type)
            .order_by(total.desc(), Transaction.category.asc())
        )
        return [
            {
                "category": row.category,
                "type": row.type.value,
                "total": cents_to_units(int(row.total or 0)),
            }
            for row in self.session.execute(stmt)
        ]

    def summary(
        self, filters: TransactionFilters, *, today: Optional[date] = None
    ) -> dict[str, object]:
        return {
            "totals": self.totals(filters),
            "monthly": self.monthly(filters, today=today),
            "categories": self.categories(filters),
        }

    def trends(self, days: int = 30, *, today: Optional[date] = None) -> dict[str, object]:
        days = max(1, min(365, days))
        window = trailing_days(today or today_local(), days)

        year = func.strftime("%Y", Transaction.date).label("year")
        month = func.strftime("%m", Transaction.date).label("month")
        day = func.strftime("%d", Transaction.date).label("day")
        daily_stmt = (
            select(
                year,
                month,
                day,
                Transaction.type,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.date >= window.start,
                Transaction.date < window.end,
            )
            .group_by(year, month, day, Transaction.type)
        )
        daily_rows = sorted(
            (
                (int(row.year), int(row.month), int(row.day), row.type, int(row.total or 0))
                for row in self.session.execute(daily_stmt)
            ),
            key=lambda r: (r[0], r[1], r[2], r[3].value),
        )

        total = func.coalesce(func.sum(Transaction.amount_cents), 0).label("total")
        top_stmt = (
            select(Transaction.category, total)
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date >= window.start,
                Transaction.date < window.end,
            )
            .group_by(Transaction.category)
            .order_by(total.desc(), Transaction.category.asc())
            .limit(3)
        )

        return {
            "range": {
                "start": window.start.isoformat(),
                "end": (window.end - timedelta(days=1)).isoformat(),
            },
            "daily": [
                {
                    "year": y,
                    "month": m,
                    "day": d,
                    "type": t.value,
                    "total": cents_to_units(amount),
                }
                for y, m, d, t, amount in daily_rows
            ],
            "topCategories": [
                {"category": row.category, "total": cents_to_units(int(row.total or 0))}
                for row in self.session.execute(top_stmt)
            ],
        }


@dataclass(frozen=True)
class BudgetProgress:
    budget: Budget
    period: Period
    spent_cents: int

    @property
    def remaining_cents(self) -> int:
        return max(0, self.budget.amount_cents - self.spent_cents)


class BudgetService:
    def __init__(
        self, session: Session, user_id: int, *, week_start: Optional[int] = None
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.week_start = (
            get_settings().week_start if week_start is None else week_start
        )

    def period_for(self, budget: Budget) -> Period:
        return budget_period_range(
            budget.period, budget.start_date, week_start=self.week_start
        )

    def spent_in_period(self, category: str, period: Period) -> int:
        stmt = select(func.coalesce(func.sum(Transaction.amount_cents), 0)).where(
            Transaction.user_id == self.user_id,
            Transaction.type == TransactionType.expense,
            Transaction.category == category,
            Transaction.date >= period.start,
            Transaction.date < period.end,
        )
        return int(self.session.execute(stmt).scalar_one() or 0)

    def list_with_progress(self) -> list[BudgetProgress]:
        budgets = self.session.scalars(
            select(Budget)
            .where(Budget.user_id == self.user_id)
            .order_by(Budget.created_at.desc(), Budget.id.desc())
        ).all()
        out: list[BudgetProgress] = []
        for budget in budgets:
            period = self.period_for(budget)
            out.append(
                BudgetProgress(
                    budget=budget,
                    period=period,
                    spent_cents=self.spent_in_period(budget.category, period),
                )
            )
        return out

    def upsert(self, data: BudgetIn, *, today: Optional[date] = None) -> Budget:
        period = budget_period_range(
            data.period, today or today_local(), week_start=self.week_start
        )
        existing = self.session.scalar(
            select(Budget).where(
                Budget.user_id == self.user_id,
                Budget.category == data.category,
                Budget.period == data.period,
                Budget.start_date == period.start,
            )
        )
        if existing:
            existing.amount_cents = to_cents(data.amount)
            _commit(self.session, "update budget")
            self.session.refresh(existing)
            logger.info(f"budget_updated: user_id={self.user_id} id={existing.id}")
            return existing

        budget = Budget(
            user_id=self.user_id,
            category=data.category,
            period=data.period,
            amount_cents=to_cents(data.amount),
            start_date=period.start,
        )
        self.session.add(budget)
        _commit(self.session, "create budget")
        self.session.refresh(budget)
        logger.info(f"budget_created: user_id={self.user_id} id={budget.id}")
        return budget

    def delete(self, budget_id: int) -> None:
        budget = self.session.get(Budget, budget_id)
        if not budget or budget.user_id != self.user_id:
            raise NotFoundError("Budget not found")
        self.session.delete(budget)
        _commit(self.session, "delete budget")
        logger.info(f"budget_deleted: user_id={self.user_id} id={budget_id}")


class BankAccountService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_active(self) -> list[BankAccount]:
        return list(
            self.session.scalars(
                select(BankAccount)
                .where(
                    BankAccount.user_id == self.user_id,
                    BankAccount.is_active.is_(True),
                )
                .order_by(BankAccount.id.asc())
            ).all()
        )

    def get(self, account_id: int) -> BankAccount:
        account = self.session.get(BankAccount, account_id)
        if not account or account.user_id != self.user_id:
            raise NotFoundError("Bank account not found")
        return account

    def create(self, data: BankAccountIn) -> BankAccount:
        account = BankAccount(
            user_id=self.user_id,
            bank_name=data.bank_name,
            account_type=data.account_type,
            account_number=data.account_number[-4:],
            routing_number=data.routing_number,
            balance_cents=to_cents(data.balance),
            currency=data.currency.upper(),
        )
        self.session.add(account)
        _commit(self.session, "create bank account")
        self.session.refresh(account)
        logger.info(f"bank_account_created: user_id={self.user_id} id={account.id}")
        return account

    def update(self, account_id: int, data: BankAccountUpdateIn) -> BankAccount:
        account = self.get(account_id)
        if data.bank_name is not None:
            account.bank_name = data.bank_name
        if data.account_type is not None:
            account.account_type = data.account_type
        if data.balance is not None:
            account.balance_cents = to_cents(data.balance)
        if data.currency is not None:
            account.currency = data.currency.upper()
        _commit(self.session, "update bank account")
        return account

    def deactivate(self, account_id: int) -> None:
        account = self.get(account_id)
        account.is_active = False
        _commit(self.session, "delete bank account")
        logger.info(f"bank_account_deleted: user_id={self.user_id} id={account_id}")

    def sync(self, account_id: int) -> BankAccount:
        # No provider integration; a sync only records when it happened.
        account = self.get(account_id)
        account.last_sync = datetime.utcnow()
        _commit(self.session, "sync bank account")
        return account


class DigitalWalletService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def list_active(self) -> list[DigitalWallet]:
        return list(
            self.session.scalars(
                select(DigitalWallet)
                .where(
                    DigitalWallet.user_id == self.user_id,
                    DigitalWallet.is_active.is_(True),
                )
                .order_by(DigitalWallet.id.asc())
            ).all()
        )

    def get(self, wallet_id: int) -> DigitalWallet:
        wallet = self.session.get(DigitalWallet, wallet_id)
        if not wallet or wallet.user_id != self.user_id:
            raise NotFoundError("Digital wallet not found")
        return wallet

    def create(self, data: DigitalWalletIn) -> DigitalWallet:
        wallet = DigitalWallet(
            user_id=self.user_id,
            wallet_type=data.wallet_type,
            wallet_name=data.wallet_name,
            wallet_id=data.wallet_id,
            balance_cents=to_cents(data.balance),
            currency=data.currency.upper(),
            upi_id=data.upi_id,
            paypal_email=data.paypal_email,
        )
        self.session.add(wallet)
        _commit(self.session, "create digital wallet")
        self.session.refresh(wallet)
        logger.info(f"digital_wallet_created: user_id={self.user_id} id={wallet.id}")
        return wallet

    def update(self, wallet_id: int, data: DigitalWalletUpdateIn) -> DigitalWallet:
        wallet = self.get(wallet_id)
        if data.wallet_name is not None:
            wallet.wallet_name = data.wallet_name
        if data.balance is not None:
            wallet.balance_cents = to_cents(data.balance)
        if data.currency is not None:
            wallet.currency = data.currency.upper()
        _commit(self.session, "update digital wallet")
        return wallet

    def deactivate(self, wallet_id: int) -> None:
        wallet = self.get(wallet_id)
        wallet.is_active = False
        _commit(self.session, "delete digital wallet")
        logger.info(f"digital_wallet_deleted: user_id={self.user_id} id={wallet_id}")

    def sync(self, wallet_id: int) -> DigitalWallet:
        wallet = self.get(wallet_id)
        wallet.last_sync = datetime.utcnow()
        _commit(self.session, "sync digital wallet")
        return wallet


class InsightsService:
    def __init__(self, session: Session, user_id: int) -> None:
        self.session = session
        self.user_id = user_id

    def spending_above_usual(
        self, *, today: Optional[date] = None, lookback: int = 3
    ) -> list[SpendingInsight]:
        today = today or today_local()
        current = month_start(today)
        start = add_months(current, -lookback)
        year = func.strftime("%Y", Transaction.date).label("year")
        month = func.strftime("%m", Transaction.date).label("month")
        stmt = (
            select(
                Transaction.category,
                year,
                month,
                func.coalesce(func.sum(Transaction.amount_cents), 0).label("total"),
            )
            .where(
                Transaction.user_id == self.user_id,
                Transaction.type == TransactionType.expense,
                Transaction.date >= start,
            )
            .group_by(Transaction.category, year, month)
        )
        rows = [
            (
                row.category,
                int(row.year),
                int(row.month),
                cents_to_units(int(row.total or 0)),
            )
            for row in self.session.execute(stmt)
        ]
        return spending_above_usual(
            rows, (current.year, current.month), lookback=lookback
        )


class MLService:
    """Wires the analytics engines to one user's transactions."""

    def __init__(
        self,
        session: Session,
        user_id: int,
        *,
        keyword_table: Optional[KeywordTable] = None,
        currency: str = "USD",
    ) -> None:
        self.session = session
        self.user_id = user_id
        self.keyword_table = (
            get_settings().category_keywords if keyword_table is None else keyword_table
        )
        self.currency = currency
        self.transactions = TransactionService(session, user_id)

    def categorize(self, description: str) -> str:
        return categorize(
            description, self.keyword_table, self.transactions.described_history
        )

    def predictions(
        self, months: int = 6, *, today: Optional[date] = None
    ) -> dict[str, Prediction]:
        today = today or today_local()
        records = self.transactions.expenses_between(shift_months(today, -months), today)
        return predict_expenses(records)

    def anomalies(self, days: int = 30, *, today: Optional[date] = None) -> list[Anomaly]:
        today = today or today_local()
        records = self.transactions.expenses_between(today - timedelta(days=days), today)
        return detect_anomalies(records)

    def suggestions(self, *, today: Optional[date] = None) -> list[Suggestion]:
        return build_suggestions(self.predictions(today=today), currency=self.currency)

    def insights(self, *, today: Optional[date] = None, top: int = 5) -> dict[str, object]:
        today = today or today_local()
        predictions = self.predictions(today=today)
        return {
            "predictions": {k: v.as_json() for k, v in predictions.items()},
            "anomalies": [a.as_json() for a in self.anomalies(today=today)[:top]],
            "suggestions": [
                s.as_json()
                for s in build_suggestions(predictions, currency=self.currency)[:top]
            ],
        }


def page_count(total: int, limit: int) -> int:
    return math.ceil(total / limit) if limit else 0
