import logging
import time
from datetime import date
from typing import Optional

from fastapi import (
    Depends,
    FastAPI,
    File,
    Form,
    Header,
    HTTPException,
    Request,
    UploadFile,
)
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from auth import create_access_token, read_access_token
from config import get_settings
from database import SessionLocal, init_db
from models import (
    BankAccount,
    Budget,
    DigitalWallet,
    PaymentMethod,
    Transaction,
    TransactionType,
    User,
)
from schemas import (
    BankAccountIn,
    BankAccountUpdateIn,
    BudgetIn,
    CategorizeIn,
    DigitalWalletIn,
    DigitalWalletUpdateIn,
    LoginIn,
    SettingsIn,
    SignupIn,
    TransactionIn,
)
from services import (
    AuthError,
    BankAccountService,
    BudgetProgress,
    BudgetService,
    DigitalWalletService,
    DuplicateError,
    InsightsService,
    MLService,
    NotFoundError,
    StatsService,
    StoreError,
    TransactionFilters,
    TransactionService,
    UserService,
    ValidationError,
    cents_to_units,
    discard_avatar,
    page_count,
    store_avatar,
)

settings = get_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)

app = FastAPI(title="Finance Tracker")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)
app.mount("/uploads", StaticFiles(directory=settings.upload_dir), name="uploads")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@app.on_event("startup")
def startup_event():
    init_db()
    logger.info("Database ready")


@app.middleware("http")
async def log_requests(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info(
        f"request: method={request.method} path={request.url.path} "
        f"status={response.status_code} ms={elapsed_ms:.1f}"
    )
    return response


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError):
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def current_user(
    authorization: Optional[str] = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    user_id = read_access_token(authorization.split(" ", 1)[1].strip())
    if user_id is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    user = db.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")
    return user


def _parse_date_param(request: Request, name: str) -> Optional[date]:
    raw = request.query_params.get(name)
    if not raw:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {name} date") from exc


def _int_param(
    request: Request, name: str, default: int, *, keep_zero: bool = False
) -> int:
    try:
        value = int(request.query_params.get(name, ""))
    except ValueError:
        return default
    if keep_zero:
        return value
    return value or default


def filters_from_request(request: Request) -> TransactionFilters:
    type_param = request.query_params.get("type")
    method_param = request.query_params.get("paymentMethod")
    txn_type = None
    if type_param:
        try:
            txn_type = TransactionType(type_param)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid type") from exc
    payment_method = None
    if method_param:
        try:
            payment_method = PaymentMethod(method_param)
        except ValueError as exc:
            raise HTTPException(
                status_code=400, detail="Invalid payment method"
            ) from exc
    return TransactionFilters(
        type=txn_type,
        category=request.query_params.get("category") or None,
        payment_method=payment_method,
        start=_parse_date_param(request, "from"),
        end=_parse_date_param(request, "to"),
        query=request.query_params.get("search") or None,
    )


def user_json(user: User) -> dict[str, object]:
    return {
        "id": user.id,
        "name": user.name,
        "email": user.email,
        "avatarUrl": user.avatar_url,
        "currency": user.currency,
        "locale": user.locale,
    }


def transaction_json(txn: Transaction) -> dict[str, object]:
    return {
        "id": txn.id,
        "type": txn.type.value,
        "amount": cents_to_units(txn.amount_cents),
        "category": txn.category,
        "paymentMethod": txn.payment_method.value,
        "description": txn.description,
        "date": txn.date.isoformat(),
        "createdAt": txn.created_at.isoformat(),
    }


def budget_json(budget: Budget) -> dict[str, object]:
    return {
        "id": budget.id,
        "category": budget.category,
        "period": budget.period.value,
        "amount": cents_to_units(budget.amount_cents),
        "startDate": budget.start_date.isoformat(),
    }


def budget_progress_json(progress: BudgetProgress) -> dict[str, object]:
    out = budget_json(progress.budget)
    out.update(
        {
            "periodStart": progress.period.start.isoformat(),
            "periodEnd": progress.period.end.isoformat(),
            "spent": cents_to_units(progress.spent_cents),
            "remaining": cents_to_units(progress.remaining_cents),
        }
    )
    return out


def bank_account_json(account: BankAccount) -> dict[str, object]:
    return {
        "id": account.id,
        "bankName": account.bank_name,
        "accountType": account.account_type.value,
        "accountNumber": account.account_number,
        "routingNumber": account.routing_number,
        "balance": cents_to_units(account.balance_cents),
        "currency": account.currency,
        "isActive": account.is_active,
        "lastSync": account.last_sync.isoformat() if account.last_sync else None,
    }


def wallet_json(wallet: DigitalWallet) -> dict[str, object]:
    return {
        "id": wallet.id,
        "walletType": wallet.wallet_type.value,
        "walletName": wallet.wallet_name,
        "walletId": wallet.wallet_id,
        "balance": cents_to_units(wallet.balance_cents),
        "currency": wallet.currency,
        "isActive": wallet.is_active,
        "lastSync": wallet.last_sync.isoformat() if wallet.last_sync else None,
        "upiId": wallet.upi_id,
        "paypalEmail": wallet.paypal_email,
    }


@app.get("/health")
def health():
    return {"status": "ok"}


# Auth


@app.post("/api/auth/signup", status_code=201)
async def signup(
    name: str = Form(""),
    email: str = Form(""),
    password: str = Form(""),
    currency: str = Form("USD"),
    locale: str = Form("en-US"),
    avatar: Optional[UploadFile] = File(None),
    db: Session = Depends(get_db),
):
    if not name or not email or not password:
        raise HTTPException(status_code=400, detail="Missing required fields")
    try:
        data = SignupIn(
            name=name, email=email, password=password, currency=currency, locale=locale
        )
    except SchemaValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    avatar_url = None
    if avatar is not None and avatar.filename:
        try:
            avatar_url = store_avatar(avatar.filename, await avatar.read())
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
    try:
        user = UserService(db).signup(data, avatar_url)
    except DuplicateError as exc:
        discard_avatar(avatar_url)
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except StoreError:
        discard_avatar(avatar_url)
        raise
    return {"token": create_access_token(user.id), "user": user_json(user)}


@app.post("/api/auth/login")
def login(payload: LoginIn, db: Session = Depends(get_db)):
    try:
        user = UserService(db).authenticate(payload.email, payload.password)
    except AuthError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    return {"token": create_access_token(user.id), "user": user_json(user)}


@app.get("/api/auth/me")
def me(user: User = Depends(current_user)):
    return {"user": user_json(user)}


@app.post("/api/auth/avatar")
async def upload_avatar(
    avatar: UploadFile = File(...),
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        avatar_url = store_avatar(avatar.filename or "", await avatar.read())
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    updated = UserService(db).set_avatar(user.id, avatar_url)
    return {"user": user_json(updated)}


# Settings


@app.get("/api/settings")
def get_user_settings(user: User = Depends(current_user)):
    return {"currency": user.currency, "locale": user.locale}


@app.put("/api/settings")
def update_user_settings(
    payload: SettingsIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    updated = UserService(db).update_settings(user.id, payload)
    return {"currency": updated.currency, "locale": updated.locale}


# Stats and transactions


@app.get("/api/stats")
def api_stats(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    return StatsService(db, user.id).summary(filters)


@app.get("/api/stats/trends")
def api_trends(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    days = _int_param(request, "days", 30, keep_zero=True)
    return StatsService(db, user.id).trends(days)


@app.get("/api/stats/transactions")
def api_transactions(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    filters = filters_from_request(request)
    page = max(_int_param(request, "page", 1), 1)
    limit = min(max(_int_param(request, "limit", 10), 1), 100)
    offset = (page - 1) * limit
    items, total = TransactionService(db, user.id).list(
        filters, limit=limit, offset=offset
    )
    return {
        "transactions": [transaction_json(txn) for txn in items],
        "total": total,
        "page": page,
        "pages": page_count(total, limit),
    }


@app.post("/api/stats/transactions", status_code=201)
def create_transaction(
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    txn = TransactionService(db, user.id).create(payload)
    return transaction_json(txn)


@app.put("/api/stats/transactions/{transaction_id}")
def update_transaction(
    transaction_id: int,
    payload: TransactionIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        txn = TransactionService(db, user.id).update(transaction_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return transaction_json(txn)


@app.delete("/api/stats/transactions/{transaction_id}")
def delete_transaction(
    transaction_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        TransactionService(db, user.id).delete(transaction_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Transaction deleted successfully"}


# Budgets


@app.get("/api/budgets")
def list_budgets(user: User = Depends(current_user), db: Session = Depends(get_db)):
    progress = BudgetService(db, user.id).list_with_progress()
    return {"budgets": [budget_progress_json(p) for p in progress]}


@app.post("/api/budgets", status_code=201)
def upsert_budget(
    payload: BudgetIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    budget = BudgetService(db, user.id).upsert(payload)
    return budget_json(budget)


@app.delete("/api/budgets/{budget_id}")
def delete_budget(
    budget_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        BudgetService(db, user.id).delete(budget_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Budget deleted"}


# Insights


@app.get("/api/insights")
def api_insights(user: User = Depends(current_user), db: Session = Depends(get_db)):
    insights = InsightsService(db, user.id).spending_above_usual()
    return {"insights": [i.as_json() for i in insights]}


def _ml_service(db: Session, user: User) -> MLService:
    return MLService(db, user.id, currency=user.currency)


@app.post("/api/ml/categorize")
def ml_categorize(
    payload: CategorizeIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    return {"category": _ml_service(db, user).categorize(payload.description)}


@app.get("/api/ml/predictions")
def ml_predictions(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    months = _int_param(request, "months", 6)
    predictions = _ml_service(db, user).predictions(months)
    return {"predictions": {k: v.as_json() for k, v in predictions.items()}}


@app.get("/api/ml/anomalies")
def ml_anomalies(
    request: Request,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    days = _int_param(request, "days", 30)
    anomalies = _ml_service(db, user).anomalies(days)
    return {"anomalies": [a.as_json() for a in anomalies]}


@app.get("/api/ml/suggestions")
def ml_suggestions(user: User = Depends(current_user), db: Session = Depends(get_db)):
    suggestions = _ml_service(db, user).suggestions()
    return {"suggestions": [s.as_json() for s in suggestions]}


@app.get("/api/ml/insights")
def ml_insights(user: User = Depends(current_user), db: Session = Depends(get_db)):
    return _ml_service(db, user).insights()


# Connections


@app.get("/api/bank-accounts")
def list_bank_accounts(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    accounts = BankAccountService(db, user.id).list_active()
    return {"accounts": [bank_account_json(a) for a in accounts]}


@app.post("/api/bank-accounts", status_code=201)
def create_bank_account(
    payload: BankAccountIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    account = BankAccountService(db, user.id).create(payload)
    return bank_account_json(account)


@app.put("/api/bank-accounts/{account_id}")
def update_bank_account(
    account_id: int,
    payload: BankAccountUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        account = BankAccountService(db, user.id).update(account_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return bank_account_json(account)


@app.delete("/api/bank-accounts/{account_id}")
def delete_bank_account(
    account_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        BankAccountService(db, user.id).deactivate(account_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Bank account deleted successfully"}


@app.post("/api/bank-accounts/{account_id}/sync")
def sync_bank_account(
    account_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        account = BankAccountService(db, user.id).sync(account_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Sync completed", "lastSync": account.last_sync.isoformat()}


@app.get("/api/digital-wallets")
def list_digital_wallets(
    user: User = Depends(current_user), db: Session = Depends(get_db)
):
    wallets = DigitalWalletService(db, user.id).list_active()
    return {"wallets": [wallet_json(w) for w in wallets]}


@app.post("/api/digital-wallets", status_code=201)
def create_digital_wallet(
    payload: DigitalWalletIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    wallet = DigitalWalletService(db, user.id).create(payload)
    return wallet_json(wallet)


@app.put("/api/digital-wallets/{wallet_id}")
def update_digital_wallet(
    wallet_id: int,
    payload: DigitalWalletUpdateIn,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        wallet = DigitalWalletService(db, user.id).update(wallet_id, payload)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return wallet_json(wallet)


@app.delete("/api/digital-wallets/{wallet_id}")
def delete_digital_wallet(
    wallet_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        DigitalWalletService(db, user.id).deactivate(wallet_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Digital wallet deleted successfully"}


@app.post("/api/digital-wallets/{wallet_id}/sync")
def sync_digital_wallet(
    wallet_id: int,
    user: User = Depends(current_user),
    db: Session = Depends(get_db),
):
    try:
        wallet = DigitalWalletService(db, user.id).sync(wallet_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return {"message": "Sync completed", "lastSync": wallet.last_sync.isoformat()}


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()
