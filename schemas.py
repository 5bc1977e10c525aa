import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from models import (
    AccountType,
    BudgetPeriod,
    PaymentMethod,
    TransactionType,
    WalletType,
)


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)


class LoginIn(CamelModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class SignupIn(CamelModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: EmailStr
    password: str = Field(..., min_length=6, max_length=200)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    locale: str = Field(default="en-US", min_length=2, max_length=20)


class SettingsIn(CamelModel):
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
    locale: Optional[str] = Field(default=None, min_length=2, max_length=20)


class TransactionIn(CamelModel):
    type: TransactionType
    amount: Decimal = Field(..., ge=0, max_digits=14, decimal_places=2)
    category: str = Field(..., min_length=1, max_length=100)
    payment_method: PaymentMethod = Field(
        default=PaymentMethod.cash, alias="paymentMethod"
    )
    description: Optional[str] = Field(default=None, max_length=500)
    date: Optional[dt.date] = None


class BudgetIn(CamelModel):
    category: str = Field(..., min_length=1, max_length=100)
    period: BudgetPeriod = BudgetPeriod.monthly
    amount: Decimal = Field(..., gt=0, max_digits=14, decimal_places=2)


class CategorizeIn(CamelModel):
    description: str = Field(..., min_length=1, max_length=500)


class BankAccountIn(CamelModel):
    bank_name: str = Field(..., min_length=1, max_length=120, alias="bankName")
    account_type: AccountType = Field(..., alias="accountType")
    account_number: str = Field(
        ..., min_length=4, max_length=34, alias="accountNumber"
    )
    routing_number: Optional[str] = Field(
        default=None, max_length=20, alias="routingNumber"
    )
    balance: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)


class BankAccountUpdateIn(CamelModel):
    bank_name: Optional[str] = Field(
        default=None, min_length=1, max_length=120, alias="bankName"
    )
    account_type: Optional[AccountType] = Field(default=None, alias="accountType")
    balance: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)


class DigitalWalletIn(CamelModel):
    wallet_type: WalletType = Field(..., alias="walletType")
    wallet_name: str = Field(..., min_length=1, max_length=120, alias="walletName")
    wallet_id: str = Field(..., min_length=1, max_length=120, alias="walletId")
    balance: Decimal = Field(default=Decimal("0"), max_digits=14, decimal_places=2)
    currency: str = Field(default="USD", min_length=3, max_length=3)
    upi_id: Optional[str] = Field(default=None, max_length=120, alias="upiId")
    paypal_email: Optional[EmailStr] = Field(default=None, alias="paypalEmail")


class DigitalWalletUpdateIn(CamelModel):
    wallet_name: Optional[str] = Field(
        default=None, min_length=1, max_length=120, alias="walletName"
    )
    balance: Optional[Decimal] = Field(default=None, max_digits=14, decimal_places=2)
    currency: Optional[str] = Field(default=None, min_length=3, max_length=3)
