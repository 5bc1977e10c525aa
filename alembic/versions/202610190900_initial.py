"""initial schema

Revision ID: 202610190900
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from alembic import op
import sqlalchemy as sa


revision = "202610190900"
down_revision = None
branch_labels = None
depends_on = None


TRANSACTION_TYPE = sa.Enum("income", "expense", name="transactiontype")
PAYMENT_METHOD = sa.Enum("cash", "card", "bank", "wallet", name="paymentmethod")
BUDGET_PERIOD = sa.Enum("monthly", "weekly", name="budgetperiod")
ACCOUNT_TYPE = sa.Enum(
    "checking", "savings", "credit", "investment", name="accounttype"
)
WALLET_TYPE = sa.Enum(
    "paypal", "google_pay", "apple_pay", "paytm", "upi", "stripe", name="wallettype"
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(length=255), nullable=False),
        sa.Column("avatar_url", sa.String(length=255)),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("locale", sa.String(length=20), nullable=False, server_default="en-US"),
        *_timestamps(),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("type", TRANSACTION_TYPE, nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category", sa.String(length=100), nullable=False, server_default="general"
        ),
        sa.Column(
            "payment_method", PAYMENT_METHOD, nullable=False, server_default="cash"
        ),
        sa.Column("description", sa.Text()),
        sa.Column("date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_transactions_amount_positive"),
    )
    op.create_index("ix_transactions_user_date", "transactions", ["user_id", "date"])
    op.create_index(
        "ix_transactions_user_type_date", "transactions", ["user_id", "type", "date"]
    )
    op.create_index(
        "ix_transactions_user_category_date",
        "transactions",
        ["user_id", "category", "date"],
    )
    op.create_index(
        "ix_transactions_user_payment_method",
        "transactions",
        ["user_id", "payment_method"],
    )

    op.create_table(
        "budgets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("period", BUDGET_PERIOD, nullable=False, server_default="monthly"),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_budget_amount_positive"),
        sa.UniqueConstraint(
            "user_id",
            "category",
            "period",
            "start_date",
            name="uq_budget_user_category_period_start",
        ),
    )
    op.create_index("ix_budget_user_period", "budgets", ["user_id", "period"])

    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("bank_name", sa.String(length=120), nullable=False),
        sa.Column("account_type", ACCOUNT_TYPE, nullable=False),
        sa.Column("account_number", sa.String(length=4), nullable=False),
        sa.Column("routing_number", sa.String(length=20)),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync", sa.DateTime()),
        *_timestamps(),
    )
    op.create_index(
        "ix_bank_accounts_user_active", "bank_accounts", ["user_id", "is_active"]
    )

    op.create_table(
        "digital_wallets",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("wallet_type", WALLET_TYPE, nullable=False),
        sa.Column("wallet_name", sa.String(length=120), nullable=False),
        sa.Column("wallet_id", sa.String(length=120), nullable=False),
        sa.Column("balance_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("currency", sa.String(length=3), nullable=False, server_default="USD"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_sync", sa.DateTime()),
        sa.Column("upi_id", sa.String(length=120)),
        sa.Column("paypal_email", sa.String(length=254)),
        *_timestamps(),
    )
    op.create_index(
        "ix_digital_wallets_user_active", "digital_wallets", ["user_id", "is_active"]
    )


def downgrade():
    op.drop_index("ix_digital_wallets_user_active", table_name="digital_wallets")
    op.drop_table("digital_wallets")
    op.drop_index("ix_bank_accounts_user_active", table_name="bank_accounts")
    op.drop_table("bank_accounts")
    op.drop_index("ix_budget_user_period", table_name="budgets")
    op.drop_table("budgets")
    op.drop_index("ix_transactions_user_payment_method", table_name="transactions")
    op.drop_index("ix_transactions_user_category_date", table_name="transactions")
    op.drop_index("ix_transactions_user_type_date", table_name="transactions")
    op.drop_index("ix_transactions_user_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_table("users")
