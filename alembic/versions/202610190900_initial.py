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


ACCOUNT_TYPES = ("Savings", "Checking", "Credit Card", "Investment", "Loan", "Other")
CATEGORIES = (
    "Food",
    "Groceries",
    "Bills",
    "Utilities",
    "Rent/Mortgage",
    "Transport",
    "Shopping",
    "Entertainment",
    "Health",
    "Education",
    "Income",
    "Investment",
    "Travel",
    "Gifts",
    "Other",
)


def upgrade():
    op.create_table(
        "users",
        sa.Column("id", sa.String(length=128), primary_key=True),
        sa.Column("full_name", sa.String(length=120), nullable=False),
        sa.Column("email", sa.String(length=254), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    )

    op.create_table(
        "accounts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("type", sa.Enum(*ACCOUNT_TYPES, name="accounttype"), nullable=False),
        sa.Column("icon_name", sa.String(length=40), nullable=False),
        sa.Column("last4", sa.String(length=4)),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "last4 IS NULL OR length(last4) = 4", name="ck_accounts_last4_length"
        ),
    )
    op.create_index("ix_accounts_owner_name", "accounts", ["owner_id", "name"])

    op.create_table(
        "transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column(
            "account_id", sa.Integer(), sa.ForeignKey("accounts.id"), nullable=False
        ),
        sa.Column("description", sa.String(length=100), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "type", sa.Enum("debit", "credit", name="transactiontype"), nullable=False
        ),
        sa.Column(
            "category", sa.Enum(*CATEGORIES, name="transactioncategory"), nullable=False
        ),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("icon_name", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint(
            "(type = 'debit' AND amount_cents < 0) OR "
            "(type = 'credit' AND amount_cents > 0)",
            name="ck_transactions_sign_matches_type",
        ),
    )
    op.create_index(
        "ix_transactions_owner_account_date",
        "transactions",
        ["owner_id", "account_id", "date", "id"],
    )
    op.create_index("ix_transactions_owner_date", "transactions", ["owner_id", "date"])

    op.create_table(
        "goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("owner_id", sa.String(length=128), nullable=False),
        sa.Column("name", sa.String(length=50), nullable=False),
        sa.Column("target_cents", sa.Integer(), nullable=False),
        sa.Column("saved_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("icon_name", sa.String(length=40), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("target_cents > 0", name="ck_goals_target_positive"),
        sa.CheckConstraint("saved_cents >= 0", name="ck_goals_saved_non_negative"),
    )
    op.create_index("ix_goals_owner_created", "goals", ["owner_id", "created_at"])


def downgrade():
    op.drop_index("ix_goals_owner_created", table_name="goals")
    op.drop_table("goals")
    op.drop_index("ix_transactions_owner_date", table_name="transactions")
    op.drop_index("ix_transactions_owner_account_date", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("ix_accounts_owner_name", table_name="accounts")
    op.drop_table("accounts")
    op.drop_table("users")
