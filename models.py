from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class AccountType(str, Enum):
    savings = "Savings"
    checking = "Checking"
    credit_card = "Credit Card"
    investment = "Investment"
    loan = "Loan"
    other = "Other"


class TransactionType(str, Enum):
    debit = "debit"
    credit = "credit"


class TransactionCategory(str, Enum):
    food = "Food"
    groceries = "Groceries"
    bills = "Bills"
    utilities = "Utilities"
    rent_mortgage = "Rent/Mortgage"
    transport = "Transport"
    shopping = "Shopping"
    entertainment = "Entertainment"
    health = "Health"
    education = "Education"
    income = "Income"
    investment = "Investment"
    travel = "Travel"
    gifts = "Gifts"
    other = "Other"


class GoalIcon(str, Enum):
    plane = "Plane"
    smartphone = "Smartphone"
    shield_check = "ShieldCheck"
    home = "Home"
    book_open = "BookOpen"
    car = "Car"
    shopping_bag = "ShoppingBag"
    gift = "Gift"
    target = "Target"


ACCOUNT_TYPE_ICONS: dict[AccountType, str] = {
    AccountType.savings: "PiggyBank",
    AccountType.checking: "Landmark",
    AccountType.credit_card: "CreditCard",
    AccountType.investment: "TrendingUp",
    AccountType.loan: "Briefcase",
    AccountType.other: "ShieldQuestion",
}

CATEGORY_ICONS: dict[TransactionCategory, str] = {
    TransactionCategory.food: "Utensils",
    TransactionCategory.groceries: "ShoppingCart",
    TransactionCategory.bills: "FileText",
    TransactionCategory.utilities: "FileText",
    TransactionCategory.rent_mortgage: "Home",
    TransactionCategory.transport: "Car",
    TransactionCategory.shopping: "ShoppingCart",
    TransactionCategory.entertainment: "Film",
    TransactionCategory.health: "HeartPulse",
    TransactionCategory.education: "BookOpen",
    TransactionCategory.income: "Briefcase",
    TransactionCategory.investment: "TrendingUp",
    TransactionCategory.travel: "Plane",
    TransactionCategory.gifts: "Gift",
    TransactionCategory.other: "CircleDollarSign",
}

DEFAULT_CATEGORY_ICON = "CircleDollarSign"

# Older clients stored this tag before the shield icon was renamed.
LEGACY_GOAL_ICONS = {"ShieldAlert": GoalIcon.shield_check.value}


def _value_enum(enum_cls: type[Enum], name: str) -> SAEnum:
    return SAEnum(
        enum_cls,
        name=name,
        values_callable=lambda cls: [member.value for member in cls],
    )


ACCOUNT_TYPE_ENUM = _value_enum(AccountType, "accounttype")
TRANSACTION_TYPE_ENUM = _value_enum(TransactionType, "transactiontype")
TRANSACTION_CATEGORY_ENUM = _value_enum(TransactionCategory, "transactioncategory")


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class UserProfile(Base, TimestampMixin):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    full_name: Mapped[str] = mapped_column(String(120), nullable=False)
    email: Mapped[str] = mapped_column(String(254), nullable=False)


class Account(Base, TimestampMixin):
    __tablename__ = "accounts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    type: Mapped[AccountType] = mapped_column(ACCOUNT_TYPE_ENUM, nullable=False)
    icon_name: Mapped[str] = mapped_column(String(40), nullable=False)
    last4: Mapped[Optional[str]] = mapped_column(String(4))

    transactions: Mapped[list["Transaction"]] = relationship(
        "Transaction", back_populates="account"
    )

    __table_args__ = (
        Index("ix_accounts_owner_name", "owner_id", "name"),
        CheckConstraint(
            "last4 IS NULL OR length(last4) = 4", name="ck_accounts_last4_length"
        ),
    )


class Transaction(Base, TimestampMixin):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    account_id: Mapped[int] = mapped_column(ForeignKey("accounts.id"), nullable=False)
    description: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    type: Mapped[TransactionType] = mapped_column(
        TRANSACTION_TYPE_ENUM, nullable=False
    )
    category: Mapped[TransactionCategory] = mapped_column(
        TRANSACTION_CATEGORY_ENUM, nullable=False
    )
    date: Mapped[date] = mapped_column(Date, nullable=False)
    icon_name: Mapped[str] = mapped_column(String(40), nullable=False)

    account: Mapped["Account"] = relationship("Account", back_populates="transactions")

    __table_args__ = (
        Index(
            "ix_transactions_owner_account_date",
            "owner_id",
            "account_id",
            "date",
            "id",
        ),
        Index("ix_transactions_owner_date", "owner_id", "date"),
        CheckConstraint(
            "(type = 'debit' AND amount_cents < 0) OR "
            "(type = 'credit' AND amount_cents > 0)",
            name="ck_transactions_sign_matches_type",
        ),
    )


class Goal(Base, TimestampMixin):
    __tablename__ = "goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    target_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    saved_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    icon_name: Mapped[str] = mapped_column(String(40), nullable=False)

    __table_args__ = (
        Index("ix_goals_owner_created", "owner_id", "created_at"),
        CheckConstraint("target_cents > 0", name="ck_goals_target_positive"),
        CheckConstraint("saved_cents >= 0", name="ck_goals_saved_non_negative"),
    )
