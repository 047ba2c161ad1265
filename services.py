from __future__ import annotations

import logging
from datetime import date
from typing import Optional

from sqlalchemy import and_, case, delete, func, or_, select
from sqlalchemy.orm import Session

from config import get_settings
from cursors import CursorPosition, decode_cursor, encode_cursor
from errors import NotFoundError, PermissionDeniedError, ValidationError, validate
from models import (
    ACCOUNT_TYPE_ICONS,
    CATEGORY_ICONS,
    DEFAULT_CATEGORY_ICON,
    Account,
    Goal,
    Transaction,
    TransactionType,
    UserProfile,
)
from periods import Period
from schemas import (
    AccountIn,
    AccountUpdate,
    GoalIn,
    GoalUpdate,
    ProfileIn,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
    check_amount_sign,
)


logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _require_owner(owner_id: str) -> None:
    if not owner_id:
        raise PermissionDeniedError("Not authenticated", authenticated=False)


def _get_owned(session: Session, model, record_id: int, owner_id: str, label: str):
    """Load ``record_id`` and check that ``owner_id`` owns it."""
    _require_owner(owner_id)
    record = session.get(model, record_id)
    if record is None:
        raise NotFoundError(f"{label} not found.")
    if record.owner_id != owner_id:
        raise PermissionDeniedError(f"{label} {record_id} belongs to another user")
    return record


def _reject_nulls(changes: dict[str, object], fields: tuple[str, ...]) -> None:
    for field in fields:
        if field in changes and changes[field] is None:
            raise ValidationError(f"{field}: may not be cleared")


def clamp_page_size(page_size: Optional[int]) -> int:
    if page_size is None:
        page_size = get_settings().page_size
    return min(max(int(page_size), 1), MAX_PAGE_SIZE)


class AccountService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = owner_id or ""

    def list_all(self) -> list[Account]:
        if not self.owner_id:
            logger.warning("list_accounts called without an owner id")
            return []
        stmt = (
            select(Account)
            .where(Account.owner_id == self.owner_id)
            .order_by(Account.name.asc(), Account.id.asc())
        )
        return self.session.scalars(stmt).all()

    def get(self, account_id: int) -> Account:
        return _get_owned(self.session, Account, account_id, self.owner_id, "Account")

    def create(self, data: AccountIn | dict) -> Account:
        data = validate(AccountIn, data)
        _require_owner(self.owner_id)
        account = Account(
            owner_id=self.owner_id,
            name=data.name,
            type=data.type,
            icon_name=data.icon_name or ACCOUNT_TYPE_ICONS[data.type],
            last4=data.last4,
        )
        self.session.add(account)
        self.session.commit()
        self.session.refresh(account)
        logger.info(f"account_created: id={account.id} owner={self.owner_id}")
        return account

    def update(self, account_id: int, patch: AccountUpdate | dict) -> Account:
        patch = validate(AccountUpdate, patch)
        account = self.get(account_id)
        changes = patch.model_dump(exclude_unset=True)
        _reject_nulls(changes, ("name", "type", "icon_name"))
        if "type" in changes and "icon_name" not in changes:
            changes["icon_name"] = ACCOUNT_TYPE_ICONS[changes["type"]]
        for field, value in changes.items():
            setattr(account, field, value)
        self.session.commit()
        self.session.refresh(account)
        return account

    def delete(self, account_id: int) -> int:
        """Delete the account and every transaction booked against it.

        Both deletes run in one database transaction: either the account and
        all of its transactions are gone afterwards, or nothing changed.
        Returns the number of transactions removed.
        """
        account = self.get(account_id)
        try:
            result = self.session.execute(
                delete(Transaction).where(
                    Transaction.owner_id == self.owner_id,
                    Transaction.account_id == account.id,
                )
            )
            self.session.execute(
                delete(Account).where(
                    Account.owner_id == self.owner_id, Account.id == account.id
                )
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise
        removed = result.rowcount or 0
        logger.info(
            f"account_deleted: id={account_id} owner={self.owner_id} "
            f"transactions_removed={removed}"
        )
        return removed


class TransactionService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = owner_id or ""

    def _owned_account(self, account_id: int) -> Account:
        return _get_owned(self.session, Account, account_id, self.owner_id, "Account")

    def get(self, transaction_id: int) -> Transaction:
        return _get_owned(
            self.session, Transaction, transaction_id, self.owner_id, "Transaction"
        )

    def create(self, data: TransactionIn | dict) -> Transaction:
        data = validate(TransactionIn, data)
        account = self._owned_account(data.account_id)
        txn = Transaction(
            owner_id=self.owner_id,
            account_id=account.id,
            description=data.description,
            amount_cents=data.amount_cents,
            type=data.type,
            category=data.category,
            date=data.date,
            icon_name=data.icon_name
            or CATEGORY_ICONS.get(data.category, DEFAULT_CATEGORY_ICON),
        )
        self.session.add(txn)
        self.session.commit()
        self.session.refresh(txn)
        logger.info(
            f"transaction_created: id={txn.id} account={account.id} owner={self.owner_id}"
        )
        return txn

    def update(self, transaction_id: int, patch: TransactionUpdate | dict) -> Transaction:
        patch = validate(TransactionUpdate, patch)
        txn = self.get(transaction_id)
        changes = patch.model_dump(exclude_unset=True)
        _reject_nulls(
            changes,
            (
                "account_id",
                "description",
                "amount_cents",
                "type",
                "category",
                "date",
                "icon_name",
            ),
        )

        if "account_id" in changes and changes["account_id"] != txn.account_id:
            self._owned_account(changes["account_id"])

        amount_cents = changes.get("amount_cents", txn.amount_cents)
        txn_type = changes.get("type", txn.type)
        try:
            check_amount_sign(amount_cents, txn_type)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc

        if "category" in changes and "icon_name" not in changes:
            changes["icon_name"] = CATEGORY_ICONS.get(
                changes["category"], DEFAULT_CATEGORY_ICON
            )

        for field, value in changes.items():
            setattr(txn, field, value)
        self.session.commit()
        self.session.refresh(txn)
        return txn

    def delete(self, transaction_id: int) -> None:
        txn = self.get(transaction_id)
        self.session.delete(txn)
        self.session.commit()
        logger.info(f"transaction_deleted: id={transaction_id} owner={self.owner_id}")

    def list_page(
        self,
        account_id: int,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> TransactionPage:
        """Return one page of an account's transactions, newest first.

        Records are ordered by ``(date DESC, id DESC)``. ``cursor`` resumes the
        scan after the last record of the previous page. One extra row is
        probed so ``next_cursor`` is only issued when another record exists.
        An unknown account simply yields an empty page.
        """
        if not self.owner_id:
            logger.warning("list_transactions_page called without an owner id")
            return TransactionPage(items=[])
        page_size = clamp_page_size(page_size)

        stmt = (
            select(Transaction)
            .where(
                Transaction.owner_id == self.owner_id,
                Transaction.account_id == account_id,
            )
            .order_by(Transaction.date.desc(), Transaction.id.desc())
            .limit(page_size + 1)
        )
        if cursor:
            position = decode_cursor(cursor, self.owner_id, account_id)
            stmt = stmt.where(
                or_(
                    Transaction.date < position.date,
                    and_(
                        Transaction.date == position.date,
                        Transaction.id < position.id,
                    ),
                )
            )

        rows = list(self.session.scalars(stmt).all())
        has_more = len(rows) > page_size
        rows = rows[:page_size]

        next_cursor = None
        if has_more:
            last = rows[-1]
            next_cursor = encode_cursor(
                CursorPosition(
                    owner_id=self.owner_id,
                    account_id=account_id,
                    date=last.date,
                    id=last.id,
                )
            )
        return TransactionPage(
            items=[TransactionOut.model_validate(row) for row in rows],
            next_cursor=next_cursor,
        )

    def count(self, account_id: Optional[int] = None) -> int:
        stmt = select(func.count(Transaction.id)).where(
            Transaction.owner_id == self.owner_id
        )
        if account_id is not None:
            stmt = stmt.where(Transaction.account_id == account_id)
        return int(self.session.execute(stmt).scalar_one() or 0)


class GoalService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = owner_id or ""

    def list_all(self) -> list[Goal]:
        if not self.owner_id:
            logger.warning("list_goals called without an owner id")
            return []
        stmt = (
            select(Goal)
            .where(Goal.owner_id == self.owner_id)
            .order_by(Goal.created_at.desc(), Goal.id.desc())
        )
        return self.session.scalars(stmt).all()

    def get(self, goal_id: int) -> Goal:
        return _get_owned(self.session, Goal, goal_id, self.owner_id, "Goal")

    def create(self, data: GoalIn | dict) -> Goal:
        data = validate(GoalIn, data)
        _require_owner(self.owner_id)
        goal = Goal(
            owner_id=self.owner_id,
            name=data.name,
            target_cents=data.target_cents,
            saved_cents=data.saved_cents,
            icon_name=data.icon_name.value,
        )
        self.session.add(goal)
        self.session.commit()
        self.session.refresh(goal)
        logger.info(f"goal_created: id={goal.id} owner={self.owner_id}")
        return goal

    def update(self, goal_id: int, patch: GoalUpdate | dict) -> Goal:
        patch = validate(GoalUpdate, patch)
        goal = self.get(goal_id)
        changes = patch.model_dump(exclude_unset=True)
        _reject_nulls(changes, ("name", "target_cents", "saved_cents", "icon_name"))
        if "icon_name" in changes:
            changes["icon_name"] = changes["icon_name"].value
        for field, value in changes.items():
            setattr(goal, field, value)
        self.session.commit()
        self.session.refresh(goal)
        return goal

    def delete(self, goal_id: int) -> None:
        goal = self.get(goal_id)
        self.session.delete(goal)
        self.session.commit()
        logger.info(f"goal_deleted: id={goal_id} owner={self.owner_id}")


class ProfileService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = owner_id or ""

    def get(self) -> Optional[UserProfile]:
        if not self.owner_id:
            return None
        profile = self.session.get(UserProfile, self.owner_id)
        if profile is None:
            logger.info(f"profile_missing: owner={self.owner_id}")
        return profile

    def upsert(self, data: ProfileIn | dict) -> UserProfile:
        data = validate(ProfileIn, data)
        _require_owner(self.owner_id)
        profile = self.session.get(UserProfile, self.owner_id)
        if profile is None:
            profile = UserProfile(id=self.owner_id)
            self.session.add(profile)
        profile.full_name = data.full_name
        profile.email = data.email
        self.session.commit()
        self.session.refresh(profile)
        return profile


class MetricsService:
    def __init__(self, session: Session, owner_id: Optional[str]) -> None:
        self.session = session
        self.owner_id = owner_id or ""

    def summary(self, period: Period, account_id: Optional[int] = None) -> dict[str, int]:
        credits = func.coalesce(
            func.sum(
                case(
                    (Transaction.type == TransactionType.credit, Transaction.amount_cents),
                    else_=0,
                )
            ),
            0,
        )
        debits = func.coalesce(
            func.sum(
                case(
                    (Transaction.type == TransactionType.debit, Transaction.amount_cents),
                    else_=0,
                )
            ),
            0,
        )
        stmt = select(credits, debits, func.count(Transaction.id)).where(
            Transaction.owner_id == self.owner_id,
            Transaction.date.between(period.start, period.end),
        )
        if account_id is not None:
            stmt = stmt.where(Transaction.account_id == account_id)
        credit_total, debit_total, count = self.session.execute(stmt).one()
        credit_total = int(credit_total or 0)
        debit_total = -int(debit_total or 0)
        return {
            "credits_cents": credit_total,
            "debits_cents": debit_total,
            "net_cents": credit_total - debit_total,
            "count": int(count or 0),
        }

    def category_breakdown(self, period: Period) -> list[dict[str, object]]:
        total = func.sum(Transaction.amount_cents).label("total")
        stmt = (
            select(Transaction.category, total)
            .where(
                Transaction.owner_id == self.owner_id,
                Transaction.type == TransactionType.debit,
                Transaction.date.between(period.start, period.end),
            )
            .group_by(Transaction.category)
            .order_by(total.asc())
        )
        return [
            {
                "category": category.value,
                "icon_name": CATEGORY_ICONS.get(category, DEFAULT_CATEGORY_ICON),
                "amount_cents": -int(amount or 0),
            }
            for category, amount in self.session.execute(stmt).all()
        ]

    def balances(self, as_of: Optional[date] = None) -> dict[int, int]:
        stmt = (
            select(Transaction.account_id, func.sum(Transaction.amount_cents))
            .where(Transaction.owner_id == self.owner_id)
            .group_by(Transaction.account_id)
        )
        if as_of is not None:
            stmt = stmt.where(Transaction.date <= as_of)
        return {
            account_id: int(total or 0)
            for account_id, total in self.session.execute(stmt).all()
        }
