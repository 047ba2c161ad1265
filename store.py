"""In-process record store used by the dashboard state.

Every call opens its own session, runs one owner-scoped service operation and
returns plain pydantic copies, so callers never hold live ORM objects.
Backing-store failures are translated into the shared error taxonomy.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from sqlalchemy.exc import DisconnectionError, IntegrityError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session, sessionmaker

from database import SessionLocal, session_scope
from errors import TransientError, ValidationError
from schemas import (
    AccountIn,
    AccountOut,
    AccountUpdate,
    GoalIn,
    GoalOut,
    GoalUpdate,
    TransactionIn,
    TransactionOut,
    TransactionPage,
    TransactionUpdate,
)
from services import AccountService, GoalService, TransactionService


logger = logging.getLogger(__name__)


class RecordStore:
    def __init__(self, session_factory: sessionmaker = SessionLocal) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _unit_of_work(self, operation: str) -> Iterator[Session]:
        try:
            with session_scope(self.session_factory) as session:
                yield session
        except (OperationalError, PoolTimeoutError, DisconnectionError) as exc:
            logger.warning(f"store_unavailable: operation={operation} error={exc}")
            raise TransientError(
                f"Backing store unavailable during {operation}"
            ) from exc
        except IntegrityError as exc:
            raise ValidationError(f"Rejected by the backing store: {exc.orig}") from exc

    # Accounts

    def create_account(self, owner_id: str, data: AccountIn | dict) -> int:
        with self._unit_of_work("create_account") as session:
            return AccountService(session, owner_id).create(data).id

    def list_accounts(self, owner_id: str) -> list[AccountOut]:
        with self._unit_of_work("list_accounts") as session:
            accounts = AccountService(session, owner_id).list_all()
            return [AccountOut.model_validate(account) for account in accounts]

    def get_account(self, account_id: int, owner_id: str) -> AccountOut:
        with self._unit_of_work("get_account") as session:
            return AccountOut.model_validate(
                AccountService(session, owner_id).get(account_id)
            )

    def update_account(
        self, account_id: int, owner_id: str, patch: AccountUpdate | dict
    ) -> AccountOut:
        with self._unit_of_work("update_account") as session:
            account = AccountService(session, owner_id).update(account_id, patch)
            return AccountOut.model_validate(account)

    def delete_account(self, account_id: int, owner_id: str) -> int:
        with self._unit_of_work("delete_account") as session:
            return AccountService(session, owner_id).delete(account_id)

    # Transactions

    def create_transaction(self, owner_id: str, data: TransactionIn | dict) -> int:
        with self._unit_of_work("create_transaction") as session:
            return TransactionService(session, owner_id).create(data).id

    def get_transaction(self, transaction_id: int, owner_id: str) -> TransactionOut:
        with self._unit_of_work("get_transaction") as session:
            return TransactionOut.model_validate(
                TransactionService(session, owner_id).get(transaction_id)
            )

    def list_transactions_page(
        self,
        account_id: int,
        owner_id: str,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> TransactionPage:
        with self._unit_of_work("list_transactions_page") as session:
            return TransactionService(session, owner_id).list_page(
                account_id, cursor=cursor, page_size=page_size
            )

    def update_transaction(
        self, transaction_id: int, owner_id: str, patch: TransactionUpdate | dict
    ) -> TransactionOut:
        with self._unit_of_work("update_transaction") as session:
            txn = TransactionService(session, owner_id).update(transaction_id, patch)
            return TransactionOut.model_validate(txn)

    def delete_transaction(self, transaction_id: int, owner_id: str) -> None:
        with self._unit_of_work("delete_transaction") as session:
            TransactionService(session, owner_id).delete(transaction_id)

    def count_transactions(self, owner_id: str, account_id: Optional[int] = None) -> int:
        with self._unit_of_work("count_transactions") as session:
            return TransactionService(session, owner_id).count(account_id)

    # Goals

    def create_goal(self, owner_id: str, data: GoalIn | dict) -> int:
        with self._unit_of_work("create_goal") as session:
            return GoalService(session, owner_id).create(data).id

    def get_goal(self, goal_id: int, owner_id: str) -> GoalOut:
        with self._unit_of_work("get_goal") as session:
            return GoalOut.model_validate(GoalService(session, owner_id).get(goal_id))

    def list_goals(self, owner_id: str) -> list[GoalOut]:
        with self._unit_of_work("list_goals") as session:
            return [
                GoalOut.model_validate(goal)
                for goal in GoalService(session, owner_id).list_all()
            ]

    def update_goal(
        self, goal_id: int, owner_id: str, patch: GoalUpdate | dict
    ) -> GoalOut:
        with self._unit_of_work("update_goal") as session:
            return GoalOut.model_validate(
                GoalService(session, owner_id).update(goal_id, patch)
            )

    def delete_goal(self, goal_id: int, owner_id: str) -> None:
        with self._unit_of_work("delete_goal") as session:
            GoalService(session, owner_id).delete(goal_id)
