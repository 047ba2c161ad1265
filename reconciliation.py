"""Dashboard state mirrored from the record store.

``DashboardState`` holds what a dashboard screen shows: the owner's
accounts, the selected account, the transaction pages loaded for it, the
goals list and an error banner. It never treats its copy as authoritative:
every successful mutation is followed by a refetch of the affected list.

Store calls are awaited through ``AsyncRecordStore``, which runs the blocking
store in a worker thread. Calls may complete in any order; overlapping
actions resolve last-writer-wins.
"""

from __future__ import annotations

import logging
from typing import Awaitable, Callable, Optional, TypeVar

from starlette.concurrency import run_in_threadpool

from errors import (
    NotFoundError,
    PermissionDeniedError,
    StoreError,
    ValidationError,
    user_message,
    validate,
)
from identity import Identity
from pagination import PaginationError, TransactionListCache, TransactionPager
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
from services import clamp_page_size
from store import RecordStore


logger = logging.getLogger(__name__)

T = TypeVar("T")


class AsyncRecordStore:
    def __init__(self, store: RecordStore) -> None:
        self.store = store

    async def create_account(self, owner_id: str, data: AccountIn) -> int:
        return await run_in_threadpool(self.store.create_account, owner_id, data)

    async def list_accounts(self, owner_id: str) -> list[AccountOut]:
        return await run_in_threadpool(self.store.list_accounts, owner_id)

    async def update_account(
        self, account_id: int, owner_id: str, patch: AccountUpdate
    ) -> AccountOut:
        return await run_in_threadpool(
            self.store.update_account, account_id, owner_id, patch
        )

    async def delete_account(self, account_id: int, owner_id: str) -> int:
        return await run_in_threadpool(self.store.delete_account, account_id, owner_id)

    async def create_transaction(self, owner_id: str, data: TransactionIn) -> int:
        return await run_in_threadpool(self.store.create_transaction, owner_id, data)

    async def list_transactions_page(
        self,
        account_id: int,
        owner_id: str,
        cursor: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> TransactionPage:
        return await run_in_threadpool(
            self.store.list_transactions_page, account_id, owner_id, cursor, page_size
        )

    async def update_transaction(
        self, transaction_id: int, owner_id: str, patch: TransactionUpdate
    ) -> TransactionOut:
        return await run_in_threadpool(
            self.store.update_transaction, transaction_id, owner_id, patch
        )

    async def delete_transaction(self, transaction_id: int, owner_id: str) -> None:
        await run_in_threadpool(self.store.delete_transaction, transaction_id, owner_id)

    async def create_goal(self, owner_id: str, data: GoalIn) -> int:
        return await run_in_threadpool(self.store.create_goal, owner_id, data)

    async def list_goals(self, owner_id: str) -> list[GoalOut]:
        return await run_in_threadpool(self.store.list_goals, owner_id)

    async def update_goal(self, goal_id: int, owner_id: str, patch: GoalUpdate) -> GoalOut:
        return await run_in_threadpool(self.store.update_goal, goal_id, owner_id, patch)

    async def delete_goal(self, goal_id: int, owner_id: str) -> None:
        await run_in_threadpool(self.store.delete_goal, goal_id, owner_id)


class DashboardState:
    def __init__(
        self,
        store: AsyncRecordStore,
        identity: Identity,
        page_size: Optional[int] = None,
    ) -> None:
        self.store = store
        self.identity = identity
        self.accounts: list[AccountOut] = []
        self.goals: list[GoalOut] = []
        self.selected_account_id: Optional[int] = None
        self.loading_accounts = False
        self.loading_goals = False
        self.error: Optional[str] = None
        self.cache = TransactionListCache(
            store.list_transactions_page, clamp_page_size(page_size)
        )

    @property
    def owner_id(self) -> str:
        return self.identity.owner_id if self.identity.authenticated else ""

    @property
    def pager(self) -> Optional[TransactionPager]:
        if self.selected_account_id is None:
            return None
        return self.cache.get(self.owner_id, self.selected_account_id)

    @property
    def transactions(self) -> list[TransactionOut]:
        pager = self.pager
        return list(pager.items) if pager else []

    @property
    def has_more(self) -> bool:
        pager = self.pager
        return bool(pager and pager.has_more)

    @property
    def loading_transactions(self) -> bool:
        pager = self.pager
        return bool(pager and pager.loading)

    @property
    def selected_account(self) -> Optional[AccountOut]:
        for account in self.accounts:
            if account.id == self.selected_account_id:
                return account
        return None

    def dismiss_error(self) -> None:
        self.error = None

    def _report(self, exc: Exception, action: str) -> None:
        self.error = user_message(exc, action)
        logger.info(f"dashboard_error: action={action} error={type(exc).__name__}")

    def _require_identity(self) -> None:
        if not self.identity.authenticated:
            raise PermissionDeniedError("Sign in to continue", authenticated=False)

    async def _mutate(self, action: str, call: Callable[[], Awaitable[T]]) -> T:
        self.error = None
        try:
            self._require_identity()
            return await call()
        except StoreError as exc:
            self._report(exc, action)
            raise

    # Loading

    async def load(self) -> None:
        await self.refresh_accounts()
        await self.refresh_goals()

    async def set_identity(self, identity: Identity) -> None:
        self.identity = identity
        self.cache.clear()
        self.accounts = []
        self.goals = []
        self.selected_account_id = None
        self.error = None
        await self.load()

    async def refresh_accounts(self) -> None:
        owner_id = self.owner_id
        if not owner_id:
            self.accounts = []
            await self.select_account(None)
            return

        self.loading_accounts = True
        try:
            accounts = await self.store.list_accounts(owner_id)
        except StoreError as exc:
            self._report(exc, "load accounts")
            return
        finally:
            self.loading_accounts = False
        if owner_id != self.owner_id:
            return

        self.accounts = accounts
        await self._revalidate_selection()

    async def _revalidate_selection(self) -> None:
        account_ids = [account.id for account in self.accounts]
        if self.selected_account_id in account_ids:
            return
        await self.select_account(account_ids[0] if account_ids else None)

    async def select_account(self, account_id: Optional[int]) -> None:
        """Switch the transaction list to ``account_id``.

        The previous list and cursor are always dropped, even when the same
        account is selected again, and page one is fetched fresh.
        """
        if account_id is not None and account_id not in {a.id for a in self.accounts}:
            raise NotFoundError("Account not found.")
        self.selected_account_id = account_id
        if account_id is None:
            self.cache.clear()
            return
        pager = self.cache.activate(self.owner_id, account_id)
        await self._fetch_first_page(pager)

    async def _fetch_first_page(
        self, pager: TransactionPager, *, keep_items: bool = False
    ) -> None:
        try:
            await pager.fetch_first_page(keep_items=keep_items)
        except StoreError as exc:
            self._report(exc, "load transactions")

    async def load_more(self) -> None:
        pager = self.pager
        if pager is None:
            raise PaginationError("No account selected")
        try:
            await pager.fetch_next_page()
        except StoreError as exc:
            self._report(exc, "load more transactions")

    async def reload_transactions(self) -> None:
        if self.selected_account_id is None:
            return
        pager = self.cache.invalidate(self.owner_id, self.selected_account_id)
        if pager is None:
            pager = self.cache.activate(self.owner_id, self.selected_account_id)
        await self._fetch_first_page(pager, keep_items=True)

    async def refresh_goals(self) -> None:
        owner_id = self.owner_id
        if not owner_id:
            self.goals = []
            return
        self.loading_goals = True
        try:
            goals = await self.store.list_goals(owner_id)
        except StoreError as exc:
            self._report(exc, "load goals")
            return
        finally:
            self.loading_goals = False
        if owner_id == self.owner_id:
            self.goals = goals

    # Accounts

    async def add_account(self, data: AccountIn | dict) -> int:
        account_id = await self._mutate(
            "add account",
            lambda: self.store.create_account(self.owner_id, validate(AccountIn, data)),
        )
        await self.refresh_accounts()
        return account_id

    async def edit_account(self, account_id: int, patch: AccountUpdate | dict) -> None:
        await self._mutate(
            "update account",
            lambda: self.store.update_account(
                account_id, self.owner_id, validate(AccountUpdate, patch)
            ),
        )
        await self.refresh_accounts()

    async def remove_account(self, account_id: int) -> None:
        await self._mutate(
            "delete account",
            lambda: self.store.delete_account(account_id, self.owner_id),
        )
        await self.refresh_accounts()

    # Transactions

    async def add_transaction(self, data: TransactionIn | dict) -> int:
        """Create a transaction, booked to the selected account unless the
        payload names one."""

        def payload() -> TransactionIn:
            if isinstance(data, dict) and "account_id" not in data:
                if self.selected_account_id is None:
                    raise ValidationError("Select an account before adding transactions")
                return validate(
                    TransactionIn, {**data, "account_id": self.selected_account_id}
                )
            return validate(TransactionIn, data)

        transaction_id = await self._mutate(
            "add transaction",
            lambda: self.store.create_transaction(self.owner_id, payload()),
        )
        await self.reload_transactions()
        return transaction_id

    async def edit_transaction(
        self, transaction_id: int, patch: TransactionUpdate | dict
    ) -> None:
        await self._mutate(
            "update transaction",
            lambda: self.store.update_transaction(
                transaction_id, self.owner_id, validate(TransactionUpdate, patch)
            ),
        )
        await self.reload_transactions()

    async def remove_transaction(self, transaction_id: int) -> None:
        await self._mutate(
            "delete transaction",
            lambda: self.store.delete_transaction(transaction_id, self.owner_id),
        )
        await self.reload_transactions()

    # Goals

    async def add_goal(self, data: GoalIn | dict) -> int:
        goal_id = await self._mutate(
            "add goal",
            lambda: self.store.create_goal(self.owner_id, validate(GoalIn, data)),
        )
        await self.refresh_goals()
        return goal_id

    async def edit_goal(self, goal_id: int, patch: GoalUpdate | dict) -> None:
        await self._mutate(
            "update goal",
            lambda: self.store.update_goal(
                goal_id, self.owner_id, validate(GoalUpdate, patch)
            ),
        )
        await self.refresh_goals()

    async def remove_goal(self, goal_id: int) -> None:
        await self._mutate(
            "delete goal",
            lambda: self.store.delete_goal(goal_id, self.owner_id),
        )
        await self.refresh_goals()
