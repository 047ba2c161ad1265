import asyncio
from datetime import date, timedelta

import pytest

from database import Base, build_engine, build_session_factory
from errors import PermissionDeniedError, TransientError, ValidationError
from identity import Identity
from pagination import PaginationError
from reconciliation import AsyncRecordStore, DashboardState
from store import RecordStore


class FlakyStore(RecordStore):
    """Record store whose account listing can be switched off."""

    fail_listing = False

    def list_accounts(self, owner_id):
        if self.fail_listing:
            raise TransientError("Backing store unavailable during list_accounts")
        return super().list_accounts(owner_id)


def make_store() -> FlakyStore:
    engine = build_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    return FlakyStore(build_session_factory(engine))


def make_state(store: RecordStore, owner_id: str = "alice", page_size: int = 2):
    identity = Identity(owner_id=owner_id, authenticated=True)
    return DashboardState(AsyncRecordStore(store), identity, page_size=page_size)


def _seed(store: RecordStore, account_id: int, count: int, owner_id: str = "alice"):
    for n in range(count):
        store.create_transaction(
            owner_id,
            {
                "account_id": account_id,
                "description": f"Purchase {n}",
                "amount_cents": -(100 + n),
                "type": "debit",
                "category": "Shopping",
                "date": date(2026, 1, 1) + timedelta(days=n),
            },
        )


def test_load_selects_first_account_and_fetches_page_one() -> None:
    store = make_store()
    second = store.create_account("alice", {"name": "Savings", "type": "Savings"})
    first = store.create_account("alice", {"name": "Everyday", "type": "Checking"})
    _seed(store, first, 3)
    _seed(store, second, 1)
    state = make_state(store)

    asyncio.run(state.load())

    assert state.selected_account_id == first
    assert len(state.transactions) == 2
    assert state.has_more is True
    assert state.error is None


def test_load_more_appends_until_exhausted() -> None:
    store = make_store()
    account_id = store.create_account("alice", {"name": "Everyday", "type": "Checking"})
    _seed(store, account_id, 5)
    state = make_state(store)

    async def scenario():
        await state.load()
        await state.load_more()
        await state.load_more()
        assert state.has_more is False
        with pytest.raises(PaginationError):
            await state.load_more()

    asyncio.run(scenario())

    dates = [txn.date for txn in state.transactions]
    assert len(dates) == 5
    assert dates == sorted(dates, reverse=True)


def test_switching_accounts_resets_the_list() -> None:
    store = make_store()
    a = store.create_account("alice", {"name": "Account A", "type": "Checking"})
    b = store.create_account("alice", {"name": "Account B", "type": "Savings"})
    _seed(store, a, 5)
    _seed(store, b, 1)
    state = make_state(store)

    async def scenario():
        await state.load()
        await state.load_more()
        assert len(state.transactions) == 4
        await state.select_account(b)
        assert [txn.account_id for txn in state.transactions] == [b]
        assert state.has_more is False
        await state.select_account(a)

    asyncio.run(scenario())

    fresh = store.list_transactions_page(a, "alice", None, 2)
    assert [txn.id for txn in state.transactions] == [txn.id for txn in fresh.items]
    assert state.has_more is True
    assert state.pager.cursor is not None


def test_adding_a_transaction_refetches_from_page_one() -> None:
    store = make_store()
    account_id = store.create_account("alice", {"name": "Everyday", "type": "Checking"})
    _seed(store, account_id, 4)
    state = make_state(store)

    async def scenario():
        await state.load()
        await state.load_more()
        assert len(state.transactions) == 4
        return await state.add_transaction(
            {
                "description": "Paycheck",
                "amount_cents": 250000,
                "type": "credit",
                "category": "Income",
                "date": date(2026, 2, 1),
            }
        )

    new_id = asyncio.run(scenario())

    assert len(state.transactions) == 2
    assert state.transactions[0].id == new_id
    assert state.has_more is True


def test_adding_without_selection_is_rejected() -> None:
    store = make_store()
    state = make_state(store)
    asyncio.run(state.load())

    with pytest.raises(ValidationError):
        asyncio.run(state.add_transaction({"description": "Lunch"}))

    assert state.error == "Select an account before adding transactions"


def test_deleting_selected_account_falls_back_to_next() -> None:
    store = make_store()
    a = store.create_account("alice", {"name": "Account A", "type": "Checking"})
    b = store.create_account("alice", {"name": "Account B", "type": "Savings"})
    _seed(store, a, 3)
    _seed(store, b, 1)
    state = make_state(store)

    async def scenario():
        await state.load()
        assert state.selected_account_id == a
        await state.remove_account(a)
        assert state.selected_account_id == b
        assert [txn.account_id for txn in state.transactions] == [b]
        await state.remove_account(b)

    asyncio.run(scenario())

    assert state.accounts == []
    assert state.selected_account_id is None
    assert state.transactions == []
    assert store.count_transactions("alice") == 0


def test_transient_failure_keeps_previous_accounts() -> None:
    store = make_store()
    store.create_account("alice", {"name": "Everyday", "type": "Checking"})
    state = make_state(store)
    asyncio.run(state.load())

    store.fail_listing = True
    asyncio.run(state.refresh_accounts())

    assert [account.name for account in state.accounts] == ["Everyday"]
    assert "temporarily unavailable" in state.error

    state.dismiss_error()
    assert state.error is None


def test_signed_out_state_is_empty_and_read_only() -> None:
    store = make_store()
    store.create_account("alice", {"name": "Everyday", "type": "Checking"})
    state = DashboardState(AsyncRecordStore(store), Identity.anonymous(), page_size=2)

    asyncio.run(state.load())
    assert state.accounts == []
    assert state.goals == []

    with pytest.raises(PermissionDeniedError):
        asyncio.run(state.add_account({"name": "Sneaky", "type": "Other"}))
    assert state.error == "Could not add account. You are signed out. Please sign in again."
    assert store.list_accounts("") == []


def test_signing_in_as_someone_else_drops_previous_owner_data() -> None:
    store = make_store()
    store.create_account("alice", {"name": "Alice's", "type": "Checking"})
    store.create_account("bob", {"name": "Bob's", "type": "Checking"})
    store.create_goal("alice", {"name": "Holiday", "target_cents": 1000})
    state = make_state(store)

    async def scenario():
        await state.load()
        assert len(state.goals) == 1
        await state.set_identity(Identity(owner_id="bob", authenticated=True))

    asyncio.run(scenario())

    assert [account.name for account in state.accounts] == ["Bob's"]
    assert state.goals == []


def test_goal_mutations_refresh_the_goal_list() -> None:
    store = make_store()
    state = make_state(store)

    async def scenario():
        await state.load()
        goal_id = await state.add_goal({"name": "Holiday", "target_cents": 1000})
        await state.edit_goal(goal_id, {"saved_cents": 400})
        assert state.goals[0].progress_percent == 40
        await state.remove_goal(goal_id)

    asyncio.run(scenario())

    assert state.goals == []


def test_failed_mutation_sets_banner_and_keeps_list() -> None:
    store = make_store()
    account_id = store.create_account("alice", {"name": "Everyday", "type": "Checking"})
    state = make_state(store)
    asyncio.run(state.load())

    with pytest.raises(ValidationError):
        asyncio.run(state.edit_account(account_id, {"last4": "12"}))

    assert "last4" in state.error
    assert [account.id for account in state.accounts] == [account_id]


def test_editing_a_transaction_refetches_page_one_only() -> None:
    store = make_store()
    a = store.create_account("alice", {"name": "Account A", "type": "Checking"})
    store.create_account("alice", {"name": "Account B", "type": "Savings"})
    _seed(store, a, 5)
    state = make_state(store)

    async def scenario():
        await state.load()
        await state.load_more()
        accounts_before = state.accounts
        oldest = state.transactions[-1].id
        await state.edit_transaction(oldest, {"date": date(2026, 3, 1)})
        return accounts_before, oldest

    accounts_before, oldest = asyncio.run(scenario())

    assert state.accounts is accounts_before
    assert state.selected_account_id == a
    assert [txn.id for txn in state.transactions] == [
        txn.id for txn in store.list_transactions_page(a, "alice", None, 2).items
    ]
    assert state.transactions[0].id == oldest
    assert state.has_more is True


def test_removing_a_transaction_refetches_page_one_only() -> None:
    store = make_store()
    a = store.create_account("alice", {"name": "Account A", "type": "Checking"})
    _seed(store, a, 3)
    state = make_state(store)

    async def scenario():
        await state.load()
        await state.load_more()
        accounts_before = state.accounts
        newest = state.transactions[0].id
        await state.remove_transaction(newest)
        return accounts_before, newest

    accounts_before, newest = asyncio.run(scenario())

    assert state.accounts is accounts_before
    ids = [txn.id for txn in state.transactions]
    assert newest not in ids
    assert ids == [txn.id for txn in store.list_transactions_page(a, "alice", None, 2).items]
    assert state.has_more is False
    assert store.count_transactions("alice", a) == 2


class GatedAsyncStore(AsyncRecordStore):
    """Holds page fetches for one account until released, then fails them."""

    def __init__(self, store, gated_account_id):
        super().__init__(store)
        self.gated_account_id = gated_account_id
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def list_transactions_page(self, account_id, owner_id, cursor=None, page_size=None):
        if account_id == self.gated_account_id:
            self.entered.set()
            await self.release.wait()
            raise TransientError("Backing store unavailable during list_transactions_page")
        return await super().list_transactions_page(account_id, owner_id, cursor, page_size)


def test_late_failure_for_previous_account_is_ignored() -> None:
    store = make_store()
    a = store.create_account("alice", {"name": "Account A", "type": "Checking"})
    b = store.create_account("alice", {"name": "Account B", "type": "Savings"})
    _seed(store, b, 1)

    async def scenario():
        gated = GatedAsyncStore(store, a)
        state = DashboardState(
            gated, Identity(owner_id="alice", authenticated=True), page_size=2
        )
        pending = asyncio.create_task(state.refresh_accounts())
        await gated.entered.wait()
        await state.select_account(b)
        gated.release.set()
        await pending
        return state

    state = asyncio.run(scenario())

    assert state.error is None
    assert state.selected_account_id == b
    assert [txn.account_id for txn in state.transactions] == [b]
