import asyncio
from datetime import date

import pytest

from errors import TransientError
from pagination import PageState, PaginationError, TransactionListCache, TransactionPager
from schemas import TransactionOut, TransactionPage


def _txn(txn_id: int) -> TransactionOut:
    return TransactionOut(
        id=txn_id,
        owner_id="alice",
        account_id=1,
        description=f"Item {txn_id}",
        amount_cents=-100,
        type="debit",
        category="Other",
        date=date(2026, 1, txn_id),
        icon_name="CircleDollarSign",
    )


class ScriptedFetcher:
    def __init__(self, pages):
        self.pages = list(pages)
        self.calls = []

    async def __call__(self, account_id, owner_id, cursor, page_size):
        self.calls.append(cursor)
        result = self.pages.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


def test_pager_walks_pages_and_stops() -> None:
    fetch = ScriptedFetcher(
        [
            TransactionPage(items=[_txn(3), _txn(2)], next_cursor="c1"),
            TransactionPage(items=[_txn(1)]),
        ]
    )
    pager = TransactionPager(fetch, "alice", 1, 2)

    async def scenario():
        assert pager.state is PageState.empty
        with pytest.raises(PaginationError):
            await pager.fetch_next_page()
        await pager.fetch_first_page()
        assert pager.can_load_more
        await pager.fetch_next_page()

    asyncio.run(scenario())

    assert [txn.id for txn in pager.items] == [3, 2, 1]
    assert fetch.calls == [None, "c1"]
    assert pager.has_more is False
    assert pager.state is PageState.loaded


def test_failed_fetch_clears_loading_and_keeps_items() -> None:
    fetch = ScriptedFetcher(
        [
            TransactionPage(items=[_txn(2)], next_cursor="c1"),
            TransientError("offline"),
        ]
    )
    pager = TransactionPager(fetch, "alice", 1, 1)

    async def scenario():
        await pager.fetch_first_page()
        with pytest.raises(TransientError):
            await pager.fetch_next_page()

    asyncio.run(scenario())

    assert pager.loading is False
    assert [txn.id for txn in pager.items] == [2]
    assert pager.cursor == "c1"


def test_result_arriving_after_reset_is_discarded() -> None:
    async def scenario():
        release = asyncio.Event()

        async def slow_fetch(account_id, owner_id, cursor, page_size):
            await release.wait()
            return TransactionPage(items=[_txn(9)], next_cursor="late")

        pager = TransactionPager(slow_fetch, "alice", 1, 10)
        task = asyncio.create_task(pager.fetch_first_page())
        await asyncio.sleep(0)
        assert pager.loading is True
        pager.reset()
        release.set()
        applied = await task
        return pager, applied

    pager, applied = asyncio.run(scenario())

    assert applied is False
    assert pager.items == []
    assert pager.cursor is None
    assert pager.state is PageState.empty


def test_cache_holds_one_key_at_a_time() -> None:
    fetch = ScriptedFetcher([])
    cache = TransactionListCache(fetch, 10)

    first = cache.activate("alice", 1)
    first.items = [_txn(1)]
    second = cache.activate("alice", 2)

    assert cache.get("alice", 1) is None
    assert cache.get("alice", 2) is second
    assert first.items == []
    assert cache.invalidate("alice", 1) is None


def test_failure_arriving_after_reset_is_discarded() -> None:
    async def scenario():
        release = asyncio.Event()

        async def failing_fetch(account_id, owner_id, cursor, page_size):
            await release.wait()
            raise TransientError("offline")

        pager = TransactionPager(failing_fetch, "alice", 1, 10)
        task = asyncio.create_task(pager.fetch_first_page())
        await asyncio.sleep(0)
        pager.reset()
        release.set()
        return pager, await task

    pager, applied = asyncio.run(scenario())

    assert applied is False
    assert pager.loading is False
    assert pager.state is PageState.empty
