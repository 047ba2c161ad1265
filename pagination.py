"""Client-side pagination state for one account's transaction list.

A pager is either EMPTY (nothing fetched, or just reset) or LOADED (holding
the records fetched so far plus the cursor for the next page). Every reset
bumps a generation counter; a fetch that resolves after a reset belongs to
an older generation and its result is dropped.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Awaitable, Callable, Optional

from schemas import TransactionOut, TransactionPage


logger = logging.getLogger(__name__)

PageFetcher = Callable[[int, str, Optional[str], int], Awaitable[TransactionPage]]


class PageState(str, Enum):
    empty = "empty"
    loaded = "loaded"


class PaginationError(RuntimeError):
    """A page was requested while the pager cannot serve one."""


class TransactionPager:
    def __init__(
        self, fetch_page: PageFetcher, owner_id: str, account_id: int, page_size: int
    ) -> None:
        self.fetch_page = fetch_page
        self.owner_id = owner_id
        self.account_id = account_id
        self.page_size = page_size
        self.items: list[TransactionOut] = []
        self.cursor: Optional[str] = None
        self.has_more = False
        self.state = PageState.empty
        self.loading = False
        self._generation = 0

    @property
    def key(self) -> tuple[str, int]:
        return (self.owner_id, self.account_id)

    @property
    def can_load_more(self) -> bool:
        return self.state is PageState.loaded and self.has_more and not self.loading

    def reset(self, *, keep_items: bool = False) -> None:
        self._generation += 1
        if not keep_items:
            self.items = []
        self.cursor = None
        self.has_more = False
        self.state = PageState.empty
        self.loading = False

    async def fetch_first_page(self, *, keep_items: bool = False) -> bool:
        """Discard the cursor and load page one.

        With ``keep_items`` the previous records stay visible until the new
        page arrives, and survive a failed fetch.
        """
        self.reset(keep_items=keep_items)
        return await self._load(None, replace=True)

    async def fetch_next_page(self) -> bool:
        if self.loading:
            raise PaginationError("A page is already being fetched")
        if self.state is not PageState.loaded:
            raise PaginationError("Fetch the first page before loading more")
        if not self.has_more:
            raise PaginationError("No more pages to load")
        return await self._load(self.cursor, replace=False)

    async def _load(self, cursor: Optional[str], *, replace: bool) -> bool:
        generation = self._generation
        self.loading = True
        try:
            page = await self.fetch_page(
                self.account_id, self.owner_id, cursor, self.page_size
            )
        except Exception as exc:
            if generation != self._generation:
                logger.debug(
                    f"discarding stale failure: owner={self.owner_id} "
                    f"account={self.account_id} error={type(exc).__name__}"
                )
                return False
            self.loading = False
            raise
        if generation != self._generation:
            logger.debug(
                f"discarding stale page: owner={self.owner_id} account={self.account_id}"
            )
            return False

        if replace:
            self.items = list(page.items)
        else:
            self.items.extend(page.items)
        self.cursor = page.next_cursor
        self.has_more = page.next_cursor is not None
        self.state = PageState.loaded
        self.loading = False
        return True


class TransactionListCache:
    """The current page set, keyed by (owner id, account id).

    Only one account's list is held at a time; activating another key evicts
    whatever was cached before.
    """

    def __init__(self, fetch_page: PageFetcher, page_size: int) -> None:
        self.fetch_page = fetch_page
        self.page_size = page_size
        self._entries: dict[tuple[str, int], TransactionPager] = {}

    def get(self, owner_id: str, account_id: int) -> Optional[TransactionPager]:
        return self._entries.get((owner_id, account_id))

    def activate(self, owner_id: str, account_id: int) -> TransactionPager:
        self.clear()
        pager = TransactionPager(self.fetch_page, owner_id, account_id, self.page_size)
        self._entries[pager.key] = pager
        return pager

    def invalidate(self, owner_id: str, account_id: int) -> Optional[TransactionPager]:
        pager = self._entries.get((owner_id, account_id))
        if pager is not None:
            pager.reset(keep_items=True)
        return pager

    def clear(self) -> None:
        for pager in self._entries.values():
            pager.reset()
        self._entries.clear()
