"""Per-address nonce allocation.

The first nonce for an address comes from the remote ledger's pending
transaction count; after that the counter is advanced locally for the
lifetime of the process.  Issued nonces are never handed out twice, even
if the transaction that used one was never accepted.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from mint_bot.chain.client import LedgerClient

logger = logging.getLogger("mint_bot.chain.nonce")


class NonceAllocator:
    """Strictly increasing nonces per address.

    Every address has its own ``asyncio.Lock``.  :meth:`reserve` holds that
    lock for as long as the caller stays inside the ``async with`` block,
    so a submitter can keep the lock from nonce issuance through the
    remote call and nonce order equals submission order.  Different
    addresses never contend.
    """

    def __init__(self, client: LedgerClient) -> None:
        self._client = client
        self._locks: dict[str, asyncio.Lock] = {}
        self._next: dict[str, int] = {}

    def _get_lock(self, key: str) -> asyncio.Lock:
        # No await between lookup and insert, so this is atomic on the loop.
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    async def _issue_unlocked(self, key: str, address: str) -> int:
        if key not in self._next:
            baseline = await self._client.get_pending_nonce(address)
            logger.debug(f"Synced nonce for {address}: {baseline}")
            self._next[key] = baseline

        nonce = self._next[key]
        self._next[key] = nonce + 1
        return nonce

    @asynccontextmanager
    async def reserve(self, address: str) -> AsyncIterator[int]:
        """Issue the next nonce and keep the address locked until exit."""
        key = address.lower()
        async with self._get_lock(key):
            nonce = await self._issue_unlocked(key, address)
            logger.debug(f"Reserved nonce {nonce} for {address}")
            yield nonce

    async def next(self, address: str) -> int:
        """Issue the next nonce for *address*."""
        async with self.reserve(address) as nonce:
            return nonce

    def peek(self, address: str) -> int | None:
        """The nonce :meth:`next` would issue, or ``None`` before first use."""
        return self._next.get(address.lower())

    def is_busy(self, address: str) -> bool:
        lock = self._locks.get(address.lower())
        return lock is not None and lock.locked()
