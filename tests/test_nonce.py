"""
Tests for per-address nonce allocation.
"""
from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest

from mint_bot.chain.nonce import NonceAllocator

from .conftest import ADDR_0, ADDR_1


def _client(pending: int = 0) -> AsyncMock:
    client = AsyncMock()
    client.get_pending_nonce.return_value = pending
    return client


class TestNonceAllocator:

    @pytest.mark.asyncio
    async def test_first_nonce_from_remote(self):
        client = _client(pending=7)
        allocator = NonceAllocator(client)
        assert allocator.peek(ADDR_0) is None
        assert await allocator.next(ADDR_0) == 7
        client.get_pending_nonce.assert_awaited_once_with(ADDR_0)

    @pytest.mark.asyncio
    async def test_later_nonces_are_local(self):
        client = _client(pending=3)
        allocator = NonceAllocator(client)
        issued = [await allocator.next(ADDR_0) for _ in range(4)]
        assert issued == [3, 4, 5, 6]
        assert client.get_pending_nonce.await_count == 1
        assert allocator.peek(ADDR_0) == 7

    @pytest.mark.asyncio
    async def test_address_case_shares_counter(self):
        allocator = NonceAllocator(_client())
        assert await allocator.next(ADDR_0) == 0
        assert await allocator.next(ADDR_0.lower()) == 1

    @pytest.mark.asyncio
    async def test_addresses_are_independent(self):
        client = _client(pending=5)
        allocator = NonceAllocator(client)
        assert await allocator.next(ADDR_0) == 5
        assert await allocator.next(ADDR_1) == 5
        assert await allocator.next(ADDR_0) == 6
        assert client.get_pending_nonce.await_count == 2

    @pytest.mark.asyncio
    async def test_concurrent_requests_get_distinct_increasing_nonces(self):
        client = _client()

        async def slow_pending(address):
            await asyncio.sleep(0.01)
            return 10

        client.get_pending_nonce.side_effect = slow_pending
        allocator = NonceAllocator(client)

        issued = await asyncio.gather(*(allocator.next(ADDR_0) for _ in range(20)))
        assert sorted(issued) == list(range(10, 30))
        assert client.get_pending_nonce.await_count == 1

    @pytest.mark.asyncio
    async def test_reserve_holds_lock_until_exit(self):
        allocator = NonceAllocator(_client())
        order: list[str] = []

        async def second():
            async with allocator.reserve(ADDR_0) as nonce:
                order.append(f"second:{nonce}")

        async with allocator.reserve(ADDR_0) as nonce:
            assert allocator.is_busy(ADDR_0)
            task = asyncio.create_task(second())
            await asyncio.sleep(0.01)
            order.append(f"first:{nonce}")
        await task

        assert order == ["first:0", "second:1"]
        assert not allocator.is_busy(ADDR_0)

    @pytest.mark.asyncio
    async def test_other_address_not_blocked(self):
        allocator = NonceAllocator(_client())
        async with allocator.reserve(ADDR_0):
            nonce = await asyncio.wait_for(allocator.next(ADDR_1), timeout=1)
        assert nonce == 0

    @pytest.mark.asyncio
    async def test_nonce_not_reused_after_failure(self):
        allocator = NonceAllocator(_client())
        with pytest.raises(RuntimeError):
            async with allocator.reserve(ADDR_0):
                raise RuntimeError("remote said no")
        assert await allocator.next(ADDR_0) == 1
