"""
Tests for the transaction submitter: retries, timeouts, ordering and
pre-flight checks.
"""
from __future__ import annotations

import asyncio

import pytest
from unittest.mock import AsyncMock

from mint_bot.chain.client import encode_call
from mint_bot.chain.nonce import NonceAllocator
from mint_bot.engine.ledger import SubmissionLedger
from mint_bot.engine.models import FailureKind, SubmissionRequest, SubmissionStatus
from mint_bot.engine.submitter import TransactionSubmitter, build_envelope
from mint_bot.errors import InsufficientBalanceError, UnknownCredentialError
from mint_bot.vault.codec import Credential
from mint_bot.vault.keyring import KeyRing

from .conftest import ADDR_0, ADDR_1, ADDR_2, CONTRACT, KEY_0, KEY_1, FakeLedgerClient


def _request(address: str = ADDR_0, **overrides) -> SubmissionRequest:
    fields = dict(
        credential_address=address,
        target_contract=CONTRACT,
        call_data=encode_call("mint()"),
        gas_limit=500_000,
        gas_price=52_000_000_000,
        chain_id=10143,
    )
    fields.update(overrides)
    return SubmissionRequest(**fields)


def _submitter(client: FakeLedgerClient, *, timeout: float = 0.05, max_retries: int = 2):
    ring = KeyRing()
    ring.load([Credential(ADDR_0, KEY_0), Credential(ADDR_1, KEY_1)])
    allocator = NonceAllocator(client)
    ledger = SubmissionLedger()
    submitter = TransactionSubmitter(
        ring, allocator, client, ledger, timeout=timeout, max_retries=max_retries
    )
    return submitter, allocator, ledger


class TestBuildEnvelope:

    def test_fields(self):
        envelope = build_envelope(_request(value=5), nonce=9)
        assert envelope == {
            "to": _request().target_contract,
            "data": "0x1249c58b",
            "gas": 500_000,
            "gasPrice": 52_000_000_000,
            "chainId": 10143,
            "nonce": 9,
            "value": 5,
        }


class TestSubmit:

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        client = FakeLedgerClient(pending_nonce=4)
        submitter, _, ledger = _submitter(client)

        result = await submitter.submit(_request())

        assert result.status == SubmissionStatus.SUCCESS
        assert result.tx_hash.startswith("0x")
        assert result.nonce == 4
        assert result.attempts == 1
        assert client.sent == [(ADDR_0, 4)]
        assert ledger.entries() == [result]

    @pytest.mark.asyncio
    async def test_retry_bound_on_timeouts(self):
        client = FakeLedgerClient(behaviors=["timeout"] * 5)
        submitter, allocator, ledger = _submitter(client)
        on_retry = AsyncMock()

        result = await submitter.submit(_request(), on_retry=on_retry)

        assert client.submit_calls == 3
        assert result.status == SubmissionStatus.FAILED
        assert result.failure_kind == FailureKind.TIMEOUT
        assert result.attempts == 3
        assert "Final attempt failed" in result.error
        assert "timed out" in result.error
        assert on_retry.await_count == 2
        assert [c.args[1] for c in on_retry.await_args_list] == [1, 2]
        assert len(ledger) == 1

    @pytest.mark.asyncio
    async def test_failing_retry_callback_still_records_one_result(self, caplog):
        client = FakeLedgerClient(behaviors=["reject"] * 3)
        submitter, _, ledger = _submitter(client)
        on_retry = AsyncMock(side_effect=RuntimeError("notifier down"))

        result = await submitter.submit(_request(), on_retry=on_retry)

        assert not result.ok
        assert result.attempts == 3
        assert on_retry.await_count == 2
        assert ledger.entries() == [result]
        assert "Retry callback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_two_timeouts_then_success_uses_third_nonce(self):
        client = FakeLedgerClient(behaviors=["timeout", "timeout", "ok"])
        submitter, allocator, _ = _submitter(client)

        result = await submitter.submit(_request())

        assert result.ok
        assert result.attempts == 3
        assert result.nonce == 2
        assert [nonce for _, nonce in client.sent] == [0, 1, 2]
        assert allocator.peek(ADDR_0) == 3

    @pytest.mark.asyncio
    async def test_rejections_are_tagged_rejected(self):
        client = FakeLedgerClient(behaviors=["reject"] * 3)
        submitter, _, _ = _submitter(client)

        result = await submitter.submit(_request())

        assert result.failure_kind == FailureKind.REJECTED
        assert "nonce too low" in result.error
        assert result.nonce == 2

    @pytest.mark.asyncio
    async def test_last_error_decides_failure_kind(self):
        client = FakeLedgerClient(behaviors=["reject", "reject", "timeout"])
        submitter, _, _ = _submitter(client)
        result = await submitter.submit(_request())
        assert result.failure_kind == FailureKind.TIMEOUT

    @pytest.mark.asyncio
    async def test_zero_retries_means_one_attempt(self):
        client = FakeLedgerClient(behaviors=["reject"])
        submitter, _, _ = _submitter(client, max_retries=0)
        result = await submitter.submit(_request())
        assert not result.ok
        assert client.submit_calls == 1

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            _submitter(FakeLedgerClient(), max_retries=-1)


class TestPreflight:

    @pytest.mark.asyncio
    async def test_insufficient_balance_never_touches_nonces(self):
        client = FakeLedgerClient(balance=10)
        submitter, allocator, ledger = _submitter(client)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await submitter.submit(_request())

        assert exc_info.value.balance == 10
        assert exc_info.value.required == 500_000 * 52_000_000_000
        assert client.nonce_calls == 0
        assert client.submit_calls == 0
        assert allocator.peek(ADDR_0) is None
        assert len(ledger) == 0

    @pytest.mark.asyncio
    async def test_value_counts_toward_cost(self):
        gas_cost = 500_000 * 52_000_000_000
        client = FakeLedgerClient(balance=gas_cost)
        submitter, _, _ = _submitter(client)

        assert (await submitter.submit(_request())).ok
        with pytest.raises(InsufficientBalanceError):
            await submitter.submit(_request(value=1))

    @pytest.mark.asyncio
    async def test_unknown_credential(self):
        client = FakeLedgerClient()
        submitter, _, _ = _submitter(client)

        with pytest.raises(UnknownCredentialError):
            await submitter.submit(_request(ADDR_2))
        assert client.balance_calls == 0
        assert client.submit_calls == 0


class TestOrdering:

    @pytest.mark.asyncio
    async def test_concurrent_requests_from_one_address_arrive_in_nonce_order(self):
        client = FakeLedgerClient(pending_nonce=100)
        submitter, _, ledger = _submitter(client)

        results = await asyncio.gather(*(submitter.submit(_request()) for _ in range(10)))

        assert all(r.ok for r in results)
        assert [nonce for _, nonce in client.sent] == list(range(100, 110))
        assert sorted(r.nonce for r in results) == list(range(100, 110))
        assert len(ledger) == 10

    @pytest.mark.asyncio
    async def test_addresses_interleave_independently(self):
        client = FakeLedgerClient()
        submitter, _, _ = _submitter(client)

        await asyncio.gather(
            *(submitter.submit(_request(addr)) for addr in [ADDR_0, ADDR_1] * 3)
        )

        for addr in (ADDR_0, ADDR_1):
            assert [n for sender, n in client.sent if sender == addr] == [0, 1, 2]

    @pytest.mark.asyncio
    async def test_retry_of_one_request_never_shares_a_nonce(self):
        client = FakeLedgerClient(behaviors=["timeout", "ok", "ok"])
        submitter, _, _ = _submitter(client)

        results = await asyncio.gather(submitter.submit(_request()), submitter.submit(_request()))

        nonces = [n for _, n in client.sent]
        assert len(nonces) == len(set(nonces)) == 3
        assert nonces == sorted(nonces)
        assert all(r.ok for r in results)
