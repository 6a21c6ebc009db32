"""
Pytest configuration and shared fakes for mint-bot tests.
"""
from __future__ import annotations

import asyncio
from collections import defaultdict

import pytest
import rlp
from eth_account import Account

from mint_bot.vault import codec

# Well-known development keys (Hardhat accounts 0-2). Never funded on real networks.
KEY_0 = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"
ADDR_0 = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
KEY_1 = "0x59c6995e998f97a5a0044966f0945389dc9e86dae88c7a8412f4603b6b78690d"
ADDR_1 = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
KEY_2 = "0x5de4111afa1a4b94908f83103eb1f1706367c2e68ca870fc3fb9a804cdab365a"
ADDR_2 = "0x3C44CdDdB6a900fa2b585dd299e03d12FA4293BC"

CONTRACT = "0x1aa689f843077dca043df7d0dc0b3f62dbc6180d"


@pytest.fixture(autouse=True)
def fast_kdf(monkeypatch):
    """Cheaper scrypt so the suite stays quick; the construction is unchanged."""
    monkeypatch.setattr(codec, "SCRYPT_N", 2**10)


class FakeLedgerClient:
    """In-memory remote ledger.

    ``behaviors`` is consumed one entry per submission: ``"ok"``,
    ``"timeout"`` (hangs until cancelled) or ``"reject"`` (raises).
    Once exhausted every submission succeeds.
    """

    def __init__(self, balance: int = 10**18, pending_nonce: int = 0, behaviors=None):
        self.balances: dict[str, int] = defaultdict(lambda: balance)
        self.pending_nonce = pending_nonce
        self.behaviors = list(behaviors or [])
        self.sent: list[tuple[str, int]] = []  # (sender, nonce) in arrival order
        self.nonce_calls = 0
        self.balance_calls = 0
        self.submit_calls = 0
        self.uints: dict[str, int] = {}

    async def get_pending_nonce(self, address: str) -> int:
        self.nonce_calls += 1
        return self.pending_nonce

    async def get_balance(self, address: str) -> int:
        self.balance_calls += 1
        return self.balances[address.lower()]

    async def submit_signed_transaction(self, raw_transaction: bytes) -> str:
        self.submit_calls += 1
        sender = Account.recover_transaction(raw_transaction)
        nonce = int.from_bytes(rlp.decode(raw_transaction)[0], "big")
        self.sent.append((sender, nonce))

        behavior = self.behaviors.pop(0) if self.behaviors else "ok"
        if behavior == "timeout":
            await asyncio.sleep(3600)
        if behavior == "reject":
            raise ValueError("nonce too low")

        # Yield so concurrent submitters get a chance to interleave
        await asyncio.sleep(0)
        return "0x" + f"{len(self.sent):064x}"

    async def call_uint(self, contract: str, signature: str) -> int:
        return self.uints[signature]


class RecordingNotifier:
    def __init__(self):
        self.messages: list[str] = []

    async def notify(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def fake_client():
    return FakeLedgerClient()


@pytest.fixture
def notifier():
    return RecordingNotifier()
