"""
Tests for the HTTP health and status endpoints.
"""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from mint_bot.config import BotConfig
from mint_bot.engine.ledger import SubmissionLedger
from mint_bot.engine.minter import Minter
from mint_bot.engine.models import FailureKind, SubmissionResult
from mint_bot.server import create_app
from mint_bot.vault.codec import Credential
from mint_bot.vault.keyring import KeyRing

from .conftest import ADDR_0, ADDR_1, CONTRACT, KEY_0, KEY_1, FakeLedgerClient


@pytest.fixture
def minter():
    config = BotConfig(name="test-bot", contract_address=CONTRACT)
    ring = KeyRing()
    ring.load([Credential(None, KEY_0), Credential(None, KEY_1)])
    ledger = SubmissionLedger()
    ledger._entries = [
        SubmissionResult.success(ADDR_0, "0xabc", nonce=0, attempts=1),
        SubmissionResult.failure(ADDR_1, "boom", FailureKind.REJECTED, attempts=3),
    ]
    return Minter(config, ring, FakeLedgerClient(), ledger)


@pytest.fixture
def client(minter):
    app = create_app(minter.config, minter=minter)
    with TestClient(app) as c:
        yield c


class TestRoutes:

    def test_index(self, client):
        assert client.get("/").json() == {"message": "test-bot 🚀 Running"}

    def test_health(self, client):
        body = client.get("/health").json()
        assert body["status"] == "ok"
        assert "timestamp" in body

    def test_status(self, client):
        body = client.get("/api/status").json()
        assert body["wallets"] == 2
        assert body["ledger_entries"] == 2
        assert body["contract"] == CONTRACT
        assert body["connected"] is None

    def test_wallets(self, client):
        assert client.get("/api/wallets").json() == sorted([ADDR_0, ADDR_1])

    def test_history_newest_first(self, client):
        records = client.get("/api/history").json()
        assert [r["status"] for r in records] == ["failed", "success"]
        assert records[1]["txHash"] == "0xabc"

    def test_history_limit(self, client):
        assert len(client.get("/api/history", params={"limit": 1}).json()) == 1
        assert client.get("/api/history", params={"limit": 0}).status_code == 422

    def test_supplied_minter_not_closed(self, minter):
        with TestClient(create_app(minter.config, minter=minter)):
            pass
        assert len(minter.keyring) == 2
