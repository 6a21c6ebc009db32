"""Minter - the top-level orchestrator that mints from every loaded wallet."""

from __future__ import annotations

import asyncio
import logging
from decimal import Decimal

from web3 import Web3

from mint_bot.chain.client import LedgerClient, Web3LedgerClient, encode_call
from mint_bot.chain.nonce import NonceAllocator
from mint_bot.config import BotConfig
from mint_bot.engine.ledger import SubmissionLedger
from mint_bot.engine.models import (
    FailureKind,
    LedgerEntry,
    SubmissionRequest,
    SubmissionResult,
)
from mint_bot.engine.notify import LogNotifier, Notifier, format_result, shorten_error
from mint_bot.engine.submitter import TransactionSubmitter
from mint_bot.errors import InsufficientBalanceError, SubmissionError, UnknownCredentialError
from mint_bot.vault.keyring import KeyRing
from mint_bot.vault.store import load_keyring

logger = logging.getLogger("mint_bot.minter")


class Minter:
    """Wires the key ring, nonce allocator, submitter and ledger together.

    Each wallet's mint is independent: one wallet failing never stops the
    others, and every wallet gets exactly one terminal message.
    """

    def __init__(
        self,
        config: BotConfig,
        keyring: KeyRing,
        client: LedgerClient,
        ledger: SubmissionLedger,
        notifier: Notifier | None = None,
    ) -> None:
        self.config = config
        self.keyring = keyring
        self.client = client
        self.ledger = ledger
        self.notifier: Notifier = notifier or LogNotifier()
        self.allocator = NonceAllocator(client)
        self.submitter = TransactionSubmitter(
            keyring,
            self.allocator,
            client,
            ledger,
            timeout=config.submission.timeout_seconds,
            max_retries=config.submission.max_retries,
        )

    @classmethod
    async def open(cls, config: BotConfig, notifier: Notifier | None = None) -> Minter:
        """Load the vault and the ledger file, and connect to the configured RPC."""
        keyring = await load_keyring(
            config.vault.path, config.vault.password.get_secret_value()
        )
        client = Web3LedgerClient(
            config.chain.rpc_url,
            wait_for_receipt=config.submission.wait_for_receipt,
            receipt_timeout=config.submission.receipt_timeout_seconds,
        )
        ledger = SubmissionLedger(config.ledger.path, config.ledger.max_entries)
        ledger.load()
        return cls(config, keyring, client, ledger, notifier)

    def close(self) -> None:
        self.keyring.close()

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    @property
    def contract_configured(self) -> bool:
        return bool(self.config.contract_address) and Web3.is_address(self.config.contract_address)

    def build_request(self, address: str) -> SubmissionRequest:
        """The configured contract call, sent from *address*."""
        return SubmissionRequest(
            credential_address=address,
            target_contract=self.config.contract_address,
            call_data=encode_call(self.config.call_signature),
            gas_limit=self.config.gas.limit,
            gas_price=self.config.gas.price,
            chain_id=self.config.chain.chain_id,
            value=self.config.mint_value_wei,
        )

    async def _on_retry(self, request: SubmissionRequest, attempt: int, error: SubmissionError) -> None:
        await self.notifier.notify(
            f"🔄 Retrying {request.credential_address} ({attempt}/{self.submitter.max_retries})..."
        )

    async def mint_one(self, address: str) -> SubmissionResult:
        """Mint from one wallet and emit its terminal message."""
        request = self.build_request(address)
        await self.notifier.notify(f"🔄 Minting from {address}...")

        try:
            result = await self.submitter.submit(request, on_retry=self._on_retry)
        except InsufficientBalanceError as exc:
            symbol = self.config.chain.native_symbol
            has = Web3.from_wei(exc.balance, "ether")
            needs = Web3.from_wei(exc.required, "ether")
            result = SubmissionResult.failure(
                request.credential_address,
                f"Insufficient balance: has {has} {symbol}, needs ~{needs} {symbol}",
                FailureKind.INSUFFICIENT_BALANCE,
            )
            await self.ledger.append(result)
        except UnknownCredentialError as exc:
            result = SubmissionResult.failure(
                request.credential_address, str(exc), FailureKind.UNKNOWN_CREDENTIAL
            )
            await self.ledger.append(result)
        except Exception as exc:
            # Pre-flight balance lookup failed; nothing was signed or sent.
            logger.error(f"Mint error for {address}: {exc}")
            result = SubmissionResult.failure(
                request.credential_address, shorten_error(str(exc)), FailureKind.REJECTED
            )
            await self.ledger.append(result)

        await self.notifier.notify(format_result(result, self.config.chain.explorer_url))
        return result

    async def mint_all(self) -> list[SubmissionResult]:
        """Mint once from every wallet in the key ring.

        ``concurrent`` mode starts one task per wallet (staggered by
        ``batch_delay_seconds`` if set); ``sequential`` mode waits for each
        wallet and then sleeps ``batch_delay_seconds`` before the next.
        """
        if not self.contract_configured:
            await self.notifier.notify("❌ Contract not properly initialized")
            return []

        addresses = sorted(self.keyring.list_addresses())
        if not addresses:
            await self.notifier.notify("⚠️ No wallets configured. Add wallets with 'mint-bot vault add'.")
            return []

        await self.notifier.notify(f"🚀 Starting mint process for {len(addresses)} wallet(s)...")
        delay = self.config.submission.batch_delay_seconds

        if self.config.submission.batch_mode == "sequential":
            results = []
            for index, address in enumerate(addresses):
                if index and delay:
                    await asyncio.sleep(delay)
                results.append(await self.mint_one(address))
        else:
            async def _staggered(index: int, address: str) -> SubmissionResult:
                if delay:
                    await asyncio.sleep(index * delay)
                return await self.mint_one(address)

            results = list(
                await asyncio.gather(*(_staggered(i, a) for i, a in enumerate(addresses)))
            )

        succeeded = sum(1 for r in results if r.ok)
        if succeeded == len(results):
            await self.notifier.notify("🎉 Batch mint complete!")
        else:
            await self.notifier.notify(
                f"⚠️ Batch finished: {succeeded}/{len(results)} succeeded, check logs"
            )
        return results

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def balances(self) -> dict[str, dict]:
        """Native balance per wallet.

        Returns a dict mapping address to {balance, symbol, error}.
        Errors on individual wallets don't abort the whole operation.
        """
        results: dict[str, dict] = {}
        symbol = self.config.chain.native_symbol
        for address in sorted(self.keyring.list_addresses()):
            try:
                wei = await self.client.get_balance(address)
                results[address] = {
                    "balance": str(Decimal(str(Web3.from_wei(wei, "ether")))),
                    "symbol": symbol,
                    "error": None,
                }
            except Exception as e:
                logger.warning(f"Failed to get balance for {address}: {e}")
                results[address] = {"balance": "0", "symbol": symbol, "error": str(e)}
        return results

    async def supply(self) -> tuple[int, int]:
        """``(totalSupply, MAX_SUPPLY)`` of the configured contract."""
        if not self.contract_configured:
            raise ValueError("Contract address is not configured")
        call_uint = getattr(self.client, "call_uint", None)
        if call_uint is None:
            raise RuntimeError("Ledger client cannot perform contract calls")
        total, maximum = await asyncio.gather(
            call_uint(self.config.contract_address, "totalSupply()"),
            call_uint(self.config.contract_address, "MAX_SUPPLY()"),
        )
        return total, maximum

    async def connected(self) -> bool | None:
        """Whether the RPC endpoint answers; ``None`` if the client can't tell."""
        is_connected = getattr(self.client, "is_connected", None)
        if is_connected is None:
            return None
        return await is_connected()

    def history(self, limit: int = 10) -> list[LedgerEntry]:
        return self.ledger.recent(limit)

    def status(self) -> dict:
        """Snapshot of the running configuration (no secrets)."""
        return {
            "name": self.config.name,
            "network": self.config.chain.rpc_url,
            "chain_id": self.config.chain.chain_id,
            "contract": self.config.contract_address or "Not set",
            "wallets": len(self.keyring),
            "gas_limit": self.config.gas.limit,
            "gas_price": self.config.gas.price,
            "batch_mode": self.config.submission.batch_mode,
            "ledger_entries": len(self.ledger),
        }
