"""Remote ledger client over JSON-RPC, using ``AsyncWeb3``."""

from __future__ import annotations

import logging
from typing import Protocol

from web3 import AsyncWeb3, Web3
from web3.middleware import ExtraDataToPOAMiddleware

from mint_bot.errors import SubmissionRejectedError

logger = logging.getLogger("mint_bot.chain.client")


class LedgerClient(Protocol):
    """What the submission engine needs from the remote ledger."""

    async def get_pending_nonce(self, address: str) -> int: ...

    async def submit_signed_transaction(self, raw_transaction: bytes) -> str: ...

    async def get_balance(self, address: str) -> int: ...


def encode_call(signature: str) -> bytes:
    """Return the 4-byte selector for an argument-less call like ``"mint()"``."""
    return bytes(Web3.keccak(text=signature)[:4])


class Web3LedgerClient:
    """:class:`LedgerClient` backed by an EVM JSON-RPC endpoint.

    Parameters
    ----------
    rpc_url:
        HTTP JSON-RPC endpoint.
    wait_for_receipt:
        If *True*, :meth:`submit_signed_transaction` only returns once the
        transaction is mined, and raises if it reverted.
    receipt_timeout:
        Upper bound handed to web3 while polling for the receipt.
    """

    def __init__(
        self,
        rpc_url: str,
        *,
        wait_for_receipt: bool = True,
        receipt_timeout: float = 120.0,
        poa: bool = True,
    ) -> None:
        self.rpc_url = rpc_url
        self.wait_for_receipt = wait_for_receipt
        self.receipt_timeout = receipt_timeout
        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(rpc_url))

        # Most testnets and L2s need the POA extraData fix
        if poa:
            self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

    async def get_pending_nonce(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return await self.w3.eth.get_transaction_count(checksum, "pending")

    async def get_balance(self, address: str) -> int:
        checksum = Web3.to_checksum_address(address)
        return await self.w3.eth.get_balance(checksum)

    async def submit_signed_transaction(self, raw_transaction: bytes) -> str:
        """Broadcast a signed transaction and return its hash (``0x``-prefixed)."""
        tx_hash = await self.w3.eth.send_raw_transaction(raw_transaction)
        hex_hash = Web3.to_hex(tx_hash)
        logger.debug(f"Broadcast {hex_hash}")

        if not self.wait_for_receipt:
            return hex_hash

        receipt = await self.w3.eth.wait_for_transaction_receipt(
            tx_hash, timeout=self.receipt_timeout
        )
        if receipt.get("status") == 0:
            raise SubmissionRejectedError(f"Transaction {hex_hash} reverted")
        return hex_hash

    async def call_uint(self, contract: str, signature: str) -> int:
        """Call a view function returning a single ``uint256``."""
        result = await self.w3.eth.call(
            {"to": Web3.to_checksum_address(contract), "data": Web3.to_hex(encode_call(signature))}
        )
        return int.from_bytes(bytes(result)[:32], "big")

    async def is_connected(self) -> bool:
        try:
            return await self.w3.is_connected()
        except Exception as e:
            logger.warning(f"RPC connectivity check failed for {self.rpc_url}: {e}")
            return False
