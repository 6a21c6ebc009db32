"""Build, sign, submit and retry a single transaction.

One request runs as a bounded loop of attempts.  Each attempt holds the
sender's nonce lock from nonce issuance until the remote call returns (or
times out), so transactions from one address reach the remote ledger in
nonce order.  A timeout stops waiting but cannot prove the transaction was
not accepted, so a request that fails on a timeout is tagged ``timeout``
rather than ``rejected``.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

from web3 import Web3

from mint_bot.chain.client import LedgerClient
from mint_bot.chain.nonce import NonceAllocator
from mint_bot.engine.ledger import SubmissionLedger
from mint_bot.engine.models import (
    FailureKind,
    SubmissionRequest,
    SubmissionResult,
    SubmissionState,
)
from mint_bot.errors import (
    InsufficientBalanceError,
    RetriesExhaustedError,
    SubmissionError,
    SubmissionRejectedError,
    SubmissionTimeoutError,
    UnknownCredentialError,
)
from mint_bot.vault.keyring import KeyRing

logger = logging.getLogger("mint_bot.engine.submitter")

DEFAULT_TIMEOUT = 60.0
DEFAULT_MAX_RETRIES = 2

RetryCallback = Callable[[SubmissionRequest, int, SubmissionError], Awaitable[None]]


def build_envelope(request: SubmissionRequest, nonce: int) -> dict[str, Any]:
    """Legacy (gasPrice) transaction dict for ``eth_account``."""
    return {
        "to": request.target_contract,
        "data": Web3.to_hex(request.call_data),
        "gas": request.gas_limit,
        "gasPrice": request.gas_price,
        "chainId": request.chain_id,
        "nonce": nonce,
        "value": request.value,
    }


class TransactionSubmitter:
    """Turns a :class:`SubmissionRequest` into a :class:`SubmissionResult`.

    Parameters
    ----------
    keyring:
        Source of signatures.
    allocator:
        Per-address nonce source; its lock spans each attempt.
    client:
        Remote ledger.
    ledger:
        Every terminal result is appended here.
    timeout:
        Seconds one remote submission may take.
    max_retries:
        Extra attempts after the first (2 means 3 attempts in total).
    """

    def __init__(
        self,
        keyring: KeyRing,
        allocator: NonceAllocator,
        client: LedgerClient,
        ledger: SubmissionLedger,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries cannot be negative")
        self._keyring = keyring
        self._allocator = allocator
        self._client = client
        self._ledger = ledger
        self.timeout = timeout
        self.max_retries = max_retries

    # ------------------------------------------------------------------
    # Pre-flight
    # ------------------------------------------------------------------

    async def check_balance(self, request: SubmissionRequest) -> int:
        """Raise :class:`InsufficientBalanceError` if the sender can't pay.

        Returns the balance in wei.
        """
        address = request.credential_address
        balance = await self._client.get_balance(address)
        if balance < request.max_cost:
            raise InsufficientBalanceError(address, balance, request.max_cost)
        return balance

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _transition(self, address: str, nonce: int | None, state: SubmissionState) -> None:
        logger.debug(f"{address} nonce={nonce}: {state.value}")

    async def _attempt(self, request: SubmissionRequest) -> tuple[str, int]:
        """One Building → Signed → Submitted pass. Returns (tx_hash, nonce)."""
        address = request.credential_address
        nonce: int | None = None
        try:
            async with self._allocator.reserve(address) as nonce:
                self._transition(address, nonce, SubmissionState.BUILDING)
                envelope = build_envelope(request, nonce)
                signed = self._keyring.sign(address, envelope)
                self._transition(address, nonce, SubmissionState.SIGNED)

                self._transition(address, nonce, SubmissionState.SUBMITTED)
                try:
                    tx_hash = await asyncio.wait_for(
                        self._client.submit_signed_transaction(signed.raw_transaction),
                        timeout=self.timeout,
                    )
                except asyncio.TimeoutError as exc:
                    self._transition(address, nonce, SubmissionState.TIMED_OUT)
                    raise SubmissionTimeoutError(self.timeout, nonce=nonce) from exc

                self._transition(address, nonce, SubmissionState.SUCCEEDED)
                return tx_hash, nonce
        except UnknownCredentialError:
            raise
        except SubmissionError as exc:
            if exc.nonce is None:
                exc.nonce = nonce
            if isinstance(exc, SubmissionRejectedError):
                self._transition(address, nonce, SubmissionState.REJECTED_BY_REMOTE)
            raise
        except Exception as exc:
            self._transition(address, nonce, SubmissionState.REJECTED_BY_REMOTE)
            message = str(exc) or type(exc).__name__
            raise SubmissionRejectedError(message, nonce=nonce) from exc

    async def submit(
        self,
        request: SubmissionRequest,
        on_retry: RetryCallback | None = None,
    ) -> SubmissionResult:
        """Submit *request*, retrying failed attempts up to the budget.

        Raises
        ------
        UnknownCredentialError
            If the key ring holds no key for the sender.
        InsufficientBalanceError
            If the sender can't cover ``gas_limit * gas_price + value``.
            Nothing is retried and no nonce is consumed.
        """
        address = request.credential_address
        if address not in self._keyring:
            raise UnknownCredentialError(address)
        await self.check_balance(request)

        attempts = 0
        last_error: SubmissionError | None = None
        while attempts <= self.max_retries:
            attempts += 1
            try:
                tx_hash, nonce = await self._attempt(request)
            except SubmissionError as exc:
                last_error = exc
                logger.warning(
                    f"Attempt {attempts}/{self.max_retries + 1} from {address} failed: {exc}"
                )
                if attempts <= self.max_retries and on_retry is not None:
                    try:
                        await on_retry(request, attempts, exc)
                    except Exception as cb_exc:
                        logger.error(f"Retry callback failed for {address}: {cb_exc}")
                continue

            result = SubmissionResult.success(address, tx_hash, nonce, attempts)
            logger.info(f"Submitted {tx_hash} from {address} (nonce {nonce}, attempt {attempts})")
            await self._ledger.append(result)
            return result

        assert last_error is not None
        exhausted = RetriesExhaustedError(address, attempts, last_error)
        self._transition(address, last_error.nonce, SubmissionState.FAILED)
        result = SubmissionResult.failure(
            address,
            str(exhausted),
            FailureKind.TIMEOUT if exhausted.timed_out else FailureKind.REJECTED,
            attempts=attempts,
            nonce=last_error.nonce,
        )
        logger.error(f"Submission from {address} failed: {exhausted}")
        await self._ledger.append(result)
        return result
