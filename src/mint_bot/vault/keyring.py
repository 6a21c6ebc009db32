"""In-memory key ring holding decrypted signing accounts.

Private keys live only inside ``eth_account`` ``LocalAccount`` objects
owned by the ring.  Callers get addresses and signed transactions, never
key material.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from eth_account import Account
from eth_account.datastructures import SignedTransaction
from eth_account.signers.local import LocalAccount
from web3 import Web3

from mint_bot.errors import MalformedCredentialError, UnknownCredentialError
from mint_bot.vault.codec import Credential

logger = logging.getLogger("mint_bot.vault.keyring")

_HEX_KEY_RE = re.compile(r"^[0-9a-fA-F]{64}$")


def normalize_secret(secret: str) -> str:
    """Return *secret* as ``0x`` + 64 lowercase hex characters.

    Keys pasted without the ``0x`` prefix are accepted.
    """
    text = secret.strip()
    if text[:2] in ("0x", "0X"):
        text = text[2:]
    if not _HEX_KEY_RE.match(text):
        raise ValueError("private key must be 32 bytes of hex")
    return "0x" + text.lower()


class KeyRing:
    """Signing accounts keyed by address, for the lifetime of the process."""

    def __init__(self) -> None:
        self._accounts: dict[str, LocalAccount] = {}

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _account_for(self, credential: Credential, index: int | None = None) -> LocalAccount:
        try:
            key = normalize_secret(credential.secret)
        except (ValueError, AttributeError) as exc:
            raise MalformedCredentialError(str(exc), index) from exc

        try:
            account = Account.from_key(key)
        except Exception as exc:
            raise MalformedCredentialError(f"invalid private key ({type(exc).__name__})", index) from exc

        if credential.address:
            if not Web3.is_address(credential.address):
                raise MalformedCredentialError(f"invalid address {credential.address!r}", index)
            if Web3.to_checksum_address(credential.address) != account.address:
                raise MalformedCredentialError(
                    f"address {credential.address} does not match its key", index
                )
        return account

    def validate(self, credential: Credential, index: int | None = None) -> str:
        """Check *credential* and return its checksummed address.

        Raises :class:`MalformedCredentialError` when the key is unusable or
        does not control the stated address.
        """
        return self._account_for(credential, index).address

    def load(self, credentials: list[Credential]) -> None:
        """Add *credentials* to the ring.

        Malformed entries are skipped with a warning.  If two entries share
        an address the first one wins.
        """
        for index, credential in enumerate(credentials):
            try:
                account = self._account_for(credential, index)
            except MalformedCredentialError as exc:
                logger.warning(f"Skipping wallet: {exc}")
                continue

            key = account.address.lower()
            if key in self._accounts:
                logger.warning(f"Skipping duplicate wallet {account.address} (entry {index})")
                continue
            self._accounts[key] = account

    # ------------------------------------------------------------------
    # Use
    # ------------------------------------------------------------------

    def sign(self, address: str, envelope: dict[str, Any]) -> SignedTransaction:
        """Sign a transaction envelope with the key controlling *address*."""
        account = self._accounts.get(address.lower())
        if account is None:
            raise UnknownCredentialError(address)
        return account.sign_transaction(envelope)

    def list_addresses(self) -> set[str]:
        return {account.address for account in self._accounts.values()}

    def __contains__(self, address: object) -> bool:
        return isinstance(address, str) and address.lower() in self._accounts

    def __len__(self) -> int:
        return len(self._accounts)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Drop every account reference held by the ring."""
        self._accounts.clear()

    def __enter__(self) -> KeyRing:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
