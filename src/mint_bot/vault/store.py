"""On-disk vault file management.

The vault file is a JSON object with four hex fields: ``salt``, ``iv``,
``encryptedData`` and ``hmac``.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from mint_bot.errors import IntegrityError, PersistenceError
from mint_bot.vault.codec import Credential, EncryptedVault, decrypt, decrypt_async, encrypt
from mint_bot.vault.keyring import KeyRing, normalize_secret

logger = logging.getLogger("mint_bot.vault.store")

_FIELDS = ("salt", "iv", "encryptedData", "hmac")


def encode_vault(vault: EncryptedVault) -> dict[str, str]:
    """Convert a vault to its hex-encoded file structure."""
    return {
        "iv": vault.iv.hex(),
        "salt": vault.salt.hex(),
        "encryptedData": vault.ciphertext.hex(),
        "hmac": vault.mac.hex(),
    }


def decode_vault(data: object) -> EncryptedVault:
    """Parse the file structure back into an :class:`EncryptedVault`.

    Raises
    ------
    IntegrityError
        If a field is missing or is not valid hex.
    """
    if not isinstance(data, dict):
        raise IntegrityError("Vault file is not a JSON object")

    missing = [name for name in _FIELDS if not isinstance(data.get(name), str)]
    if missing:
        raise IntegrityError(f"Vault file is missing field(s): {', '.join(missing)}")

    try:
        return EncryptedVault(
            salt=bytes.fromhex(data["salt"]),
            iv=bytes.fromhex(data["iv"]),
            ciphertext=bytes.fromhex(data["encryptedData"]),
            mac=bytes.fromhex(data["hmac"]),
        )
    except ValueError as exc:
        raise IntegrityError(f"Vault file has a corrupt field: {exc}") from exc


def read_vault(path: Path) -> EncryptedVault | None:
    """Read the vault at *path*.

    Returns ``None`` if no vault file exists.  A file that exists but
    cannot be parsed raises :class:`IntegrityError`.
    """
    path = Path(path)
    if not path.exists():
        return None

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise PersistenceError(path, str(exc)) from exc

    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise IntegrityError(f"Vault file is not valid JSON: {exc}") from exc
    return decode_vault(data)


def write_vault(path: Path, vault: EncryptedVault) -> None:
    """Atomically write *vault* to *path*, creating parent directories."""
    path = Path(path)
    tmp_path = path.with_name(path.name + ".tmp")
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path.write_text(json.dumps(encode_vault(vault)), encoding="utf-8")
        os.replace(tmp_path, path)
    except OSError as exc:
        raise PersistenceError(path, str(exc)) from exc
    logger.info(f"Vault saved to {path}")


def add_credentials(path: Path, password: str, secrets: list[str]) -> list[str]:
    """Append private keys to the vault at *path* and re-encrypt it.

    A new vault is created when none exists.  Every key is validated
    first; one bad key aborts the whole update.

    Returns
    -------
    list[str]
        The addresses of the newly added keys.
    """
    vault = read_vault(path)
    existing = decrypt(vault, password) if vault is not None else []

    ring = KeyRing()
    new_credentials = [Credential(address=None, secret=s) for s in secrets]
    added = [ring.validate(c, index=i) for i, c in enumerate(new_credentials)]
    stored = [
        Credential(address=addr, secret=normalize_secret(c.secret))
        for addr, c in zip(added, new_credentials)
    ]

    write_vault(path, encrypt(existing + stored, password))
    return added


async def load_keyring(path: Path, password: str) -> KeyRing:
    """Open the vault at *path* and return a loaded :class:`KeyRing`.

    A missing, tampered or undecryptable vault never aborts the process:
    the error is logged and an empty key ring is returned.
    """
    ring = KeyRing()
    try:
        vault = read_vault(path)
    except (IntegrityError, PersistenceError) as exc:
        logger.error(f"Failed to load wallets from {path}: {exc}. No wallets available.")
        return ring

    if vault is None:
        logger.warning(f"No vault found at {path}. No wallets available.")
        return ring

    try:
        credentials = await decrypt_async(vault, password)
    except IntegrityError as exc:
        logger.error(f"Failed to load wallets from {path}: {exc}. No wallets available.")
        return ring

    ring.load(credentials)
    logger.info(f"Loaded {len(ring)} wallet(s)")
    return ring
