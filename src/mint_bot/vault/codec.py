"""Password-based vault encryption: scrypt + AES-256-CBC + HMAC-SHA256.

The layout is encrypt-then-MAC.  The MAC covers the lowercase hex text of
the ciphertext, exactly as it is persisted in the vault file, and is always
checked before the ciphertext is decrypted.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
import json
import os
import re
from dataclasses import dataclass, field

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from mint_bot.errors import IntegrityError

SALT_SIZE = 16
IV_SIZE = 16
KEY_SIZE = 32

# scrypt cost parameters (Node's scryptSync defaults, so older vault files
# written by the JavaScript bot still open).
SCRYPT_N = 2**14
SCRYPT_R = 8
SCRYPT_P = 1

_ENTRY_KEYS = {"address", "privateKey"}
_SECRET_RE = re.compile(r"^(0[xX])?[0-9a-fA-F]{64}$")
_ADDRESS_RE = re.compile(r"^0x[0-9a-fA-F]{40}$")


@dataclass(frozen=True)
class Credential:
    """A signing key and the address it controls.

    ``secret`` is the hex text of the private scalar as it was stored; the
    key ring normalizes it.  ``address`` may be ``None`` for entries that
    only carried a key.
    """

    address: str | None
    secret: str = field(repr=False)


@dataclass(frozen=True)
class EncryptedVault:
    salt: bytes
    iv: bytes
    ciphertext: bytes
    mac: bytes


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive the 256-bit vault key. Deliberately slow."""
    kdf = Scrypt(salt=salt, length=KEY_SIZE, n=SCRYPT_N, r=SCRYPT_R, p=SCRYPT_P)
    return kdf.derive(password.encode("utf-8"))


def compute_mac(key: bytes, ciphertext: bytes) -> bytes:
    return hmac.new(key, ciphertext.hex().encode("ascii"), hashlib.sha256).digest()


def _serialize(credentials: list[Credential]) -> bytes:
    items = [{"address": c.address, "privateKey": c.secret} for c in credentials]
    return json.dumps(items, separators=(",", ":")).encode("utf-8")


def _check_secret(value: object, index: int) -> str:
    if not isinstance(value, str) or not _SECRET_RE.match(value):
        raise ValueError(f"entry {index} has no 32-byte hex private key")
    return value


def _deserialize(plaintext: bytes) -> list[Credential]:
    """Parse the decrypted payload, rejecting any entry of unexpected shape.

    The IV is outside the MAC, so a damaged IV shows up here as a changed
    first block; the shape checks are what turn that into an error.
    """
    data = json.loads(plaintext.decode("utf-8"))
    if not isinstance(data, list):
        raise ValueError("vault payload is not a list")

    credentials: list[Credential] = []
    for index, item in enumerate(data):
        if isinstance(item, str):
            # Older vaults store bare private keys.
            credentials.append(Credential(address=None, secret=_check_secret(item, index)))
        elif isinstance(item, dict):
            if set(item) != _ENTRY_KEYS:
                raise ValueError(f"entry {index} has keys {sorted(item)}")
            address = item["address"]
            if address is not None and (not isinstance(address, str) or not _ADDRESS_RE.match(address)):
                raise ValueError(f"entry {index} has a malformed address")
            credentials.append(
                Credential(address=address, secret=_check_secret(item["privateKey"], index))
            )
        else:
            raise ValueError(f"unexpected vault entry of type {type(item).__name__}")
    return credentials


def encrypt(credentials: list[Credential], password: str) -> EncryptedVault:
    """Encrypt *credentials* under *password* into a new :class:`EncryptedVault`."""
    salt = os.urandom(SALT_SIZE)
    iv = os.urandom(IV_SIZE)
    key = derive_key(password, salt)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(_serialize(credentials)) + padder.finalize()

    encryptor = Cipher(algorithms.AES(key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    return EncryptedVault(
        salt=salt,
        iv=iv,
        ciphertext=ciphertext,
        mac=compute_mac(key, ciphertext),
    )


def decrypt(vault: EncryptedVault, password: str) -> list[Credential]:
    """Verify and decrypt *vault*.

    Raises
    ------
    IntegrityError
        If the MAC does not match (tampering or wrong password), or if the
        payload is unreadable after a valid MAC.
    """
    key = derive_key(password, vault.salt)
    expected = compute_mac(key, vault.ciphertext)
    if not hmac.compare_digest(expected, vault.mac):
        raise IntegrityError("Data integrity check failed. Possible tampering detected.")

    if len(vault.iv) != IV_SIZE:
        raise IntegrityError(f"Invalid IV length {len(vault.iv)}")

    try:
        decryptor = Cipher(algorithms.AES(key), modes.CBC(vault.iv)).decryptor()
        padded = decryptor.update(vault.ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        return _deserialize(plaintext)
    except ValueError as exc:
        raise IntegrityError(f"Vault payload unreadable: {exc}") from exc


async def encrypt_async(credentials: list[Credential], password: str) -> EncryptedVault:
    """:func:`encrypt` on a worker thread, so the KDF doesn't stall the loop."""
    return await asyncio.to_thread(encrypt, credentials, password)


async def decrypt_async(vault: EncryptedVault, password: str) -> list[Credential]:
    """:func:`decrypt` on a worker thread."""
    return await asyncio.to_thread(decrypt, vault, password)
