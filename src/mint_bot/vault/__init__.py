"""Encrypted credential vault.

Keys are stored at rest under a password (scrypt + AES-256-CBC +
HMAC-SHA256) and held in memory by a :class:`KeyRing` that signs
transactions without ever handing out the key material.
"""

from mint_bot.vault.codec import Credential, EncryptedVault, decrypt, encrypt
from mint_bot.vault.keyring import KeyRing
from mint_bot.vault.store import add_credentials, load_keyring, read_vault, write_vault

__all__ = [
    "Credential",
    "EncryptedVault",
    "KeyRing",
    "add_credentials",
    "decrypt",
    "encrypt",
    "load_keyring",
    "read_vault",
    "write_vault",
]
