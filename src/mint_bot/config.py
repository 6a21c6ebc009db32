"""Configuration system for mint-bot.

Loads the bot configuration from a YAML file, expands ``${VAR}``
environment placeholders, and validates it into an immutable
:class:`BotConfig` that is built once at startup and handed to each
component's constructor.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, SecretStr

from mint_bot.chain.chains import get_chain


# ---------------------------------------------------------------------------
# Environment-variable expansion helper
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)\}")


def _expand_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with their environment values.

    If the variable is not set the placeholder is left as-is so that
    validation can catch it later.
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return _ENV_VAR_RE.sub(_replace, value)


def _expand_env_recursive(obj: object) -> object:
    """Walk an arbitrary nested structure and expand env vars in strings."""
    if isinstance(obj, str):
        return _expand_env_vars(obj)
    if isinstance(obj, dict):
        return {k: _expand_env_recursive(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand_env_recursive(item) for item in obj]
    return obj


# ---------------------------------------------------------------------------
# Pydantic v2 models
# ---------------------------------------------------------------------------


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class ChainConfig(_Frozen):
    """Network the bot submits to."""

    name: str = "monad-testnet"
    chain_id: int = 10143
    rpc_url: str = "https://testnet-rpc.monad.xyz"
    explorer_url: str = "https://testnet.monadexplorer.com/tx/"
    native_symbol: str = "MON"

    @classmethod
    def preset(cls, name: str) -> ChainConfig:
        chain = get_chain(name)
        return cls(
            name=chain.name,
            chain_id=chain.chain_id,
            rpc_url=chain.rpc_url,
            explorer_url=chain.explorer_url,
            native_symbol=chain.native_symbol,
        )

    def tx_url(self, tx_hash: str) -> str:
        return f"{self.explorer_url}{tx_hash}"


class GasConfig(_Frozen):
    """Fixed legacy gas parameters (no estimation)."""

    limit: int = Field(default=500_000, gt=0)
    price: int = Field(default=52_000_000_000, ge=0)  # wei


class SubmissionConfig(_Frozen):
    """Timeout, retry and batching policy."""

    timeout_seconds: float = Field(default=60.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    wait_for_receipt: bool = True
    receipt_timeout_seconds: float = Field(default=120.0, gt=0)
    batch_mode: Literal["concurrent", "sequential"] = "concurrent"
    batch_delay_seconds: float = Field(default=0.0, ge=0)  # delay floor between wallets


class VaultConfig(_Frozen):
    """Encrypted wallet file and its password."""

    path: Path = Path("data/wallets.enc")
    password: SecretStr = SecretStr("")


class LedgerConfig(_Frozen):
    """Local transaction history file."""

    path: Path = Path("data/transactions.json")
    max_entries: int = Field(default=100, ge=1)


class ServerConfig(_Frozen):
    """Health/status HTTP endpoint settings."""

    host: str = "127.0.0.1"
    port: int = 3000


class BotConfig(_Frozen):
    """Root configuration object."""

    name: str = "mint-bot"
    chain: ChainConfig = Field(default_factory=ChainConfig)
    contract_address: str = ""
    call_signature: str = "mint()"
    mint_value_wei: int = Field(default=0, ge=0)
    gas: GasConfig = Field(default_factory=GasConfig)
    submission: SubmissionConfig = Field(default_factory=SubmissionConfig)
    vault: VaultConfig = Field(default_factory=VaultConfig)
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    log_level: str = "INFO"


# ---------------------------------------------------------------------------
# Public helpers
# ---------------------------------------------------------------------------

# Environment variables that override the file, as "section.field" paths
ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "MINT_BOT_VAULT_PASSWORD": ("vault", "password"),
    "MINT_BOT_RPC_URL": ("chain", "rpc_url"),
    "MINT_BOT_CONTRACT": ("contract_address",),
}


def apply_env_overrides(data: dict, environ: dict[str, str] | None = None) -> dict:
    """Return a copy of raw config *data* with ``MINT_BOT_*`` overrides applied."""
    environ = os.environ if environ is None else environ
    result = dict(data)
    for var, path in ENV_OVERRIDES.items():
        value = environ.get(var)
        if not value:
            continue
        target = result
        for key in path[:-1]:
            section = dict(target.get(key) or {})
            target[key] = section
            target = section
        target[path[-1]] = value
    return result


def default_config() -> BotConfig:
    """Defaults plus environment overrides, for running without a file."""
    return BotConfig.model_validate(apply_env_overrides({}))


def load_config(path: Path) -> BotConfig:
    """Load and validate the bot configuration from a YAML file.

    Environment variable placeholders (``${VAR}``) are expanded before
    validation, then ``MINT_BOT_*`` overrides are applied.
    """
    raw_text = path.read_text(encoding="utf-8")
    raw_data = yaml.safe_load(raw_text) or {}
    expanded = _expand_env_recursive(raw_data)
    if not isinstance(expanded, dict):
        raise ValueError(f"{path} must contain a YAML mapping")

    # An unset ${VAR} password counts as "not configured", not as the password.
    vault = expanded.get("vault")
    if isinstance(vault, dict) and _ENV_VAR_RE.search(str(vault.get("password", ""))):
        expanded["vault"] = {**vault, "password": ""}
    return BotConfig.model_validate(apply_env_overrides(expanded))


def save_config(config: BotConfig, path: Path) -> None:
    """Serialize a :class:`BotConfig` to a YAML file.

    The vault password is never written; a ``${MINT_BOT_VAULT_PASSWORD}``
    placeholder is stored instead.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    data["vault"]["password"] = "${MINT_BOT_VAULT_PASSWORD}"
    with open(path, "w", encoding="utf-8") as fh:
        yaml.dump(data, fh, default_flow_style=False, sort_keys=False)
