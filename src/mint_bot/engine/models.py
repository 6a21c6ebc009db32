"""Pydantic models for submission requests, results and ledger entries."""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from web3 import Web3


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class SubmissionStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class FailureKind(str, Enum):
    TIMEOUT = "timeout"        # may still have landed on chain
    REJECTED = "rejected"
    INSUFFICIENT_BALANCE = "insufficient_balance"
    UNKNOWN_CREDENTIAL = "unknown_credential"


class SubmissionState(str, Enum):
    """Lifecycle of one submission attempt sequence."""

    BUILDING = "building"
    SIGNED = "signed"
    SUBMITTED = "submitted"
    SUCCEEDED = "succeeded"
    TIMED_OUT = "timed_out"
    REJECTED_BY_REMOTE = "rejected_by_remote"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def now_ms() -> int:
    """Current time as an epoch-millisecond integer."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

class SubmissionRequest(BaseModel):
    """One intended contract call from one credential."""

    model_config = ConfigDict(frozen=True)

    credential_address: str
    target_contract: str
    call_data: bytes = b""
    gas_limit: int = Field(gt=0)
    gas_price: int = Field(ge=0)
    chain_id: int
    value: int = Field(default=0, ge=0)

    @field_validator("credential_address", "target_contract")
    @classmethod
    def _checksum(cls, value: str) -> str:
        if not Web3.is_address(value):
            raise ValueError(f"invalid address {value!r}")
        return Web3.to_checksum_address(value)

    @property
    def max_cost(self) -> int:
        """Worst-case wei spent: full gas at the fixed price, plus value."""
        return self.gas_limit * self.gas_price + self.value


class SubmissionResult(BaseModel):
    """Terminal outcome of a request, after all retries.

    Serialized with :meth:`to_record` into the ledger file format
    (``txHash``, ``error``, epoch-millisecond ``timestamp``).
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    address: str
    status: SubmissionStatus
    tx_hash: Optional[str] = Field(default=None, alias="txHash")
    error: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)
    nonce: Optional[int] = None
    attempts: int = 0
    failure_kind: Optional[FailureKind] = Field(default=None, alias="failureKind")

    @property
    def ok(self) -> bool:
        return self.status == SubmissionStatus.SUCCESS

    @classmethod
    def success(cls, address: str, tx_hash: str, nonce: int, attempts: int) -> SubmissionResult:
        return cls(
            address=address,
            status=SubmissionStatus.SUCCESS,
            tx_hash=tx_hash,
            nonce=nonce,
            attempts=attempts,
        )

    @classmethod
    def failure(
        cls,
        address: str,
        error: str,
        kind: FailureKind,
        attempts: int = 0,
        nonce: int | None = None,
    ) -> SubmissionResult:
        return cls(
            address=address,
            status=SubmissionStatus.FAILED,
            error=error,
            failure_kind=kind,
            attempts=attempts,
            nonce=nonce,
        )

    def to_record(self) -> dict:
        """Dict in the on-disk ledger format; absent fields are omitted."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_record(cls, record: dict) -> SubmissionResult:
        return cls.model_validate(record)


# A ledger entry is a persisted copy of a result.
LedgerEntry = SubmissionResult
