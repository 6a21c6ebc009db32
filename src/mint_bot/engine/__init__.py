"""Transaction submission engine: submitter, bounded ledger and batch minter."""

from mint_bot.engine.ledger import SubmissionLedger
from mint_bot.engine.models import (
    FailureKind,
    LedgerEntry,
    SubmissionRequest,
    SubmissionResult,
    SubmissionState,
    SubmissionStatus,
)
from mint_bot.engine.submitter import TransactionSubmitter

__all__ = [
    "FailureKind",
    "LedgerEntry",
    "SubmissionLedger",
    "SubmissionRequest",
    "SubmissionResult",
    "SubmissionState",
    "SubmissionStatus",
    "TransactionSubmitter",
]
