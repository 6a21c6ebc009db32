"""Exception hierarchy for mint-bot."""

from __future__ import annotations


class MintBotError(Exception):
    """Base class for every error raised by mint-bot."""


class IntegrityError(MintBotError):
    """The vault failed its MAC check (tampered data or wrong password)."""


class MalformedCredentialError(MintBotError):
    """A single vault entry could not be turned into a signing account."""

    def __init__(self, reason: str, index: int | None = None):
        self.index = index
        self.reason = reason
        where = f"entry {index}" if index is not None else "credential"
        super().__init__(f"Malformed {where}: {reason}")


class UnknownCredentialError(MintBotError):
    """The requested address is not held by the key ring."""

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"No credential loaded for {address}")


class InsufficientBalanceError(MintBotError):
    """Pre-flight check: the account cannot pay the worst-case cost."""

    def __init__(self, address: str, balance: int, required: int):
        self.address = address
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient balance in {address}: has {balance} wei, needs {required} wei"
        )


class SubmissionError(MintBotError):
    """A single submission attempt failed. Retryable."""

    def __init__(self, message: str, nonce: int | None = None):
        self.nonce = nonce
        super().__init__(message)


class SubmissionTimeoutError(SubmissionError):
    """The remote call did not finish in time.

    The transaction may still have been accepted by the remote ledger.
    """

    def __init__(self, timeout: float, nonce: int | None = None):
        self.timeout = timeout
        super().__init__(f"Transaction timed out after {timeout:g}s", nonce=nonce)


class SubmissionRejectedError(SubmissionError):
    """The remote ledger raised or reverted the transaction."""


class RetriesExhaustedError(MintBotError):
    """Every attempt allowed by the retry budget failed."""

    def __init__(self, address: str, attempts: int, last_error: SubmissionError):
        self.address = address
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Final attempt failed after {attempts} attempt(s): {last_error}"
        )

    @property
    def timed_out(self) -> bool:
        return isinstance(self.last_error, SubmissionTimeoutError)


class PersistenceError(MintBotError):
    """Reading or writing a ledger or vault file failed."""

    def __init__(self, path: object, reason: str):
        self.path = path
        super().__init__(f"Persistence failure on {path}: {reason}")
