"""Human-readable status messages and the sinks that receive them."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Protocol

from rich.console import Console

from mint_bot.engine.models import FailureKind, LedgerEntry, SubmissionResult

logger = logging.getLogger("mint_bot.notify")

MAX_ERROR_LENGTH = 100


class Notifier(Protocol):
    async def notify(self, message: str) -> None: ...


class LogNotifier:
    """Sends every message to the ``mint_bot.notify`` logger."""

    async def notify(self, message: str) -> None:
        logger.info(message)


class ConsoleNotifier:
    """Prints messages to a rich console (the CLI's sink)."""

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def notify(self, message: str) -> None:
        self.console.print(message, markup=False, highlight=False)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def shorten_error(message: str, limit: int = MAX_ERROR_LENGTH) -> str:
    if len(message) > limit:
        return message[:limit] + "..."
    return message


def format_result(result: SubmissionResult, explorer_url: str) -> str:
    """The single terminal message for one submission."""
    if result.ok:
        return f"✅ Mint successful from {result.address}\n{explorer_url}{result.tx_hash}"
    text = f"❌ Mint failed from {result.address}: {shorten_error(result.error or 'unknown error')}"
    if result.failure_kind == FailureKind.TIMEOUT:
        text += "\n⚠️ Last attempt timed out; the transaction may still be mined."
    return text


def format_history(entries: list[LedgerEntry], explorer_url: str) -> str:
    """Render ledger entries (already newest first) as a numbered list."""
    if not entries:
        return "📜 No transaction history found"

    lines = ["📜 Recent Transactions:", ""]
    for index, entry in enumerate(entries, start=1):
        when = datetime.fromtimestamp(entry.timestamp / 1000, tz=timezone.utc)
        lines.append(f"{index}. {'✅' if entry.ok else '❌'} {entry.address}")
        lines.append(f"   Date: {when:%Y-%m-%d %H:%M:%S} UTC")
        if entry.ok:
            lines.append(f"   TX: {explorer_url}{entry.tx_hash}")
        else:
            lines.append(f"   Error: {shorten_error(entry.error or '')}")
        lines.append("")
    return "\n".join(lines).rstrip()
