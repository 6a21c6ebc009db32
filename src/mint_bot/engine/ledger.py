"""Bounded, durable audit log of submission outcomes.

Entries are kept oldest-first, both in memory and in the JSON file, and
capped at ``max_entries``; the oldest entries are evicted on overflow.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from mint_bot.errors import PersistenceError
from mint_bot.engine.models import LedgerEntry, SubmissionResult

logger = logging.getLogger("mint_bot.engine.ledger")

DEFAULT_MAX_ENTRIES = 100


class SubmissionLedger:
    """Append-only, size-bounded record of :class:`SubmissionResult` objects.

    Parameters
    ----------
    path:
        JSON file the ledger is persisted to.  ``None`` keeps the ledger in
        memory only.
    max_entries:
        Capacity; the oldest entries are evicted past it.
    """

    def __init__(self, path: Path | None = None, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.path = Path(path) if path is not None else None
        self.max_entries = max_entries
        self._entries: list[LedgerEntry] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Replace in-memory entries with the file's contents.

        A missing file means an empty ledger.  An unreadable one is logged
        and also leaves the ledger empty.
        """
        self._entries = []
        if self.path is None or not self.path.exists():
            return

        try:
            records = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(records, list):
                raise ValueError("ledger file is not a JSON array")
            entries = [SubmissionResult.from_record(r) for r in records]
        except (OSError, ValueError, ValidationError) as e:
            logger.error(f"Failed to read transaction history from {self.path}: {e}")
            return

        self._entries = entries[-self.max_entries:]
        logger.info(f"Loaded {len(self._entries)} ledger entries from {self.path}")

    def _write(self, records: list[dict]) -> None:
        assert self.path is not None
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(json.dumps(records, indent=2), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise PersistenceError(self.path, str(exc)) from exc

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def append(self, result: SubmissionResult) -> None:
        """Record *result*, evicting the oldest entries beyond capacity.

        A failed write is logged; the in-memory ledger still holds the
        entry and the caller's result is unaffected.
        """
        async with self._lock:
            self._entries.append(result)
            overflow = len(self._entries) - self.max_entries
            if overflow > 0:
                del self._entries[:overflow]

            if self.path is None:
                return
            records = [e.to_record() for e in self._entries]
            try:
                await asyncio.to_thread(self._write, records)
            except PersistenceError as e:
                logger.error(f"Failed to save transaction history: {e}")

    def recent(self, limit: int = 10) -> list[LedgerEntry]:
        """The *limit* most recent entries, newest first."""
        if limit <= 0:
            return []
        return list(reversed(self._entries[-limit:]))

    def entries(self) -> list[LedgerEntry]:
        """A copy of all entries, oldest first."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
