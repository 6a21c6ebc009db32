"""Logging setup: rich console output with private keys masked."""

from __future__ import annotations

import logging
import re

from rich.logging import RichHandler

# 32-byte hex blobs (private keys, and tx hashes which are masked too)
_SECRET_RE = re.compile(r"\b(0x)?([0-9a-fA-F]{4})[0-9a-fA-F]{56}([0-9a-fA-F]{4})\b")


def mask_secrets(text: str) -> str:
    """Replace 64-hex-digit strings with ``0x1234...abcd``."""
    return _SECRET_RE.sub(lambda m: f"{m.group(1) or ''}{m.group(2)}...{m.group(3)}", text)


class RedactingFilter(logging.Filter):
    """Masks anything shaped like a private key in log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        masked = mask_secrets(message)
        if masked != message:
            record.msg = masked
            record.args = None
        return True


def setup_logging(level: str = "INFO") -> None:
    """Install a :class:`RichHandler` on the ``mint_bot`` logger."""
    handler = RichHandler(rich_tracebacks=True, show_path=False)
    handler.addFilter(RedactingFilter())

    root = logging.getLogger("mint_bot")
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    root.propagate = False
