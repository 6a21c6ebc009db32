"""
Tests for log redaction.
"""
from __future__ import annotations

import logging

from mint_bot.log import RedactingFilter, mask_secrets, setup_logging

from .conftest import ADDR_0, KEY_0


class TestMasking:

    def test_masks_private_key(self):
        masked = mask_secrets(f"loaded {KEY_0}")
        assert KEY_0 not in masked
        assert masked == "loaded 0xac09...ff80"

    def test_masks_unprefixed_key(self):
        assert mask_secrets(KEY_0[2:]) == "ac09...ff80"

    def test_leaves_addresses_alone(self):
        assert mask_secrets(f"wallet {ADDR_0}") == f"wallet {ADDR_0}"

    def test_filter_rewrites_record(self):
        record = logging.LogRecord("mint_bot", logging.INFO, __file__, 1, "key %s", (KEY_0,), None)
        assert RedactingFilter().filter(record)
        assert KEY_0 not in record.getMessage()

    def test_setup_logging_installs_one_handler(self):
        setup_logging("debug")
        setup_logging("info")
        logger = logging.getLogger("mint_bot")
        assert len(logger.handlers) == 1
        assert logger.level == logging.INFO
        assert not logger.propagate
        logger.propagate = True
        logger.handlers.clear()
