"""
Tests for chainvault_core.logging_config: formatters and secret redaction.
"""

import json
import logging
import sys

import pytest

from chainvault_core.config import LoggingConfig
from chainvault_core.logging_config import (
    REDACTED,
    SecretRedactionFilter,
    _HumanFormatter,
    _JSONFormatter,
    redact,
    setup_logging,
    setup_logging_from_config,
)

from conftest import ABANDON_MNEMONIC


def _record(msg, *args, level=logging.INFO):
    return logging.LogRecord("chainvault_test", level, __file__, 1, msg, args, None)


@pytest.fixture
def restore_root():
    root = logging.getLogger()
    level = root.level
    yield root
    for h in list(root.handlers):
        if any(isinstance(f, SecretRedactionFilter) for f in h.filters):
            root.removeHandler(h)
            h.close()
    root.setLevel(level)


class TestRedact:

    def test_envelope(self):
        assert redact("blob=cvb1$1000$abc_DEF-123=") == f"blob={REDACTED}"

    def test_private_key(self):
        key = "ab" * 32
        assert key not in redact(f"key {key}")
        assert key not in redact(f"key 0x{key}")

    def test_mnemonic(self):
        assert redact(f"phrase: {ABANDON_MNEMONIC}") == f"phrase: {REDACTED}"

    def test_address_untouched(self):
        text = "Account 0x9858effd232b4033e47d90003d41ec34ecaeda94 added (#2)"
        assert redact(text) == text

    def test_short_sentence_untouched(self):
        text = "Discovery finished after 2 batches"
        assert redact(text) == text


class TestFilter:

    def test_rewrites_args(self):
        record = _record("restoring %s", ABANDON_MNEMONIC)
        assert SecretRedactionFilter().filter(record) is True
        assert record.getMessage() == f"restoring {REDACTED}"
        assert record.args is None

    def test_leaves_clean_record(self):
        record = _record("hello %s", "world")
        SecretRedactionFilter().filter(record)
        assert record.args == ("world",)


class TestFormatters:

    def test_json(self):
        out = json.loads(_JSONFormatter().format(_record("vault %s", "sealed")))
        assert out["msg"] == "vault sealed"
        assert out["level"] == "INFO"
        assert out["logger"] == "chainvault_test"

    def test_json_exception_redacted(self):
        try:
            raise RuntimeError(f"leaked {ABANDON_MNEMONIC}")
        except RuntimeError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "boom", None, sys.exc_info())
        out = json.loads(_JSONFormatter().format(record))
        assert "abandon abandon" not in out["exception"]

    def test_human(self):
        line = _HumanFormatter().format(_record("ready", level=logging.WARNING))
        assert "WARNING" in line
        assert "chainvault_test: ready" in line


class TestSetup:

    def test_setup_json_to_file(self, tmp_path, restore_root):
        log_file = tmp_path / "logs" / "vault.log"
        setup_logging(level="debug", fmt="json", log_file=str(log_file))
        assert restore_root.level == logging.DEBUG
        assert len(restore_root.handlers) == 2

        logging.getLogger("chainvault_session").info(f"sealed {ABANDON_MNEMONIC}")
        for h in restore_root.handlers:
            h.flush()
        written = log_file.read_text().strip().splitlines()
        assert json.loads(written[-1])["msg"] == f"sealed {REDACTED}"

    def test_every_handler_filtered(self, restore_root):
        setup_logging(level="INFO", fmt="human")
        assert all(
            any(isinstance(f, SecretRedactionFilter) for f in h.filters)
            for h in restore_root.handlers
        )

    def test_from_config(self, restore_root):
        setup_logging_from_config(LoggingConfig(level="WARNING", format="json"))
        assert restore_root.level == logging.WARNING
        assert isinstance(restore_root.handlers[0].formatter, _JSONFormatter)
