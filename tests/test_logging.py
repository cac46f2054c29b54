"""
Tests for structured logging
"""

import io
import json
import logging
import sys

from bankease.logging_config import (
    setup_logging, log_action, JSONFormatter, set_correlation_id, reset_correlation_id
)
from bankease.storage import InMemoryStorage
from bankease.ledger import LedgerStore
from bankease.auth import IdentityGate
from bankease.config import BankEaseConfig


class TestStructuredLogging:

    def setup_method(self):
        self.logger = setup_logging("DEBUG", logger_name="bankease")
        self.stream = io.StringIO()
        self.logger.handlers[0].setStream(self.stream)

    def teardown_method(self):
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

    def lines(self):
        return [json.loads(line) for line in self.stream.getvalue().splitlines()]

    def test_log_action_emits_structured_fields(self):
        log_action(
            logging.getLogger("bankease.test"), "info", "Transfer completed",
            user_id="acc-1", action="transfer", resource="transaction:TXN1",
            correlation_id="req-9", extra={"amount": "USD 10.00"}
        )

        entry = self.lines()[-1]
        assert entry["level"] == "INFO"
        assert entry["message"] == "Transfer completed"
        assert entry["user_id"] == "acc-1"
        assert entry["action"] == "transfer"
        assert entry["correlation_id"] == "req-9"
        assert entry["extra"] == {"amount": "USD 10.00"}

    def test_disabled_level_is_skipped(self):
        self.logger.setLevel(logging.WARNING)
        log_action(logging.getLogger("bankease.test"), "info", "quiet")
        assert self.stream.getvalue() == ""

    def test_repeated_setup_keeps_one_handler(self):
        setup_logging("INFO", logger_name="bankease")
        assert len(logging.getLogger("bankease").handlers) == 1

    def test_pin_and_token_never_logged(self):
        gate = IdentityGate(
            LedgerStore(InMemoryStorage()),
            BankEaseConfig(database_url="memory://", jwt_secret="log-secret")
        )
        result = gate.register("Alice", "+15550001", "4821")
        gate.login("+15550001", "4821")

        output = self.stream.getvalue()
        assert output
        assert result.credential.token not in output
        assert "pin_hash" not in output
        for entry in self.lines():
            assert "4821" not in json.dumps(entry.get("extra", {}))
            assert "4821" not in entry["message"]

    def test_exception_info_is_included(self):
        formatter = JSONFormatter()
        try:
            raise RuntimeError("boom")
        except RuntimeError:
            record = logging.getLogger("bankease.test").makeRecord(
                "bankease.test", logging.ERROR, __file__, 1, "failed", (), sys.exc_info()
            )
        entry = json.loads(formatter.format(record))
        assert "RuntimeError: boom" in entry["exception"]

    def test_correlation_id_from_context(self):
        token = set_correlation_id("req-ctx")
        try:
            log_action(logging.getLogger("bankease.ledger"), "info", "Account created")
        finally:
            reset_correlation_id(token)
        log_action(logging.getLogger("bankease.ledger"), "info", "Outside a request")

        inside, outside = self.lines()[-2:]
        assert inside["correlation_id"] == "req-ctx"
        assert "correlation_id" not in outside
