"""Unit tests for structured logging helpers"""

import json
import logging

from lcr_gateway.infrastructure.observability.logging import CustomJsonFormatter, PanRedactingFilter, redact_pan


def _record(msg, *args) -> logging.LogRecord:
    return logging.LogRecord("lcr_gateway.test", logging.INFO, __file__, 1, msg, args, None)


def test_redact_pan_keeps_bin_and_last_four():
    assert redact_pan("card 4000001234567899 declined") == "card 400000******7899 declined"
    assert redact_pan("payment PMT1000 amount 100.00") == "payment PMT1000 amount 100.00"


def test_filter_redacts_formatted_arguments():
    record = _record("Authorizing %s", "4532001234567890")

    assert PanRedactingFilter().filter(record)
    assert record.getMessage() == "Authorizing 453200******7890"


def test_json_formatter_adds_service_fields():
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")

    payload = json.loads(formatter.format(_record("hello")))

    assert payload["message"] == "hello"
    assert payload["level"] == "INFO"
    assert payload["service"] == "lcr-gateway"
    assert payload["timestamp"]
