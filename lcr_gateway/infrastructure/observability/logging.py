"""Structured JSON logging for production observability"""

import logging
import re
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pythonjsonlogger.json import JsonFormatter

from lcr_gateway.config import settings

# 12-19 digit runs look like card numbers; keep BIN and last four only
_PAN_PATTERN = re.compile(r"\b(\d{6})\d{2,9}(\d{4})\b")

# Chatty libraries that log request URLs and SQL at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine")


def redact_pan(text: str) -> str:
    return _PAN_PATTERN.sub(lambda m: f"{m.group(1)}******{m.group(2)}", text)


class PanRedactingFilter(logging.Filter):
    """Masks anything shaped like a card number in the rendered message"""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_pan(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class CustomJsonFormatter(JsonFormatter):
    """JSON formatter adding UTC timestamp, level and service name"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Route all records through one JSON stdout handler"""
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s"))
    handler.addFilter(PanRedactingFilter())
    root.addHandler(handler)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def log_payment_event(
    request_id: str,
    merchant_id: str,
    operation: str,
    payment_id: Optional[str],
    status: str,
    duration_ms: float,
    network: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    """Log structured payment operation outcome. Card data never goes in here."""
    logging.info(
        "Payment operation completed",
        extra={
            "request_id": request_id,
            "merchant_id": merchant_id,
            "operation": operation,
            "payment_id": payment_id,
            "payment_status": status,
            "network": network,
            "reason": reason,
            "duration_ms": duration_ms,
        },
    )
