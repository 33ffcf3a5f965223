"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "ledgerflow"


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    logger = logging.getLogger()
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    logger.addHandler(handler)


def log_rate_refresh(
    success: bool,
    rate: float,
    source: str,
    duration_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log structured rate refresh outcome"""
    logging.log(
        logging.INFO if success else logging.WARNING,
        "Exchange rate refresh completed" if success else "Exchange rate refresh failed",
        extra={
            "step": "rate_refresh",
            "outcome": "success" if success else "failure",
            "rate": rate,
            "rate_source": source,
            "duration_ms": duration_ms,
            "error": error,
        },
    )


def log_conversion(
    request_id: str,
    direction: str,
    rate: float,
    rate_source: str,
    transaction_id: Optional[str] = None,
) -> None:
    """Log which rate a conversion used"""
    logging.info(
        "Conversion completed",
        extra={
            "request_id": request_id,
            "step": "conversion",
            "direction": direction,
            "rate": rate,
            "rate_source": rate_source,
            "transaction_id": transaction_id,
        },
    )
