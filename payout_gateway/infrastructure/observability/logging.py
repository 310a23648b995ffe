"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger.json import JsonFormatter

from payout_gateway.domain.models import ReconciliationWarning


class CustomJsonFormatter(JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = "payout-gateway"


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


def log_settlement(
    request_id: str,
    creator_id: str,
    months: list[str],
    outcome: str,
    final_payable: int,
    duration_ms: float,
) -> None:
    """Log structured settlement outcome for payout reconciliation"""
    logging.info(
        "Settlement completed",
        extra={
            "request_id": request_id,
            "creator_id": creator_id,
            "months": months,
            "step": "settlement_complete",
            "settlement_outcome": outcome,
            "final_payable": final_payable,
            "duration_ms": duration_ms,
        },
    )


def log_reconciliation_warning(warning: ReconciliationWarning, request_id: Optional[str] = None) -> None:
    logging.warning(
        f"Reconciliation warning: {warning.kind}",
        extra={
            "request_id": request_id,
            "creator_id": warning.creator_id,
            "contract_id": warning.contract_id,
            "warning_kind": warning.kind,
            "detail": warning.detail,
        },
    )
