"""Structured JSON logging for production observability"""

import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict
from pythonjsonlogger import jsonlogger

from cuotas_gateway.config import settings

logger = logging.getLogger("cuotas_gateway")


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with timestamp and service metadata"""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname
        log_record["service"] = settings.service_name


def setup_logging(level: str = "INFO") -> None:
    """Configure structured JSON logging"""
    root = logging.getLogger()
    root.setLevel(level)

    # Remove existing handlers
    root.handlers.clear()

    # JSON handler for stdout
    handler = logging.StreamHandler(sys.stdout)
    formatter = CustomJsonFormatter(
        "%(timestamp)s %(level)s %(name)s %(message)s"
    )
    handler.setFormatter(formatter)
    root.addHandler(handler)


def log_enrollment_created(request_id: str, enrollment_id: str, participant_id: str, plan_code: str, overdue_at_start: int) -> None:
    """Log a new enrollment; overdue_at_start > 0 means late admission"""
    logger.info(
        "Enrollment created",
        extra={
            "request_id": request_id,
            "enrollment_id": enrollment_id,
            "participant_id": participant_id,
            "plan_code": plan_code,
            "step": "enrollment_created",
            "overdue_at_start": overdue_at_start,
        },
    )


def log_payment(request_id: str, enrollment_id: str, sequence: int, channel: str, state: str) -> None:
    logger.info(
        "Installment settled",
        extra={
            "request_id": request_id,
            "enrollment_id": enrollment_id,
            "sequence": sequence,
            "channel": channel,
            "state": state,
            "step": "installment_settled",
        },
    )


def log_migration(enrollment_id: str, from_plan: str, to_plan: str, reason: str | None, paid_count: int, overdue_count: int) -> None:
    """Log a Plan A -> Plan B migration for audit"""
    logger.warning(
        "Enrollment migrated",
        extra={
            "enrollment_id": enrollment_id,
            "from_plan": from_plan,
            "to_plan": to_plan,
            "reason": reason,
            "paid_count": paid_count,
            "overdue_count": overdue_count,
            "step": "migration_applied",
        },
    )


def log_withdrawal(request_id: str, enrollment_id: str, percentage: int, refund_minor: int) -> None:
    logger.info(
        "Withdrawal requested",
        extra={
            "request_id": request_id,
            "enrollment_id": enrollment_id,
            "refund_percentage": percentage,
            "refund_minor": refund_minor,
            "step": "withdrawal_requested",
        },
    )


def log_reevaluation(as_of: str, evaluated: int, changed: int, migrated: int, failed: int, duration_ms: float) -> None:
    """Log the outcome of a re-evaluation pass"""
    logger.info(
        "Re-evaluation pass completed",
        extra={
            "as_of": as_of,
            "evaluated": evaluated,
            "changed": changed,
            "migrated": migrated,
            "failed": failed,
            "duration_ms": duration_ms,
            "step": "reevaluation_complete",
        },
    )
