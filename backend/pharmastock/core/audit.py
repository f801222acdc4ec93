"""
Audit logging for stock-changing operations.

Every committed change to stock (sale submitted, batch created, import run,
medicine removed) is written as one JSON line on the "audit" logger so it can
be shipped separately from application logs.
"""
import logging
import json
from datetime import datetime, timezone
from typing import Any, Optional, Dict

# Separate logger for audit events (can be shipped to centralized logging)
audit_logger = logging.getLogger("audit")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditLog:
    """Central audit logging for stock-changing events."""

    @staticmethod
    def log_action(
        action: str,  # "create", "delete", "enable", "disable"
        resource_type: str,  # "medicine", "batch", "sale"
        resource_id: Optional[int],
        changes: Optional[Dict[str, Any]] = None,
    ):
        """
        Log a committed change to a catalog or stock record.

        Usage:
            AuditLog.log_action("create", "batch", 12, changes={"medicine_id": 3, "quantity": 100})
            AuditLog.log_action("delete", "medicine", 4, changes={"name": "Aspirin"})
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": f"{resource_type}.{action}",
            "resource_id": resource_id,
        }

        if changes:
            log_entry["changes"] = changes

        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_sale(sale_id: int, payment_mode: str, total_amount, item_count: int):
        """
        Log a submitted sale.

        Usage:
            AuditLog.log_sale(42, "UPI", Decimal("120.50"), item_count=3)
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": "sale.submitted",
            "resource_id": sale_id,
            "payment_mode": payment_mode,
            "total_amount": str(total_amount),
            "item_count": item_count,
        }

        audit_logger.info(json.dumps(log_entry))

    @staticmethod
    def log_sale_rejected(reason: str, details: Optional[Dict[str, Any]] = None):
        """Log a sale the repository refused (e.g. a batch was depleted meanwhile)."""
        log_entry = {
            "timestamp": _now(),
            "event_severity": "WARNING",
            "event_type": "sale.rejected",
            "reason": reason,
        }

        if details:
            log_entry["details"] = details

        audit_logger.warning(json.dumps(log_entry, default=str))

    @staticmethod
    def log_import(summary: Dict[str, Any]):
        """
        Log the outcome of one bulk import run.

        Usage:
            AuditLog.log_import({"created_with_batch": 3, "failed": 1})
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": "import.completed",
            "summary": summary,
        }

        audit_logger.info(json.dumps(log_entry, default=str))
