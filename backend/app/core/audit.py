"""
Audit logging for wallet and payment events.

Everything that touches custody or money is written as a JSON line to the
"audit" logger so it can be shipped separately from application logs.

LOGGING SENSITIVE DATA: key shares and API keys are never logged.
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
    """Central audit logging for wallet events."""

    @staticmethod
    def log_wallet_created(telegram_user_id: str, address: str, created: bool):
        """
        Log custodial wallet registration.

        Usage:
            AuditLog.log_wallet_created("12345", "0xabc...", created=True)
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": "wallet.created" if created else "wallet.existing",
            "telegram_user_id": telegram_user_id,
            "address": address,
        }
        audit_logger.info(json.dumps(log_entry))

    @staticmethod
    def log_transfer(
        telegram_user_id: str,
        token: str,
        amount: str,
        to_address: str,
        success: bool,
        tx_hash: Optional[str] = None,
        reason: str = "",
    ):
        """
        Log every transfer attempt that reached the executor.

        Validation failures are not logged here; only submissions are.
        """
        log_entry = {
            "timestamp": _now(),
            "event_type": "transfer.submitted" if success else "transfer.failed",
            "telegram_user_id": telegram_user_id,
            "token": token,
            "amount": amount,
            "to_address": to_address,
            "success": success,
        }
        if tx_hash:
            log_entry["tx_hash"] = tx_hash
        if reason and not success:
            log_entry["reason"] = reason

        if success:
            audit_logger.info(json.dumps(log_entry))
        else:
            audit_logger.warning(json.dumps(log_entry))

    @staticmethod
    def log_payment_link(
        action: str,  # "create", "payment", "view"
        link_id: str,
        telegram_user_id: Optional[str] = None,
        changes: Optional[Dict[str, Any]] = None,
    ):
        log_entry = {
            "timestamp": _now(),
            "event_type": f"payment_link.{action}",
            "link_id": link_id,
        }
        if telegram_user_id:
            log_entry["telegram_user_id"] = telegram_user_id
        if changes:
            log_entry["changes"] = changes

        audit_logger.info(json.dumps(log_entry, default=str))

    @staticmethod
    def log_access_denied(resource_type: str, resource_id: str, telegram_user_id: str, reason: str):
        """
        Log denied access attempts (someone asking for another user's link).
        """
        log_entry = {
            "timestamp": _now(),
            "event_severity": "WARNING",
            "event_type": "access_denied",
            "resource_type": resource_type,
            "resource_id": resource_id,
            "telegram_user_id": telegram_user_id,
            "reason": reason,
        }
        audit_logger.warning(json.dumps(log_entry))
