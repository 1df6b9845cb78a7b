"""
Security Audit Logging

Security event logging for Switchboard: authentication failures, realtime
handshake failures and administrative changes to user accounts.
"""

import logging
import json
from datetime import datetime, timezone
from typing import Dict, Any, Optional


class SecurityAuditLogger:
    """Security event logging"""

    def __init__(self):
        self.logger = logging.getLogger("security_audit")
        self.logger.setLevel(logging.INFO)

        # Prevent duplicate handlers
        if not self.logger.handlers:
            console_handler = logging.StreamHandler()
            console_formatter = logging.Formatter(
                '%(asctime)s - SECURITY - %(levelname)s - %(message)s'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)
            self.logger.propagate = False

    def _log(self, level: int, event_type: str, data: Dict[str, Any]):
        event = {
            "event_type": event_type,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **data
        }
        self.logger.log(level, json.dumps(event, default=str))

    def log_authentication_failure(
        self,
        ip_address: str,
        user_agent: str = "unknown",
        failure_reason: str = "unknown",
        email: Optional[str] = None
    ):
        """Log failed login or bearer validation"""
        self._log(logging.WARNING, "AUTHENTICATION_FAILURE", {
            "ip_address": ip_address,
            "user_agent": user_agent[:200],
            "failure_reason": failure_reason,
            "email": email
        })

    def log_websocket_auth_failure(self, ip_address: str, reason: str):
        """Log failed realtime handshake"""
        self._log(logging.WARNING, "WEBSOCKET_AUTH_FAILURE", {
            "ip_address": ip_address,
            "reason": reason
        })

    def log_admin_action(
        self,
        admin_user_id: int,
        action: str,
        target_user_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        """Log user management and credential changes"""
        self._log(logging.INFO, "ADMIN_ACTION", {
            "admin_user_id": admin_user_id,
            "action": action,
            "target_user_id": target_user_id,
            "details": details or {}
        })


# Global audit logger instance
audit_logger = SecurityAuditLogger()
