"""
Audit Event Sink
================

Fire-and-forget recording of security-relevant actions.

Storage and querying of audit history live outside this service; events
are emitted as structured ``audit`` log records by default, or handed to
an injected sink. A failing sink is logged and never propagates.
"""

from typing import Any, Callable, Dict, Optional

from sentinel_auth.core.logging import get_logger

logger = get_logger(__name__)

AuditSink = Callable[[Dict[str, Any]], None]


class AuditAction:
    """Audit action constants."""
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"
    SESSION_REVOKED = "SESSION_REVOKED"
    PASSWORD_RESET_REQUESTED = "PASSWORD_RESET_REQUESTED"
    PASSWORD_RESET = "PASSWORD_RESET"
    ROLE_CREATED = "ROLE_CREATED"
    ROLE_UPDATED = "ROLE_UPDATED"
    ROLE_DELETED = "ROLE_DELETED"
    ROLE_ASSIGNED = "ROLE_ASSIGNED"
    ROLE_REMOVED = "ROLE_REMOVED"
    API_KEY_CREATED = "API_KEY_CREATED"
    API_KEY_REVOKED = "API_KEY_REVOKED"


def _log_sink(event: Dict[str, Any]) -> None:
    get_logger("audit").info("audit_event", **event)


class AuditService:
    def __init__(self, sink: Optional[AuditSink] = None):
        self._sink = sink or _log_sink

    def log_event(
        self,
        user_id: Optional[Any],
        action: str,
        resource_type: str,
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
    ) -> None:
        """Record one event. Never raises."""
        event = {
            "user_id": str(user_id) if user_id is not None else None,
            "action": action,
            "resource_type": resource_type,
            "resource_id": str(resource_id) if resource_id is not None else None,
            "details": details or {},
            "ip_address": ip_address,
        }
        try:
            self._sink(event)
        except Exception as e:
            logger.error(
                "Audit event dropped",
                action=action,
                error=str(e),
                error_type=type(e).__name__,
            )


audit_service = AuditService()
