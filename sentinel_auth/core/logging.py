"""
Sentinel Auth - Logging Infrastructure

This module provides structured logging with support for:
- JSON formatted logs for production
- Console formatted logs for development
- Context binding for request tracing
- Security event helpers for authentication and authorization
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

import structlog
from structlog.types import Processor

from sentinel_auth.core.config import get_settings

# Context variables for request tracing
request_id_context: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
organization_id_context: ContextVar[Optional[str]] = ContextVar("organization_id", default=None)


def add_context_variables(
    logger: logging.Logger,
    method_name: str,
    event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    """
    Add request_id and organization_id from context variables to every entry.
    """
    request_id = request_id_context.get()
    if request_id:
        event_dict.setdefault("request_id", request_id)

    organization_id = organization_id_context.get()
    if organization_id:
        event_dict.setdefault("organization_id", organization_id)

    return event_dict


def get_log_level(settings: Any) -> int:
    """Convert string log level to logging constant."""
    level_map = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return level_map.get(settings.LOG_LEVEL.upper(), logging.INFO)


def get_processors(settings: Any) -> list[Processor]:
    """Get structlog processors based on settings."""
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_context_variables,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.LOG_FORMAT == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    return processors


def configure_logging() -> None:
    """
    Configure structured logging for the application.

    This should be called once at application startup.
    """
    settings = get_settings()

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=get_log_level(settings),
    )

    structlog.configure(
        processors=get_processors(settings),
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name. If None, uses the calling module's name.

    Returns:
        A structlog BoundLogger instance.

    Example:
        >>> log = get_logger(__name__)
        >>> log.info("role_created", role_id="123", organization_id="456")
    """
    return structlog.get_logger(name)


class LogContext:
    """
    Context manager for setting log context variables.

    Example:
        >>> with LogContext(request_id="req-123", organization_id="org-1"):
        ...     log.info("assigning_role")
    """

    def __init__(
        self,
        request_id: Optional[str] = None,
        organization_id: Optional[str] = None,
    ):
        self.request_id = request_id
        self.organization_id = organization_id
        self._tokens: list = []

    def __enter__(self) -> "LogContext":
        if self.request_id:
            self._tokens.append((request_id_context, request_id_context.set(self.request_id)))
        if self.organization_id:
            self._tokens.append(
                (organization_id_context, organization_id_context.set(self.organization_id))
            )
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()


class SecurityLogger:
    """
    Specialized logger for authentication and authorization events.

    Never pass secrets (passwords, tokens, API keys) to these helpers.
    """

    def __init__(self, name: str = "security"):
        self.log = get_logger(name)

    def log_login_success(self, user_id: str, organization_id: str, ip_address: str) -> None:
        self.log.info(
            "login_success",
            user_id=user_id,
            organization_id=organization_id,
            ip_address=ip_address,
        )

    def log_login_failure(self, email: str, ip_address: str, reason: str) -> None:
        self.log.warning(
            "login_failure",
            email=email,
            ip_address=ip_address,
            reason=reason,
        )

    def log_account_locked(self, user_id: str, organization_id: str, locked_until: str) -> None:
        self.log.warning(
            "account_locked",
            user_id=user_id,
            organization_id=organization_id,
            locked_until=locked_until,
        )

    def log_token_invalid(self, reason: str, ip_address: str) -> None:
        self.log.warning("token_invalid", reason=reason, ip_address=ip_address)

    def log_token_refresh(self, user_id: str) -> None:
        self.log.info("token_refreshed", user_id=user_id)

    def log_logout(self, user_id: str, sessions_revoked: int) -> None:
        self.log.info("logout", user_id=user_id, sessions_revoked=sessions_revoked)

    def log_unauthorized_access(
        self,
        user_id: Optional[str],
        resource: str,
        action: str,
        required: Optional[list] = None,
    ) -> None:
        self.log.warning(
            "unauthorized_access",
            user_id=user_id,
            resource=resource,
            action=action,
            required=required,
        )

    def log_tenant_isolation_violation(
        self,
        user_id: Optional[str],
        user_organization: str,
        target_organization: str,
        resource: str,
    ) -> None:
        self.log.warning(
            "tenant_isolation_violation",
            user_id=user_id,
            user_organization=user_organization,
            target_organization=target_organization,
            resource=resource,
        )

    def log_rate_limit_exceeded(self, key: str, endpoint: str) -> None:
        self.log.warning("rate_limit_exceeded", key=key, endpoint=endpoint)


security_logger = SecurityLogger()
