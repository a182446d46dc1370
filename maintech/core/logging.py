"""Logging configuration and utilities."""
import logging
import sys
from typing import Any, Dict

import structlog
from structlog.stdlib import LoggerFactory

from ..config import settings


def configure_logging():
    """Configure structured logging."""

    # Configure structlog
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer()
        ],
        context_class=dict,
        logger_factory=LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.monitoring.log_level.upper()),
    )

    # Set third-party log levels
    logging.getLogger("uvicorn").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


def redact_email(email: str) -> str:
    """Redact an email address for logging to avoid PII leakage."""
    if not email or "@" not in email:
        return "redacted"
    local, domain = email.split("@", 1)
    return f"{local[:2]}***@{domain}"


class RequestLogger:
    """Request logging utility."""

    @staticmethod
    def log_request(
        method: str,
        path: str,
        request_id: str = None,
        extra_data: Dict[str, Any] = None
    ):
        """Log incoming request."""
        logger = structlog.get_logger("api.request")
        logger.info(
            "Request started",
            method=method,
            path=path,
            request_id=request_id,
            **(extra_data or {})
        )

    @staticmethod
    def log_response(
        method: str,
        path: str,
        status_code: int,
        response_time_ms: float,
        user_id: str = None,
        request_id: str = None,
    ):
        """Log response."""
        logger = structlog.get_logger("api.response")
        logger.info(
            "Request completed",
            method=method,
            path=path,
            status_code=status_code,
            response_time_ms=response_time_ms,
            user_id=user_id,
            request_id=request_id,
        )


class AccountLogger:
    """Account lifecycle event logging utility."""

    @staticmethod
    def log_registered(user_id: str, email: str, role: str, code_sent: bool):
        """Log a password-flow registration."""
        logger = structlog.get_logger("business.account")
        logger.info(
            "User registered",
            event_type="user_registered",
            user_id=user_id,
            email=redact_email(email),
            role=role,
            code_sent=code_sent
        )

    @staticmethod
    def log_approval(email: str, success: bool, failure_reason: str = None):
        """Log an approval code submission."""
        logger = structlog.get_logger("business.account")
        log = logger.info if success else logger.warning
        log(
            "Approval attempt",
            event_type="approval_attempt",
            email=redact_email(email),
            success=success,
            failure_reason=failure_reason
        )

    @staticmethod
    def log_federated_provisioned(user_id: str, email: str, provider: str):
        """Log auto-provisioning of a federated identity."""
        logger = structlog.get_logger("business.account")
        logger.info(
            "Federated user provisioned",
            event_type="federated_user_provisioned",
            user_id=user_id,
            email=redact_email(email),
            provider=provider
        )

    @staticmethod
    def log_password_reset_requested(user_id: str, email_sent: bool):
        """Log a forgot-password request."""
        logger = structlog.get_logger("business.account")
        logger.info(
            "Password reset requested",
            event_type="password_reset_requested",
            user_id=user_id,
            email_sent=email_sent
        )

    @staticmethod
    def log_password_reset(user_id: str = None, success: bool = True, failure_reason: str = None):
        """Log a password reset attempt."""
        logger = structlog.get_logger("business.account")
        log = logger.info if success else logger.warning
        log(
            "Password reset",
            event_type="password_reset",
            user_id=user_id,
            success=success,
            failure_reason=failure_reason
        )

    @staticmethod
    def log_user_admin_action(action: str, target_user_id: str, actor_id: str):
        """Log an administrative change to a user account."""
        logger = structlog.get_logger("business.account")
        logger.info(
            "User administration",
            event_type="user_admin_action",
            action=action,
            target_user_id=target_user_id,
            actor_id=actor_id
        )


class SecurityLogger:
    """Security event logging utility."""

    @staticmethod
    def log_login_attempt(
        email: str,
        success: bool,
        method: str = "password",
        ip_address: str = None,
        user_agent: str = None,
        failure_reason: str = None
    ):
        """Log login attempt."""
        logger = structlog.get_logger("security.auth")
        log = logger.info if success else logger.warning
        log(
            "Login attempt",
            event_type="login_attempt",
            email=redact_email(email),
            success=success,
            method=method,
            ip_address=ip_address,
            user_agent=user_agent,
            failure_reason=failure_reason
        )

    @staticmethod
    def log_token_refresh(user_id: str = None, success: bool = True, failure_reason: str = None):
        """Log an access token refresh."""
        logger = structlog.get_logger("security.auth")
        log = logger.info if success else logger.warning
        log(
            "Token refresh",
            event_type="token_refresh",
            user_id=user_id,
            success=success,
            failure_reason=failure_reason
        )

    @staticmethod
    def log_logout(user_id: str = None, sessions_revoked: int = 0):
        """Log a logout."""
        logger = structlog.get_logger("security.auth")
        logger.info(
            "Logout",
            event_type="logout",
            user_id=user_id,
            sessions_revoked=sessions_revoked
        )

    @staticmethod
    def log_unauthorized_access(
        path: str,
        method: str,
        ip_address: str = None,
        user_agent: str = None,
        reason: str = None
    ):
        """Log unauthorized access attempt."""
        logger = structlog.get_logger("security.access")
        logger.warning(
            "Unauthorized access attempt",
            event_type="unauthorized_access",
            path=path,
            method=method,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=reason
        )

    @staticmethod
    def log_rate_limit_exceeded(
        ip_address: str,
        path: str,
        limit_type: str = "general"
    ):
        """Log rate limit exceeded."""
        logger = structlog.get_logger("security.rate_limit")
        logger.warning(
            "Rate limit exceeded",
            event_type="rate_limit_exceeded",
            ip_address=ip_address,
            path=path,
            limit_type=limit_type
        )
