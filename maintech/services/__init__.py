"""Services module."""
from .email import EmailService, email_service, get_email_service
from .registration import RegistrationService
from .password_recovery import PasswordRecoveryService
from .oauth import (
    GoogleOAuthProvider,
    federated_login,
    get_oauth_provider,
    get_optional_oauth_provider,
)
from .users import UserService

__all__ = [
    "EmailService",
    "email_service",
    "get_email_service",
    "RegistrationService",
    "PasswordRecoveryService",
    "GoogleOAuthProvider",
    "federated_login",
    "get_oauth_provider",
    "get_optional_oauth_provider",
    "UserService",
]
