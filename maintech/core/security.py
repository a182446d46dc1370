"""Request authentication and role-gated authorization dependencies.

Access is checked in two tiers on every protected request: the bearer
token must verify (signature and expiry), and the user it names must still
exist with a role the route allows. The role is read from the database,
never from the token, so role changes and deletions apply immediately.
"""
from typing import Any, Dict, Iterable, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from .auth import AuthService, get_auth_service, parse_user_id
from .exceptions import (
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
    MissingTokenError,
)
from .logging import SecurityLogger
from .roles import Role
from .tokens import TokenError

# Security scheme; missing credentials are reported by us, not by FastAPI
security = HTTPBearer(auto_error=False)


def _client_ip(request: Request) -> Optional[str]:
    return request.client.host if request.client else None


def _reject(request: Request, error: Exception, reason: str) -> Exception:
    SecurityLogger.log_unauthorized_access(
        path=str(request.url.path),
        method=request.method,
        ip_address=_client_ip(request),
        user_agent=request.headers.get("user-agent"),
        reason=reason,
    )
    return error


async def get_token_payload(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    service: AuthService = Depends(get_auth_service)
) -> Dict[str, Any]:
    """Verified claims of the bearer access token."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise _reject(request, MissingTokenError(), "missing_token")

    try:
        return service.verify_token(credentials.credentials)
    except TokenError:
        raise _reject(request, InvalidTokenError(), "invalid_token")


async def get_current_user(
    request: Request,
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db),
    service: AuthService = Depends(get_auth_service)
) -> User:
    """Get current authenticated user."""
    user = await service.get_user_by_id(db, parse_user_id(payload["userId"]))
    if user is None:
        raise _reject(
            request,
            AuthenticationError("Utilisateur non trouvé", error_code="USER_NOT_FOUND"),
            "user_not_found",
        )

    request.state.user = user
    return user


class RoleChecker:
    """Allow the request only if the current user's role is in the allowed set."""

    def __init__(self, allowed_roles: Iterable[Role]):
        self.allowed_roles = frozenset(Role(role) for role in allowed_roles)

    async def __call__(
        self,
        request: Request,
        current_user: User = Depends(get_current_user)
    ) -> User:
        if current_user.role not in {role.value for role in self.allowed_roles}:
            raise _reject(request, AuthorizationError(), "role_not_allowed")
        return current_user


def authorize(*roles: Role) -> RoleChecker:
    """Build a role gate for a route."""
    return RoleChecker(roles)


# Common role checkers
admin_required = authorize(Role.ADMIN)
any_role = authorize(*Role)


def get_optional_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> Optional[str]:
    """Raw bearer token if one was sent."""
    if credentials is None or credentials.scheme.lower() != "bearer":
        return None
    return credentials.credentials
