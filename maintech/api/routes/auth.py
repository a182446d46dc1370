"""Authentication routes."""
import secrets
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...config import settings
from ...core.auth import AuthService, IssuedToken, get_auth_service, parse_user_id
from ...core.exceptions import MissingTokenError, UserNotFoundError
from ...core.roles import dashboard_route
from ...core.security import get_optional_bearer_token, get_token_payload
from ...core.tokens import now_ms
from ...database import get_db
from ...schemas.auth import (
    ApproveRequest,
    ForgotPasswordRequest,
    LoginRequest,
    LoginResponse,
    ProfileResponse,
    RefreshResponse,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    UserProfile,
)
from ...schemas.common import ErrorResponse, MessageResponse
from ...services.email import EmailService, get_email_service
from ...services.oauth import (
    GoogleOAuthProvider,
    OAuthError,
    federated_login,
    get_oauth_provider,
    get_optional_oauth_provider,
    render_landing_page,
)
from ...services.password_recovery import PasswordRecoveryService
from ...services.registration import RegistrationService

logger = structlog.get_logger(__name__)

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={code: {"model": ErrorResponse} for code in (400, 401, 403, 404)},
)

OAUTH_STATE_COOKIE = "oauth_state"
OAUTH_STATE_PATH = "/auth/google"


def get_registration_service(
    auth: AuthService = Depends(get_auth_service),
    email: EmailService = Depends(get_email_service)
) -> RegistrationService:
    return RegistrationService(auth, email)


def get_recovery_service(
    auth: AuthService = Depends(get_auth_service),
    email: EmailService = Depends(get_email_service)
) -> PasswordRecoveryService:
    return PasswordRecoveryService(auth, email)


def _cookie_options() -> Dict[str, Any]:
    return {
        "path": "/",
        "httponly": True,
        "secure": settings.auth.cookie_secure,
        "samesite": settings.auth.cookie_samesite,
    }


def set_refresh_cookie(response: Response, refresh: IssuedToken) -> None:
    """Store the refresh token in the HTTP-only cookie read by /refresh-token."""
    response.set_cookie(
        key=settings.auth.refresh_cookie_name,
        value=refresh.token,
        max_age=max(0, (refresh.expires_ms - now_ms()) // 1000),
        **_cookie_options(),
    )


def _frontend_url(path: str = "") -> str:
    return settings.api.frontend_url.rstrip("/") + path


def _oauth_failure(error: str, path: str = "/") -> RedirectResponse:
    response = RedirectResponse(
        f"{_frontend_url(path)}?error={error}",
        status_code=status.HTTP_302_FOUND,
    )
    response.delete_cookie(OAUTH_STATE_COOKIE, path=OAUTH_STATE_PATH)
    return response


def _same_state(received: Optional[str], expected: Optional[str]) -> bool:
    if not received or not expected:
        return False
    return secrets.compare_digest(received.encode("utf-8"), expected.encode("utf-8"))


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register_user(
    register_request: RegisterRequest,
    db: AsyncSession = Depends(get_db),
    service: RegistrationService = Depends(get_registration_service)
):
    """Register a new, unapproved user and email the approval code."""
    return await service.register(db, register_request)


@router.post("/login", response_model=LoginResponse)
async def login_user(
    login_request: LoginRequest,
    request: Request,
    response: Response,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Login user and return tokens."""
    login_response, pair = await auth.login(
        db,
        login_request.email,
        login_request.mot_de_passe,
        device_info=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    set_refresh_cookie(response, pair.refresh)
    return login_response


@router.post("/approve", response_model=MessageResponse)
async def approve_user(
    approve_request: ApproveRequest,
    db: AsyncSession = Depends(get_db),
    service: RegistrationService = Depends(get_registration_service)
):
    """Activate an account with the emailed approval code."""
    await service.approve(db, approve_request)
    return MessageResponse(message="Utilisateur approuvé avec succès.")


@router.get("/google")
async def google_login(
    provider: GoogleOAuthProvider = Depends(get_oauth_provider)
):
    """Redirect the browser to Google's consent screen."""
    state = secrets.token_urlsafe(24)
    response = RedirectResponse(
        provider.build_authorization_url(state),
        status_code=status.HTTP_302_FOUND,
    )
    response.set_cookie(
        OAUTH_STATE_COOKIE,
        state,
        max_age=600,
        path=OAUTH_STATE_PATH,
        httponly=True,
        secure=settings.auth.cookie_secure,
        samesite="lax",
    )
    return response


@router.get("/google/callback")
async def google_callback(
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service),
    provider: Optional[GoogleOAuthProvider] = Depends(get_optional_oauth_provider)
):
    """Finish the Google flow.

    Failures are reported to the frontend as ``?error=`` flags because the
    browser is mid-redirect and cannot consume a JSON error.
    """
    if provider is None:
        logger.warning("oauth_callback_not_configured")
        return _oauth_failure("auth_failed")

    if error or not code or not _same_state(state, request.cookies.get(OAUTH_STATE_COOKIE)):
        logger.warning("oauth_callback_rejected", provider_error=error, has_code=bool(code))
        return _oauth_failure("auth_failed")

    try:
        profile = await provider.fetch_profile(code)
    except OAuthError:
        return _oauth_failure("auth_failed")

    if not profile.email:
        return _oauth_failure("user_not_found")

    try:
        user, pair = await federated_login(
            db, auth, profile, device_info=request.headers.get("user-agent")
        )
    except SQLAlchemyError:
        logger.exception("oauth_token_generation_failed")
        await db.rollback()
        return _oauth_failure("token_generation", path="/login")

    response = HTMLResponse(render_landing_page(pair, _frontend_url(dashboard_route(user.role))))
    set_refresh_cookie(response, pair.refresh)
    response.delete_cookie(OAUTH_STATE_COOKIE, path=OAUTH_STATE_PATH)
    return response


@router.post("/refresh-token", response_model=RefreshResponse)
async def refresh_token(
    request: Request,
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Mint a new access token from the refresh cookie."""
    token = request.cookies.get(settings.auth.refresh_cookie_name)
    if not token:
        raise MissingTokenError("Token de rafraîchissement manquant")

    access = await auth.refresh_access_token(db, token)
    return RefreshResponse(access_token=access.token, expires_at=access.expires_at.isoformat())


@router.post("/logout", response_model=MessageResponse)
async def logout_user(
    request: Request,
    response: Response,
    access_token: Optional[str] = Depends(get_optional_bearer_token),
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Revoke the caller's refresh sessions and clear the refresh cookie."""
    await auth.logout(
        db,
        access_token=access_token,
        refresh_token=request.cookies.get(settings.auth.refresh_cookie_name),
    )
    response.delete_cookie(settings.auth.refresh_cookie_name, **_cookie_options())
    return MessageResponse(message="Déconnexion réussie")


@router.post("/forgot-password", response_model=MessageResponse)
async def forgot_password(
    forgot_request: ForgotPasswordRequest,
    db: AsyncSession = Depends(get_db),
    service: PasswordRecoveryService = Depends(get_recovery_service)
):
    """Email a single-use password reset link."""
    await service.forgot_password(db, forgot_request.email)
    return MessageResponse(message="Email de réinitialisation envoyé avec succès")


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    reset_request: ResetPasswordRequest,
    db: AsyncSession = Depends(get_db),
    service: PasswordRecoveryService = Depends(get_recovery_service)
):
    """Set a new password using a reset token."""
    await service.reset_password(db, reset_request.token, reset_request.password)
    return MessageResponse(message="Mot de passe réinitialisé avec succès")


@router.get("/profile", response_model=ProfileResponse)
async def get_profile(
    payload: Dict[str, Any] = Depends(get_token_payload),
    db: AsyncSession = Depends(get_db),
    auth: AuthService = Depends(get_auth_service)
):
    """Get current user information."""
    user = await auth.get_user_by_id(db, parse_user_id(payload["userId"]))
    if user is None:
        raise UserNotFoundError("Utilisateur non trouvé")
    return ProfileResponse(utilisateur=UserProfile.model_validate(user))
