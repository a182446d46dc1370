"""Federated login through Google OAuth 2.0.

The provider is an ordinary object built from settings and handed to the
routes through a dependency, so tests can swap it for a fake.
"""
import json
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlencode

import httpx
import structlog
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..core.auth import FEDERATED_PASSWORD_HASH, AuthService, IssuedTokenPair
from ..core.exceptions import ConfigurationError, ExternalServiceError
from ..core.logging import AccountLogger, SecurityLogger
from ..core.roles import DEFAULT_ROLE
from ..models.user import User

logger = structlog.get_logger(__name__)

# Google OAuth endpoints
_GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
_GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
_GOOGLE_USERINFO_URL = "https://openidconnect.googleapis.com/v1/userinfo"

_SCOPES = ["openid", "email", "profile"]


class OAuthError(ExternalServiceError):
    """Identity provider rejected the exchange or returned garbage."""


@dataclass
class FederatedProfile:
    """Identity asserted by the provider."""

    email: Optional[str]
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    display_name: Optional[str] = None

    @property
    def nom(self) -> str:
        if self.family_name:
            return self.family_name
        if self.display_name and " " in self.display_name:
            return self.display_name.split(" ")[-1]
        return "Google"

    @property
    def prenom(self) -> str:
        if self.given_name:
            return self.given_name
        if self.display_name:
            return self.display_name.split(" ")[0]
        return "Utilisateur"


class GoogleOAuthProvider:
    """Authorization-code flow against Google."""

    name = "google"

    def __init__(
        self,
        *,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        timeout: float = 10.0
    ):
        if not client_id or not client_secret:
            raise ValueError("GOOGLE_CLIENT_ID and GOOGLE_CLIENT_SECRET are required")
        self._client_id = client_id
        self._client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._timeout = timeout

    def build_authorization_url(self, state: str) -> str:
        """Construct the Google consent URL."""
        params = {
            "client_id": self._client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(_SCOPES),
            "state": state,
        }
        return f"{_GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def fetch_profile(self, code: str) -> FederatedProfile:
        """Exchange the authorization code and read the user's profile."""
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                token_resp = await client.post(
                    _GOOGLE_TOKEN_URL,
                    data={
                        "client_id": self._client_id,
                        "client_secret": self._client_secret,
                        "code": code,
                        "grant_type": "authorization_code",
                        "redirect_uri": self.redirect_uri,
                    },
                )
                token_resp.raise_for_status()
                access_token = token_resp.json()["access_token"]

                userinfo_resp = await client.get(
                    _GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {access_token}"},
                )
                userinfo_resp.raise_for_status()
                userinfo = userinfo_resp.json()

        except httpx.HTTPStatusError as exc:
            logger.error(
                "google_oauth_exchange_failed",
                status=exc.response.status_code,
            )
            raise OAuthError("Échec de l'échange OAuth Google") from exc
        except (httpx.HTTPError, KeyError, ValueError) as exc:
            logger.error("google_oauth_error", error_type=type(exc).__name__, error=str(exc))
            raise OAuthError("Erreur OAuth Google") from exc

        email = userinfo.get("email")
        if email and userinfo.get("email_verified") is not True:
            # An unverified address must not be linked to a local account
            logger.warning("google_oauth_unverified_email")
            email = None

        return FederatedProfile(
            email=email,
            given_name=userinfo.get("given_name"),
            family_name=userinfo.get("family_name"),
            display_name=userinfo.get("name"),
        )


def get_optional_oauth_provider() -> Optional[GoogleOAuthProvider]:
    """Provider built from settings, or None when Google login is not configured."""
    if not (settings.oauth.google_client_id and settings.oauth.google_client_secret):
        return None
    return GoogleOAuthProvider(
        client_id=settings.oauth.google_client_id,
        client_secret=settings.oauth.google_client_secret,
        redirect_uri=settings.oauth.google_redirect_uri,
    )


def get_oauth_provider(
    provider: Optional[GoogleOAuthProvider] = Depends(get_optional_oauth_provider)
) -> GoogleOAuthProvider:
    """Dependency requiring a configured provider."""
    if provider is None:
        raise ConfigurationError(
            "Connexion Google non configurée",
            error_code="OAUTH_NOT_CONFIGURED",
        )
    return provider


async def federated_login(
    db: AsyncSession,
    auth: AuthService,
    profile: FederatedProfile,
    provider: str = "google",
    device_info: Optional[str] = None
) -> Tuple[User, IssuedTokenPair]:
    """Find or provision the local account and issue its token pair.

    Federated accounts are created approved, with the default role and a
    placeholder password hash that no password matches.
    """
    user = await auth.get_user_by_email(db, profile.email)
    if user is None:
        user = User(
            nom=profile.nom,
            prenom=profile.prenom,
            email=profile.email,
            hashed_password=FEDERATED_PASSWORD_HASH,
            role=DEFAULT_ROLE.value,
            is_approved=True,
        )
        db.add(user)
        await db.flush()
        AccountLogger.log_federated_provisioned(str(user.id), user.email, provider)

    pair = await auth.issue_token_pair(db, user, device_info)
    SecurityLogger.log_login_attempt(user.email, True, method=provider, user_agent=device_info)
    return user, pair


LANDING_PAGE = """\
<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>Connexion réussie</title>
  <script>
    document.cookie = "accessToken=" + {access_token} + "; path=/; max-age={access_max_age}";
    document.cookie = "refreshToken=" + {refresh_token} + "; path=/; max-age={refresh_max_age}";
    window.location.href = {target};
  </script>
</head>
<body>
  <p>Connexion réussie. Redirection en cours...</p>
</body>
</html>
"""


def render_landing_page(pair: IssuedTokenPair, target: str) -> str:
    """HTML that stores the tokens in cookies and forwards to the dashboard.

    Cookie lifetimes are fixed by settings, independent of the tokens' own
    expiry.
    """
    day = 60 * 60 * 24
    return LANDING_PAGE.format(
        access_token=_js_string(pair.access.token),
        refresh_token=_js_string(pair.refresh.token),
        access_max_age=settings.auth.oauth_access_cookie_days * day,
        refresh_max_age=settings.auth.oauth_refresh_cookie_days * day,
        target=_js_string(target),
    )


def _js_string(value: str) -> str:
    return json.dumps(value).replace("</", "<\\/")
