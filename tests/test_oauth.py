"""Tests for Google federated login."""
from urllib.parse import parse_qs, urlparse

import httpx
import pytest
from sqlalchemy import func, select

from maintech.config import settings
from maintech.core.auth import FEDERATED_PASSWORD_HASH, IssuedToken, IssuedTokenPair
from maintech.core.roles import Role
from maintech.main import app
from maintech.models.session import RefreshSession
from maintech.models.user import User
from maintech.services.oauth import (
    FederatedProfile,
    GoogleOAuthProvider,
    OAuthError,
    get_optional_oauth_provider,
    render_landing_page,
)

FRONTEND = "http://localhost:5173"


async def _start(client):
    response = await client.get("/auth/google")
    assert response.status_code == 302
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


async def _callback(client, code="auth-code", state=None, **params):
    query = {"code": code, **params}
    if state is not None:
        query["state"] = state
    return await client.get("/auth/google/callback", params=query)


async def _find_user(async_session, email):
    result = await async_session.execute(select(User).where(User.email == email))
    return result.scalar_one_or_none()


async def test_google_redirect(client):
    response = await client.get("/auth/google")

    assert response.status_code == 302
    location = urlparse(response.headers["location"])
    assert location.netloc == "accounts.google.com"
    query = parse_qs(location.query)
    assert query["client_id"] == ["test-client"]
    assert query["response_type"] == ["code"]
    assert query["scope"] == ["openid email profile"]
    assert query["redirect_uri"] == ["http://testserver/auth/google/callback"]
    assert "oauth_state=" in response.headers["set-cookie"]
    assert query["state"][0] in response.headers["set-cookie"]


async def test_callback_provisions_new_user(client, oauth_provider, async_session):
    state = await _start(client)

    response = await _callback(client, state=state)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/html")
    page = response.text
    assert "accessToken=" in page
    assert "refreshToken=" in page
    assert "max-age=604800" in page
    assert "max-age=2592000" in page
    assert f'"{FRONTEND}/operateur-dashboard"' in page
    assert oauth_provider.codes == ["auth-code"]

    user = await _find_user(async_session, "federated@example.com")
    assert user.role == Role.OPERATOR.value
    assert user.is_approved is True
    assert user.nom == "Rated"
    assert user.prenom == "Fede"
    assert user.hashed_password == FEDERATED_PASSWORD_HASH


async def test_callback_session_can_refresh(client):
    """The refresh cookie set by the callback is a live session."""
    state = await _start(client)
    response = await _callback(client, state=state)
    assert "jwt=" in response.headers["set-cookie"]

    response = await client.post("/auth/refresh-token")

    assert response.status_code == 200


async def test_callback_existing_user(client, test_user, oauth_provider, async_session):
    """An existing account is reused with its own role."""
    oauth_provider.profile = FederatedProfile(email=test_user.email, given_name="Other", family_name="Name")
    state = await _start(client)

    response = await _callback(client, state=state)

    assert response.status_code == 200
    assert f'"{FRONTEND}/technicien-dashboard"' in response.text
    await async_session.refresh(test_user)
    assert test_user.nom == "User"
    assert test_user.role == Role.TECHNICIAN.value
    assert (await client.post("/auth/login", json={
        "email": test_user.email, "motDePasse": "testpassword123"
    })).status_code == 200


async def test_federated_user_cannot_password_login(client, login):
    state = await _start(client)
    await _callback(client, state=state)

    response = await login("federated@example.com", "!federated")

    assert response.status_code == 401


async def test_callback_without_state(client, oauth_provider):
    response = await _callback(client)

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND}/?error=auth_failed"
    assert oauth_provider.codes == []


async def test_callback_state_mismatch(client, oauth_provider):
    await _start(client)

    response = await _callback(client, state="forged-state")

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND}/?error=auth_failed"
    assert oauth_provider.codes == []


async def test_callback_provider_denied(client):
    state = await _start(client)

    response = await client.get(
        "/auth/google/callback", params={"error": "access_denied", "state": state}
    )

    assert response.headers["location"] == f"{FRONTEND}/?error=auth_failed"


async def test_callback_exchange_failure(client, oauth_provider, async_session):
    oauth_provider.error = OAuthError("boom")
    state = await _start(client)

    response = await _callback(client, state=state)

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND}/?error=auth_failed"
    assert await _find_user(async_session, "federated@example.com") is None


async def test_callback_profile_without_email(client, oauth_provider):
    oauth_provider.profile = FederatedProfile(email=None, given_name="No", family_name="Mail")
    state = await _start(client)

    response = await _callback(client, state=state)

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND}/?error=user_not_found"


async def test_google_not_configured(client, monkeypatch):
    monkeypatch.setattr(settings.oauth, "google_client_id", None)
    app.dependency_overrides.pop(get_optional_oauth_provider)

    response = await client.get("/auth/google")

    assert response.status_code == 503
    assert response.json()["error_code"] == "OAUTH_NOT_CONFIGURED"


def test_profile_name_fallbacks():
    full = FederatedProfile(email="a@example.com", display_name="Jean Dupont")
    assert full.nom == "Dupont"
    assert full.prenom == "Jean"

    single = FederatedProfile(email="a@example.com", display_name="Jean")
    assert single.nom == "Google"
    assert single.prenom == "Jean"

    empty = FederatedProfile(email="a@example.com")
    assert empty.nom == "Google"
    assert empty.prenom == "Utilisateur"


def test_landing_page_escapes_values():
    pair = IssuedTokenPair(
        access=IssuedToken(token="access.jwt", expires_ms=0),
        refresh=IssuedToken(token="refresh.jwt", expires_ms=0),
    )

    page = render_landing_page(pair, f"{FRONTEND}/</script><script>alert(1)")

    assert "</script><script>" not in page
    assert '"access.jwt"' in page
    assert '"refresh.jwt"' in page


def test_provider_requires_credentials():
    with pytest.raises(ValueError):
        GoogleOAuthProvider(client_id="", client_secret="secret", redirect_uri="http://x/cb")


def _mock_google(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)


async def test_fetch_profile(monkeypatch):
    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            assert b"code=the-code" in request.content
            return httpx.Response(200, json={"access_token": "google-access"})
        assert request.headers["authorization"] == "Bearer google-access"
        return httpx.Response(200, json={
            "email": "jean@example.com",
            "email_verified": True,
            "given_name": "Jean",
            "family_name": "Dupont",
            "name": "Jean Dupont",
        })

    _mock_google(monkeypatch, handler)
    provider = GoogleOAuthProvider(client_id="id", client_secret="secret", redirect_uri="http://x/cb")

    profile = await provider.fetch_profile("the-code")

    assert profile.email == "jean@example.com"
    assert profile.nom == "Dupont"
    assert profile.prenom == "Jean"


async def test_fetch_profile_rejected_code(monkeypatch):
    _mock_google(monkeypatch, lambda request: httpx.Response(400, json={"error": "invalid_grant"}))
    provider = GoogleOAuthProvider(client_id="id", client_secret="secret", redirect_uri="http://x/cb")

    with pytest.raises(OAuthError):
        await provider.fetch_profile("bad-code")


async def test_fetch_profile_malformed_response(monkeypatch):
    _mock_google(monkeypatch, lambda request: httpx.Response(200, json={"unexpected": True}))
    provider = GoogleOAuthProvider(client_id="id", client_secret="secret", redirect_uri="http://x/cb")

    with pytest.raises(OAuthError):
        await provider.fetch_profile("code")


async def test_callback_when_not_configured(client, monkeypatch):
    """The callback still answers with a redirect flag, not a JSON error."""
    monkeypatch.setattr(settings.oauth, "google_client_id", None)
    app.dependency_overrides.pop(get_optional_oauth_provider)

    response = await _callback(client, state="any-state")

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND}/?error=auth_failed"


@pytest.mark.parametrize("verified", [False, None, "true"])
async def test_fetch_profile_unverified_email(monkeypatch, verified):
    """An address Google has not verified is not usable as an identity."""

    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "google-access"})
        userinfo = {"email": "admin@example.com", "given_name": "Eve"}
        if verified is not None:
            userinfo["email_verified"] = verified
        return httpx.Response(200, json=userinfo)

    _mock_google(monkeypatch, handler)
    provider = GoogleOAuthProvider(client_id="id", client_secret="secret", redirect_uri="http://x/cb")

    profile = await provider.fetch_profile("the-code")

    assert profile.email is None


async def test_unverified_email_does_not_reach_existing_account(
    client, admin_user, monkeypatch, async_session
):
    def handler(request):
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "google-access"})
        return httpx.Response(200, json={"email": admin_user.email, "email_verified": False})

    _mock_google(monkeypatch, handler)
    real_provider = GoogleOAuthProvider(
        client_id="id", client_secret="secret", redirect_uri="http://testserver/auth/google/callback"
    )
    app.dependency_overrides[get_optional_oauth_provider] = lambda: real_provider
    state = await _start(client)

    response = await _callback(client, state=state)

    assert response.status_code == 302
    assert response.headers["location"] == f"{FRONTEND}/?error=user_not_found"
    result = await async_session.execute(select(func.count()).select_from(RefreshSession))
    assert result.scalar_one() == 0
