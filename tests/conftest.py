"""Test configuration and fixtures."""
import os

os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("BCRYPT_SALT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("FRONTEND_URL", "http://localhost:5173")

from typing import Dict, List, Optional  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
import structlog  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from maintech.core.auth import auth_service  # noqa: E402
from maintech.core.logging import configure_logging  # noqa: E402
from maintech.core.roles import Role  # noqa: E402
from maintech.database import get_db  # noqa: E402
from maintech.main import app  # noqa: E402
from maintech.models.base import Base  # noqa: E402
from maintech.models.user import User  # noqa: E402
from maintech.services.email import EmailService, get_email_service  # noqa: E402
from maintech.services.oauth import (  # noqa: E402
    FederatedProfile,
    GoogleOAuthProvider,
    get_optional_oauth_provider,
)


class RecordingEmailService(EmailService):
    """Email service that keeps messages instead of sending them."""

    def __init__(self):
        super().__init__(frontend_url="http://localhost:5173")
        self.sent: List[Dict[str, str]] = []
        self.approval_codes: Dict[str, str] = {}
        self.reset_tokens: Dict[str, List[str]] = {}
        self.fail = False

    async def send(self, to_email: str, subject: str, html_body: str) -> bool:
        self.sent.append({"to": to_email, "subject": subject, "body": html_body})
        return not self.fail

    async def send_approval_code(self, to_email: str, approval_code: str) -> bool:
        self.approval_codes[to_email] = approval_code
        return await super().send_approval_code(to_email, approval_code)

    async def send_password_reset(self, to_email: str, token: str, expire_minutes: int) -> bool:
        self.reset_tokens.setdefault(to_email, []).append(token)
        return await super().send_password_reset(to_email, token, expire_minutes)


class FakeOAuthProvider(GoogleOAuthProvider):
    """Provider returning a canned profile, or failing on demand."""

    def __init__(self):
        super().__init__(
            client_id="test-client",
            client_secret="test-secret",
            redirect_uri="http://testserver/auth/google/callback",
        )
        self.profile: Optional[FederatedProfile] = FederatedProfile(
            email="federated@example.com",
            given_name="Fede",
            family_name="Rated",
        )
        self.error: Optional[Exception] = None
        self.codes: List[str] = []

    async def fetch_profile(self, code: str) -> FederatedProfile:
        self.codes.append(code)
        if self.error is not None:
            raise self.error
        return self.profile


@pytest.fixture(autouse=True)
def structured_logging():
    """Run every test with the logging pipeline the application starts with."""
    configure_logging()
    yield
    structlog.reset_defaults()


@pytest_asyncio.fixture
async def async_engine(tmp_path):
    """Create async engine for tests."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(async_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def async_session(session_factory):
    """Session for seeding and inspecting the database from tests."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def email_outbox():
    return RecordingEmailService()


@pytest.fixture
def oauth_provider():
    return FakeOAuthProvider()


@pytest_asyncio.fixture
async def client(session_factory, email_outbox, oauth_provider):
    """HTTP client with database, email and OAuth dependencies overridden."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_email_service] = lambda: email_outbox
    app.dependency_overrides[get_optional_oauth_provider] = lambda: oauth_provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture
def make_user(async_session):
    """Factory inserting a user directly into the database."""

    async def _make_user(
        email: str = "test@example.com",
        password: str = "testpassword123",
        role: Role = Role.TECHNICIAN,
        is_approved: bool = True,
        approval_code: Optional[str] = None,
    ) -> User:
        user = User(
            email=email,
            hashed_password=auth_service.hash_password(password),
            nom="User",
            prenom="Test",
            role=role.value,
            is_approved=is_approved,
            approval_code=approval_code,
        )
        async_session.add(user)
        await async_session.commit()
        await async_session.refresh(user)
        return user

    return _make_user


@pytest_asyncio.fixture
async def test_user(make_user):
    """Approved technician."""
    return await make_user()


@pytest_asyncio.fixture
async def admin_user(make_user):
    """Approved administrator."""
    return await make_user(
        email="admin@example.com",
        password="adminpassword123",
        role=Role.ADMIN,
    )


def bearer(user: User) -> Dict[str, str]:
    """Authorization header carrying a fresh access token for the user."""
    return {"Authorization": f"Bearer {auth_service.create_access_token(user).token}"}


@pytest.fixture
def auth_headers(test_user):
    """Create authorization headers for test user."""
    return bearer(test_user)


@pytest.fixture
def admin_headers(admin_user):
    """Create authorization headers for admin user."""
    return bearer(admin_user)


@pytest.fixture
def bearer_for():
    """Build authorization headers for any user."""
    return bearer


@pytest.fixture
def login(client):
    """Password login through the API."""

    async def _login(email: str = "test@example.com", password: str = "testpassword123"):
        return await client.post("/auth/login", json={"email": email, "motDePasse": password})

    return _login


@pytest.fixture
def refresh_with(client):
    """Call the refresh endpoint presenting only the given refresh cookie."""

    async def _refresh(token: Optional[str]):
        client.cookies.clear()
        if token is not None:
            client.cookies.set("jwt", token)
        return await client.post("/auth/refresh-token")

    return _refresh
