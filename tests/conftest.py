"""Shared fixtures: in-memory SQLite store, test settings, ASGI client."""

from typing import AsyncGenerator, Dict, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from lemonade.api.deps import get_identity_verifier
from lemonade.core.config import Settings
from lemonade.core.db import get_db, init_database
from lemonade.core.exceptions import InvalidCredential
from lemonade.core.security import hash_password
from lemonade.main import create_app
from lemonade.models import App, User, UserApp
from lemonade.services.admin_auth import ExternalIdentity

TEST_SECRET = "test-secret-key-that-is-long-enough-for-hs256"
API_KEY = "key-abc"
ADMIN_EMAIL = "ops@example.com"
GOOGLE_CLIENT_ID = "client-123.apps.googleusercontent.com"


class FakeIdentityVerifier:
    """Stands in for Google: maps ID token strings to identities."""

    def __init__(self, identities: Optional[Dict[str, ExternalIdentity]] = None) -> None:
        self.identities = identities or {}
        self.calls = []

    async def verify(self, id_token: str, expected_audience: str) -> ExternalIdentity:
        self.calls.append((id_token, expected_audience))
        identity = self.identities.get(id_token)
        if identity is None:
            raise InvalidCredential(InvalidCredential.BAD_SIGNATURE, "unknown test id token")
        return identity


def google_identity(email: str, name: str = "Operator", issuer: str = "https://accounts.google.com") -> ExternalIdentity:
    return ExternalIdentity(subject_id=f"sub-{email}", email=email, name=name, issuer=issuer)


@pytest.fixture
def settings() -> Settings:
    return Settings(
        debug=False,
        environment="test",
        database_url="sqlite+aiosqlite://",
        jwt_secret_key=TEST_SECRET,
        admin_emails_raw=ADMIN_EMAIL,
        google_client_id=GOOGLE_CLIENT_ID,
        rate_limit_enabled=False,
    )


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
async def tenant(session_factory) -> App:
    async with session_factory() as session:
        app = App(name="Test App", slug="test-app", api_key=API_KEY, is_active=True)
        session.add(app)
        await session.commit()
        await session.refresh(app)
        return app


@pytest.fixture
def make_user(session_factory):
    """Create a user (optionally linked to a tenant) in its own transaction."""

    async def _make_user(
        email: str,
        password: Optional[str] = "secret123",
        tenant: Optional[App] = None,
        is_active: bool = True,
    ) -> User:
        async with session_factory() as session:
            user = User(
                email=email,
                password_hash=hash_password(password) if password else None,
                name=email.split("@")[0],
                is_active=is_active,
            )
            session.add(user)
            await session.flush()
            if tenant is not None:
                session.add(UserApp(user_id=user.id, app_id=tenant.id))
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def identity_verifier() -> FakeIdentityVerifier:
    return FakeIdentityVerifier(
        {
            "good-admin-token": google_identity(ADMIN_EMAIL, "Ops"),
            "outsider-token": google_identity("someone@example.com"),
            "wrong-issuer-token": google_identity(ADMIN_EMAIL, issuer="https://evil.example.com"),
        }
    )


@pytest.fixture
def app(settings, session_factory, identity_verifier):
    application = create_app(settings)

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_identity_verifier] = lambda: identity_verifier
    return application


@pytest.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
