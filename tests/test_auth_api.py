import pytest

from lemonade.core.exceptions import NotFound
from lemonade.core.security import decode_token
from lemonade.models import User
from lemonade.services.auth import AuthService

from tests.conftest import API_KEY, TEST_SECRET

HEADERS = {"X-API-Key": API_KEY}


def bearer(token: str) -> dict:
    return {**HEADERS, "Authorization": f"Bearer {token}"}


@pytest.fixture
async def signed_up(client, tenant):
    response = await client.post(
        "/api/v1/auth/signup",
        json={"email": "Alice@Example.com", "password": "secret123", "name": "Alice"},
        headers=HEADERS,
    )
    assert response.status_code == 201
    return response.json()


async def test_signup_returns_tokens_for_tenant(signed_up, tenant):
    claims = decode_token(signed_up["access_token"], TEST_SECRET)

    assert signed_up["user"]["email"] == "alice@example.com"
    assert claims["app_id"] == tenant.id
    assert claims["type"] == "access"
    assert (claims["org_id"], claims["org_role"]) == (0, "")


async def test_duplicate_signup_conflicts(client, signed_up):
    response = await client.post(
        "/api/v1/auth/signup",
        json={"email": "alice@example.com", "password": "another123"},
        headers=HEADERS,
    )

    assert response.status_code == 409


async def test_login(client, signed_up):
    ok = await client.post(
        "/api/v1/auth/login", json={"email": "alice@example.com", "password": "secret123"}, headers=HEADERS
    )
    wrong = await client.post(
        "/api/v1/auth/login", json={"email": "alice@example.com", "password": "nope"}, headers=HEADERS
    )
    unknown = await client.post(
        "/api/v1/auth/login", json={"email": "bob@example.com", "password": "secret123"}, headers=HEADERS
    )

    assert ok.status_code == 200
    assert ok.json()["user"]["last_login_at"] is not None
    assert wrong.status_code == unknown.status_code == 401
    assert wrong.json() == unknown.json() == {"detail": "Invalid or expired credentials"}


async def test_login_disabled_user_is_forbidden(client, tenant, make_user):
    await make_user("off@example.com", password="secret123", tenant=tenant, is_active=False)

    response = await client.post(
        "/api/v1/auth/login", json={"email": "off@example.com", "password": "secret123"}, headers=HEADERS
    )

    assert response.status_code == 403


async def test_token_of_user_disabled_after_issue_is_forbidden(client, signed_up, session_factory):
    token = signed_up["access_token"]
    async with session_factory() as session:
        user = await session.get(User, signed_up["user"]["id"])
        user.is_active = False
        await session.commit()

    me = await client.get("/api/v1/auth/me", headers=bearer(token))
    status = await client.get("/api/v1/auth/status", headers=bearer(token))

    assert me.status_code == 403
    assert status.status_code == 200
    assert status.json()["authenticated"] is False


async def test_token_of_deleted_user_is_rejected(client, signed_up, session_factory):
    token = signed_up["access_token"]
    async with session_factory() as session:
        await session.delete(await session.get(User, signed_up["user"]["id"]))
        await session.commit()

    response = await client.get("/api/v1/auth/me", headers=bearer(token))

    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid or expired credentials"}


async def test_get_user(db, settings, make_user):
    user = await make_user("carol@example.com")
    service = AuthService(db, settings)

    assert (await service.get_user(user.id)).email == "carol@example.com"
    with pytest.raises(NotFound):
        await service.get_user(user.id + 1000)


async def test_me_requires_bearer(client, signed_up):
    missing = await client.get("/api/v1/auth/me", headers=HEADERS)
    malformed = await client.get(
        "/api/v1/auth/me", headers={**HEADERS, "Authorization": signed_up["access_token"]}
    )
    lowercase = await client.get(
        "/api/v1/auth/me", headers={**HEADERS, "Authorization": f"bearer {signed_up['access_token']}"}
    )

    assert missing.status_code == 401
    assert malformed.status_code == 401
    assert lowercase.status_code == 200


async def test_refresh_token_cannot_call_protected_route(client, signed_up):
    response = await client.get("/api/v1/auth/me", headers=bearer(signed_up["refresh_token"]))

    assert response.status_code == 401


async def test_refresh(client, signed_up):
    response = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": signed_up["refresh_token"]}, headers=HEADERS
    )
    reused_access = await client.post(
        "/api/v1/auth/refresh", json={"refresh_token": signed_up["access_token"]}, headers=HEADERS
    )

    assert response.status_code == 200
    me = await client.get("/api/v1/auth/me", headers=bearer(response.json()["access_token"]))
    assert me.status_code == 200
    assert reused_access.status_code == 401


async def test_session_status_with_and_without_token(client, signed_up, tenant):
    anonymous = await client.get("/api/v1/auth/status", headers=HEADERS)
    invalid = await client.get("/api/v1/auth/status", headers=bearer("garbage"))
    signed_in = await client.get("/api/v1/auth/status", headers=bearer(signed_up["access_token"]))

    assert anonymous.json() == {"app_id": tenant.id, "authenticated": False, "user_id": None, "org_id": 0}
    assert invalid.json()["authenticated"] is False
    assert signed_in.json()["authenticated"] is True
    assert signed_in.json()["user_id"] == signed_up["user"]["id"]


async def test_switch_organization(client, signed_up):
    token = signed_up["access_token"]
    created = await client.post(
        "/api/v1/organizations", json={"name": "Acme", "slug": "acme"}, headers=bearer(token)
    )
    org_id = created.json()["id"]

    switched = await client.post(
        "/api/v1/auth/switch-organization", json={"org_id": org_id}, headers=bearer(token)
    )
    assert switched.status_code == 200
    claims = decode_token(switched.json()["access_token"], TEST_SECRET)
    assert (claims["org_id"], claims["org_role"]) == (org_id, "OWNER")

    me = await client.get("/api/v1/auth/me", headers=bearer(switched.json()["access_token"]))
    assert (me.json()["org_id"], me.json()["org_role"]) == (org_id, "OWNER")

    personal = await client.post("/api/v1/auth/switch-organization", json={"org_id": 0}, headers=bearer(token))
    assert decode_token(personal.json()["access_token"], TEST_SECRET)["org_id"] == 0

    denied = await client.post(
        "/api/v1/auth/switch-organization", json={"org_id": org_id + 100}, headers=bearer(token)
    )
    assert denied.status_code == 403


async def test_security_headers_and_request_id(client, tenant):
    response = await client.get("/api/v1/auth/status", headers={**HEADERS, "X-Request-ID": "req-42"})

    assert response.headers["X-Request-ID"] == "req-42"
    assert response.headers["X-Frame-Options"] == "DENY"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    ready = await client.get("/ready")
    assert ready.json() == {"status": "ready"}
