import pytest
from sqlalchemy import select

from lemonade.core.exceptions import NotFound
from lemonade.models import App, User, UserApp
from lemonade.services.tenant_service import TenantService

from tests.conftest import API_KEY


async def _set_tenant_active(session_factory, tenant_id: int, active: bool) -> None:
    async with session_factory() as session:
        app = await session.get(App, tenant_id)
        app.is_active = active
        await session.commit()


async def test_resolve_is_exact_match(db, tenant):
    service = TenantService(db)

    first = await service.resolve(API_KEY)
    second = await service.resolve(API_KEY)

    assert first.id == second.id == tenant.id
    for key in ("key-ab", "key-abcd", "KEY-ABC", ""):
        with pytest.raises(NotFound):
            await service.resolve(key)


async def test_resolve_returns_inactive_tenants(db, tenant, session_factory):
    await _set_tenant_active(session_factory, tenant.id, False)

    app = await TenantService(db).resolve(API_KEY)

    assert app.id == tenant.id
    assert app.is_active is False


async def test_missing_api_key_is_unauthorized(client, tenant):
    response = await client.post("/api/v1/auth/device", json={"device_id": "dev-1"})

    assert response.status_code == 401
    assert response.json() == {"detail": "API key required"}


async def test_unknown_api_key_is_unauthorized(client, tenant):
    response = await client.post(
        "/api/v1/auth/device", json={"device_id": "dev-1"}, headers={"X-API-Key": "nope"}
    )

    assert response.status_code == 401


async def test_inactive_tenant_is_forbidden(client, tenant, session_factory):
    await _set_tenant_active(session_factory, tenant.id, False)

    response = await client.post(
        "/api/v1/auth/device", json={"device_id": "dev-1"}, headers={"X-API-Key": API_KEY}
    )

    assert response.status_code == 403


async def test_device_login_end_to_end(client, tenant, session_factory, settings):
    """Device login, use the token, then disable the tenant under the same token."""
    headers = {"X-API-Key": API_KEY}
    response = await client.post("/api/v1/auth/device", json={"device_id": "dev-1"}, headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["token_type"] == "Bearer"
    assert body["expires_in"] == settings.access_token_expire_minutes * 60

    async with session_factory() as session:
        user = (await session.execute(select(User).where(User.device_id == "dev-1"))).scalar_one()
        link = (
            await session.execute(select(UserApp).where(UserApp.user_id == user.id, UserApp.app_id == tenant.id))
        ).scalar_one_or_none()
    assert user.email == "dev-1@device.local"
    assert link is not None
    assert body["user"]["id"] == user.id

    auth_headers = {**headers, "Authorization": f"Bearer {body['access_token']}"}
    me = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert me.status_code == 200
    assert me.json()["user"]["id"] == user.id
    assert me.json()["app_id"] == tenant.id

    await _set_tenant_active(session_factory, tenant.id, False)

    me = await client.get("/api/v1/auth/me", headers=auth_headers)
    assert me.status_code == 403

    # The tenant gate runs first: even a garbage token gets 403, not 401
    me = await client.get("/api/v1/auth/me", headers={**headers, "Authorization": "Bearer garbage"})
    assert me.status_code == 403


async def test_repeat_device_login_reuses_user(client, tenant, session_factory):
    headers = {"X-API-Key": API_KEY}
    first = await client.post("/api/v1/auth/device", json={"device_id": "dev-2"}, headers=headers)
    second = await client.post("/api/v1/auth/device", json={"device_id": "dev-2"}, headers=headers)

    assert first.json()["user"]["id"] == second.json()["user"]["id"]
    async with session_factory() as session:
        links = (await session.execute(select(UserApp).where(UserApp.app_id == tenant.id))).scalars().all()
    assert len(links) == 1


async def test_token_from_other_tenant_is_rejected(client, tenant, session_factory):
    async with session_factory() as session:
        other = App(name="Other", slug="other", api_key="key-other", is_active=True)
        session.add(other)
        await session.commit()

    login = await client.post("/api/v1/auth/device", json={"device_id": "dev-3"}, headers={"X-API-Key": API_KEY})
    token = login.json()["access_token"]

    response = await client.get(
        "/api/v1/auth/me",
        headers={"X-API-Key": "key-other", "Authorization": f"Bearer {token}"},
    )

    assert response.status_code == 401
    assert response.json() == {"detail": "Invalid or expired credentials"}
