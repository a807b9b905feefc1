import pytest

from lemonade.models import App

from tests.conftest import API_KEY

HEADERS = {"X-API-Key": API_KEY}


async def _signup(client, email: str) -> dict:
    response = await client.post(
        "/api/v1/auth/signup", json={"email": email, "password": "secret123"}, headers=HEADERS
    )
    assert response.status_code == 201
    return {**HEADERS, "Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.fixture
async def owner(client, tenant):
    return await _signup(client, "owner@example.com")


@pytest.fixture
async def guest(client, tenant):
    return await _signup(client, "guest@example.com")


@pytest.fixture
async def org_id(client, owner):
    response = await client.post(
        "/api/v1/organizations",
        json={"name": "Acme", "slug": "acme", "description": "Widgets"},
        headers=owner,
    )
    assert response.status_code == 201
    return response.json()["id"]


async def test_create_and_list(client, owner, org_id):
    listed = await client.get("/api/v1/organizations", headers=owner)

    assert listed.status_code == 200
    assert [(o["slug"], o["role"]) for o in listed.json()] == [("acme", "OWNER")]

    duplicate = await client.post(
        "/api/v1/organizations", json={"name": "Again", "slug": "acme"}, headers=owner
    )
    assert duplicate.status_code == 409


async def test_invalid_slug_is_rejected(client, owner):
    response = await client.post(
        "/api/v1/organizations", json={"name": "Bad", "slug": "Not A Slug"}, headers=owner
    )

    assert response.status_code == 422


async def test_invitation_flow(client, owner, guest, org_id):
    created = await client.post(
        f"/api/v1/organizations/{org_id}/invitations",
        json={"email": "guest@example.com", "role": "ADMIN"},
        headers=owner,
    )
    assert created.status_code == 201
    token = created.json()["token"]
    assert created.json()["status"] == "PENDING"

    listed = await client.get(f"/api/v1/organizations/{org_id}/invitations", headers=owner)
    assert "token" not in listed.json()[0]

    accepted = await client.post(
        "/api/v1/organizations/invitations/accept", json={"token": token}, headers=guest
    )
    assert accepted.status_code == 200
    assert accepted.json()["id"] == org_id

    again = await client.post("/api/v1/organizations/invitations/accept", json={"token": token}, headers=guest)
    assert again.status_code == 404

    members = await client.get(f"/api/v1/organizations/{org_id}/members", headers=guest)
    assert sorted((m["email"], m["role"]) for m in members.json()) == [
        ("guest@example.com", "ADMIN"),
        ("owner@example.com", "OWNER"),
    ]


async def test_non_member_cannot_see_members_or_invite(client, guest, org_id):
    members = await client.get(f"/api/v1/organizations/{org_id}/members", headers=guest)
    invite = await client.post(
        f"/api/v1/organizations/{org_id}/invitations", json={"email": "x@example.com"}, headers=guest
    )

    assert members.status_code == 403
    assert invite.status_code == 403


async def test_update_delete_and_roles(client, owner, guest, org_id):
    invite = await client.post(
        f"/api/v1/organizations/{org_id}/invitations", json={"email": "guest@example.com"}, headers=owner
    )
    await client.post(
        "/api/v1/organizations/invitations/accept", json={"token": invite.json()["token"]}, headers=guest
    )
    members = (await client.get(f"/api/v1/organizations/{org_id}/members", headers=owner)).json()
    guest_member_id = next(m["id"] for m in members if m["email"] == "guest@example.com")

    forbidden_update = await client.put(f"/api/v1/organizations/{org_id}", json={"name": "X"}, headers=guest)
    assert forbidden_update.status_code == 403

    promoted = await client.patch(
        f"/api/v1/organizations/{org_id}/members/{guest_member_id}/role", json={"role": "ADMIN"}, headers=owner
    )
    assert promoted.status_code == 200
    assert promoted.json()["role"] == "ADMIN"

    updated = await client.put(f"/api/v1/organizations/{org_id}", json={"name": "Acme Ltd"}, headers=guest)
    assert updated.status_code == 200
    assert updated.json()["name"] == "Acme Ltd"

    delete_by_admin = await client.delete(f"/api/v1/organizations/{org_id}", headers=guest)
    assert delete_by_admin.status_code == 403

    removed = await client.delete(f"/api/v1/organizations/{org_id}/members/{guest_member_id}", headers=owner)
    assert removed.status_code == 204

    deleted = await client.delete(f"/api/v1/organizations/{org_id}", headers=owner)
    assert deleted.status_code == 204
    gone = await client.get(f"/api/v1/organizations/{org_id}", headers=owner)
    assert gone.status_code == 404


async def test_revoke_invitation(client, owner, guest, org_id):
    invite = await client.post(
        f"/api/v1/organizations/{org_id}/invitations", json={"email": "guest@example.com"}, headers=owner
    )
    invitation_id = invite.json()["id"]

    revoked = await client.post(f"/api/v1/organizations/{org_id}/invitations/{invitation_id}/revoke", headers=owner)
    assert revoked.status_code == 200
    assert revoked.json()["status"] == "REVOKED"

    accept = await client.post(
        "/api/v1/organizations/invitations/accept", json={"token": invite.json()["token"]}, headers=guest
    )
    assert accept.status_code == 404


async def test_organization_in_other_tenant_is_not_found(client, owner, org_id, session_factory):
    async with session_factory() as session:
        session.add(App(name="Other", slug="other", api_key="key-other", is_active=True))
        await session.commit()

    login = await client.post("/api/v1/auth/device", json={"device_id": "dev-x"}, headers={"X-API-Key": "key-other"})
    other = {"X-API-Key": "key-other", "Authorization": f"Bearer {login.json()['access_token']}"}

    response = await client.get(f"/api/v1/organizations/{org_id}", headers=other)

    assert response.status_code == 404
