"""Integration tests for local auth and route protection."""
import pytest

from parley.auth.config import auth_settings
from parley.auth.passwords import hash_password, password_problem, verify_password


def test_password_hash_roundtrip():
    hashed = hash_password("a" * 100)
    assert verify_password("a" * 100, hashed)
    # Prehash keeps bytes past bcrypt's 72-byte limit significant
    assert not verify_password("a" * 99 + "b", hashed)
    assert not verify_password("anything", "not-a-bcrypt-hash")


@pytest.mark.parametrize(
    "candidate, ok",
    [("short", False), (" padded-password", False), ("long-enough", True)],
)
def test_password_rules(candidate, ok):
    assert (password_problem(candidate) is None) is ok


@pytest.mark.asyncio
async def test_first_registered_user_is_admin(client):
    first = await client.post(
        "/v1/auth/register", json={"email": "Owner@Example.com", "password": "long-enough"}
    )
    second = await client.post(
        "/v1/auth/register", json={"email": "member@example.com", "password": "long-enough"}
    )

    assert first.status_code == 201
    assert first.json()["user"]["isAdmin"] is True
    assert first.json()["user"]["email"] == "owner@example.com"
    assert second.json()["user"]["isAdmin"] is False
    assert second.json()["accessToken"]


@pytest.mark.asyncio
async def test_register_rejects_duplicates_and_weak_passwords(client, user):
    duplicate = await client.post(
        "/v1/auth/register", json={"email": user.email, "password": "long-enough"}
    )
    weak = await client.post(
        "/v1/auth/register", json={"email": "new@example.com", "password": "short"}
    )

    assert duplicate.status_code == 409
    assert weak.status_code == 400


@pytest.mark.asyncio
async def test_login_and_me(client, user, password):
    response = await client.post(
        "/v1/auth/login", json={"email": user.email.upper(), "password": password}
    )
    assert response.status_code == 200
    token = response.json()["accessToken"]

    me = await client.get("/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == user.id


@pytest.mark.asyncio
async def test_login_failures(client, user, make_user, password):
    disabled = await make_user("disabled@example.com", is_active=False)

    wrong = await client.post(
        "/v1/auth/login", json={"email": user.email, "password": "wrong-password"}
    )
    unknown = await client.post(
        "/v1/auth/login", json={"email": "nobody@example.com", "password": password}
    )
    inactive = await client.post(
        "/v1/auth/login", json={"email": disabled.email, "password": password}
    )

    assert wrong.status_code == 401
    assert unknown.status_code == 401
    assert inactive.status_code == 401
    assert inactive.json()["detail"] == "Account is disabled"


@pytest.mark.asyncio
async def test_invalid_token_rejected(client):
    response = await client.get("/v1/auth/me", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_deactivated_user_token_rejected(client, make_user):
    account = await make_user(is_active=False)
    response = await client.get("/v1/auth/me", headers=account.headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_middleware_requires_bearer_on_private_paths(client):
    response = await client.get("/v1/agents")
    assert response.status_code == 401
    assert response.headers["www-authenticate"] == "Bearer"


@pytest.mark.asyncio
async def test_auth_disabled_uses_anonymous_admin(client, monkeypatch):
    monkeypatch.setattr(auth_settings, "enabled", False)

    response = await client.get("/v1/auth/me")

    assert response.status_code == 200
    assert response.json()["id"] == "anonymous"
    assert response.json()["isAdmin"] is True


@pytest.mark.asyncio
async def test_status_is_public(client):
    response = await client.get("/v1/status")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "ok"
    assert data["database"] is True
    assert data["pendingSessions"] == 0
    assert "webhookSecretFromEnv" not in data
